"""Shared fixtures for zerog-agent tests."""

import os
import threading
from unittest.mock import MagicMock

import pytest
import yaml

# Use litellm's bundled model cost map; its import-time remote fetch deadlocks
# the import when the network is unavailable.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from zerog_agent import config as config_module


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Keep the global config directory out of the real home."""
    home = tmp_path_factory.mktemp("zerog-home")
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yml")
    for var in ("ZEROG_MODEL", "ZEROG_API_KEY", "ZEROG_BASE_URL",
                "ZEROG_MAX_ITERATIONS", "ZEROG_DEBUG"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def sample_config_data():
    """Minimal .zerog.conf.yml data dict."""
    return {
        "connection": {
            "provider": "local",
            "base-url": "http://localhost:8080/v1",
            "api-key": "not-needed",
            "model": "openai/model",
        },
        "agent": {
            "allow-terminal": True,
            "auto-apply-diff": False,
            "max-iterations": 3,
            "command-timeout": 20,
            "blocked-commands": ["shutdown"],
        },
        "advanced": {
            "temperature": 0.2,
            "system-prompt": "Be brief.",
            "context-limit": 2048,
            "debug-mode": False,
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".zerog.conf.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    c.input = MagicMock(return_value="n")
    return c


class ScriptedTransport:
    """Model transport that replays canned replies, one per call.

    Each reply is either a string (split into ``chunk_size`` fragments) or an
    exception instance to raise. Every call records the messages it saw.
    """

    def __init__(self, replies, chunk_size=7):
        self.replies = list(replies)
        self.chunk_size = chunk_size
        self.calls = []

    def stream(self, messages, context_items=None, mode="agent", cancel_event=None):
        self.calls.append({
            "messages": [(m.role, m.content) for m in messages],
            "context_items": context_items,
            "mode": mode,
        })
        if not self.replies:
            raise AssertionError("transport called more often than scripted")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        for i in range(0, len(reply), self.chunk_size):
            if cancel_event is not None and cancel_event.is_set():
                return
            yield reply[i:i + self.chunk_size]

    def complete(self, messages, context_items=None, mode="ask"):
        self.calls.append({
            "messages": [(m.role, m.content) for m in messages],
            "context_items": context_items,
            "mode": mode,
        })
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class BlockingTransport:
    """Yields one fragment, then blocks until cancelled."""

    def __init__(self):
        self.started = threading.Event()

    def stream(self, messages, context_items=None, mode="agent", cancel_event=None):
        yield "<message>working"
        self.started.set()
        cancel_event.wait(5)


@pytest.fixture
def scripted_transport():
    return ScriptedTransport


@pytest.fixture
def blocking_transport():
    return BlockingTransport()
