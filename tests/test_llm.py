"""Tests for the litellm transport. litellm.completion is always mocked."""

import threading
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import litellm
import pytest

from zerog_agent.llm import LLMAdapter
from zerog_agent.models import ContextItem, ConversationMessage


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


def _response(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


@pytest.fixture
def adapter():
    return LLMAdapter(model="openai/test", temperature=0.3, max_tokens=512,
                      api_base="http://localhost:9/v1", api_key="k", system_prompt="Custom ask.")


class TestRequestShape:

    def test_complete_builds_system_prompt_and_kwargs(self, adapter):
        with patch("zerog_agent.llm.litellm.completion", return_value=_response("hi")) as completion:
            assert adapter.complete([ConversationMessage("user", "hello")]) == "hi"

        kwargs = completion.call_args.kwargs
        assert kwargs["model"] == "openai/test"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 512
        assert kwargs["api_base"] == "http://localhost:9/v1"
        assert kwargs["api_key"] == "k"
        assert "stream" not in kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "Custom ask."}
        assert kwargs["messages"][1] == {"role": "user", "content": "hello"}

    def test_mode_prompt_and_project_map(self):
        adapter = LLMAdapter(model="m", project_map="proj/\n  a.py")
        with patch("zerog_agent.llm.litellm.completion", return_value=_response("")) as completion:
            adapter.complete([{"role": "user", "content": "plan it"}], mode="planner")

        system = completion.call_args.kwargs["messages"][0]["content"]
        assert system.startswith("You are a Tech Lead.")
        assert "proj/\n  a.py" in system
        assert "api_key" not in completion.call_args.kwargs

    def test_context_attached_to_last_user_message(self, adapter):
        item = ContextItem(path="/x/a.py", content="x = 1", file_name="a.py", language_id="python")
        history = [ConversationMessage("user", "first"), ConversationMessage("assistant", "ok"),
                   ConversationMessage("user", "second")]
        with patch("zerog_agent.llm.litellm.completion", return_value=_response("")) as completion:
            adapter.complete(history, [item], mode="agent")

        messages = completion.call_args.kwargs["messages"]
        assert messages[1]["content"] == "first"
        assert messages[3]["content"].startswith("\n[Context Files]\n")
        assert messages[3]["content"].endswith("User Query: second")
        assert "[File: a.py] (python)" in messages[3]["content"]
        # The caller's history is untouched.
        assert history[2].content == "second"


class TestStream:

    def test_yields_deltas(self, adapter):
        chunks = [_chunk("<mess"), _chunk(None), _chunk("age>hi</message>")]
        with patch("zerog_agent.llm.litellm.completion", return_value=iter(chunks)) as completion:
            out = list(adapter.stream([ConversationMessage("user", "x")]))

        assert out == ["<mess", "age>hi</message>"]
        assert completion.call_args.kwargs["stream"] is True
        assert completion.call_args.kwargs["messages"][0]["content"].startswith("You are an AI Developer.")

    def test_stops_when_cancelled(self, adapter):
        cancel = threading.Event()
        stream = MagicMock()
        stream.__iter__.return_value = iter([_chunk("a"), _chunk("b"), _chunk("c")])
        received = []
        with patch("zerog_agent.llm.litellm.completion", return_value=stream):
            for text in adapter.stream([ConversationMessage("user", "x")], cancel_event=cancel):
                received.append(text)
                cancel.set()

        assert received == ["a"]
        stream.close.assert_called_once()

    def test_falls_back_to_completion(self, adapter):
        calls = []

        def fake_completion(**kwargs):
            calls.append(kwargs)
            if kwargs.get("stream"):
                raise RuntimeError("streaming not supported")
            return _response("whole reply")

        with patch("zerog_agent.llm.litellm.completion", side_effect=fake_completion):
            out = list(adapter.stream([ConversationMessage("user", "x")]))

        assert out == ["whole reply"]
        assert "stream" not in calls[1]

    def test_interrupted_stream_is_connection_error(self, adapter):
        def broken():
            yield _chunk("a")
            raise RuntimeError("socket closed")

        with patch("zerog_agent.llm.litellm.completion", return_value=broken()):
            gen = adapter.stream([ConversationMessage("user", "x")])
            assert next(gen) == "a"
            with pytest.raises(ConnectionError, match="Stream interrupted"):
                next(gen)


class TestErrors:

    def test_auth_error(self, adapter):
        error = litellm.exceptions.AuthenticationError(
            message="bad key", llm_provider="openai", model="openai/test")
        with patch("zerog_agent.llm.litellm.completion", side_effect=error):
            with pytest.raises(ConnectionError, match="Auth failed"):
                adapter.complete([ConversationMessage("user", "x")])

    def test_generic_error(self, adapter):
        with patch("zerog_agent.llm.litellm.completion", side_effect=ValueError("nope")):
            with pytest.raises(ConnectionError, match="AI Service Error: ValueError: nope"):
                adapter.complete([ConversationMessage("user", "x")])
