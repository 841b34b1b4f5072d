"""Diagnostic logging and the shell command transcript for zerog-agent."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

__all__ = [
    "setup_logger",
    "setup_command_log",
    "get_logger",
    "log_command",
    "log_output",
    "COMMAND_LOGGER_NAME",
]

LOG_DIR = Path("~/.zerog/logs").expanduser()
DEFAULT_LOG_FILE = LOG_DIR / "agent.log"
DEFAULT_COMMAND_LOG_FILE = LOG_DIR / "commands.log"
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
COMMAND_FORMAT = "[%(asctime)s] %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024  # 5MB
LOG_BACKUP_COUNT = 3

# Transcript of approved shell commands, kept apart from diagnostics.
COMMAND_LOGGER_NAME = "zerog_agent.console"


def setup_logger(
    name: str,
    verbose: bool = False,
    log_file: Union[str, Path, bool, None] = None,
) -> logging.Logger:
    """Set up the diagnostic logger used by the planner, agent loop and tools.

    Called once per CLI invocation with ``"zerog_agent"``; module loggers
    obtained through ``get_logger(__name__)`` inherit its handlers.

    Args:
        name: Root of the logger tree to configure.
        verbose: ``-v`` on the command line, or ``advanced.debug-mode`` in the
            config. Turns on DEBUG records such as each executed command.
        log_file: Where the rotating diagnostic log lives.
            - ``None`` or ``True``: ``~/.zerog/logs/agent.log``
            - ``False``: console only (used by tests)
            - ``str``/``Path``: an explicit path
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logger = _reset(logging.getLogger(name), level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    log_path = _resolve_log_path(log_file, DEFAULT_LOG_FILE)
    if log_path is not None:
        logger.addHandler(_rotating_handler(log_path, level, FILE_FORMAT))

    # litellm logs every request at INFO; only its warnings are useful here.
    for noisy in ("litellm", "LiteLLM", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def setup_command_log(log_file: Union[str, Path, bool, None] = None) -> logging.Logger:
    """Point the command log at ``~/.zerog/logs/commands.log`` (or ``log_file``).

    ``run_command`` writes each approved command and everything it printed
    here, so the log reads as a transcript of what the agent did to the
    project. It records at INFO regardless of ``-v``; with ``log_file=False``
    the records are dropped.
    """
    logger = _reset(logging.getLogger(COMMAND_LOGGER_NAME), logging.INFO)
    log_path = _resolve_log_path(log_file, DEFAULT_COMMAND_LOG_FILE)
    if log_path is not None:
        logger.addHandler(_rotating_handler(log_path, logging.INFO, COMMAND_FORMAT))
    else:
        logger.addHandler(logging.NullHandler())
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_command(command: str) -> None:
    """Transcript line for a shell command the user approved."""
    logging.getLogger(COMMAND_LOGGER_NAME).info("> Executing: %s", command)


def log_output(data: str) -> None:
    """Transcript line for command output, a timeout, a cancel or an exit code."""
    if data:
        logging.getLogger(COMMAND_LOGGER_NAME).info("%s", data)


def _reset(logger: logging.Logger, level: int) -> logging.Logger:
    # setup_* may run again in one process (tests, repeated CLI invocations).
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False
    return logger


def _rotating_handler(path: Path, level: int, fmt: str) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _resolve_log_path(log_file: Union[str, Path, bool, None], default: Path) -> Path | None:
    if log_file is False:
        return None
    if log_file is None or log_file is True:
        return default
    return Path(log_file).expanduser()
