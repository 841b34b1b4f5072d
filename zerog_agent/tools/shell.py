"""Shell command execution with timeout, output ceiling and safety guards."""

import os
import re
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import List, Optional

from ..errors import OutputLimitError, ShellBlockedError, ShellTimeoutError
from ..logger import get_logger, log_command, log_output

_log = get_logger(__name__)

DEFAULT_TIMEOUT = 30
MAX_OUTPUT_BYTES = 1024 * 1024  # 1MB per stream
_POLL_INTERVAL = 0.1
_READ_SIZE = 64 * 1024


class CommandCancelledError(Exception):
    pass


class CommandOutcome:
    """Captured result of one finished command."""
    __slots__ = ("stdout", "stderr", "returncode")

    def __init__(self, stdout: str, stderr: str, returncode: int):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def format(self) -> str:
        """stdout, then ``stderr:``-prefixed stderr, then the exit code on failure."""
        parts = []
        out = self.stdout.strip()
        err = self.stderr.strip()
        if out:
            parts.append(out)
        if err:
            parts.append(f"stderr: {err}")
        output = "\n".join(parts) or "(no output)"
        if not self.ok:
            output += f"\nExit code: {self.returncode}"
        return output


class ShellExecutor:
    """Run commands in the project root, refusing obviously destructive ones."""

    # High-risk commands that are refused even when the user approves them.
    DANGEROUS_PATTERNS = [
        r"\brm\b\s+-[^\s;|&]*r[^\s;|&]*f[^\s;|&]*\s+/(?:\s|$|\*)",
        r"\b(?:mkfs(?:\.[a-z0-9_+\-]+)?|fdisk|wipefs)\b",
        r"\bdd\b[^\n;|&]*\bof\s*=\s*/dev/",
        r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
        r"(?:>|>>)\s*/dev/sd[a-z]\d*",
        r"\b(?:curl|wget)\b[^\n;|&]*\|\s*(?:sh|bash|zsh)\b",
    ]

    def __init__(self, project_root: str, blocked_commands: Optional[List[str]] = None,
                 timeout: int = DEFAULT_TIMEOUT, max_output_bytes: int = MAX_OUTPUT_BYTES):
        self.project_root = Path(project_root).resolve()
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.blocked = [b for b in (blocked_commands or []) if b.strip()]
        self._dangerous_regexes = [
            re.compile(pattern, re.IGNORECASE) for pattern in self.DANGEROUS_PATTERNS
        ]

    @staticmethod
    def _canonicalize_command(command: str) -> str:
        """Normalize quoting and whitespace so trivial obfuscation still matches."""
        normalized = command.lower().replace("\\\n", " ")
        normalized = re.sub(r"[\'\"`\\]", "", normalized)
        normalized = re.sub(r"\s+", " ", normalized)
        return normalized.strip()

    def get_block_reason(self, command: str) -> Optional[str]:
        canonical = self._canonicalize_command(command)
        compact = canonical.replace(" ", "")
        for blocked in self.blocked:
            rule = self._canonicalize_command(blocked)
            if rule in canonical or rule.replace(" ", "") in compact:
                return f"matches blocked command '{blocked}'"
        for pattern in self._dangerous_regexes:
            if pattern.search(command) or pattern.search(canonical):
                return f"matches dangerous pattern '{pattern.pattern}'"
        return None

    def run(self, command: str, cancel_event: Optional[threading.Event] = None) -> CommandOutcome:
        """Run ``command`` through the shell.

        Raises:
            ShellBlockedError: the command matched a block rule.
            ShellTimeoutError: the command ran longer than ``timeout``.
            OutputLimitError: stdout or stderr exceeded ``max_output_bytes``.
            CommandCancelledError: ``cancel_event`` was set while running.
        """
        block_reason = self.get_block_reason(command)
        if block_reason:
            _log.warning("Command blocked: %s", block_reason)
            raise ShellBlockedError(block_reason)

        log_command(command)
        _log.debug("Executing command: %s", command[:100])

        proc = subprocess.Popen(
            command,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=str(self.project_root),
            env={**os.environ, "TERM": "dumb"},
            start_new_session=True,
        )
        out_buf, err_buf = bytearray(), bytearray()
        overflow = threading.Event()
        readers = [
            threading.Thread(target=self._drain, args=(proc.stdout, out_buf, overflow),
                             daemon=True),
            threading.Thread(target=self._drain, args=(proc.stderr, err_buf, overflow),
                             daemon=True),
        ]
        for reader in readers:
            reader.start()

        deadline = time.monotonic() + self.timeout
        while True:
            if overflow.is_set():
                self._kill(proc, readers)
                log_output(f"Output exceeded {self.max_output_bytes} bytes")
                raise OutputLimitError(self.max_output_bytes)
            if (proc.poll() is not None and not any(r.is_alive() for r in readers)
                    and not overflow.is_set()):
                break
            if cancel_event is not None and cancel_event.is_set():
                self._kill(proc, readers)
                log_output("Cancelled")
                raise CommandCancelledError("Command cancelled")
            if time.monotonic() >= deadline:
                self._kill(proc, readers)
                log_output(f"Timed out after {self.timeout}s")
                raise ShellTimeoutError(self.timeout)
            overflow.wait(_POLL_INTERVAL)
        proc.stdout.close()
        proc.stderr.close()

        outcome = CommandOutcome(
            stdout=out_buf.decode("utf-8", errors="replace"),
            stderr=err_buf.decode("utf-8", errors="replace"),
            returncode=proc.returncode,
        )
        if outcome.stdout.strip():
            log_output(outcome.stdout.strip())
        if outcome.stderr.strip():
            log_output("ERROR: " + outcome.stderr.strip())
        if not outcome.ok:
            log_output(f"Exit code: {outcome.returncode}")
        return outcome

    def _drain(self, stream, sink: bytearray, overflow: threading.Event) -> None:
        """Copy ``stream`` into ``sink`` until EOF or the byte ceiling is passed."""
        while True:
            chunk = stream.read1(_READ_SIZE)
            if not chunk:
                return
            if len(sink) + len(chunk) > self.max_output_bytes:
                overflow.set()
                return
            sink.extend(chunk)

    @staticmethod
    def _kill(proc: subprocess.Popen, readers: List[threading.Thread]) -> None:
        # The shell may have children holding the pipes open; kill the group.
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (AttributeError, ProcessLookupError, PermissionError):
            proc.kill()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            _log.warning("Process %s did not exit after kill", proc.pid)
        for reader in readers:
            reader.join(timeout=1)
