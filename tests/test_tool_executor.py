"""Tests for ToolExecutor dispatch and error normalization."""

from unittest.mock import patch

import pytest

from zerog_agent.tools import ToolExecutor


@pytest.fixture
def executor(tmp_path):
    return ToolExecutor(str(tmp_path), allow_terminal=True)


class TestDispatch:

    def test_registry(self, executor):
        assert executor.names == ["read_file", "write_file", "run_command"]
        assert executor.has_tool("write_file")
        assert not executor.has_tool("delete_file")
        assert set(executor.describe()) == {"read_file", "write_file", "run_command"}

    def test_unknown_tool(self, executor):
        result = executor.execute("delete_file", {"file_path": "a"})
        assert result.status == "error"
        assert result.output == "Unknown tool: delete_file"

    def test_missing_argument(self, executor):
        result = executor.execute("write_file", {"file_path": "a.txt"})
        assert result.status == "error"
        assert result.output == "Missing argument: content"

    def test_none_arguments(self, executor):
        result = executor.execute("read_file", None)
        assert result.output == "Missing argument: file_path"


class TestFileTools:

    def test_write_then_read(self, executor, tmp_path):
        written = executor.execute("write_file", {"file_path": "a.txt", "content": "hi"})
        assert written.ok
        assert written.output == "File written: a.txt"
        assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "hi"

        read = executor.execute("read_file", {"file_path": "a.txt"})
        assert read.ok
        assert read.output == "hi"

    def test_path_alias(self, executor, tmp_path):
        result = executor.execute("write_file", {"path": "b.txt", "content": "x"})
        assert result.ok
        assert (tmp_path / "b.txt").exists()

    def test_read_failure_is_an_error_result(self, executor):
        result = executor.execute("read_file", {"file_path": "missing.txt"})
        assert result.status == "error"
        assert result.output.startswith("Failed to read file: File not found")

    def test_write_failure_is_an_error_result(self, executor):
        result = executor.execute("write_file", {"file_path": "../escape.txt", "content": "x"})
        assert result.status == "error"
        assert result.output.startswith("Failed to write file: Access denied")


class TestRunCommand:

    def test_success(self, executor):
        result = executor.execute("run_command", {"command": "echo hello"})
        assert result.ok
        assert result.output == "hello"

    def test_failure_carries_exit_code(self, executor):
        result = executor.execute("run_command", {"command": "echo oops 1>&2; exit 4"})
        assert result.status == "error"
        assert result.output == "stderr: oops\nExit code: 4"

    def test_blocked(self, executor):
        result = executor.execute("run_command", {"command": "rm -rf /"})
        assert result.status == "error"
        assert result.output.startswith("Blocked:")

    def test_timeout(self, tmp_path):
        executor = ToolExecutor(str(tmp_path), command_timeout=1)
        result = executor.execute("run_command", {"command": "sleep 5"})
        assert result.status == "error"
        assert result.output == "Command timed out after 1s"

    def test_terminal_disabled(self, tmp_path):
        executor = ToolExecutor(str(tmp_path), allow_terminal=False)
        with patch("zerog_agent.tools.shell.subprocess.Popen") as popen:
            result = executor.execute("run_command", {"command": "echo hi"})
        assert result.status == "error"
        assert "disabled" in result.output
        popen.assert_not_called()

    def test_unexpected_exception_never_escapes(self, executor):
        with patch.object(executor.shell, "run", side_effect=RuntimeError("boom")):
            result = executor.execute("run_command", {"command": "echo hi"})
        assert result.status == "error"
        assert result.output == "run_command error: RuntimeError: boom"
