"""Tool executor: dict-based dispatch from action name to handler."""

import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import AgentError
from ..logger import get_logger
from ..models import ActionResult
from .file_ops import FileOps, FileOperationError
from .shell import CommandCancelledError, DEFAULT_TIMEOUT, ShellExecutor

_log = get_logger(__name__)


class _ToolEntry:
    """Single tool registration: handler + argument names + metadata."""
    __slots__ = ("handler", "required", "description", "writes")

    def __init__(self, handler: Callable[..., ActionResult], required: List[str],
                 description: str, writes: bool = False):
        self.handler = handler
        self.required = required
        self.description = description
        self.writes = writes


class ToolExecutor:
    """Execute one named action and return a normalized ``ActionResult``.

    Registry: ``read_file(file_path)``, ``write_file(file_path, content)``,
    ``run_command(command)``. ``execute`` never raises; every failure is
    reported as ``status="error"`` so the model can see it and retry.
    """

    # Models sometimes say "path" instead of "file_path".
    ARGUMENT_ALIASES = {"file_path": ("file_path", "path")}

    def __init__(self, project_root: str, blocked_commands: Optional[List[str]] = None,
                 command_timeout: int = DEFAULT_TIMEOUT, allow_terminal: bool = True,
                 restrict_to_root: bool = True):
        self.file_ops = FileOps(project_root, restrict_to_root=restrict_to_root)
        self.shell = ShellExecutor(project_root, blocked_commands, command_timeout)
        self.allow_terminal = allow_terminal
        self._tools: Dict[str, _ToolEntry] = {}
        self._register_tools()

    def _register_tools(self):
        T = _ToolEntry
        self._tools["read_file"] = T(
            handler=lambda a, _cancel: ActionResult.success(self.file_ops.read_file(a["file_path"])),
            required=["file_path"],
            description="Read a file and return its content.",
        )
        self._tools["write_file"] = T(
            handler=lambda a, _cancel: ActionResult.success(
                self.file_ops.write_file(a["file_path"], a["content"])),
            required=["file_path", "content"],
            description="Create or overwrite a file with the complete content.",
            writes=True,
        )
        self._tools["run_command"] = T(
            handler=self._handle_run_command,
            required=["command"],
            description="Run a terminal command in the project root.",
            writes=True,
        )

    def _handle_run_command(self, arguments: Mapping[str, Any],
                            cancel_event: Optional[threading.Event]) -> ActionResult:
        if not self.allow_terminal:
            return ActionResult.error("Terminal access is disabled (agent.allow-terminal).")
        outcome = self.shell.run(str(arguments["command"]), cancel_event=cancel_event)
        if outcome.ok:
            return ActionResult.success(outcome.format())
        return ActionResult.error(outcome.format())

    # ── Public API ──

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def describe(self) -> Dict[str, str]:
        return {name: entry.description for name, entry in self._tools.items()}

    def _normalize_arguments(self, arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        normalized = dict(arguments or {})
        for canonical, aliases in self.ARGUMENT_ALIASES.items():
            if canonical in normalized:
                continue
            for alias in aliases:
                if alias in normalized:
                    normalized[canonical] = normalized[alias]
                    break
        return normalized

    def execute(self, name: str, arguments: Optional[Mapping[str, Any]] = None,
                cancel_event: Optional[threading.Event] = None) -> ActionResult:
        """Dispatch an action by name. Unknown names and bad arguments become errors."""
        entry = self._tools.get(name)
        if not entry:
            _log.warning("Unknown tool requested: %s", name)
            return ActionResult.error(f"Unknown tool: {name}")

        args = self._normalize_arguments(arguments)
        missing = [key for key in entry.required if key not in args]
        if missing:
            return ActionResult.error(f"Missing argument: {', '.join(missing)}")

        _log.info("Executing %s", name)
        try:
            result = entry.handler(args, cancel_event)
        except FileOperationError as e:
            verb = "write" if entry.writes else "read"
            result = ActionResult.error(f"Failed to {verb} file: {e}")
        except (AgentError, CommandCancelledError) as e:
            result = ActionResult.error(str(e))
        except Exception as e:
            _log.exception("Tool %s crashed", name)
            result = ActionResult.error(f"{name} error: {type(e).__name__}: {e}")

        _log.debug("%s finished with status=%s (%d chars)", name, result.status, len(result.output))
        return result
