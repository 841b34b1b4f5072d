"""Terminal rendering of agent events and user confirmation logic."""

from typing import List

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from .context import language_for
from .models import Action, ActionResult, PlanTask, TaskStatus
from .orchestrator import AgentEvent, EventType
from .segments import Segment, SegmentKind

__all__ = [
    "render_plan",
    "render_tool_call",
    "render_result",
    "render_error",
    "confirm_action",
    "EventRenderer",
]

ACCENT = "#7FA6D9"
DIM = "dim"
MUTED = "#8B949E"
TEXT = "#E6EDF3"
SUCCESS = "#3FB950"
WARN = "#D29922"
ERROR = "#F85149"

_STATUS_ICONS = {
    TaskStatus.DONE: f"[{SUCCESS}]✓[/{SUCCESS}]",
    TaskStatus.IN_PROGRESS: f"[{WARN}]▸[/{WARN}]",
    TaskStatus.PENDING: f"[{MUTED}]○[/{MUTED}]",
}

_TOOL_ICONS = {"read_file": "▸", "write_file": "◆", "run_command": "$"}

_RESULT_PREVIEW_LINES = 8


def render_plan(console: Console, plan: List[PlanTask]):
    table = Table(show_header=True, header_style=f"bold {ACCENT}", box=None, padding=(0, 1))
    table.add_column("", width=2)
    table.add_column("#", justify="right", style=MUTED)
    table.add_column("Task")
    for task in plan:
        table.add_row(_STATUS_ICONS[task.status], str(task.id), task.description)
    console.print(table)


def _action_detail(action: Action) -> str:
    args = action.arguments
    if action.name == "run_command":
        return str(args.get("command", ""))
    path = str(args.get("file_path", args.get("path", "")))
    if action.name == "write_file":
        n = str(args.get("content", "")).count("\n") + 1
        return f"{path} ({n} lines)"
    return path


def render_tool_call(console: Console, action: Action):
    icon = _TOOL_ICONS.get(action.name, "·")
    console.print(f"  [{ACCENT}]{icon}[/{ACCENT}] [bold]{action.name}[/bold] "
                  f"[{MUTED}]{_action_detail(action)}[/{MUTED}]", highlight=False)


def render_result(console: Console, result: ActionResult):
    lines = result.output.splitlines() or [""]
    preview = "\n".join(lines[:_RESULT_PREVIEW_LINES])
    if len(lines) > _RESULT_PREVIEW_LINES:
        preview += f"\n... ({len(lines) - _RESULT_PREVIEW_LINES} more)"
    style = SUCCESS if result.ok else ERROR
    console.print(f"     [{style}]{'✓' if result.ok else '✗'}[/{style}]", end=" ")
    console.print(preview, markup=False, highlight=False)


def render_error(console: Console, message: str):
    panel = Panel(
        f"[{ERROR}]{message}[/{ERROR}]",
        title=f"[bold {ERROR}]Error[/bold {ERROR}]",
        title_align="left",
        border_style=ERROR,
        padding=(0, 2),
    )
    console.print()
    console.print(panel)


def _show_write_preview(console: Console, action: Action):
    path = str(action.arguments.get("file_path", action.arguments.get("path", "")))
    content = str(action.arguments.get("content", ""))
    lexer = language_for(path) or "text"
    console.print(Panel(
        Syntax(content, lexer if lexer != "shellscript" else "bash", line_numbers=True,
               word_wrap=True),
        title=f"[bold {ACCENT}]{path}[/bold {ACCENT}]",
        title_align="left",
        border_style=MUTED,
    ))


def confirm_action(console: Console, action: Action) -> str:
    """Show preview and prompt user. Returns 'yes', 'always', or 'no'."""
    try:
        if action.name == "write_file":
            _show_write_preview(console, action)
        elif action.name == "run_command":
            console.print(f"  [{DIM}]$[/{DIM}] {action.arguments.get('command', '')}", highlight=False)

        ans = console.input(
            f"  [{WARN}]?[/{WARN}] "
            f"[bold {TEXT}](y)[/bold {TEXT}][{MUTED}]es[/{MUTED}] / "
            f"[bold {TEXT}](n)[/bold {TEXT}][{MUTED}]o[/{MUTED}] / "
            f"[bold {TEXT}](a)[/bold {TEXT}][{MUTED}]lways[/{MUTED}]: "
        ).strip().lower()
        if ans in ("a", "always"):
            return "always"
        if ans in ("y", "yes", ""):
            return "yes"
        return "no"
    except (KeyboardInterrupt, EOFError):
        return "no"


class EventRenderer:
    """Prints the agent event feed. Model text is shown per segment, not per chunk."""

    def __init__(self, console: Console, show_reasoning: bool = False):
        self.console = console
        self.show_reasoning = show_reasoning

    def on_segment(self, segment: Segment):
        if segment.kind is SegmentKind.REASONING:
            if self.show_reasoning and segment.content.strip():
                self.console.print(f"  [{DIM}]{segment.content.strip()}[/{DIM}]", highlight=False)
        elif segment.kind is SegmentKind.MESSAGE:
            if segment.content.strip():
                self.console.print()
                self.console.print(segment.content.strip(), markup=False, highlight=False)
        elif segment.error:
            self.console.print(f"  [{WARN}]Ignored malformed tool call: {segment.error}[/{WARN}]",
                               highlight=False)

    def on_event(self, event: AgentEvent):
        if event.type is EventType.TASK_STARTED:
            self.console.print()
            self.console.print(f"[bold {ACCENT}]Task {event.task.id}[/bold {ACCENT}] "
                               f"{event.task.description}", highlight=False)
        elif event.type is EventType.TASK_COMPLETED:
            self.console.print(f"[{SUCCESS}]✓ Task {event.task.id} done[/{SUCCESS}]")
        elif event.type is EventType.TASK_FAILED:
            render_error(self.console, f"Task {event.task.id} failed: {event.error}")
        elif event.type is EventType.WAITING_FOR_TOOL:
            render_tool_call(self.console, event.action)
        elif event.type is EventType.TOOL_EXECUTED:
            render_result(self.console, event.result)
        elif event.type is EventType.LOOP_FINISHED:
            self.console.print(f"\n[{MUTED}]Agent loop finished.[/{MUTED}]")
