"""Agent loop: drives a task plan through request, approval and tool turns.

Per task the loop keeps its own conversation history. Each turn streams one
model reply, acts on the first tool call in it (if any) after an explicit
approval, and feeds the tool result back as the next user message. A reply
without a tool call finishes the task.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, List, Optional, Protocol, Sequence

from .approval import ApprovalChannel
from .extractor import extract_first_action
from .logger import get_logger
from .models import (
    Action,
    ActionResult,
    ContextItem,
    ConversationMessage,
    PlanTask,
    TaskStatus,
)
from .prompts import REJECTED_TOOL_RESULT, build_task_prompt, tool_result_message
from .segments import Segment, SegmentKind
from .stream_parser import StreamSegmentParser
from .tools.executor import ToolExecutor

_log = get_logger(__name__)

__all__ = [
    "AgentState",
    "EventType",
    "AgentEvent",
    "AgentLoop",
    "Transport",
    "truncate_output",
    "MAX_TOOL_TURNS",
    "MAX_TOOL_OUTPUT_CHARS",
]

MAX_TOOL_TURNS = 20
MAX_TOOL_OUTPUT_CHARS = 10240
TRUNCATION_MARKER = "\n...(truncated)"


class AgentState(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    WAITING_FOR_TOOL = "waiting_for_tool"
    EXECUTING = "executing"


class EventType(str, Enum):
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    LOOP_FINISHED = "loop_finished"
    STREAM_CHUNK = "stream_chunk"
    STREAM_DONE = "stream_done"
    WAITING_FOR_TOOL = "waiting_for_tool"
    TOOL_EXECUTED = "tool_executed"
    STATE_CHANGED = "state_changed"


@dataclass(frozen=True)
class AgentEvent:
    type: EventType
    task: Optional[PlanTask] = None
    error: Optional[str] = None
    content: Optional[str] = None
    action: Optional[Action] = None
    result: Optional[ActionResult] = None
    state: Optional[AgentState] = None


class Transport(Protocol):
    def stream(self, messages: Sequence[ConversationMessage],
               context_items: Optional[List[ContextItem]], mode: str,
               cancel_event: Optional[threading.Event]) -> Iterator[str]: ...


def truncate_output(output: str, limit: int = MAX_TOOL_OUTPUT_CHARS) -> str:
    """Cap tool output fed back to the model at ``limit`` characters plus a marker."""
    if len(output) <= limit:
        return output
    return output[:limit] + TRUNCATION_MARKER


class AgentLoop:
    """Runs a plan one task at a time.

    ``approve()``, ``reject()`` and ``stop()`` are safe to call from any
    thread, including from inside ``on_event``. The plan list passed to
    ``run()`` is updated in place; ``on_plan_update`` is called after every
    status change.
    """

    def __init__(
        self,
        transport: Transport,
        executor: ToolExecutor,
        on_event: Optional[Callable[[AgentEvent], None]] = None,
        max_iterations: int = 5,
        max_tool_turns: int = MAX_TOOL_TURNS,
        get_context_items: Optional[Callable[[], List[ContextItem]]] = None,
        on_plan_update: Optional[Callable[[List[PlanTask]], None]] = None,
        on_segment: Optional[Callable[[Segment], None]] = None,
        mode: str = "agent",
    ):
        self._transport = transport
        self._executor = executor
        self._on_event = on_event
        self._on_plan_update = on_plan_update
        self._on_segment = on_segment
        self._get_context_items = get_context_items
        self.max_iterations = max_iterations
        self.max_tool_turns = min(max_tool_turns, MAX_TOOL_TURNS)
        self.mode = mode

        self._lock = threading.Lock()
        self._running = False
        self._state = AgentState.IDLE
        self._approvals = ApprovalChannel()
        self._cancel = threading.Event()
        self._plan: List[PlanTask] = []
        self._history: List[ConversationMessage] = []

    # ── Public API ──

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def history(self) -> List[ConversationMessage]:
        """Conversation of the current (or last) task."""
        return list(self._history)

    def run(self, plan: List[PlanTask]) -> None:
        """Work through pending tasks until none remain, a task fails, the
        iteration budget is spent or ``stop()`` is called. Blocks the caller.
        """
        with self._lock:
            if self._running:
                _log.info("run() ignored: agent loop already running")
                return
            self._running = True
            self._cancel = threading.Event()
            self._approvals.reopen()
        self._plan = plan

        try:
            self._run_plan()
        finally:
            self._running = False
            self._state = AgentState.IDLE
        self._emit(EventType.STATE_CHANGED, state=AgentState.IDLE)

    def approve(self) -> bool:
        """Approve the pending tool call. Returns False when nothing is pending."""
        return self._approvals.approve()

    def reject(self) -> bool:
        return self._approvals.reject()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            self._cancel.set()
        self._approvals.close()

    # ── Internals ──

    def _emit(self, event_type: EventType, **fields) -> None:
        if self._on_event is not None:
            self._on_event(AgentEvent(event_type, **fields))

    def _set_state(self, state: AgentState) -> None:
        self._state = state
        self._emit(EventType.STATE_CHANGED, state=state)

    def _notify_plan(self) -> None:
        if self._on_plan_update is not None:
            self._on_plan_update(self._plan)

    def _run_plan(self) -> None:
        completed = 0
        while self._running:
            if completed >= self.max_iterations:
                _log.info("Iteration budget of %d tasks reached", self.max_iterations)
                break
            task = next((t for t in self._plan if t.status is TaskStatus.PENDING), None)
            if task is None:
                break

            task.status = TaskStatus.IN_PROGRESS
            self._notify_plan()
            self._emit(EventType.TASK_STARTED, task=task)
            _log.info("Task %s started: %s", task.id, task.description)

            try:
                settled = self._run_task(task)
            except Exception as e:
                _log.error("Task %s failed: %s", task.id, e, exc_info=True)
                task.status = TaskStatus.PENDING
                self._notify_plan()
                self._emit(EventType.TASK_FAILED, task=task, error=str(e) or type(e).__name__)
                return

            if not settled:
                # Stopped mid-task: the work is unfinished.
                task.status = TaskStatus.PENDING
                self._notify_plan()
                _log.info("Task %s interrupted by stop()", task.id)
                break

            task.status = TaskStatus.DONE
            self._notify_plan()
            self._emit(EventType.TASK_COMPLETED, task=task)
            completed += 1

        self._emit(EventType.LOOP_FINISHED)

    def _run_task(self, task: PlanTask) -> bool:
        """Run the turn loop for one task. Returns False when stop() cut it short.

        A stop that lands while a tool call awaits approval resolves it as a
        rejection, which settles the task like any other rejection.
        """
        context_items = self._get_context_items() if self._get_context_items else None
        self._history = [ConversationMessage("user", build_task_prompt(task, self._plan))]

        for turn in range(self.max_tool_turns):
            if not self._running:
                return False
            self._set_state(AgentState.THINKING)
            reply = self._request_reply(context_items if turn == 0 else None)
            self._history.append(ConversationMessage("assistant", reply))
            if not self._running:
                return False

            action = extract_first_action(reply)
            if action is None:
                return True

            if not self._await_approval(action):
                _log.info("Tool call %s rejected", action.name)
                self._history.append(ConversationMessage("user", REJECTED_TOOL_RESULT))
                return True

            self._set_state(AgentState.EXECUTING)
            result = self._executor.execute(action.name, action.arguments, cancel_event=self._cancel)
            self._emit(EventType.TOOL_EXECUTED, action=action, result=result)
            self._history.append(ConversationMessage(
                "user", tool_result_message(truncate_output(result.output), result.ok)))

        _log.warning("Task %s reached the %d-turn ceiling", task.id, self.max_tool_turns)
        return True

    def _request_reply(self, context_items: Optional[List[ContextItem]]) -> str:
        parts: List[str] = []
        tool_calls = 0

        def on_segment(segment: Segment) -> None:
            nonlocal tool_calls
            if segment.kind is SegmentKind.ACTION:
                tool_calls += 1
            if self._on_segment is not None:
                self._on_segment(segment)

        parser = StreamSegmentParser(on_segment=on_segment)
        fragments = self._transport.stream(list(self._history), context_items, self.mode, self._cancel)
        try:
            for fragment in fragments:
                if not self._running:
                    break
                if not fragment:
                    continue
                parts.append(fragment)
                parser.feed(fragment)
                self._emit(EventType.STREAM_CHUNK, content=fragment)
        finally:
            close = getattr(fragments, "close", None)
            if callable(close):
                close()
        parser.flush()

        reply = "".join(parts)
        if tool_calls > 1:
            _log.info("Reply carried %d tool calls; only the first is acted on", tool_calls)
        self._emit(EventType.STREAM_DONE, content=reply)
        return reply

    def _await_approval(self, action: Action) -> bool:
        # The slot exists before the request is announced, so an answer given
        # from inside the event handler is not lost.
        pending = self._approvals.open()
        self._set_state(AgentState.WAITING_FOR_TOOL)
        self._emit(EventType.WAITING_FOR_TOOL, action=action)
        return pending.wait()
