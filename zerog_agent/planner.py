"""Planning step: turn a request into a list of PlanTask."""

import json
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union

from .errors import PayloadParseError
from .extractor import extract_plan, parse_plan_payload
from .logger import get_logger
from .models import ContextItem, ConversationMessage, PlanTask, plan_to_json
from .prompts import process_slash_command

_log = get_logger(__name__)


class CompletionTransport(Protocol):
    def complete(self, messages: Sequence[ConversationMessage],
                 context_items: Optional[List[ContextItem]], mode: str) -> str: ...


class Planner:
    """Sends one planner-mode request and reads the plan out of the reply."""

    def __init__(self, transport: CompletionTransport):
        self._transport = transport
        self.last_reply = ""

    def create_plan(self, request: str,
                    context_items: Optional[List[ContextItem]] = None) -> Optional[List[PlanTask]]:
        processed, _ = process_slash_command(request)
        self.last_reply = self._transport.complete(
            [ConversationMessage("user", processed)], context_items, "planner")
        plan = extract_plan(self.last_reply)
        if plan is None:
            _log.warning("Planner reply carried no usable plan")
        else:
            _log.info("Planner produced %d tasks", len(plan))
        return plan


def save_plan(plan: List[PlanTask], path: Union[str, Path]) -> None:
    Path(path).write_text(json.dumps(plan_to_json(plan), indent=2) + "\n", encoding="utf-8")


def load_plan(path: Union[str, Path]) -> List[PlanTask]:
    """Read a plan file written by ``save_plan``. Raises PayloadParseError on bad content."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise PayloadParseError("plan", f"cannot read {path}: {e}")
    return parse_plan_payload(text)
