"""Extract actions and plans from complete model replies."""

from __future__ import annotations

import json
import re
from typing import Any, List, Optional

from .errors import PayloadParseError
from .logger import get_logger
from .models import Action, PlanTask, TaskStatus, WriteAction
from .segments import PLAN_TAG, TOOL_CALL_TAG

_log = get_logger(__name__)

__all__ = [
    "extract_first_action",
    "extract_plan",
    "extract_all_write_actions",
    "parse_action_payload",
    "parse_plan_payload",
    "strip_file_path_comment",
]

# A tool call payload is a single JSON object between the markers.
_TOOL_CALL_RE = re.compile(
    re.escape(TOOL_CALL_TAG.start) + r"\s*(\{[\s\S]*?\})\s*" + re.escape(TOOL_CALL_TAG.end)
)
_PLAN_RE = re.compile(
    re.escape(PLAN_TAG.start) + r"\s*([\s\S]*?)\s*" + re.escape(PLAN_TAG.end)
)
# Models like to open file content with "// File: src/x.ts" or "# File: x.py".
_FILE_PATH_COMMENT_RE = re.compile(r"^(?:\/\/|#|--)\s*[Ff]ile:\s*.+\n")

_VALID_STATUSES = {status.value for status in TaskStatus}


def strip_file_path_comment(content: str) -> str:
    """Remove one leading file path comment line from file content."""
    return _FILE_PATH_COMMENT_RE.sub("", content, count=1)


def parse_action_payload(payload: str) -> Action:
    """Parse a ``{"name": ..., "arguments": {...}}`` payload.

    Raises:
        PayloadParseError: if the payload is not valid JSON of that shape.
    """
    try:
        data = json.loads(payload.strip())
    except json.JSONDecodeError as e:
        raise PayloadParseError("action", str(e)) from e
    if not isinstance(data, dict):
        raise PayloadParseError("action", "expected a JSON object")
    name = data.get("name")
    arguments = data.get("arguments")
    if not isinstance(name, str) or not name.strip():
        raise PayloadParseError("action", "missing string field 'name'")
    if not isinstance(arguments, dict):
        raise PayloadParseError("action", "missing object field 'arguments'")
    return Action(name=name.strip(), arguments=arguments)


def parse_plan_payload(payload: str) -> List[PlanTask]:
    """Parse a JSON array of ``{"id", "task", "status"}`` objects.

    Raises:
        PayloadParseError: if any item is malformed or ids repeat.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise PayloadParseError("plan", str(e)) from e
    if not isinstance(data, list):
        raise PayloadParseError("plan", "expected a JSON array")

    tasks: List[PlanTask] = []
    seen = set()
    for item in data:
        if not isinstance(item, dict):
            raise PayloadParseError("plan", "plan items must be objects")
        task_id = item.get("id")
        # bool is an int subclass; reject it explicitly.
        if not isinstance(task_id, int) or isinstance(task_id, bool):
            raise PayloadParseError("plan", f"invalid id: {task_id!r}")
        if task_id in seen:
            raise PayloadParseError("plan", f"duplicate id: {task_id}")
        description = item.get("task")
        if not isinstance(description, str):
            raise PayloadParseError("plan", f"task {task_id} has no description")
        status = item.get("status")
        if status not in _VALID_STATUSES:
            raise PayloadParseError("plan", f"task {task_id} has invalid status {status!r}")
        seen.add(task_id)
        tasks.append(PlanTask(id=task_id, description=description, status=TaskStatus(status)))
    return tasks


def extract_first_action(text: str) -> Optional[Action]:
    """Return the action in the first tool call unit, or ``None``.

    Only the first unit is considered. Later units in the same reply are
    ignored on purpose: one action per turn is a protocol rule the prompts
    rely on.
    """
    if not text:
        return None
    match = _TOOL_CALL_RE.search(text)
    if not match:
        return None
    try:
        return parse_action_payload(match.group(1))
    except PayloadParseError as e:
        _log.info("Discarding tool call: %s", e)
        return None


def extract_plan(text: str) -> Optional[List[PlanTask]]:
    """Return the tasks in the first plan unit, or ``None``."""
    if not text:
        return None
    match = _PLAN_RE.search(text)
    if not match:
        return None
    try:
        return parse_plan_payload(match.group(1))
    except PayloadParseError as e:
        _log.info("Discarding plan: %s", e)
        return None


def extract_all_write_actions(text: str) -> List[WriteAction]:
    """Collect every ``write_file`` tool call in ``text``, in order."""
    results: List[WriteAction] = []
    if not text:
        return results
    for match in _TOOL_CALL_RE.finditer(text):
        try:
            action = parse_action_payload(match.group(1))
        except PayloadParseError as e:
            _log.debug("Skipping tool call: %s", e)
            continue
        if action.name != "write_file":
            continue
        path = _argument(action.arguments, "file_path", "path")
        content = action.arguments.get("content")
        if not path or not isinstance(content, str) or not content:
            continue
        results.append(WriteAction(path=str(path), content=strip_file_path_comment(content)))
    return results


def _argument(arguments: Any, *names: str) -> Any:
    for name in names:
        value = arguments.get(name)
        if value:
            return value
    return None
