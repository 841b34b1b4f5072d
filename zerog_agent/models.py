"""Data model shared by the parser, extractor, executor and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

__all__ = [
    "TaskStatus",
    "PlanTask",
    "Action",
    "ActionResult",
    "WriteAction",
    "ConversationMessage",
    "ContextItem",
    "plan_to_json",
]


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


@dataclass
class PlanTask:
    """A single step of a plan produced by the planning call."""

    id: int
    description: str
    status: TaskStatus = TaskStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        # Wire shape uses "task" for the description.
        return {"id": self.id, "task": self.description, "status": self.status.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlanTask":
        return cls(
            id=int(data["id"]),
            description=str(data["task"]),
            status=TaskStatus(data.get("status", "pending")),
        )


@dataclass(frozen=True)
class Action:
    """A tool call requested by the model. Immutable once parsed."""

    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "arguments", MappingProxyType(dict(self.arguments)))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "arguments": dict(self.arguments)}


@dataclass(frozen=True)
class ActionResult:
    output: str
    status: str = "success"  # success | error

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, output: str) -> "ActionResult":
        return cls(output=output, status="success")

    @classmethod
    def error(cls, output: str) -> "ActionResult":
        return cls(output=output, status="error")


@dataclass(frozen=True)
class WriteAction:
    """A ``write_file`` payload collected by the batch extractor."""

    path: str
    content: str


@dataclass
class ConversationMessage:
    role: str  # user | assistant
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ContextItem:
    """A file or selection attached to the first turn of a task."""

    path: str
    content: str
    kind: str = "file"  # file | selection
    file_name: Optional[str] = None
    language_id: Optional[str] = None
    line_range: Optional[tuple] = None  # (start, end), 1-indexed


def plan_to_json(plan: List[PlanTask]) -> List[Dict[str, Any]]:
    return [task.to_dict() for task in plan]
