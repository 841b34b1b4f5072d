"""Tag grammar for structured model output.

A model reply in agent mode is a sequence of segments, each written as
``<tag>content</tag>``. Text outside a known tag is protocol noise.

    reply    := (noise | segment)*
    segment  := "<" tag ">" content "</" tag ">"
    tag      := "thinking" | "tool_call" | "message"

Plans use their own ``<plan>...</plan>`` pair and are only read from
complete replies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .models import Action

__all__ = [
    "SegmentKind",
    "TagSpec",
    "Segment",
    "SEGMENT_GRAMMAR",
    "TOOL_CALL_TAG",
    "PLAN_TAG",
    "kind_for_tag",
    "held_back_length",
]


class SegmentKind(str, Enum):
    REASONING = "reasoning"
    ACTION = "action"
    MESSAGE = "message"


@dataclass(frozen=True)
class TagSpec:
    """Start/end marker pair for one delimited unit."""

    name: str

    @property
    def start(self) -> str:
        return f"<{self.name}>"

    @property
    def end(self) -> str:
        return f"</{self.name}>"


@dataclass(frozen=True)
class Segment:
    """A closed segment. ``action`` is set only for parsed action segments."""

    kind: SegmentKind
    content: str
    action: Optional[Action] = None
    error: Optional[str] = None


TOOL_CALL_TAG = TagSpec("tool_call")
PLAN_TAG = TagSpec("plan")

SEGMENT_GRAMMAR: Dict[SegmentKind, TagSpec] = {
    SegmentKind.REASONING: TagSpec("thinking"),
    SegmentKind.ACTION: TOOL_CALL_TAG,
    SegmentKind.MESSAGE: TagSpec("message"),
}

_KIND_BY_TAG = {spec.name: kind for kind, spec in SEGMENT_GRAMMAR.items()}


def kind_for_tag(tag_name: str) -> Optional[SegmentKind]:
    """Map the text between ``<`` and ``>`` to a segment kind, or ``None``."""
    return _KIND_BY_TAG.get(tag_name.strip())


def held_back_length(text: str, marker: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``marker``.

    That suffix may turn into ``marker`` once more input arrives, so the
    parser must not release it yet.
    """
    longest = min(len(text), len(marker) - 1)
    for size in range(longest, 0, -1):
        if text.endswith(marker[:size]):
            return size
    return 0
