"""Incremental segment parser for streamed model output."""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional

from .errors import PayloadParseError
from .extractor import parse_action_payload
from .logger import get_logger
from .segments import SEGMENT_GRAMMAR, Segment, SegmentKind, held_back_length, kind_for_tag

_log = get_logger(__name__)

__all__ = ["ParserState", "StreamSegmentParser"]


class ParserState(Enum):
    IDLE = "idle"
    REASONING = "reasoning"
    ACTION = "action"
    MESSAGE = "message"


_STATE_FOR_KIND = {
    SegmentKind.REASONING: ParserState.REASONING,
    SegmentKind.ACTION: ParserState.ACTION,
    SegmentKind.MESSAGE: ParserState.MESSAGE,
}


class StreamSegmentParser:
    """Turn an append-only stream of text fragments into closed segments.

    One instance handles one model response. ``on_increment(kind, text)`` is
    called with content as soon as it is known not to be part of an end
    marker; ``on_segment(segment)`` is called when a segment closes. Action
    payloads are parsed only at close time, so callers never see partial
    arguments.
    """

    def __init__(
        self,
        on_segment: Optional[Callable[[Segment], None]] = None,
        on_increment: Optional[Callable[[SegmentKind, str], None]] = None,
    ):
        self._on_segment = on_segment
        self._on_increment = on_increment
        self.reset()

    @property
    def state(self) -> ParserState:
        if self._kind is None:
            return ParserState.IDLE
        return _STATE_FOR_KIND[self._kind]

    @property
    def segments(self) -> List[Segment]:
        """Segments closed so far, in order."""
        return list(self._segments)

    def reset(self) -> None:
        self._kind: Optional[SegmentKind] = None
        self._buffer = ""
        self._content: List[str] = []
        self._segments: List[Segment] = []

    def feed(self, fragment: str) -> None:
        if not fragment:
            return
        self._buffer += fragment
        self._drain()

    def flush(self) -> None:
        """Close whatever is still open; the stream has ended."""
        if self._kind is not None:
            self._append(self._buffer)
            self._buffer = ""
            self._close()
        else:
            # A half-read start tag at end of stream is noise.
            self._buffer = ""

    # ── Internals ──────────────────────────────────────

    def _drain(self) -> None:
        while self._buffer:
            if self._kind is None:
                if not self._scan_for_start():
                    return
            elif not self._scan_for_end():
                return

    def _scan_for_start(self) -> bool:
        """Consume noise and at most one tag. False means more input is needed."""
        open_idx = self._buffer.find("<")
        if open_idx == -1:
            self._buffer = ""
            return False
        self._buffer = self._buffer[open_idx:]
        close_idx = self._buffer.find(">")
        if close_idx == -1:
            return False
        tag = self._buffer[1:close_idx]
        inner_open = tag.rfind("<")
        if inner_open != -1:
            # "a < b <message>": the real tag starts at the last "<".
            self._buffer = self._buffer[inner_open + 1:]
            return True
        self._buffer = self._buffer[close_idx + 1:]
        kind = kind_for_tag(tag)
        if kind is not None:
            self._kind = kind
            self._content = []
        return True

    def _scan_for_end(self) -> bool:
        """Consume content up to the end marker. False means more input is needed."""
        marker = SEGMENT_GRAMMAR[self._kind].end
        end_idx = self._buffer.find(marker)
        if end_idx == -1:
            hold = held_back_length(self._buffer, marker)
            split = len(self._buffer) - hold
            self._append(self._buffer[:split])
            self._buffer = self._buffer[split:]
            return False
        self._append(self._buffer[:end_idx])
        self._buffer = self._buffer[end_idx + len(marker):]
        self._close()
        return True

    def _append(self, text: str) -> None:
        if not text:
            return
        self._content.append(text)
        if self._on_increment is not None:
            self._on_increment(self._kind, text)

    def _close(self) -> None:
        kind = self._kind
        content = "".join(self._content)
        self._kind = None
        self._content = []

        if kind is SegmentKind.ACTION:
            try:
                segment = Segment(kind, content, action=parse_action_payload(content))
            except PayloadParseError as e:
                _log.warning("Tool call segment could not be parsed: %s", e)
                segment = Segment(kind, content, error=str(e))
        else:
            segment = Segment(kind, content)

        self._segments.append(segment)
        if self._on_segment is not None:
            self._on_segment(segment)
