"""Tests for the tag grammar and the incremental segment parser."""

import pytest

from zerog_agent.segments import (
    SEGMENT_GRAMMAR,
    SegmentKind,
    held_back_length,
    kind_for_tag,
)
from zerog_agent.stream_parser import ParserState, StreamSegmentParser


REPLY = (
    "noise before <thinking>I should read the file first.</thinking>\n"
    '<tool_call>{"name": "read_file", "arguments": {"file_path": "src/a.py"}}</tool_call>\n'
    "<message>Reading a.py; compare a < b later.</message> trailing noise"
)


def _parse(fragments):
    parser = StreamSegmentParser()
    for fragment in fragments:
        parser.feed(fragment)
    parser.flush()
    return [(s.kind, s.content) for s in parser.segments]


class TestGrammar:
    """Tag vocabulary and the withholding primitive."""

    def test_kinds_map_to_tags(self):
        assert SEGMENT_GRAMMAR[SegmentKind.REASONING].end == "</thinking>"
        assert SEGMENT_GRAMMAR[SegmentKind.ACTION].start == "<tool_call>"
        assert SEGMENT_GRAMMAR[SegmentKind.MESSAGE].end == "</message>"

    def test_kind_for_tag_trims(self):
        assert kind_for_tag(" thinking ") is SegmentKind.REASONING
        assert kind_for_tag("tool_call") is SegmentKind.ACTION
        assert kind_for_tag("plan") is None
        assert kind_for_tag("/message") is None

    @pytest.mark.parametrize("text,expected", [
        ("hello", 0),
        ("hello<", 1),
        ("hello</mes", 5),
        ("hello</message", 9),
        ("", 0),
        ("</message>", 0),  # a complete marker is not a proper prefix
        ("a</x", 0),
    ])
    def test_held_back_length(self, text, expected):
        assert held_back_length(text, "</message>") == expected


class TestParserBasics:

    def test_single_fragment(self):
        segments = _parse([REPLY])
        assert segments == [
            (SegmentKind.REASONING, "I should read the file first."),
            (SegmentKind.ACTION, '{"name": "read_file", "arguments": {"file_path": "src/a.py"}}'),
            (SegmentKind.MESSAGE, "Reading a.py; compare a < b later."),
        ]

    def test_action_segment_carries_parsed_action(self):
        parser = StreamSegmentParser()
        parser.feed(REPLY)
        parser.flush()
        action_segment = parser.segments[1]
        assert action_segment.action is not None
        assert action_segment.action.name == "read_file"
        assert action_segment.action.arguments["file_path"] == "src/a.py"
        assert action_segment.error is None

    def test_unknown_tags_are_ignored(self):
        assert _parse(["<b>bold</b><message>hi</message>"]) == [(SegmentKind.MESSAGE, "hi")]

    def test_text_without_tags_is_dropped(self):
        parser = StreamSegmentParser()
        parser.feed("just prose, no tags")
        assert parser.state is ParserState.IDLE
        parser.flush()
        assert parser.segments == []

    def test_state_tracks_open_segment(self):
        parser = StreamSegmentParser()
        parser.feed("<thinking>hmm")
        assert parser.state is ParserState.REASONING
        parser.feed("</thinking><tool_call>{")
        assert parser.state is ParserState.ACTION
        parser.feed("}</tool_call>")
        assert parser.state is ParserState.IDLE

    def test_stray_lt_before_tag(self):
        assert _parse(["x < y <message>ok</message>"]) == [(SegmentKind.MESSAGE, "ok")]

    def test_reset_clears_everything(self):
        parser = StreamSegmentParser()
        parser.feed("<message>half")
        parser.reset()
        assert parser.state is ParserState.IDLE
        parser.feed("<message>new</message>")
        assert [s.content for s in parser.segments] == ["new"]

    def test_flush_when_idle_emits_nothing(self):
        seen = []
        parser = StreamSegmentParser(on_segment=seen.append)
        parser.feed("<messa")
        parser.flush()
        assert seen == []


class TestIncrements:

    def test_end_marker_prefix_is_withheld(self):
        increments = []
        parser = StreamSegmentParser(on_increment=lambda kind, text: increments.append(text))
        parser.feed("<message>hello</mes")
        assert "".join(increments) == "hello"
        parser.feed("sage>")
        assert "".join(increments) == "hello"
        assert parser.segments[0].content == "hello"

    def test_withheld_text_released_when_not_a_marker(self):
        increments = []
        parser = StreamSegmentParser(on_increment=lambda kind, text: increments.append(text))
        parser.feed("<message>a </")
        assert "".join(increments) == "a "
        parser.feed("b>")
        assert "".join(increments) == "a </b>"

    def test_flush_releases_withheld_text(self):
        seen = []
        parser = StreamSegmentParser(on_segment=seen.append)
        parser.feed("<message>cut off </mess")
        parser.flush()
        assert [(s.kind, s.content) for s in seen] == [(SegmentKind.MESSAGE, "cut off </mess")]


class TestSplitBoundaryInvariance:
    """Any split of the same reply yields the same segments."""

    def test_every_two_way_split(self):
        expected = _parse([REPLY])
        for i in range(len(REPLY) + 1):
            assert _parse([REPLY[:i], REPLY[i:]]) == expected, f"split at {i}"

    def test_character_by_character(self):
        assert _parse(list(REPLY)) == _parse([REPLY])

    def test_three_way_splits(self):
        text = "<message>a</message><thinking>b</thinking>"
        expected = _parse([text])
        for i in range(len(text) + 1):
            for j in range(i, len(text) + 1):
                assert _parse([text[:i], text[i:j], text[j:]]) == expected


class TestMalformedAction:

    def test_truncated_json_closes_without_action(self):
        parser = StreamSegmentParser()
        parser.feed('<tool_call>{"name": "write_file", "arguments": {"file_path": "a.t')
        parser.flush()
        (segment,) = parser.segments
        assert segment.kind is SegmentKind.ACTION
        assert segment.action is None
        assert "Invalid action payload" in segment.error

    def test_missing_arguments(self):
        parser = StreamSegmentParser()
        parser.feed('<tool_call>{"name": "read_file"}</tool_call>')
        assert parser.segments[0].action is None
        assert parser.state is ParserState.IDLE
