import pytest

from sniffer.dictionary import DictionaryTokenizer
from sniffer.frames import FrameEntry, FrameProcessor
from sniffer.highlight import (FilterRule, FrameDisplay, Offsets, PatternKind, Span, TextLayout, classify,
                               find_matches, frame_matches, highlight_spans_for_frame, parse_color,
                               project_to_byte_range)

RED = "#FF0000"
GREEN = "#00FF00"

# 0x48 0x49 -> "HI"
HI_BITS = "0100100001001001"


@pytest.fixture
def hi_frame():
    return FrameProcessor().process_bits(HI_BITS)


def test_classify():
    assert classify("1010") == PatternKind.BITS
    assert classify("10 10*") == PatternKind.BITS
    assert classify("4A 2F") == PatternKind.HEX
    assert classify("4A2F") == PatternKind.HEX
    assert classify("4a *") == PatternKind.HEX
    assert classify("STOP") == PatternKind.TEXT
    assert classify("4A2") == PatternKind.TEXT
    assert classify("") == PatternKind.TEXT


def test_parse_color():
    assert parse_color("#FF8000") == (255, 128, 0)
    assert parse_color("0x00ff00") == (0, 255, 0)
    with pytest.raises(ValueError):
        parse_color("red")
    with pytest.raises(ValueError):
        parse_color("#FFF")


def test_filter_rule_rejects_bad_color():
    with pytest.raises(ValueError):
        FilterRule("4A", "not-a-colour")
    assert FilterRule("4A", "#010203").rgb == (1, 2, 3)
    assert FilterRule("4A").kind == PatternKind.HEX


def test_find_matches_bits_non_overlapping():
    assert find_matches(HI_BITS, "1001", PatternKind.BITS) == [(1, 5), (9, 13)]
    assert find_matches("1111", "11", PatternKind.BITS) == [(0, 2), (2, 4)]


def test_find_matches_hex_is_byte_aligned():
    assert find_matches("4849", "49", PatternKind.HEX) == [(2, 4)]
    assert find_matches("4849", "84", PatternKind.HEX) == []
    assert find_matches("4849", "48 49", PatternKind.HEX) == [(0, 4)]


def test_find_matches_hex_wildcard_and_case():
    assert find_matches("4A2F4A30", "4a *", PatternKind.HEX) == [(0, 4), (4, 8)]
    assert find_matches("4a2f", "4A2F", PatternKind.HEX) == [(0, 4)]


def test_find_matches_text_is_literal():
    assert find_matches("a.b", ".", PatternKind.TEXT) == [(1, 2)]
    assert find_matches("Stop stop", "STOP", PatternKind.TEXT) == [(0, 4), (5, 9)]


def test_find_matches_empty_inputs():
    assert find_matches("", "1", PatternKind.BITS) == []
    assert find_matches("0101", "", PatternKind.BITS) == []
    assert find_matches("4849", "ZZ", PatternKind.HEX) == []
    assert find_matches("H I", " ", PatternKind.TEXT) == []
    assert find_matches("a*b", "*", PatternKind.TEXT) == []
    assert find_matches("0101", " * ", PatternKind.BITS) == []


def test_blank_filter_matches_no_frame():
    frame = FrameEntry("010010000010000001001001", "48 20 49", "H I")
    assert not frame_matches(frame, [FilterRule(" ")])
    assert not frame_matches(frame, [FilterRule("**")])
    assert highlight_spans_for_frame(frame, [FilterRule(" ")]).is_empty()


def test_find_matches_bits_wildcard():
    assert find_matches(HI_BITS, "1*1", PatternKind.BITS) == [(1, 5), (9, 13)]
    assert find_matches(HI_BITS, "10*01", PatternKind.BITS) == [(1, 5), (9, 13)]
    assert find_matches("110011", "1 1*1", PatternKind.BITS) == [(0, 5)]
    assert find_matches("0000", "1*", PatternKind.BITS) == []


def test_project_to_byte_range():
    assert project_to_byte_range(1, 5, PatternKind.BITS) == (0, 0)
    assert project_to_byte_range(6, 10, PatternKind.BITS) == (0, 1)
    assert project_to_byte_range(2, 4, PatternKind.HEX) == (1, 1)
    assert project_to_byte_range(1, 3, PatternKind.TEXT) == (1, 2)
    assert project_to_byte_range(3, 3, PatternKind.TEXT) is None


def test_text_match_expands_to_bits_and_hex(hi_frame):
    spans = highlight_spans_for_frame(hi_frame, [FilterRule("HI", RED)])
    assert spans.text == [Span(0, 2, RED)]
    assert spans.bits == [Span(0, 16, RED)]
    assert spans.hex == [Span(0, 5, RED)]


def test_hex_match_expands_to_bits_and_text(hi_frame):
    spans = highlight_spans_for_frame(hi_frame, [FilterRule("49", GREEN)])
    assert spans.hex == [Span(3, 5, GREEN)]
    assert spans.bits == [Span(8, 16, GREEN)]
    assert spans.text == [Span(1, 2, GREEN)]


def test_bits_match_keeps_native_span(hi_frame):
    spans = highlight_spans_for_frame(hi_frame, [FilterRule("1001", RED)])
    assert spans.bits == [Span(1, 5, RED), Span(9, 13, RED)]
    assert spans.hex == [Span(0, 2, RED), Span(3, 5, RED)]
    assert spans.text == [Span(0, 1, RED), Span(1, 2, RED)]


def test_short_final_byte_bit_span_is_clamped():
    frame = FrameProcessor().process_bits("0100100001")
    assert frame.hex == "48 01"
    assert frame.text == "H."

    spans = highlight_spans_for_frame(frame, [FilterRule(".", GREEN)])
    assert spans.text == [Span(1, 2, GREEN)]
    assert spans.bits == [Span(8, 10, GREEN)]
    assert spans.hex == [Span(3, 5, GREEN)]


def test_offsets_are_added(hi_frame):
    spans = highlight_spans_for_frame(hi_frame, [FilterRule("49", GREEN)], Offsets(bits=17, hex=6, text=3))
    assert spans.bits == [Span(25, 33, GREEN)]
    assert spans.hex == [Span(9, 11, GREEN)]
    assert spans.text == [Span(4, 5, GREEN)]


def test_multi_byte_dictionary_token_alignment():
    processor = FrameProcessor(DictionaryTokenizer({"48 49": "Hello"}))
    frame = processor.process_bits(HI_BITS + "01000001")
    assert frame.text == "HelloA"

    spans = highlight_spans_for_frame(frame, [FilterRule("ell", RED)])
    assert spans.text == [Span(1, 4, RED)]
    assert spans.bits == [Span(0, 16, RED)]
    assert spans.hex == [Span(0, 5, RED)]

    spans = highlight_spans_for_frame(frame, [FilterRule("49", GREEN)])
    assert spans.text == [Span(0, 5, GREEN)]

    spans = highlight_spans_for_frame(frame, [FilterRule("41", GREEN)])
    assert spans.text == [Span(5, 6, GREEN)]


def test_frame_without_layout_uses_identity_mapping():
    frame = FrameEntry(HI_BITS, "48 49", "HI")
    assert TextLayout.for_frame(frame) is None
    spans = highlight_spans_for_frame(frame, [FilterRule("I", RED)])
    assert spans.text == [Span(1, 2, RED)]
    assert spans.hex == [Span(3, 5, RED)]


def test_no_filters_no_spans(hi_frame):
    assert highlight_spans_for_frame(hi_frame, []).is_empty()


def test_frame_matches(hi_frame):
    assert frame_matches(hi_frame, None)
    assert not frame_matches(hi_frame, [])
    assert frame_matches(hi_frame, [FilterRule("hi")])
    assert frame_matches(hi_frame, [FilterRule("STOP"), FilterRule("48")])
    assert not frame_matches(hi_frame, [FilterRule("84")])


def test_display_running_offsets():
    processor = FrameProcessor()
    first = processor.process_bits(HI_BITS)
    second = processor.process_bits("01000001")
    display = FrameDisplay([FilterRule("41", RED)])

    assert display.append(first).is_empty()
    spans = display.append(second)

    assert display.bits_text == HI_BITS + "\n01000001\n"
    assert display.hex_text == "48 49\n41\n"
    assert display.decoded_text == "HI\nA\n"
    assert spans.hex == [Span(6, 8, RED)]
    assert spans.bits == [Span(17, 25, RED)]
    assert spans.text == [Span(3, 4, RED)]
    assert display.highlights.hex == [Span(6, 8, RED)]


def test_display_only_matching_and_refresh():
    processor = FrameProcessor()
    first = processor.process_bits(HI_BITS)
    second = processor.process_bits("01000001")
    display = FrameDisplay([FilterRule("41", RED)], only_matching=True)

    assert display.append(first) is None
    display.append(second)
    assert display.hex_text == "41\n"
    assert display.highlights.hex == [Span(0, 2, RED)]

    display.set_filters([])
    assert display.hex_text == "48 49\n41\n"
    assert display.highlights.is_empty()


def test_display_line_spans():
    processor = FrameProcessor()
    display = FrameDisplay()
    display.append(processor.process_bits(HI_BITS))
    display.append(processor.process_bits("01000001"))

    line = display.line_spans(1, "#ADD8E6")
    assert line.bits == [Span(17, 25, "#ADD8E6")]
    assert line.hex == [Span(6, 8, "#ADD8E6")]
    assert line.text == [Span(3, 4, "#ADD8E6")]
