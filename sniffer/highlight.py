"""
Filter rules and cross-representation highlighting.

A filter pattern is classified as a bit sequence, a hex byte sequence (with
'*' byte wildcards) or literal text. Matches found in that native
representation are projected onto byte positions and expanded back out to
the other two representations, so a rule lights up the same bytes in the
bits, hex and text views at once.

Everything here returns plain (start, end, color) spans; painting them is
the renderer's job.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from sniffer.codec import hex_tokens

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^[0-9A-Fa-f]{6}$")
_BITS_RE = re.compile(r"^[01]+$")
_HEX_RE = re.compile(r"^(?:[0-9A-F]{2}|\*)+$")
_HEX_PAIR_OR_WILDCARD = re.compile(r"[0-9A-F]{2}|\*")

# Regex fragment for one wildcard byte in the stripped hex string
WILDCARD_BYTE = "[0-9A-F]{2}"
BIT_WILDCARD = "[01]*?"


def parse_color(color: str) -> Tuple[int, int, int]:
    """
    Parse a "#RRGGBB" (or "0xRRGGBB") colour string

    Raises:
        ValueError: if the string is not a six digit hex colour
    """
    value = (color or "").strip()
    if value.startswith("#"):
        value = value[1:]
    elif value.lower().startswith("0x"):
        value = value[2:]

    if not _COLOR_RE.match(value):
        raise ValueError(f"Invalid colour: {color!r}")

    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


@dataclass(frozen=True)
class FilterRule:
    """Pattern plus display colour used to highlight trames"""
    pattern: str
    color: str = "#FFFF00"
    name: Optional[str] = None

    def __post_init__(self):
        parse_color(self.color)

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return parse_color(self.color)

    @property
    def kind(self) -> "PatternKind":
        return classify(self.pattern)


class PatternKind(Enum):
    """Representation a filter pattern is matched against"""
    BITS = "bits"
    HEX = "hex"
    TEXT = "text"


def classify(pattern: str) -> PatternKind:
    """
    Infer the kind of a filter pattern

    Whitespace and '*' are ignored for the bit test; a hex pattern is made
    of digit pairs with '*' standing for whole bytes. Anything else is text.
    """
    compact = re.sub(r"\s+", "", pattern or "").upper()
    cleaned = compact.replace("*", "")

    if _BITS_RE.match(cleaned):
        return PatternKind.BITS
    if cleaned and _HEX_RE.match(compact):
        return PatternKind.HEX
    return PatternKind.TEXT


def _compile_hex(pattern: str) -> Optional["re.Pattern"]:
    compact = re.sub(r"\s+", "", pattern).upper()
    if not compact or not _HEX_RE.match(compact):
        return None

    parts = []
    for piece in _HEX_PAIR_OR_WILDCARD.findall(compact):
        parts.append(WILDCARD_BYTE if piece == "*" else re.escape(piece))
    return re.compile("".join(parts))


def find_matches(haystack: str, pattern: str, kind: PatternKind) -> List[Tuple[int, int]]:
    """
    Find non-overlapping matches of pattern in one representation

    Args:
        haystack: The bits string, the separator-free hex string or the text
        pattern: Filter pattern as typed by the user
        kind: Representation the haystack belongs to

    Returns:
        Half-open (start, end) ranges in the haystack's own units. Hex
        matches only start on byte boundaries. Invalid or empty patterns
        (including ones made only of whitespace or '*') give an empty list.
    """
    if not haystack or not pattern or not re.sub(r"[\s*]+", "", pattern):
        return []

    if kind == PatternKind.BITS:
        # '*' stands for the shortest run of bits (possibly none) that completes the match
        parts = re.sub(r"\s+", "", pattern).split("*")
        regex = BIT_WILDCARD.join(re.escape(part) for part in parts)
        return [(m.start(), m.end()) for m in re.finditer(regex, haystack)]

    if kind == PatternKind.HEX:
        compiled = _compile_hex(pattern)
        if compiled is None:
            return []
        text = haystack.upper()
        ranges = []
        pos = 0
        while pos < len(text):
            m = compiled.match(text, pos)
            if m and m.end() > m.start():
                ranges.append((m.start(), m.end()))
                pos = m.end()
            else:
                pos += 2
        return ranges

    return [(m.start(), m.end())
            for m in re.finditer(re.escape(pattern), haystack, re.IGNORECASE)]


class TextLayout:
    """
    Mapping between text characters and the byte positions they decode

    Built from the tokenizer output: a dictionary label of any length maps
    to the whole byte run it replaced, so highlights snap to token edges.
    """

    def __init__(self, tokens: Sequence):
        self.tokens = []
        char = 0
        for token in tokens:
            length = len(token.text)
            self.tokens.append((char, char + length, token.byte_start, token.byte_start + token.byte_count))
            char += length
        self.text_length = char

    @classmethod
    def for_frame(cls, frame) -> Optional["TextLayout"]:
        """Layout for a frame, or None when it has none or it disagrees with the text"""
        tokens = getattr(frame, "layout", None)
        if not tokens:
            return None
        layout = cls(tokens)
        if layout.text_length != len(frame.text):
            logger.debug("Token layout does not match frame text, using per-byte mapping")
            return None
        return layout

    def chars_to_bytes(self, start: int, end: int) -> Optional[Tuple[int, int]]:
        hits = [(b0, b1) for c0, c1, b0, b1 in self.tokens
                if c0 < end and start < c1 and b1 > b0]
        if not hits:
            return None
        return min(b0 for b0, _ in hits), max(b1 for _, b1 in hits) - 1

    def bytes_to_chars(self, first: int, last: int) -> Optional[Tuple[int, int]]:
        hits = [(c0, c1) for c0, c1, b0, b1 in self.tokens
                if b0 <= last and first < b1 and c1 > c0]
        if not hits:
            return None
        return min(c0 for c0, _ in hits), max(c1 for _, c1 in hits)


def project_to_byte_range(start: int, end: int, kind: PatternKind,
                          layout: Optional[TextLayout] = None) -> Optional[Tuple[int, int]]:
    """
    Project a native match range onto byte positions

    Args:
        start: Range start in native units
        end: Range end (exclusive) in native units
        kind: Units of the range
        layout: Optional text layout used for TEXT ranges

    Returns:
        (start_byte, end_byte) with end_byte inclusive, or None for an empty
        range or text that covers no byte
    """
    if end <= start:
        return None

    if kind == PatternKind.BITS:
        return start // 8, (end - 1) // 8
    if kind == PatternKind.HEX:
        return start // 2, (end - 1) // 2
    if layout is not None:
        return layout.chars_to_bytes(start, end)
    return start, end - 1


@dataclass(frozen=True)
class Span:
    start: int
    end: int
    color: str


@dataclass
class Offsets:
    """Running length of each representation buffer"""
    bits: int = 0
    hex: int = 0
    text: int = 0


@dataclass
class FrameHighlights:
    """Spans to paint in each representation buffer"""
    bits: List[Span] = field(default_factory=list)
    hex: List[Span] = field(default_factory=list)
    text: List[Span] = field(default_factory=list)

    def extend(self, other: "FrameHighlights"):
        self.bits.extend(other.bits)
        self.hex.extend(other.hex)
        self.text.extend(other.text)

    def is_empty(self) -> bool:
        return not (self.bits or self.hex or self.text)


def highlight_spans_for_frame(frame, filters: Sequence[FilterRule],
                              offsets: Optional[Offsets] = None) -> FrameHighlights:
    """
    Compute highlight spans for one frame

    Each rule is matched in its own representation; the matching span is
    reported as-is there and widened to whole bytes in the other two.

    Args:
        frame: FrameEntry (bits, hex, text and optional token layout)
        filters: Active filter rules
        offsets: Where this frame starts in each display buffer

    Returns:
        FrameHighlights with absolute buffer positions
    """
    offsets = offsets or Offsets()
    result = FrameHighlights()
    if not filters:
        return result

    tokens = hex_tokens(frame.hex)
    token_starts = []
    position = 0
    for token in tokens:
        token_starts.append(position)
        position += len(token) + 1

    stripped_hex = "".join(tokens).upper()
    layout = TextLayout.for_frame(frame)
    haystacks = {
        PatternKind.BITS: frame.bits,
        PatternKind.HEX: stripped_hex,
        PatternKind.TEXT: frame.text,
    }

    for rule in filters:
        kind = classify(rule.pattern)
        for start, end in find_matches(haystacks[kind], rule.pattern, kind):
            if kind == PatternKind.BITS:
                result.bits.append(Span(offsets.bits + start, offsets.bits + end, rule.color))
            elif kind == PatternKind.TEXT:
                result.text.append(Span(offsets.text + start, offsets.text + end, rule.color))

            byte_range = project_to_byte_range(start, end, kind, layout)
            if byte_range is None or not tokens:
                continue
            first, last = byte_range
            last = min(last, len(tokens) - 1)
            if first > last:
                continue

            if kind != PatternKind.BITS and first * 8 < len(frame.bits):
                bit_end = min(last * 8 + 8, len(frame.bits))
                result.bits.append(Span(offsets.bits + first * 8, offsets.bits + bit_end, rule.color))

            hex_end = token_starts[last] + len(tokens[last])
            result.hex.append(Span(offsets.hex + token_starts[first], offsets.hex + hex_end, rule.color))

            if kind != PatternKind.TEXT:
                if layout is not None:
                    chars = layout.bytes_to_chars(first, last)
                else:
                    chars = (first, min(last + 1, len(frame.text))) if first < len(frame.text) else None
                if chars is not None and chars[1] > chars[0]:
                    result.text.append(Span(offsets.text + chars[0], offsets.text + chars[1], rule.color))

    return result


def frame_matches(frame, filters: Optional[Sequence[FilterRule]]) -> bool:
    """True when any rule matches the frame (or when filters is None)"""
    if filters is None:
        return True
    stripped_hex = "".join(hex_tokens(frame.hex))
    for rule in filters:
        kind = classify(rule.pattern)
        haystack = {
            PatternKind.BITS: frame.bits,
            PatternKind.HEX: stripped_hex,
            PatternKind.TEXT: frame.text,
        }[kind]
        if find_matches(haystack, rule.pattern, kind):
            return True
    return False


class FrameDisplay:
    """
    Three line-per-frame display buffers with their highlight spans

    Frames are appended one line each to the bits, hex and text buffers.
    The running offsets are advanced once per appended frame so spans are
    absolute positions in the concatenated buffers.
    """

    def __init__(self, filters: Optional[Sequence[FilterRule]] = None, only_matching: bool = False):
        self.filters: List[FilterRule] = list(filters or [])
        self.only_matching = only_matching
        self.frames = []
        self.clear()

    def clear(self):
        """Empty the buffers; the frame list is kept for refresh()"""
        self._bits: List[str] = []
        self._hex: List[str] = []
        self._text: List[str] = []
        self.offsets = Offsets()
        self.line_offsets: List[Offsets] = []
        self.shown = []
        self.highlights = FrameHighlights()

    def reset(self):
        """Forget all frames"""
        self.frames = []
        self.clear()

    def set_filters(self, filters: Sequence[FilterRule]):
        self.filters = list(filters or [])
        self.refresh()

    def append(self, frame) -> Optional[FrameHighlights]:
        """
        Add a frame to the display

        Returns:
            The spans added for this frame, or None when the frame is hidden
            by only_matching
        """
        self.frames.append(frame)
        return self._show(frame)

    def refresh(self):
        """Rebuild buffers and spans from the stored frames"""
        frames = self.frames
        self.clear()
        for frame in frames:
            self._show(frame)

    def _show(self, frame) -> Optional[FrameHighlights]:
        if self.only_matching and self.filters and not frame_matches(frame, self.filters):
            return None

        start = Offsets(self.offsets.bits, self.offsets.hex, self.offsets.text)
        spans = highlight_spans_for_frame(frame, self.filters, start)

        self._bits.append(frame.bits + "\n")
        self._hex.append(frame.hex + "\n")
        self._text.append(frame.text + "\n")
        self.offsets.bits += len(frame.bits) + 1
        self.offsets.hex += len(frame.hex) + 1
        self.offsets.text += len(frame.text) + 1

        self.line_offsets.append(start)
        self.shown.append(frame)
        self.highlights.extend(spans)
        return spans

    def line_spans(self, index: int, color: str = "#ADD8E6") -> FrameHighlights:
        """Spans covering one displayed frame's whole line in all three buffers"""
        start = self.line_offsets[index]
        frame = self.shown[index]
        return FrameHighlights(
            bits=[Span(start.bits, start.bits + len(frame.bits), color)],
            hex=[Span(start.hex, start.hex + len(frame.hex), color)],
            text=[Span(start.text, start.text + len(frame.text), color)],
        )

    @property
    def bits_text(self) -> str:
        return "".join(self._bits)

    @property
    def hex_text(self) -> str:
        return "".join(self._hex)

    @property
    def decoded_text(self) -> str:
        return "".join(self._text)
