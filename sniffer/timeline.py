"""
Timeline model for the waveform view.
Accumulates bits across frames and records where each frame ends.
"""
import re
from typing import Dict, List, Optional, Sequence, Tuple

from sniffer.highlight import FilterRule

_BITS_RE = re.compile(r"^[01]+$")


class Timeline:
    """
    Accumulated bit stream with frame boundaries

    Every append() records exactly one boundary (the cumulative bit count
    after the append), even for a frame with no usable bits.

    Pixel layout: bit i is drawn from bit_to_pixel(i) to bit_to_pixel(i + 1);
    the area left of `origin` holds the axis labels.
    """

    def __init__(self, bit_width: int = 20, origin: int = 40,
                 bit_duration_ms: float = 1.0, min_width: int = 600):
        self.bit_width = bit_width
        self.origin = origin
        self.bit_duration_ms = bit_duration_ms
        self.min_width = min_width
        self._bits: List[str] = []
        self._boundaries: List[int] = []

    def append(self, bits: str):
        """Append a frame's bits; characters other than '0'/'1' are skipped"""
        self._bits.extend(c for c in bits if c in "01")
        self._boundaries.append(len(self._bits))

    def clear(self):
        self._bits.clear()
        self._boundaries.clear()

    def boundary_count(self) -> int:
        return len(self._boundaries)

    def bit_count(self) -> int:
        return len(self._bits)

    @property
    def bits(self) -> str:
        return "".join(self._bits)

    @property
    def boundaries(self) -> List[int]:
        return list(self._boundaries)

    def frame_ranges(self) -> List[Tuple[int, int]]:
        """(start, end) bit range of each appended frame"""
        ranges = []
        previous = 0
        for boundary in self._boundaries:
            ranges.append((previous, boundary))
            previous = boundary
        return ranges

    # --- Rendering contract ---

    def bit_to_pixel(self, index: int) -> int:
        return self.origin + self.bit_width + index * self.bit_width

    def pixel_to_bit(self, x: int) -> Optional[int]:
        """Bit drawn at pixel x, or None outside the waveform"""
        index = (x - self.origin - self.bit_width) // self.bit_width
        if x < self.origin + self.bit_width or index >= len(self._bits):
            return None
        return index

    def boundary_pixels(self) -> List[int]:
        return [self.bit_to_pixel(boundary) for boundary in self._boundaries]

    def preferred_width(self) -> int:
        return max(self.min_width, 100 + len(self._bits) * self.bit_width)

    def time_ms(self, index: int) -> float:
        return index * self.bit_duration_ms

    def bit_colors(self, filters: Sequence[FilterRule], default: str = "#0000FF") -> List[str]:
        """
        Colour of every accumulated bit

        Bit-pattern rules are matched over the whole stream, across frame
        boundaries, without overlap; a later rule repaints earlier matches.
        Rules that are not plain bit patterns are ignored.
        """
        colors = [default] * len(self._bits)
        stream = self.bits
        for rule in filters or []:
            pattern = rule.pattern
            if not _BITS_RE.match(pattern or ""):
                continue
            i = 0
            while i <= len(stream) - len(pattern):
                if stream.startswith(pattern, i):
                    for j in range(i, i + len(pattern)):
                        colors[j] = rule.color
                    i += len(pattern)
                else:
                    i += 1
        return colors

    def snapshot(self) -> Dict[str, object]:
        """Plain data for an external renderer"""
        return {
            "bit_count": self.bit_count(),
            "boundaries": self.boundaries,
            "bit_width": self.bit_width,
            "origin": self.origin,
            "bit_duration_ms": self.bit_duration_ms,
        }
