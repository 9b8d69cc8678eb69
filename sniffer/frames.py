"""
Trame processing service.
Builds the (bits, hex, text) triple for each received frame, filters frame
lists by rules and re-translates frames when the dictionary changes.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from sniffer.codec import bits_to_hex
from sniffer.dictionary import DecodedToken, DictionaryTokenizer
from sniffer.highlight import FilterRule, frame_matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameEntry:
    """One captured trame in its three representations"""
    bits: str
    hex: str
    text: str
    # Tokenizer output; None for frames loaded back from the capture log
    layout: Optional[Tuple[DecodedToken, ...]] = field(default=None, compare=False, repr=False)

    @property
    def byte_count(self) -> int:
        return len(self.hex.split())

    def to_dict(self) -> dict:
        return {"bits": self.bits, "hex": self.hex, "text": self.text}


class FrameProcessor:
    """Converts raw bit frames to FrameEntry records and keeps them in the capture log"""

    def __init__(self, tokenizer: Optional[DictionaryTokenizer] = None, database=None):
        """
        Args:
            tokenizer: Dictionary tokenizer used for the text view
            database: Optional FrameDatabase used as capture log
        """
        self.tokenizer = tokenizer or DictionaryTokenizer()
        self.database = database

    def process_bits(self, bits: str) -> FrameEntry:
        """Build the bits/hex/text triple for a frame"""
        hex_line = bits_to_hex(bits)
        tokens = tuple(self.tokenizer.tokenize(hex_line))
        text = "".join(token.text for token in tokens)
        return FrameEntry(bits, hex_line, text, tokens)

    def save(self, entry: FrameEntry):
        """Write a frame to the capture log; failures are logged, not raised"""
        if self.database is None:
            return
        try:
            self.database.insert_frame(entry.bits, entry.hex, entry.text)
        except Exception as e:
            logger.error(f"Error saving frame: {e}")

    def load_all(self) -> List[FrameEntry]:
        """Load every frame from the capture log"""
        if self.database is None:
            return []
        return [FrameEntry(bits, hex_line, text)
                for bits, hex_line, text in self.database.load_frames()]

    def matches_filter(self, entry: FrameEntry, filters: Optional[Sequence[FilterRule]]) -> bool:
        return frame_matches(entry, filters)

    def filter_frames(self, source: Sequence[FrameEntry],
                      filters: Optional[Sequence[FilterRule]]) -> List[FrameEntry]:
        """Frames matching at least one rule; all frames when there are no rules"""
        if not filters:
            return list(source)
        return [entry for entry in source if frame_matches(entry, filters)]

    def retranslate(self, frames: Sequence[FrameEntry]) -> List[FrameEntry]:
        """
        Re-decode frames after a dictionary change

        The capture log text is updated as well when a database is attached.
        """
        updated = []
        for old in frames:
            tokens = tuple(self.tokenizer.tokenize(old.hex))
            text = "".join(token.text for token in tokens)
            updated.append(FrameEntry(old.bits, old.hex, text, tokens))
            if self.database is not None and text != old.text:
                try:
                    self.database.update_frame_text(old.hex, text)
                except Exception as e:
                    logger.error(f"Error updating frame text: {e}")
        return updated
