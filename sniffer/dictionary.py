"""
Dictionary tokenizer for hex trames.
Replaces known byte sequences with user-defined labels using a greedy
longest-match scan; unknown bytes fall back to ASCII or a placeholder.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Tuple, Union

from sniffer.codec import PLACEHOLDER, hex_to_ascii_char, hex_tokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DictionaryEntry:
    """User-defined hex sequence -> label mapping"""
    hex_pattern: str    # Normalized, e.g. "4A5E34"
    translation: str

    @classmethod
    def create(cls, hex_pattern: str, translation: str) -> "DictionaryEntry":
        """Build an entry from user input, normalizing the pattern"""
        return cls(normalize_pattern(hex_pattern), translation)

    @property
    def token_key(self) -> str:
        """Space-joined form used for matching (e.g. "4A 5E 34")"""
        return spaced_key(self.hex_pattern)


@dataclass(frozen=True)
class DecodedToken:
    """One piece of decoded text and the byte run it came from"""
    byte_start: int
    byte_count: int
    text: str
    from_dictionary: bool = False


Snapshot = Union[Mapping[str, str], Iterable[DictionaryEntry]]


def normalize_pattern(hex_pattern: str) -> str:
    """Strip separators and uppercase a hex pattern"""
    return re.sub(r"\s+", "", hex_pattern or "").upper()


def spaced_key(hex_pattern: str) -> str:
    """Normalize a pattern and re-split it into two-character tokens"""
    clean = normalize_pattern(hex_pattern)
    return " ".join(clean[i:i + 2] for i in range(0, len(clean), 2))


class DictionaryTokenizer:
    """
    Greedy longest-match tokenizer over hex byte tokens

    At each position the longest run of remaining tokens that appears in the
    dictionary wins; when nothing matches, exactly one token is decoded as
    ASCII (or PLACEHOLDER) and the scan advances by one.

    When two snapshot entries normalize to the same key, the first declared
    one is kept.
    """

    def __init__(self, snapshot: Snapshot = None):
        self.table: Dict[str, str] = {}
        self.max_tokens = 0
        if snapshot is not None:
            self.load(snapshot)

    def load(self, snapshot: Snapshot):
        """
        Replace the lookup table with a new dictionary snapshot

        Args:
            snapshot: Mapping of hex pattern -> translation, or an ordered
                iterable of DictionaryEntry records
        """
        items: Iterable[Tuple[str, str]]
        if isinstance(snapshot, Mapping):
            items = snapshot.items()
        else:
            items = ((entry.hex_pattern, entry.translation) for entry in snapshot)

        table: Dict[str, str] = {}
        for pattern, translation in items:
            key = spaced_key(pattern)
            if not key:
                continue
            if key in table:
                logger.debug(f"Duplicate dictionary key {key}, keeping first entry")
                continue
            table[key] = translation

        self.table = table
        self.max_tokens = max((len(key.split(" ")) for key in table), default=0)
        logger.debug(f"Loaded {len(table)} dictionary entries")

    def tokenize(self, hex_line: str) -> List[DecodedToken]:
        """
        Decode a hex line into text pieces with their byte positions

        Args:
            hex_line: Whitespace separated hex tokens (e.g. "48 45 4C")

        Returns:
            Ordered DecodedToken list covering every byte position once
        """
        tokens = [t.upper() for t in hex_tokens(hex_line)]
        if not tokens:
            # Empty input decodes like a single invalid token
            return [DecodedToken(0, 0, PLACEHOLDER)]

        result = []
        i = 0
        while i < len(tokens):
            matched = False
            longest = min(self.max_tokens, len(tokens) - i)
            for length in range(longest, 0, -1):
                candidate = " ".join(tokens[i:i + length])
                translation = self.table.get(candidate)
                if translation is not None:
                    result.append(DecodedToken(i, length, translation, True))
                    i += length
                    matched = True
                    break

            if not matched:
                result.append(DecodedToken(i, 1, hex_to_ascii_char(tokens[i])))
                i += 1

        return result

    def decode(self, hex_line: str) -> str:
        """Decode a hex line to display text"""
        return "".join(token.text for token in self.tokenize(hex_line))


def decode(hex_line: str, snapshot: Snapshot) -> str:
    """Decode hex_line with a one-off dictionary snapshot"""
    return DictionaryTokenizer(snapshot).decode(hex_line)
