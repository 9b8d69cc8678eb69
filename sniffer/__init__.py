"""
Trame Sniffer
Serial frame capture, decoding and cross-view highlighting
Version: 1.0.0
"""

__version__ = "1.0.0"

from sniffer.codec import bits_to_hex, hex_to_ascii_char
from sniffer.dictionary import DictionaryEntry, DictionaryTokenizer
from sniffer.frames import FrameEntry, FrameProcessor
from sniffer.highlight import FilterRule, FrameDisplay, PatternKind, classify, highlight_spans_for_frame
from sniffer.serial_session import PortConfig, SerialSessionController, SessionConfig, SessionState
from sniffer.timeline import Timeline

__all__ = [
    "bits_to_hex",
    "hex_to_ascii_char",
    "DictionaryEntry",
    "DictionaryTokenizer",
    "FrameEntry",
    "FrameProcessor",
    "FilterRule",
    "FrameDisplay",
    "PatternKind",
    "classify",
    "highlight_spans_for_frame",
    "PortConfig",
    "SerialSessionController",
    "SessionConfig",
    "SessionState",
    "Timeline",
]
