"""
Frame codec for captured serial trames.
Converts between raw bit strings, spaced uppercase hex and per-byte ASCII text.
"""
import re
from typing import List

PLACEHOLDER = "."

# Printable ASCII range rendered as-is in the text view
PRINTABLE_MIN = 32
PRINTABLE_MAX = 126

_BITS_RE = re.compile(r"^[01]+$")


def bits_to_hex(bits: str) -> str:
    """
    Convert a bit string to spaced hexadecimal bytes.

    Bits are taken 8 at a time; a short final chunk is still encoded as its
    own byte value, so "0100101" gives "25".

    Args:
        bits: String of '0'/'1' characters

    Returns:
        Uppercase hex tokens joined by single spaces (e.g. "4A 2F"), or ""
        when bits is empty or holds anything other than '0'/'1'
    """
    if not bits or not _BITS_RE.match(bits):
        return ""

    tokens = []
    for i in range(0, len(bits), 8):
        chunk = bits[i:i + 8]
        tokens.append(f"{int(chunk, 2):02X}")
    return " ".join(tokens)


def hex_tokens(hex_line: str) -> List[str]:
    """Split a hex line into its whitespace separated tokens"""
    if hex_line is None:
        return []
    return hex_line.split()


def hex_to_ascii_char(token: str) -> str:
    """
    Decode one hex token to a display character.

    Args:
        token: Two-digit hex token (e.g. "4F")

    Returns:
        The ASCII character when printable, otherwise PLACEHOLDER. Tokens that
        do not parse (corrupt or partial data) also give PLACEHOLDER.
    """
    try:
        value = int(token, 16)
    except (TypeError, ValueError):
        return PLACEHOLDER

    if PRINTABLE_MIN <= value <= PRINTABLE_MAX:
        return chr(value)
    return PLACEHOLDER


def hex_to_bits(hex_line: str) -> str:
    """Expand hex tokens back to bits, eight per token. Raises ValueError on a bad token."""
    bits = []
    for token in hex_tokens(hex_line):
        bits.append(f"{int(token, 16):08b}")
    return "".join(bits)

