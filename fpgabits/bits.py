"""Helpers for ASCII bit strings and byte bit order."""


def bit_to_val(bits: str) -> int:
    """Convert a string of '1'/'0' characters (MSB first) to an integer.

    Any character other than '1' counts as a zero bit.
    """
    value = 0
    for char in bits:
        value = (value << 1) | (char == "1")
    return value


def reverse_byte(value: int) -> int:
    """Return the byte with its bit order reversed (bit 0 <-> bit 7)."""
    return int(f"{value & 0xFF:08b}"[::-1], 2)