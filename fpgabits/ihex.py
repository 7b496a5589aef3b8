"""Reader for Intel HEX files."""

from __future__ import annotations

from dataclasses import dataclass, field

from .bits import reverse_byte

_LEN_BASE = 1
_ADDR_BASE = 3
_TYPE_BASE = 7
_DATA_BASE = 9

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


class IhexError(ValueError):
    """Raised when an Intel HEX file is malformed."""


@dataclass
class IhexSection:
    """A run of contiguous data bytes starting at ``addr``."""

    addr: int
    data: bytearray = field(default_factory=bytearray)

    @property
    def length(self) -> int:
        return len(self.data)


@dataclass
class IhexImage:
    """Flat memory image plus the contiguous sections found in the file."""

    data: bytearray
    bit_length: int
    sections: list[IhexSection]


def _hex_field(line: str, start: int, width: int) -> int:
    text = line[start:start + width]
    if len(text) != width or not set(text) <= _HEX_DIGITS:
        raise IhexError(f"malformed hex field in line {line!r}")
    return int(text, 16)


def parse_ihex(text: str, reverse_order: bool = False) -> IhexImage:
    """Parse Intel HEX content.

    Only data (00) and end-of-file (01) records are accepted. Sections are
    closed and recorded when the end-of-file record is reached. With
    ``reverse_order`` every data byte is stored bit-reversed.
    """
    data = bytearray()
    bit_length = 0
    sections: list[IhexSection] = []
    current: IhexSection | None = None
    next_addr = 0

    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    for raw in lines:
        line = raw[:-1] if raw.endswith("\r") else raw
        if line.startswith("#"):
            continue
        if not line.startswith(":"):
            raise IhexError("a line must start with ':'")

        byte_len = _hex_field(line, _LEN_BASE, 2)
        addr = _hex_field(line, _ADDR_BASE, 4)
        record_type = _hex_field(line, _TYPE_BASE, 2)
        checksum = _hex_field(line, _DATA_BASE + byte_len * 2, 2)

        total = byte_len + record_type + (addr & 0xFF) + ((addr >> 8) & 0xFF)

        if record_type == 0:
            if current is None or next_addr != addr:
                if current is not None:
                    sections.append(current)
                current = IhexSection(addr=addr)

            end = addr + byte_len
            if len(data) < end:
                data.extend(bytes(2 * end - len(data)))
            for i in range(byte_len):
                value = _hex_field(line, _DATA_BASE + 2 * i, 2)
                stored = reverse_byte(value) if reverse_order else value
                data[addr + i] = stored
                total += value
                current.data.append(stored)
            next_addr = end & 0xFFFF
            bit_length += byte_len * 8
        elif record_type == 1:
            if current is not None and current.length != 0:
                sections.append(current)
            return IhexImage(data=data, bit_length=bit_length, sections=sections)
        else:
            raise IhexError("unknown type")

        if checksum != (-total) & 0xFF:
            raise IhexError("wrong checksum")

    return IhexImage(data=data, bit_length=bit_length, sections=sections)