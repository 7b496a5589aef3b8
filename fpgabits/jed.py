"""Reader for JEDEC fuse map (.jed) files."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union

from .bits import bit_to_val, reverse_byte

_STX = "\x02"
_ETX = "\x03"

_DEC_RE = re.compile(r"\s*([+-]?\d+)")
_HEX_RE = re.compile(r"\s*([+-]?(?:0[xX])?[0-9a-fA-F]+)")


class JedError(ValueError):
    """Raised when a JEDEC file is malformed or inconsistent."""


@dataclass
class JedSection:
    """One fuse area introduced by an 'L' field."""

    offset: int
    data: list[bytes] = field(default_factory=list)
    length: int = 0
    note: str = ""


@dataclass
class JedFile:
    """Everything read from a JEDEC file."""

    sections: list[JedSection] = field(default_factory=list)
    fuselist: str = ""
    fuse_count: int = 0
    pin_count: int = 0
    max_vect_test: int = 0
    features_row: int = 0
    feabits: int = 0
    has_feabits: bool = False
    checksum: int = 0
    computed_checksum: int = 0
    user_code: int = 0
    security_settings: int = 0
    default_fuse_state: int = 0
    default_test_condition: int = 0
    arch_code: int = 0
    pinout_code: int = 0

    def describe(self) -> str:
        """Return a human readable summary of the header and fuse areas."""
        lines: list[str] = []
        if self.has_feabits:
            fb = self.feabits
            boot = {
                0: "Single Boot from Configuration Flash",
                1: "Dual Boot from Configuration Flash then External if there is a failure",
                3: "Single Boot from External Flash",
            }.get((fb >> 11) & 0x07, "Error")

            def flag(shift: int, on: str, off: str) -> str:
                return on if (fb >> shift) & 0x01 else off

            lines += [
                "feabits :",
                f"{fb:04x} <-> {fb}",
                f"\tBoot Mode       : {boot}",
                f"\tMaster Mode SPI : {flag(11, 'enable', 'disable')}",
                f"\tI2c port        : {flag(10, 'disable', 'enable')}",
                f"\tSlave SPI port  : {flag(9, 'disable', 'enable')}",
                f"\tJTAG port       : {flag(8, 'disable', 'enable')}",
                f"\tDONE            : {flag(7, 'enable', 'disable')}",
                f"\tINITN           : {flag(6, 'enable', 'disable')}",
                f"\tPROGRAMN        : {flag(5, 'disable', 'enable')}",
                f"\tMy_ASSP         : {flag(4, 'enable', 'disable')}",
            ]
        lines.append(f"Pin Count  : {self.pin_count}")
        lines.append(f"Fuse Count : {self.fuse_count}")
        for index, section in enumerate(self.sections):
            hexdata = "".join(chunk.hex() for chunk in section.data)
            lines.append(
                f"area[{index}] {section.offset:4d} {section.length:4d} "
                f"{len(section.data)} {hexdata} {section.note}"
            )
            if section.offset == 2656:
                break
        return "\n".join(lines)


class _LineReader:
    """Line reader mimicking stream semantics (tracks end of input)."""

    def __init__(self, text: str):
        self._segments = text.split("\n")
        self._pos = 0

    @property
    def eof(self) -> bool:
        return self._pos >= len(self._segments)

    def readline(self) -> str:
        if self.eof:
            return ""
        line = self._segments[self._pos]
        self._pos += 1
        if line.endswith("\r"):
            line = line[:-1]
        return line

    def read_field(self) -> list[str]:
        """Collect consecutive lines until one ends with '*' or is empty."""
        lines: list[str] = []
        while True:
            line = self.readline()
            if not line:
                break
            if line.endswith("*"):
                lines.append(line[:-1])
                break
            lines.append(line)
        return lines


def _scan_int(text: str, base: int = 10) -> Optional[int]:
    match = (_HEX_RE if base == 16 else _DEC_RE).match(text)
    if match is None:
        return None
    return int(match.group(1), base)


def _pack_lsb_first(bits: str) -> int:
    value = 0
    for i, char in enumerate(bits[:8]):
        if char == "1":
            value |= 1 << i
    return value


def _section_from_string(section: JedSection, content: str, jed: JedFile) -> None:
    jed.fuselist += content
    chunk = bytes(_pack_lsb_first(content[i:i + 8]) for i in range(0, len(content), 8))
    section.data.append(chunk)
    section.length += len(content)


def _section_from_words(section: JedSection, words: list[str], jed: JedFile) -> None:
    chunk = bytearray()
    for word in words:
        jed.fuselist += word
        section.length += len(word)
        chunk.append(_pack_lsb_first(word))
    section.data.append(bytes(chunk))


def _parse_e_field(lines: list[str], jed: JedFile) -> None:
    if len(lines) < 2:
        raise JedError("feabits missing in 'E' field")
    row = 0
    for i, char in enumerate(lines[0][1:]):
        if char == "1":
            row |= 1 << i
    feabits = 0
    for i, char in enumerate(lines[1]):
        if char == "1":
            feabits |= 1 << i
    jed.features_row = row & ((1 << 64) - 1)
    jed.feabits = feabits & 0xFFFF
    jed.has_feabits = True


def _parse_l_field(lines: list[str], jed: JedFile) -> JedSection:
    offset = _scan_int(lines[0][1:])
    if offset is None:
        raise JedError(f"missing offset in field {lines[0]!r}")
    section = JedSection(offset=offset)
    if len(lines) > 1:
        for content in lines[1:]:
            if content:
                _section_from_string(section, content, jed)
    else:
        words = lines[0].split()[1:]
        _section_from_words(section, words, jed)
    jed.sections.append(section)
    return section


def _digit(line: str, index: int) -> int:
    code = ord(line[index]) if len(line) > index else 0
    return (code - ord("0")) & 0xFF


def parse_jed(data: Union[str, bytes]) -> JedFile:
    """Parse JEDEC content and verify its fuse checksum and fuse count."""
    text = data.decode("latin-1") if isinstance(data, (bytes, bytearray)) else data

    start = text.find(_STX)
    if start < 0:
        raise JedError("STX not found: wrong file")
    rest = text[start + 1:]
    if rest.startswith("*"):
        reader = _LineReader(rest[1:])
        reader.readline()
    else:
        reader = _LineReader(rest)

    jed = JedFile()
    previous_note = ""

    while True:
        lines = reader.read_field()
        if not lines:
            if reader.eof:
                break
            continue
        first = lines[0]
        instr = first[:1]

        if instr == "N":
            previous_note = first[first.find(" ") + 1:]
        elif instr == "Q":
            qualifier = first[1:2]
            if qualifier not in ("F", "P", "V"):
                raise JedError(f"unknown qualifier for 'Q': {first!r}")
            count = _scan_int(first[2:])
            if count is None:
                raise JedError(f"missing count in field {first!r}")
            if qualifier == "F":
                jed.fuse_count = count
            elif qualifier == "P":
                jed.pin_count = count
            else:
                jed.max_vect_test = count
        elif instr == "G":
            jed.security_settings = _digit(first, 1)
        elif instr == "F":
            jed.default_fuse_state = _digit(first, 1)
        elif instr == "J":
            arch = _scan_int(first[1:])
            pinout = _scan_int(first[3:])
            if arch is not None:
                jed.arch_code = arch
            if pinout is not None:
                jed.pinout_code = pinout
        elif instr == "C":
            checksum = _scan_int(first[1:], 16)
            if checksum is not None:
                jed.checksum = checksum & 0xFFFF
        elif instr == _ETX:
            break
        elif instr == "E":
            _parse_e_field(lines, jed)
        elif instr == "L":
            _parse_l_field(lines, jed).note = previous_note
        elif instr == "U":
            kind = first[1:2]
            if kind == "H":
                value = _scan_int(first[2:], 16)
            elif kind == "A":
                value = _scan_int(first[2:])
            else:
                value = 0
                for char in first[1:]:
                    value = (value << 1) | ((ord(char) - ord("0")) & 0xFFFFFFFF)
            if value is not None:
                jed.user_code = value & 0xFFFFFFFF
        elif instr == "X":
            value = _scan_int(first[1:])
            if value is not None:
                jed.default_test_condition = value
        else:
            raise JedError(f"unknown field: {first!r}")

    size = sum(section.length for section in jed.sections)

    fuses = jed.fuselist
    if len(fuses) % 8:
        fuses += "0" * (8 - len(fuses) % 8)
    computed = 0
    for i in range(0, len(fuses), 8):
        computed += reverse_byte(bit_to_val(fuses[i:i + 8]))
    jed.computed_checksum = computed & 0xFFFF

    if jed.checksum != jed.computed_checksum:
        raise JedError(
            f"wrong checksum: file {jed.checksum:04x}, computed {jed.computed_checksum:04x}"
        )
    if jed.fuse_count != size:
        raise JedError("Not all fuses are programmed")
    return jed