"""Reader for ASCII bitstream (.fs) files, with data checksum computation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .bits import bit_to_val
from .bits import reverse_byte as _reverse_byte

_log = logging.getLogger(__name__)

_MASK64 = (1 << 64) - 1

# Number of configuration lines per device, keyed by IDCODE.
_LINES_BY_IDCODE = {
    0x0900281B: 274,   # GW1N-1
    0x0900381B: 274,   # GW1N-1S
    0x0100681B: 274,   # GW1NZ-1
    0x0100181B: 494,   # GW1N-2
    0x1100181B: 494,   # GW1N-2B
    0x0300081B: 494,   # GW1NS-2
    0x0300181B: 494,   # GW1NSx-2C
    0x0100981B: 494,   # GW1NSR-4C
    0x0100381B: 494,   # GW1N-4(ES)
    0x1100381B: 494,   # GW1N-4B
    0x0100481B: 712,   # GW1N-6
    0x1100481B: 712,   # GW1N-9C
    0x0100581B: 712,   # GW1N-9(ES)
    0x1100581B: 712,   # GW1N-9
    0x0000081B: 1342,  # GW2A-18
    0x0000281B: 2038,  # GW2A-55
}

# Devices whose address length is not a multiple of a byte.
_PADDED_IDCODES = frozenset({0x0100481B, 0x1100481B, 0x0100581B, 0x1100581B})


class FsError(ValueError):
    """Raised when a .fs file cannot be interpreted."""


@dataclass
class FsBitstream:
    """Parsed .fs file: header fields, raw bytes and computed checksum."""

    header: dict[str, str] = field(default_factory=dict)
    data: bytes = b""
    checksum: int = 0
    idcode: int = 0
    compressed: bool = False

    def bit_length(self) -> int:
        """Number of bits in the raw bitstream."""
        return len(self.data) * 8


@dataclass
class _Header:
    lines: list[str] = field(default_factory=list)
    values: dict[str, str] = field(default_factory=dict)
    idcode: int = 0
    compressed: bool = False
    zero8: int = 0xFF
    zero4: int = 0xFF
    zero2: int = 0xFF
    end_header: int = 0


def _parse_header(text: str) -> _Header:
    hdr = _Header()
    in_header = True
    line_index = 0

    for raw in text.split("\n"):
        if not raw:
            break
        if raw.startswith("/"):
            continue
        line = raw[:-1] if raw.endswith("\r") else raw
        if not line:
            break
        hdr.lines.append(line)
        if not in_header:
            continue

        key = bit_to_val(line[:8].ljust(8, "0")) & 0x7F
        val = bit_to_val(line) & _MASK64

        if key == 0x06:
            hdr.idcode = val & 0xFFFFFFFF
            hdr.values["idcode"] = f"{hdr.idcode:08x}"
        elif key == 0x0A:
            hdr.values["CheckSum"] = f"{val & 0xFFFF:04x}"
        elif key == 0x0B:
            hdr.values["SecurityBit"] = "ON"
        elif key == 0x10:
            hdr.values["loading_rate"] = str((val >> 16) & 0xFF)
            hdr.compressed = bool((val >> 13) & 0x01)
            hdr.values["Compress"] = "ON" if hdr.compressed else "OFF"
            hdr.values["ProgramDoneBypass"] = "ON" if (val >> 12) & 0x01 else "OFF"
        elif key == 0x51:
            # bytes standing for 8, 4 and 2 zero bytes in compressed mode
            hdr.zero8 = (val >> 16) & 0xFF
            hdr.zero4 = (val >> 8) & 0xFF
            hdr.zero2 = val & 0xFF
        elif key == 0x52:
            hdr.values["SPIAddr"] = f"{val & 0xFFFFFFFF:08x}"
        elif key == 0x3B:
            in_header = False
            hdr.values["CRCCheck"] = "ON" if (val >> 23) & 0x01 else "OFF"
            hdr.values["ConfDataLength"] = str(val & 0xFFFF)
            hdr.end_header = line_index & 0xFFFF

        line_index += 1

    return hdr


def _expand(line: str, drop: int, hdr: _Header) -> str:
    """Return the checksum-relevant bits of one configuration line."""
    if hdr.compressed:
        limit = len(line) - drop
        if limit < 0:
            raise FsError("configuration line shorter than its trailer")
        parts = []
        for i in range(0, limit, 8):
            chunk = line[i:i + 8]
            code = bit_to_val(chunk.ljust(8, "0"))
            if code == hdr.zero8:
                parts.append("0" * 64)
            elif code == hdr.zero4:
                parts.append("0" * 32)
            elif code == hdr.zero2:
                parts.append("0" * 16)
            else:
                parts.append(chunk)
        return "".join(parts)
    if len(line) < drop:
        return line
    return line[:len(line) - drop]


def parse_fs(text: str, reverse_byte: bool = False) -> FsBitstream:
    """Parse .fs content.

    With ``reverse_byte`` every output byte is stored bit-reversed.
    """
    hdr = _parse_header(text)

    data = bytearray()
    for line in hdr.lines:
        for i in range(0, len(line), 8):
            value = bit_to_val(line[i:i + 8].ljust(8, "0"))
            data.append(_reverse_byte(value) if reverse_byte else value)

    if hdr.idcode == 0:
        _log.warning("IDCODE not found")

    nb_line = _LINES_BY_IDCODE.get(hdr.idcode)
    if nb_line is None:
        _log.warning("Unknown IDCODE")
        nb_line = 0
    padding = 0
    if hdr.idcode in _PADDED_IDCODES:
        padding = 4
        if hdr.compressed:
            padding += 5 * 8

    conf_len_text = hdr.values.get("ConfDataLength")
    if conf_len_text is None:
        raise FsError("configuration data length not found in header")
    nb_line = min(nb_line, int(conf_len_text))

    body = hdr.lines[hdr.end_header + 1:]
    body = (body + [""] * nb_line)[:nb_line]

    drop = 6 * 8
    if hdr.values.get("CRCCheck") == "ON":
        drop += 2 * 8

    pieces = []
    for line in body:
        bits = _expand(line, drop, hdr)
        if padding > len(bits):
            raise FsError("configuration line shorter than its padding")
        pieces.append(bits[padding:])
    payload = "".join(pieces)

    checksum = 0
    for pos in range(0, len(payload), 16):
        checksum += bit_to_val(payload[pos:pos + 16].ljust(16, "0"))
    checksum &= 0xFFFF
    _log.debug("checksum 0x%04x", checksum)

    return FsBitstream(
        header=dict(hdr.values),
        data=bytes(data),
        checksum=checksum,
        idcode=hdr.idcode,
        compressed=hdr.compressed,
    )