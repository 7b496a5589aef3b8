"""JTAG over the asynchronous/synchronous bitbang mode of FTDI chips."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .mpsse import BitMode, CableConfig, FtdiTransport, MpsseEngine, MpsseError

_log = logging.getLogger(__name__)

_PIN_MIN = 0  # TXD
_PIN_MAX = 7  # RI
_MAX_CLK_HZ = 3_000_000


@dataclass(frozen=True)
class JtagPins:
    """Pin numbers (0-7) used for each JTAG signal."""

    tck_pin: int
    tms_pin: int
    tdi_pin: int
    tdo_pin: int

    def __post_init__(self) -> None:
        for pin in (self.tck_pin, self.tms_pin, self.tdi_pin, self.tdo_pin):
            if not _PIN_MIN <= pin <= _PIN_MAX:
                raise ValueError(f"Invalid pin ID: {pin}")


class FtdiJtagBitbang:
    """Drives JTAG signals by bitbanging the data pins of an FTDI device."""

    def __init__(self, transport: FtdiTransport, pins: JtagPins,
                 clk_hz: int, verbose: bool = False):
        self._transport = transport
        self._verbose = verbose
        self._tck = 1 << pins.tck_pin
        self._tms = 1 << pins.tms_pin
        self._tdi = 1 << pins.tdi_pin
        self._tdo = 1 << pins.tdo_pin
        self._bitmode = 0
        self._curr_tms = 0

        if transport.pid == 0x6001:  # FT232R
            self._rx_size = 256
        elif transport.pid == 0x6015:  # FT231X
            self._rx_size = 512
        else:
            self._rx_size = transport.max_packet_size

        self._buffer_size = 4096
        self._buffer = bytearray()

        self._engine = MpsseEngine(transport, CableConfig(), clk_hz, verbose)
        self.set_clk_freq(clk_hz)
        self._engine.init(1, self._tck | self._tms | self._tdi, BitMode.BITBANG)
        self._set_bitmode(BitMode.BITBANG)

    def set_clk_freq(self, clk_hz: int) -> int:
        """Set the bitbang rate (at most 3 MHz); return the rate applied."""
        requested = clk_hz
        if clk_hz > _MAX_CLK_HZ:
            _log.warning("Jtag probe limited to 3MHz")
            clk_hz = _MAX_CLK_HZ
        _log.info("Jtag frequency : requested %dHz -> real %dHz", requested, clk_hz)
        self._transport.set_baudrate(clk_hz)
        return clk_hz

    def _set_bitmode(self, mode: int) -> None:
        if self._bitmode == mode:
            return
        self._bitmode = mode
        self._transport.set_bitmode(self._tck | self._tms | self._tdi, mode)
        self._transport.purge()

    def _write(self, rx: Optional[bytearray] = None, start: int = 0,
               nb_bit: int = 0) -> int:
        """Send the buffer; in read mode store ``nb_bit`` TDO bits in ``rx``."""
        count = len(self._buffer)
        if count == 0:
            return 0
        self._set_bitmode(BitMode.SYNCBB if rx is not None else BitMode.BITBANG)

        written = self._transport.write_data(bytes(self._buffer))
        if written != count:
            raise MpsseError(f"write failed: {written} of {count} bytes sent")

        if rx is not None:
            sampled = self._transport.read_data(count)
            if len(sampled) != count:
                raise MpsseError(f"read failed: {len(sampled)} of {count} bytes")
            # TDO is sampled on the rising edge (odd entries); bits are LSB
            # first, so each new bit enters from the top of its byte.
            first = max(count - nb_bit * 2 + 1, 0)
            for offset, i in enumerate(range(first, count, 2)):
                idx = start + (offset >> 3)
                rx[idx] = (0x80 if sampled[i] & self._tdo else 0x00) | (rx[idx] >> 1)
        self._buffer.clear()
        return written

    def write_tms(self, tms: bytes, length: int, flush_buffer: bool) -> int:
        """Clock ``length`` TMS bits (LSB first) with TDI held high."""
        if length == 0:
            if flush_buffer:
                self.flush()
            return 0

        if len(self._buffer) + 2 > self._buffer_size:
            self.flush()

        for i in range(length):
            self._curr_tms = self._tms if tms[i >> 3] & (1 << (i & 0x07)) else 0
            val = self._tdi | self._curr_tms
            self._buffer += bytes((val, val | self._tck))
            if len(self._buffer) + 2 > self._buffer_size:
                self._write()

        if flush_buffer:
            self._write()
        return length

    def write_tdi(self, tx: Optional[bytes], length: int, end: bool,
                  read: bool) -> Optional[bytes]:
        """Shift ``length`` TDI bits, raising TMS on the last one if ``end``.

        Returns the TDO bits (LSB first) when ``read`` is set, else None.
        """
        rx = bytearray((length + 7) // 8) if read else None
        if length == 0:
            return bytes(rx) if rx is not None else None

        xfer_size = self._rx_size if read else self._buffer_size
        if length * 2 + 1 < xfer_size:
            chunk = length
        else:
            chunk = ((xfer_size >> 1) // 8) * 8

        if self._buffer:
            self.flush()

        rx_pos = 0
        pos = 0
        for i in range(length):
            if end and i == length - 1:
                self._curr_tms = self._tms
            val = self._curr_tms
            if tx is not None and tx[i >> 3] & (1 << (i & 0x07)):
                val |= self._tdi
            self._buffer += bytes((val, val | self._tck))
            pos += 1
            if pos == chunk:
                pos = 0
                self._write(rx, rx_pos, chunk)
                if rx is not None:
                    rx_pos += chunk // 8

        if self._buffer:
            use_rx = rx if (rx is not None and len(self._buffer) > 1) else None
            self._write(use_rx, rx_pos, len(self._buffer) // 2)

        return bytes(rx) if rx is not None else None

    def toggle_clk(self, tms: int, tdi: int, clk_len: int) -> int:
        """Generate ``clk_len`` clock cycles with constant TMS and TDI."""
        val = (self._tms if tms else 0) | (self._tdi if tdi else 0)
        for _ in range(clk_len):
            if len(self._buffer) + 2 > self._buffer_size:
                self._write()
            self._buffer += bytes((val | self._tck, val))
        self._write()
        return clk_len

    def flush(self) -> int:
        """Send any buffered pin states."""
        return self._write()

    def buffer_size(self) -> int:
        """Buffer capacity in JTAG bytes (two entries per bit, 8 bits per byte)."""
        return self._buffer_size // 8 // 2

    def is_full(self) -> bool:
        return len(self._buffer) == 8 * self.buffer_size()