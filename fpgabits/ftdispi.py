"""SPI master built on the MPSSE engine of FTDI chips."""

from __future__ import annotations

import enum
import logging
from typing import Optional

from .mpsse import (
    MPSSE_DO_READ,
    MPSSE_DO_WRITE,
    MPSSE_LSB,
    MPSSE_READ_NEG,
    MPSSE_WRITE_NEG,
    BitMode,
    CableConfig,
    FtdiTransport,
    MpsseEngine,
)

_log = logging.getLogger(__name__)

# SCLK -> ADBUS0, MOSI -> ADBUS1, MISO -> ADBUS2, CS -> ADBUS3
_DEFAULT_CABLE = CableConfig(interface=2, bit_low_val=0x08, bit_low_dir=0x0B,
                             bit_high_val=0x08, bit_high_dir=0x0B)
_DEFAULT_CS = 1 << 3
_DEFAULT_CLK = 1 << 0
_WRITE_ONLY_MAX_XFER = 4096


class SpiTimeoutError(TimeoutError):
    """Raised when a polled SPI status never reaches the expected value."""


class CsMode(enum.IntEnum):
    """Chip select handling: toggled per transfer or by the caller."""

    AUTO = 0
    MANUAL = 1


class Endianness(enum.IntEnum):
    """Bit order on the wire."""

    MSB_FIRST = 0
    LSB_FIRST = 1


class FtdiSpi(MpsseEngine):
    """SPI master: clock on the MPSSE clock pin, chip select driven as GPIO."""

    def __init__(self, transport: FtdiTransport, cable: Optional[CableConfig] = None,
                 clk_hz: int = 6_000_000, verbose: bool = False, *,
                 cs_pin: int = 0, sck_pin: int = 0, holdn_pin: int = 0,
                 wpn_pin: int = 0):
        super().__init__(transport, cable if cable is not None else _DEFAULT_CABLE,
                         clk_hz, verbose)
        self.cs_bits = cs_pin or _DEFAULT_CS
        self.clk = sck_pin or _DEFAULT_CLK
        self.holdn = holdn_pin
        self.wpn = wpn_pin
        self.cs = 0
        self.clk_idle = 0
        self.wr_mode = 0
        self.rd_mode = 0
        self.endian = 0
        self.cs_mode = CsMode.AUTO

        # the clock is driven by the MPSSE engine; CS, HOLDn and WPn are GPIOs
        free_pins = self.cs_bits | self.holdn | self.wpn
        self.gpio_set_output(free_pins)
        self.gpio_set(free_pins)

        self.set_mode(0)
        self.set_cs_mode(CsMode.AUTO)
        self.set_endianness(Endianness.MSB_FIRST)
        self.init(1, 0x00, BitMode.MPSSE)

    def set_mode(self, mode: int) -> None:
        """Select SPI mode 0-3 and drive the clock pin to its idle level."""
        if mode == 0:
            self.clk_idle, self.wr_mode, self.rd_mode = 0, MPSSE_WRITE_NEG, 0
        elif mode == 1:
            self.clk_idle, self.wr_mode, self.rd_mode = 0, 0, MPSSE_READ_NEG
        elif mode == 2:
            self.clk_idle, self.wr_mode, self.rd_mode = self.clk, 0, MPSSE_READ_NEG
        elif mode == 3:
            self.clk_idle, self.wr_mode, self.rd_mode = self.clk, MPSSE_WRITE_NEG, 0
        else:
            raise ValueError(f"invalid SPI mode: {mode}")
        if self.clk_idle:
            self.gpio_set(self.clk)
        else:
            self.gpio_clear(self.clk)

    def set_endianness(self, endian: int) -> None:
        self.endian = 0 if endian == Endianness.MSB_FIRST else MPSSE_LSB

    def set_cs_mode(self, cs_mode: int) -> None:
        self.cs_mode = CsMode(cs_mode)

    def conf_cs(self, state: int) -> None:
        """Drive chip select low (state 0) or high, sending it twice."""
        for _ in range(2):
            if state == 0:
                self.gpio_clear(self.cs_bits)
            else:
                self.gpio_set(self.cs_bits)

    def set_cs(self) -> None:
        """Deassert chip select (high)."""
        self.cs = self.cs_bits
        self.conf_cs(self.cs)

    def clear_cs(self) -> None:
        """Assert chip select (low)."""
        self.cs = 0
        self.conf_cs(self.cs)

    def write_and_read(self, tx: Optional[bytes], read_len: int = 0) -> Optional[bytes]:
        """Write ``tx`` and/or read ``read_len`` bytes in one transfer.

        When both are given they must have the same length (full duplex).
        Returns the bytes read, or None for a write-only transfer.
        """
        read = read_len > 0
        if tx is not None and read and read_len != len(tx):
            raise ValueError("write and read lengths differ")
        length = len(tx) if tx is not None else read_len
        max_xfer = self.buffer_size if read else _WRITE_ONLY_MAX_XFER
        opcode = ((MPSSE_DO_READ | self.rd_mode) if read else 0) | \
                 ((MPSSE_DO_WRITE | self.wr_mode) if tx is not None else 0)

        if self.cs_mode == CsMode.AUTO:
            self.clear_cs()
        self.write()

        received = bytearray()
        pos = 0
        while pos < length:
            xfer = min(length - pos, max_xfer)
            frame = bytearray((opcode, (xfer - 1) & 0xFF, ((xfer - 1) >> 8) & 0xFF))
            if tx is not None:
                frame += tx[pos:pos + xfer]
            self.store(bytes(frame))
            if read:
                received += self.read(xfer)
            else:
                self.write()
            pos += xfer

        if self.cs_mode == CsMode.AUTO:
            self.set_cs()
        return bytes(received) if read else None

    def write_then_read(self, tx: bytes, rx_len: int) -> bytes:
        """Write ``tx`` then read ``rx_len`` bytes with chip select held low."""
        self.set_cs_mode(CsMode.MANUAL)
        self.clear_cs()
        try:
            self.write_and_read(tx, 0)
            rx = self.write_and_read(None, rx_len) if rx_len else b""
        finally:
            self.set_cs()
            self.set_cs_mode(CsMode.AUTO)
        return rx or b""

    def spi_put_cmd(self, cmd: int, tx: Optional[bytes], rx_len: int = 0) -> Optional[bytes]:
        """Send a command byte followed by ``tx`` (or zeros when ``rx_len`` only).

        Returns the bytes received after the command byte when ``rx_len`` > 0.
        """
        if tx is not None and rx_len and rx_len != len(tx):
            raise ValueError("write and read lengths differ")
        length = len(tx) if tx is not None else rx_len
        payload = bytes([cmd & 0xFF]) + (bytes(tx) if tx is not None else bytes(length))
        result = self.write_and_read(payload, length + 1 if rx_len else 0)
        return result[1:] if result is not None else None

    def spi_put(self, tx: bytes, read: bool = False) -> Optional[bytes]:
        """Send ``tx``; return the bytes clocked in when ``read`` is set."""
        return self.write_and_read(tx, len(tx) if read else 0)

    def spi_wait(self, cmd: int, mask: int, cond: int, timeout: int,
                 verbose: bool = False) -> None:
        """Send ``cmd`` then poll until ``(status & mask) == cond``."""
        self.set_cs_mode(CsMode.MANUAL)
        self.clear_cs()
        count = 0
        rx = 0
        try:
            self.write_and_read(bytes([cmd & 0xFF]), 0)
            while True:
                rx = self.write_and_read(None, 1)[0]
                count += 1
                if count == timeout:
                    break
                if verbose:
                    _log.info("%02x %02x %02x %02x", rx, mask, cond, count)
                if (rx & mask) == cond:
                    break
        finally:
            self.set_cs()
            self.set_cs_mode(CsMode.AUTO)
        if count == timeout:
            raise SpiTimeoutError(f"wait: timeout, last status 0x{rx:02x}")