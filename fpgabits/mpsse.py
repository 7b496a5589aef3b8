"""Buffered MPSSE command engine on top of an FTDI transport."""

from __future__ import annotations

import dataclasses
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

_log = logging.getLogger(__name__)

# MPSSE shifting command flags
MPSSE_WRITE_NEG = 0x01
MPSSE_BITMODE = 0x02
MPSSE_READ_NEG = 0x04
MPSSE_LSB = 0x08
MPSSE_DO_WRITE = 0x10
MPSSE_DO_READ = 0x20
MPSSE_WRITE_TMS = 0x40

# MPSSE opcodes
SET_BITS_LOW = 0x80
GET_BITS_LOW = 0x81
SET_BITS_HIGH = 0x82
GET_BITS_HIGH = 0x83
LOOPBACK_START = 0x84
LOOPBACK_END = 0x85
TCK_DIVISOR = 0x86
SEND_IMMEDIATE = 0x87
DIS_DIV_5 = 0x8A
EN_DIV_5 = 0x8B


class MpsseError(RuntimeError):
    """Raised when the MPSSE engine fails to talk to the device."""


class ChipType(enum.IntEnum):
    """FTDI chip families."""

    AM = 0
    BM = 1
    FT2232C = 2
    R = 3
    FT2232H = 4
    FT4232H = 5
    FT232H = 6
    FT230X = 7


class BitMode(enum.IntEnum):
    """FTDI bit modes."""

    RESET = 0x00
    BITBANG = 0x01
    MPSSE = 0x02
    SYNCBB = 0x04
    MCU = 0x08
    OPTO = 0x10
    CBUS = 0x20
    SYNCFF = 0x40
    FT1284 = 0x80


@dataclass
class CableConfig:
    """Pin values and directions of the low and high half banks."""

    interface: int = 0
    bit_low_val: int = 0
    bit_low_dir: int = 0
    bit_high_val: int = 0
    bit_high_dir: int = 0
    index: int = -1


class FtdiTransport(ABC):
    """Low level access to an opened FTDI device.

    Implementations raise an exception when an operation fails.
    """

    chip_type: ChipType = ChipType.FT2232H
    max_packet_size: int = 512
    product: str = ""
    vid: int = 0
    pid: int = 0

    @abstractmethod
    def write_data(self, data: bytes) -> int:
        """Send bytes; return how many were written."""

    @abstractmethod
    def read_data(self, length: int) -> bytes:
        """Read up to ``length`` bytes."""

    @abstractmethod
    def set_bitmode(self, mask: int, mode: int) -> None:
        """Select the bit mode with the given output mask."""

    @abstractmethod
    def set_baudrate(self, baudrate: int) -> None:
        """Configure the baud rate."""

    @abstractmethod
    def set_latency_timer(self, latency: int) -> None:
        """Configure the latency timer in milliseconds."""

    @abstractmethod
    def usb_reset(self) -> None:
        """Reset the device."""

    @abstractmethod
    def purge(self) -> None:
        """Flush the receive and transmit buffers."""


def compute_prescaler(base_freq: int, clk_hz: int) -> tuple[int, int]:
    """Return ``(prescaler, real_frequency)`` never above ``clk_hz``."""
    if clk_hz <= 0:
        raise ValueError("clock frequency must be positive")
    presc = (((base_freq // clk_hz) - 1) // 2) & 0xFFFF
    real = base_freq // ((1 + presc) * 2)
    if real > clk_hz:
        presc = (presc + 1) & 0xFFFF
    real = base_freq // ((1 + presc) * 2)
    return presc, real


def format_frequency(hz: float) -> str:
    """Render a frequency with a MHz, KHz or Hz unit."""
    if hz >= 1e6:
        return f"{hz / 1e6:2.2f}MHz"
    if hz >= 1e3:
        return f"{hz / 1e3:3.2f}KHz"
    return f"{hz:3.2f}Hz"


class MpsseEngine:
    """Buffers MPSSE commands and drives the GPIO banks of an FTDI device."""

    def __init__(self, transport: FtdiTransport, cable: CableConfig,
                 clk_hz: int, verbose: bool = False):
        self.transport = transport
        self.cable = dataclasses.replace(cable)
        self.clk_hz = clk_hz
        self.verbose = verbose
        self.buffer_size = transport.max_packet_size
        self.product = transport.product or ""
        self._buffer = bytearray()

    def __enter__(self) -> "MpsseEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def pending(self) -> int:
        """Number of bytes waiting in the command buffer."""
        return len(self._buffer)

    def init(self, latency: int, bitmask_mode: int, mode: int) -> None:
        """Reset the device and configure it for the given bit mode."""
        tr = self.transport
        tr.usb_reset()
        tr.set_bitmode(0x00, BitMode.RESET)
        tr.purge()
        tr.set_latency_timer(latency)
        tr.set_bitmode(bitmask_mode, mode)
        if mode == BitMode.MPSSE:
            tr.read_data(5)
            self.set_clk_freq(self.clk_hz)
            cmd = bytearray([SET_BITS_LOW, self.cable.bit_low_val & 0xFF,
                             self.cable.bit_low_dir & 0xFF])
            if tr.chip_type != ChipType.FT4232H:
                cmd += bytes([SET_BITS_HIGH, self.cable.bit_high_val & 0xFF,
                              self.cable.bit_high_dir & 0xFF])
            self.store(cmd)
            self.write()

    def set_clk_freq(self, clk_hz: int) -> int:
        """Program the TCK divisor; return the frequency actually obtained."""
        requested = clk_hz
        target = clk_hz
        if self.transport.chip_type != ChipType.FT2232C:
            base_freq = 60_000_000
            if clk_hz > 6_000_000:
                use_divide_by_5 = False
                self.store(bytes([DIS_DIV_5]))
            else:
                use_divide_by_5 = True
                base_freq //= 5
                self.store(bytes([EN_DIV_5]))
        else:
            base_freq = 12_000_000
            use_divide_by_5 = False

        if use_divide_by_5:
            if target > 6_000_000:
                _log.warning("Jtag probe limited to 6MHz")
                target = 6_000_000
        elif target > 30_000_000:
            _log.warning("Jtag probe limited to 30MHz")
            target = 30_000_000

        presc, real = compute_prescaler(base_freq, target)
        _log.info("Jtag frequency : requested %s -> real %s",
                  format_frequency(requested), format_frequency(real))
        if self.verbose:
            _log.debug("presc : %d input freq : %u requested freq : %u real freq : %u",
                       presc, base_freq, target, real)

        self.store(bytes([TCK_DIVISOR, presc & 0xFF, (presc >> 8) & 0xFF]))
        self.write()
        self.transport.read_data(4)
        self.transport.purge()
        self.clk_hz = real
        return real

    def store(self, data: bytes) -> None:
        """Append bytes to the command buffer, sending full buffers."""
        data = bytes(data)
        if len(self._buffer) + len(data) > self.buffer_size:
            if len(self._buffer) == self.buffer_size:
                self.write()
            while len(self._buffer) + len(data) > self.buffer_size:
                room = self.buffer_size - len(self._buffer)
                self._buffer += data[:room]
                data = data[room:]
                self.write()
        self._buffer += data

    def write(self) -> int:
        """Send the buffered commands; return the number of bytes sent."""
        if not self._buffer:
            return 0
        count = len(self._buffer)
        written = self.transport.write_data(bytes(self._buffer))
        if written != count:
            raise MpsseError(f"write failed: {written} of {count} bytes sent")
        self._buffer.clear()
        return written

    def read(self, length: int) -> bytes:
        """Flush pending commands and read exactly ``length`` bytes."""
        self.store(bytes([SEND_IMMEDIATE]))
        self.write()
        received = bytearray()
        while len(received) < length:
            received += self.transport.read_data(length - len(received))
        return bytes(received[:length])

    def gpio_get(self) -> int:
        """Read both banks; the high bank is in bits 8-15."""
        self.store(bytes([GET_BITS_LOW, GET_BITS_HIGH]))
        rx = self.read(2)
        return (rx[1] << 8) | rx[0]

    def gpio_get_bank(self, low_pins: bool) -> int:
        """Read the low or the high bank."""
        self.store(bytes([GET_BITS_LOW if low_pins else GET_BITS_HIGH]))
        return self.read(1)[0]

    def _bank_write(self, low_pins: bool) -> None:
        if low_pins:
            cmd = (SET_BITS_LOW, self.cable.bit_low_val, self.cable.bit_low_dir)
        else:
            cmd = (SET_BITS_HIGH, self.cable.bit_high_val, self.cable.bit_high_dir)
        self.store(bytes(v & 0xFF for v in cmd))

    def gpio_set(self, gpios: int) -> None:
        """Drive high the pins of the 16-bit mask."""
        if gpios & 0x00FF:
            self.cable.bit_low_val |= gpios & 0xFF
            self._bank_write(True)
        if gpios & 0xFF00:
            self.cable.bit_high_val |= (gpios >> 8) & 0xFF
            self._bank_write(False)
        self.write()

    def gpio_set_bank(self, gpios: int, low_pins: bool) -> None:
        """Drive high the pins of one bank."""
        if low_pins:
            self.cable.bit_low_val |= gpios & 0xFF
        else:
            self.cable.bit_high_val |= gpios & 0xFF
        self._bank_write(low_pins)
        self.write()

    def gpio_clear(self, gpios: int) -> None:
        """Drive low the pins of the 16-bit mask."""
        if gpios & 0x00FF:
            self.cable.bit_low_val &= ~(gpios & 0xFF) & 0xFF
            self._bank_write(True)
        if gpios & 0xFF00:
            self.cable.bit_high_val &= ~((gpios >> 8) & 0xFF) & 0xFF
            self._bank_write(False)
        self.write()

    def gpio_clear_bank(self, gpios: int, low_pins: bool) -> None:
        """Drive low the pins of one bank."""
        if low_pins:
            self.cable.bit_low_val &= ~gpios & 0xFF
        else:
            self.cable.bit_high_val &= ~gpios & 0xFF
        self._bank_write(low_pins)
        self.write()

    def gpio_write(self, gpios: int) -> None:
        """Set the value of all 16 pins."""
        self.cable.bit_low_val = gpios & 0xFF
        self.cable.bit_high_val = (gpios >> 8) & 0xFF
        self._bank_write(True)
        self._bank_write(False)
        self.write()

    def gpio_write_bank(self, gpios: int, low_pins: bool) -> None:
        """Set the value of all pins of one bank."""
        if low_pins:
            self.cable.bit_low_val = gpios & 0xFF
        else:
            self.cable.bit_high_val = gpios & 0xFF
        self._bank_write(low_pins)
        self.write()

    def gpio_set_dir(self, direction: int) -> None:
        """Set the direction (1 out, 0 in) of all 16 pins; nothing is sent."""
        self.cable.bit_low_dir = direction & 0xFF
        self.cable.bit_high_dir = (direction >> 8) & 0xFF

    def gpio_set_dir_bank(self, direction: int, low_pins: bool) -> None:
        """Set the direction of one bank; nothing is sent."""
        if low_pins:
            self.cable.bit_low_dir = direction & 0xFF
        else:
            self.cable.bit_high_dir = direction & 0xFF

    def gpio_set_input(self, gpios: int) -> None:
        """Make the pins of the 16-bit mask inputs."""
        if gpios & 0x00FF:
            self.cable.bit_low_dir &= ~(gpios & 0xFF) & 0xFF
        if gpios & 0xFF00:
            self.cable.bit_high_dir &= ~((gpios >> 8) & 0xFF) & 0xFF

    def gpio_set_input_bank(self, gpios: int, low_pins: bool) -> None:
        """Make the given pins of one bank inputs."""
        if low_pins:
            self.cable.bit_low_dir &= ~gpios & 0xFF
        else:
            self.cable.bit_high_dir &= ~gpios & 0xFF

    def gpio_set_output(self, gpios: int) -> None:
        """Make the pins of the 16-bit mask outputs."""
        if gpios & 0x00FF:
            self.cable.bit_low_dir |= gpios & 0xFF
        if gpios & 0xFF00:
            self.cable.bit_high_dir |= (gpios >> 8) & 0xFF

    def gpio_set_output_bank(self, gpios: int, low_pins: bool) -> None:
        """Make the given pins of one bank outputs."""
        if low_pins:
            self.cable.bit_low_dir |= gpios & 0xFF
        else:
            self.cable.bit_high_dir |= gpios & 0xFF

    def close(self) -> None:
        """Return the device to its reset bit mode and flush it."""
        self.transport.set_bitmode(0, BitMode.RESET)
        self.transport.usb_reset()
        self.transport.purge()