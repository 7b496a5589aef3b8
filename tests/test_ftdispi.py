import pytest

from fpgabits.ftdispi import CsMode, Endianness, FtdiSpi, SpiTimeoutError
from fpgabits.mpsse import (
    MPSSE_DO_READ,
    MPSSE_DO_WRITE,
    MPSSE_LSB,
    MPSSE_READ_NEG,
    MPSSE_WRITE_NEG,
    SEND_IMMEDIATE,
    SET_BITS_LOW,
    ChipType,
    FtdiTransport,
)


class FakeTransport(FtdiTransport):
    chip_type = ChipType.FT2232H

    def __init__(self, max_packet_size=512, fill=0x00):
        self.max_packet_size = max_packet_size
        self.fill = fill
        self.queue = bytearray()
        self.writes = []

    def write_data(self, data):
        self.writes.append(bytes(data))
        return len(data)

    def read_data(self, length):
        out = bytes(self.queue[:length])
        del self.queue[:length]
        return out + bytes([self.fill]) * (length - len(out))

    def set_bitmode(self, mask, mode):
        pass

    def set_baudrate(self, baudrate):
        pass

    def set_latency_timer(self, latency):
        pass

    def usb_reset(self):
        pass

    def purge(self):
        pass


def make_spi(**kwargs):
    transport = FakeTransport(**kwargs)
    spi = FtdiSpi(transport)
    transport.writes.clear()
    return spi, transport


def test_defaults_after_construction():
    spi, _ = make_spi()
    assert spi.cs_mode == CsMode.AUTO
    assert spi.wr_mode == MPSSE_WRITE_NEG
    assert spi.rd_mode == 0
    assert spi.cable.bit_low_dir & spi.cs_bits == spi.cs_bits


def test_mode_selection_drives_clock_idle():
    spi, transport = make_spi()
    spi.set_mode(3)
    assert spi.cable.bit_low_val & spi.clk == spi.clk
    assert transport.writes[-1][0] == SET_BITS_LOW
    spi.set_mode(1)
    assert spi.rd_mode == MPSSE_READ_NEG
    assert spi.wr_mode == 0
    assert spi.cable.bit_low_val & spi.clk == 0


def test_invalid_mode():
    spi, _ = make_spi()
    with pytest.raises(ValueError):
        spi.set_mode(4)


def test_endianness():
    spi, _ = make_spi()
    spi.set_endianness(Endianness.LSB_FIRST)
    assert spi.endian == MPSSE_LSB
    spi.set_endianness(Endianness.MSB_FIRST)
    assert spi.endian == 0


def test_write_only_frame():
    spi, transport = make_spi()
    assert spi.write_and_read(b"\xab\xcd", 0) is None
    frame = transport.writes[2]
    assert frame == bytes([MPSSE_DO_WRITE | MPSSE_WRITE_NEG, 1, 0, 0xAB, 0xCD])
    # chip select released at the end
    assert spi.cable.bit_low_val & spi.cs_bits == spi.cs_bits


def test_read_returns_device_bytes():
    spi, transport = make_spi()
    transport.queue += b"\x12\x34"
    assert spi.write_and_read(None, 2) == b"\x12\x34"
    assert transport.writes[2] == bytes([MPSSE_DO_READ, 1, 0, SEND_IMMEDIATE])


def test_read_split_by_buffer_size():
    spi, transport = make_spi(max_packet_size=4)
    data = bytes(range(1, 7))
    transport.queue += data
    assert spi.write_and_read(None, 6) == data


def test_length_mismatch():
    spi, _ = make_spi()
    with pytest.raises(ValueError):
        spi.write_and_read(b"\x01\x02", 3)


def test_spi_put_cmd_drops_command_byte():
    spi, transport = make_spi()
    transport.queue += b"\xff\x01\x02"
    assert spi.spi_put_cmd(0x9F, None, 2) == b"\x01\x02"


def test_spi_put_without_read():
    spi, _ = make_spi()
    assert spi.spi_put(b"\x05", False) is None


def test_write_then_read_restores_cs_mode():
    spi, transport = make_spi()
    transport.queue += b"\x7e"
    assert spi.write_then_read(b"\x03\x00", 1) == b"\x7e"
    assert spi.cs_mode == CsMode.AUTO
    assert spi.cs == spi.cs_bits


def test_spi_wait_success():
    spi, transport = make_spi()
    transport.queue += b"\x01\x01\x00"
    spi.spi_wait(0x05, 0x01, 0x00, 10)
    assert spi.cs_mode == CsMode.AUTO
    assert len(transport.queue) == 0


def test_spi_wait_timeout():
    spi, transport = make_spi()
    transport.fill = 0x01
    with pytest.raises(SpiTimeoutError):
        spi.spi_wait(0x05, 0x01, 0x00, 3)
    assert spi.cs_mode == CsMode.AUTO