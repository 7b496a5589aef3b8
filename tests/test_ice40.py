from fpgabits.ftdispi import CsMode, FtdiSpi
from fpgabits.ice40 import Ice40
from fpgabits.mpsse import MPSSE_DO_WRITE, MPSSE_WRITE_NEG, ChipType, FtdiTransport

RST = 0x40
DONE = 0x80


class FakeTransport(FtdiTransport):
    chip_type = ChipType.FT2232H
    max_packet_size = 512

    def __init__(self, fill=0x00):
        self.fill = fill
        self.writes = []

    def write_data(self, data):
        self.writes.append(bytes(data))
        return len(data)

    def read_data(self, length):
        return bytes([self.fill]) * length

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


def make_ice40(done_high=True):
    transport = FakeTransport(fill=DONE if done_high else 0x00)
    spi = FtdiSpi(transport)
    sleeps = []
    ice = Ice40(spi, RST, DONE, sleep=sleeps.append)
    transport.writes.clear()
    return ice, spi, transport, sleeps


def test_pin_directions():
    _, spi, _, _ = make_ice40()
    assert spi.cable.bit_low_dir & DONE == 0
    assert spi.cable.bit_low_dir & RST == RST


def test_reset_done():
    ice, spi, _, _ = make_ice40(True)
    assert ice.reset() is True
    assert spi.cable.bit_low_val & RST == RST


def test_reset_timeout():
    ice, _, _, sleeps = make_ice40(False)
    assert ice.reset() is False
    assert len(sleeps) > 1000


def test_id_code():
    ice, _, _, _ = make_ice40()
    assert ice.id_code() == 0


def test_prepare_flash_access_holds_reset():
    ice, spi, _, _ = make_ice40()
    assert ice.prepare_flash_access() is True
    assert spi.cable.bit_low_val & RST == 0


def test_post_flash_access():
    ice, _, _, _ = make_ice40(True)
    assert ice.post_flash_access() is True
    ice_low, _, _, _ = make_ice40(False)
    assert ice_low.post_flash_access() is False


def test_program_cram_sends_data_and_dummy():
    ice, spi, transport, _ = make_ice40(True)
    data = bytes(i & 0xFF for i in range(300))
    assert ice.program_cram(data) is True

    opcode = MPSSE_DO_WRITE | MPSSE_WRITE_NEG
    frames = [w for w in transport.writes if w[0] == opcode]
    payload = b""
    for frame in frames:
        length = frame[1] + (frame[2] << 8) + 1
        assert len(frame) == length + 3
        payload += frame[3:]
    assert payload == data + bytes(12)
    assert spi.cs_mode == CsMode.MANUAL
    assert spi.cable.bit_low_val & spi.cs_bits == spi.cs_bits
    assert spi.cable.bit_low_val & spi.clk == spi.clk