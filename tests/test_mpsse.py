import pytest

from fpgabits.mpsse import (
    DIS_DIV_5,
    EN_DIV_5,
    GET_BITS_HIGH,
    GET_BITS_LOW,
    SEND_IMMEDIATE,
    SET_BITS_HIGH,
    SET_BITS_LOW,
    TCK_DIVISOR,
    BitMode,
    CableConfig,
    ChipType,
    FtdiTransport,
    MpsseEngine,
    MpsseError,
    compute_prescaler,
    format_frequency,
)


class FakeTransport(FtdiTransport):
    def __init__(self, chip_type=ChipType.FT2232H, max_packet_size=64,
                 short_write=False):
        self.chip_type = chip_type
        self.max_packet_size = max_packet_size
        self.short_write = short_write
        self.written = []
        self.calls = []
        self.responses = []

    def write_data(self, data):
        self.written.append(bytes(data))
        return len(data) - 1 if self.short_write else len(data)

    def read_data(self, length):
        self.calls.append(("read", length))
        if self.responses:
            return self.responses.pop(0)[:length]
        return bytes(length)

    def set_bitmode(self, mask, mode):
        self.calls.append(("bitmode", mask, mode))

    def set_baudrate(self, baudrate):
        self.calls.append(("baudrate", baudrate))

    def set_latency_timer(self, latency):
        self.calls.append(("latency", latency))

    def usb_reset(self):
        self.calls.append(("reset",))

    def purge(self):
        self.calls.append(("purge",))


def make_engine(**kwargs):
    tr = FakeTransport(**kwargs)
    cable = CableConfig(bit_low_val=0x00, bit_low_dir=0x0B,
                        bit_high_val=0x00, bit_high_dir=0x00)
    return tr, MpsseEngine(tr, cable, 6_000_000)


@pytest.mark.parametrize("base", [12_000_000, 60_000_000])
@pytest.mark.parametrize("clk", [1_000, 100_000, 1_000_000, 2_500_000, 6_000_000, 7_000_000])
def test_prescaler_invariants(base, clk):
    presc, real = compute_prescaler(base, clk)
    assert real <= clk
    assert real == base // ((presc + 1) * 2)
    assert 0 <= presc <= 0xFFFF


def test_prescaler_exact_division():
    assert compute_prescaler(12_000_000, 6_000_000) == (0, 6_000_000)


def test_prescaler_rejects_zero():
    with pytest.raises(ValueError):
        compute_prescaler(12_000_000, 0)


def test_format_frequency_units():
    assert format_frequency(6_000_000) == "6.00MHz"
    assert format_frequency(2_500).endswith("KHz")
    assert format_frequency(500).endswith("Hz")


def test_set_clk_freq_low_uses_divide_by_5():
    tr, eng = make_engine()
    real = eng.set_clk_freq(1_000_000)
    frame = tr.written[-1]
    assert frame[0] == EN_DIV_5
    assert frame[1] == TCK_DIVISOR
    presc = frame[2] | (frame[3] << 8)
    assert real == 12_000_000 // ((presc + 1) * 2)
    assert eng.clk_hz == real
    assert ("purge",) in tr.calls


def test_set_clk_freq_high_limited_to_30mhz():
    tr, eng = make_engine()
    real = eng.set_clk_freq(50_000_000)
    assert tr.written[-1][0] == DIS_DIV_5
    assert real == 30_000_000


def test_set_clk_freq_2232c_has_no_divider_command():
    tr, eng = make_engine(chip_type=ChipType.FT2232C)
    real = eng.set_clk_freq(6_000_000)
    assert tr.written[-1][0] == TCK_DIVISOR
    assert real == 6_000_000


def test_store_splits_on_buffer_size():
    tr, eng = make_engine(max_packet_size=4)
    payload = bytes(range(10))
    eng.store(payload)
    assert [len(w) for w in tr.written] == [4, 4]
    assert eng.pending == 2
    eng.write()
    assert b"".join(tr.written) == payload
    assert eng.pending == 0


def test_write_empty_returns_zero():
    tr, eng = make_engine()
    assert eng.write() == 0
    assert tr.written == []


def test_short_write_raises():
    tr, eng = make_engine(short_write=True)
    eng.store(b"\x01\x02")
    with pytest.raises(MpsseError):
        eng.write()


def test_read_sends_immediate_and_collects_chunks():
    tr, eng = make_engine()
    tr.responses = [b"\xaa", b"\xbb\xcc"]
    eng.store(b"\x11")
    assert eng.read(3) == b"\xaa\xbb\xcc"
    assert tr.written[-1] == bytes([0x11, SEND_IMMEDIATE])


def test_gpio_get_combines_banks():
    tr, eng = make_engine()
    tr.responses = [b"\x34\x12"]
    assert eng.gpio_get() == 0x1234
    assert tr.written[-1] == bytes([GET_BITS_LOW, GET_BITS_HIGH, SEND_IMMEDIATE])


def test_gpio_get_bank_high():
    tr, eng = make_engine()
    tr.responses = [b"\x5a"]
    assert eng.gpio_get_bank(False) == 0x5A
    assert tr.written[-1] == bytes([GET_BITS_HIGH, SEND_IMMEDIATE])


def test_gpio_set_and_clear_both_banks():
    tr, eng = make_engine()
    eng.gpio_set(0x0102)
    assert tr.written[-1] == bytes([SET_BITS_LOW, 0x02, 0x0B, SET_BITS_HIGH, 0x01, 0x00])
    eng.gpio_clear(0x0002)
    assert tr.written[-1] == bytes([SET_BITS_LOW, 0x00, 0x0B])
    assert eng.cable.bit_high_val == 0x01


def test_gpio_bank_operations():
    tr, eng = make_engine()
    eng.gpio_set_bank(0x08, True)
    assert eng.cable.bit_low_val == 0x08
    eng.gpio_clear_bank(0x08, True)
    assert eng.cable.bit_low_val == 0x00
    eng.gpio_write_bank(0x40, False)
    assert tr.written[-1] == bytes([SET_BITS_HIGH, 0x40, 0x00])


def test_gpio_write_full():
    tr, eng = make_engine()
    eng.gpio_write(0xA55A)
    assert tr.written[-1] == bytes([SET_BITS_LOW, 0x5A, 0x0B, SET_BITS_HIGH, 0xA5, 0x00])


def test_direction_helpers_only_update_cable():
    tr, eng = make_engine()
    eng.gpio_set_dir(0xF00F)
    assert (eng.cable.bit_low_dir, eng.cable.bit_high_dir) == (0x0F, 0xF0)
    eng.gpio_set_input(0x1001)
    assert (eng.cable.bit_low_dir, eng.cable.bit_high_dir) == (0x0E, 0xE0)
    eng.gpio_set_output(0x0100)
    assert eng.cable.bit_high_dir == 0xE1
    eng.gpio_set_input_bank(0x02, True)
    assert eng.cable.bit_low_dir == 0x0C
    eng.gpio_set_output_bank(0x80, True)
    assert eng.cable.bit_low_dir == 0x8C
    eng.gpio_set_dir_bank(0x33, False)
    assert eng.cable.bit_high_dir == 0x33
    assert tr.written == []


def test_cable_is_copied():
    tr = FakeTransport()
    cable = CableConfig(bit_low_val=0, bit_low_dir=0)
    eng = MpsseEngine(tr, cable, 1_000_000)
    eng.gpio_set_dir(0xFFFF)
    assert cable.bit_low_dir == 0


@pytest.mark.parametrize("chip,expected_len", [(ChipType.FT2232H, 6), (ChipType.FT4232H, 3)])
def test_init_mpsse_sequence(chip, expected_len):
    tr, eng = make_engine(chip_type=chip)
    eng.init(1, 0xFB, BitMode.MPSSE)
    assert tr.calls[:5] == [
        ("reset",),
        ("bitmode", 0x00, BitMode.RESET),
        ("purge",),
        ("latency", 1),
        ("bitmode", 0xFB, BitMode.MPSSE),
    ]
    last = tr.written[-1]
    assert len(last) == expected_len
    assert last[:3] == bytes([SET_BITS_LOW, 0x00, 0x0B])


def test_init_bitbang_sends_nothing():
    tr, eng = make_engine()
    eng.init(1, 0x07, BitMode.BITBANG)
    assert tr.written == []
    assert ("bitmode", 0x07, BitMode.BITBANG) in tr.calls


def test_close_resets_bitmode():
    tr, eng = make_engine()
    with eng:
        pass
    assert tr.calls == [("bitmode", 0, BitMode.RESET), ("reset",), ("purge",)]