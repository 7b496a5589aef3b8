# fpgabits

Readers for FPGA configuration files, plus the probe-side logic used to
drive FTDI chips: a buffered MPSSE command engine, JTAG in bit-bang mode,
an SPI master, and iCE40 configuration-RAM loading.

The package has no dependencies outside the standard library.

## File formats

- `fpgabits.fea`: `parse_fea(text)` reads a feature-row / FEAbits file.
  It returns a `FeaBits` (`features_row`, three 32-bit words with the least
  significant first, and `feabits`). It returns `None` when the text holds
  no data lines. `FeaBits.describe()` gives a field-by-field breakdown.
  Malformed input raises `ValueError`.
- `fpgabits.ihex`: `parse_ihex(text, reverse_order=False)` reads Intel HEX
  data (00) and end-of-file (01) records. It returns an `IhexImage` with a
  flat `data` image, its `bit_length`, and the contiguous `sections`
  (`IhexSection` with `addr`, `data` and `length`). With `reverse_order`
  every byte is stored bit-reversed. Errors raise `IhexError`.
- `fpgabits.fs`: `parse_fs(text, reverse_byte=False)` reads an ASCII `.fs`
  bitstream. It returns an `FsBitstream` with the decoded `header` fields
  (`idcode`, `CheckSum`, `Compress`, `CRCCheck`, `ConfDataLength` and
  others), the raw `data` bytes, `idcode`, `compressed` and the computed
  16-bit configuration-data `checksum`. `bit_length()` gives the size in
  bits. Errors raise `FsError`. A missing or unknown IDCODE is logged as a
  warning through `logging`.
- `fpgabits.jed`: `parse_jed(data)` accepts `str` or `bytes` in JEDEC
  format. It returns a `JedFile` holding the fuse `sections` (`JedSection`
  with `offset`, `data`, `length` and the preceding `note`), the fuse list,
  counts, feature row and FEAbits, and the user code. It raises `JedError`
  when the STX marker is missing, when a field is unknown, when the fuse
  checksum does not match, or when the fuse count differs from the fuses
  given. `JedFile.describe()` gives a text summary.
- `fpgabits.bits`: `bit_to_val(bits)` converts an MSB-first `'1'`/`'0'`
  string to an integer. `reverse_byte(value)` mirrors the bits of a byte.

```python
from fpgabits.ihex import parse_ihex

with open("firmware.hex") as f:
    image = parse_ihex(f.read(), reverse_order=False)
for section in image.sections:
    print(hex(section.addr), section.length)
```

```python
from fpgabits.fs import parse_fs

with open("design.fs") as f:
    bitstream = parse_fs(f.read(), reverse_byte=True)
print(bitstream.header["idcode"], hex(bitstream.checksum))
```

## Probe logic

USB access goes through an object you supply. Subclass
`fpgabits.mpsse.FtdiTransport` and implement `write_data`, `read_data`,
`set_bitmode`, `set_baudrate`, `set_latency_timer`, `usb_reset` and
`purge`. Each of them should raise when it fails. Set the class attributes
`chip_type` (a `ChipType`), `max_packet_size`, `product`, `vid` and `pid`
to describe the device.

- `fpgabits.mpsse.MpsseEngine(transport, cable, clk_hz, verbose=False)`
  buffers MPSSE commands through `store`, `write` and `read`. It sets up the
  device with `init(latency, bitmask_mode, mode)` and programs the TCK
  divisor with `set_clk_freq`, which returns the frequency obtained. It
  also drives the two GPIO banks: `gpio_get`, `gpio_set`, `gpio_clear`,
  `gpio_write`, `gpio_set_dir`, `gpio_set_input`, `gpio_set_output` and
  their `*_bank` forms. Pin states live in a `CableConfig`. The engine works
  as a context manager, and `close()` resets the bit mode. A short write
  raises `MpsseError`. `compute_prescaler(base_freq, clk_hz)` and
  `format_frequency(hz)` are available on their own.
- `fpgabits.jtag_bitbang.FtdiJtagBitbang(transport, pins, clk_hz)` shifts
  JTAG on four data pins given as `JtagPins`. It provides `write_tms`,
  `write_tdi` (which returns the TDO bits when `read=True`), `toggle_clk`
  and `flush`. The clock is capped at 3 MHz.
- `fpgabits.ftdispi.FtdiSpi(transport, cable=None, clk_hz=6_000_000, ...)`
  is an SPI master. It supports modes 0 to 3 (`set_mode`) and automatic or
  manual chip select (`CsMode`). Transfers go through `write_and_read`,
  `write_then_read`, `spi_put`, `spi_put_cmd` and `spi_wait`. When the
  status never matches, `spi_wait` raises `SpiTimeoutError`.
- `fpgabits.ice40.Ice40(spi, rst_pin, done_pin)` loads a bitstream into
  iCE40 configuration RAM with `program_cram(data)` and pulses CRESET_B with
  `reset()`. Both wait for CDONE and return whether it rose. The methods
  `prepare_flash_access` and `post_flash_access` hold the FPGA in reset and
  release it around external flash access.

```python
from fpgabits.mpsse import CableConfig, ChipType, FtdiTransport, MpsseEngine


class RecordingTransport(FtdiTransport):
    chip_type = ChipType.FT2232H
    max_packet_size = 512

    def __init__(self):
        self.sent = []

    def write_data(self, data):
        self.sent.append(bytes(data))
        return len(data)

    def read_data(self, length):
        return bytes(length)

    def set_bitmode(self, mask, mode): pass
    def set_baudrate(self, baudrate): pass
    def set_latency_timer(self, latency): pass
    def usb_reset(self): pass
    def purge(self): pass


with MpsseEngine(RecordingTransport(), CableConfig(), 1_000_000) as engine:
    print(engine.set_clk_freq(1_000_000))
```

## What it does not do

- It ships no USB backend. Every hardware operation goes through the
  `FtdiTransport` you provide.
- It has no command-line tool and no device database beyond the IDCODE
  table that `parse_fs` uses to size the checksum.
- JTAG is provided only in bit-bang mode. There is no TAP state machine or
  device chain scanning on top of it.
- It does not program Gowin devices or SPI flash chips. `Ice40` loads
  configuration RAM only.