"""Configuration of iCE40 FPGAs through an FTDI SPI master."""

from __future__ import annotations

import logging
import time
from typing import Callable

from .ftdispi import CsMode, FtdiSpi

_log = logging.getLogger(__name__)

_CDONE_TRIES = 1000
_CDONE_POLL_S = 0.012
_CRAM_CHUNK = 256
_DUMMY_BYTES = 12


class Ice40:
    """iCE40 in SPI slave mode: CRESET_B and CDONE on FTDI GPIOs."""

    def __init__(self, spi: FtdiSpi, rst_pin: int, done_pin: int,
                 verbose: bool = False,
                 sleep: Callable[[float], None] = time.sleep):
        self._spi = spi
        self.rst_pin = rst_pin
        self.done_pin = done_pin
        self.verbose = verbose
        self._sleep = sleep
        spi.gpio_set_input(done_pin)
        spi.gpio_set_output(rst_pin)

    def _done(self) -> bool:
        return bool(self._spi.gpio_get_bank(True) & self.done_pin)

    def _wait_cdone(self) -> bool:
        tries = _CDONE_TRIES
        while True:
            tries -= 1
            self._sleep(_CDONE_POLL_S)
            if self._done() or tries <= 0:
                break
        if tries == 0:
            _log.error("CDONE: FAIL")
            return False
        _log.info("CDONE: DONE")
        return True

    def reset(self) -> bool:
        """Pulse CRESET_B and wait for CDONE; return whether it rose."""
        self._spi.gpio_clear(self.rst_pin)
        self._sleep(0.001)
        self._spi.gpio_set(self.rst_pin)
        self._sleep(0.012)
        return self._wait_cdone()

    def program_cram(self, data: bytes) -> bool:
        """Load a bitstream into configuration RAM; return whether CDONE rose."""
        spi = self._spi
        spi.set_mode(3)
        spi.set_cs_mode(CsMode.MANUAL)

        spi.clear_cs()
        spi.gpio_clear(self.rst_pin)
        self._sleep(0.0001)
        spi.gpio_set(self.rst_pin)
        self._sleep(0.002)

        for addr in range(0, len(data), _CRAM_CHUNK):
            spi.spi_put(bytes(data[addr:addr + _CRAM_CHUNK]), False)
            if self.verbose:
                _log.debug("Loading to CRAM: %d/%d", addr, len(data))

        # 48 to 100 dummy clocks
        spi.spi_put(bytes(_DUMMY_BYTES), False)

        self._sleep(0.012)
        done = self._wait_cdone()
        spi.set_cs()
        return done

    def id_code(self) -> int:
        """Not available in SPI slave mode."""
        return 0

    def prepare_flash_access(self) -> bool:
        """Hold the FPGA in reset so the flash can be accessed."""
        self._spi.gpio_clear(self.rst_pin)
        self._sleep(0.001)
        return True

    def post_flash_access(self) -> bool:
        """Release the FPGA; return whether it configured itself."""
        self.reset()
        return self._done()