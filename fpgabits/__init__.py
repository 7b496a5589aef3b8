"""FPGA configuration file parsers (fea, ihex, fs, jed) and FTDI MPSSE, JTAG bitbang, SPI and iCE40 logic."""

__version__ = "0.1.0"