[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fpgabits"
version = "0.1.0"
description = "FPGA configuration file parsers and FTDI-based JTAG bitbang, SPI and iCE40 loading logic"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "fpga",
    "jtag",
    "spi",
    "ftdi",
    "mpsse",
    "bitstream",
    "jedec",
    "intel-hex",
    "ice40",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: Scientific/Engineering :: Electronic Design Automation (EDA)",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["fpgabits"]

[tool.pytest.ini_options]
addopts = "-ra"
