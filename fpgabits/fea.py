"""Reader for feature-row / FEAbits (.fea) files."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

from .bits import bit_to_val

# FEAbits fields
_FEA_I2C_DG_FIL_EN = 1 << 0
_FEA_MY_ASSP_EN = 1 << 4
_FEA_PROG_PERSIST = 1 << 5
_FEA_INITN_PERSIST = 1 << 6
_FEA_DONE_PERSIST = 1 << 7
_FEA_JTAG_PERSIST = 1 << 8
_FEA_SSPI_PERSIST = 1 << 9
_FEA_I2C_PERSIST = 1 << 10
_FEA_MSPI_PERSIST = 1 << 11
_FEA_I2C_DG_RANGE_SEL = 1 << 15
_FEA_VERSION_RB_PROT = 1 << 16

# Feature row (upper word) fields
_FEATURE_SFDP_CONT_FAIL = 1 << 14
_FEATURE_SFDP_EN = 1 << 15
_FEATURE_BULK_ERASE_DISABLE = 1 << 16
_FEATURE_32BIT_SPIM = 1 << 17
_FEATURE_MCLK_BYPASS = 1 << 18
_FEATURE_LSBF = 1 << 19
_FEATURE_RX_EDGE = 1 << 20
_FEATURE_TX_EDGE = 1 << 21
_FEATURE_CPOL = 1 << 22
_FEATURE_CPHA = 1 << 23
_FEATURE_EBR_ENABLE = 1 << 26
_FEATURE_SSPI_AUTO = 1 << 28
_FEATURE_CPU = 1 << 29

_ROW_BITS = 96


def _enabled(flag: int) -> str:
    return "Enabled" if flag else "Disabled"


def _yes(flag: int) -> str:
    return "Yes" if flag else "No"


def _boot_mode(feabits: int) -> str:
    mode = (feabits >> 12) & 0x07
    if not feabits & _FEA_MSPI_PERSIST:
        if mode == 0:
            return "Dual Boot, CFG0 - CFG1"
        if mode == 1:
            return "Dual Boot, CFG1 - CFG0"
        if mode == 3:
            return "Single Boot, CFG0"
        if mode == 4:
            return "Single Boot, CFG1"
        if mode == 5:
            return "Dual Boot, Boot from former bitstream first"
        if mode == 7:
            return "Dual Boot, Boot from latter bitstream first"
        if mode & 0x03 == 2:
            return "Dual Boot, No Boot"
        return "Unknown boot sequence selection"
    if mode == 0:
        return "Dual Boot, CFG0 - Ext"
    if mode & 0x03 == 1:
        return "Single Boot, Ext"
    if mode == 2:
        return "Dual Boot, Ext - CFG0"
    if mode & 0x03 == 3:
        return "Dual Boot, Ext - Ext"
    if mode == 4:
        return "Dual Boot, CFG1 - Ext"
    if mode == 6:
        return "Dual Boot, Ext - CFG1"
    return "Unknown boot sequence selection"


def _flash_protection(feabits: int) -> str:
    prot = (feabits >> 1) & 0x07
    if prot == 0:
        return "None"
    parts = []
    if prot & 0x04:
        parts.append("CFG0 & CFG1")
    if prot & 0x02:
        parts.append("Feature, Security Keys")
    if prot & 0x01:
        parts.append("All UFMs")
    return " ".join(parts)


@dataclass(frozen=True)
class FeaBits:
    """Feature row (three 32-bit words, least significant first) and FEAbits."""

    features_row: tuple[int, int, int]
    feabits: int

    def describe(self) -> str:
        """Return a human readable breakdown of every field."""
        r0, r1, r2 = self.features_row
        fb = self.feabits
        lines = [
            f"Feature Row: [0x{r2:08x}{r1:08x}{r0:08x}]",
            f"\tCore Clock Select     : 0x{(r2 >> 30) & 0x03:x}",
            f"\tCPU                   : {1 if r2 & _FEATURE_CPU else 0}",
            f"\tSSPI Auto             : {_enabled(r2 & _FEATURE_SSPI_AUTO)}",
            f"\tReserved Zero (1)     : 0x{(r2 >> 27) & 0x01:x}",
            f"\tEBR Enable            : {_yes(r2 & _FEATURE_EBR_ENABLE)}",
            f"\tHSE Clock Select      : 0x{(r2 >> 24) & 0x03:x}",
            f"\tCPHA                  : {_enabled(r2 & _FEATURE_CPHA)}",
            f"\tCPOL                  : {_enabled(r2 & _FEATURE_CPOL)}",
            f"\tTx Edge               : {_enabled(r2 & _FEATURE_TX_EDGE)}",
            f"\tRx Edge               : {_enabled(r2 & _FEATURE_RX_EDGE)}",
            f"\tLSBF                  : {_enabled(r2 & _FEATURE_LSBF)}",
            f"\tMClock Bypass         : {_enabled(r2 & _FEATURE_MCLK_BYPASS)}",
            f"\t32-bit SPIM           : {_enabled(r2 & _FEATURE_32BIT_SPIM)}",
            f"\tBulk Erase Disable    : {_yes(r2 & _FEATURE_BULK_ERASE_DISABLE)}",
            f"\tSFDP Enable           : {_yes(r2 & _FEATURE_SFDP_EN)}",
            f"\tSFDP Continue on Fail : {_yes(r2 & _FEATURE_SFDP_CONT_FAIL)}",
            f"\tReserved Zero (2)     : 0x{(r2 >> 12) & 0x03:x}",
            f"\tSlave Idle Timer Count: {(r2 >> 8) & 0x0F}",
            f"\tMaster Timer Count    : {(r2 >> 4) & 0x0F}",
            f"\tMaster Retry Count    : {(r2 >> 2) & 0x03}",
            f"\tReserved Zero (2)     : 0x{r2 & 0x03:x}",
            f"\tDual Boot Address     : 0x{(r1 >> 16) & 0xFFFF:x}",
            f"\tI2C Slave Address     : 0x{(r1 >> 8) & 0xFF:x}",
            f"\tCustom Trace ID       : 0x{r1 & 0xFF:x}",
            f"\tCustom ID Code        : 0x{r0:x}",
            "",
            f"FEAbits: [0x{fb:08x}]",
            f"\tReserved Zero (16)    : 0x{(fb >> 17) & 0xFFFF:x}",
            f"\tRollback Protection   : {_enabled(fb & _FEA_VERSION_RB_PROT)}",
            "\tI2C Deglitch Range    : "
            + ("(1) 16 to 50 ns" if fb & _FEA_I2C_DG_RANGE_SEL else "(0) 8 to 25 ns"),
            f"\tBoot Mode             : {_boot_mode(fb)}",
            f"\tMSPI Enable           : {_yes(fb & _FEA_MSPI_PERSIST)}",
            f"\tI2C Disable           : {_yes(fb & _FEA_I2C_PERSIST)}",
            f"\tSSPI Disable          : {_yes(fb & _FEA_SSPI_PERSIST)}",
            f"\tJTAG Disable          : {_yes(fb & _FEA_JTAG_PERSIST)}",
            f"\tDONE Enable           : {_yes(fb & _FEA_DONE_PERSIST)}",
            f"\tINIT Enable           : {_yes(fb & _FEA_INITN_PERSIST)}",
            f"\tPROGRAM Disable       : {_yes(fb & _FEA_PROG_PERSIST)}",
            f"\tCustom ID Enable      : {_yes(fb & _FEA_MY_ASSP_EN)}",
            f"\tFlash Protection      : {_flash_protection(fb)}",
            f"\tI2C Deglitch Filter   : {_enabled(fb & _FEA_I2C_DG_FIL_EN)}",
        ]
        return "\n".join(lines)


def _data_lines(text: str) -> Iterator[str]:
    """Yield lines starting with '0' or '1', stopping at the first empty line."""
    for raw in text.split("\n"):
        if not raw:
            return
        line = raw[:-1] if raw.endswith("\r") else raw
        if line[:1] in ("0", "1"):
            yield line


def _check_binary(line: str) -> None:
    if set(line) - {"0", "1"}:
        raise ValueError(f"invalid binary digits in line: {line!r}")


def parse_fea(text: str) -> Optional[FeaBits]:
    """Parse .fea content; return None when it holds no data lines."""
    lines = list(_data_lines(text))
    if not lines:
        return None
    if len(lines) < 2:
        raise ValueError("FEAbits line missing after feature row")

    row, feabits_line = lines[0], lines[1]
    _check_binary(row)
    _check_binary(feabits_line)
    if len(row) > _ROW_BITS:
        raise ValueError(f"feature row longer than {_ROW_BITS} bits")

    words = [0, 0, 0]
    for i, char in enumerate(row):
        words[2 - i // 32] |= int(char) << (31 - i % 32)

    feabits = bit_to_val(feabits_line) & 0xFFFFFFFF
    return FeaBits(features_row=(words[0], words[1], words[2]), feabits=feabits)