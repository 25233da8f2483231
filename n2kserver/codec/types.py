"""
Codec-level type definitions.

This module contains types and enums that belong to the codec layer:
- WireFormat, the closed set of output encodings a client can select
- DEFAULT_FORMAT
"""

from enum import StrEnum


class WireFormat(StrEnum):
    ACTISENSE = "actisense"                      # Canonical serial text
    ACTISENSE_N2K_ASCII = "actisense-n2k-ascii"  # Actisense W2K-1 / NGX N2K ASCII
    YDRAW = "ydraw"                              # Yacht Devices RAW
    PCDIN = "pcdin"                              # SeaSmart $PCDIN
    MXPGN = "mxpgn"                              # Shipmodul MiniPlex $MXPGN
    IKONVERT = "ikonvert"                        # Digital Yacht iKonvert !PDGY
    CANDUMP1 = "candump1"                        # candump, angle bracket style
    CANDUMP2 = "candump2"                        # candump, default style
    CANDUMP3 = "candump3"                        # candump -L log style
    CANBOAT = "canboat"                          # Pass-through of the bus text

    @classmethod
    def values(cls) -> list[str]:
        return [f.value for f in cls]


DEFAULT_FORMAT = WireFormat.ACTISENSE_N2K_ASCII
