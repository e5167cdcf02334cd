"""Shared constants for the ANSL compiler."""

NAME = "anslc"

SOURCE_FILE_EXTENSION = ".ansl"
SYSTEM_LIB_ROOT = "./ansl-systemlib/"

# nisvc-as operand sigils
ABSOLUTE = "$"
RELATIVE = "@"
LABEL = "!"
DECIMAL = "d"

# r1..r12 are the general purpose registers of the target
MAX_REGISTERS = 12
