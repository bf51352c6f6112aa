"""
Exceptions raised by the CHIP-8 interpreter.
Every fault is fatal to the running machine: nothing here is retried.
"""

from typing import Optional


class Chip8Error(Exception):
    """Base class for all interpreter failures"""


class DecodeError(Chip8Error):
    """Instruction word matches no defined encoding"""

    def __init__(self, instruction: int, address: Optional[int] = None):
        self.instruction = instruction
        self.address = address
        if address is None:
            message = f"Unknown instruction 0x{instruction:04X}"
        else:
            message = f"Unknown instruction 0x{instruction:04X} at PC=0x{address:03X}"
        super().__init__(message)


class MemoryAccessError(Chip8Error):
    """Read or write outside the memory image, or a write into the glyph table"""

    def __init__(self, address: int, reason: str = "address out of range"):
        self.address = address
        self.reason = reason
        super().__init__(f"{reason}: 0x{address:04X}")


class KeyIndexError(Chip8Error):
    """Key check on a register value with no matching key"""

    def __init__(self, key: int, address: Optional[int] = None):
        self.key = key
        self.address = address
        message = f"Key index out of range: 0x{key:02X}"
        if address is not None:
            message += f" at PC=0x{address:03X}"
        super().__init__(message)


class StackOverflowError(Chip8Error):
    """CALL with the call stack already full"""


class StackUnderflowError(Chip8Error):
    """RET with an empty call stack"""


class RomLoadError(Chip8Error):
    """Program image could not be read or placed into memory"""


class RomTooLargeError(RomLoadError):
    def __init__(self, size: int, capacity: int):
        self.size = size
        self.capacity = capacity
        super().__init__(f"ROM too large: {size} bytes, max {capacity}")


class EmulatorCrashedError(Chip8Error):
    """Step requested on a machine that already faulted"""

    def __init__(self, fault: Optional[BaseException] = None):
        self.fault = fault
        if fault is None:
            super().__init__("Emulator has crashed")
        else:
            super().__init__(f"Emulator has crashed: {fault}")
