"""CHIP-8 interpreter: machine state, decode/dispatch engine and front ends."""

from .config import DEFAULT_QUIRKS, EmulatorConfig
from .disassembler import Chip8Disassembler
from .emulator import Chip8Emulator, EngineState, load_rom_file
from .errors import (
    Chip8Error,
    DecodeError,
    EmulatorCrashedError,
    KeyIndexError,
    MemoryAccessError,
    RomLoadError,
    RomTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from .machine import CallStack, Machine

__version__ = "0.1.0"

__all__ = [
    "CallStack",
    "Chip8Disassembler",
    "Chip8Emulator",
    "Chip8Error",
    "DEFAULT_QUIRKS",
    "DecodeError",
    "EmulatorConfig",
    "EmulatorCrashedError",
    "EngineState",
    "KeyIndexError",
    "Machine",
    "MemoryAccessError",
    "RomLoadError",
    "RomTooLargeError",
    "StackOverflowError",
    "StackUnderflowError",
    "load_rom_file",
]
