"""
CHIP-8 machine state.
Memory image, register file, call stack, timers, keypad latch and framebuffer,
owned together by one Machine so independent instances never share state.
"""

import numpy as np
from typing import List, Union

from .errors import (
    MemoryAccessError,
    RomTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)

# CHIP-8 System Constants
MEMORY_SIZE = 4096
DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
REGISTER_COUNT = 16
STACK_SIZE = 16
KEYPAD_SIZE = 16
PROGRAM_START = 0x200
FONT_START = 0x000
FONT_SIZE = 80
GLYPH_SIZE = 5
FLAG_REGISTER = 0xF
MAX_ROM_SIZE = MEMORY_SIZE - PROGRAM_START

# CHIP-8 Font set (hexadecimal digits 0-F)
CHIP8_FONT = np.array([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80   # F
], dtype=np.uint8)
CHIP8_FONT.flags.writeable = False


class CallStack:
    """
    Bounded stack of 16-bit return addresses.
    Pushing onto a full stack or popping an empty one raises instead of
    wrapping into adjacent state.
    """

    def __init__(self, capacity: int = STACK_SIZE):
        self.capacity = capacity
        self._entries: List[int] = []

    def push(self, address: int):
        if len(self._entries) >= self.capacity:
            raise StackOverflowError(
                f"Stack overflow: {self.capacity} return addresses already stored"
            )
        self._entries.append(address & 0xFFFF)

    def pop(self) -> int:
        if not self._entries:
            raise StackUnderflowError("RET with empty stack")
        return self._entries.pop()

    @property
    def pointer(self) -> int:
        """Index of the most recent entry, -1 when empty"""
        return len(self._entries) - 1

    def entries(self) -> List[int]:
        return list(self._entries)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class Machine:
    """Complete CHIP-8 machine state for one interpreter instance."""

    def __init__(self, display_width: int = DISPLAY_WIDTH, display_height: int = DISPLAY_HEIGHT):
        self.display_width = display_width
        self.display_height = display_height
        self.reset()

    def reset(self):
        """Zero everything, reload the glyph table and point PC at the program area"""
        self.memory = np.zeros(MEMORY_SIZE, dtype=np.uint8)
        self.memory[FONT_START:FONT_START + FONT_SIZE] = CHIP8_FONT
        self.registers = np.zeros(REGISTER_COUNT, dtype=np.uint8)
        self.index_register = 0
        self.program_counter = PROGRAM_START
        self.stack = CallStack(STACK_SIZE)
        self.delay_timer = 0
        self.sound_timer = 0
        self.keypad = np.zeros(KEYPAD_SIZE, dtype=bool)
        self.display = np.zeros((self.display_height, self.display_width), dtype=np.uint8)

    def load_program(self, program: bytes) -> int:
        """Copy a program image verbatim to PROGRAM_START, returns its size"""
        if len(program) > MAX_ROM_SIZE:
            raise RomTooLargeError(len(program), MAX_ROM_SIZE)
        data = np.frombuffer(bytes(program), dtype=np.uint8)
        self.memory[PROGRAM_START:PROGRAM_START + len(data)] = data
        return len(data)

    # Memory access

    def _check_address(self, address: int):
        if not 0 <= address < MEMORY_SIZE:
            raise MemoryAccessError(address)

    def read_byte(self, address: int) -> int:
        self._check_address(address)
        return int(self.memory[address])

    def read_bytes(self, address: int, count: int) -> np.ndarray:
        if count == 0:
            return self.memory[0:0].copy()
        self._check_address(address)
        self._check_address(address + count - 1)
        return self.memory[address:address + count].copy()

    def write_byte(self, address: int, value: int):
        self._check_address(address)
        if FONT_START <= address < FONT_START + FONT_SIZE:
            raise MemoryAccessError(address, "write into read-only glyph table")
        self.memory[address] = value & 0xFF

    def fetch(self, address: int) -> int:
        """Big-endian instruction word at address"""
        self._check_address(address)
        self._check_address(address + 1)
        return (int(self.memory[address]) << 8) | int(self.memory[address + 1])

    # Registers

    def get_register(self, index: int) -> int:
        return int(self.registers[index])

    def set_register(self, index: int, value: Union[int, np.integer]):
        self.registers[index] = int(value) & 0xFF

    def set_flag(self, value: int):
        self.registers[FLAG_REGISTER] = int(value) & 0xFF

    # Timers

    def tick_timers(self):
        """One timer decrement, each timer stops at zero"""
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1

    # Framebuffer

    def clear_display(self):
        self.display.fill(0)

    def draw_sprite(self, x: int, y: int, rows: np.ndarray, clip: bool = False) -> bool:
        """
        XOR sprite rows onto the framebuffer at raw coordinates (x, y).
        Each pixel wraps modulo the display size per axis; with clip=True only
        the origin wraps and pixels past the edge are dropped.
        Returns True if any set pixel was cleared.
        """
        width = self.display_width
        height = self.display_height
        if clip:
            x %= width
            y %= height

        collision = False
        for row, sprite_byte in enumerate(rows):
            sprite_byte = int(sprite_byte)
            if not sprite_byte:
                continue
            pixel_y = y + row
            if clip and pixel_y >= height:
                break
            pixel_y %= height

            for col in range(8):
                if not sprite_byte & (0x80 >> col):
                    continue
                pixel_x = x + col
                if clip and pixel_x >= width:
                    break
                pixel_x %= width

                if self.display[pixel_y, pixel_x]:
                    collision = True
                self.display[pixel_y, pixel_x] ^= 1

        return collision
