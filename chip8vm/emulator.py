"""
CHIP-8 interpreter core.
Fetch, decode and execute against a single Machine, one instruction per cycle.
Timers are counted in cycles, pacing against wall-clock time is the caller's job.
"""

import enum
import logging
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np

from .config import EmulatorConfig
from .disassembler import Chip8Disassembler
from .errors import Chip8Error, DecodeError, EmulatorCrashedError, KeyIndexError, RomLoadError
from .machine import (
    FONT_START,
    GLYPH_SIZE,
    KEYPAD_SIZE,
    PROGRAM_START,
    Machine,
)

logger = logging.getLogger(__name__)

RomSource = Union[bytes, bytearray, np.ndarray, str, Path]

# Instructions traced to the debug log after a reset
TRACE_LIMIT = 20


class EngineState(enum.Enum):
    RUNNING = "running"
    AWAITING_KEY = "awaiting_key"


def load_rom_file(filename: Union[str, Path]) -> bytes:
    """Load a ROM file, raising RomLoadError with the OS message on failure"""
    try:
        with open(filename, 'rb') as f:
            return f.read()
    except OSError as e:
        raise RomLoadError(f"Cannot read ROM {filename}: {e.strerror or e}") from e


class Chip8Emulator:
    """
    Single-instance CHIP-8 interpreter.
    Owns its Machine; the keypad, display and sound timer are the only state
    collaborators touch, and only from the driving thread.
    """

    def __init__(self, config: Optional[EmulatorConfig] = None):
        self.config = config or EmulatorConfig()
        self.quirks = self.config.quirks
        self.debug_file = self.config.debug_file
        self.debug_log = []
        self.disassembler = Chip8Disassembler()
        self.machine = Machine(self.config.display_width, self.config.display_height)
        self.rng = np.random.default_rng(self.config.seed)
        self.reset()

    def log_debug(self, message: str):
        """Log debug message to the logger, the in-memory log and the debug file"""
        logger.debug(message)
        self.debug_log.append(message)

        if self.debug_file:
            with open(self.debug_file, 'a', encoding='utf-8') as f:
                f.write(message + '\n')

    def reset(self):
        """Reset the emulator to initial state"""
        self.machine.reset()
        self.state = EngineState.RUNNING
        self.key_register = 0
        self._keys_at_wait = np.zeros(KEYPAD_SIZE, dtype=bool)
        self.cycles = 0
        self.crashed = False
        self.fault: Optional[Chip8Error] = None
        self._infinite_jump_warned = False

        # Instrumentation
        self.stats = {
            'instructions_executed': 0,
            'cycles_executed': 0,
            'display_writes': 0,
            'display_clears': 0,
            'sprite_collisions': 0,
            'timer_sets': 0,
            'sound_activations': 0,
            'key_checks': 0,
            'blocking_key_waits': 0,  # Fx0A instructions executed, not parked polls
            'jumps_taken': 0,
            'subroutine_calls': 0,
            'returns': 0,
            'random_generations': 0,
        }

    @property
    def waiting_for_key(self) -> bool:
        return self.state is EngineState.AWAITING_KEY

    @property
    def sound_active(self) -> bool:
        return self.machine.sound_timer > 0

    def load_rom(self, rom_data: RomSource) -> int:
        """Load a ROM into memory at PROGRAM_START, returns its size"""
        if isinstance(rom_data, (str, Path)):
            rom_bytes = load_rom_file(rom_data)
        elif isinstance(rom_data, np.ndarray):
            rom_bytes = rom_data.astype(np.uint8).tobytes()
        else:
            rom_bytes = bytes(rom_data)

        size = self.machine.load_program(rom_bytes)
        logger.info("Loaded ROM: %d bytes", size)
        if size >= 2:
            first = self.machine.fetch(PROGRAM_START)
            logger.debug("First instruction: 0x%04X (%s)", first,
                         self.disassembler.format_instruction(first))
        return size

    def set_key(self, key: int, pressed: bool):
        """Set key state (0-F)"""
        if not 0 <= key < KEYPAD_SIZE:
            raise ValueError(f"Key must be 0x0-0xF, got {key}")
        self.machine.keypad[key] = pressed

    def release_all_keys(self):
        self.machine.keypad.fill(False)

    def get_display(self) -> np.ndarray:
        """Get current display state as 2D array"""
        return self.machine.display.copy()

    def step(self) -> EngineState:
        """
        Run one cycle and return the engine state afterwards.
        While awaiting a key the cycle only polls the keypad: no fetch,
        no PC change and no timer decrement.
        """
        if self.crashed:
            raise EmulatorCrashedError(self.fault)

        if self.state is EngineState.AWAITING_KEY:
            self._poll_key()
            return self.state

        machine = self.machine
        address = machine.program_counter
        instruction = None
        try:
            instruction = machine.fetch(address)
            machine.program_counter = (address + 2) & 0xFFFF
            self.stats['instructions_executed'] += 1
            self._execute_instruction(instruction, address)
        except Chip8Error as e:
            self._crash(e, instruction, address)
            raise

        self.cycles += 1
        self.stats['cycles_executed'] += 1
        if self.cycles % self.config.timer_interval == 0:
            machine.tick_timers()

        return self.state

    def run(self, max_cycles: Optional[int] = 1000) -> int:
        """
        Run until max_cycles instructions have executed or the engine parks
        waiting for a key. None means no cycle limit.
        Returns the number of instructions executed.
        """
        start = self.cycles
        while max_cycles is None or self.cycles - start < max_cycles:
            if self.step() is EngineState.AWAITING_KEY:
                break
        return self.cycles - start

    def _crash(self, error: Chip8Error, instruction: Optional[int], address: int):
        self.crashed = True
        self.fault = error
        if instruction is None:
            logger.error("Fetch failed at PC=0x%03X: %s", address, error)
            self.log_debug(f"ERROR: {error}")
        else:
            listing = self.disassembler.format_instruction(instruction)
            logger.error("Fault executing 0x%04X (%s) at PC=0x%03X: %s",
                         instruction, listing, address, error)
            self.log_debug(f"ERROR: {error} [{listing}]")

    def _poll_key(self):
        """Complete a pending Fx0A once some key goes from released to pressed"""
        keypad = self.machine.keypad
        newly_pressed = np.flatnonzero(keypad & ~self._keys_at_wait)
        if newly_pressed.size:
            key = int(newly_pressed[0])
            self.machine.set_register(self.key_register, key)
            self.state = EngineState.RUNNING
            self.log_debug(f"Key 0x{key:X} pressed, stored in V{self.key_register:X}")
        else:
            # Forget released keys so pressing them again counts
            self._keys_at_wait &= keypad

    def _execute_instruction(self, instruction: int, address: int):
        """Decode and execute a single CHIP-8 instruction"""
        m = self.machine

        opcode = (instruction & 0xF000) >> 12
        x = (instruction & 0x0F00) >> 8
        y = (instruction & 0x00F0) >> 4
        n = instruction & 0x000F
        kk = instruction & 0x00FF
        nnn = instruction & 0x0FFF

        if self.stats['instructions_executed'] <= TRACE_LIMIT and (
                self.debug_file or logger.isEnabledFor(logging.DEBUG)):
            self.log_debug(f"Executing: 0x{instruction:04X} at PC=0x{address:03X} "
                           f"({self.disassembler.format_instruction(instruction)})")

        if opcode == 0x0:
            if instruction == 0x00E0:  # CLS
                m.clear_display()
                self.stats['display_clears'] += 1
            elif instruction == 0x00EE:  # RET
                m.program_counter = m.stack.pop()
                self.stats['returns'] += 1
            else:
                raise DecodeError(instruction, address)

        elif opcode == 0x1:  # JP addr
            if nnn == address and not self._infinite_jump_warned:
                logger.warning("Infinite jump detected at PC=0x%03X (further warnings suppressed)", address)
                self._infinite_jump_warned = True
            m.program_counter = nnn
            self.stats['jumps_taken'] += 1

        elif opcode == 0x2:  # CALL addr
            m.stack.push(m.program_counter)
            m.program_counter = nnn
            self.stats['subroutine_calls'] += 1

        elif opcode == 0x3:  # SE Vx, byte
            if m.get_register(x) == kk:
                self._skip()

        elif opcode == 0x4:  # SNE Vx, byte
            if m.get_register(x) != kk:
                self._skip()

        elif opcode == 0x5:  # SE Vx, Vy (low nibble ignored)
            if m.get_register(x) == m.get_register(y):
                self._skip()

        elif opcode == 0x6:  # LD Vx, byte
            m.set_register(x, kk)

        elif opcode == 0x7:  # ADD Vx, byte
            m.set_register(x, m.get_register(x) + kk)

        elif opcode == 0x8:
            self._execute_8xxx(instruction, address, x, y, n)

        elif opcode == 0x9:  # SNE Vx, Vy (low nibble ignored)
            if m.get_register(x) != m.get_register(y):
                self._skip()

        elif opcode == 0xA:  # LD I, addr
            m.index_register = nnn

        elif opcode == 0xB:  # JP V0, addr
            offset_register = (nnn & 0xF00) >> 8 if self.quirks['jumping'] else 0
            m.program_counter = (nnn + m.get_register(offset_register)) & 0xFFFF
            self.stats['jumps_taken'] += 1

        elif opcode == 0xC:  # RND Vx, byte
            random_byte = int(self.rng.integers(0, 256))
            m.set_register(x, random_byte & kk)
            self.stats['random_generations'] += 1

        elif opcode == 0xD:  # DRW Vx, Vy, nibble
            self._draw_sprite(x, y, n)

        elif opcode == 0xE:
            if kk not in (0x9E, 0xA1):
                raise DecodeError(instruction, address)
            key = m.get_register(x)
            if key >= KEYPAD_SIZE:
                raise KeyIndexError(key, address)
            if kk == 0x9E:  # SKP Vx
                if m.keypad[key]:
                    self._skip()
            else:  # SKNP Vx
                if not m.keypad[key]:
                    self._skip()
            self.stats['key_checks'] += 1

        else:
            self._execute_fxxx(instruction, address, x, kk)

    def _execute_8xxx(self, instruction: int, address: int, x: int, y: int, n: int):
        """Register-to-register operations; VF is always written after Vx"""
        m = self.machine
        vx_val = m.get_register(x)
        vy_val = m.get_register(y)

        if n == 0x0:  # LD Vx, Vy
            m.set_register(x, vy_val)
        elif n in (0x1, 0x2, 0x3):  # OR / AND / XOR
            if n == 0x1:
                m.set_register(x, vx_val | vy_val)
            elif n == 0x2:
                m.set_register(x, vx_val & vy_val)
            else:
                m.set_register(x, vx_val ^ vy_val)
            if self.quirks['logic']:
                m.set_flag(0)
        elif n == 0x4:  # ADD Vx, Vy
            result = vx_val + vy_val
            m.set_register(x, result)
            m.set_flag(1 if result > 0xFF else 0)
        elif n == 0x5:  # SUB Vx, Vy
            m.set_register(x, vx_val - vy_val)
            m.set_flag(1 if vx_val > vy_val else 0)
        elif n == 0x6:  # SHR Vx {, Vy}
            source = vy_val if self.quirks['shifting'] else vx_val
            m.set_register(x, source >> 1)
            m.set_flag(source & 0x01)
        elif n == 0x7:  # SUBN Vx, Vy
            m.set_register(x, vy_val - vx_val)
            m.set_flag(1 if vy_val > vx_val else 0)
        elif n == 0xE:  # SHL Vx {, Vy}
            source = vy_val if self.quirks['shifting'] else vx_val
            m.set_register(x, source << 1)
            m.set_flag((source & 0x80) >> 7)
        else:
            raise DecodeError(instruction, address)

    def _execute_fxxx(self, instruction: int, address: int, x: int, kk: int):
        """Timer, keypad and index-register operations"""
        m = self.machine

        if kk == 0x07:  # LD Vx, DT
            m.set_register(x, m.delay_timer)
        elif kk == 0x0A:  # LD Vx, K
            self.state = EngineState.AWAITING_KEY
            self.key_register = x
            self._keys_at_wait = m.keypad.copy()
            self.stats['blocking_key_waits'] += 1
        elif kk == 0x15:  # LD DT, Vx
            m.delay_timer = m.get_register(x)
            self.stats['timer_sets'] += 1
        elif kk == 0x18:  # LD ST, Vx
            m.sound_timer = m.get_register(x)
            self.stats['timer_sets'] += 1
            if m.sound_timer > 0:
                self.stats['sound_activations'] += 1
        elif kk == 0x1E:  # ADD I, Vx
            m.index_register = (m.index_register + m.get_register(x)) & 0xFFFF
        elif kk == 0x29:  # LD F, Vx
            digit = m.get_register(x) & 0xF
            m.index_register = FONT_START + digit * GLYPH_SIZE
        elif kk == 0x33:  # LD B, Vx
            value = m.get_register(x)
            m.write_byte(m.index_register, value // 100)
            m.write_byte(m.index_register + 1, (value // 10) % 10)
            m.write_byte(m.index_register + 2, value % 10)
        elif kk == 0x55:  # LD [I], Vx
            for i in range(x + 1):
                m.write_byte(m.index_register + i, m.get_register(i))
            if self.quirks['memory']:
                m.index_register = (m.index_register + x + 1) & 0xFFFF
        elif kk == 0x65:  # LD Vx, [I]
            values = m.read_bytes(m.index_register, x + 1)
            for i, value in enumerate(values):
                m.set_register(i, value)
            if self.quirks['memory']:
                m.index_register = (m.index_register + x + 1) & 0xFFFF
        else:
            raise DecodeError(instruction, address)

    def _skip(self):
        self.machine.program_counter = (self.machine.program_counter + 2) & 0xFFFF

    def _draw_sprite(self, x_reg: int, y_reg: int, height: int):
        """Draw a sprite at position (Vx, Vy) with given height"""
        m = self.machine
        rows = m.read_bytes(m.index_register, height)
        collision = m.draw_sprite(
            m.get_register(x_reg),
            m.get_register(y_reg),
            rows,
            clip=self.quirks['clipping'],
        )
        m.set_flag(1 if collision else 0)
        if collision:
            self.stats['sprite_collisions'] += 1
        self.stats['display_writes'] += 1

    def get_stats(self) -> Dict[str, int]:
        """Get current instrumentation statistics"""
        return self.stats.copy()

    def print_stats(self):
        """Print current statistics"""
        print("CHIP-8 Emulator Statistics:")
        print("-" * 30)
        for key, value in self.stats.items():
            print(f"{key:25s}: {value}")
