#!/usr/bin/env python3
"""
Command line front end: load a ROM and run it in a window or headless.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import EmulatorConfig, resolve_quirks, DEFAULT_QUIRKS
from .disassembler import Chip8Disassembler
from .display import DisplayWindow, render_text, save_png
from .emulator import Chip8Emulator, load_rom_file
from .errors import Chip8Error, RomLoadError, RomTooLargeError
from .machine import DISPLAY_WIDTH, DISPLAY_HEIGHT, MAX_ROM_SIZE

EXIT_LOAD_FAILED = 1
EXIT_FAULT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='chip8vm',
        description='CHIP-8 interpreter',
    )
    parser.add_argument('rom', help='Program image to load at 0x200')
    parser.add_argument('--headless', action='store_true',
                        help='Run without a window and print the final display')
    parser.add_argument('--cycles', type=int, default=None,
                        help='Instruction budget in headless mode (default: run until stopped)')
    parser.add_argument('--cycles-per-frame', type=int, default=10,
                        help='Instructions per 60 Hz frame in windowed mode')
    parser.add_argument('--scale', type=int, default=10, help='Pixel scale for window and screenshots')
    parser.add_argument('--width', type=int, default=None,
                        help=f'Framebuffer width (default {DISPLAY_WIDTH})')
    parser.add_argument('--height', type=int, default=None,
                        help=f'Framebuffer height (default {DISPLAY_HEIGHT})')
    parser.add_argument('--seed', type=int, default=None, help='Seed for the RND instruction')
    parser.add_argument('--quirk', action='append', default=[], choices=sorted(DEFAULT_QUIRKS),
                        help='Enable a compatibility quirk (repeatable)')
    parser.add_argument('--config', help='JSON configuration file')
    parser.add_argument('--screenshot', help='Save the final display as PNG (headless mode)')
    parser.add_argument('--disassemble', action='store_true',
                        help='Print a disassembly listing and exit')
    parser.add_argument('--debug-log', help='Append the debug trace to this file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    return parser


def build_config(args: argparse.Namespace) -> EmulatorConfig:
    """Configuration file first, then command line overrides"""
    config = EmulatorConfig.load(args.config) if args.config else EmulatorConfig()

    if args.width is not None:
        config.display_width = args.width
    if args.height is not None:
        config.display_height = args.height
    if args.seed is not None:
        config.seed = args.seed
    if args.debug_log:
        config.debug_file = args.debug_log
    if args.quirk:
        quirks = dict(config.quirks)
        quirks.update({name: True for name in args.quirk})
        config.quirks = resolve_quirks(quirks)
    if not args.headless and not args.config:
        # One timer decrement per frame keeps the timers at 60 Hz
        config.timer_interval = max(1, args.cycles_per_frame)

    # Re-run validation on the overridden values
    return EmulatorConfig.from_dict(config.to_dict())


def run_headless(emulator: Chip8Emulator, args: argparse.Namespace) -> int:
    status = 0
    try:
        emulator.run(max_cycles=args.cycles)
    except KeyboardInterrupt:
        print("Execution interrupted by user")
    except Chip8Error as e:
        print(f"Emulator crashed: {e}", file=sys.stderr)
        status = EXIT_FAULT
    else:
        if emulator.waiting_for_key:
            print("Program is waiting for a key press")
        print("Execution completed!")
    finally:
        emulator.print_stats()
        print(f"\nProgram counter: 0x{emulator.machine.program_counter:03X}")
        print("\nDisplay output:")
        print(render_text(emulator.get_display()))
        if args.screenshot:
            save_png(emulator.get_display(), args.screenshot, scale=args.scale)

    return status


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        rom_bytes = load_rom_file(args.rom)
    except RomLoadError as e:
        print(e, file=sys.stderr)
        return EXIT_LOAD_FAILED

    if args.disassemble:
        disassembler = Chip8Disassembler()
        print(disassembler.format_listing(disassembler.disassemble_rom(rom_bytes)))
        return 0

    if len(rom_bytes) > MAX_ROM_SIZE:
        print(RomTooLargeError(len(rom_bytes), MAX_ROM_SIZE), file=sys.stderr)
        return EXIT_LOAD_FAILED

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    emulator = Chip8Emulator(config)
    try:
        emulator.load_rom(rom_bytes)
    except RomLoadError as e:
        print(e, file=sys.stderr)
        return EXIT_LOAD_FAILED

    if args.headless:
        return run_headless(emulator, args)

    window = DisplayWindow(emulator, scale=args.scale,
                           cycles_per_frame=args.cycles_per_frame,
                           title=f"CHIP-8: {args.rom}")
    fault = window.run()
    if fault is not None:
        print(f"Emulator crashed: {fault}", file=sys.stderr)
        return EXIT_FAULT
    return 0


if __name__ == "__main__":
    sys.exit(main())
