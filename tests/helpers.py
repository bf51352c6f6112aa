from chip8vm import Chip8Emulator


def assemble(*words: int) -> bytes:
    """Big-endian program image from 16-bit instruction words"""
    return b''.join(word.to_bytes(2, 'big') for word in words)


def run_steps(emulator: Chip8Emulator, count: int) -> Chip8Emulator:
    for _ in range(count):
        emulator.step()
    return emulator
