import pytest

from chip8vm import Chip8Emulator, EmulatorConfig

from tests.helpers import assemble


@pytest.fixture
def make_emulator():
    """Factory: emulator with the given words loaded at 0x200"""
    def factory(*words: int, **config) -> Chip8Emulator:
        emulator = Chip8Emulator(EmulatorConfig(**config))
        emulator.load_rom(assemble(*words))
        return emulator
    return factory
