import pytest

from chip8vm import Chip8Disassembler
from chip8vm.disassembler import DATA_MNEMONIC

from tests.helpers import assemble


@pytest.fixture
def disassembler():
    return Chip8Disassembler()


@pytest.mark.parametrize("word, text", [
    (0x00E0, "CLS"),
    (0x00EE, "RET"),
    (0x1234, "JP $234"),
    (0x2ABC, "CALL $ABC"),
    (0x3A12, "SE VA, #12"),
    (0x5121, "SE V1, V2"),
    (0x9AB1, "SNE VA, VB"),
    (0x8AB4, "ADD VA, VB"),
    (0x8AB6, "SHR VA"),
    (0xB210, "JP V0, $210"),
    (0xD125, "DRW V1, V2, #5"),
    (0xE59E, "SKP V5"),
    (0xF30A, "LD V3, K"),
    (0xF333, "LD B, V3"),
    (0xF265, "LD V2, [I]"),
])
def test_format_instruction(disassembler, word, text):
    assert disassembler.format_instruction(word) == text


@pytest.mark.parametrize("word", [0x0123, 0x8008, 0xE000, 0xF0FF])
def test_undefined_words_are_data(disassembler, word):
    mnemonic, operands, _ = disassembler.disassemble_instruction(word)
    assert mnemonic == DATA_MNEMONIC
    assert operands == f"${word:04X}"


def test_disassemble_rom_addresses(disassembler):
    rows = disassembler.disassemble_rom(assemble(0x00E0, 0x6005, 0x1200) + b'\x12')

    assert [row[0] for row in rows] == [0x200, 0x202, 0x204]
    assert [row[2] for row in rows] == ["CLS", "LD", "JP"]


def test_control_flow_and_listing(disassembler):
    rows = disassembler.disassemble_rom(assemble(0x2206, 0x3001, 0x1200, 0x00EE))
    flow = disassembler.analyze_control_flow(rows)

    assert flow['calls'] == [(0x200, 0x206)]
    assert flow['branches'] == [0x202]
    assert flow['loops'] == [(0x204, 0x200)]

    listing = disassembler.format_listing(rows)
    assert "$200    $2206   CALL" in listing
    assert "Calls: 1" in listing
