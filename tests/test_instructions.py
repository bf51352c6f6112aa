import numpy as np
import pytest

from chip8vm import DecodeError, KeyIndexError, MemoryAccessError, StackOverflowError, StackUnderflowError

from tests.helpers import run_steps


# Flow control

def test_jump_sets_program_counter(make_emulator):
    emulator = run_steps(make_emulator(0x1ABC), 1)
    assert emulator.machine.program_counter == 0xABC


def test_call_and_return_nested(make_emulator):
    emulator = make_emulator(
        0x2206,  # 200: CALL 206
        0x1202,  # 202: JP 202
        0x0000,  # 204
        0x220A,  # 206: CALL 20A
        0x00EE,  # 208: RET
        0x00EE,  # 20A: RET
    )
    machine = emulator.machine

    run_steps(emulator, 2)
    assert machine.program_counter == 0x20A
    assert machine.stack.entries() == [0x202, 0x208]

    run_steps(emulator, 1)
    assert machine.program_counter == 0x208
    run_steps(emulator, 1)
    assert machine.program_counter == 0x202
    assert len(machine.stack) == 0


def test_call_return_at_full_depth(make_emulator):
    emulator = make_emulator(0x2300)
    emulator.machine.memory[0x300:0x302] = [0x00, 0xEE]
    for address in range(15):
        emulator.machine.stack.push(0x400 + address)

    run_steps(emulator, 1)
    assert len(emulator.machine.stack) == 16
    run_steps(emulator, 1)
    assert emulator.machine.program_counter == 0x202
    assert len(emulator.machine.stack) == 15


def test_call_overflow_is_reported(make_emulator):
    emulator = make_emulator(0x2200)  # CALL itself forever
    run_steps(emulator, 16)

    with pytest.raises(StackOverflowError):
        emulator.step()
    assert emulator.crashed


def test_return_with_empty_stack_is_reported(make_emulator):
    emulator = make_emulator(0x00EE)
    with pytest.raises(StackUnderflowError):
        emulator.step()


def test_jump_with_offset_uses_v0(make_emulator):
    emulator = run_steps(make_emulator(0x6004, 0x6310, 0xB300), 3)
    assert emulator.machine.program_counter == 0x304


def test_jump_with_offset_jumping_quirk_uses_vx(make_emulator):
    emulator = make_emulator(0x6004, 0x6310, 0xB300, quirks={'jumping': True})
    run_steps(emulator, 3)
    assert emulator.machine.program_counter == 0x310


@pytest.mark.parametrize("words, expected_pc", [
    ((0x6005, 0x3005), 0x206),  # SE Vx, byte taken
    ((0x6005, 0x3006), 0x204),  # SE Vx, byte not taken
    ((0x6005, 0x4006), 0x206),  # SNE Vx, byte taken
    ((0x6005, 0x4005), 0x204),  # SNE Vx, byte not taken
    ((0x6005, 0x6105, 0x5010), 0x208),  # SE Vx, Vy taken
    ((0x6005, 0x6106, 0x5010), 0x206),  # SE Vx, Vy not taken
    ((0x6005, 0x6106, 0x9010), 0x208),  # SNE Vx, Vy taken
    ((0x6005, 0x6105, 0x9010), 0x206),  # SNE Vx, Vy not taken
])
def test_conditional_skips(make_emulator, words, expected_pc):
    emulator = run_steps(make_emulator(*words), len(words))
    assert emulator.machine.program_counter == expected_pc


@pytest.mark.parametrize("words, expected_pc", [
    ((0x6005, 0x6105, 0x5011), 0x208),  # SE Vx, Vy taken
    ((0x6005, 0x6106, 0x501F), 0x206),  # SE Vx, Vy not taken
    ((0x6005, 0x6106, 0x901F), 0x208),  # SNE Vx, Vy taken
    ((0x6005, 0x6105, 0x9011), 0x206),  # SNE Vx, Vy not taken
])
def test_register_compare_ignores_low_nibble(make_emulator, words, expected_pc):
    emulator = run_steps(make_emulator(*words), len(words))
    assert emulator.machine.program_counter == expected_pc


# Register load and arithmetic

def test_load_immediate_and_wrapping_add(make_emulator):
    emulator = make_emulator(0x6A42, 0x6FFF, 0x6BFF, 0x7B02)
    run_steps(emulator, 1)
    assert emulator.machine.get_register(0xA) == 0x42

    run_steps(emulator, 3)
    assert emulator.machine.get_register(0xB) == 0x01
    assert emulator.machine.get_register(0xF) == 0xFF  # no flag side effect


def test_register_copy(make_emulator):
    emulator = run_steps(make_emulator(0x6177, 0x8010), 2)
    assert emulator.machine.get_register(0) == 0x77


@pytest.mark.parametrize("low, expected", [(0x1, 0xF0 | 0x3C), (0x2, 0xF0 & 0x3C), (0x3, 0xF0 ^ 0x3C)])
def test_bitwise_operations_leave_flag(make_emulator, low, expected):
    emulator = run_steps(make_emulator(0x60F0, 0x613C, 0x6F07, 0x8010 | low), 4)
    assert emulator.machine.get_register(0) == expected
    assert emulator.machine.get_register(0xF) == 0x07


def test_bitwise_operations_logic_quirk_resets_flag(make_emulator):
    emulator = make_emulator(0x60F0, 0x613C, 0x6F07, 0x8011, quirks={'logic': True})
    run_steps(emulator, 4)
    assert emulator.machine.get_register(0xF) == 0


@pytest.mark.parametrize("a, b, result, carry", [
    (200, 100, 44, 1),
    (200, 55, 255, 0),
    (200, 56, 0, 1),
    (0, 0, 0, 0),
])
def test_add_registers_sets_carry(make_emulator, a, b, result, carry):
    emulator = run_steps(make_emulator(0x6000 | a, 0x6100 | b, 0x8014), 3)
    assert emulator.machine.get_register(0) == result
    assert emulator.machine.get_register(0xF) == carry


@pytest.mark.parametrize("a, b, result, flag", [
    (10, 3, 7, 1),
    (3, 10, 249, 0),
    (5, 5, 0, 0),
])
def test_subtract_sets_flag_on_strictly_greater(make_emulator, a, b, result, flag):
    emulator = run_steps(make_emulator(0x6000 | a, 0x6100 | b, 0x8015), 3)
    assert emulator.machine.get_register(0) == result
    assert emulator.machine.get_register(0xF) == flag


@pytest.mark.parametrize("a, b, result, flag", [
    (3, 10, 7, 1),
    (10, 3, 249, 0),
    (5, 5, 0, 0),
])
def test_reverse_subtract(make_emulator, a, b, result, flag):
    emulator = run_steps(make_emulator(0x6000 | a, 0x6100 | b, 0x8017), 3)
    assert emulator.machine.get_register(0) == result
    assert emulator.machine.get_register(0xF) == flag


def test_shift_right_flag_is_low_bit(make_emulator):
    emulator = run_steps(make_emulator(0x6005, 0x8016), 2)
    assert emulator.machine.get_register(0) == 0x02
    assert emulator.machine.get_register(0xF) == 1

    emulator = run_steps(make_emulator(0x6004, 0x8016), 2)
    assert emulator.machine.get_register(0) == 0x02
    assert emulator.machine.get_register(0xF) == 0


def test_shift_left_flag_is_high_bit(make_emulator):
    emulator = run_steps(make_emulator(0x6081, 0x801E), 2)
    assert emulator.machine.get_register(0) == 0x02
    assert emulator.machine.get_register(0xF) == 1

    emulator = run_steps(make_emulator(0x6041, 0x801E), 2)
    assert emulator.machine.get_register(0) == 0x82
    assert emulator.machine.get_register(0xF) == 0


def test_shift_ignores_vy_by_default(make_emulator):
    emulator = run_steps(make_emulator(0x6008, 0x61FF, 0x8016), 3)
    assert emulator.machine.get_register(0) == 0x04
    assert emulator.machine.get_register(0xF) == 0


def test_shifting_quirk_shifts_vy(make_emulator):
    emulator = make_emulator(0x6008, 0x61FF, 0x8016, quirks={'shifting': True})
    run_steps(emulator, 3)
    assert emulator.machine.get_register(0) == 0x7F
    assert emulator.machine.get_register(0xF) == 1


def test_flag_register_as_destination_keeps_flag(make_emulator):
    emulator = run_steps(make_emulator(0x6F80, 0x8FF4), 2)
    assert emulator.machine.get_register(0xF) == 1


@pytest.mark.parametrize("word", [0x8008, 0x800F])
def test_undefined_register_operation(make_emulator, word):
    emulator = make_emulator(word)
    with pytest.raises(DecodeError):
        emulator.step()


# Randomization

def test_random_is_masked(make_emulator):
    emulator = make_emulator(*([0xC00F] * 50), seed=1)
    for _ in range(50):
        emulator.step()
        assert emulator.machine.get_register(0) <= 0x0F

    emulator = run_steps(make_emulator(0x60FF, 0xC000, seed=1), 2)
    assert emulator.machine.get_register(0) == 0


def test_random_is_reproducible_with_seed(make_emulator):
    first = run_steps(make_emulator(0xC0FF, 0xC1FF, seed=1234), 2)
    second = run_steps(make_emulator(0xC0FF, 0xC1FF, seed=1234), 2)
    np.testing.assert_array_equal(first.machine.registers, second.machine.registers)
    assert first.stats['random_generations'] == 2


# Indexed addressing

def test_load_index_register(make_emulator):
    emulator = run_steps(make_emulator(0xA123), 1)
    assert emulator.machine.index_register == 0x123


def test_add_to_index_register(make_emulator):
    emulator = run_steps(make_emulator(0xAFFF, 0x6020, 0xF01E), 3)
    assert emulator.machine.index_register == 0x101F


def test_add_to_index_register_wraps_sixteen_bits(make_emulator):
    emulator = make_emulator(0x6002, 0xF01E)
    emulator.machine.index_register = 0xFFFF
    run_steps(emulator, 2)
    assert emulator.machine.index_register == 0x0001


@pytest.mark.parametrize("value, address", [(0xA, 50), (0x0, 0), (0xF, 75), (0x1A, 50)])
def test_glyph_address(make_emulator, value, address):
    emulator = run_steps(make_emulator(0x6000 | value, 0xF029), 2)
    assert emulator.machine.index_register == address


@pytest.mark.parametrize("value, digits", [(234, [2, 3, 4]), (7, [0, 0, 7]), (100, [1, 0, 0]), (255, [2, 5, 5])])
def test_binary_coded_decimal(make_emulator, value, digits):
    emulator = run_steps(make_emulator(0xA300, 0x6000 | value, 0xF033), 3)
    assert emulator.machine.memory[0x300:0x303].tolist() == digits


def test_store_and_load_registers(make_emulator):
    emulator = make_emulator(
        0x6011, 0x6122, 0x6233, 0x6344,
        0xA300, 0xF255,  # store V0-V2
        0x6000, 0x6100, 0x6200,
        0xF165,          # load V0-V1
    )
    machine = emulator.machine

    run_steps(emulator, 6)
    assert machine.memory[0x300:0x304].tolist() == [0x11, 0x22, 0x33, 0x00]
    assert machine.index_register == 0x300

    run_steps(emulator, 4)
    assert machine.registers[:3].tolist() == [0x11, 0x22, 0x00]
    assert machine.index_register == 0x300


def test_memory_quirk_advances_index_register(make_emulator):
    emulator = make_emulator(0xA300, 0xF255, 0xF165, quirks={'memory': True})
    run_steps(emulator, 2)
    assert emulator.machine.index_register == 0x303
    run_steps(emulator, 1)
    assert emulator.machine.index_register == 0x305


def test_store_past_end_of_memory_is_reported(make_emulator):
    emulator = make_emulator(0xAFFF, 0xF133)
    run_steps(emulator, 1)
    with pytest.raises(MemoryAccessError) as exc_info:
        emulator.step()
    assert exc_info.value.address == 0x1000


def test_store_into_glyph_table_is_reported(make_emulator):
    emulator = make_emulator(0xA000, 0xF055)
    run_steps(emulator, 1)
    with pytest.raises(MemoryAccessError):
        emulator.step()


# Timers

def test_timer_registers(make_emulator):
    emulator = make_emulator(0x6005, 0xF015, 0xF107, 0x6209, 0xF218)
    machine = emulator.machine

    run_steps(emulator, 2)
    assert machine.delay_timer == 4  # set then one cycle decrement

    run_steps(emulator, 1)
    assert machine.get_register(1) == 4
    assert machine.delay_timer == 3

    run_steps(emulator, 2)
    assert machine.sound_timer == 8
    assert emulator.sound_active
    assert emulator.stats['sound_activations'] == 1


# Input

def test_skip_if_key_pressed(make_emulator):
    emulator = make_emulator(0x6005, 0xE09E)
    emulator.set_key(5, True)
    run_steps(emulator, 2)
    assert emulator.machine.program_counter == 0x206

    emulator = run_steps(make_emulator(0x6005, 0xE09E), 2)
    assert emulator.machine.program_counter == 0x204


def test_skip_if_key_not_pressed(make_emulator):
    emulator = run_steps(make_emulator(0x6005, 0xE0A1), 2)
    assert emulator.machine.program_counter == 0x206

    emulator = make_emulator(0x6005, 0xE0A1)
    emulator.set_key(5, True)
    run_steps(emulator, 2)
    assert emulator.machine.program_counter == 0x204


@pytest.mark.parametrize("word", [0xE09E, 0xE0A1])
def test_key_check_out_of_range_is_reported(make_emulator, word):
    emulator = make_emulator(0x6013, word)
    emulator.set_key(3, True)
    run_steps(emulator, 1)

    with pytest.raises(KeyIndexError) as exc_info:
        emulator.step()
    assert exc_info.value.key == 0x13
    assert exc_info.value.address == 0x202
    assert emulator.crashed


@pytest.mark.parametrize("word", [0xE09F, 0xF0FF, 0xF000])
def test_undefined_key_and_misc_operations(make_emulator, word):
    emulator = make_emulator(word)
    with pytest.raises(DecodeError):
        emulator.step()


# Display

def test_draw_twice_restores_and_reports_collision(make_emulator):
    emulator = make_emulator(0xA000, 0x6008, 0x6104, 0xD015, 0xD015)
    machine = emulator.machine

    run_steps(emulator, 4)
    assert machine.get_register(0xF) == 0
    assert machine.display[4, 8:12].tolist() == [1, 1, 1, 1]
    assert machine.display[5, 8:12].tolist() == [1, 0, 0, 1]
    assert machine.display.sum() == 14

    run_steps(emulator, 1)
    assert machine.get_register(0xF) == 1
    assert not machine.display.any()
    assert emulator.stats['sprite_collisions'] == 1


def test_draw_uses_raw_coordinates_wrapped_per_pixel(make_emulator):
    emulator = run_steps(make_emulator(0xA000, 0x60BE, 0x6120, 0xD011), 4)
    display = emulator.machine.display

    # 0xBE = 190 -> 190 % 64 = 62, 0x20 = 32 -> row 0
    assert display[0, [62, 63, 0, 1]].tolist() == [1, 1, 1, 1]
    assert display.sum() == 4


def test_draw_clipping_quirk(make_emulator):
    emulator = make_emulator(0xA000, 0x603E, 0xD011, quirks={'clipping': True})
    run_steps(emulator, 3)
    assert emulator.machine.display[0, [62, 63]].tolist() == [1, 1]
    assert emulator.machine.display.sum() == 2


def test_draw_zero_rows_clears_flag(make_emulator):
    emulator = run_steps(make_emulator(0x6F01, 0xD010), 2)
    assert emulator.machine.get_register(0xF) == 0
    assert not emulator.machine.display.any()


def test_draw_on_larger_display(make_emulator):
    emulator = make_emulator(0xA000, 0x6064, 0xD011, display_width=128, display_height=64)
    run_steps(emulator, 3)
    assert emulator.machine.display[0, 100:104].tolist() == [1, 1, 1, 1]


def test_clear_screen(make_emulator):
    emulator = run_steps(make_emulator(0xA000, 0xD005, 0x00E0), 3)
    assert not emulator.machine.display.any()
    assert emulator.stats['display_clears'] == 1


def test_sprite_read_past_end_of_memory_is_reported(make_emulator):
    emulator = make_emulator(0xAFFE, 0xD005)
    run_steps(emulator, 1)
    with pytest.raises(MemoryAccessError):
        emulator.step()


@pytest.mark.parametrize("word", [0x0000, 0x0123, 0x00E1, 0x00FF])
def test_system_words_are_undefined(make_emulator, word):
    emulator = make_emulator(word)
    with pytest.raises(DecodeError) as exc_info:
        emulator.step()
    assert exc_info.value.instruction == word
    assert exc_info.value.address == 0x200
