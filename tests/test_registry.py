"""Tests for InstructionRegistry execute primitives."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.decode import Decoder
from chip8_vm.errors import (
    InvalidKeyError,
    MemoryAccessError,
    StackOverflowError,
    StackUnderflowError,
)
from chip8_vm.registry import InstructionRegistry, get_registry
from chip8_vm.state import RunState, create_initial_state


def execute(state, word):
    """Decode and execute one instruction word against state."""
    result = Decoder().decode(word)
    get_registry().execute(state, result.key, result.params)
    return result


@pytest.fixture
def state():
    return create_initial_state(seed=1234)


class TestRegistryStructure:
    """Test registry freezing and lookups."""

    def test_frozen_after_init(self):
        assert InstructionRegistry().is_frozen() is True

    def test_register_after_freeze(self):
        """Registering on a frozen registry raises RuntimeError."""
        registry = InstructionRegistry()
        with pytest.raises(RuntimeError):
            registry.register("OP_NEW", lambda state, params: None)

    def test_unknown_key(self, state):
        """Executing an unknown key raises KeyError."""
        with pytest.raises(KeyError):
            get_registry().execute(state, "OP_MISSING", {})

    def test_singleton(self):
        assert get_registry() is get_registry()


class TestFlowControl:
    """00E0, 00EE, 1NNN, 2NNN, BNNN."""

    def test_cls(self, state):
        """Clearing zeroes all 2048 cells and advances by 2."""
        for y in range(32):
            state.framebuffer[y][y * 2] = 1
        execute(state, 0x00E0)
        assert sum(sum(row) for row in state.framebuffer) == 0
        assert state.pc == 0x202

    def test_jump(self, state):
        execute(state, 0x1ABC)
        assert state.pc == 0xABC

    def test_call_and_return(self, state):
        """CALL then RET lands after the call site with SP restored."""
        state.pc = 0x240
        execute(state, 0x2300)
        assert state.pc == 0x300
        assert state.sp == 1
        assert state.stack[0] == 0x240

        execute(state, 0x00EE)
        assert state.pc == 0x242
        assert state.sp == 0

    def test_nested_calls(self, state):
        execute(state, 0x2300)
        execute(state, 0x2400)
        assert state.sp == 2
        execute(state, 0x00EE)
        assert state.pc == 0x302
        execute(state, 0x00EE)
        assert state.pc == 0x202

    def test_jump_plus_v0(self, state):
        state.v[0] = 0x04
        execute(state, 0xB300)
        assert state.pc == 0x304

    def test_stack_overflow(self, state):
        """Seventeen nested calls overflow the 16-entry stack."""
        for _ in range(16):
            execute(state, 0x2200)
        with pytest.raises(StackOverflowError):
            execute(state, 0x2200)

    def test_return_with_empty_stack(self, state):
        with pytest.raises(StackUnderflowError):
            execute(state, 0x00EE)


class TestConditionalSkips:
    """3XNN, 4XNN, 5XY0, 9XY0."""

    def test_se_vx_nn(self, state):
        state.v[1] = 0x42
        execute(state, 0x3142)
        assert state.pc == 0x204
        execute(state, 0x3143)
        assert state.pc == 0x206

    def test_sne_vx_nn(self, state):
        state.v[1] = 0x42
        execute(state, 0x4142)
        assert state.pc == 0x202
        execute(state, 0x4143)
        assert state.pc == 0x206

    def test_se_vx_vy(self, state):
        state.v[1] = state.v[2] = 7
        execute(state, 0x5120)
        assert state.pc == 0x204
        state.v[2] = 8
        execute(state, 0x5120)
        assert state.pc == 0x206

    def test_sne_vx_vy(self, state):
        state.v[1] = 7
        state.v[2] = 8
        execute(state, 0x9120)
        assert state.pc == 0x204
        state.v[2] = 7
        execute(state, 0x9120)
        assert state.pc == 0x206


class TestLoadsAndArithmetic:
    """6XNN, 7XNN and the 8XY? family."""

    def test_ld_vx_nn(self, state):
        execute(state, 0x6A2B)
        assert state.v[0xA] == 0x2B
        assert state.pc == 0x202

    def test_add_vx_nn_wraps_without_flag(self, state):
        """7XNN wraps and leaves VF alone."""
        state.v[0] = 0xFF
        state.v[0xF] = 5
        execute(state, 0x7002)
        assert state.v[0] == 0x01
        assert state.v[0xF] == 5

    def test_ld_vx_vy(self, state):
        state.v[2] = 0x99
        execute(state, 0x8120)
        assert state.v[1] == 0x99

    def test_or_and_xor(self, state):
        state.v[1], state.v[2] = 0b1100, 0b1010
        execute(state, 0x8121)
        assert state.v[1] == 0b1110

        state.v[1] = 0b1100
        execute(state, 0x8122)
        assert state.v[1] == 0b1000

        state.v[1] = 0b1100
        execute(state, 0x8123)
        assert state.v[1] == 0b0110
        assert state.pc == 0x206

    def test_add_with_carry(self, state):
        """0xFF + 0x01 wraps to 0x00 with VF = 1."""
        state.v[1], state.v[2] = 0xFF, 0x01
        execute(state, 0x8124)
        assert state.v[1] == 0x00
        assert state.v[0xF] == 1

    def test_add_without_carry(self, state):
        state.v[1], state.v[2] = 0x10, 0x20
        state.v[0xF] = 1
        execute(state, 0x8124)
        assert state.v[1] == 0x30
        assert state.v[0xF] == 0

    def test_sub_no_borrow(self, state):
        state.v[1], state.v[2] = 10, 3
        execute(state, 0x8125)
        assert state.v[1] == 7
        assert state.v[0xF] == 1

    def test_sub_equal_operands(self, state):
        state.v[1], state.v[2] = 5, 5
        execute(state, 0x8125)
        assert state.v[1] == 0
        assert state.v[0xF] == 1

    def test_sub_borrow_leaves_vx(self, state):
        """On borrow VF = 0 and VX is not modified."""
        state.v[1], state.v[2] = 3, 10
        execute(state, 0x8125)
        assert state.v[1] == 3
        assert state.v[0xF] == 0
        assert state.pc == 0x202

    def test_shr(self, state):
        state.v[1] = 0x05
        execute(state, 0x8126)
        assert state.v[1] == 0x02
        assert state.v[0xF] == 1

        execute(state, 0x8126)
        assert state.v[1] == 0x01
        assert state.v[0xF] == 0

    def test_subn(self, state):
        """VX = VY - VX; VF = 1 only when VX > VY."""
        state.v[1], state.v[2] = 3, 10
        execute(state, 0x8127)
        assert state.v[1] == 7
        assert state.v[0xF] == 0

    def test_subn_wraps(self, state):
        state.v[1], state.v[2] = 10, 3
        execute(state, 0x8127)
        assert state.v[1] == (3 - 10) & 0xFF
        assert state.v[0xF] == 1

    def test_shl(self, state):
        state.v[1] = 0x81
        execute(state, 0x812E)
        assert state.v[1] == 0x02
        assert state.v[0xF] == 1

        execute(state, 0x812E)
        assert state.v[1] == 0x04
        assert state.v[0xF] == 0


class TestRandom:
    """CXNN."""

    def test_masked(self, state):
        for _ in range(50):
            execute(state, 0xC10F)
            assert 0 <= state.v[1] <= 0x0F

    def test_zero_mask(self, state):
        execute(state, 0xC100)
        assert state.v[1] == 0
        assert state.pc == 0x202

    def test_seeded_is_deterministic(self):
        """Two states with the same seed draw the same bytes."""
        a = create_initial_state(seed=7)
        b = create_initial_state(seed=7)
        values_a, values_b = [], []
        for _ in range(10):
            execute(a, 0xC1FF)
            execute(b, 0xC1FF)
            values_a.append(a.v[1])
            values_b.append(b.v[1])
        assert values_a == values_b


class TestIndexAndMemory:
    """ANNN, FX1E, FX29, FX33, FX55, FX65."""

    def test_ld_i(self, state):
        execute(state, 0xA123)
        assert state.i == 0x123
        assert state.pc == 0x202

    def test_add_i_overflow_flag(self, state):
        state.i = 0xFFF
        state.v[1] = 1
        execute(state, 0xF11E)
        assert state.i == 0x1000
        assert state.v[0xF] == 1

    def test_add_i_no_overflow(self, state):
        state.i = 0x100
        state.v[1] = 0x10
        state.v[0xF] = 1
        execute(state, 0xF11E)
        assert state.i == 0x110
        assert state.v[0xF] == 0

    def test_font_glyph_address(self, state):
        state.v[1] = 0xA
        execute(state, 0xF129)
        assert state.i == 50
        assert bytes(state.memory[50:55]) == bytes([0xF0, 0x90, 0xF0, 0x90, 0x90])

    @pytest.mark.parametrize("value, digits", [
        (0, [0, 0, 0]),
        (7, [0, 0, 7]),
        (42, [0, 4, 2]),
        (123, [1, 2, 3]),
        (255, [2, 5, 5]),
    ])
    def test_bcd(self, state, value, digits):
        state.v[3] = value
        state.i = 0x300
        execute(state, 0xF333)
        assert list(state.memory[0x300:0x303]) == digits
        assert state.i == 0x300
        assert state.pc == 0x202

    def test_store_registers(self, state):
        state.v[0:4] = [1, 2, 3, 4]
        state.i = 0x300
        execute(state, 0xF255)
        assert list(state.memory[0x300:0x304]) == [1, 2, 3, 0]
        assert state.i == 0x303

    def test_load_registers(self, state):
        state.memory[0x300:0x304] = bytes([9, 8, 7, 6])
        state.i = 0x300
        execute(state, 0xF265)
        assert state.v[0:4] == [9, 8, 7, 0]
        assert state.i == 0x303

    def test_store_past_memory(self, state):
        state.i = 0xFFE
        with pytest.raises(MemoryAccessError):
            execute(state, 0xF255)


class TestDraw:
    """DXYN sprite drawing."""

    def _sprite(self, state, data, addr=0x300):
        state.memory[addr:addr + len(data)] = bytes(data)
        state.i = addr

    def test_draw_then_collide(self, state):
        """Drawing 0xFF twice at (0,0) sets then clears row 0, cols 0-7."""
        self._sprite(state, [0xFF])
        execute(state, 0xD011)
        assert state.framebuffer[0][0:8] == [1] * 8
        assert state.framebuffer[0][8] == 0
        assert state.v[0xF] == 0
        assert state.pc == 0x202

        execute(state, 0xD011)
        assert state.framebuffer[0][0:8] == [0] * 8
        assert state.v[0xF] == 1

    def test_draw_position_and_rows(self, state):
        """Sprite rows land at (VX, VY) downward, MSB leftmost."""
        self._sprite(state, [0x80, 0x01])
        state.v[1], state.v[2] = 10, 5
        execute(state, 0xD122)
        assert state.framebuffer[5][10] == 1
        assert state.framebuffer[6][17] == 1
        assert sum(sum(row) for row in state.framebuffer) == 2

    def test_partial_overlap_collides(self, state):
        """Any single overlapping pixel sets VF."""
        self._sprite(state, [0x01])
        state.framebuffer[0][7] = 1
        execute(state, 0xD001)
        assert state.framebuffer[0][7] == 0
        assert state.v[0xF] == 1

    def test_no_collision_resets_flag(self, state):
        self._sprite(state, [0x0F])
        state.v[0xF] = 1
        execute(state, 0xD001)
        assert state.v[0xF] == 0

    @pytest.mark.parametrize("x, y", [(64, 0), (0, 32), (200, 200)])
    def test_offscreen_start_skips(self, state, x, y):
        """Start outside the screen draws nothing and advances PC by 2."""
        self._sprite(state, [0xFF])
        state.v[1], state.v[2] = x, y
        state.v[0xF] = 3
        execute(state, 0xD121)
        assert sum(sum(row) for row in state.framebuffer) == 0
        assert state.v[0xF] == 3
        assert state.pc == 0x202

    def test_sprite_past_right_edge_faults(self, state):
        """Pixels beyond column 63 are not clipped; the access is reported."""
        self._sprite(state, [0xFF])
        state.v[1] = 60
        with pytest.raises(MemoryAccessError):
            execute(state, 0xD101)

    def test_sprite_past_bottom_edge_faults(self, state):
        self._sprite(state, [0x80, 0x80])
        state.v[2] = 31
        with pytest.raises(MemoryAccessError):
            execute(state, 0xD022)


class TestTimersAndKeys:
    """FX07, FX15, FX18, EX9E, EXA1, FX0A."""

    def test_timer_loads(self, state):
        state.v[1] = 30
        execute(state, 0xF115)
        execute(state, 0xF118)
        assert state.delay_timer == 30
        assert state.sound_timer == 30

        state.delay_timer = 12
        execute(state, 0xF207)
        assert state.v[2] == 12
        assert state.pc == 0x206

    def test_skip_if_pressed(self, state):
        state.v[1] = 0xA
        execute(state, 0xE19E)
        assert state.pc == 0x202
        state.keys[0xA] = True
        execute(state, 0xE19E)
        assert state.pc == 0x206

    def test_skip_if_not_pressed(self, state):
        state.v[1] = 0xA
        execute(state, 0xE1A1)
        assert state.pc == 0x204
        state.keys[0xA] = True
        execute(state, 0xE1A1)
        assert state.pc == 0x206

    def test_skip_key_out_of_range(self, state):
        state.v[1] = 0x10
        with pytest.raises(InvalidKeyError):
            execute(state, 0xE19E)

    def test_wait_key_without_press(self, state):
        """With no key held the machine waits and PC does not move."""
        execute(state, 0xF30A)
        assert state.pc == 0x200
        assert state.run_state is RunState.AWAITING_KEY
        assert state.key_register == 3

    def test_wait_key_with_press(self, state):
        state.keys[0x7] = True
        execute(state, 0xF30A)
        assert state.v[3] == 0x7
        assert state.pc == 0x202
        assert state.run_state is RunState.RUNNING


class TestInvalid:
    """Unrecognized instructions."""

    def test_no_effect(self, state):
        """No state change and no PC advance."""
        state.v[1] = 5
        before = state.snapshot()
        result = execute(state, 0x8008)
        assert result.key == "OP_INVALID"
        assert state.snapshot() == before
        assert state.pc == 0x200
