"""InstructionRegistry: execute primitives for the CHIP-8 interpreter.

Each decoded operation key maps to one primitive that mutates the machine
state in place and moves the program counter itself (+2, +4 or an absolute
set). The registry is frozen after construction.

Registry Keys:
    OP_CLS (00E0)        OP_RET (00EE)         OP_JP (1NNN)
    OP_CALL (2NNN)       OP_SE_VX_NN (3XNN)    OP_SNE_VX_NN (4XNN)
    OP_SE_VX_VY (5XY0)   OP_LD_VX_NN (6XNN)    OP_ADD_VX_NN (7XNN)
    OP_LD_VX_VY (8XY0)   OP_OR (8XY1)          OP_AND (8XY2)
    OP_XOR (8XY3)        OP_ADD_VX_VY (8XY4)   OP_SUB (8XY5)
    OP_SHR (8XY6)        OP_SUBN (8XY7)        OP_SHL (8XYE)
    OP_SNE_VX_VY (9XY0)  OP_LD_I (ANNN)        OP_JP_V0 (BNNN)
    OP_RND (CXNN)        OP_DRW (DXYN)         OP_SKP (EX9E)
    OP_SKNP (EXA1)       OP_LD_VX_DT (FX07)    OP_LD_VX_K (FX0A)
    OP_LD_DT_VX (FX15)   OP_LD_ST_VX (FX18)    OP_ADD_I_VX (FX1E)
    OP_LD_F_VX (FX29)    OP_LD_B_VX (FX33)     OP_LD_I_VX (FX55)
    OP_LD_VX_I (FX65)    OP_INVALID (no effect, no PC advance)

Each primitive has the signature (MachineState, params) -> None.
"""

from typing import Any, Callable, Dict, Optional

from .state import (
    FONT_ADDRESS,
    FONT_GLYPH_SIZE,
    MachineState,
    RunState,
    SCREEN_HEIGHT,
    SCREEN_WIDTH,
)


Primitive = Callable[[MachineState, Dict[str, Any]], None]


class InstructionRegistry:
    """Registry of CHIP-8 execute primitives.

    The registry is frozen after initialization to ensure
    no runtime modifications can occur.

    Attributes:
        _primitives: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all instruction primitives."""
        self._primitives: Dict[str, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all instruction primitives."""
        # Flow control
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)
        self.register("OP_JP", self._op_jp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JP_V0", self._op_jp_v0)

        # Conditional skips
        self.register("OP_SE_VX_NN", self._op_se_vx_nn)
        self.register("OP_SNE_VX_NN", self._op_sne_vx_nn)
        self.register("OP_SE_VX_VY", self._op_se_vx_vy)
        self.register("OP_SNE_VX_VY", self._op_sne_vx_vy)
        self.register("OP_SKP", self._op_skp)
        self.register("OP_SKNP", self._op_sknp)

        # Register loads and arithmetic
        self.register("OP_LD_VX_NN", self._op_ld_vx_nn)
        self.register("OP_ADD_VX_NN", self._op_add_vx_nn)
        self.register("OP_LD_VX_VY", self._op_ld_vx_vy)
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_VX_VY", self._op_add_vx_vy)
        self.register("OP_SUB", self._op_sub)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SUBN", self._op_subn)
        self.register("OP_SHL", self._op_shl)
        self.register("OP_RND", self._op_rnd)

        # Index register and memory
        self.register("OP_LD_I", self._op_ld_i)
        self.register("OP_ADD_I_VX", self._op_add_i_vx)
        self.register("OP_LD_F_VX", self._op_ld_f_vx)
        self.register("OP_LD_B_VX", self._op_ld_b_vx)
        self.register("OP_LD_I_VX", self._op_ld_i_vx)
        self.register("OP_LD_VX_I", self._op_ld_vx_i)

        # Display
        self.register("OP_DRW", self._op_drw)

        # Timers and keypad
        self.register("OP_LD_VX_DT", self._op_ld_vx_dt)
        self.register("OP_LD_DT_VX", self._op_ld_dt_vx)
        self.register("OP_LD_ST_VX", self._op_ld_st_vx)
        self.register("OP_LD_VX_K", self._op_ld_vx_k)

        # Special
        self.register("OP_INVALID", self._op_invalid)

    def register(self, key: str, handler: Primitive) -> None:
        """Register a primitive operation.

        Args:
            key: Operation key (e.g., "OP_DRW")
            handler: Function that takes (state, params) and mutates state

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all valid operation keys."""
        return set(self._primitives.keys())

    def execute(self, state: MachineState, key: str, params: Dict[str, Any]) -> None:
        """Execute a registered primitive against the machine state.

        Args:
            state: Machine state, mutated in place
            key: Operation key
            params: Operand fields from the decoder

        Raises:
            KeyError: If key not in registry
            Chip8RuntimeError: If the primitive touches memory, stack,
                framebuffer or keypad out of range
        """
        if key not in self._primitives:
            raise KeyError(f"Unknown operation key: {key}")

        self._primitives[key](state, params)

    # =========================================================================
    # Flow Control Primitives
    # =========================================================================

    def _op_cls(self, state: MachineState, params: Dict[str, Any]) -> None:
        """00E0 - Clear the framebuffer."""
        state.clear_framebuffer()
        state.increment_pc()

    def _op_ret(self, state: MachineState, params: Dict[str, Any]) -> None:
        """00EE - Return from subroutine.

        The popped address is the CALL site, so PC lands on the
        instruction after it.
        """
        state.set_pc(state.pop())
        state.increment_pc()

    def _op_jp(self, state: MachineState, params: Dict[str, Any]) -> None:
        """1NNN - Jump to NNN."""
        state.set_pc(params["nnn"])

    def _op_call(self, state: MachineState, params: Dict[str, Any]) -> None:
        """2NNN - Push PC and jump to NNN."""
        state.push(state.pc)
        state.set_pc(params["nnn"])

    def _op_jp_v0(self, state: MachineState, params: Dict[str, Any]) -> None:
        """BNNN - Jump to NNN + V0."""
        state.set_pc(params["nnn"] + state.v[0])

    # =========================================================================
    # Conditional Skip Primitives
    # =========================================================================

    def _skip_if(self, state: MachineState, condition: bool) -> None:
        state.increment_pc(4 if condition else 2)

    def _op_se_vx_nn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """3XNN - Skip next instruction if VX == NN."""
        self._skip_if(state, state.v[params["x"]] == params["nn"])

    def _op_sne_vx_nn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """4XNN - Skip next instruction if VX != NN."""
        self._skip_if(state, state.v[params["x"]] != params["nn"])

    def _op_se_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """5XY0 - Skip next instruction if VX == VY."""
        self._skip_if(state, state.v[params["x"]] == state.v[params["y"]])

    def _op_sne_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """9XY0 - Skip next instruction if VX != VY."""
        self._skip_if(state, state.v[params["x"]] != state.v[params["y"]])

    def _op_skp(self, state: MachineState, params: Dict[str, Any]) -> None:
        """EX9E - Skip next instruction if key VX is pressed."""
        self._skip_if(state, state.is_key_pressed(state.v[params["x"]]))

    def _op_sknp(self, state: MachineState, params: Dict[str, Any]) -> None:
        """EXA1 - Skip next instruction if key VX is not pressed."""
        self._skip_if(state, not state.is_key_pressed(state.v[params["x"]]))

    # =========================================================================
    # Register Primitives
    # =========================================================================

    def _op_ld_vx_nn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """6XNN - VX = NN."""
        state.set_register(params["x"], params["nn"])
        state.increment_pc()

    def _op_add_vx_nn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """7XNN - VX += NN, wrapping, VF untouched."""
        x = params["x"]
        state.set_register(x, state.v[x] + params["nn"])
        state.increment_pc()

    def _op_ld_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XY0 - VX = VY."""
        state.set_register(params["x"], state.v[params["y"]])
        state.increment_pc()

    def _op_or(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XY1 - VX |= VY."""
        x = params["x"]
        state.set_register(x, state.v[x] | state.v[params["y"]])
        state.increment_pc()

    def _op_and(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XY2 - VX &= VY."""
        x = params["x"]
        state.set_register(x, state.v[x] & state.v[params["y"]])
        state.increment_pc()

    def _op_xor(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XY3 - VX ^= VY."""
        x = params["x"]
        state.set_register(x, state.v[x] ^ state.v[params["y"]])
        state.increment_pc()

    # In the flag-setting ALU ops below VF is written before the result,
    # so a VF operand is read after the flag update.

    def _op_add_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XY4 - VX += VY, VF = carry.

        Carry is computed from the operands before the add:
        VF = 1 if VY > 0xFF - VX else 0.
        """
        x, y = params["x"], params["y"]
        state.set_flag(1 if state.v[y] > 0xFF - state.v[x] else 0)
        state.set_register(x, state.v[x] + state.v[y])
        state.increment_pc()

    def _op_sub(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XY5 - VX -= VY, VF = not borrow.

        On borrow (VY > VX) VF is cleared and VX is left unmodified;
        no subtraction happens.
        """
        x, y = params["x"], params["y"]
        if state.v[y] > state.v[x]:
            state.set_flag(0)
        else:
            state.set_flag(1)
            state.set_register(x, state.v[x] - state.v[y])
        state.increment_pc()

    def _op_shr(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XY6 - VF = VX & 1, VX >>= 1."""
        x = params["x"]
        state.set_flag(state.v[x] & 0x1)
        state.set_register(x, state.v[x] >> 1)
        state.increment_pc()

    def _op_subn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XY7 - VX = VY - VX (wrapping), VF = 1 if VX > VY else 0."""
        x, y = params["x"], params["y"]
        state.set_flag(1 if state.v[x] > state.v[y] else 0)
        state.set_register(x, state.v[y] - state.v[x])
        state.increment_pc()

    def _op_shl(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8XYE - VF = VX >> 7, VX <<= 1 (wrapping)."""
        x = params["x"]
        state.set_flag(state.v[x] >> 7)
        state.set_register(x, state.v[x] << 1)
        state.increment_pc()

    def _op_rnd(self, state: MachineState, params: Dict[str, Any]) -> None:
        """CXNN - VX = random byte & NN."""
        state.set_register(params["x"], state.rng.randint(0, 0xFF) & params["nn"])
        state.increment_pc()

    # =========================================================================
    # Index Register and Memory Primitives
    # =========================================================================

    def _op_ld_i(self, state: MachineState, params: Dict[str, Any]) -> None:
        """ANNN - I = NNN."""
        state.set_index(params["nnn"])
        state.increment_pc()

    def _op_add_i_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX1E - I += VX, VF = 1 if I + VX > 0xFFF else 0."""
        x = params["x"]
        state.set_flag(1 if state.i + state.v[x] > 0xFFF else 0)
        state.set_index(state.i + state.v[x])
        state.increment_pc()

    def _op_ld_f_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX29 - I = address of the font glyph for VX."""
        state.set_index(FONT_ADDRESS + state.v[params["x"]] * FONT_GLYPH_SIZE)
        state.increment_pc()

    def _op_ld_b_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX33 - Store the three decimal digits of VX at I, I+1, I+2."""
        value = state.v[params["x"]]
        state.write_byte(state.i, value // 100)
        state.write_byte(state.i + 1, (value // 10) % 10)
        state.write_byte(state.i + 2, (value % 100) % 10)
        state.increment_pc()

    def _op_ld_i_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX55 - Store V0..VX at I, then I += X + 1."""
        x = params["x"]
        for n in range(x + 1):
            state.write_byte(state.i + n, state.v[n])
        state.set_index(state.i + x + 1)
        state.increment_pc()

    def _op_ld_vx_i(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX65 - Load V0..VX from I, then I += X + 1."""
        x = params["x"]
        for n in range(x + 1):
            state.v[n] = state.read_byte(state.i + n)
        state.set_index(state.i + x + 1)
        state.increment_pc()

    # =========================================================================
    # Display Primitives
    # =========================================================================

    def _op_drw(self, state: MachineState, params: Dict[str, Any]) -> None:
        """DXYN - XOR an 8xN sprite from memory[I..I+N) at (VX, VY).

        A start position off the screen skips the instruction entirely
        (nothing drawn, no clipping). VF = 1 if any lit pixel was turned
        off, else 0.
        """
        x = state.v[params["x"]]
        y = state.v[params["y"]]
        height = params["n"]

        if x >= SCREEN_WIDTH or y >= SCREEN_HEIGHT:
            state.increment_pc()
            return

        state.set_flag(0)
        for row in range(height):
            sprite = state.read_byte(state.i + row)
            for col in range(8):
                if sprite & (0x80 >> col):
                    if state.flip_pixel(x + col, y + row):
                        state.set_flag(1)

        state.increment_pc()

    # =========================================================================
    # Timer and Keypad Primitives
    # =========================================================================

    def _op_ld_vx_dt(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX07 - VX = delay timer."""
        state.set_register(params["x"], state.delay_timer)
        state.increment_pc()

    def _op_ld_dt_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX15 - Delay timer = VX."""
        state.delay_timer = state.v[params["x"]]
        state.increment_pc()

    def _op_ld_st_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX18 - Sound timer = VX."""
        state.sound_timer = state.v[params["x"]]
        state.increment_pc()

    def _op_ld_vx_k(self, state: MachineState, params: Dict[str, Any]) -> None:
        """FX0A - Wait for a key press and store its index in VX.

        With no key held the machine moves to AWAITING_KEY and PC stays on
        this instruction; the CPU completes the wait once a key is pressed.
        """
        key = state.pressed_key()
        if key is None:
            state.run_state = RunState.AWAITING_KEY
            state.key_register = params["x"]
            return

        state.set_register(params["x"], key)
        state.increment_pc()

    # =========================================================================
    # Special Primitives
    # =========================================================================

    def _op_invalid(self, state: MachineState, params: Dict[str, Any]) -> None:
        """INVALID - Unrecognized instruction: no effect, PC not advanced."""
        return None


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the shared, frozen instruction registry.

    Returns:
        The frozen InstructionRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry
