"""MachineState: the single owned aggregate of CHIP-8 machine state.

This module defines the state structure shared by the fetch, execute and
timer stages. Every piece of mutable machine state lives on one
MachineState instance, so several interpreters can run side by side
without sharing anything.

State Components:
    - Memory: 4096 bytes, font at 0x000, program at 0x200
    - V registers: V0-VF (16 x 8-bit), VF doubles as the flag register
    - I: 16-bit index register
    - PC: program counter
    - Stack: 16 return addresses plus stack pointer
    - Timers: delay and sound (8-bit)
    - Framebuffer: 32 rows x 64 columns of 0/1 pixels
    - Keys: 16 pressed/released flags
    - RNG: per-instance random source for CXNN
    - Run state: RUNNING, AWAITING_KEY (FX0A) or HALTED (machine fault)

All accessors are bounds-checked and raise a Chip8RuntimeError subclass on
out-of-range access instead of wrapping or truncating.
"""

import enum
import random
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .errors import (
    InvalidKeyError,
    MemoryAccessError,
    StackOverflowError,
    StackUnderflowError,
)


MEMORY_SIZE = 4096
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START
NUM_REGISTERS = 16
FLAG_REGISTER = 0xF
STACK_DEPTH = 16
NUM_KEYS = 16
SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32

FONT_ADDRESS = 0x000
FONT_GLYPH_SIZE = 5
FONT_SET = bytes([
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
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


class RunState(enum.Enum):
    """Execution state of the interpreter."""
    RUNNING = "running"
    AWAITING_KEY = "awaiting_key"
    HALTED = "halted"


def _blank_framebuffer() -> List[List[int]]:
    return [[0] * SCREEN_WIDTH for _ in range(SCREEN_HEIGHT)]


@dataclass
class MachineState:
    """Mutable CHIP-8 machine state.

    Attributes:
        memory: 4096-byte addressable memory
        v: General registers V0-VF (8-bit values)
        i: Index register (16-bit)
        pc: Program counter
        sp: Stack pointer, number of occupied stack slots
        stack: Return addresses pushed by CALL
        delay_timer: Delay timer (8-bit)
        sound_timer: Sound timer (8-bit)
        opcode: Instruction word of the current cycle
        framebuffer: 32 rows of 64 pixels (0 or 1)
        keys: Keypad pressed flags, indexed 0x0-0xF
        run_state: RUNNING, AWAITING_KEY or HALTED
        key_register: Register receiving the key while AWAITING_KEY
        program_length: Size in bytes of the loaded program
        cycle_count: Number of executed instruction cycles
        rng: Random source for CXNN
    """
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    v: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)
    i: int = 0
    pc: int = PROGRAM_START
    sp: int = 0
    stack: List[int] = field(default_factory=lambda: [0] * STACK_DEPTH)
    delay_timer: int = 0
    sound_timer: int = 0
    opcode: int = 0
    framebuffer: List[List[int]] = field(default_factory=_blank_framebuffer)
    keys: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    run_state: RunState = RunState.RUNNING
    key_register: Optional[int] = None
    program_length: int = 0
    cycle_count: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    # =========================================================================
    # Memory
    # =========================================================================

    def read_byte(self, addr: int) -> int:
        """Read one byte of memory.

        Raises:
            MemoryAccessError: If addr is outside 0x000-0xFFF
        """
        if addr < 0 or addr >= MEMORY_SIZE:
            raise MemoryAccessError(f"Memory read out of range: {addr:#06x}", addr=addr)
        return self.memory[addr]

    def write_byte(self, addr: int, value: int) -> None:
        """Write one byte of memory (value masked to 8 bits).

        Raises:
            MemoryAccessError: If addr is outside 0x000-0xFFF
        """
        if addr < 0 or addr >= MEMORY_SIZE:
            raise MemoryAccessError(f"Memory write out of range: {addr:#06x}", addr=addr)
        self.memory[addr] = value & 0xFF

    def load_bytes(self, addr: int, data: Iterable[int]) -> int:
        """Copy a block of bytes into memory starting at addr.

        Args:
            addr: First destination address
            data: Bytes to copy

        Returns:
            Number of bytes copied

        Raises:
            MemoryAccessError: If the block runs past the end of memory; nothing
                is written in that case
        """
        block = list(data)
        end = addr + len(block)
        if addr < 0 or end > MEMORY_SIZE:
            raise MemoryAccessError(
                f"Block of {len(block)} bytes at {addr:#06x} runs past end of memory",
                addr=addr,
            )
        for offset, value in enumerate(block):
            self.write_byte(addr + offset, value)
        return len(block)

    # =========================================================================
    # Registers
    # =========================================================================

    def get_register(self, index: int) -> int:
        """Get value of V register by index (0-15)."""
        if not 0 <= index < NUM_REGISTERS:
            raise KeyError(f"Invalid register: V{index:X}")
        return self.v[index]

    def set_register(self, index: int, value: int) -> None:
        """Set V register by index, wrapping the value to 8 bits."""
        if not 0 <= index < NUM_REGISTERS:
            raise KeyError(f"Invalid register: V{index:X}")
        self.v[index] = value & 0xFF

    def set_flag(self, value: int) -> None:
        """Set VF (carry, borrow or collision)."""
        self.v[FLAG_REGISTER] = value & 0xFF

    def set_index(self, value: int) -> None:
        """Set I, wrapping to 16 bits."""
        self.i = value & 0xFFFF

    def increment_pc(self, amount: int = 2) -> None:
        """Advance PC by one instruction (2) or skip one (4)."""
        self.pc = (self.pc + amount) & 0xFFFF

    def set_pc(self, new_pc: int) -> None:
        """Set PC to an absolute address."""
        self.pc = new_pc & 0xFFFF

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values.

        Returns:
            Dictionary with V0-VF, I, PC, SP, DT and ST
        """
        regs = {f"V{n:X}": value for n, value in enumerate(self.v)}
        regs.update({
            "I": self.i,
            "PC": self.pc,
            "SP": self.sp,
            "DT": self.delay_timer,
            "ST": self.sound_timer,
        })
        return regs

    # =========================================================================
    # Stack
    # =========================================================================

    def push(self, addr: int) -> None:
        """Push a return address.

        Raises:
            StackOverflowError: If all 16 slots are in use
        """
        if self.sp >= STACK_DEPTH:
            raise StackOverflowError(
                f"Stack overflow at depth {self.sp}", addr=self.pc
            )
        self.stack[self.sp] = addr & 0xFFFF
        self.sp += 1

    def pop(self) -> int:
        """Pop the most recent return address.

        Raises:
            StackUnderflowError: If the stack is empty
        """
        if self.sp <= 0:
            raise StackUnderflowError("Return with empty stack", addr=self.pc)
        self.sp -= 1
        return self.stack[self.sp]

    # =========================================================================
    # Framebuffer
    # =========================================================================

    def clear_framebuffer(self) -> None:
        """Set every pixel to 0."""
        for row in self.framebuffer:
            for x in range(SCREEN_WIDTH):
                row[x] = 0

    def flip_pixel(self, x: int, y: int) -> bool:
        """XOR one pixel with 1.

        Args:
            x: Column (0-63)
            y: Row (0-31)

        Returns:
            True if the pixel was lit before the flip (collision)

        Raises:
            MemoryAccessError: If (x, y) is outside the framebuffer
        """
        if not (0 <= x < SCREEN_WIDTH and 0 <= y < SCREEN_HEIGHT):
            raise MemoryAccessError(f"Pixel out of range: ({x}, {y})")
        row = self.framebuffer[y]
        was_set = row[x] == 1
        row[x] ^= 1
        return was_set

    def copy_framebuffer(self) -> List[List[int]]:
        """Return a copy of the framebuffer grid."""
        return [list(row) for row in self.framebuffer]

    # =========================================================================
    # Keypad
    # =========================================================================

    def is_key_pressed(self, key: int) -> bool:
        """Check whether a key is held.

        Raises:
            InvalidKeyError: If key is outside 0x0-0xF
        """
        if not 0 <= key < NUM_KEYS:
            raise InvalidKeyError(f"Invalid key index: {key}", addr=self.pc)
        return self.keys[key]

    def pressed_key(self) -> Optional[int]:
        """Return the highest-numbered pressed key, or None."""
        pressed = None
        for key in range(NUM_KEYS):
            if self.keys[key]:
                pressed = key
        return pressed

    # =========================================================================
    # Lifecycle helpers
    # =========================================================================

    def reset_control(self) -> None:
        """Reset control-flow registers, leaving memory and V registers alone."""
        self.pc = PROGRAM_START
        self.opcode = 0
        self.i = 0
        self.sp = 0
        self.delay_timer = 0
        self.sound_timer = 0
        self.run_state = RunState.RUNNING
        self.key_register = None

    def snapshot(self) -> dict:
        """Create a snapshot of registers and control state.

        Returns:
            Dictionary of copied values; memory and framebuffer are excluded
        """
        return {
            "registers": self.dump_registers(),
            "stack": list(self.stack[:self.sp]),
            "opcode": self.opcode,
            "run_state": self.run_state.value,
            "cycle_count": self.cycle_count,
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory, stack, keypad and framebuffer have their fixed sizes
            - Registers and timers hold 8-bit values
            - PC, I and SP are in range

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False
        if len(self.v) != NUM_REGISTERS or len(self.stack) != STACK_DEPTH:
            return False
        if len(self.keys) != NUM_KEYS:
            return False
        if len(self.framebuffer) != SCREEN_HEIGHT:
            return False
        if any(len(row) != SCREEN_WIDTH for row in self.framebuffer):
            return False

        for value in self.v + [self.delay_timer, self.sound_timer]:
            if not 0 <= value <= 0xFF:
                return False

        if not 0 <= self.i <= 0xFFFF:
            return False
        if not 0 <= self.pc < MEMORY_SIZE:
            return False
        if not 0 <= self.sp <= STACK_DEPTH:
            return False

        return True

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"V{n:X}={value:02X}" for n, value in enumerate(self.v))
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.i:03X} "
            f"SP={self.sp} DT={self.delay_timer} ST={self.sound_timer} {regs} "
            f"{self.run_state.name}"
        )


def create_initial_state(program: bytes = b"", seed: Optional[int] = None) -> MachineState:
    """Create a machine state with the font set and an optional program loaded.

    Args:
        program: Program bytes to copy at 0x200
        seed: Seed for the per-instance random source

    Returns:
        Fresh MachineState
    """
    state = MachineState(rng=random.Random(seed))
    state.load_bytes(FONT_ADDRESS, FONT_SET)
    if program:
        state.program_length = state.load_bytes(PROGRAM_START, program)
    return state
