"""Chip8CPU: interpreter orchestrator for the CHIP-8 virtual machine.

This module wires the execution pipeline together:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> TIMERS

and owns the lifecycle (initialize, load, restart) and the 60Hz cycle
driver. The driver keeps a time accumulator: each call adds the elapsed
real time and runs one cycle per whole 1/60 s period it covers, up to
steps_per_call cycles, carrying the remainder (at most steps_per_call
periods) to the next call.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from .decode import DecodeResult, Decoder
from .errors import Chip8RuntimeError, MemoryAccessError, RomLoadError
from .registry import get_registry
from .state import (
    MAX_PROGRAM_SIZE,
    NUM_KEYS,
    PROGRAM_START,
    RunState,
    create_initial_state,
)


logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    """Outcome of one step of the interpreter.

    Attributes:
        cycle: Cycle count after the step
        pc: Program counter at the start of the step
        opcode: Instruction word handled by the step
        decode_result: Result from the decoder (None while waiting for a key)
        executed: Whether an instruction completed and the timers ticked
        beeped: Whether the sound timer ran out during this step
        error: Machine fault message if the step halted the interpreter
    """
    cycle: int
    pc: int
    opcode: int
    decode_result: Optional[DecodeResult] = None
    executed: bool = False
    beeped: bool = False
    error: Optional[str] = None


class Chip8CPU:
    """CHIP-8 interpreter with a 60Hz time-accumulator driver.

    Every piece of machine state lives on this instance's MachineState,
    so interpreters are fully isolated from one another.

    Attributes:
        decoder: Decoder for instruction words
        registry: InstructionRegistry with execute primitives
        state: Current machine state
        steps_per_call: Maximum cycles attempted per run_cycles() call
        beep_count: Number of beeps raised so far
    """

    DEFAULT_STEPS_PER_CALL = 1
    TIMER_HZ = 60.0
    # Float slack when comparing the accumulator against one period
    _EPSILON = 1e-9

    def __init__(
        self,
        steps_per_call: int = DEFAULT_STEPS_PER_CALL,
        seed: Optional[int] = None,
        on_beep: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Create the interpreter. Call initialize() before loading a program.

        Args:
            steps_per_call: Maximum cycles attempted per run_cycles() call
            seed: Seed for the CXNN random source
            on_beep: Called each time the sound timer runs out
            clock: Monotonic time source in seconds
        """
        if steps_per_call < 1:
            raise ValueError(f"steps_per_call must be >= 1, got {steps_per_call}")

        self.decoder = Decoder()
        self.registry = get_registry()
        self.state = create_initial_state(seed=seed)
        self.steps_per_call = steps_per_call
        self.on_beep = on_beep
        self.beep_count = 0
        self._clock = clock
        self._last_tick: Optional[float] = None
        self._accumulator = 0.0
        self._initialized = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def initialized(self) -> bool:
        """Whether initialize() has been called."""
        return self._initialized

    def initialize(self) -> None:
        """Reset control registers and start the reference clock.

        Only the first call has an effect.
        """
        if self._initialized:
            return

        self.state.reset_control()
        self.state.program_length = 0
        self._last_tick = self._clock()
        self._accumulator = 0.0
        self._initialized = True
        logger.info("Interpreter initialized, PC=%03X", self.state.pc)

    def load_program(self, data: bytes) -> bool:
        """Copy program bytes into memory at 0x200.

        Args:
            data: Raw ROM bytes

        Returns:
            True if loaded, False if the interpreter is not initialized

        Raises:
            MemoryAccessError: If the program is larger than 3584 bytes;
                memory is left untouched
        """
        if not self._initialized:
            logger.warning("Program load ignored: interpreter not initialized")
            return False

        data = bytes(data)
        if len(data) > MAX_PROGRAM_SIZE:
            raise MemoryAccessError(
                f"Program of {len(data)} bytes exceeds {MAX_PROGRAM_SIZE} byte limit",
                addr=PROGRAM_START,
            )

        self.state.program_length = self.state.load_bytes(PROGRAM_START, data)
        logger.info("Loaded %d program bytes at %03X", self.state.program_length, PROGRAM_START)
        return True

    def load_rom(self, path: Union[str, Path]) -> bool:
        """Read a ROM file and load it at 0x200.

        Args:
            path: Path to the ROM image

        Returns:
            True if loaded, False if the interpreter is not initialized

        Raises:
            RomLoadError: If the file cannot be read
        """
        if not self._initialized:
            logger.warning("ROM load ignored: interpreter not initialized")
            return False

        rom_path = Path(path)
        try:
            data = rom_path.read_bytes()
        except OSError as e:
            raise RomLoadError(f"Cannot read ROM {rom_path}: {e}") from e

        return self.load_program(data)

    def restart(self) -> None:
        """Reset PC, opcode, I, SP, timers and run state.

        Memory, V registers, the framebuffer and the reference clock are kept.
        """
        self.state.reset_control()
        logger.info("Interpreter restarted")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Interpreter not initialized")

    # =========================================================================
    # Fetch / Execute / Timers
    # =========================================================================

    def fetch(self) -> int:
        """Read the big-endian instruction word at PC.

        Returns:
            The 16-bit instruction word, also stored in state.opcode

        Raises:
            MemoryAccessError: If PC+1 is past the end of memory
        """
        high = self.state.read_byte(self.state.pc)
        low = self.state.read_byte(self.state.pc + 1)
        self.state.opcode = (high << 8) | low
        return self.state.opcode

    def step(self) -> StepResult:
        """Execute a single fetch / decode / execute / timer cycle.

        While AWAITING_KEY the step only polls the keypad. A machine fault
        halts the interpreter and is reported in the result.

        Timers tick only when an instruction completes. An unrecognized
        word or a step spent waiting for a key leaves them untouched, unlike
        interpreters that count the timers down on every loop iteration.

        Returns:
            StepResult describing the cycle

        Raises:
            RuntimeError: If not initialized or already halted
        """
        self._require_initialized()
        state = self.state

        if state.run_state is RunState.HALTED:
            raise RuntimeError("Interpreter is halted")

        pc = state.pc

        if state.run_state is RunState.AWAITING_KEY:
            if not self._resume_key_wait():
                return StepResult(cycle=state.cycle_count, pc=pc, opcode=state.opcode)
            beeped = self._finish_cycle()
            return StepResult(
                cycle=state.cycle_count,
                pc=pc,
                opcode=state.opcode,
                executed=True,
                beeped=beeped,
            )

        decode_result = None
        try:
            opcode = self.fetch()
            decode_result = self.decoder.decode(opcode)
            self.registry.execute(state, decode_result.key, decode_result.params)
        except Chip8RuntimeError as e:
            state.run_state = RunState.HALTED
            logger.warning("Machine fault at PC=%03X: %s", pc, e)
            return StepResult(
                cycle=state.cycle_count,
                pc=pc,
                opcode=state.opcode,
                decode_result=decode_result,
                error=str(e),
            )

        executed = decode_result.valid and state.run_state is RunState.RUNNING
        beeped = self._finish_cycle() if executed else False

        return StepResult(
            cycle=state.cycle_count,
            pc=pc,
            opcode=opcode,
            decode_result=decode_result,
            executed=executed,
            beeped=beeped,
        )

    def _resume_key_wait(self) -> bool:
        """Complete a pending FX0A if a key is now pressed."""
        key = self.state.pressed_key()
        if key is None:
            return False

        self.state.set_register(self.state.key_register, key)
        self.state.key_register = None
        self.state.run_state = RunState.RUNNING
        self.state.increment_pc()
        return True

    def _finish_cycle(self) -> bool:
        self.state.cycle_count += 1
        return self.update_timers()

    def update_timers(self) -> bool:
        """Count both timers down by one tick.

        Returns:
            True if the sound timer went from 1 to 0 and a beep was raised
        """
        state = self.state
        if state.delay_timer > 0:
            state.delay_timer -= 1

        beeped = False
        if state.sound_timer > 0:
            if state.sound_timer == 1:
                self._beep()
                beeped = True
            state.sound_timer -= 1

        return beeped

    def _beep(self) -> None:
        self.beep_count += 1
        if self.on_beep is not None:
            self.on_beep()
        else:
            logger.info("BEEP")

    # =========================================================================
    # Cycle Driver
    # =========================================================================

    def run_cycles(self, elapsed: Optional[float] = None) -> int:
        """Run as many 60Hz cycles as the accumulated time covers.

        Time that a call cannot use is carried forward, but never more than
        steps_per_call periods of it, so a stalled host does not make the
        machine run fast afterwards. No time is banked while halted.

        Args:
            elapsed: Seconds since the previous call. Measured from the
                reference clock when None.

        Returns:
            Number of steps attempted (at most steps_per_call)

        Raises:
            RuntimeError: If not initialized
        """
        self._require_initialized()

        now = self._clock()
        if elapsed is None:
            elapsed = now - self._last_tick
        self._last_tick = now

        # A halted machine does not bank time for after a restart
        if self.state.run_state is RunState.HALTED:
            return 0
        self._accumulator += max(elapsed, 0.0)

        period = 1.0 / self.TIMER_HZ
        steps = 0
        for _ in range(self.steps_per_call):
            if self.state.run_state is RunState.HALTED:
                break
            if self._accumulator + self._EPSILON < period:
                break
            self._accumulator = max(self._accumulator - period, 0.0)
            self.step()
            steps += 1

        # Drop backlog beyond one call's worth of cycles
        self._accumulator = min(self._accumulator, period * self.steps_per_call)
        return steps

    @property
    def pending_time(self) -> float:
        """Accumulated time not yet consumed by a cycle, in seconds."""
        return self._accumulator

    # =========================================================================
    # Keypad
    # =========================================================================

    @staticmethod
    def _check_key(key: int) -> None:
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"Invalid key: {key}")

    def press_key(self, key: int) -> None:
        """Mark a key (0x0-0xF) as pressed."""
        self._check_key(key)
        self.state.keys[key] = True

    def release_key(self, key: int) -> None:
        """Mark a key (0x0-0xF) as released."""
        self._check_key(key)
        self.state.keys[key] = False

    def set_keys(self, pressed: Iterable[int]) -> None:
        """Replace the keypad state with the given set of pressed keys."""
        pressed = set(pressed)
        for key in pressed:
            self._check_key(key)
        for key in range(NUM_KEYS):
            self.state.keys[key] = key in pressed

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_framebuffer(self) -> List[List[int]]:
        """Get a copy of the 32x64 framebuffer (rows of 0/1)."""
        return self.state.copy_framebuffer()

    def format_framebuffer(self, on: str = "#", off: str = ".") -> str:
        """Render the framebuffer as text, one line per row."""
        return "\n".join(
            "".join(on if pixel else off for pixel in row)
            for row in self.state.framebuffer
        )

    def get_register(self, index: int) -> int:
        """Get value of V register by index."""
        return self.state.get_register(index)

    def dump_registers(self) -> Dict[str, int]:
        """Get all register values."""
        return self.state.dump_registers()

    def get_pc(self) -> int:
        """Get the program counter."""
        return self.state.pc

    def get_cycle_count(self) -> int:
        """Get the number of completed cycles."""
        return self.state.cycle_count

    def is_halted(self) -> bool:
        """Check if the interpreter stopped on a machine fault."""
        return self.state.run_state is RunState.HALTED

    def is_awaiting_key(self) -> bool:
        """Check if an FX0A is waiting for a key press."""
        return self.state.run_state is RunState.AWAITING_KEY

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.get_cycle_count(),
            "run_state": self.state.run_state.value,
            "halted": self.is_halted(),
            "registers": self.dump_registers(),
            "program_length": self.state.program_length,
            "beeps": self.beep_count,
            "lit_pixels": sum(sum(row) for row in self.state.framebuffer),
        }
