"""chip8_vm: CHIP-8 Virtual Machine Interpreter.

This package implements an interpreter for the 35-instruction CHIP-8
instruction set: 4K of memory, sixteen 8-bit registers, a 16-level call
stack, delay and sound timers, a 16-key pad and a 64x32 monochrome
framebuffer drawn with XOR sprites.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> TIMERS
               |         |        |        |           |          |
           [PC-based] [nibbles] [tag]  [frozen]    [in-place]  [60Hz]

Displaying the framebuffer, playing sound and polling real keys are
left to the caller.

Modules:
    state: MachineState aggregate with bounds-checked accessors
    decode: Instruction word -> tagged DecodeResult
    registry: Execute primitives (OP_CLS, OP_DRW, etc.)
    cpu: Main Chip8CPU orchestrator and 60Hz cycle driver
    errors: Exception hierarchy
"""

__version__ = "0.1.0"
__author__ = "chip8_vm Project"

from .state import MachineState, RunState
from .registry import InstructionRegistry
from .decode import Decoder, DecodeResult
from .cpu import Chip8CPU, StepResult
from .errors import Chip8Error, Chip8RuntimeError, RomLoadError

__all__ = [
    "MachineState",
    "RunState",
    "InstructionRegistry",
    "Decoder",
    "DecodeResult",
    "Chip8CPU",
    "StepResult",
    "Chip8Error",
    "Chip8RuntimeError",
    "RomLoadError",
]
