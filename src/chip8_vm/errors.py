"""Custom exceptions for the CHIP-8 interpreter."""

from typing import Optional


class Chip8Error(Exception):
    """Base exception for all interpreter errors."""

    def __init__(self, message: str, addr: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.addr = addr


class RomLoadError(Chip8Error):
    """ROM image could not be read from storage."""
    pass


class Chip8RuntimeError(Chip8Error):
    """Machine fault raised while executing a program."""
    pass


class MemoryAccessError(Chip8RuntimeError):
    """Memory or framebuffer address out of bounds."""
    pass


class StackOverflowError(Chip8RuntimeError):
    """CALL with all 16 stack slots in use."""
    pass


class StackUnderflowError(Chip8RuntimeError):
    """RET with an empty stack."""
    pass


class InvalidKeyError(Chip8RuntimeError):
    """Key index outside 0x0..0xF."""
    pass
