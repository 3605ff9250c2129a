"""Decoder: instruction word to tagged operation for the CHIP-8 interpreter.

This module turns a fetched 16-bit instruction word into a DecodeResult
holding an operation key and its operand fields. Execution is a separate
step (see registry), so each operation can be unit tested on its own.

Architecture:
    instruction word -> Decoder -> (operation_key, params) -> Registry -> Execute

Operand fields extracted from the word (all always present in params for
the operations that use them):
    x:   bits 8-11, first register selector
    y:   bits 4-7, second register selector
    n:   bits 0-3, sprite height
    nn:  bits 0-7, immediate byte
    nnn: bits 0-11, address
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set


logger = logging.getLogger(__name__)


@dataclass
class DecodeResult:
    """Result of instruction decode operation.

    Attributes:
        key: Operation key (e.g., "OP_ADD_VX_VY")
        params: Operand fields used by the operation
        valid: Whether decode succeeded
        error: Error message if decode failed
        raw_instruction: Original 16-bit instruction word
    """
    key: str
    params: Dict[str, int]
    valid: bool
    error: Optional[str] = None
    raw_instruction: int = 0


class Decoder:
    """Bit-pattern decoder for the 35-instruction CHIP-8 set.

    Dispatches on the high nibble. Family 0 and 8 dispatch further on the
    low nibble, families E and F on the low byte. Anything else yields an
    OP_INVALID result.
    """

    VALID_KEYS: Set[str] = {
        "OP_CLS",
        "OP_RET",
        "OP_JP",
        "OP_CALL",
        "OP_SE_VX_NN",
        "OP_SNE_VX_NN",
        "OP_SE_VX_VY",
        "OP_LD_VX_NN",
        "OP_ADD_VX_NN",
        "OP_LD_VX_VY",
        "OP_OR",
        "OP_AND",
        "OP_XOR",
        "OP_ADD_VX_VY",
        "OP_SUB",
        "OP_SHR",
        "OP_SUBN",
        "OP_SHL",
        "OP_SNE_VX_VY",
        "OP_LD_I",
        "OP_JP_V0",
        "OP_RND",
        "OP_DRW",
        "OP_SKP",
        "OP_SKNP",
        "OP_LD_VX_DT",
        "OP_LD_VX_K",
        "OP_LD_DT_VX",
        "OP_LD_ST_VX",
        "OP_ADD_I_VX",
        "OP_LD_F_VX",
        "OP_LD_B_VX",
        "OP_LD_I_VX",
        "OP_LD_VX_I",
        "OP_INVALID",
    }

    # Low-nibble dispatch for family 8
    ALU_KEYS: Dict[int, str] = {
        0x0: "OP_LD_VX_VY",
        0x1: "OP_OR",
        0x2: "OP_AND",
        0x3: "OP_XOR",
        0x4: "OP_ADD_VX_VY",
        0x5: "OP_SUB",
        0x6: "OP_SHR",
        0x7: "OP_SUBN",
        0xE: "OP_SHL",
    }

    # Low-byte dispatch for family E
    KEY_SKIP_KEYS: Dict[int, str] = {
        0x9E: "OP_SKP",
        0xA1: "OP_SKNP",
    }

    # Low-byte dispatch for family F
    MISC_KEYS: Dict[int, str] = {
        0x07: "OP_LD_VX_DT",
        0x0A: "OP_LD_VX_K",
        0x15: "OP_LD_DT_VX",
        0x18: "OP_LD_ST_VX",
        0x1E: "OP_ADD_I_VX",
        0x29: "OP_LD_F_VX",
        0x33: "OP_LD_B_VX",
        0x55: "OP_LD_I_VX",
        0x65: "OP_LD_VX_I",
    }

    # High-nibble families with a single operation
    SIMPLE_KEYS: Dict[int, str] = {
        0x1: "OP_JP",
        0x2: "OP_CALL",
        0x3: "OP_SE_VX_NN",
        0x4: "OP_SNE_VX_NN",
        0x5: "OP_SE_VX_VY",
        0x6: "OP_LD_VX_NN",
        0x7: "OP_ADD_VX_NN",
        0x9: "OP_SNE_VX_VY",
        0xA: "OP_LD_I",
        0xB: "OP_JP_V0",
        0xC: "OP_RND",
        0xD: "OP_DRW",
    }

    def decode(self, word: int) -> DecodeResult:
        """Decode an instruction word to operation key and parameters.

        Args:
            word: 16-bit instruction word (e.g., 0x8124)

        Returns:
            DecodeResult with operation key and operand fields
        """
        word &= 0xFFFF
        family = word >> 12
        params = self.operands(word)

        if family == 0x0:
            key = {0x0: "OP_CLS", 0xE: "OP_RET"}.get(params["n"])
        elif family == 0x8:
            key = self.ALU_KEYS.get(params["n"])
        elif family == 0xE:
            key = self.KEY_SKIP_KEYS.get(params["nn"])
        elif family == 0xF:
            key = self.MISC_KEYS.get(params["nn"])
        else:
            key = self.SIMPLE_KEYS[family]

        if key is None:
            logger.debug("Unrecognized instruction %04X", word)
            return DecodeResult(
                "OP_INVALID",
                {"raw": word},
                False,
                error=f"Unknown instruction: {word:04X}",
                raw_instruction=word,
            )

        return DecodeResult(key, params, True, raw_instruction=word)

    @staticmethod
    def operands(word: int) -> Dict[str, int]:
        """Split an instruction word into its operand fields."""
        return {
            "x": (word & 0x0F00) >> 8,
            "y": (word & 0x00F0) >> 4,
            "n": word & 0x000F,
            "nn": word & 0x00FF,
            "nnn": word & 0x0FFF,
        }
