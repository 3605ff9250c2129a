#!/usr/bin/env python3
"""CHIP-8 Command Line Interface.

Run a ROM headless with the chip8_vm interpreter and print the final screen.

Usage:
    python main.py --rom roms/IBM_Logo.ch8
    python main.py --rom roms/pong.ch8 --seconds 10 --fps 30 --steps-per-call 2 --keys 1,4
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8CPU, Chip8Error


def parse_keys(text: str) -> list:
    """Parse a comma-separated list of hex key indices (e.g. "1,a,F")."""
    if not text:
        return []
    return [int(part, 16) for part in text.split(",") if part.strip()]


def main():
    parser = argparse.ArgumentParser(
        description="chip8_vm: CHIP-8 Virtual Machine Interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for one second of emulated time
    python main.py --rom roms/IBM_Logo.ch8

    # Ten seconds, host at 30fps catching up two cycles per call, keys 1 and 4 held
    python main.py --rom roms/pong.ch8 --seconds 10 --fps 30 --steps-per-call 2 --keys 1,4

    # Deterministic random numbers and debug logging
    python main.py --rom roms/random.ch8 --seed 42 --verbose
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        required=True,
        help="Path to CHIP-8 ROM image"
    )
    parser.add_argument(
        "--seconds", "-t",
        type=float,
        default=1.0,
        help="Emulated run time in seconds (60 cycles per second). Default: 1.0"
    )
    parser.add_argument(
        "--fps",
        type=float,
        default=Chip8CPU.TIMER_HZ,
        help="Host frame rate: run_cycles() calls per second. Default: 60"
    )
    parser.add_argument(
        "--steps-per-call", "-s",
        type=int,
        default=Chip8CPU.DEFAULT_STEPS_PER_CALL,
        help="Maximum cycles per run_cycles() call. Default: 1"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the random number instruction"
    )
    parser.add_argument(
        "--keys", "-k",
        type=str,
        default="",
        help="Comma-separated hex keys held down for the whole run"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (final screen only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.seconds < 0:
        parser.error("--seconds must be >= 0")
    if args.fps <= 0:
        parser.error("--fps must be > 0")
    if args.steps_per_call < 1:
        parser.error("--steps-per-call must be >= 1")

    try:
        keys = parse_keys(args.keys)
    except ValueError:
        parser.error(f"Invalid --keys value: {args.keys}")

    # Initialize interpreter
    cpu = Chip8CPU(steps_per_call=args.steps_per_call, seed=args.seed)
    cpu.initialize()

    try:
        cpu.set_keys(keys)
    except ValueError as e:
        parser.error(str(e))

    # Load ROM
    try:
        cpu.load_rom(args.rom)
    except Chip8Error as e:
        print(f"Error: {e}")
        return 1

    if not args.quiet:
        print(f"Loaded ROM: {args.rom} ({cpu.state.program_length} bytes)")
        print("-" * 64)

    # Emulated time, not wall-clock time: output is the same on any host
    frame_time = 1.0 / args.fps
    for _ in range(int(args.seconds * args.fps)):
        if cpu.is_halted():
            break
        cpu.run_cycles(elapsed=frame_time)

    # Output
    print(cpu.format_framebuffer())

    if not args.quiet:
        print("-" * 64)
        summary = cpu.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"State: {summary['run_state']}")
        print(f"Beeps: {summary['beeps']}")
        print(f"Registers: {summary['registers']}")

    # Return exit code based on halted state
    return 1 if cpu.is_halted() else 0


if __name__ == "__main__":
    sys.exit(main())
