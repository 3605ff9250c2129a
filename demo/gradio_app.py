"""chip8_vm Interactive Demo.

A Gradio web interface for running a CHIP-8 ROM and viewing its screen.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Upload a ROM image or run the built-in samples
    - Choose emulated run time, cycles per call and RNG seed
    - Hold any of the 16 keypad keys for the whole run
    - View the final framebuffer and register state
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
import numpy as np
from chip8_vm import Chip8CPU, Chip8Error


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    # Draws the glyphs 0-F in two rows using FX29
    "Hex Font": bytes([
        0x60, 0x00,  # 200: V0 = 0          (glyph)
        0x61, 0x01,  # 202: V1 = 1          (x)
        0x62, 0x01,  # 204: V2 = 1          (y)
        0xF0, 0x29,  # 206: I = glyph V0
        0xD1, 0x25,  # 208: draw 8x5 at (V1, V2)
        0x71, 0x07,  # 20A: x += 7
        0x70, 0x01,  # 20C: glyph += 1
        0x30, 0x08,  # 20E: if glyph == 8 skip
        0x12, 0x16,  # 210: jump 216
        0x61, 0x01,  # 212: x = 1
        0x62, 0x08,  # 214: y = 8  (only reached when glyph == 8)
        0x30, 0x10,  # 216: if glyph == 16 skip
        0x12, 0x06,  # 218: loop
        0x12, 0x1A,  # 21A: halt loop
    ]),

    # Counts up in BCD and shows the three digits
    "BCD Counter": bytes([
        0x63, 0x00,  # 200: V3 = 0
        0x00, 0xE0,  # 202: clear
        0xA3, 0x00,  # 204: I = 0x300
        0xF3, 0x33,  # 206: BCD V3 -> [I..I+2]
        0xF2, 0x65,  # 208: V0..V2 = [I..I+2]
        0x64, 0x10,  # 20A: V4 = 16 (x)
        0x65, 0x0C,  # 20C: V5 = 12 (y)
        0xF0, 0x29,  # 20E: I = glyph V0
        0xD4, 0x55,  # 210: draw
        0x74, 0x08,  # 212: x += 8
        0xF1, 0x29,  # 214: I = glyph V1
        0xD4, 0x55,  # 216: draw
        0x74, 0x08,  # 218: x += 8
        0xF2, 0x29,  # 21A: I = glyph V2
        0xD4, 0x55,  # 21C: draw
        0x73, 0x01,  # 21E: V3 += 1
        0x12, 0x02,  # 220: loop
    ]),

    "Custom": b"",
}


# =============================================================================
# Execution Functions
# =============================================================================

def framebuffer_image(cpu: Chip8CPU, scale: int = 8) -> np.ndarray:
    """Render the framebuffer as an RGB image scaled up by `scale`."""
    pixels = np.array(cpu.get_framebuffer(), dtype=np.uint8)
    pixels = np.kron(pixels, np.ones((scale, scale), dtype=np.uint8))
    on = np.array([136, 126, 203], dtype=np.uint8)
    off = np.array([40, 36, 80], dtype=np.uint8)
    return np.where(pixels[..., None] == 1, on, off)


def run_program(example: str, rom_file, seconds: float, steps_per_call: int,
                seed: float, keys: list) -> tuple:
    """Run a ROM and return results.

    Args:
        example: Name of a built-in example, used when no file is uploaded
        rom_file: Uploaded ROM path (or None)
        seconds: Emulated run time
        steps_per_call: Maximum cycles per run_cycles() call
        seed: RNG seed (negative for unseeded)
        keys: Held keys as hex digit strings

    Returns:
        Tuple of (framebuffer_image, summary_text, registers_text)
    """
    try:
        cpu = Chip8CPU(
            steps_per_call=int(steps_per_call),
            seed=int(seed) if seed is not None and seed >= 0 else None,
        )
        cpu.initialize()
        cpu.set_keys(int(key, 16) for key in keys or [])

        if rom_file:
            cpu.load_rom(rom_file)
            source = Path(rom_file).name
        else:
            program = EXAMPLE_PROGRAMS.get(example, b"")
            if not program:
                return None, "Error: No ROM provided", ""
            cpu.load_program(program)
            source = example

        # One call per 60Hz frame of emulated time
        frame_time = 1.0 / Chip8CPU.TIMER_HZ
        for _ in range(int(seconds * Chip8CPU.TIMER_HZ)):
            if cpu.is_halted():
                break
            cpu.run_cycles(elapsed=frame_time)

        summary = cpu.get_summary()
        summary_lines = [
            "EXECUTION SUMMARY",
            "=" * 40,
            f"ROM: {source} ({summary['program_length']} bytes)",
            f"Cycles: {summary['cycles']}",
            f"State: {summary['run_state']}",
            f"Beeps: {summary['beeps']}",
            f"Lit pixels: {summary['lit_pixels']}",
        ]
        summary_text = "\n".join(summary_lines)

        regs = summary["registers"]
        reg_lines = [
            "FINAL REGISTERS",
            "=" * 30,
        ]
        for name, value in regs.items():
            marker = " *" if value != 0 else ""
            reg_lines.append(f"  {name:>2}: {value:#06x}{marker}")
        registers_text = "\n".join(reg_lines)

        return framebuffer_image(cpu), summary_text, registers_text

    except (Chip8Error, ValueError) as e:
        return None, f"Error: {e}", ""


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="CHIP-8 Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # chip8_vm: CHIP-8 Virtual Machine Interpreter

        Runs a ROM for a fixed amount of emulated time at 60 cycles per
        second and shows the final 64x32 screen.

        **Pipeline**: `fetch -> decode -> key -> registry execute -> timers`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Hex Font",
                    label="Built-in Example"
                )

                rom_input = gr.File(
                    label="ROM Image (overrides example)",
                    type="filepath"
                )

                gr.Markdown("### Settings")

                with gr.Row():
                    seconds = gr.Slider(
                        minimum=0.5,
                        maximum=60,
                        value=2,
                        step=0.5,
                        label="Emulated Seconds"
                    )
                    steps_per_call = gr.Slider(
                        minimum=1,
                        maximum=20,
                        value=1,
                        step=1,
                        label="Steps per Call"
                    )

                seed = gr.Number(
                    value=-1,
                    label="RNG Seed (-1 for random)",
                    precision=0
                )

                keys = gr.CheckboxGroup(
                    choices=[f"{k:X}" for k in range(16)],
                    label="Held Keys"
                )

                run_button = gr.Button("Run", variant="primary")

            with gr.Column(scale=3):
                screen_output = gr.Image(
                    label="Framebuffer",
                    type="numpy",
                    interactive=False
                )
                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=8,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Final Registers",
                        lines=8,
                        interactive=False
                    )

        with gr.Accordion("Keypad Layout", open=False):
            gr.Markdown("""
            | | | | |
            |---|---|---|---|
            | 1 | 2 | 3 | C |
            | 4 | 5 | 6 | D |
            | 7 | 8 | 9 | E |
            | A | 0 | B | F |
            """)

        run_button.click(
            fn=run_program,
            inputs=[example_dropdown, rom_input, seconds, steps_per_call, seed, keys],
            outputs=[screen_output, summary_output, registers_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
