"""Tests for the command line interface."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import main as cli


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["main.py", *args])
    return cli.main()


@pytest.fixture
def rom(tmp_path):
    """ROM that draws glyph 0 at the origin and then spins."""
    path = tmp_path / "zero.ch8"
    path.write_bytes(bytes([0x60, 0x00, 0xF0, 0x29, 0xD0, 0x05, 0x12, 0x06]))
    return path


class TestParseKeys:

    def test_hex_keys(self):
        assert cli.parse_keys("1,a,F") == [0x1, 0xA, 0xF]

    def test_empty(self):
        assert cli.parse_keys("") == []

    def test_invalid(self):
        with pytest.raises(ValueError):
            cli.parse_keys("x")


class TestMain:

    def test_runs_rom(self, monkeypatch, capsys, rom):
        assert run_cli(monkeypatch, "--rom", str(rom), "--seconds", "0.5") == 0
        out = capsys.readouterr().out
        assert "####" + "." * 60 in out
        assert "Cycles: 30" in out
        assert "State: running" in out

    def test_quiet_prints_screen_only(self, monkeypatch, capsys, rom):
        assert run_cli(monkeypatch, "--rom", str(rom), "--quiet") == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 32

    def test_missing_rom(self, monkeypatch, capsys, tmp_path):
        assert run_cli(monkeypatch, "--rom", str(tmp_path / "none.ch8")) == 1
        assert "Error:" in capsys.readouterr().out

    def test_fault_exit_code(self, monkeypatch, tmp_path):
        """A RET with an empty stack halts and exits non-zero."""
        path = tmp_path / "ret.ch8"
        path.write_bytes(bytes([0x00, 0xEE]))
        assert run_cli(monkeypatch, "--rom", str(path), "--quiet") == 1

    def test_bad_steps_per_call(self, monkeypatch, rom):
        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "--rom", str(rom), "--steps-per-call", "0")
