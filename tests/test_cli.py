"""
tests/test_cli.py - regvm command-line driver (run / check / version).
"""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from regvm.cli import main

EXAMPLES = Path(__file__).parent.parent / "examples"


def run_cli(capsys, *argv):
    main(list(argv))
    return capsys.readouterr()


class TestRun:
    def test_outputs_and_registers(self, capsys):
        out = run_cli(capsys, "run", str(EXAMPLES / "countdown.asm")).out.splitlines()
        assert out[:4] == ["3", "2", "1", "7"]
        assert out[4] == "[a=0, b=0, c=0, d=0]"

    def test_set_registers(self, capsys):
        out = run_cli(capsys, "run", str(EXAMPLES / "multiply.asm"),
                      "--set", "b=6", "--set", "d=7").out
        assert "[a=42, b=6, c=0, d=0]" in out

    def test_turbo(self, capsys):
        out = run_cli(capsys, "run", str(EXAMPLES / "toggle_factorial.asm"),
                      "--set", "a=7", "--turbo", "-v").out
        assert "a=11004" in out
        assert "fast-forwards=" in out
        assert "[VM] halted" in out

    def test_max_steps(self, capsys):
        out = run_cli(capsys, "run", str(EXAMPLES / "countdown.asm"),
                      "--max-steps", "3", "-v").out.splitlines()
        assert out[0] == "3"
        assert out[1] == "[a=2, b=0, c=0, d=0]"
        assert "stopped at ip=3" in out[-1]

    def test_max_steps_with_turbo(self, capsys):
        out = run_cli(capsys, "run", str(EXAMPLES / "multiply.asm"),
                      "--set", "b=300", "--set", "d=300", "--turbo",
                      "--max-steps", "100").out
        assert "a=90000" in out

    def test_alu_program(self, capsys):
        out = run_cli(capsys, "run", str(EXAMPLES / "divisor_sum.alu"),
                      "--set", "r4=12").out
        assert out.startswith("[r0=28,")

    def test_extra_registers(self, capsys, tmp_path):
        src = tmp_path / "e.asm"
        src.write_text("inc e\n")
        out = run_cli(capsys, "run", str(src), "--registers", "5").out
        assert "e=1" in out

    def test_trace(self, capsys, caplog):
        with caplog.at_level(logging.DEBUG, logger="regvm.vm"):
            run_cli(capsys, "run", str(EXAMPLES / "countdown.asm"), "--trace")
        assert any("out a" in r.getMessage() for r in caplog.records)

    def test_unknown_register(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["run", str(EXAMPLES / "countdown.asm"), "--set", "z=1"])
        assert exc.value.code == 1
        assert "❌" in capsys.readouterr().err


class TestErrors:
    def test_parse_error(self, capsys, tmp_path):
        src = tmp_path / "bad.asm"
        src.write_text("inc a\ncpy 1 2\n")
        with pytest.raises(SystemExit) as exc:
            main(["run", str(src)])
        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert "❌ Parse error" in err
        assert "Line 2" in err

    def test_missing_file(self, capsys, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main(["check", str(tmp_path / "nope.asm")])
        assert exc.value.code == 1
        assert "Cannot read" in capsys.readouterr().err

    @pytest.mark.parametrize("count", ["0", "-1"])
    def test_non_positive_register_count(self, capsys, count):
        with pytest.raises(SystemExit) as exc:
            main(["run", str(EXAMPLES / "countdown.asm"), "--registers", count])
        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert "❌ Parse error" in err
        assert "register count must be positive" in err

    def test_bad_assignment(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["run", str(EXAMPLES / "countdown.asm"), "--set", "a"])
        assert exc.value.code == 2


class TestCheckAndVersion:
    def test_check_listing(self, capsys):
        out = run_cli(capsys, "check", str(EXAMPLES / "divisor_sum.alu")).out
        assert "mulr 1 2 5" in out
        assert "16 instructions" in out
        assert "dialect=alu" in out
        assert "BoundRegister(index=3)" in out

    def test_check_forced_dialect(self, capsys):
        with pytest.raises(SystemExit):
            main(["check", str(EXAMPLES / "countdown.asm"), "--dialect", "alu"])
        assert "bad opcode" in capsys.readouterr().err

    def test_version(self, capsys):
        assert run_cli(capsys, "version").out.strip() == "regvm 0.1.0"
