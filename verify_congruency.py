#!/usr/bin/env python3
"""
verify_congruency.py - ISA congruency checker for regvm.

Three layers verified:
  1. TABLES    - regvm/isa.py: every Opcode has a mnemonic, a signature
                 and exactly one dialect.
  2. HANDLERS  - every ALU opcode has an entry in ALU_FUNCTIONS; every ASM
                 opcode is dispatched by name in regvm/vm.py.
  3. TOGGLE    - every ASM opcode has a toggle target in the same dialect
                 with the same arity.

Exit codes:
  0  - all checks pass (green)
  1  - one or more congruency failures (red)

Usage:
  python verify_congruency.py            # run checks, print report
  python verify_congruency.py --strict   # additionally fail on any warning
"""

from __future__ import annotations

import ast
import importlib
import sys
from pathlib import Path

ROOT = Path(__file__).parent
STRICT = "--strict" in sys.argv

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _opcode_refs_from_ast(source: str) -> set[str]:
    """
    Return every ``X`` in an ``Opcode.X`` attribute access in the source,
    without executing the module.
    """
    tree = ast.parse(source)
    refs: set[str] = set()
    for node in ast.walk(tree):
        if (isinstance(node, ast.Attribute)
                and isinstance(node.value, ast.Name)
                and node.value.id == "Opcode"):
            refs.add(node.attr)
    return refs


# ─────────────────────────────────────────────────────────────────────────────
# Check results collector
# ─────────────────────────────────────────────────────────────────────────────

class Report:
    def __init__(self, quiet: bool = False) -> None:
        self.errors:   list[str] = []
        self.warnings: list[str] = []
        self.oks:      list[str] = []
        self.quiet = quiet

    def _emit(self, line: str) -> None:
        if not self.quiet:
            print(line)

    def ok(self, msg: str) -> None:
        self.oks.append(msg)
        self._emit(f"  ✅  {msg}")

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)
        self._emit(f"  ⚠️   {msg}")

    def error(self, msg: str) -> None:
        self.errors.append(msg)
        self._emit(f"  ❌  {msg}")

    def section(self, title: str) -> None:
        self._emit(f"\n── {title} " + "─" * max(0, 68 - len(title)))

    @property
    def passed(self) -> bool:
        if self.errors:
            return False
        if STRICT and self.warnings:
            return False
        return True


# ─────────────────────────────────────────────────────────────────────────────
# Layer 1 - ISA tables
# ─────────────────────────────────────────────────────────────────────────────

def check_tables(r: Report) -> None:
    r.section("Layer 1: ISA tables (regvm/isa.py)")
    isa = importlib.import_module("regvm.isa")

    missing_sig = [op for op in isa.Opcode if op not in isa.SIGNATURES]
    if missing_sig:
        r.error(f"SIGNATURES missing: {[op.value for op in missing_sig]}")
    else:
        r.ok(f"SIGNATURES covers all {len(isa.Opcode)} opcodes")

    bad_mnemonic = [mn for mn, op in isa.MNEMONICS.items() if op.value != mn]
    if bad_mnemonic or len(isa.MNEMONICS) != len(isa.Opcode):
        r.error(f"MNEMONICS table inconsistent: {bad_mnemonic}")
    else:
        r.ok("MNEMONICS reverse table is consistent with Opcode")

    asm = isa.DIALECT_OPCODES[isa.Dialect.ASM]
    alu = isa.DIALECT_OPCODES[isa.Dialect.ALU]
    overlap = asm & alu
    orphans = [op for op in isa.Opcode if op not in asm | alu]
    if overlap:
        r.error(f"opcodes in both dialects: {sorted(op.value for op in overlap)}")
    if orphans:
        r.error(f"opcodes in no dialect: {[op.value for op in orphans]}")
    if not overlap and not orphans:
        r.ok(f"dialects partition the ISA  asm={len(asm)} alu={len(alu)}")

    bad_sig = [op.value for op, sig in isa.SIGNATURES.items()
               if set(sig) - set("rivw") or sig.count("w") > 1]
    if bad_sig:
        r.error(f"malformed signatures: {bad_sig}")
    else:
        r.ok("every signature uses r/i/v/w with at most one write slot")


# ─────────────────────────────────────────────────────────────────────────────
# Layer 2 - Handler coverage
# ─────────────────────────────────────────────────────────────────────────────

def check_handlers(r: Report) -> None:
    r.section("Layer 2: Handler coverage (regvm/vm.py)")
    isa = importlib.import_module("regvm.isa")

    alu = isa.DIALECT_OPCODES[isa.Dialect.ALU]
    missing_fn = sorted(op.value for op in alu if op not in isa.ALU_FUNCTIONS)
    if missing_fn:
        r.error(f"ALU opcodes without ALU_FUNCTIONS entry: {missing_fn}")
    else:
        r.ok(f"ALU_FUNCTIONS covers all {len(alu)} ALU opcodes")

    stray = sorted(op.value for op in isa.ALU_FUNCTIONS if op not in alu)
    if stray:
        r.warn(f"ALU_FUNCTIONS has non-ALU entries: {stray}")

    vm_path = ROOT / "regvm" / "vm.py"
    refs = _opcode_refs_from_ast(vm_path.read_text(encoding="utf-8"))
    asm = isa.DIALECT_OPCODES[isa.Dialect.ASM]
    for op in sorted(asm, key=lambda o: o.value):
        if op.name in refs:
            r.ok(f"vm.py: handles {op.value}")
        else:
            r.error(f"ASM opcode {op.value!r} has NO handler in regvm/vm.py")


# ─────────────────────────────────────────────────────────────────────────────
# Layer 3 - Toggle table
# ─────────────────────────────────────────────────────────────────────────────

def check_toggle(r: Report) -> None:
    r.section("Layer 3: Toggle table")
    isa = importlib.import_module("regvm.isa")
    asm = isa.DIALECT_OPCODES[isa.Dialect.ASM]

    for op in sorted(asm, key=lambda o: o.value):
        target = isa.TOGGLE.get(op)
        if target is None:
            r.error(f"{op.value}: no toggle target")
        elif target not in asm:
            r.error(f"{op.value} toggles out of the ASM dialect to {target.value}")
        elif isa.arity(target) != isa.arity(op):
            r.error(f"{op.value} → {target.value}: arity {isa.arity(op)} → {isa.arity(target)}")
        else:
            r.ok(f"{op.value} → {target.value}")

    extra = sorted(op.value for op in isa.TOGGLE if op not in asm)
    if extra:
        r.warn(f"TOGGLE has entries outside the ASM dialect: {extra}")


# ─────────────────────────────────────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────────────────────────────────────

def run_checks(quiet: bool = False) -> Report:
    r = Report(quiet=quiet)
    check_tables(r)
    check_handlers(r)
    check_toggle(r)
    return r


def main() -> int:
    print("=" * 72)
    print("  regvm Congruency Verifier  -  ISA / handler / toggle consistency")
    print("=" * 72)

    r = run_checks()

    print()
    print("=" * 72)
    total = len(r.oks) + len(r.errors) + len(r.warnings)
    print(f"  Results: {len(r.oks)} ✅  {len(r.warnings)} ⚠️   {len(r.errors)} ❌  "
          f"({total} checks)")
    if r.passed:
        print("  STATUS: CONGRUENT - all layers consistent")
    else:
        print("  STATUS: INCONGRUENT - fix errors before proceeding")
    print("=" * 72)
    return 0 if r.passed else 1


if __name__ == "__main__":
    sys.exit(main())
