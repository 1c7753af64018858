"""regvm ISA - opcode tables, operand signatures and register naming.

Two dialects share one instruction shape:

  ASM  (variable-length toy ISA)   cpy inc dec jnz tgl out
  ALU  (fixed a/b/c register ISA)  addr addi mulr muli banr bani borr bori
                                   setr seti gtir gtri gtrr eqir eqri eqrr
"""
from __future__ import annotations

import operator
from enum import Enum
from typing import Callable


class Dialect(Enum):
    ASM = "asm"
    ALU = "alu"


class Opcode(Enum):
    # ── ASM dialect ────────────────────────────────────────────────────────
    CPY  = "cpy"
    INC  = "inc"
    DEC  = "dec"
    JNZ  = "jnz"
    TGL  = "tgl"
    OUT  = "out"

    # ── ALU dialect ────────────────────────────────────────────────────────
    ADDR = "addr"
    ADDI = "addi"
    MULR = "mulr"
    MULI = "muli"
    BANR = "banr"
    BANI = "bani"
    BORR = "borr"
    BORI = "bori"
    SETR = "setr"
    SETI = "seti"
    GTIR = "gtir"
    GTRI = "gtri"
    GTRR = "gtrr"
    EQIR = "eqir"
    EQRI = "eqri"
    EQRR = "eqrr"

    def __str__(self) -> str:
        return self.value


MNEMONICS: dict[str, Opcode] = {op.value: op for op in Opcode}


# ── Operand signatures ─────────────────────────────────────────────────────────
#   "r"  register read
#   "i"  immediate value
#   "v"  register or immediate (decided by the source text)
#   "w"  register write target

SIGNATURES: dict[Opcode, str] = {
    Opcode.CPY:  "vw",
    Opcode.INC:  "w",
    Opcode.DEC:  "w",
    Opcode.JNZ:  "vv",
    Opcode.TGL:  "v",
    Opcode.OUT:  "v",

    Opcode.ADDR: "rrw",
    Opcode.ADDI: "riw",
    Opcode.MULR: "rrw",
    Opcode.MULI: "riw",
    Opcode.BANR: "rrw",
    Opcode.BANI: "riw",
    Opcode.BORR: "rrw",
    Opcode.BORI: "riw",
    Opcode.SETR: "riw",   # B ignored
    Opcode.SETI: "iiw",   # B ignored
    Opcode.GTIR: "irw",
    Opcode.GTRI: "riw",
    Opcode.GTRR: "rrw",
    Opcode.EQIR: "irw",
    Opcode.EQRI: "riw",
    Opcode.EQRR: "rrw",
}

DIALECT_OPCODES: dict[Dialect, frozenset] = {
    Dialect.ASM: frozenset({Opcode.CPY, Opcode.INC, Opcode.DEC,
                            Opcode.JNZ, Opcode.TGL, Opcode.OUT}),
    Dialect.ALU: frozenset(op for op in Opcode if len(SIGNATURES[op]) == 3),
}


def dialect_of(op: Opcode) -> Dialect:
    for dialect, members in DIALECT_OPCODES.items():
        if op in members:
            return dialect
    raise KeyError(op)


def arity(op: Opcode) -> int:
    return len(SIGNATURES[op])


# ── Self-modification ──────────────────────────────────────────────────────────
#   One-argument opcodes become `inc` (and `inc` becomes `dec`);
#   two-argument opcodes become `jnz` (and `jnz` becomes `cpy`).
#   Operands are carried over slot for slot.

TOGGLE: dict[Opcode, Opcode] = {
    Opcode.CPY: Opcode.JNZ,
    Opcode.JNZ: Opcode.CPY,
    Opcode.INC: Opcode.DEC,
    Opcode.DEC: Opcode.INC,
    Opcode.TGL: Opcode.INC,
    Opcode.OUT: Opcode.INC,
}


# ── ALU semantics: dst = f(a, b) ───────────────────────────────────────────────

def _first(a: int, b: int) -> int:
    return a


def _gt(a: int, b: int) -> int:
    return 1 if a > b else 0


def _eq(a: int, b: int) -> int:
    return 1 if a == b else 0


ALU_FUNCTIONS: dict[Opcode, Callable[[int, int], int]] = {
    Opcode.ADDR: operator.add,
    Opcode.ADDI: operator.add,
    Opcode.MULR: operator.mul,
    Opcode.MULI: operator.mul,
    Opcode.BANR: operator.and_,
    Opcode.BANI: operator.and_,
    Opcode.BORR: operator.or_,
    Opcode.BORI: operator.or_,
    Opcode.SETR: _first,
    Opcode.SETI: _first,
    Opcode.GTIR: _gt,
    Opcode.GTRI: _gt,
    Opcode.GTRR: _gt,
    Opcode.EQIR: _eq,
    Opcode.EQRI: _eq,
    Opcode.EQRR: _eq,
}


# ── Registers ──────────────────────────────────────────────────────────────────
# ASM  a..z  → 0..25   (register_count decides how many are legal)
# ALU  0..N  → 0..N    (written as bare integers in source, r<N> in traces)

REGISTER_LETTERS = "abcdefghijklmnopqrstuvwxyz"

DEFAULT_REGISTER_COUNT: dict[Dialect, int] = {
    Dialect.ASM: 4,
    Dialect.ALU: 6,
}

IP_DIRECTIVE = "#ip"


def register_index(name: str, count: int = len(REGISTER_LETTERS)) -> int:
    """Map a register name (``a``, ``c``, ``r3``, ``3``) to its index."""
    if len(name) == 1 and name in REGISTER_LETTERS:
        n = REGISTER_LETTERS.index(name)
    elif name[:1] in ("r", "R") and name[1:].isdigit():
        n = int(name[1:])
    elif name.isdigit():
        n = int(name)
    else:
        raise ValueError(f"Unknown register: {name!r}")
    if not 0 <= n < count:
        raise ValueError(f"Register index {n} out of range (0-{count - 1})")
    return n


def register_name(index: int, dialect: Dialect = Dialect.ASM) -> str:
    if dialect is Dialect.ASM and 0 <= index < len(REGISTER_LETTERS):
        return REGISTER_LETTERS[index]
    return f"r{index}"
