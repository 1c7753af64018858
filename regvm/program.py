"""regvm program model - operands, decoded instructions and the mutable program.

The program is a flat, indexable list.  ``tgl`` rewrites one element in
place; nothing ever inserts or removes instructions after construction.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from regvm.isa import (
    DEFAULT_REGISTER_COUNT, SIGNATURES, TOGGLE,
    Dialect, Opcode, dialect_of, register_name,
)


class ProgramError(Exception):
    """Raised when a program breaks the operand contract (bug in the caller)."""


# ── Operands ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Register:
    index: int

    def resolve(self, registers: Sequence[int]) -> int:
        return registers[self.index]


@dataclass(frozen=True)
class Immediate:
    value: int

    def resolve(self, registers: Sequence[int]) -> int:
        return self.value


Operand = Union[Register, Immediate]


def resolve(operand: Operand, registers: Sequence[int]) -> int:
    return operand.resolve(registers)


def resolve_mut(operand: Operand) -> int:
    """Return the register index an operand writes to."""
    if not isinstance(operand, Register):
        raise ProgramError(f"{operand!r} is not a writable operand")
    return operand.index


# ── Instructions ──────────────────────────────────────────────────────────────

def _writable_shape(opcode: Opcode, operands: Tuple[Operand, ...]) -> bool:
    sig = SIGNATURES[opcode]
    if len(sig) != len(operands):
        return False
    return all(isinstance(op, Register)
               for kind, op in zip(sig, operands) if kind == "w")


@dataclass(frozen=True)
class Instruction:
    opcode: Opcode
    operands: Tuple[Operand, ...]

    def __init__(self, opcode: Opcode, operands: Iterable[Operand] = ()):
        operands = tuple(operands)
        object.__setattr__(self, "opcode", opcode)
        object.__setattr__(self, "operands", operands)
        object.__setattr__(self, "_executable", _writable_shape(opcode, operands))

    @property
    def dialect(self) -> Dialect:
        return dialect_of(self.opcode)

    @property
    def executable(self) -> bool:
        """False for shapes only ``tgl`` can create, e.g. ``cpy 1 2``."""
        return self._executable

    def check(self, register_count: int) -> None:
        sig = SIGNATURES[self.opcode]
        if len(sig) != len(self.operands):
            raise ProgramError(
                f"{self.opcode} takes {len(sig)} operand(s), got {len(self.operands)}"
            )
        for slot, (kind, op) in enumerate(zip(sig, self.operands)):
            if kind in ("r", "w") and not isinstance(op, Register):
                role = "write target" if kind == "w" else "register operand"
                raise ProgramError(f"{self.opcode} operand {slot}: {role} must be a register")
            if kind == "i" and not isinstance(op, Immediate):
                raise ProgramError(f"{self.opcode} operand {slot}: expected an immediate")
            if isinstance(op, Register) and not 0 <= op.index < register_count:
                raise ProgramError(
                    f"{self.opcode} operand {slot}: register {op.index} "
                    f"out of range (0-{register_count - 1})"
                )

    def toggled(self) -> "Instruction":
        return Instruction(TOGGLE.get(self.opcode, self.opcode), self.operands)

    def __str__(self) -> str:
        dialect = self.dialect
        parts = [self.opcode.value]
        for op in self.operands:
            if isinstance(op, Register):
                parts.append(register_name(op.index, dialect)
                             if dialect is Dialect.ASM else str(op.index))
            else:
                parts.append(str(op.value))
        return " ".join(parts)


# ── Program ───────────────────────────────────────────────────────────────────

class Program:
    """Ordered, mutable sequence of instructions owned by one VM."""

    def __init__(self, instructions: Iterable[Instruction],
                 register_count: Optional[int] = None):
        self._code: List[Instruction] = list(instructions)

        dialects = {instr.dialect for instr in self._code}
        if len(dialects) > 1:
            raise ProgramError("program mixes ASM and ALU instructions")
        self.dialect: Dialect = dialects.pop() if dialects else Dialect.ASM
        self.register_count: int = (
            register_count if register_count is not None
            else DEFAULT_REGISTER_COUNT[self.dialect]
        )
        if self.register_count < 1:
            raise ProgramError(f"register_count must be positive, got {self.register_count}")

        for n, instr in enumerate(self._code):
            try:
                instr.check(self.register_count)
            except ProgramError as e:
                raise ProgramError(f"instruction {n} ({instr}): {e}") from None

    # ── sequence protocol ─────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._code)

    def __getitem__(self, index: int) -> Instruction:
        return self._code[index]

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self._code)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Program):
            return NotImplemented
        return self._code == other._code and self.register_count == other.register_count

    def __repr__(self) -> str:
        return f"Program({len(self._code)} instrs, {self.dialect.value}, regs={self.register_count})"

    def fetch(self, index: int) -> Optional[Instruction]:
        if 0 <= index < len(self._code):
            return self._code[index]
        return None

    def matches(self, start: int, template: Sequence[Instruction]) -> bool:
        """Literal equality of ``program[start:start+len(template)]``."""
        end = start + len(template)
        if start < 0 or end > len(self._code):
            return False
        return self._code[start:end] == list(template)

    # ── self-modification ─────────────────────────────────────────────────────

    def toggle(self, index: int) -> bool:
        """Flip the opcode at ``index``.  Out-of-range targets are a no-op."""
        instr = self.fetch(index)
        if instr is None:
            return False
        self._code[index] = instr.toggled()
        return True

    def copy(self) -> "Program":
        clone = Program.__new__(Program)
        clone._code = list(self._code)
        clone.dialect = self.dialect
        clone.register_count = self.register_count
        return clone

    def listing(self) -> str:
        return "\n".join(f"{n:4d}  {instr}" for n, instr in enumerate(self._code))
