"""regvm virtual machine - single-step register machine for both dialects.

Execution contract:
  - ``ip`` is the index of the next instruction; outside ``[0, len)`` the
    machine is halted.  Halting is never an error.
  - The ip is either a hidden counter (``Managed``) or aliased to a
    register (``BoundRegister``).  In the bound case the register is read
    before the step and incremented after it, so an instruction that
    writes the register jumps to ``value + 1``.
  - ``tgl`` resolves its target from the pre-step ip and registers, then
    rewrites that one program slot in place.
  - Hooks run around ``step()`` without changing what ``step()`` does.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Union

from regvm.isa import ALU_FUNCTIONS, Opcode, register_index, register_name
from regvm.program import Instruction, Program, resolve_mut

logger = logging.getLogger(__name__)


class VMError(Exception):
    pass


# ── Instruction-pointer binding ────────────────────────────────────────────────

@dataclass(frozen=True)
class Managed:
    start: int = 0


@dataclass(frozen=True)
class BoundRegister:
    index: int


IpBinding = Union[Managed, BoundRegister]


# ── Step results ───────────────────────────────────────────────────────────────

class StepKind(Enum):
    OUT_OF_PROGRAM = "out-of-program"
    NO_OUTPUT      = "ok"
    OUTPUT         = "output"


@dataclass(frozen=True)
class StepResult:
    kind: StepKind
    value: Optional[int] = None

    @property
    def halted(self) -> bool:
        return self.kind is StepKind.OUT_OF_PROGRAM

    @classmethod
    def output(cls, value: int) -> "StepResult":
        return cls(StepKind.OUTPUT, value)


OUT_OF_PROGRAM = StepResult(StepKind.OUT_OF_PROGRAM)
NO_OUTPUT      = StepResult(StepKind.NO_OUTPUT)


# ── State ──────────────────────────────────────────────────────────────────────

@dataclass
class ExecutionState:
    registers: List[int]
    counter: int = 0          # managed ip; unused when the ip is bound

    def copy(self) -> "ExecutionState":
        return ExecutionState(list(self.registers), self.counter)


Interrupt = Callable[["Vm"], bool]
FastForward = Callable[["Vm"], Optional[StepResult]]


class Vm:
    def __init__(self, program: Program, ip: Optional[IpBinding] = None,
                 registers: Optional[Sequence[int]] = None, *, debug: bool = False):
        if not isinstance(program, Program):
            raise VMError(f"expected a Program, got {type(program).__name__}")

        self.program    = program
        self.ip_binding = ip if ip is not None else Managed(0)
        self.debug      = debug

        n = program.register_count
        if registers is None:
            regs = [0] * n
        else:
            regs = [int(v) for v in registers]
            if len(regs) != n:
                raise VMError(f"expected {n} register values, got {len(regs)}")

        if isinstance(self.ip_binding, BoundRegister):
            if not 0 <= self.ip_binding.index < n:
                raise VMError(
                    f"ip bound to register {self.ip_binding.index}, "
                    f"but the machine has {n} registers"
                )
            counter = 0
        else:
            counter = self.ip_binding.start

        self.state  = ExecutionState(regs, counter)
        self.output: List[int] = []
        self.steps  = 0           # ordinary instructions executed
        self.fast_forwards = 0    # windows skipped by a turbo hook

    # ── registers / ip ─────────────────────────────────────────────────────────

    @property
    def registers(self) -> List[int]:
        return self.state.registers

    @property
    def ip(self) -> int:
        if isinstance(self.ip_binding, BoundRegister):
            return self.state.registers[self.ip_binding.index]
        return self.state.counter

    @ip.setter
    def ip(self, value: int) -> None:
        if isinstance(self.ip_binding, BoundRegister):
            self.state.registers[self.ip_binding.index] = value
        else:
            self.state.counter = value

    @property
    def halted(self) -> bool:
        return self.program.fetch(self.ip) is None

    def _index(self, ref: Union[int, str]) -> int:
        count = self.program.register_count
        if isinstance(ref, int):
            if not 0 <= ref < count:
                raise VMError(f"register {ref} out of range (0-{count - 1})")
            return ref
        try:
            return register_index(ref, count)
        except ValueError as e:
            raise VMError(str(e)) from None

    def get_register(self, ref: Union[int, str]) -> int:
        return self.state.registers[self._index(ref)]

    def set_register(self, ref: Union[int, str], value: int) -> None:
        self.state.registers[self._index(ref)] = int(value)

    def clone(self) -> "Vm":
        """Independent copy: program, registers, ip and output."""
        other = Vm.__new__(Vm)
        other.program       = self.program.copy()
        other.ip_binding    = self.ip_binding
        other.debug         = self.debug
        other.state         = self.state.copy()
        other.output        = list(self.output)
        other.steps         = self.steps
        other.fast_forwards = self.fast_forwards
        return other

    def format_registers(self) -> str:
        dialect = self.program.dialect
        return "[" + ", ".join(
            f"{register_name(i, dialect)}={v}" for i, v in enumerate(self.state.registers)
        ) + "]"

    def __repr__(self) -> str:
        return f"Vm(ip={self.ip}, regs={self.format_registers()}, steps={self.steps})"

    # ── single step ────────────────────────────────────────────────────────────

    def step(self) -> StepResult:
        ip = self.ip
        instr = self.program.fetch(ip)
        if instr is None:
            return OUT_OF_PROGRAM

        if self.debug:
            logger.debug("%4d  %-16s %s", ip, instr, self.format_registers())

        result = self._execute(ip, instr)
        self.steps += 1
        if result.kind is StepKind.OUTPUT:
            self.output.append(result.value)
        return result

    def _execute(self, ip: int, instr: Instruction) -> StepResult:
        op   = instr.opcode
        ops  = instr.operands
        regs = self.state.registers

        # toggled into a shape with an immediate write target: skip it
        if not instr.executable:
            self.ip = ip + 1
            return NO_OUTPUT

        # ── ALU: dst = f(a, b) ─────────────────────────────────────────────────
        fn = ALU_FUNCTIONS.get(op)
        if fn is not None:
            a, b, dst = ops
            regs[resolve_mut(dst)] = fn(a.resolve(regs), b.resolve(regs))
            self.ip = self.ip + 1
            return NO_OUTPUT

        # ── ASM ────────────────────────────────────────────────────────────────
        if op is Opcode.CPY:
            src, dst = ops
            regs[resolve_mut(dst)] = src.resolve(regs)

        elif op is Opcode.INC:
            regs[resolve_mut(ops[0])] += 1

        elif op is Opcode.DEC:
            regs[resolve_mut(ops[0])] -= 1

        elif op is Opcode.JNZ:
            cond, offset = ops
            if cond.resolve(regs) != 0:
                self.ip = ip + offset.resolve(regs)
                return NO_OUTPUT

        elif op is Opcode.TGL:
            target = ip + ops[0].resolve(regs)
            if self.program.toggle(target) and self.debug:
                logger.debug("      tgl %d -> %s", target, self.program[target])

        elif op is Opcode.OUT:
            value = ops[0].resolve(regs)
            self.ip = self.ip + 1
            return StepResult.output(value)

        else:
            raise VMError(f"no handler for opcode {op}")

        self.ip = self.ip + 1
        return NO_OUTPUT

    # ── driving loops ──────────────────────────────────────────────────────────

    def run_to_end(self) -> List[int]:
        """Step until the ip leaves the program; return everything ``out`` emitted."""
        while not self.step().halted:
            pass
        return self.output

    def run_with_interrupt(self, interrupt: Interrupt) -> List[int]:
        """Call ``interrupt(vm)`` before every step; stop when it returns False."""
        while interrupt(self):
            if self.step().halted:
                break
        return self.output

    def step_turbo(self, hook: Union[FastForward, object]) -> StepResult:
        """One step, unless ``hook`` fast-forwards over a recognised window."""
        fast = getattr(hook, "try_fast_forward", hook)
        ip = self.ip
        result = fast(self)
        if result is None:
            return self.step()

        self.fast_forwards += 1
        if self.debug:
            logger.debug("%4d  >> fast-forward to %d  %s", ip, self.ip, self.format_registers())
        if result.kind is StepKind.OUTPUT:
            self.output.append(result.value)
        return result

    def run_turbo(self, hook: Union[FastForward, object]) -> List[int]:
        while not self.step_turbo(hook).halted:
            pass
        return self.output
