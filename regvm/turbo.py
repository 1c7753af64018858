"""regvm hooks - interrupts and turbo (fast-forward) recognizers.

Interrupt mode
--------------
``vm.run_with_interrupt(fn)`` calls ``fn(vm)`` before every step and stops
as soon as it returns False.  ``fn`` may read or patch registers and the ip.

Turbo mode
----------
``vm.step_turbo(hook)`` first asks ``hook`` to fast-forward.  A hook
compares a fixed window of upcoming instructions against a template by
literal equality.  On a match whose guard accepts the current registers it
applies the window's net effect in one update, moves the ip past the
window and reports ``NO_OUTPUT``.  Otherwise it returns None and the VM
executes one ordinary instruction.

A recognizer must be transparent: stepping the window instruction by
instruction has to leave the same registers behind.  Guards decline any
input for which the closed form would differ.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from regvm.isa import Opcode
from regvm.program import Immediate, Instruction, Program, Register
from regvm.vm import BoundRegister, IpBinding, NO_OUTPUT, StepKind, StepResult, Vm

logger = logging.getLogger(__name__)


class TurboHook(Protocol):
    def try_fast_forward(self, vm: Vm) -> Optional[StepResult]:
        ...


Apply = Callable[[List[int]], bool]


class WindowPatch:
    """Replace ``template`` at ``start`` with ``apply(registers)``.

    ``apply`` returns False, without touching the registers, to decline.
    After a successful apply the ip is set to ``exit`` (default: just past
    the window).  ``accepts(binding)`` restricts the patch to the ip
    bindings under which the window computes what ``apply`` does.
    """

    def __init__(self, start: int, template: Sequence[Instruction], apply: Apply, *,
                 exit: Optional[int] = None, name: str = "window",
                 accepts: Optional[Callable[[IpBinding], bool]] = None):
        self.start    = start
        self.template = tuple(template)
        self.apply    = apply
        self.exit     = exit if exit is not None else start + len(self.template)
        self.name     = name
        self.accepts  = accepts
        self.hits     = 0

    def matches(self, vm: Vm) -> bool:
        if self.accepts is not None and not self.accepts(vm.ip_binding):
            return False
        return vm.ip == self.start and vm.program.matches(self.start, self.template)

    def try_fast_forward(self, vm: Vm) -> Optional[StepResult]:
        if not self.matches(vm):
            return None
        if not self.apply(vm.registers):
            return None
        vm.ip = self.exit
        self.hits += 1
        logger.debug("%s: %d -> %d  %s", self.name, self.start, self.exit,
                     vm.format_registers())
        return NO_OUTPUT

    __call__ = try_fast_forward

    def __repr__(self) -> str:
        return f"WindowPatch({self.name!r}, start={self.start}, len={len(self.template)})"


class HookChain:
    """Try several hooks in order; the first one that fast-forwards wins."""

    def __init__(self, hooks: Iterable[object] = ()):
        self.hooks: List[object] = list(hooks)

    def add(self, hook: object) -> "HookChain":
        self.hooks.append(hook)
        return self

    def try_fast_forward(self, vm: Vm) -> Optional[StepResult]:
        for hook in self.hooks:
            fast = getattr(hook, "try_fast_forward", hook)
            result = fast(vm)
            if result is not None:
                return result
        return None

    __call__ = try_fast_forward

    def __len__(self) -> int:
        return len(self.hooks)


# ── Interrupt helpers ──────────────────────────────────────────────────────────

def as_interrupt(hook: object) -> Callable[[Vm], bool]:
    """Drive a turbo hook from ``run_with_interrupt``: patch, then keep going."""
    fast = getattr(hook, "try_fast_forward", hook)

    def interrupt(vm: Vm) -> bool:
        result = fast(vm)
        if result is not None:
            vm.fast_forwards += 1
            if result.kind is StepKind.OUTPUT:
                vm.output.append(result.value)
        return True

    return interrupt


def stop_at(*indices: int) -> Callable[[Vm], bool]:
    """Interrupt that halts the first time the ip reaches one of ``indices``."""
    targets = frozenset(indices)

    def interrupt(vm: Vm) -> bool:
        return vm.ip not in targets

    return interrupt


def step_limit(limit: int) -> Callable[[Vm], bool]:
    """Interrupt that halts once ``vm.steps`` reaches ``limit``."""

    def interrupt(vm: Vm) -> bool:
        return vm.steps < limit

    return interrupt


def _distinct(**regs: int) -> None:
    if len(set(regs.values())) != len(regs):
        raise ValueError(f"registers must be distinct: {regs}")


def _bound_to(ip: int) -> Callable[[IpBinding], bool]:
    """The ALU windows branch through register ``ip``; they only hold when it is the ip."""
    target = BoundRegister(ip)

    def accepts(binding: IpBinding) -> bool:
        return binding == target

    return accepts


# ── ASM: multiply by repeated increment ────────────────────────────────────────
#
#   cpy src inner
#   inc acc
#   dec inner
#   jnz inner -2
#   dec outer
#   jnz outer -5
#
#   acc += src * outer; inner = outer = 0        (needs src > 0, outer > 0)

def multiply_loop(start: int, *, acc: int, src: int, inner: int, outer: int) -> WindowPatch:
    _distinct(acc=acc, src=src, inner=inner, outer=outer)
    R = Register
    template = (
        Instruction(Opcode.CPY, (R(src), R(inner))),
        Instruction(Opcode.INC, (R(acc),)),
        Instruction(Opcode.DEC, (R(inner),)),
        Instruction(Opcode.JNZ, (R(inner), Immediate(-2))),
        Instruction(Opcode.DEC, (R(outer),)),
        Instruction(Opcode.JNZ, (R(outer), Immediate(-5))),
    )

    def apply(regs: List[int]) -> bool:
        if regs[src] <= 0 or regs[outer] <= 0:
            return False
        regs[acc] += regs[src] * regs[outer]
        regs[inner] = 0
        regs[outer] = 0
        return True

    def accepts(binding: IpBinding) -> bool:
        return not (isinstance(binding, BoundRegister)
                    and binding.index in (acc, src, inner, outer))

    return WindowPatch(start, template, apply, name=f"multiply@{start}", accepts=accepts)


def find_multiply_loops(program: Program) -> List[WindowPatch]:
    """Scan an ASM program for every multiply window."""
    patches: List[WindowPatch] = []
    shape = (Opcode.CPY, Opcode.INC, Opcode.DEC, Opcode.JNZ, Opcode.DEC, Opcode.JNZ)
    for start in range(len(program) - len(shape) + 1):
        window = [program[start + k] for k in range(len(shape))]
        if tuple(i.opcode for i in window) != shape:
            continue
        if not all(isinstance(op, Register) for i in window[:3] for op in i.operands):
            continue
        if not isinstance(window[4].operands[0], Register):
            continue
        try:
            patch = multiply_loop(
                start,
                acc=window[1].operands[0].index,
                src=window[0].operands[0].index,
                inner=window[0].operands[1].index,
                outer=window[4].operands[0].index,
            )
        except ValueError:
            continue
        if program.matches(start, patch.template):
            patches.append(patch)
    return patches


# ── ALU: sum of divisors ───────────────────────────────────────────────────────
#
# Inner loop (9 instructions, ip bound to register IP):
#
#   mulr F C S          S = F * C
#   eqrr S T S          S = S == T
#   addr S IP IP        skip next if S
#   addi IP 1 IP        skip next
#   addr F A A          A += F
#   addi C 1 C          C += 1
#   gtrr C T S          S = C > T
#   addr IP S IP        leave if S
#   seti start-1 _ IP   loop
#
# Outer loop wraps it:  seti 1 _ C ; <inner> ; addi F 1 F ; gtrr F T S ;
#                       addr S IP IP ; seti start-1 _ IP

def _inner_template(start: int, factor: int, counter: int, target: int,
                    acc: int, scratch: int, ip: int, filler: int) -> List[Instruction]:
    R, I = Register, Immediate
    return [
        Instruction(Opcode.MULR, (R(factor), R(counter), R(scratch))),
        Instruction(Opcode.EQRR, (R(scratch), R(target), R(scratch))),
        Instruction(Opcode.ADDR, (R(scratch), R(ip), R(ip))),
        Instruction(Opcode.ADDI, (R(ip), I(1), R(ip))),
        Instruction(Opcode.ADDR, (R(factor), R(acc), R(acc))),
        Instruction(Opcode.ADDI, (R(counter), I(1), R(counter))),
        Instruction(Opcode.GTRR, (R(counter), R(target), R(scratch))),
        Instruction(Opcode.ADDR, (R(ip), R(scratch), R(ip))),
        Instruction(Opcode.SETI, (I(start - 1), I(filler), R(ip))),
    ]


def divisor_sum_loop(start: int, *, factor: int, counter: int, target: int,
                     acc: int, scratch: int, ip: int, filler: int = 0) -> WindowPatch:
    """Inner loop: ``A += F`` if ``F * C == T`` for some ``C`` in ``[C, max(C, T)]``."""
    _distinct(factor=factor, counter=counter, target=target,
              acc=acc, scratch=scratch, ip=ip)
    template = _inner_template(start, factor, counter, target, acc, scratch, ip, filler)

    def apply(regs: List[int]) -> bool:
        f, c, t = regs[factor], regs[counter], regs[target]
        last = max(c, t)
        if f != 0 and t % f == 0 and c <= t // f <= last:
            regs[acc] += f
        regs[counter] = last + 1
        regs[scratch] = 1
        return True

    return WindowPatch(start, template, apply, name=f"divisor-loop@{start}",
                       accepts=_bound_to(ip))


def divisor_sum(n: int, lowest: int = 1) -> int:
    """Sum of the positive divisors of ``n`` that are ``>= lowest``."""
    total = 0
    d = 1
    while d * d <= n:
        if n % d == 0:
            for x in {d, n // d}:
                if x >= lowest:
                    total += x
        d += 1
    return total


def divisor_sum_program(start: int, *, factor: int, counter: int, target: int,
                        acc: int, scratch: int, ip: int, filler: int = 0) -> WindowPatch:
    """Outer loop: ``A += sum of divisors of T that are >= F`` (needs F, T >= 1)."""
    _distinct(factor=factor, counter=counter, target=target,
              acc=acc, scratch=scratch, ip=ip)
    R, I = Register, Immediate
    template = (
        [Instruction(Opcode.SETI, (I(1), I(filler), R(counter)))]
        + _inner_template(start + 1, factor, counter, target, acc, scratch, ip, filler)
        + [
            Instruction(Opcode.ADDI, (R(factor), I(1), R(factor))),
            Instruction(Opcode.GTRR, (R(factor), R(target), R(scratch))),
            Instruction(Opcode.ADDR, (R(scratch), R(ip), R(ip))),
            Instruction(Opcode.SETI, (I(start - 1), I(filler), R(ip))),
        ]
    )

    def apply(regs: List[int]) -> bool:
        f, t = regs[factor], regs[target]
        if f < 1 or t < 1:
            return False
        regs[acc] += divisor_sum(t, lowest=f)
        regs[factor] = max(f, t) + 1
        regs[counter] = t + 1
        regs[scratch] = 1
        return True

    return WindowPatch(start, template, apply, name=f"divisor-sum@{start}",
                       accepts=_bound_to(ip))
