"""
regvm
=====
Register-machine interpreter for two small instruction families.

Exports:
    Dialect, Opcode  - instruction families and mnemonics
    Program          - mutable instruction list (``tgl`` rewrites it in place)
    Instruction      - opcode + operands
    Register, Immediate - operand kinds
    Vm               - single-step machine (run_to_end / interrupts / turbo)
    Managed, BoundRegister - instruction-pointer bindings
    StepResult, StepKind   - what one step reported

    load, load_file, Listing - text → Program + ip binding
    ParseError, ParseErrorKind - load-time diagnostics

    WindowPatch, HookChain - turbo (fast-forward) recognizers
"""

__version__ = "0.1.0"

from .isa     import Dialect, Opcode
from .program import Immediate, Instruction, Program, ProgramError, Register
from .vm      import (BoundRegister, Managed, StepKind, StepResult, Vm, VMError,
                      NO_OUTPUT, OUT_OF_PROGRAM)
from .loader  import Listing, ParseError, ParseErrorKind, load, load_file
from .turbo   import (HookChain, TurboHook, WindowPatch, as_interrupt,
                      divisor_sum_loop, divisor_sum_program,
                      find_multiply_loops, multiply_loop)

__all__ = [
    # ISA
    "Dialect",
    "Opcode",
    # Program model
    "Program",
    "ProgramError",
    "Instruction",
    "Register",
    "Immediate",
    # Machine
    "Vm",
    "VMError",
    "Managed",
    "BoundRegister",
    "StepKind",
    "StepResult",
    "NO_OUTPUT",
    "OUT_OF_PROGRAM",
    # Loading
    "load",
    "load_file",
    "Listing",
    "ParseError",
    "ParseErrorKind",
    # Hooks
    "TurboHook",
    "WindowPatch",
    "HookChain",
    "as_interrupt",
    "multiply_loop",
    "find_multiply_loops",
    "divisor_sum_loop",
    "divisor_sum_program",
]
