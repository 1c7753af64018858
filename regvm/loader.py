"""regvm loader - decodes program text into a validated Program.

Format: one instruction per line, whitespace-separated mnemonic and
operands.  ``;`` starts a comment.  ``#ip N`` binds the instruction
pointer to register N.

  ASM   cpy 41 a      inc a      jnz a -2      tgl c      out b
  ALU   #ip 3         addi 3 16 3              seti 1 0 1

Every problem is reported as a ParseError before any step runs.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

from regvm.isa import (
    DEFAULT_REGISTER_COUNT, IP_DIRECTIVE, MNEMONICS, REGISTER_LETTERS, SIGNATURES,
    Dialect, Opcode, dialect_of,
)
from regvm.lexer import TT, Token, split_lines, tokenize
from regvm.program import Immediate, Instruction, Operand, Program, Register
from regvm.vm import BoundRegister, IpBinding, Managed, Vm


class ParseErrorKind(Enum):
    BAD_OPCODE        = "bad opcode"
    BAD_OPERAND_COUNT = "bad operand count"
    BAD_OPERAND_VALUE = "bad operand value"


class ParseError(Exception):
    def __init__(self, kind: ParseErrorKind, message: str,
                 line: int = 0, text: str = ""):
        self.kind    = kind
        self.message = message
        self.line    = line
        self.text    = text
        where = f"Line {line}: " if line else ""
        super().__init__(f"{where}{kind.value}: {message}")


@dataclass
class Listing:
    """A loaded program plus the ip binding its source asked for."""
    program: Program
    ip: IpBinding

    @property
    def dialect(self) -> Dialect:
        return self.program.dialect

    def make_vm(self, registers: Optional[Sequence[int]] = None, *,
                debug: bool = False) -> Vm:
        return Vm(self.program.copy(), self.ip, registers, debug=debug)


# ── Parser ─────────────────────────────────────────────────────────────────────

class Loader:
    def __init__(self, dialect: Optional[Dialect] = None,
                 register_count: Optional[int] = None):
        self.dialect        = dialect
        self.register_count = register_count

    def load(self, source: str) -> Listing:
        lines = split_lines(tokenize(source))
        dialect = self.dialect or self._detect(lines)
        count = (self.register_count if self.register_count is not None
                 else DEFAULT_REGISTER_COUNT[dialect])
        if count < 1:
            raise ParseError(ParseErrorKind.BAD_OPERAND_VALUE,
                             f"register count must be positive, got {count}")

        ip: IpBinding = Managed(0)
        seen_ip = False
        instructions: List[Instruction] = []

        for toks in lines:
            head = toks[0]
            if head.type == TT.DIRECTIVE:
                if seen_ip:
                    raise self._error(ParseErrorKind.BAD_OPCODE,
                                      f"duplicate {IP_DIRECTIVE} directive", toks)
                ip = self._parse_directive(toks, count)
                seen_ip = True
            else:
                instructions.append(self.parse_tokens(toks, dialect, count))

        return Listing(Program(instructions, count), ip)

    def _detect(self, lines: List[List[Token]]) -> Dialect:
        for toks in lines:
            head = toks[0]
            if head.type == TT.WORD and head.value in MNEMONICS:
                return dialect_of(MNEMONICS[head.value])
        return Dialect.ASM

    def _parse_directive(self, toks: List[Token], count: int) -> IpBinding:
        head, args = toks[0], toks[1:]
        if head.value != IP_DIRECTIVE:
            raise self._error(ParseErrorKind.BAD_OPCODE,
                              f"unknown directive {head.value!r}", toks)
        if len(args) != 1:
            raise self._error(ParseErrorKind.BAD_OPERAND_COUNT,
                              f"{IP_DIRECTIVE} takes 1 operand, got {len(args)}", toks)
        arg = args[0]
        if arg.type != TT.INTEGER or not 0 <= arg.value < count:
            raise self._error(ParseErrorKind.BAD_OPERAND_VALUE,
                              f"{IP_DIRECTIVE} needs a register 0-{count - 1}, got {arg.value!r}",
                              toks)
        return BoundRegister(arg.value)

    def parse_tokens(self, toks: List[Token], dialect: Dialect, count: int) -> Instruction:
        head, args = toks[0], toks[1:]
        op = MNEMONICS.get(head.value) if head.type == TT.WORD else None
        if op is None:
            raise self._error(ParseErrorKind.BAD_OPCODE,
                              f"unknown mnemonic {head.value!r}", toks)
        if dialect_of(op) is not dialect:
            raise self._error(ParseErrorKind.BAD_OPCODE,
                              f"{op} is not a {dialect.value.upper()} instruction", toks)

        sig = SIGNATURES[op]
        if len(args) != len(sig):
            raise self._error(ParseErrorKind.BAD_OPERAND_COUNT,
                              f"{op} takes {len(sig)} operand(s), got {len(args)}", toks)

        operands = [self._operand(tok, kind, dialect, count, op, toks)
                    for tok, kind in zip(args, sig)]
        return Instruction(op, operands)

    def _operand(self, tok: Token, kind: str, dialect: Dialect, count: int,
                 op: Opcode, toks: List[Token]) -> Operand:
        bad = ParseErrorKind.BAD_OPERAND_VALUE

        if dialect is Dialect.ASM:
            if tok.type == TT.INTEGER:
                if kind == "w":
                    raise self._error(bad, f"{op} cannot write to immediate {tok.value}", toks)
                return Immediate(tok.value)
            if tok.type == TT.WORD and len(tok.value) == 1 and tok.value in REGISTER_LETTERS:
                n = REGISTER_LETTERS.index(tok.value)
                if n < count:
                    return Register(n)
                raise self._error(bad, f"register {tok.value!r} out of range "
                                       f"(a-{REGISTER_LETTERS[count - 1]})", toks)
            raise self._error(bad, f"bad operand {tok.value!r}", toks)

        # ALU: every operand is written as an integer
        if tok.type != TT.INTEGER:
            raise self._error(bad, f"bad operand {tok.value!r}", toks)
        if kind == "i":
            return Immediate(tok.value)
        if not 0 <= tok.value < count:
            raise self._error(bad, f"register {tok.value} out of range (0-{count - 1})", toks)
        return Register(tok.value)

    @staticmethod
    def _error(kind: ParseErrorKind, message: str, toks: List[Token]) -> ParseError:
        text = " ".join(str(t.value) for t in toks)
        return ParseError(kind, message, toks[0].line, text)


# ── Convenience entry points ───────────────────────────────────────────────────

def load(source: str, dialect: Optional[Dialect] = None,
         register_count: Optional[int] = None) -> Listing:
    """Decode program text into a Listing."""
    return Loader(dialect, register_count).load(source)


def load_file(path: Union[str, Path], dialect: Optional[Dialect] = None,
              register_count: Optional[int] = None) -> Listing:
    return load(Path(path).read_text(encoding="utf-8"), dialect, register_count)


def parse_instruction(text: str, dialect: Optional[Dialect] = None,
                      register_count: Optional[int] = None) -> Instruction:
    """Decode a single instruction line, e.g. ``parse_instruction("jnz c -2")``."""
    listing = load(text, dialect, register_count)
    if len(listing.program) != 1:
        raise ParseError(ParseErrorKind.BAD_OPCODE,
                         f"expected exactly one instruction in {text!r}")
    return listing.program[0]


def parse_instructions(lines: Sequence[str], dialect: Optional[Dialect] = None,
                       register_count: Optional[int] = None) -> List[Instruction]:
    return list(load("\n".join(lines), dialect, register_count).program)
