"""regvm lexer - tokenizes line-oriented program text."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import List


class TT(Enum):
    """Token types."""
    DIRECTIVE = auto()   # #ip
    WORD      = auto()   # cpy  addr  a  c
    INTEGER   = auto()   # 42  -16  +3
    JUNK      = auto()   # anything else up to the next blank
    NEWLINE   = auto()
    EOF       = auto()


@dataclass
class Token:
    type: TT
    value: object
    line: int
    col: int

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.col})"


_TOKEN_SPEC = [
    ("COMMENT",   r';[^\n]*'),
    ("DIRECTIVE", r'#[A-Za-z_]+'),
    ("NEWLINE",   r'\n'),
    ("SKIP",      r'[ \t\r]+'),
    ("ATOM",      r'[^\s;]+'),
]

_MASTER_RE = re.compile(
    '|'.join(f'(?P<{name}>{pat})' for name, pat in _TOKEN_SPEC)
)

_INT_RE  = re.compile(r'[+-]?\d+')
_WORD_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    line = 1
    line_start = 0

    for mo in _MASTER_RE.finditer(source):
        kind = mo.lastgroup
        val  = mo.group()
        col  = mo.start() - line_start + 1

        if kind in ("SKIP", "COMMENT"):
            continue
        elif kind == "NEWLINE":
            tokens.append(Token(TT.NEWLINE, "\n", line, col))
            line += 1
            line_start = mo.end()
        elif kind == "DIRECTIVE":
            tokens.append(Token(TT.DIRECTIVE, val.lower(), line, col))
        elif _INT_RE.fullmatch(val):
            tokens.append(Token(TT.INTEGER, int(val, 10), line, col))
        elif _WORD_RE.fullmatch(val):
            tokens.append(Token(TT.WORD, val, line, col))
        else:
            tokens.append(Token(TT.JUNK, val, line, col))

    tokens.append(Token(TT.EOF, None, line, 0))
    return tokens


def split_lines(tokens: List[Token]) -> List[List[Token]]:
    """Group tokens by source line, dropping blank lines and EOF."""
    lines: List[List[Token]] = []
    current: List[Token] = []
    for tok in tokens:
        if tok.type in (TT.NEWLINE, TT.EOF):
            if current:
                lines.append(current)
            current = []
        else:
            current.append(tok)
    return lines
