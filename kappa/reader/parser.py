"""
  Lisp Reader, Lexer and Parser

- Streaming, lazy parsing
- Emits Kappa values directly:

    - lists -> Pair chains terminated by Nil, each Pair tagged with a SrcLoc
    - () -> Nil
    - symbols -> Symbol (the rest-dot `.` included)
    - strings -> str, no escape processing
    - numbers -> float
    - true / false -> bool
    - 'expr -> Quoted(expr)
"""

from __future__ import annotations

import re
from typing import Iterator, List, Optional, Tuple

from kappa import SExpression
from kappa.errors import KappaParseError
from kappa.types.expr import Quoted, make_list
from kappa.types.srcloc import SrcLoc, loc_at
from kappa.types.symbol import Symbol

Token = Tuple[Optional[str], Optional[str], int]

TOKEN_RE = re.compile(
    r"(?P<comment>;[^\n]*)"  # single-line comment
    r"|(?P<quote>')"  # '
    r"|(?P<lparen>\()"  # (
    r"|(?P<rparen>\))"  # )
    r'|(?P<string>"[^"]*")'  # double-quoted strings
    r'|(?P<symbol>[^\s()";]+)'  # fallback: symbols, numbers, booleans
)

# A symbol-shaped token is a number only if the whole token matches.
NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

BOOLEANS: dict[str, bool] = {
    "true": True,
    "false": False,
}


def lex(source: str, file_name: Optional[str] = None) -> Iterator[Token]:
    """Token generator: yields (token_type, token_value, offset) tuples."""
    pos = 0
    n = len(source)

    while pos < n:
        if source[pos].isspace():
            pos += 1
            continue

        m = TOKEN_RE.match(source, pos)
        if not m:
            if source[pos] == '"':
                raise KappaParseError(
                    "Unterminated string literal", source[pos:], loc_at(source, pos, file_name)
                )
            raise KappaParseError(
                f"Unexpected character {source[pos]!r}", source[pos:], loc_at(source, pos, file_name)
            )
        if m.lastgroup != "comment":
            yield m.lastgroup, m.group(m.lastgroup), pos
        pos = m.end()


def read_atom(text: str) -> SExpression:
    """Classify a symbol-shaped token as a number, boolean or symbol."""
    if NUMBER_RE.fullmatch(text):
        return float(text)
    if text in BOOLEANS:
        return BOOLEANS[text]
    return Symbol(text)


class TokenStream:
    def __init__(self, token_iter: Iterator[Token], source: str = "", file_name: Optional[str] = None):
        self.tokens = iter(token_iter)
        self.buffer: list[Token] = []
        self.source = source
        self.file_name = file_name

    def peek(self) -> Token:
        if not self.buffer:
            try:
                self.buffer.append(next(self.tokens))
            except StopIteration:
                return None, None, len(self.source)
        return self.buffer[0]

    def advance(self) -> Token:
        if self.buffer:
            return self.buffer.pop(0)
        return next(self.tokens, (None, None, len(self.source)))

    def _loc(self, pos: int) -> SrcLoc:
        return loc_at(self.source, pos, self.file_name)

    def _error(self, message: str, pos: int) -> KappaParseError:
        return KappaParseError(message, self.source[pos:], self._loc(pos))

    def parse_expr(self) -> SExpression:
        tok_type, tok_val, pos = self.peek()
        if tok_type is None:
            return None

        if tok_type == "symbol":
            self.advance()
            return read_atom(tok_val)

        if tok_type == "string":
            self.advance()
            return tok_val[1:-1]

        # Quote forms
        if tok_type == "quote":
            self.advance()
            next_type, _, next_pos = self.peek()
            if next_type is None or next_type == "rparen":
                raise self._error("Expected an expression after quote", next_pos)
            return Quoted(self.parse_expr())

        # List
        if tok_type == "lparen":
            self.advance()
            items = []
            while True:
                next_type, _, _ = self.peek()
                if next_type == "rparen":
                    self.advance()
                    break
                if next_type is None:
                    raise self._error("Unexpected end of input, unmatched '('", pos)
                items.append(self.parse_expr())
            return make_list(items, self._loc(pos))

        if tok_type == "rparen":
            raise self._error("Unexpected ')'", pos)

        raise self._error(f"Unknown token: {tok_type} {tok_val}", pos)

    def parse_all(self) -> Iterator[SExpression]:
        while True:
            tok_type, _, _ = self.peek()
            if tok_type is None:
                break
            yield self.parse_expr()


def parse(source: str, file_name: Optional[str] = None) -> List[SExpression]:
    """Read every top-level expression in `source`.

    The whole input must be consumed; an unmatched '(' or a stray ')' raises
    KappaParseError carrying the unconsumed remainder and its location.
    """
    stream = TokenStream(lex(source, file_name), source, file_name)
    return list(stream.parse_all())
