"""Symbols name variables in forms, and stand for builtins at runtime.

A LOOKUP that no environment satisfies but that names a builtin pushes the
Symbol itself, so `(define add +)` binds `add` to Symbol("+") and a later CALL
on it dispatches to the builtin registry.
"""
from __future__ import annotations

import sys


class Symbol:
    __slots__ = ("id",)

    def __init__(self, name: str):
        # compiled chunks carry the interned string, not the Symbol
        self.id = sys.intern(name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Symbol):
            return NotImplemented
        return self.id is other.id or self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"Symbol({self.id!r})"

    def __str__(self) -> str:
        return self.id
