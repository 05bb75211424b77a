from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from kappa import LispValue
from kappa.types.lambda_fn import Closure, LambdaTemplate
from kappa.types.nil import Nil
from kappa.types.srcloc import SrcLoc


@dataclass(frozen=True, eq=False)
class Pair:
    """A cons cell. `loc` records where the enclosing list was read and
    takes no part in equality."""

    head: LispValue
    tail: LispValue
    loc: Optional[SrcLoc] = field(default=None, repr=False)

    def __eq__(self, other):
        if not isinstance(other, Pair):
            return NotImplemented
        return values_equal(self, other)

    __hash__ = None


@dataclass(frozen=True, eq=False)
class Quoted:
    value: LispValue

    def __eq__(self, other):
        if not isinstance(other, Quoted):
            return NotImplemented
        return values_equal(self.value, other.value)

    __hash__ = None


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_falsy(value: LispValue) -> bool:
    """False, Nil and numeric zero are falsy; everything else is truthy."""
    if value is False or value is Nil:
        return True
    return _is_number(value) and value == 0


def values_equal(a: LispValue, b: LispValue) -> bool:
    """Structural equality. Booleans never equal numbers."""
    while True:
        if a is b:
            return True
        if isinstance(a, Pair) and isinstance(b, Pair):
            if not values_equal(a.head, b.head):
                return False
            # walk tails iteratively so long lists do not exhaust the Python stack
            a, b = a.tail, b.tail
            continue
        if isinstance(a, (Closure, LambdaTemplate)) or isinstance(b, (Closure, LambdaTemplate)):
            return type(a) is type(b) and _functions_equal(a, b)
        if isinstance(a, bool) or isinstance(b, bool):
            return isinstance(a, bool) and isinstance(b, bool) and a == b
        if _is_number(a) and _is_number(b):
            return a == b
        if type(a) is not type(b):
            return False
        return a == b


def _functions_equal(a, b) -> bool:
    if a.params != b.params or a.rest != b.rest:
        return False
    if isinstance(a, Closure) and a.env_id != b.env_id:
        return False
    code_a, code_b = a.chunk.code, b.chunk.code
    if len(code_a) != len(code_b):
        return False
    # instruction args compare as values: true is not 1
    return all(
        ins_a.op == ins_b.op and values_equal(ins_a.arg, ins_b.arg)
        for ins_a, ins_b in zip(code_a, code_b)
    )


def make_list(items: Iterable[LispValue], loc: Optional[SrcLoc] = None, tail: LispValue = Nil) -> LispValue:
    """Build a list from `items`, ending in `tail` (Nil for a proper list)."""
    result = tail
    for item in reversed(list(items)):
        result = Pair(item, result, loc)
    return result


def iter_list(value: LispValue) -> Iterator[LispValue]:
    """Yield the elements of a list, ignoring any improper tail."""
    while isinstance(value, Pair):
        yield value.head
        value = value.tail


def to_python_list(value: LispValue) -> Optional[List[LispValue]]:
    """Elements of a proper list, or None when `value` is not one."""
    items = []
    while isinstance(value, Pair):
        items.append(value.head)
        value = value.tail
    if value is not Nil:
        return None
    return items


def list_tail(value: LispValue) -> LispValue:
    """The terminating cdr of a (possibly improper) list."""
    while isinstance(value, Pair):
        value = value.tail
    return value
