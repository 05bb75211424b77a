"""Built-in functions for the Kappa runtime.

Builtins are not stored in any environment. A lookup that misses every scope
falls back to this registry and yields the builtin's name as a Symbol; calling
such a Symbol dispatches here. Each builtin carries one of three call shapes:
OneArg, TwoArg or Variadic.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, List, Optional, Union

from kappa import LispValue
from kappa.errors import KappaArityError, KappaTypeError
from kappa.types.expr import Pair, values_equal
from kappa.types.lambda_fn import Closure
from kappa.types.nil import Nil
from kappa.types.printer import to_string
from kappa.types.symbol import Symbol


@dataclass(frozen=True)
class OneArg:
    fn: Callable[[LispValue], LispValue]
    arity: ClassVar[Optional[int]] = 1


@dataclass(frozen=True)
class TwoArg:
    fn: Callable[[LispValue, LispValue], LispValue]
    arity: ClassVar[Optional[int]] = 2


@dataclass(frozen=True)
class Variadic:
    fn: Callable[[List[LispValue]], LispValue]
    arity: ClassVar[Optional[int]] = None


Builtin = Union[OneArg, TwoArg, Variadic]


def call_builtin(name: str, builtin: Builtin, args: List[LispValue]) -> LispValue:
    """Invoke `builtin` on `args`, checking the argument count first."""
    if isinstance(builtin, Variadic):
        return builtin.fn(list(args))
    if len(args) != builtin.arity:
        raise KappaArityError(
            f"Expected {builtin.arity} arguments for {name}, but found {len(args)}"
        )
    if isinstance(builtin, OneArg):
        return builtin.fn(args[0])
    return builtin.fn(args[0], args[1])


def _is_number(x: LispValue) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def _expect_numbers(a: LispValue, b: LispValue) -> None:
    if not (_is_number(a) and _is_number(b)):
        raise KappaTypeError(f"Expected numbers, found: {to_string(a)} and {to_string(b)}")


# -------------------------------
# Arithmetic
# -------------------------------
def add(args: List[LispValue]) -> LispValue:
    """Sum of all arguments; 0 with none."""
    total = 0.0
    for x in args:
        _expect_numbers(total, x)
        total += x
    return float(total)


def mul(a: LispValue, b: LispValue) -> LispValue:
    _expect_numbers(a, b)
    return float(a * b)


def sub(a: LispValue, b: LispValue) -> LispValue:
    _expect_numbers(a, b)
    return float(a - b)


def div(a: LispValue, b: LispValue) -> LispValue:
    """IEEE division: a zero divisor gives an infinity, or NaN for 0/0."""
    _expect_numbers(a, b)
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return float(a / b)


def mod(a: LispValue, b: LispValue) -> LispValue:
    """Remainder with the sign of the dividend; NaN for a zero divisor."""
    _expect_numbers(a, b)
    try:
        return math.fmod(a, b)
    except ValueError:
        return math.nan


def power(a: LispValue, b: LispValue) -> LispValue:
    _expect_numbers(a, b)
    try:
        return math.pow(a, b)
    except OverflowError:
        if a < 0 and float(b).is_integer() and b % 2 == 1:
            return -math.inf
        return math.inf
    except ValueError:
        # pow(0, negative) is a pole; anything else here is outside the real domain
        if a == 0:
            return math.inf
        return math.nan


def absolute(x: LispValue) -> LispValue:
    if not _is_number(x):
        raise KappaTypeError(f"abs: expected num but found: {to_string(x)}")
    return float(abs(x))


# -------------------------------
# Comparison and logic
# -------------------------------
def lt(a: LispValue, b: LispValue) -> bool:
    _expect_numbers(a, b)
    return a < b


def gt(a: LispValue, b: LispValue) -> bool:
    _expect_numbers(a, b)
    return a > b


def equals(a: LispValue, b: LispValue) -> bool:
    """Structural equality over any two values."""
    return values_equal(a, b)


def logical_not(x: LispValue) -> bool:
    if not isinstance(x, bool):
        raise KappaTypeError(f"Expected boolean, found: {to_string(x)}")
    return not x


# -------------------------------
# Lists
# -------------------------------
def cons(head: LispValue, tail: LispValue) -> Pair:
    return Pair(head, tail)


def car(x: LispValue) -> LispValue:
    if not isinstance(x, Pair):
        raise KappaTypeError(f"car expected pair, found: {to_string(x)}")
    return x.head


def cdr(x: LispValue) -> LispValue:
    if not isinstance(x, Pair):
        raise KappaTypeError(f"cdr expected pair, found: {to_string(x)}")
    return x.tail


# -------------------------------
# Predicates
# -------------------------------
def is_pair(x: LispValue) -> bool:
    return isinstance(x, Pair) or x is Nil


def is_nil(x: LispValue) -> bool:
    return x is Nil


def is_number(x: LispValue) -> bool:
    return _is_number(x)


def is_function(x: LispValue) -> bool:
    return isinstance(x, Closure)


def is_symbol(x: LispValue) -> bool:
    return isinstance(x, Symbol)


def is_boolean(x: LispValue) -> bool:
    return isinstance(x, bool)


def is_string(x: LispValue) -> bool:
    return isinstance(x, str)


# -------------------------------
# Text
# -------------------------------
def str_append(a: LispValue, b: LispValue) -> str:
    if not (isinstance(a, str) and isinstance(b, str)):
        raise KappaTypeError(f"Expected strings, found: {to_string(a)} and {to_string(b)}")
    return a + b


def to_string_builtin(x: LispValue) -> str:
    return to_string(x)


BUILTINS: Dict[str, Builtin] = {
    "+": Variadic(add),
    "*": TwoArg(mul),
    "-": TwoArg(sub),
    "/": TwoArg(div),
    "%": TwoArg(mod),
    "^": TwoArg(power),
    "<": TwoArg(lt),
    ">": TwoArg(gt),
    "=": TwoArg(equals),
    "abs": OneArg(absolute),
    "not": OneArg(logical_not),
    "cons": TwoArg(cons),
    "car": OneArg(car),
    "cdr": OneArg(cdr),
    "pair?": OneArg(is_pair),
    "nil?": OneArg(is_nil),
    "number?": OneArg(is_number),
    "function?": OneArg(is_function),
    "symbol?": OneArg(is_symbol),
    "boolean?": OneArg(is_boolean),
    "string?": OneArg(is_string),
    "str-append": TwoArg(str_append),
    "to-string": OneArg(to_string_builtin),
}


def is_builtin(name: str) -> bool:
    return name in BUILTINS
