from __future__ import annotations

import math
from decimal import Decimal

from kappa import LispValue
from kappa.types.expr import Pair, Quoted
from kappa.types.lambda_fn import Closure, LambdaTemplate
from kappa.types.nil import Nil
from kappa.types.symbol import Symbol


def format_number(x: float) -> str:
    """Shortest round-tripping decimal, never in exponent notation.

    Integral values drop their fractional part: 3.0 -> "3", 1e16 -> "10000000000000000".
    """
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    text = format(Decimal(repr(float(x))), "f")
    if text.endswith(".0"):
        text = text[:-2]
    return text


def to_string(value: LispValue) -> str:
    """Render a value the way `display` and `to-string` show it."""
    if value is Nil:
        return "'()"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Symbol):
        return value.id
    if isinstance(value, Quoted):
        return "'" + to_string(value.value)
    if isinstance(value, Pair):
        parts = []
        cur = value
        while isinstance(cur, Pair):
            parts.append(to_string(cur.head))
            cur = cur.tail
        if cur is Nil:
            return "(" + " ".join(parts) + ")"
        return "(" + " ".join(parts) + " . " + to_string(cur) + ")"
    if isinstance(value, (Closure, LambdaTemplate)):
        return str(value)
    return repr(value)
