# Core type aliases for Kappa's data model.
# Forms and runtime values share one representation: float, bool, str, Symbol,
# Nil, Pair (cons cell), Quoted, LambdaTemplate and Closure.
#
# Naming guidance:
# - SExpression: Use in reader/macro/compiler code to denote syntactic forms (code-as-data).
# - LispValue:  Use in VM/builtin code to denote evaluated values.
# Both aliases resolve to `Any` and are interchangeable.

from typing import Any

# Runtime value alias
LispValue = Any
# Forms alias (used interchangeably with LispValue)
SExpression = LispValue

__version__ = "0.1.0"
