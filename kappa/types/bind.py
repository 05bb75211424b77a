from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from kappa import LispValue
from kappa.errors import KappaArityError
from kappa.types.expr import make_list
from kappa.types.printer import to_string


def bind_arguments(
    params: Sequence[str],
    rest: Optional[str],
    supplied_args: List[LispValue],
) -> Dict[str, LispValue]:
    """
    Single source of truth for lambda-list binding in Kappa.

    Pairs each required parameter with its argument in order. With a rest
    parameter, any surplus arguments are collected into a list (Nil when there
    are none). Shared by closure calls in the VM and macro expansion.

    Returns the name -> value mapping used to populate the callee's environment.
    """
    n_required = len(params)
    n_supplied = len(supplied_args)
    if n_supplied < n_required or (rest is None and n_supplied != n_required):
        expected = f"at least {n_required}" if rest is not None else str(n_required)
        raise KappaArityError(
            f"wrong number of args, expected {expected} ({' '.join(params)}), "
            f"got: {to_string(make_list(supplied_args))}"
        )

    bindings = dict(zip(params, supplied_args))
    if rest is not None:
        bindings[rest] = make_list(supplied_args[n_required:])
    return bindings
