from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from kappa import SExpression
from kappa.compiler.chunk import Chunk
from kappa.compiler.compiler import compile_program, parse_lambda_list
from kappa.config import get_step_limit
from kappa.errors import KappaArityError, KappaCompileError, KappaRuntimeError
from kappa.types.bind import bind_arguments
from kappa.types.environment import GLOBAL_ENV_ID, Environment, EnvironmentArena
from kappa.types.expr import Pair, Quoted, make_list, to_python_list
from kappa.types.printer import to_string
from kappa.types.srcloc import SrcLoc
from kappa.types.symbol import Symbol
from kappa.vm import Machine

logger = logging.getLogger(__name__)


# Canonical macro expansion: a macro body is compiled once, then run on a fresh
# machine whose only environment binds the (unevaluated) arguments.


@dataclass
class Macro:
    name: str
    params: Tuple[str, ...]
    rest: Optional[str]
    chunk: Chunk
    loc: Optional[SrcLoc] = None

    def expand(self, args: List[SExpression], loc: Optional[SrcLoc] = None) -> SExpression:
        """Run the transformer on `args` and return the expansion (not re-expanded)."""
        try:
            bindings = bind_arguments(self.params, self.rest, args)
        except KappaArityError as err:
            raise KappaCompileError(f"{self.name}: {err}", loc or self.loc) from err

        arena = EnvironmentArena({GLOBAL_ENV_ID: Environment(bindings)})
        machine = Machine(self.chunk, arena)
        try:
            machine.run(get_step_limit())
        except KappaRuntimeError as err:
            raise KappaCompileError(f"Error when running macro expansion: {err}", loc or self.loc) from err
        if len(machine.stack) != 1:
            raise KappaCompileError(
                f"Error when running macro expansion: expected one value, found {len(machine.stack)}",
                loc or self.loc,
            )
        return machine.stack[0]


class MacroEnvironment:
    """
    Macro table mapping macro names to compiled transformers.

    Features:
    - Top-level (defmacro (name params...) body...) definitions
    - Innermost-first expansion: arguments are expanded before the macro runs
    - Expansions are expanded again until no macro invocation remains
    - Quoted data is never expanded
    - (macroexpand 'form) for inspecting an expansion
    """

    def __init__(self, macros: Optional[Dict[str, Macro]] = None):
        self.macros: dict[str, Macro] = dict(macros) if macros else {}

    def copy(self) -> MacroEnvironment:
        return MacroEnvironment(self.macros)

    def define_macro(self, name: str, macro: Macro) -> None:
        self.macros[name] = macro

    def is_macro(self, sym: Any) -> bool:
        return isinstance(sym, Symbol) and sym.id in self.macros

    def define_from_form(self, form: Pair) -> Macro:
        """Register a macro from a `(defmacro (name params...) body...)` form."""
        args = to_python_list(form.tail)
        if args is None or len(args) < 2 or not isinstance(args[0], Pair) or not isinstance(args[0].head, Symbol):
            raise KappaCompileError(
                f"defmacro, expected (name params...) and a body but found: {to_string(form)}", form.loc
            )
        signature, body = args[0], args[1:]
        name = signature.head.id
        params, rest = parse_lambda_list(signature.tail, form.loc)

        expanded_body = [self.macro_expand_all(b) for b in body]
        bound = set(params) | ({rest} if rest is not None else set())
        chunk = compile_program(expanded_body, bound)
        macro = Macro(name, params, rest, chunk, form.loc)
        self.define_macro(name, macro)
        logger.debug("defined macro %s with params %s rest %s", name, params, rest)
        return macro

    # Single-step head expansion
    def expand_1(self, form: SExpression) -> SExpression:
        """Expand only the head-position macro if present; arguments are passed as written."""
        if isinstance(form, Pair) and self.is_macro(form.head):
            args = to_python_list(form.tail)
            if args is None:
                raise KappaCompileError(f"Malformed macro invocation: {to_string(form)}", form.loc)
            return self.macros[form.head.id].expand(args, form.loc)
        return form  # Not a macro call, unchanged

    # Full expansion
    def macro_expand_all(self, form: SExpression) -> SExpression:
        if not isinstance(form, Pair):
            return form

        head = form.head
        if isinstance(head, Symbol):
            # Do not recurse into (quote ...) templates.
            if head.id == "quote":
                return form
            if head.id == "macroexpand":
                return self._macroexpand_form(form)
            if head.id == "lambda" and isinstance(form.tail, Pair):
                # the parameter list is not an invocation
                params = form.tail.head
                body = self._expand_elements(form.tail.tail)
                return Pair(head, Pair(params, body, form.tail.loc), form.loc)
            if head.id == "define" and isinstance(form.tail, Pair) and isinstance(form.tail.head, Pair):
                signature = form.tail.head
                body = self._expand_elements(form.tail.tail)
                return Pair(head, Pair(signature, body, form.tail.loc), form.loc)

        expanded = self._expand_elements(form)
        if self.is_macro(expanded.head):
            args = to_python_list(expanded.tail)
            if args is None:
                raise KappaCompileError(f"Malformed macro invocation: {to_string(form)}", form.loc)
            logger.debug("expanding macro %s", expanded.head.id)
            expansion = self.macros[expanded.head.id].expand(args, form.loc)
            return self.macro_expand_all(expansion)
        return expanded

    def _expand_elements(self, value: SExpression) -> SExpression:
        """Expand each element of a (possibly improper) list, keeping its tail."""
        items = []
        cur = value
        while isinstance(cur, Pair):
            items.append(self.macro_expand_all(cur.head))
            cur = cur.tail
        loc = value.loc if isinstance(value, Pair) else None
        return make_list(items, loc, cur)

    def _macroexpand_form(self, form: Pair) -> SExpression:
        args = to_python_list(form.tail)
        target = None
        if args is not None and len(args) == 1:
            arg = args[0]
            if isinstance(arg, Quoted):
                target = arg.value
            elif isinstance(arg, Pair) and arg.head == Symbol("quote") and isinstance(arg.tail, Pair):
                target = arg.tail.head
        if not isinstance(target, Pair):
            raise KappaCompileError(f"can't call macroexpand on {to_string(form)}", form.loc)
        if not self.is_macro(target.head):
            raise KappaCompileError(f"macro not found: {to_string(target.head)}", form.loc)
        return Quoted(self.macro_expand_all(target))

    def macro_expand(self, forms: List[SExpression]) -> List[SExpression]:
        """Expand a program: register top-level macro definitions, expand everything else."""
        out = []
        for form in forms:
            if isinstance(form, Pair) and form.head == Symbol("defmacro"):
                self.define_from_form(form)
                continue
            out.append(self.macro_expand_all(form))
        return out
