from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from kappa.builtins import BUILTINS
from kappa.errors import KappaCompileError
from kappa.types.expr import Pair, Quoted, to_python_list
from kappa.types.lambda_fn import Closure, LambdaTemplate
from kappa.types.nil import Nil
from kappa.types.printer import to_string
from kappa.types.srcloc import SrcLoc
from kappa.types.symbol import Symbol

from .chunk import Chunk
from .opcodes import Opcode

logger = logging.getLogger(__name__)

REST_DOT = "."


@dataclass
class CompileCtx:
    # names bound somewhere in the program; these shadow builtins of the same name
    bound: FrozenSet[str] = field(default_factory=frozenset)


def compile_program(forms: Sequence[Any], bound: Iterable[str] = ()) -> Chunk:
    """Compile top-level forms into one chunk that returns the last form's value.

    `bound` lists names already defined by earlier programs (e.g. the prelude),
    which must not be compiled as direct primitive calls.
    """
    names = set(bound) | collect_bound_names(forms)
    ctx = CompileCtx(bound=frozenset(names))
    chunk = Chunk()
    if forms:
        compile_body(list(forms), chunk, ctx)
    else:
        chunk.emit_const(Nil)
        chunk.emit_op(Opcode.RETURN)
    logger.debug("compiled %d forms into %d instructions", len(forms), len(chunk))
    return chunk


def compile_body(exprs: List[Any], chunk: Chunk, ctx: CompileCtx) -> None:
    """Compile a sequence: POP between expressions, RETURN after the last."""
    for i, expr in enumerate(exprs):
        compile_expr(expr, chunk, ctx)
        if i < len(exprs) - 1:
            chunk.emit_op(Opcode.POP)
    chunk.emit_op(Opcode.RETURN)


def compile_expr(expr: Any, chunk: Chunk, ctx: CompileCtx) -> None:
    # Atoms
    if isinstance(expr, Symbol):
        chunk.emit_op(Opcode.LOOKUP, expr.id)
        return
    if isinstance(expr, Quoted):
        chunk.emit_const(expr.value)
        return
    if isinstance(expr, Closure):
        raise KappaCompileError(f"Cannot compile a closure value: {to_string(expr)}")
    if not isinstance(expr, Pair):
        # numbers, booleans, text, Nil and lambda templates are literals
        chunk.emit_const(expr)
        return

    head = expr.head
    # Special forms
    if isinstance(head, Symbol):
        if head.id == "lambda":
            _compile_lambda(expr, chunk, ctx)
            return
        if head.id == "define":
            _compile_define(expr, chunk, ctx)
            return
        if head.id == "if":
            _compile_if(expr, chunk, ctx)
            return
        if head.id == "and":
            operands = _collect_exprs(expr.tail, expr)
            if not operands:
                chunk.emit_const(True)
            else:
                _emit_and(operands, chunk, ctx)
            return
        if head.id == "or":
            operands = _collect_exprs(expr.tail, expr)
            if not operands:
                chunk.emit_const(False)
            else:
                _emit_or(operands, chunk, ctx)
            return
        if head.id == "quote":
            args = _collect_exprs(expr.tail, expr)
            if len(args) != 1:
                raise KappaCompileError(f"quote expects 1 arg, but found: {len(args)}", expr.loc)
            chunk.emit_const(args[0])
            return
        if head.id == "apply":
            args = _collect_exprs(expr.tail, expr)
            if len(args) != 2:
                raise KappaCompileError(f"apply expects 2 args, but found: {len(args)}", expr.loc)
            compile_expr(args[0], chunk, ctx)
            compile_expr(args[1], chunk, ctx)
            chunk.emit_op(Opcode.APPLY)
            return
        if head.id == "display":
            args = _collect_exprs(expr.tail, expr)
            if len(args) != 1:
                raise KappaCompileError(
                    f"Expected one argument for display, but found {len(args)}", expr.loc
                )
            compile_expr(args[0], chunk, ctx)
            chunk.emit_op(Opcode.DISPLAY)
            return

    _compile_application(expr, chunk, ctx)


def _collect_exprs(body: Any, expr: Pair) -> List[Any]:
    items = to_python_list(body)
    if items is None:
        raise KappaCompileError(f"Expected a proper list, but found: {to_string(expr)}", expr.loc)
    return items


def parse_lambda_list(params: Any, loc: Optional[SrcLoc] = None) -> Tuple[Tuple[str, ...], Optional[str]]:
    """Split a parameter list into required names and an optional rest name.

    The rest-dot must be exactly second-to-last: `(a b . rest)`.
    """
    items = to_python_list(params)
    if items is None or not all(isinstance(p, Symbol) for p in items):
        raise KappaCompileError(f"Invalid parameter list: {to_string(params)}", loc)
    names = [p.id for p in items]
    if REST_DOT not in names:
        return tuple(names), None
    dot = names.index(REST_DOT)
    if dot != len(names) - 2:
        raise KappaCompileError(
            f"rest-dot can only occur as second-to-last argument, but found: ({' '.join(names)})", loc
        )
    return tuple(names[:dot]), names[dot + 1]


def _emit_lambda(params: Any, body: List[Any], chunk: Chunk, ctx: CompileCtx, loc: Optional[SrcLoc]) -> None:
    required, rest = parse_lambda_list(params, loc)
    body_chunk = Chunk()
    compile_body(body, body_chunk, ctx)
    chunk.emit_const(LambdaTemplate(body_chunk, rest, required))
    chunk.emit_op(Opcode.MAKE_CLOSURE)


def _compile_lambda(expr: Pair, chunk: Chunk, ctx: CompileCtx) -> None:
    args = to_python_list(expr.tail)
    if args is None or len(args) < 2 or not (args[0] is Nil or isinstance(args[0], Pair)):
        raise KappaCompileError(f"Invalid lambda expression: {to_string(expr)}", expr.loc)
    _emit_lambda(args[0], args[1:], chunk, ctx, expr.loc)


def _compile_define(expr: Pair, chunk: Chunk, ctx: CompileCtx) -> None:
    args = to_python_list(expr.tail)
    if args and len(args) >= 2 and isinstance(args[0], Pair) and isinstance(args[0].head, Symbol):
        # (define (name params...) body...)
        target = args[0]
        _emit_lambda(target.tail, args[1:], chunk, ctx, expr.loc)
        name = target.head.id
    elif args and len(args) == 2 and isinstance(args[0], Symbol):
        compile_expr(args[1], chunk, ctx)
        name = args[0].id
    else:
        raise KappaCompileError(f"definition, expected kw and expr but found: {to_string(expr)}", expr.loc)
    chunk.emit_op(Opcode.DEFINE, name)
    chunk.emit_const(Nil)


def _compile_if(expr: Pair, chunk: Chunk, ctx: CompileCtx) -> None:
    args = to_python_list(expr.tail)
    if args is None or len(args) not in (2, 3):
        raise KappaCompileError(f"if, expected pred, cons, alt but found: {to_string(expr)}", expr.loc)
    pred, cons = args[0], args[1]
    alt = args[2] if len(args) == 3 else Nil

    cons_chunk = Chunk()
    compile_expr(cons, cons_chunk, ctx)
    alt_chunk = Chunk()
    compile_expr(alt, alt_chunk, ctx)

    compile_expr(pred, chunk, ctx)
    chunk.emit_op(Opcode.COND_JUMP_IF_FALSY, len(cons_chunk) + 2)
    chunk.extend(cons_chunk)
    # constant false makes the next jump unconditional
    chunk.emit_const(False)
    chunk.emit_op(Opcode.COND_JUMP_IF_FALSY, len(alt_chunk))
    chunk.extend(alt_chunk)


def _emit_and(operands: List[Any], chunk: Chunk, ctx: CompileCtx) -> None:
    if len(operands) == 1:
        compile_expr(operands[0], chunk, ctx)
        return
    right = Chunk()
    _emit_and(operands[1:], right, ctx)

    compile_expr(operands[0], chunk, ctx)
    chunk.emit_op(Opcode.COND_JUMP_KEEP, 2)
    # left was falsy: keep it as the result and skip the right side
    chunk.emit_const(False)
    chunk.emit_op(Opcode.COND_JUMP_IF_FALSY, 1 + len(right))
    chunk.emit_op(Opcode.POP)
    chunk.extend(right)


def _emit_or(operands: List[Any], chunk: Chunk, ctx: CompileCtx) -> None:
    if len(operands) == 1:
        compile_expr(operands[0], chunk, ctx)
        return
    right = Chunk()
    _emit_or(operands[1:], right, ctx)

    compile_expr(operands[0], chunk, ctx)
    chunk.emit_op(Opcode.COND_JUMP_KEEP, 1 + len(right))
    chunk.emit_op(Opcode.POP)
    chunk.extend(right)


def _compile_application(expr: Pair, chunk: Chunk, ctx: CompileCtx) -> None:
    args = _collect_exprs(expr.tail, expr)
    head = expr.head
    if isinstance(head, Symbol) and head.id not in ctx.bound:
        builtin = BUILTINS.get(head.id)
        if builtin is not None:
            if builtin.arity is not None and builtin.arity != len(args):
                raise KappaCompileError(
                    f"Expected {builtin.arity} arguments for {head.id}, but found {len(args)}", expr.loc
                )
            for arg in args:
                compile_expr(arg, chunk, ctx)
            chunk.emit_op(Opcode.CALL_PRIMITIVE, (head.id, len(args)))
            return

    compile_expr(head, chunk, ctx)
    for arg in args:
        compile_expr(arg, chunk, ctx)
    chunk.emit_op(Opcode.CALL, len(args))


def _symbol_names(value: Any) -> List[str]:
    names = []
    while isinstance(value, Pair):
        if isinstance(value.head, Symbol) and value.head.id != REST_DOT:
            names.append(value.head.id)
        value = value.tail
    return names


def collect_bound_names(forms: Iterable[Any]) -> set[str]:
    """Every name introduced by `define` or a lambda parameter anywhere in `forms`.

    Quoted data is skipped.
    """
    names: set[str] = set()
    pending = list(forms)
    while pending:
        form = pending.pop()
        if not isinstance(form, Pair):
            continue
        head = form.head
        if isinstance(head, Symbol):
            if head.id == "quote":
                continue
            target = form.tail.head if isinstance(form.tail, Pair) else None
            if head.id == "define":
                if isinstance(target, Symbol):
                    names.add(target.id)
                else:
                    names.update(_symbol_names(target))
            elif head.id == "lambda":
                names.update(_symbol_names(target))
        cur = form
        while isinstance(cur, Pair):
            pending.append(cur.head)
            cur = cur.tail
    return names
