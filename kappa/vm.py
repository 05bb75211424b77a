from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from kappa import LispValue
from kappa.builtins import BUILTINS, call_builtin
from kappa.compiler.chunk import Chunk
from kappa.compiler.opcodes import Opcode
from kappa.config import get_gc_threshold
from kappa.errors import (
    KappaError,
    KappaInternalError,
    KappaRuntimeError,
    KappaStackUnderflow,
    KappaStepLimitError,
    KappaUnboundSymbol,
)
from kappa.types.bind import bind_arguments
from kappa.types.environment import GLOBAL_ENV_ID, EnvironmentArena
from kappa.types.expr import is_falsy, to_python_list
from kappa.types.lambda_fn import Closure, LambdaTemplate
from kappa.types.nil import Nil
from kappa.types.printer import to_string
from kappa.types.symbol import Symbol

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    chunk: Chunk
    ip: int
    env_id: int


class Machine:
    """Stack machine executing compiled chunks one instruction at a time.

    The operand stack, call frames and display output are plain attributes so a
    host can inspect them between steps. A failing step leaves the instruction
    pointer on the failing instruction and the error is raised again by any
    later step.
    """

    def __init__(
        self,
        chunk: Optional[Chunk] = None,
        arena: Optional[EnvironmentArena] = None,
        gc_threshold: Optional[int] = None,
    ):
        self.arena = arena if arena is not None else EnvironmentArena()
        self.stack: List[Any] = []
        self.frames: List[Frame] = []
        self.output: List[str] = []
        self.steps = 0
        self.error: KappaError | None = None
        self.gc_threshold = get_gc_threshold() if gc_threshold is None else gc_threshold
        self._allocations = 0
        # Opcode dispatch table
        self._dispatch: dict[int, Callable[[Frame, Any], None]] = {}
        self._init_dispatch()
        if chunk is not None:
            self.load(chunk)

    def _init_dispatch(self) -> None:
        d = self._dispatch
        # Stack and constants
        d[Opcode.PUSH_CONST] = self.op_push_const
        d[Opcode.POP] = self.op_pop
        # Environments
        d[Opcode.LOOKUP] = self.op_lookup
        d[Opcode.DEFINE] = self.op_define
        # Control flow
        d[Opcode.COND_JUMP_IF_FALSY] = self.op_cond_jump_if_falsy
        d[Opcode.COND_JUMP_KEEP] = self.op_cond_jump_keep
        d[Opcode.RETURN] = self.op_return
        # Functions / closures / calls
        d[Opcode.MAKE_CLOSURE] = self.op_make_closure
        d[Opcode.CALL] = self.op_call
        d[Opcode.CALL_PRIMITIVE] = self.op_call_primitive
        d[Opcode.APPLY] = self.op_apply
        # Output
        d[Opcode.DISPLAY] = self.op_display

    def load(self, chunk: Chunk, env_id: int = GLOBAL_ENV_ID) -> None:
        """Push `chunk` as a program frame running in environment `env_id`."""
        self.arena.get(env_id)
        self.frames.append(Frame(chunk, 0, env_id))

    @property
    def halted(self) -> bool:
        return not self.frames

    @property
    def result(self) -> LispValue:
        if self.frames:
            raise KappaInternalError("machine has not finished running")
        if not self.stack:
            raise KappaStackUnderflow("no result on the stack")
        return self.stack[-1]

    # --- Stack helpers ---
    def push(self, value: Any) -> None:
        self.stack.append(value)

    def pop(self) -> Any:
        if not self.stack:
            raise KappaStackUnderflow("stack underflow")
        return self.stack.pop()

    def peek(self) -> Any:
        if not self.stack:
            raise KappaStackUnderflow("stack underflow")
        return self.stack[-1]

    # --- Execution ---
    def step(self) -> None:
        """Execute exactly one instruction."""
        if self.error is not None:
            raise self.error
        if not self.frames:
            raise KappaInternalError("no call frames")
        frame = self.frames[-1]
        ip = frame.ip
        try:
            if ip >= len(frame.chunk):
                raise KappaInternalError("end of code reached without a return")
            op, arg = frame.chunk[ip]
            handler = self._dispatch.get(op)
            if handler is None:
                raise KappaInternalError(f"unknown opcode {op!r}")
            frame.ip = ip + 1
            handler(frame, arg)
        except KappaError as err:
            frame.ip = ip
            self.error = err
            logger.debug("step failed at %04d: %s", ip, err)
            raise
        self.steps += 1

    def run(self, max_steps: Optional[int] = None) -> LispValue:
        """Step until no frames remain and return the result.

        Raises KappaStepLimitError once `max_steps` instructions have run without
        finishing; the machine is left as it was so the caller may keep going.
        """
        taken = 0
        while self.frames:
            if max_steps is not None and taken >= max_steps:
                raise KappaStepLimitError(f"step limit of {max_steps} exceeded")
            self.step()
            taken += 1
        return self.result

    # --- Garbage collection ---
    def collect_garbage(self) -> int:
        """Reclaim environments unreachable from the frames, the stack and frame constants."""
        root_values: List[Any] = list(self.stack)
        for frame in self.frames:
            root_values.extend(c for c in frame.chunk.constants() if isinstance(c, Closure))
        return self.arena.collect((f.env_id for f in self.frames), root_values)

    def _note_allocation(self) -> None:
        self._allocations += 1
        if self.gc_threshold and self._allocations >= self.gc_threshold:
            self._allocations = 0
            self.collect_garbage()

    # --- Per-op handlers ---
    # Stack and constants
    def op_push_const(self, frame: Frame, value: Any) -> None:
        self.push(value)

    def op_pop(self, frame: Frame, _: Any) -> None:
        self.pop()

    # Environments
    def op_lookup(self, frame: Frame, name: str) -> None:
        env = self.arena.find(frame.env_id, name)
        if env is not None:
            self.push(env.vars[name])
        elif name in BUILTINS:
            self.push(Symbol(name))
        else:
            raise KappaUnboundSymbol(f"not found: {name}")

    def op_define(self, frame: Frame, name: str) -> None:
        env = self.arena.get(frame.env_id)
        env.define(name, self.pop())

    # Control flow
    def op_cond_jump_if_falsy(self, frame: Frame, offset: int) -> None:
        if is_falsy(self.pop()):
            frame.ip += offset

    def op_cond_jump_keep(self, frame: Frame, offset: int) -> None:
        if not is_falsy(self.peek()):
            frame.ip += offset

    def op_return(self, frame: Frame, _: Any) -> None:
        outermost = len(self.frames) == 1
        if outermost:
            value = self.pop()
        else:
            if len(self.stack) < 2:
                raise KappaStackUnderflow("too few values on the stack to return from a call")
            callee = self.stack[-2]
            if not isinstance(callee, Closure):
                raise KappaRuntimeError(f"expected fn on stack after returning, but found: {to_string(callee)}")
            value = self.stack.pop()
            self.stack.pop()
        self.push(value)
        self.frames.pop()

    # Functions / closures / calls
    def op_make_closure(self, frame: Frame, _: Any) -> None:
        template = self.peek()
        if not isinstance(template, LambdaTemplate):
            raise KappaRuntimeError(f"expected lambda definition, but found: {to_string(template)}")
        self.stack[-1] = Closure(template.chunk, template.params, template.rest, frame.env_id)

    def op_call(self, frame: Frame, argc: int) -> None:
        self._call(argc)

    def op_call_primitive(self, frame: Frame, arg: Any) -> None:
        name, argc = arg
        builtin = BUILTINS.get(name)
        if builtin is None:
            raise KappaInternalError(f"unknown primitive {name}")
        if len(self.stack) < argc:
            raise KappaStackUnderflow(f"{name} expects {argc} operands, stack holds {len(self.stack)}")
        args = self.stack[len(self.stack) - argc:]
        result = call_builtin(name, builtin, args)
        del self.stack[len(self.stack) - argc:]
        self.push(result)

    def op_apply(self, frame: Frame, _: Any) -> None:
        if len(self.stack) < 2:
            raise KappaStackUnderflow("apply expects a function and an argument list on the stack")
        items = to_python_list(self.stack[-1])
        if items is None:
            raise KappaRuntimeError(f"apply expects a list of arguments, but found: {to_string(self.stack[-1])}")
        arg_list = self.stack.pop()
        self.stack.extend(items)
        try:
            self._call(len(items))
        except KappaError:
            # leave the stack as it was before APPLY
            del self.stack[len(self.stack) - len(items):]
            self.stack.append(arg_list)
            raise

    # Output
    def op_display(self, frame: Frame, _: Any) -> None:
        text = to_string(self.pop())
        logger.debug("display: %s", text)
        self.output.append(text)
        self.push(Nil)

    def _call(self, argc: int) -> None:
        if len(self.stack) < argc + 1:
            raise KappaStackUnderflow(f"call expects {argc} arguments and a function, stack holds {len(self.stack)}")
        callee = self.stack[-argc - 1]
        args = self.stack[len(self.stack) - argc:]

        if isinstance(callee, Closure):
            bindings = bind_arguments(callee.params, callee.rest, args)
            env_id = self.arena.allocate(bindings, callee.env_id)
            # the callee stays on the stack as the return marker
            del self.stack[len(self.stack) - argc:]
            self.frames.append(Frame(callee.chunk, 0, env_id))
            self._note_allocation()
            return

        if isinstance(callee, Symbol) and callee.id in BUILTINS:
            result = call_builtin(callee.id, BUILTINS[callee.id], args)
            del self.stack[len(self.stack) - argc - 1:]
            self.push(result)
            return

        raise KappaRuntimeError(f"no function to call on stack, found: {to_string(callee)}")


def run_chunk(chunk: Chunk, max_steps: Optional[int] = None) -> LispValue:
    """Run `chunk` on a fresh machine and return its result."""
    return Machine(chunk).run(max_steps)
