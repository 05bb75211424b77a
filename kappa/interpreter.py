from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from kappa import LispValue
from kappa.compiler.compiler import compile_program
from kappa.compiler.disasm import disassemble_chunk
from kappa.config import disasm_enabled, get_prelude_path, get_step_limit
from kappa.errors import KappaError
from kappa.reader.parser import parse
from kappa.types.environment import EnvironmentArena
from kappa.types.macro_environment import MacroEnvironment
from kappa.vm import Machine

logger = logging.getLogger(__name__)


@dataclass
class CompilerEnv:
    """Compile-time state inherited by a program: environments and macros."""

    arena: EnvironmentArena = field(default_factory=EnvironmentArena)
    macros: MacroEnvironment = field(default_factory=MacroEnvironment)

    @classmethod
    def from_machine(cls, machine: Machine, macros: MacroEnvironment) -> CompilerEnv:
        """Snapshot the reachable environments of a finished machine."""
        machine.collect_garbage()
        return cls(machine.arena.snapshot(), macros.copy())

    def copy(self) -> CompilerEnv:
        return CompilerEnv(self.arena.snapshot(), self.macros.copy())


def compile_source_with_macros(
    source: str,
    compile_env: Optional[CompilerEnv] = None,
    file_name: Optional[str] = None,
) -> Tuple[Machine, MacroEnvironment]:
    """Parse, expand and compile `source` into a machine ready to step.

    Returns the machine together with the macro table after the program's own
    definitions, so a host can carry both into the next program.
    """
    if compile_env is None:
        compile_env = CompilerEnv()
    forms = parse(source, file_name)
    macros = compile_env.macros.copy()
    expanded = macros.macro_expand(forms)
    chunk = compile_program(expanded, compile_env.arena.global_names())
    if disasm_enabled():
        logger.info("disassembly of %s:\n%s", file_name or "<source>", disassemble_chunk(chunk))
    machine = Machine(chunk, compile_env.arena.snapshot())
    return machine, macros


def compile_source(
    source: str,
    compile_env: Optional[CompilerEnv] = None,
    file_name: Optional[str] = None,
) -> Machine:
    machine, _ = compile_source_with_macros(source, compile_env, file_name)
    return machine


@lru_cache(maxsize=None)
def _load_prelude_from(path: Path) -> CompilerEnv:
    source = path.read_text(encoding="utf-8")
    machine, macros = compile_source_with_macros(source, file_name=path.name)
    machine.run()
    if machine.output:
        raise KappaError(
            f"logs were printed while evaluating the prelude: {', '.join(machine.output)}"
        )
    logger.debug("loaded prelude from %s", path)
    return CompilerEnv.from_machine(machine, macros)


def load_prelude() -> CompilerEnv:
    """Compile and run the standard prelude once; returns a fresh copy of its state."""
    return _load_prelude_from(get_prelude_path()).copy()


class Interpreter:
    """
    Convenience host: runs programs one after another, carrying definitions
    and macros from each program into the next.
    """

    def __init__(self, prelude: bool = True, step_limit: Optional[int] = None):
        self.compile_env = load_prelude() if prelude else CompilerEnv()
        self.step_limit = step_limit if step_limit is not None else get_step_limit()

    def eval_machine(self, code: str) -> Machine:
        """Run `code` to completion and return the finished machine."""
        machine, macros = compile_source_with_macros(code, self.compile_env)
        machine.run(self.step_limit)
        self.compile_env = CompilerEnv.from_machine(machine, macros)
        return machine

    def eval(self, code: str) -> LispValue:
        return self.eval_machine(code).result
