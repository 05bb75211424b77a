from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, NamedTuple

from kappa.compiler.opcodes import Opcode


class Instruction(NamedTuple):
    op: Opcode
    arg: Any = None


@dataclass
class Chunk:
    """A linear sequence of instructions.

    Jumps are relative and only go forward, so a chunk is built by appending and
    splicing in already-compiled sub-chunks. The VM never mutates a chunk.
    """

    code: List[Instruction] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.code)

    def __getitem__(self, ip: int) -> Instruction:
        return self.code[ip]

    # --- Emit helpers ---
    def emit_op(self, op: Opcode, arg: Any = None) -> int:
        self.code.append(Instruction(op, arg))
        return len(self.code) - 1

    # --- high-level convenience ---
    def emit_const(self, value: Any) -> None:
        self.emit_op(Opcode.PUSH_CONST, value)

    def extend(self, other: Chunk) -> None:
        self.code.extend(other.code)

    def constants(self) -> List[Any]:
        return [ins.arg for ins in self.code if ins.op == Opcode.PUSH_CONST]
