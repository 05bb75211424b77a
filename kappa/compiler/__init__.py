from __future__ import annotations

# Public surface for the compiler package
from .opcodes import Opcode
from .chunk import Chunk, Instruction
from .compiler import CompileCtx, compile_program, compile_body, compile_expr, collect_bound_names, parse_lambda_list
from .disasm import disassemble_chunk

__all__ = [
    "Opcode",
    "Chunk",
    "Instruction",
    "CompileCtx",
    "compile_program",
    "compile_body",
    "compile_expr",
    "collect_bound_names",
    "parse_lambda_list",
    "disassemble_chunk",
]
