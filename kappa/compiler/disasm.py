from __future__ import annotations

from .chunk import Chunk
from .opcodes import Opcode
from kappa.types.lambda_fn import LambdaTemplate
from kappa.types.printer import to_string


def disassemble_chunk(chunk: Chunk, indent: str = "") -> str:
    out = []
    templates = []
    for ip, (op, arg) in enumerate(chunk.code):
        line = f"{indent}{ip:04d}: {op.name}"
        if op == Opcode.PUSH_CONST:
            if isinstance(arg, LambdaTemplate):
                templates.append((ip, arg))
                line += f" <template {_lambda_list(arg)}>"
            else:
                line += f" {to_string(arg)}"
        elif op in (Opcode.LOOKUP, Opcode.DEFINE):
            line += f" {arg}"
        elif op in (Opcode.COND_JUMP_IF_FALSY, Opcode.COND_JUMP_KEEP):
            line += f" {arg:+d} -> {ip + 1 + arg:04d}"
        elif op == Opcode.CALL:
            line += f" argc={arg}"
        elif op == Opcode.CALL_PRIMITIVE:
            name, argc = arg
            line += f" {name} argc={argc}"
        out.append(line)
    # Nested lambda bodies follow their parent
    for ip, template in templates:
        out.append(f"{indent}-- template @{ip:04d} --")
        out.append(disassemble_chunk(template.chunk, indent + "  "))
    return "\n".join(out)


def _lambda_list(template: LambdaTemplate) -> str:
    names = list(template.params)
    if template.rest is not None:
        names += [".", template.rest]
    return "(" + " ".join(names) + ")"
