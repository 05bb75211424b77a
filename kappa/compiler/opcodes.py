from __future__ import annotations

from enum import IntEnum


class Opcode(IntEnum):
    # Stack and constants
    PUSH_CONST = 0x05  # value
    POP = 0x07

    # Environments
    LOOKUP = 0x12  # name
    DEFINE = 0x13  # name

    # Control flow
    COND_JUMP_KEEP = 0x21  # n, peeks the predicate, jumps if truthy
    COND_JUMP_IF_FALSY = 0x22  # n, pops the predicate, jumps if falsy
    RETURN = 0x24

    # Functions / closures
    MAKE_CLOSURE = 0x30

    # Calls
    CALL = 0x40  # argc
    CALL_PRIMITIVE = 0x41  # (name, argc)
    APPLY = 0x43

    # Output
    DISPLAY = 0x60
