from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class LambdaTemplate:
    """Compiled body of a lambda expression, not yet bound to an environment.

    MAKE_CLOSURE turns it into a Closure over the current frame's environment.
    """

    chunk: Any
    rest: Optional[str]
    params: Tuple[str, ...]

    def __str__(self):
        return "LambdaDefinition(...)"


@dataclass(frozen=True)
class Closure:
    chunk: Any
    params: Tuple[str, ...]
    rest: Optional[str]
    env_id: int

    def __str__(self):
        return "Lambda(...)"
