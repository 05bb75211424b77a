"""Runtime environments for Kappa.

Environments live in an arena and are referred to by integer id, so closures and
call frames hold ids rather than direct references. Id 0 is the global
environment. Unreachable environments are reclaimed by a mark-and-sweep pass
(`EnvironmentArena.collect`) whose roots are supplied by the VM.
"""

from __future__ import annotations

import logging
from io import StringIO
from itertools import count
from typing import Dict, Iterable, Optional

from kappa import LispValue
from kappa.errors import KappaInternalError, KappaUnboundSymbol
from kappa.types.expr import Pair, Quoted
from kappa.types.lambda_fn import Closure

logger = logging.getLogger(__name__)

GLOBAL_ENV_ID = 0


class Environment:
    """One scope: a mapping of names to values plus the id of its parent scope."""

    __slots__ = ("vars", "parent")

    def __init__(self, vars: Optional[Dict[str, LispValue]] = None, parent: Optional[int] = None):
        self.vars: dict[str, LispValue] = dict(vars) if vars else {}
        self.parent: int | None = parent

    def define(self, name: str, value: LispValue) -> None:
        self.vars[name] = value

    def copy(self) -> Environment:
        return Environment(self.vars, self.parent)

    def __str__(self) -> str:
        with StringIO() as buffer:
            buffer.write("{")
            buffer.write(", ".join(f"{k}: {v!r}" for k, v in self.vars.items()))
            buffer.write("}")
            if self.parent is not None:
                buffer.write(f" -> {self.parent}")
            return buffer.getvalue()

    __repr__ = __str__


class EnvironmentArena:
    """Id -> Environment store with parent-chain lookup and garbage collection."""

    def __init__(self, envs: Optional[Dict[int, Environment]] = None, next_id: Optional[int] = None):
        self.envs: dict[int, Environment] = envs if envs is not None else {GLOBAL_ENV_ID: Environment()}
        if GLOBAL_ENV_ID not in self.envs:
            self.envs[GLOBAL_ENV_ID] = Environment()
        if next_id is None:
            next_id = max(self.envs) + 1
        self._next_id = next_id
        self._ids = count(next_id)

    def __len__(self) -> int:
        return len(self.envs)

    def __contains__(self, env_id: int) -> bool:
        return env_id in self.envs

    def get(self, env_id: int) -> Environment:
        env = self.envs.get(env_id)
        if env is None:
            raise KappaInternalError(f"env not found for id {env_id}")
        return env

    def allocate(self, vars: Dict[str, LispValue], parent: int) -> int:
        """Create a child scope of `parent` holding `vars`; returns its id."""
        if parent not in self.envs:
            raise KappaInternalError(f"parent env not found for id {parent}")
        env_id = next(self._ids)
        self._next_id = env_id + 1
        self.envs[env_id] = Environment(vars, parent)
        return env_id

    def define(self, env_id: int, name: str, value: LispValue) -> None:
        self.get(env_id).define(name, value)

    def find(self, env_id: int, name: str) -> Optional[Environment]:
        """Nearest environment on the chain starting at `env_id` that binds `name`."""
        env = self.get(env_id)
        while True:
            if name in env.vars:
                return env
            if env.parent is None:
                return None
            env = self.get(env.parent)

    def lookup(self, env_id: int, name: str) -> LispValue:
        env = self.find(env_id, name)
        if env is None:
            raise KappaUnboundSymbol(f"not found: {name}")
        return env.vars[name]

    def global_names(self) -> set[str]:
        return set(self.envs[GLOBAL_ENV_ID].vars)

    def snapshot(self) -> EnvironmentArena:
        """Copy of the arena whose scopes can be mutated independently."""
        envs = {env_id: env.copy() for env_id, env in self.envs.items()}
        return EnvironmentArena(envs, self._next_id)

    # --- garbage collection ---
    def collect(self, root_env_ids: Iterable[int] = (), root_values: Iterable[LispValue] = ()) -> int:
        """Drop every environment not reachable from the roots. Returns the count freed.

        The global environment is always a root. Reachability follows parent links
        and closures held in environment values, including closures nested in lists.
        """
        marked: set[int] = set()
        seen_values: set[int] = set()
        pending_envs = [GLOBAL_ENV_ID, *root_env_ids]
        pending_values = list(root_values)

        while pending_envs or pending_values:
            if pending_values:
                value = pending_values.pop()
                if isinstance(value, Closure):
                    pending_envs.append(value.env_id)
                elif isinstance(value, (Pair, Quoted)):
                    if id(value) in seen_values:
                        continue
                    seen_values.add(id(value))
                    if isinstance(value, Pair):
                        pending_values.append(value.head)
                        pending_values.append(value.tail)
                    else:
                        pending_values.append(value.value)
                continue

            env_id = pending_envs.pop()
            if env_id in marked:
                continue
            env = self.envs.get(env_id)
            if env is None:
                continue
            marked.add(env_id)
            if env.parent is not None:
                pending_envs.append(env.parent)
            pending_values.extend(env.vars.values())

        dead = [env_id for env_id in self.envs if env_id not in marked]
        for env_id in dead:
            del self.envs[env_id]
        if dead:
            logger.debug("collected %d environments, %d live", len(dead), len(self.envs))
        return len(dead)
