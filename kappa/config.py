from __future__ import annotations
import os
from pathlib import Path
from typing import Iterable, List, Optional


def _sep() -> str:
    return ';' if os.name == 'nt' else ':'


# Resolve installation dir (kappa package directory)
_KAPPA_DIR = Path(__file__).resolve().parent

# Defaults
_DEFAULT_PRELUDE_DIR = _KAPPA_DIR / 'prelude'
_DEFAULT_GC_THRESHOLD = 4096

PRELUDE_FILE = 'std.lisp'


def paths_from_env(var: str, defaults: Iterable[Path]) -> List[Path]:
    raw = os.environ.get(var)
    if not raw:
        return [Path(p) for p in defaults]
    sep = _sep()
    return [Path(p.strip()) for p in raw.split(sep) if p.strip()]


def int_from_env(var: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(var)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{var} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{var} must not be negative, got {value}")
    return value


def get_prelude_root() -> Path:
    roots = paths_from_env('KAPPA_PRELUDE_PATH', [_DEFAULT_PRELUDE_DIR])
    # treat as single directory; if a file path is set, return its parent
    p = roots[0]
    return p if p.is_dir() else p.parent


def get_prelude_path() -> Path:
    return get_prelude_root() / PRELUDE_FILE


def get_gc_threshold() -> int:
    """Environment allocations between automatic collections; 0 disables them."""
    return int_from_env('KAPPA_GC_THRESHOLD', _DEFAULT_GC_THRESHOLD)


def get_step_limit() -> Optional[int]:
    return int_from_env('KAPPA_STEP_LIMIT', None)


def disasm_enabled() -> bool:
    return bool(os.environ.get('KAPPA_DISASM'))
