from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SrcLoc:
    line: int
    column: int
    file_name: Optional[str] = None

    def __str__(self) -> str:
        if self.file_name:
            return f"{self.file_name}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


def loc_at(source: str, pos: int, file_name: Optional[str] = None) -> SrcLoc:
    """Line/column (both 1-based) of offset `pos` in `source`."""
    line = source.count("\n", 0, pos) + 1
    column = pos - (source.rfind("\n", 0, pos) + 1) + 1
    return SrcLoc(line, column, file_name)
