from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Iterable, Optional

from forkrun.core.models import PATH_LIST_DELIMITER

FALLBACK_INTERPRETER = "python3"

# Installation-relative interpreter locations, checked in order.
_INTERPRETER_CANDIDATES = (
    ("bin", "python3"),
    ("bin", "python"),
    ("python.exe",),
    ("Scripts", "python.exe"),
)


def normalize_path_list(value: str) -> str:
    """
    Rewrite a ',' or os.pathsep delimited path list with os.pathsep.
    Empty items are dropped; applying it twice changes nothing.
    """
    items = []
    for chunk in value.split(PATH_LIST_DELIMITER):
        items.extend(piece for piece in chunk.split(os.pathsep) if piece.strip())
    return os.pathsep.join(items)


def join_path_list(paths: Iterable[Path | str]) -> str:
    return normalize_path_list(PATH_LIST_DELIMITER.join(str(p) for p in paths))


def resolve_interpreter(runtime_home: Optional[Path] = None) -> str:
    """
    Locate the interpreter binary under `runtime_home` (default: the running
    installation) and fall back to a bare command name found on PATH.
    """
    home = runtime_home if runtime_home is not None else Path(sys.prefix)
    for parts in _INTERPRETER_CANDIDATES:
        candidate = home.joinpath(*parts)
        if candidate.is_file():
            return str(candidate.absolute())
    return FALLBACK_INTERPRETER
