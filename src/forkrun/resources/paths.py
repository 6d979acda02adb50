from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict


class VirtualPathKind(str, Enum):
    """What a virtual path lookup found."""

    MISSING = "missing"
    FILE = "file"
    DIRECTORY = "directory"
    AGGREGATE = "aggregate"


class VirtualPath(BaseModel):
    """
    Resolved lookup result. `location` is a filesystem path, a
    `jar:file:...!/entry` string for archive entries, or None when the
    path is missing or only exists as an aggregation of several sources.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    kind: VirtualPathKind
    location: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.kind != VirtualPathKind.MISSING

    @property
    def is_directory(self) -> bool:
        return self.kind in (VirtualPathKind.DIRECTORY, VirtualPathKind.AGGREGATE)

    @classmethod
    def missing(cls, path: str) -> "VirtualPath":
        return cls(path=path, kind=VirtualPathKind.MISSING)

    @classmethod
    def aggregate(cls, path: str) -> "VirtualPath":
        return cls(path=path, kind=VirtualPathKind.AGGREGATE)

    @classmethod
    def at(cls, path: str, location: Union[str, Path], is_directory: bool) -> "VirtualPath":
        kind = VirtualPathKind.DIRECTORY if is_directory else VirtualPathKind.FILE
        return cls(path=path, kind=kind, location=str(location))


def canonical_path(path: Optional[str]) -> Optional[str]:
    """
    Collapse '.', '..' and repeated slashes in a context-relative path.
    Returns None for paths that climb above the root or are otherwise unusable.
    A trailing slash is kept.
    """
    if path is None or "\x00" in path:
        return None
    if not path.startswith("/"):
        path = "/" + path

    segments: List[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not segments:
                return None
            segments.pop()
            continue
        segments.append(segment)

    result = "/" + "/".join(segments)
    if path.endswith("/") and result != "/":
        result += "/"
    return result


def is_at_or_under(path: str, root: str) -> bool:
    """Segment-aware prefix test: '/a/b' is under '/a' but '/ab' is not."""
    trimmed = path.rstrip("/") or "/"
    return trimmed == root or trimmed.startswith(root + "/")


def relative_to_root(path: str, root: str) -> str:
    """The part of `path` below `root`, without leading slash ('' for the root itself)."""
    return path[len(root):].strip("/")
