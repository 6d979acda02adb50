from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Set

from forkrun.resources.paths import (
    VirtualPath,
    canonical_path,
    is_at_or_under,
    relative_to_root,
)
from forkrun.resources.sources import ResourceSource, directory_names, path_kind

CLASSES_ROOT = "/WEB-INF/classes"
LIB_ROOT = "/WEB-INF/lib"

ARCHIVE_SUFFIXES = (".jar", ".zip", ".whl", ".war")


def build_library_map(archives: Sequence[Path]) -> Dict[str, Path]:
    """Map archive file names to their paths; the first archive with a name wins."""
    library_map: Dict[str, Path] = {}
    for archive in archives:
        if archive.name.lower().endswith(ARCHIVE_SUFFIXES) and archive.name not in library_map:
            library_map[archive.name] = archive
    return library_map


class VirtualResourceView:
    """
    Read-only merged view over the application base (with overlays), the
    classes directories and the library archives.

    Lookups never raise on bad input: a path that cannot be canonicalized
    is simply not found. The view is not mutated after construction.
    """

    def __init__(
        self,
        base: Optional[ResourceSource] = None,
        classes_directories: Sequence[Path] = (),
        library_map: Optional[Mapping[str, Path]] = None,
    ):
        self.base = base
        self.classes_directories: List[Path] = list(classes_directories)
        self.library_map: Dict[str, Path] = dict(library_map or {})

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists

    def resolve(self, path: str) -> VirtualPath:
        uri = canonical_path(path)
        if uri is None:
            return VirtualPath.missing(str(path))

        if self.base is not None:
            found = self.base.resolve(uri)
            if found is not None:
                return found

        if is_at_or_under(uri, CLASSES_ROOT):
            return self._resolve_classes(uri)

        if is_at_or_under(uri, LIB_ROOT):
            return self._resolve_library(uri)

        return VirtualPath.missing(uri)

    def _resolve_classes(self, uri: str) -> VirtualPath:
        relative = relative_to_root(uri, CLASSES_ROOT)
        if not relative:
            # exact root: the first classes directory that exists stands in for all of them
            for directory in self.classes_directories:
                if path_kind(directory):
                    return VirtualPath.at(uri, directory, is_directory=True)
            return VirtualPath.missing(uri)

        for directory in self.classes_directories:
            candidate = directory / relative
            kind = path_kind(candidate)
            if kind is not None:
                return VirtualPath.at(uri, candidate, is_directory=kind)
        return VirtualPath.missing(uri)

    def _resolve_library(self, uri: str) -> VirtualPath:
        name = relative_to_root(uri, LIB_ROOT)
        if not name:
            return VirtualPath.missing(uri)

        archive = self.library_map.get(name)
        if archive is None:
            return VirtualPath.missing(uri)
        return VirtualPath.at(uri, archive, is_directory=False)

    def list_children(self, path: str) -> Set[str]:
        """
        Full virtual paths of the entries directly below `path`;
        directories end with '/'. Unordered.
        """
        uri = canonical_path(path)
        if uri is None:
            return set()

        prefix = uri.rstrip("/") + "/"
        names: Set[str] = set()

        if self.base is not None:
            names.update(self.base.list_names(uri))

        trimmed = uri.rstrip("/")
        if trimmed == LIB_ROOT:
            names.update(self.library_map.keys())
        elif is_at_or_under(uri, CLASSES_ROOT):
            relative = relative_to_root(uri, CLASSES_ROOT)
            for directory in self.classes_directories:
                names.update(directory_names(directory / relative if relative else directory))

        return {prefix + name for name in names}
