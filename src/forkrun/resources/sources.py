from __future__ import annotations

import zipfile
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Set

from forkrun.resources.paths import VirtualPath


class ResourceSource(Protocol):
    """One source of resources, addressed by canonical context paths."""

    def resolve(self, path: str) -> Optional[VirtualPath]:
        ...

    def list_names(self, path: str) -> Set[str]:
        ...


def path_kind(target: Path) -> Optional[bool]:
    """True for a directory, False for a file, None when absent or unreachable."""
    try:
        if not target.exists():
            return None
        return target.is_dir()
    except (OSError, ValueError):
        return None


def directory_names(target: Path) -> Set[str]:
    """Entry names directly below `target`, directories with a trailing '/'."""
    try:
        if not target.is_dir():
            return set()
        return {f"{child.name}/" if child.is_dir() else child.name for child in target.iterdir()}
    except (OSError, ValueError):
        return set()


class DirectoryResource:
    """Resources served from a directory on disk."""

    def __init__(self, root: Path):
        self.root = root

    def _target(self, path: str) -> Path:
        return self.root / path.strip("/")

    def resolve(self, path: str) -> Optional[VirtualPath]:
        target = self._target(path)
        kind = path_kind(target)
        if kind is None:
            return None
        return VirtualPath.at(path, target, is_directory=kind)

    def list_names(self, path: str) -> Set[str]:
        return directory_names(self._target(path))

    def __repr__(self) -> str:
        return f"DirectoryResource({str(self.root)!r})"


class ArchiveResource:
    """
    Resources served from a zip archive (a packaged webapp overlay).
    The entry table is read once; directories are implied by entry prefixes.
    """

    def __init__(self, archive: Path):
        self.archive = archive
        self._files: Set[str] = set()
        self._dirs: Set[str] = {""}

        with zipfile.ZipFile(archive) as zf:
            for name in zf.namelist():
                entry = name.strip("/")
                if not entry:
                    continue
                parts = entry.split("/")
                for depth in range(1, len(parts)):
                    self._dirs.add("/".join(parts[:depth]))
                if name.endswith("/"):
                    self._dirs.add(entry)
                else:
                    self._files.add(entry)

    def _location(self, entry: str) -> str:
        return f"jar:{self.archive.absolute().as_uri()}!/{entry}"

    def resolve(self, path: str) -> Optional[VirtualPath]:
        entry = path.strip("/")
        if entry in self._files:
            return VirtualPath.at(path, self._location(entry), is_directory=False)
        if entry in self._dirs:
            suffix = f"{entry}/" if entry else ""
            return VirtualPath.at(path, self._location(suffix), is_directory=True)
        return None

    def list_names(self, path: str) -> Set[str]:
        entry = path.strip("/")
        if entry not in self._dirs:
            return set()
        prefix = f"{entry}/" if entry else ""
        names: Set[str] = set()
        for candidate in self._files:
            if candidate.startswith(prefix) and "/" not in candidate[len(prefix):]:
                names.add(candidate[len(prefix):])
        for candidate in self._dirs:
            if candidate and candidate.startswith(prefix) and "/" not in candidate[len(prefix):]:
                names.add(candidate[len(prefix):] + "/")
        return names

    def __repr__(self) -> str:
        return f"ArchiveResource({str(self.archive)!r})"


class LayeredResource:
    """
    An ordered stack of sources; the first layer that has a path wins.
    A directory present in more than one layer has no single backing
    location and resolves to an aggregate.
    """

    def __init__(self, layers: Sequence[ResourceSource]):
        self.layers: List[ResourceSource] = list(layers)

    def resolve(self, path: str) -> Optional[VirtualPath]:
        found = [hit for hit in (layer.resolve(path) for layer in self.layers) if hit is not None]
        if not found:
            return None

        first = found[0]
        if first.is_directory and sum(1 for hit in found if hit.is_directory) > 1:
            return VirtualPath.aggregate(path)
        return first

    def list_names(self, path: str) -> Set[str]:
        names: Set[str] = set()
        for layer in self.layers:
            names.update(layer.list_names(path))
        return names


def mount(location: Path) -> ResourceSource:
    """Directories mount as-is; anything else is treated as an archive."""
    if location.is_dir():
        return DirectoryResource(location)
    return ArchiveResource(location)


def build_base_resource(
    base_dir: Optional[Path],
    overlays: Sequence[Path] = (),
    base_app_first: bool = True,
) -> Optional[ResourceSource]:
    """
    Stack the application's own content and its overlays.

    Later overlays shadow earlier ones. The application content sits on top
    unless `base_app_first` is False, in which case it sits below every overlay.
    """
    overlay_layers = [mount(location) for location in reversed(list(overlays))]
    base_layers = [DirectoryResource(base_dir)] if base_dir is not None else []

    if base_app_first:
        layers = base_layers + overlay_layers
    else:
        layers = overlay_layers + base_layers

    if not layers:
        return None
    if len(layers) == 1:
        return layers[0]
    return LayeredResource(layers)
