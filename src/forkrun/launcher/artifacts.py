from __future__ import annotations

from pathlib import Path
from typing import List, Protocol, Sequence

from forkrun.core.models import ArtifactManifest, ArtifactScope, ArtifactType, ClasspathEntry

# Identity of the launcher's own distribution among plugin artifacts.
PLUGIN_GROUP = "forkrun"
PLUGIN_NAME = "forkrun"


def launcher_import_root() -> Path:
    """Directory the `forkrun` package is imported from (src/ or site-packages)."""
    return Path(__file__).resolve().parents[2]


class ArtifactSource(Protocol):
    """External provider of classpath entries. Entries are only read."""

    def project_artifacts(self) -> List[ClasspathEntry]:
        ...

    def plugin_artifacts(self) -> List[ClasspathEntry]:
        ...


class ManifestArtifactSource:
    """
    Artifact source backed by the 'artifacts' section of forkrun.yaml.
    Relative paths resolve against the project root.
    """

    def __init__(self, manifest: ArtifactManifest, root_dir: Path):
        self.manifest = manifest
        self.root_dir = root_dir

    def _resolve(self, entry: ClasspathEntry) -> ClasspathEntry:
        if entry.path.is_absolute():
            return entry
        return entry.model_copy(update={"path": self.root_dir / entry.path})

    def project_artifacts(self) -> List[ClasspathEntry]:
        return [self._resolve(entry) for entry in self.manifest.project]

    def plugin_artifacts(self) -> List[ClasspathEntry]:
        entries = [self._resolve(entry) for entry in self.manifest.plugin]
        if not any(entry.group == PLUGIN_GROUP and entry.name == PLUGIN_NAME for entry in entries):
            # the child must always be able to import its entry module
            entries.append(
                ClasspathEntry(
                    path=launcher_import_root(),
                    type=ArtifactType.DIRECTORY,
                    group=PLUGIN_GROUP,
                    name=PLUGIN_NAME,
                )
            )
        return entries


def is_plugin_artifact(entry: ClasspathEntry, plugin_artifacts: Sequence[ClasspathEntry]) -> bool:
    """True when a plugin artifact has the same group and name."""
    return any(plugin.same_identity(entry) for plugin in plugin_artifacts)


def select_library_archives(
    project_artifacts: Sequence[ClasspathEntry],
    use_test_classpath: bool = False,
) -> List[Path]:
    """Archives that make up the application's library set, in artifact order."""
    archives: List[Path] = []
    for entry in project_artifacts:
        if entry.type != ArtifactType.ARCHIVE:
            continue
        if entry.scope == ArtifactScope.NORMAL or (use_test_classpath and entry.scope == ArtifactScope.TEST):
            archives.append(entry.path)
    return archives


def select_overlays(project_artifacts: Sequence[ClasspathEntry]) -> List[Path]:
    """Packaged webapps merged under the application, lowest precedence first."""
    return [entry.path for entry in project_artifacts if entry.type == ArtifactType.WEBAPP]


def select_provided_archives(
    project_artifacts: Sequence[ClasspathEntry],
    plugin_artifacts: Sequence[ClasspathEntry],
) -> List[Path]:
    """Provided-scope archives that do not clash with a plugin artifact."""
    return [
        entry.path
        for entry in project_artifacts
        if entry.scope == ArtifactScope.PROVIDED
        and entry.type == ArtifactType.ARCHIVE
        and not is_plugin_artifact(entry, plugin_artifacts)
    ]


def select_extra_entries(plugin_artifacts: Sequence[ClasspathEntry]) -> List[Path]:
    """Plugin artifacts carrying the launcher's own identity, whatever their type."""
    extras: List[Path] = []
    for entry in plugin_artifacts:
        if entry.group == PLUGIN_GROUP and entry.name == PLUGIN_NAME and entry.path not in extras:
            extras.append(entry.path)
    return extras
