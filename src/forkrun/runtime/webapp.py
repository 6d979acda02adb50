from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set

from pydantic import BaseModel

from forkrun.cli.formatter import OutputFormatter
from forkrun.core.models import DeploymentDescriptor
from forkrun.resources import VirtualPath, VirtualResourceView, build_base_resource, build_library_map
from forkrun.scanning.classifier import JarClassifier, JarGroup
from forkrun.scanning.metadata import ScanMetadata, register_jar_group


class ScanSettings(BaseModel):
    """
    Which archives annotation and metadata scanning looks at.
    Container scanning is opt-in, webapp scanning opt-out.
    """

    container_include_pattern: Optional[str] = None
    webinf_include_pattern: Optional[str] = None
    base_app_first: bool = True


class DeployedApplication:
    """
    The application as the child deploys it: a context path, a merged
    resource view and the jars selected for metadata scanning.
    """

    def __init__(
        self,
        formatter: Optional[OutputFormatter] = None,
        scan_settings: Optional[ScanSettings] = None,
        container_classpath: Optional[Sequence[str]] = None,
    ):
        self.formatter = formatter or OutputFormatter()
        self.scan_settings = scan_settings or ScanSettings()
        self.container_classpath = container_classpath
        self.attributes: Dict[str, Any] = {}
        self.metadata = ScanMetadata()

        self.context_path = "/"
        self.descriptor_path: Optional[Path] = None
        self.temp_directory: Optional[Path] = None
        self.base_directory: Optional[Path] = None
        self.overlays: List[Path] = []
        self.classes_directories: List[Path] = []
        self.library_archives: List[Path] = []

        self.view: Optional[VirtualResourceView] = None
        self.jar_group: Optional[JarGroup] = None
        self.started = False

    # flat accessors over scan_settings
    @property
    def container_include_pattern(self) -> Optional[str]:
        return self.scan_settings.container_include_pattern

    @container_include_pattern.setter
    def container_include_pattern(self, value: Optional[str]) -> None:
        self.scan_settings = self.scan_settings.model_copy(update={"container_include_pattern": value})

    @property
    def webinf_include_pattern(self) -> Optional[str]:
        return self.scan_settings.webinf_include_pattern

    @webinf_include_pattern.setter
    def webinf_include_pattern(self, value: Optional[str]) -> None:
        self.scan_settings = self.scan_settings.model_copy(update={"webinf_include_pattern": value})

    @property
    def base_app_first(self) -> bool:
        return self.scan_settings.base_app_first

    @base_app_first.setter
    def base_app_first(self, value: bool) -> None:
        self.scan_settings = self.scan_settings.model_copy(update={"base_app_first": bool(value)})

    def configure(self, descriptor: DeploymentDescriptor) -> "DeployedApplication":
        """Take over every field of a handed-off deployment description."""
        self.context_path = descriptor.context_path
        self.descriptor_path = descriptor.descriptor_path
        self.temp_directory = descriptor.temp_directory_path
        self.base_directory = descriptor.base_directory_path
        self.overlays = list(descriptor.overlay_paths)
        self.classes_directories = list(descriptor.classes_directory_paths)
        self.library_archives = list(descriptor.library_archive_paths)
        self.formatter.log(f"Context path = {self.context_path}", severity="debug")
        self.formatter.log(f"Tmp directory = {self.temp_directory}", severity="debug")
        self.formatter.log(f"Base directory = {self.base_directory}", severity="debug")
        return self

    @property
    def classpath_files(self) -> List[Path]:
        return self.classes_directories + self.library_archives

    def _container_candidates(self) -> List[str]:
        if self.container_classpath is not None:
            return list(self.container_classpath)
        return [entry for entry in sys.path if entry]

    def _existing_overlays(self) -> List[Path]:
        overlays = []
        for overlay in self.overlays:
            if overlay.exists():
                overlays.append(overlay)
            else:
                self.formatter.log(f"Skipping missing overlay {overlay}", severity="warning")
        return overlays

    def start(self) -> None:
        if self.started:
            return

        if self.temp_directory is not None:
            self.temp_directory.mkdir(parents=True, exist_ok=True)

        base_directory = self.base_directory
        if base_directory is not None and not base_directory.is_dir():
            self.formatter.log(f"Base directory {base_directory} does not exist", severity="warning")
            base_directory = None

        self.view = VirtualResourceView(
            base=build_base_resource(base_directory, self._existing_overlays(), self.base_app_first),
            classes_directories=self.classes_directories,
            library_map=build_library_map(self.library_archives),
        )

        classifier = JarClassifier(self.container_include_pattern, self.webinf_include_pattern)
        self.jar_group = classifier.classify(self._container_candidates(), self.library_archives)
        self.metadata.clear()
        register_jar_group(self.metadata, self.jar_group)

        self.started = True
        self.formatter.log(
            f"Started application at {self.context_path} "
            f"({len(self.jar_group.container_jars)} container jars, "
            f"{len(self.jar_group.application_jars)} application jars)",
            severity="info",
        )

    def stop(self) -> None:
        if not self.started:
            return
        self.started = False
        self.formatter.log(f"Stopped application at {self.context_path}", severity="info")

    def get_resource(self, path: str) -> VirtualPath:
        if self.view is None:
            return VirtualPath.missing(path)
        return self.view.resolve(path)

    def get_resource_paths(self, path: str) -> Set[str]:
        if self.view is None:
            return set()
        return self.view.list_children(path)

    def __repr__(self) -> str:
        return f"DeployedApplication({self.context_path!r})"
