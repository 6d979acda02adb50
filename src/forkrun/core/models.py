import os
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Delimiter for multi-valued fields in the handoff file and in path lists.
PATH_LIST_DELIMITER = ","


def split_path_list(value: Any) -> List[str]:
    """Split a comma-delimited string into trimmed, non-empty items."""
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(PATH_LIST_DELIMITER) if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


def absolute_path(value: Path) -> Path:
    """Absolute, normalized form of a path; '..' and '.' are collapsed."""
    return Path(os.path.abspath(os.path.expanduser(str(value))))


class FrameworkSettings(BaseSettings):
    """
    Framework-level settings (the 'forkrun' section in forkrun.yaml).
    """
    model_config = SettingsConfigDict(env_prefix='FORKRUN_', extra='ignore')

    env: str = "development"
    project_name: Optional[str] = None
    log_level: str = "INFO"


class WebAppConfig(BaseModel):
    """
    Unassembled web application layout (the 'webapp' section in forkrun.yaml).
    Relative paths are resolved against the project root.
    """
    model_config = ConfigDict(extra='ignore')

    context_path: Optional[str] = None
    descriptor: Optional[Path] = None
    base_dir: Optional[Path] = None
    tmp_dir: Optional[Path] = None
    classes_dir: Optional[Path] = None
    test_classes_dir: Optional[Path] = None

    @field_validator("context_path")
    @classmethod
    def _context_path_is_rooted(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.startswith("/"):
            raise ValueError(f"context_path must begin with '/': '{value}'")
        return value


class ForkSettings(BaseModel):
    """
    Child process settings (the 'fork' section in forkrun.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    skip: bool = False
    stop_port: int = Field(default=0, ge=0, le=65535)
    stop_key: Optional[str] = None
    jetty_xml: List[str] = Field(default_factory=list)
    context_xml: Optional[str] = None
    use_provided: bool = False
    use_test_classpath: bool = False
    runtime_home: Optional[Path] = None
    interpreter: Optional[str] = None
    entry_module: str = "forkrun.runtime.starter"
    target_dir: Path = Path("target")
    props_file: str = "fork.props"
    extra_args: List[str] = Field(default_factory=list)

    @field_validator("jetty_xml", mode="before")
    @classmethod
    def _split_jetty_xml(cls, value: Any) -> List[str]:
        return split_path_list(value)


class ArtifactScope(str, Enum):
    """Dependency scope of a classpath entry."""

    NORMAL = "normal"
    PROVIDED = "provided"
    TEST = "test"


class ArtifactType(str, Enum):
    """Packaging kind of a classpath entry. WEBAPP entries are overlays."""

    ARCHIVE = "archive"
    DIRECTORY = "directory"
    WEBAPP = "webapp"


class ClasspathEntry(BaseModel):
    """
    One artifact as reported by the artifact source. Only read, never mutated.
    """
    model_config = ConfigDict(frozen=True, extra='ignore')

    path: Path
    type: ArtifactType = ArtifactType.ARCHIVE
    scope: ArtifactScope = ArtifactScope.NORMAL
    group: str = ""
    name: str = ""

    def same_identity(self, other: "ClasspathEntry") -> bool:
        return self.group == other.group and self.name == other.name


class ArtifactManifest(BaseModel):
    """
    Declared artifacts (the 'artifacts' section in forkrun.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    project: List[ClasspathEntry] = Field(default_factory=list)
    plugin: List[ClasspathEntry] = Field(default_factory=list)


class DeploymentDescriptor(BaseModel):
    """
    The deployment description handed from the launcher to the child.

    Paths are stored absolute and normalized. List order is lookup
    precedence: overlays lowest-first, classes directories first-wins.
    Paths inside the list fields may not contain the list delimiter, and
    no path or context path may begin or end with whitespace.
    """
    model_config = ConfigDict(frozen=True, extra='forbid')

    descriptor_path: Optional[Path] = None
    context_path: str = "/"
    temp_directory_path: Optional[Path] = None
    base_directory_path: Optional[Path] = None
    overlay_paths: Tuple[Path, ...] = ()
    classes_directory_paths: Tuple[Path, ...] = ()
    library_archive_paths: Tuple[Path, ...] = ()

    @field_validator("context_path")
    @classmethod
    def _context_path_is_rooted(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"context_path must begin with '/': '{value}'")
        if value != value.strip():
            raise ValueError(f"context_path cannot begin or end with whitespace: '{value}'")
        return value

    @field_validator("descriptor_path", "temp_directory_path", "base_directory_path")
    @classmethod
    def _normalize_path(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        return _representable(absolute_path(value), single=True)

    @field_validator("overlay_paths", "classes_directory_paths", "library_archive_paths")
    @classmethod
    def _normalize_paths(cls, value: Tuple[Path, ...]) -> Tuple[Path, ...]:
        return tuple(_representable(absolute_path(item)) for item in value)

    def configured_paths(self) -> List[Tuple[str, Path]]:
        """(field name, path) for every configured location that must exist."""
        paths: List[Tuple[str, Path]] = []
        if self.descriptor_path is not None:
            paths.append(("descriptor_path", self.descriptor_path))
        if self.base_directory_path is not None:
            paths.append(("base_directory_path", self.base_directory_path))
        paths.extend(("overlay_paths", p) for p in self.overlay_paths)
        paths.extend(("classes_directory_paths", p) for p in self.classes_directory_paths)
        paths.extend(("library_archive_paths", p) for p in self.library_archive_paths)
        return paths


def _representable(path: Path, single: bool = False) -> Path:
    # handed-off values are trimmed on read
    text = str(path)
    if text != text.strip():
        raise ValueError(f"Path '{path}' begins or ends with whitespace and cannot be handed off.")
    if not single and PATH_LIST_DELIMITER in text:
        raise ValueError(
            f"Path '{path}' contains the list delimiter '{PATH_LIST_DELIMITER}' and cannot be handed off."
        )
    return path
