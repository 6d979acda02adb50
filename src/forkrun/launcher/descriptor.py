from __future__ import annotations

from pathlib import Path
from typing import List

from forkrun.core.context import ForkrunContext
from forkrun.core.models import DeploymentDescriptor
from forkrun.launcher.artifacts import ArtifactSource, select_library_archives, select_overlays
from forkrun.utils.diagnostics import ConfigIOError, ForkrunDiagnostic


def classes_directories(context: ForkrunContext) -> List[Path]:
    """Compiled-output roots, test classes first when the test classpath is in use."""
    directories: List[Path] = []
    webapp = context.webapp
    if context.fork.use_test_classpath and webapp.test_classes_dir is not None:
        directories.append(context.resolve_path(webapp.test_classes_dir))
    if webapp.classes_dir is not None:
        directories.append(context.resolve_path(webapp.classes_dir))
    return directories


def build_deployment_descriptor(context: ForkrunContext, source: ArtifactSource) -> DeploymentDescriptor:
    """
    Assemble the deployment description for the child from the project
    configuration and the artifact source. Creates the temp directory.
    """
    webapp = context.webapp
    formatter = context.formatter

    temp_dir = context.resolve_path(webapp.tmp_dir) if webapp.tmp_dir is not None else context.target_dir / "tmp"
    try:
        temp_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigIOError(f"Unable to create temp directory: {exc}", path=str(temp_dir)) from exc

    project_artifacts = source.project_artifacts()
    libraries = select_library_archives(project_artifacts, use_test_classpath=context.fork.use_test_classpath)
    for library in libraries:
        formatter.log(f"Adding artifact {library.name} to the library set", severity="debug")

    overlays = select_overlays(project_artifacts)
    for overlay in overlays:
        formatter.log(f"Adding overlay {overlay}", severity="debug")

    return DeploymentDescriptor(
        descriptor_path=context.resolve_path(webapp.descriptor) if webapp.descriptor is not None else None,
        context_path=webapp.context_path or f"/{context.project_name}",
        temp_directory_path=temp_dir,
        base_directory_path=context.resolve_path(webapp.base_dir) if webapp.base_dir is not None else None,
        overlay_paths=overlays,
        classes_directory_paths=classes_directories(context),
        library_archive_paths=libraries,
    )


def find_missing_paths(descriptor: DeploymentDescriptor) -> List[ForkrunDiagnostic]:
    """Warnings for configured locations that do not exist."""
    diagnostics: List[ForkrunDiagnostic] = []
    for field_name, path in descriptor.configured_paths():
        if path.exists():
            continue
        diagnostics.append(
            ForkrunDiagnostic(
                file_path=str(path),
                error_code="WARN_PATH_MISSING",
                message=f"Configured {field_name.replace('_', ' ')} entry does not exist.",
                suggestion="Build the project or fix the path in forkrun.yaml.",
            )
        )
    return diagnostics
