"""Launcher side: deployment description, child path and the forked process."""

from forkrun.launcher.artifacts import ArtifactSource, ManifestArtifactSource
from forkrun.launcher.classpath import normalize_path_list, resolve_interpreter
from forkrun.launcher.descriptor import build_deployment_descriptor, find_missing_paths
from forkrun.launcher.orchestrator import CancellationToken, ChildProcessGuard, ProcessOrchestrator

__all__ = [
	"ArtifactSource",
	"CancellationToken",
	"ChildProcessGuard",
	"ManifestArtifactSource",
	"ProcessOrchestrator",
	"build_deployment_descriptor",
	"find_missing_paths",
	"normalize_path_list",
	"resolve_interpreter",
]
