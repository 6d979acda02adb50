"""Merged resource view over the application base, overlays, classes and libraries."""

from forkrun.resources.paths import VirtualPath, VirtualPathKind, canonical_path
from forkrun.resources.sources import (
	ArchiveResource,
	DirectoryResource,
	LayeredResource,
	build_base_resource,
)
from forkrun.resources.view import CLASSES_ROOT, LIB_ROOT, VirtualResourceView, build_library_map

__all__ = [
	"ArchiveResource",
	"CLASSES_ROOT",
	"DirectoryResource",
	"LIB_ROOT",
	"LayeredResource",
	"VirtualPath",
	"VirtualPathKind",
	"VirtualResourceView",
	"build_base_resource",
	"build_library_map",
	"canonical_path",
]
