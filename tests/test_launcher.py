import os
import pytest
from pathlib import Path

from forkrun.core.context import ForkrunContext
from forkrun.core.models import ArtifactManifest, ArtifactScope, ArtifactType, ClasspathEntry
from forkrun.launcher.artifacts import (
    PLUGIN_GROUP,
    PLUGIN_NAME,
    ManifestArtifactSource,
    launcher_import_root,
    select_extra_entries,
    select_library_archives,
    select_overlays,
    select_provided_archives,
)
from forkrun.launcher.classpath import FALLBACK_INTERPRETER, join_path_list, normalize_path_list, resolve_interpreter
from forkrun.launcher.descriptor import build_deployment_descriptor, classes_directories, find_missing_paths
from forkrun.utils.diagnostics import ConfigIOError


def test_normalize_path_list_accepts_both_delimiters():
    value = f"/a.zip,/b.zip{os.pathsep}/c"
    assert normalize_path_list(value) == os.pathsep.join(["/a.zip", "/b.zip", "/c"])


def test_normalize_path_list_drops_empty_items_and_is_idempotent():
    once = normalize_path_list(",/a.zip,, ,/b.zip,")
    assert once == os.pathsep.join(["/a.zip", "/b.zip"])
    assert normalize_path_list(once) == once
    assert normalize_path_list("") == ""


def test_join_path_list_preserves_order():
    assert join_path_list([Path("/z"), "/a", Path("/m")]) == os.pathsep.join(["/z", "/a", "/m"])


def test_resolve_interpreter_prefers_bin_python3(tmp_path):
    (tmp_path / "bin").mkdir()
    (tmp_path / "bin" / "python").write_text("")
    (tmp_path / "bin" / "python3").write_text("")

    assert resolve_interpreter(tmp_path) == str((tmp_path / "bin" / "python3").absolute())


def test_resolve_interpreter_windows_layout(tmp_path):
    (tmp_path / "Scripts").mkdir()
    (tmp_path / "Scripts" / "python.exe").write_text("")

    assert resolve_interpreter(tmp_path) == str((tmp_path / "Scripts" / "python.exe").absolute())


def test_resolve_interpreter_falls_back_to_command_name(tmp_path):
    assert resolve_interpreter(tmp_path) == FALLBACK_INTERPRETER


def test_resolve_interpreter_defaults_to_running_installation():
    assert resolve_interpreter()


def _entry(path, type="archive", scope="normal", group="org.example", name=""):
    return ClasspathEntry(path=Path(path), type=type, scope=scope, group=group, name=name or Path(path).stem)


def test_manifest_source_resolves_relative_paths(tmp_path):
    manifest = ArtifactManifest(project=[_entry("lib/util.zip"), _entry("/opt/abs.zip")])
    source = ManifestArtifactSource(manifest, tmp_path)

    paths = [entry.path for entry in source.project_artifacts()]
    assert paths == [tmp_path / "lib" / "util.zip", Path("/opt/abs.zip")]


def test_manifest_source_adds_own_import_root(tmp_path):
    source = ManifestArtifactSource(ArtifactManifest(), tmp_path)
    plugin = source.plugin_artifacts()

    assert len(plugin) == 1
    assert plugin[0].name == PLUGIN_NAME
    assert plugin[0].type == ArtifactType.DIRECTORY
    assert plugin[0].path == launcher_import_root()
    assert (launcher_import_root() / "forkrun").is_dir()


def test_manifest_source_keeps_declared_own_entry(tmp_path):
    manifest = ArtifactManifest(plugin=[_entry("dist/forkrun.whl", group=PLUGIN_GROUP, name=PLUGIN_NAME)])
    plugin = ManifestArtifactSource(manifest, tmp_path).plugin_artifacts()

    assert [entry.path for entry in plugin] == [tmp_path / "dist" / "forkrun.whl"]


def test_select_library_archives_by_scope():
    project = [
        _entry("/lib/a.zip"),
        _entry("/lib/provided.zip", scope="provided"),
        _entry("/lib/test.zip", scope="test"),
        _entry("/lib/dir", type="directory"),
        _entry("/lib/o.war", type="webapp"),
    ]

    assert select_library_archives(project) == [Path("/lib/a.zip")]
    assert select_library_archives(project, use_test_classpath=True) == [Path("/lib/a.zip"), Path("/lib/test.zip")]
    assert select_overlays(project) == [Path("/lib/o.war")]


def test_select_provided_archives_skips_plugin_identities():
    project = [
        _entry("/lib/api.zip", scope="provided", name="api"),
        _entry("/lib/clash.zip", scope="provided", name="runner"),
        _entry("/lib/normal.zip", name="normal"),
    ]
    plugin = [_entry("/plugin/runner.zip", name="runner")]

    assert select_provided_archives(project, plugin) == [Path("/lib/api.zip")]


def test_select_extra_entries_matches_own_identity_once():
    plugin = [
        _entry("/plugin/a.zip", name="a"),
        _entry("/plugin/src", type="directory", group=PLUGIN_GROUP, name=PLUGIN_NAME),
        _entry("/plugin/src", type="directory", group=PLUGIN_GROUP, name=PLUGIN_NAME),
        _entry("/vendor/forkrun.zip", group="org.other", name=PLUGIN_NAME),
    ]
    assert select_extra_entries(plugin) == [Path("/plugin/src")]


def _context(root, **config):
    return ForkrunContext(config_dict=config, root_dir=root)


def test_classes_directories_test_first(tmp_path):
    ctx = _context(
        tmp_path,
        webapp={"classes_dir": "target/classes", "test_classes_dir": "target/test-classes"},
        fork={"use_test_classpath": True},
    )
    root = ctx.root_dir
    assert classes_directories(ctx) == [root / "target" / "test-classes", root / "target" / "classes"]

    ctx.fork.use_test_classpath = False
    assert classes_directories(ctx) == [root / "target" / "classes"]


def test_build_deployment_descriptor(tmp_path, formatter):
    config = {
        "forkrun": {"project_name": "shop", "log_level": "DEBUG"},
        "webapp": {"base_dir": "src/webapp", "classes_dir": "target/classes", "descriptor": "src/webapp/web.yaml"},
        "artifacts": {
            "project": [
                {"path": "lib/util.zip", "name": "util"},
                {"path": "overlays/base.war", "type": "webapp", "name": "base"},
                {"path": "lib/servlet.zip", "scope": "provided", "name": "servlet"},
            ]
        },
    }
    ctx = ForkrunContext(config_dict=config, root_dir=tmp_path, formatter=formatter)
    root = ctx.root_dir

    descriptor = build_deployment_descriptor(ctx, ManifestArtifactSource(ctx.artifacts, root))

    assert descriptor.context_path == "/shop"
    assert descriptor.temp_directory_path == root / "target" / "tmp"
    assert descriptor.temp_directory_path.is_dir()
    assert descriptor.base_directory_path == root / "src" / "webapp"
    assert descriptor.descriptor_path == root / "src" / "webapp" / "web.yaml"
    assert descriptor.classes_directory_paths == (root / "target" / "classes",)
    assert descriptor.library_archive_paths == (root / "lib" / "util.zip",)
    assert descriptor.overlay_paths == (root / "overlays" / "base.war",)
    assert "Adding artifact util" in formatter.console.file.getvalue()


def test_build_deployment_descriptor_keeps_configured_context_path(tmp_path):
    ctx = _context(tmp_path, webapp={"context_path": "/", "tmp_dir": "scratch"})
    descriptor = build_deployment_descriptor(ctx, ManifestArtifactSource(ctx.artifacts, ctx.root_dir))

    assert descriptor.context_path == "/"
    assert descriptor.temp_directory_path == ctx.root_dir / "scratch"


def test_build_deployment_descriptor_temp_dir_failure(tmp_path):
    (tmp_path / "blocker").write_text("file")
    ctx = _context(tmp_path, webapp={"tmp_dir": "blocker/tmp"})

    with pytest.raises(ConfigIOError):
        build_deployment_descriptor(ctx, ManifestArtifactSource(ctx.artifacts, ctx.root_dir))


def test_find_missing_paths_reports_each_absent_location(tmp_path):
    ctx = _context(
        tmp_path,
        webapp={"base_dir": "webapp", "classes_dir": "classes"},
        artifacts={"project": [{"path": "lib/util.zip"}]},
    )
    (tmp_path / "webapp").mkdir()
    descriptor = build_deployment_descriptor(ctx, ManifestArtifactSource(ctx.artifacts, ctx.root_dir))

    diagnostics = find_missing_paths(descriptor)

    assert [d.error_code for d in diagnostics] == ["WARN_PATH_MISSING", "WARN_PATH_MISSING"]
    assert {Path(d.file_path).name for d in diagnostics} == {"classes", "util.zip"}
    assert all(d.severity == "warning" for d in diagnostics)
