import pytest
from pathlib import Path

from forkrun.scanning.classifier import JarClassifier, classify, to_location_uri
from forkrun.scanning.metadata import ScanMetadata, register_jar_group
from forkrun.utils.diagnostics import ClassificationConfigError

CANDIDATES = [
    "file:///opt/server/lib/servlet-api-3.1.jar",
    "file:///opt/server/lib/server-core-8.0.jar",
    "file:///app/WEB-INF/lib/util-1.2.jar",
    "file:///app/WEB-INF/lib/taglibs-standard.jar",
]


def test_defaults_scan_no_container_jars_and_all_webapp_jars():
    group = JarClassifier().classify(CANDIDATES)

    assert group.container_jars == []
    assert group.application_jars == CANDIDATES


def test_container_pattern_is_opt_in():
    group = classify(CANDIDATES, container_pattern=r".*/servlet-api-[^/]*\.jar$")
    assert group.container_jars == ["file:///opt/server/lib/servlet-api-3.1.jar"]


def test_webapp_pattern_is_opt_out():
    group = classify(CANDIDATES, webapp_pattern=r"taglibs")
    assert group.application_jars == ["file:///app/WEB-INF/lib/taglibs-standard.jar"]


def test_patterns_are_unanchored_searches():
    group = classify(CANDIDATES, container_pattern="server", webapp_pattern="util")

    assert group.container_jars == [
        "file:///opt/server/lib/servlet-api-3.1.jar",
        "file:///opt/server/lib/server-core-8.0.jar",
    ]
    assert group.application_jars == ["file:///app/WEB-INF/lib/util-1.2.jar"]


def test_empty_pattern_matches_everything():
    group = classify(CANDIDATES, container_pattern="")
    assert group.container_jars == CANDIDATES


def test_order_preserved_and_duplicates_dropped():
    candidates = [CANDIDATES[2], CANDIDATES[0], CANDIDATES[2]]
    group = classify(candidates)
    assert group.application_jars == [CANDIDATES[2], CANDIDATES[0]]


def test_separate_webapp_candidates():
    group = classify(CANDIDATES[:2], container_pattern="servlet", webapp_candidates=CANDIDATES[2:])

    assert group.container_jars == [CANDIDATES[0]]
    assert group.application_jars == CANDIDATES[2:]


def test_invalid_pattern_raises_at_construction():
    with pytest.raises(ClassificationConfigError) as exc_info:
        JarClassifier(container_pattern="(unclosed")
    assert exc_info.value.pattern == "(unclosed"


def test_to_location_uri_keeps_uris():
    assert to_location_uri("file:/opt/a.jar") == "file:/opt/a.jar"
    assert to_location_uri("jar:file:/opt/a.war!/WEB-INF/lib/b.jar") == "jar:file:/opt/a.war!/WEB-INF/lib/b.jar"


def test_to_location_uri_from_paths(tmp_path):
    archive = tmp_path / "lib" / "util.zip"
    archive.parent.mkdir()
    archive.write_bytes(b"")

    assert to_location_uri(archive) == archive.absolute().as_uri()
    assert to_location_uri(str(archive)) == archive.absolute().as_uri()
    assert to_location_uri(tmp_path / "lib").endswith("/lib/")


def test_register_jar_group_container_first():
    group = classify(CANDIDATES, container_pattern="servlet", webapp_pattern="util")
    metadata = ScanMetadata()

    register_jar_group(metadata, group)

    assert metadata.ordered_jars() == [
        "file:///opt/server/lib/servlet-api-3.1.jar",
        "file:///app/WEB-INF/lib/util-1.2.jar",
    ]


def test_scan_metadata_ordered_jars_skips_duplicates_and_clears():
    metadata = ScanMetadata()
    metadata.add_container_jar("file:///a.jar")
    metadata.add_webapp_jar("file:///a.jar")
    metadata.add_webapp_jar("file:///b.jar")

    assert metadata.ordered_jars() == ["file:///a.jar", "file:///b.jar"]

    metadata.clear()
    assert metadata.ordered_jars() == []
