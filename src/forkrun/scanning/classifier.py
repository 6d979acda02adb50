from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Sequence, Union

from pydantic import BaseModel, Field

from forkrun.utils.diagnostics import ClassificationConfigError

Location = Union[str, Path]

_URI_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:(//|/|[A-Za-z][A-Za-z0-9+.-]*:)")
_WINDOWS_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:[\\/]")


class JarGroup(BaseModel):
    """Result of classification: two ordered, de-duplicated location lists."""

    container_jars: List[str] = Field(default_factory=list)
    application_jars: List[str] = Field(default_factory=list)


def to_location_uri(location: Location) -> str:
    """
    Normalize a location to the absolute URI form patterns are matched against.
    Strings that already carry a scheme (file:, jar:, http://) are kept as given.
    """
    if isinstance(location, str):
        if _URI_PATTERN.match(location) and not _WINDOWS_DRIVE_PATTERN.match(location):
            return location
        location = Path(location)

    path = location.expanduser().absolute()
    uri = path.as_uri()
    if path.is_dir() and not uri.endswith("/"):
        uri += "/"
    return uri


def compile_include_pattern(pattern: Optional[str]) -> Optional[Pattern[str]]:
    if pattern is None:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ClassificationConfigError(pattern, str(exc)) from exc


def _select(uris: Iterable[str], pattern: Optional[Pattern[str]], match_all_by_default: bool) -> List[str]:
    selected: List[str] = []
    seen = set()
    for uri in uris:
        if pattern is None:
            matched = match_all_by_default
        else:
            matched = pattern.search(uri) is not None
        if matched and uri not in seen:
            seen.add(uri)
            selected.append(uri)
    return selected


class JarClassifier:
    """
    Splits candidate archive locations into container jars and application
    jars for metadata scanning.

    Container-side scanning is opt-in (no pattern matches nothing);
    webapp-side scanning is opt-out (no pattern matches everything).
    """

    def __init__(self, container_pattern: Optional[str] = None, webapp_pattern: Optional[str] = None):
        self.container_pattern = compile_include_pattern(container_pattern)
        self.webapp_pattern = compile_include_pattern(webapp_pattern)

    def classify(
        self,
        candidates: Sequence[Location],
        webapp_candidates: Optional[Sequence[Location]] = None,
    ) -> JarGroup:
        """
        Classify in one left-to-right pass per side, preserving candidate order.
        When `webapp_candidates` is omitted, `candidates` serve both sides.
        """
        container_uris = [to_location_uri(c) for c in candidates]
        if webapp_candidates is None:
            webapp_uris = container_uris
        else:
            webapp_uris = [to_location_uri(c) for c in webapp_candidates]

        return JarGroup(
            container_jars=_select(container_uris, self.container_pattern, match_all_by_default=False),
            application_jars=_select(webapp_uris, self.webapp_pattern, match_all_by_default=True),
        )


def classify(
    candidates: Sequence[Location],
    container_pattern: Optional[str] = None,
    webapp_pattern: Optional[str] = None,
    webapp_candidates: Optional[Sequence[Location]] = None,
) -> JarGroup:
    """Functional form of JarClassifier(...).classify(...)."""
    return JarClassifier(container_pattern, webapp_pattern).classify(candidates, webapp_candidates)
