from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from forkrun.cli.formatter import OutputFormatter
from forkrun.core.models import PATH_LIST_DELIMITER, DeploymentDescriptor, split_path_list
from forkrun.utils.diagnostics import ConfigIOError, ConfigParseError

DESCRIPTOR_KEY = "web.xml"
CONTEXT_PATH_KEY = "context.path"
TEMP_DIR_KEY = "tmp.dir"
BASE_DIR_KEY = "base.dir"
OVERLAYS_KEY = "overlay.files"
CLASSES_DIRS_KEY = "classes.dir"
TEST_CLASSES_DIR_KEY = "testClasses.dir"
LIBRARY_JARS_KEY = "lib.jars"

HEADER_COMMENT = "properties for forked webapp"

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t", "\f": "\\f"}
_UNESCAPES = {"n": "\n", "r": "\r", "t": "\t", "f": "\f"}
_SPECIALS = "=:#!"
_SEPARATORS = "=:"
_WHITESPACE = " \t\f"


def escape_property(text: str, is_key: bool = False) -> str:
    """Escape a key or value for a properties line."""
    out: List[str] = []
    for index, char in enumerate(text):
        if char in _ESCAPES:
            out.append(_ESCAPES[char])
        elif char in _SPECIALS:
            out.append("\\" + char)
        elif char == " " and (is_key or index == 0):
            out.append("\\ ")
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            out.append(f"\\u{ord(char):04x}")
        else:
            out.append(char)
    return "".join(out)


def _logical_lines(content: str) -> Iterator[Tuple[int, str]]:
    """Yield (line number, logical line), joining backslash continuations."""
    pending: Optional[str] = None
    start = 0
    for number, raw in enumerate(content.splitlines(), start=1):
        line = raw.lstrip(_WHITESPACE) if pending is not None else raw
        if pending is None:
            stripped = line.lstrip(_WHITESPACE)
            if not stripped or stripped[0] in "#!":
                continue
            start = number
            line = stripped

        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending = (pending or "") + line[:-1]
            continue

        yield start, (pending or "") + line
        pending = None

    if pending is not None:
        yield start, pending


def _unescape(text: str, path: str, line_number: int) -> str:
    out: List[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char != "\\":
            out.append(char)
            index += 1
            continue
        if index + 1 >= len(text):
            index += 1
            continue
        marker = text[index + 1]
        if marker == "u":
            digits = text[index + 2:index + 6]
            if len(digits) != 4:
                raise ConfigParseError("Truncated \\u escape", path=path, line_number=line_number)
            try:
                out.append(chr(int(digits, 16)))
            except ValueError:
                raise ConfigParseError(f"Malformed \\u escape '\\u{digits}'", path=path, line_number=line_number)
            index += 6
            continue
        out.append(_UNESCAPES.get(marker, marker))
        index += 2
    return "".join(out)


def _split_key_value(line: str, path: str, line_number: int) -> Tuple[str, str]:
    index = 0
    while index < len(line):
        char = line[index]
        if char == "\\":
            index += 2
            continue
        if char in _SEPARATORS or char in _WHITESPACE:
            break
        index += 1

    key = line[:index]
    rest = line[index:]
    if not rest:
        raise ConfigParseError(f"Missing separator after key '{key}'", path=path, line_number=line_number)

    rest = rest.lstrip(_WHITESPACE)
    if rest and rest[0] in _SEPARATORS:
        rest = rest[1:].lstrip(_WHITESPACE)
    return _unescape(key, path, line_number), _unescape(rest, path, line_number)


def parse_properties(content: str, path: str = "<memory>") -> Dict[str, str]:
    """Parse properties text. Later assignments of the same key win."""
    properties: Dict[str, str] = {}
    for line_number, line in _logical_lines(content):
        key, value = _split_key_value(line, path, line_number)
        if not key:
            raise ConfigParseError("Empty property key", path=path, line_number=line_number)
        properties[key] = value
    return properties


def render_properties(properties: List[Tuple[str, str]], comment: Optional[str] = None) -> str:
    lines: List[str] = []
    if comment:
        lines.append(f"#{comment}")
    for key, value in properties:
        lines.append(f"{escape_property(key, is_key=True)}={escape_property(value)}")
    return "\n".join(lines) + "\n"


def _join_paths(paths) -> str:
    return PATH_LIST_DELIMITER.join(str(p) for p in paths)


class ConfigChannel:
    """
    Hands a DeploymentDescriptor across the process boundary as a flat
    properties file. The parent writes it once before spawning; the child
    reads it once at startup.
    """

    def __init__(self, formatter: Optional[OutputFormatter] = None):
        self.formatter = formatter or OutputFormatter()

    def encode(self, descriptor: DeploymentDescriptor) -> List[Tuple[str, str]]:
        """Ordered key/value pairs for the fields that are set."""
        entries: List[Tuple[str, str]] = []
        if descriptor.descriptor_path is not None:
            entries.append((DESCRIPTOR_KEY, str(descriptor.descriptor_path)))
        entries.append((CONTEXT_PATH_KEY, descriptor.context_path))
        if descriptor.temp_directory_path is not None:
            entries.append((TEMP_DIR_KEY, str(descriptor.temp_directory_path)))
        if descriptor.base_directory_path is not None:
            entries.append((BASE_DIR_KEY, str(descriptor.base_directory_path)))
        if descriptor.overlay_paths:
            entries.append((OVERLAYS_KEY, _join_paths(descriptor.overlay_paths)))
        if descriptor.classes_directory_paths:
            entries.append((CLASSES_DIRS_KEY, _join_paths(descriptor.classes_directory_paths)))
        if descriptor.library_archive_paths:
            entries.append((LIBRARY_JARS_KEY, _join_paths(descriptor.library_archive_paths)))
        return entries

    def decode(self, properties: Dict[str, str], path: str = "<memory>") -> DeploymentDescriptor:
        """Build a descriptor from parsed properties; absent keys stay unset."""
        fields: Dict[str, object] = {}

        value = properties.get(DESCRIPTOR_KEY, "").strip()
        if value:
            fields["descriptor_path"] = Path(value)

        value = properties.get(CONTEXT_PATH_KEY, "").strip()
        if value:
            fields["context_path"] = value

        value = properties.get(TEMP_DIR_KEY, "").strip()
        if value:
            fields["temp_directory_path"] = Path(value)

        value = properties.get(BASE_DIR_KEY, "").strip()
        if value:
            fields["base_directory_path"] = Path(value)

        overlays = split_path_list(properties.get(OVERLAYS_KEY))
        if overlays:
            fields["overlay_paths"] = [Path(p) for p in overlays]

        classes = split_path_list(properties.get(CLASSES_DIRS_KEY))
        test_classes = properties.get(TEST_CLASSES_DIR_KEY, "").strip()
        if test_classes and test_classes not in classes:
            # test classes shadow main classes
            classes.insert(0, test_classes)
        if classes:
            fields["classes_directory_paths"] = [Path(p) for p in classes]

        jars = split_path_list(properties.get(LIBRARY_JARS_KEY))
        if jars:
            fields["library_archive_paths"] = [Path(p) for p in jars]

        try:
            return DeploymentDescriptor(**fields)
        except ValidationError as exc:
            raise ConfigParseError(f"Invalid deployment description: {exc}", path=path) from exc

    def serialize(self, descriptor: DeploymentDescriptor, destination: Path) -> Path:
        """Write the descriptor to `destination`, replacing any previous file."""
        content = render_properties(self.encode(descriptor), comment=HEADER_COMMENT)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ConfigIOError(f"Unable to write deployment description: {exc}", path=str(destination)) from exc

        self.formatter.log(f"Wrote deployment description to {destination}", severity="debug")
        return destination

    def deserialize(self, source: Path) -> DeploymentDescriptor:
        """Read a descriptor previously written by `serialize`."""
        try:
            raw = source.read_bytes()
        except OSError as exc:
            raise ConfigIOError(f"Unable to read deployment description: {exc}", path=str(source)) from exc

        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ConfigParseError(f"Deployment description is not valid UTF-8: {exc}", path=str(source)) from exc

        properties = parse_properties(content, path=str(source))
        descriptor = self.decode(properties, path=str(source))
        self.formatter.log(f"Read deployment description from {source}", severity="debug")
        return descriptor
