from __future__ import annotations

import importlib
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import yaml

from forkrun.cli.formatter import OutputFormatter
from forkrun.config.loader import interpolate_env_vars
from forkrun.runtime.webapp import DeployedApplication
from forkrun.utils.diagnostics import ConfigurationDocumentError

REF_KEY = "ref"


class DeploymentServer:
    """
    Lifecycle host for deployed applications. `join()` blocks until
    `stop()` has been called from any thread.
    """

    def __init__(self, formatter: Optional[OutputFormatter] = None):
        self.formatter = formatter or OutputFormatter()
        self.applications: List[DeployedApplication] = []
        self.attributes: Dict[str, Any] = {}
        self.started = False
        self._stopped = threading.Event()

    def add_application(self, application: DeployedApplication) -> None:
        self.applications.append(application)

    def start(self) -> None:
        if self.started:
            return
        self._stopped.clear()
        for application in self.applications:
            application.start()
        self.started = True
        self.formatter.log(f"Server started with {len(self.applications)} application(s)", severity="success")

    def stop(self) -> None:
        try:
            for application in reversed(self.applications):
                try:
                    application.stop()
                except Exception as exc:
                    self.formatter.log(f"Failed to stop {application!r}: {exc}", severity="error")
        finally:
            self.started = False
            self._stopped.set()
        self.formatter.log("Server stopped", severity="info")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the server to stop; False when the timeout expired first."""
        return self._stopped.wait(timeout)

    def __repr__(self) -> str:
        return "DeploymentServer()"


def load_factory(reference: str) -> Callable[[], Any]:
    """
    Resolve a 'package.module:attribute' reference to a callable.
    """
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Factory reference must look like 'module:attribute', got '{reference}'")

    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Module '{module_name}' has no attribute '{attribute}'") from exc

    if not callable(factory):
        raise ValueError(f"Factory '{reference}' is not callable")
    return factory


def _resolve_value(value: Any, id_map: Mapping[str, Any], path: Path) -> Any:
    if isinstance(value, dict) and set(value) == {REF_KEY}:
        name = value[REF_KEY]
        if name not in id_map:
            raise ConfigurationDocumentError(f"Unknown reference '{name}' in {path}")
        return id_map[name]
    if isinstance(value, dict):
        return {key: _resolve_value(item, id_map, path) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve_value(item, id_map, path) for item in value]
    return value


def apply_configuration_document(path: Path, target: Any, id_map: Optional[Mapping[str, Any]] = None) -> Any:
    """
    Apply a YAML mapping to `target`: every key names an existing attribute.
    `{ref: Name}` values are replaced by the object registered as Name.
    """
    id_map = id_map or {}
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationDocumentError(f"Unable to read configuration document {path}: {exc}") from exc

    try:
        document = yaml.safe_load(interpolate_env_vars(content))
    except yaml.YAMLError as exc:
        raise ConfigurationDocumentError(f"Invalid YAML in configuration document {path}: {exc}") from exc

    if document is None:
        return target
    if not isinstance(document, dict):
        raise ConfigurationDocumentError(f"Configuration document {path} must be a mapping")

    for key, raw_value in document.items():
        if not isinstance(key, str) or key.startswith("_") or not hasattr(target, key):
            raise ConfigurationDocumentError(f"{type(target).__name__} has no setting '{key}' ({path})")
        value = _resolve_value(raw_value, id_map, path)
        try:
            setattr(target, key, value)
        except (AttributeError, TypeError, ValueError) as exc:
            raise ConfigurationDocumentError(f"Cannot set '{key}' from {path}: {exc}") from exc

    return target
