from typing import List, Optional
from pydantic import BaseModel

class ForkrunDiagnostic(BaseModel):
    """
    Standardized report object for non-fatal deployment issues
    (e.g. a configured path that does not exist).
    """
    file_path: str
    error_code: str
    message: str
    severity: str = "warning" # 'info', 'warning', 'error', 'critical'
    suggestion: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message} (at {self.file_path})"


class ForkrunError(Exception):
    """Base class for all forkrun errors."""


class ConfigHandoffError(ForkrunError):
    """
    Raised when the deployment description cannot be handed across the
    process boundary.
    """
    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        loc = f" ({path})" if path else ""
        super().__init__(f"{message}{loc}")


class ConfigIOError(ConfigHandoffError):
    """The handoff file could not be written or read."""


class ConfigParseError(ConfigHandoffError):
    """The handoff file was readable but its content is malformed."""

    def __init__(self, message: str, path: Optional[str] = None, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"{message} on line {line_number}"
        super().__init__(message, path=path)


class ProcessLaunchError(ForkrunError):
    """
    The launcher itself failed: the child could not be spawned, or waiting
    for it was interrupted. A child that ran and exited non-zero is not an
    error and never raises this.
    """
    def __init__(self, message: str, command: Optional[List[str]] = None):
        self.message = message
        self.command = list(command) if command else []
        super().__init__(message)


class ClassificationConfigError(ForkrunError):
    """An include pattern for jar classification is not a valid regex."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        super().__init__(f"Invalid jar include pattern '{pattern}': {reason}")


class StarterArgumentError(ForkrunError):
    """Malformed or missing command line arguments for the child process."""


class ConfigurationDocumentError(ForkrunError):
    """A configuration document could not be applied to its target object."""
