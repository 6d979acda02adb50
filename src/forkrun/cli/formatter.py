import json
import typer
from typing import Any, List, Optional
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from forkrun.utils.diagnostics import ForkrunDiagnostic

# Create a stderr console for logging
error_console = Console(stderr=True)

_SEVERITY_RANKS = {
    "debug": 10,
    "info": 20,
    "success": 20,
    "warning": 30,
    "error": 40,
    "critical": 50,
}


class OutputFormatter:
    """
    Handles output formatting for the launcher and the forked child.
    Keeps System Logs (stderr) apart from Data and pumped child output (stdout).

    An instance is the logging handle passed explicitly to the channel,
    the orchestrator and the stop monitor.
    """

    def __init__(self, console: Optional[Console] = None, log_level: str = "INFO"):
        self.console = console
        self.log_level = log_level

    def _console(self) -> Console:
        return self.console if self.console is not None else error_console

    def is_enabled(self, severity: str) -> bool:
        threshold = _SEVERITY_RANKS.get(self.log_level.lower(), 20)
        return _SEVERITY_RANKS.get(severity, 20) >= threshold

    def log(self, message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        if not self.is_enabled(severity):
            return

        style = "white"
        prefix = "[FORKRUN]"

        if severity == "debug":
            style = "dim"
        elif severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        self._console().print(f"[{style}]{prefix} {escape(message)}[/{style}]", markup=True, highlight=False)

    def print_stream_line(self, mode: str, line: str) -> None:
        """Echo one line of pumped child output, tagged with its stream."""
        typer.echo(f"[{mode}] {line}")

    def print_diagnostics(self, diagnostics: List[ForkrunDiagnostic]) -> None:
        """
        Prints a table of deployment diagnostics.
        """
        if not diagnostics:
            return

        table = Table(title="Forkrun Diagnostics", border_style="yellow", header_style="bold yellow")
        table.add_column("Severity", style="bold")
        table.add_column("Code")
        table.add_column("Message")
        table.add_column("Location")

        for diag in diagnostics:
            color = "yellow"
            if diag.severity == "error":
                color = "red"
            elif diag.severity == "critical":
                color = "bold red"
            elif diag.severity == "info":
                color = "white"

            table.add_row(
                f"[{color}]{diag.severity.upper()}[/{color}]",
                diag.error_code,
                diag.message,
                diag.file_path,
            )

        console = self._console()
        console.print(table)
        console.print() # spacing

    @staticmethod
    def print_data(data: Any) -> None:
        """
        Print a result to stdout.
        Handles Pydantic models and paths.
        """
        if isinstance(data, str):
            typer.echo(data)
            return

        def json_serializer(obj):
            if isinstance(obj, BaseModel):
                return obj.model_dump(mode='json')
            return str(obj)

        try:
            output = json.dumps(data, indent=2, default=json_serializer)
            typer.echo(output)
        except TypeError as e:
            OutputFormatter().log(f"JSON Serialization failed: {e}", severity="error")
            typer.echo(str(data))
