"""
Entry module of the forked child process.

    python -m forkrun.runtime.starter --props target/fork.props [--stop-port N --stop-key K]
        [--jetty-xml a.yaml,b.yaml] [--context-xml context.yaml]
"""

from __future__ import annotations

import sys
import traceback
from typing import List, Optional, Sequence

from pydantic_settings import BaseSettings, SettingsConfigDict

from forkrun.cli.formatter import OutputFormatter
from forkrun.core.models import DeploymentDescriptor
from forkrun.handoff.arguments import StarterArguments, parse_starter_arguments
from forkrun.handoff.channel import ConfigChannel
from forkrun.launcher.descriptor import find_missing_paths
from forkrun.runtime.server import apply_configuration_document, load_factory
from forkrun.runtime.stop_monitor import StopMonitor
from forkrun.runtime.webapp import DeployedApplication
from forkrun.utils.diagnostics import StarterArgumentError

DEFAULT_SERVER_FACTORY = "forkrun.runtime.server:DeploymentServer"
SERVER_ID = "Server"


class StarterSettings(BaseSettings):
    """Child-side settings, read from FORKRUN_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="FORKRUN_", extra="ignore")

    server_factory: str = DEFAULT_SERVER_FACTORY
    log_level: str = "INFO"


class Starter:
    def __init__(
        self,
        arguments: StarterArguments,
        settings: Optional[StarterSettings] = None,
        formatter: Optional[OutputFormatter] = None,
    ):
        self.arguments = arguments
        self.settings = settings or StarterSettings()
        self.formatter = formatter or OutputFormatter(log_level=self.settings.log_level)
        self.channel = ConfigChannel(formatter=self.formatter)

        self.descriptor: Optional[DeploymentDescriptor] = None
        self.server = None
        self.application: Optional[DeployedApplication] = None
        self.monitor: Optional[StopMonitor] = None

    def configure(self) -> None:
        """
        Build the server and the application:
        server documents first, then the context document, then the
        handed-off deployment description.
        """
        self.formatter.log("Configuring forked server ...", severity="debug")
        self.descriptor = self.channel.deserialize(self.arguments.props)
        for diagnostic in find_missing_paths(self.descriptor):
            self.formatter.log(str(diagnostic), severity="warning")

        server = load_factory(self.settings.server_factory)()
        if hasattr(server, "formatter"):
            server.formatter = self.formatter
        self.server = server

        id_map = {SERVER_ID: server}
        for document in self.arguments.jetty_xml:
            self.formatter.log(f"Applying server configuration {document}", severity="debug")
            apply_configuration_document(document, server, id_map)

        application = DeployedApplication(formatter=self.formatter)
        if self.arguments.context_xml is not None:
            self.formatter.log(f"Applying context configuration {self.arguments.context_xml}", severity="debug")
            apply_configuration_document(self.arguments.context_xml, application, id_map)
        application.configure(self.descriptor)
        server.add_application(application)
        self.application = application

        if self.arguments.stop_requested:
            self.monitor = StopMonitor(
                self.arguments.stop_port,
                self.arguments.stop_key,
                lifecycles=[server],
                formatter=self.formatter,
            )

    def run(self) -> None:
        if self.server is None:
            raise RuntimeError("Starter.configure() must be called before run().")

        if self.monitor is not None:
            self.monitor.start()
        try:
            self.server.start()
            self.formatter.log("Started forked server", severity="info")
            self.server.join()
        finally:
            if self.monitor is not None:
                self.monitor.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    tokens: List[str] = list(sys.argv[1:] if argv is None else argv)
    formatter = OutputFormatter()

    try:
        arguments = parse_starter_arguments(tokens)
    except StarterArgumentError as exc:
        formatter.log(str(exc), severity="error")
        return 1

    try:
        settings = StarterSettings()
        starter = Starter(arguments, settings=settings, formatter=OutputFormatter(log_level=settings.log_level))
        starter.configure()
        starter.run()
    except Exception:
        traceback.print_exc()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
