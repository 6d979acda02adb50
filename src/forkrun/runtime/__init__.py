"""Runtime of the forked child: server, deployed application and stop monitor."""

from forkrun.runtime.lifecycle import Lifecycle
from forkrun.runtime.server import DeploymentServer, apply_configuration_document, load_factory
from forkrun.runtime.stop_monitor import StopMonitor, StopMonitorState, send_stop_command
from forkrun.runtime.webapp import DeployedApplication, ScanSettings

__all__ = [
	"DeployedApplication",
	"DeploymentServer",
	"Lifecycle",
	"ScanSettings",
	"StopMonitor",
	"StopMonitorState",
	"apply_configuration_document",
	"load_factory",
	"send_stop_command",
]
