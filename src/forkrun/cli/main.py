import typer
import signal
from pathlib import Path
from typing import Any, Dict, List, Optional

from forkrun.cli.formatter import OutputFormatter
from forkrun.config.loader import find_config_file, load_config
from forkrun.core.context import ForkrunContext
from forkrun.launcher.artifacts import ManifestArtifactSource
from forkrun.launcher.descriptor import build_deployment_descriptor, find_missing_paths
from forkrun.launcher.orchestrator import CancellationToken, ProcessOrchestrator
from forkrun.runtime.stop_monitor import DEFAULT_HOST, send_stop_command
from forkrun.utils.diagnostics import ConfigHandoffError, ForkrunError, ProcessLaunchError

app = typer.Typer(name="forkrun", help="Run a web application in a forked Python process", rich_markup_mode=None)

_CANCEL_SIGNALS = ("SIGTERM", "SIGHUP")


def _read_option_value(tokens: list[str], index: int, option_name: str) -> tuple[str, int]:
    if index + 1 >= len(tokens):
        raise typer.BadParameter(f"Option {option_name} requires a value.")
    return tokens[index + 1], index + 2


def _parse_port(value: str, option_name: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise typer.BadParameter(f"Option {option_name} must be an integer.")
    if port < 0 or port > 65535:
        raise typer.BadParameter(f"Option {option_name} must be between 0 and 65535.")
    return port


def _load_context(root_dir: Path, fork_overrides: Dict[str, Any]) -> ForkrunContext:
    config = load_config(find_config_file(root_dir))
    fork_section = dict(config.get("fork") or {})
    fork_section.update(fork_overrides)
    config["fork"] = fork_section
    return ForkrunContext(config_dict=config, root_dir=root_dir)


class _CancelOnSignals:
    """Route termination signals to a cancellation token while active."""

    def __init__(self, token: CancellationToken):
        self.token = token
        self._previous: Dict[int, Any] = {}

    def _handle(self, signum, frame) -> None:
        self.token.cancel()

    def __enter__(self) -> "_CancelOnSignals":
        for name in _CANCEL_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            try:
                self._previous[signum] = signal.signal(signum, self._handle)
            except ValueError:
                # not the main thread
                pass
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    ctx: typer.Context,
):
    """Hand the web application to a forked child process and wait for it."""
    root_dir = Path(".")
    overrides: Dict[str, Any] = {}
    jetty_xml: List[str] = []

    tokens = list(ctx.args)
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in ("--root", "-r"):
            root_value, index = _read_option_value(tokens, index, token)
            root_dir = Path(root_value)
            continue
        if token.startswith("--root="):
            root_dir = Path(token.split("=", 1)[1])
            index += 1
            continue
        if token == "--stop-port":
            port_value, index = _read_option_value(tokens, index, token)
            overrides["stop_port"] = _parse_port(port_value, token)
            continue
        if token.startswith("--stop-port="):
            overrides["stop_port"] = _parse_port(token.split("=", 1)[1], "--stop-port")
            index += 1
            continue
        if token == "--stop-key":
            overrides["stop_key"], index = _read_option_value(tokens, index, token)
            continue
        if token.startswith("--stop-key="):
            overrides["stop_key"] = token.split("=", 1)[1]
            index += 1
            continue
        if token == "--jetty-xml":
            jetty_value, index = _read_option_value(tokens, index, token)
            jetty_xml.append(jetty_value)
            continue
        if token.startswith("--jetty-xml="):
            jetty_xml.append(token.split("=", 1)[1])
            index += 1
            continue
        if token == "--context-xml":
            overrides["context_xml"], index = _read_option_value(tokens, index, token)
            continue
        if token.startswith("--context-xml="):
            overrides["context_xml"] = token.split("=", 1)[1]
            index += 1
            continue
        if token == "--use-provided":
            overrides["use_provided"] = True
            index += 1
            continue
        if token == "--use-test-classpath":
            overrides["use_test_classpath"] = True
            index += 1
            continue
        if token.startswith("-"):
            raise typer.BadParameter(f"Unknown option: {token}")
        raise typer.BadParameter(f"Unexpected argument: {token}")

    if jetty_xml:
        overrides["jetty_xml"] = ",".join(jetty_xml)

    try:
        context = _load_context(root_dir, overrides)
    except ValueError as exc:
        OutputFormatter().log(f"Invalid configuration: {exc}", severity="error")
        raise typer.Exit(code=1)

    formatter = context.formatter
    if context.fork.skip:
        formatter.log("Skipping forked run: fork.skip is set.", severity="info")
        raise typer.Exit(code=0)

    source = ManifestArtifactSource(context.artifacts, context.root_dir)
    token = CancellationToken()
    orchestrator = ProcessOrchestrator(context, source, token=token)

    try:
        descriptor = build_deployment_descriptor(context, source)
    except ConfigHandoffError as exc:
        formatter.log(f"Unable to hand off the deployment description: {exc}", severity="error")
        raise typer.Exit(code=1)
    except ValueError as exc:
        formatter.log(f"Invalid deployment description: {exc}", severity="error")
        raise typer.Exit(code=1)

    try:
        with _CancelOnSignals(token):
            exit_code = orchestrator.launch(descriptor)
    except ConfigHandoffError as exc:
        formatter.log(f"Unable to hand off the deployment description: {exc}", severity="error")
        raise typer.Exit(code=1)
    except ProcessLaunchError as exc:
        formatter.log(f"Forked run failed: {exc}", severity="error")
        raise typer.Exit(code=1)

    if exit_code != 0:
        formatter.log(f"Forked process exited with code {exit_code}", severity="error")
    raise typer.Exit(code=exit_code)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def stop(
    ctx: typer.Context,
):
    """Ask a running forked child to stop."""
    root_dir = Path(".")
    host = DEFAULT_HOST
    port: Optional[int] = None
    key: Optional[str] = None

    tokens = list(ctx.args)
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in ("--root", "-r"):
            root_value, index = _read_option_value(tokens, index, token)
            root_dir = Path(root_value)
            continue
        if token.startswith("--root="):
            root_dir = Path(token.split("=", 1)[1])
            index += 1
            continue
        if token == "--host":
            host, index = _read_option_value(tokens, index, token)
            continue
        if token.startswith("--host="):
            host = token.split("=", 1)[1]
            index += 1
            continue
        if token == "--stop-port":
            port_value, index = _read_option_value(tokens, index, token)
            port = _parse_port(port_value, token)
            continue
        if token.startswith("--stop-port="):
            port = _parse_port(token.split("=", 1)[1], "--stop-port")
            index += 1
            continue
        if token == "--stop-key":
            key, index = _read_option_value(tokens, index, token)
            continue
        if token.startswith("--stop-key="):
            key = token.split("=", 1)[1]
            index += 1
            continue
        if token.startswith("-"):
            raise typer.BadParameter(f"Unknown option: {token}")
        raise typer.BadParameter(f"Unexpected argument: {token}")

    formatter = OutputFormatter()
    if port is None or key is None:
        try:
            context = _load_context(root_dir, {})
        except ValueError as exc:
            formatter.log(f"Invalid configuration: {exc}", severity="error")
            raise typer.Exit(code=1)
        port = context.fork.stop_port if port is None else port
        key = context.fork.stop_key if key is None else key

    if not port or key is None:
        formatter.log("A stop port and a stop key are required (options or forkrun.yaml).", severity="error")
        raise typer.Exit(code=1)

    try:
        send_stop_command(host, port, key)
    except OSError as exc:
        formatter.log(f"Unable to reach stop monitor on {host}:{port}: {exc}", severity="error")
        raise typer.Exit(code=1)

    formatter.log(f"Stop key sent to {host}:{port}", severity="success")


def _render_descriptor_text(payload: dict) -> str:
    lines = ["Deployment description", "======================"]
    for key, value in payload.items():
        if isinstance(value, list):
            lines.append(f"{key}:")
            if not value:
                lines.append("  (none)")
            for item in value:
                lines.append(f"  - {item}")
        else:
            lines.append(f"{key}: {value if value is not None else '(unset)'}")
    return "\n".join(lines)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def describe(
    ctx: typer.Context,
):
    """Show the deployment description `run` would hand to the child."""
    root_dir = Path(".")
    output_format = "text"
    overrides: Dict[str, Any] = {}

    tokens = list(ctx.args)
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in ("--root", "-r"):
            root_value, index = _read_option_value(tokens, index, token)
            root_dir = Path(root_value)
            continue
        if token.startswith("--root="):
            root_dir = Path(token.split("=", 1)[1])
            index += 1
            continue
        if token == "--format":
            output_format, index = _read_option_value(tokens, index, token)
            continue
        if token.startswith("--format="):
            output_format = token.split("=", 1)[1]
            index += 1
            continue
        if token == "--use-test-classpath":
            overrides["use_test_classpath"] = True
            index += 1
            continue
        if token.startswith("-"):
            raise typer.BadParameter(f"Unknown option: {token}")
        raise typer.BadParameter(f"Unexpected argument: {token}")

    output_format = output_format.lower()
    if output_format not in {"text", "json"}:
        raise typer.BadParameter("Option --format must be one of: text, json")

    try:
        context = _load_context(root_dir, overrides)
        source = ManifestArtifactSource(context.artifacts, context.root_dir)
        descriptor = build_deployment_descriptor(context, source)
    except (ValueError, ForkrunError) as exc:
        OutputFormatter().log(f"Unable to build deployment description: {exc}", severity="error")
        raise typer.Exit(code=1)

    payload = descriptor.model_dump(mode="json")
    if output_format == "json":
        OutputFormatter.print_data(payload)
    else:
        typer.echo(_render_descriptor_text(payload))

    context.formatter.print_diagnostics(find_missing_paths(descriptor))


if __name__ == "__main__":
    app()
