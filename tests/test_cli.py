import json
import socket
import sys
import zipfile
from pathlib import Path
from typer.testing import CliRunner

from forkrun.cli.main import app
from forkrun.runtime.stop_monitor import StopMonitor
from forkrun.utils.diagnostics import ProcessLaunchError

runner = CliRunner()

CHILD_SOURCE = """
import sys
print("child says hi")
sys.exit(7)
"""


def _write_config(root: Path, text: str) -> Path:
    config = root / "forkrun.yaml"
    config.write_text(text)
    return config


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FakeOrchestrator:
    instances = []

    def __init__(self, context, artifact_source, token=None, channel=None):
        self.context = context
        self.artifact_source = artifact_source
        self.token = token
        self.launched = None
        FakeOrchestrator.instances.append(self)

    def launch(self, descriptor, extra_args=None):
        self.launched = descriptor
        return 0


def test_run_help():
    result = runner.invoke(app, ["run", "--help"])
    assert result.exit_code == 0
    assert "forked child process" in result.stdout


def test_run_skip_flag_exits_cleanly(tmp_path):
    _write_config(tmp_path, "fork:\n  skip: true\n")

    result = runner.invoke(app, ["run", "--root", str(tmp_path)])

    assert result.exit_code == 0
    assert "Skipping forked run" in result.output
    assert not (tmp_path / "target").exists()


def test_run_passes_options_to_context(monkeypatch, tmp_path):
    FakeOrchestrator.instances = []
    monkeypatch.setattr("forkrun.cli.main.ProcessOrchestrator", FakeOrchestrator)
    _write_config(tmp_path, "forkrun:\n  project_name: shop\nfork:\n  stop_port: 1000\n")

    result = runner.invoke(
        app,
        [
            "run",
            f"--root={tmp_path}",
            "--stop-port", "8079",
            "--stop-key=secret",
            "--jetty-xml", "conf/a.yaml",
            "--jetty-xml=conf/b.yaml",
            "--context-xml", "conf/context.yaml",
            "--use-provided",
            "--use-test-classpath",
        ],
    )

    assert result.exit_code == 0
    orchestrator = FakeOrchestrator.instances[0]
    fork = orchestrator.context.fork
    assert fork.stop_port == 8079
    assert fork.stop_key == "secret"
    assert fork.jetty_xml == ["conf/a.yaml", "conf/b.yaml"]
    assert fork.context_xml == "conf/context.yaml"
    assert fork.use_provided is True
    assert fork.use_test_classpath is True
    assert orchestrator.launched.context_path == "/shop"


def test_run_rejects_unknown_option(tmp_path):
    result = runner.invoke(app, ["run", "--root", str(tmp_path), "--bogus"])
    assert result.exit_code == 2


def test_run_rejects_bad_port(tmp_path):
    result = runner.invoke(app, ["run", "--root", str(tmp_path), "--stop-port", "http"])
    assert result.exit_code == 2


def test_run_invalid_configuration_exits_one(tmp_path):
    _write_config(tmp_path, "webapp:\n  context_path: no-slash\n")

    result = runner.invoke(app, ["run", "--root", str(tmp_path)])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_run_whitespace_edged_context_path_exits_one(monkeypatch, tmp_path):
    FakeOrchestrator.instances = []
    monkeypatch.setattr("forkrun.cli.main.ProcessOrchestrator", FakeOrchestrator)
    _write_config(tmp_path, 'webapp:\n  context_path: "/shop "\n')

    result = runner.invoke(app, ["run", "--root", str(tmp_path)])

    assert result.exit_code == 1
    assert "Invalid deployment description" in result.output
    assert FakeOrchestrator.instances[0].launched is None


def test_run_launch_error_exits_one(monkeypatch, tmp_path):
    class FailingOrchestrator(FakeOrchestrator):
        def launch(self, descriptor, extra_args=None):
            raise ProcessLaunchError("Failed to create child process")

    monkeypatch.setattr("forkrun.cli.main.ProcessOrchestrator", FailingOrchestrator)

    result = runner.invoke(app, ["run", "--root", str(tmp_path)])

    assert result.exit_code == 1
    assert "Forked run failed" in result.output


def test_run_exits_with_child_exit_code(tmp_path, monkeypatch):
    monkeypatch.delenv("PYTHONPATH", raising=False)
    archive = tmp_path / "plugin" / "child.zip"
    archive.parent.mkdir()
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("cli_child.py", CHILD_SOURCE)

    _write_config(
        tmp_path,
        f"""
fork:
  interpreter: "{Path(sys.executable).as_posix()}"
  entry_module: cli_child
artifacts:
  plugin:
    - path: plugin/child.zip
      name: child
""",
    )

    result = runner.invoke(app, ["run", "--root", str(tmp_path)])

    assert result.exit_code == 7
    assert "[STDOUT] child says hi" in result.output
    assert (tmp_path / "target" / "fork.props").exists()


def test_stop_sends_key_to_monitor(tmp_path):
    calls = []

    class Lifecycle:
        def start(self):
            pass

        def stop(self):
            calls.append("stopped")

    monitor = StopMonitor(0, "secret", lifecycles=[Lifecycle()])
    monitor.start()
    try:
        result = runner.invoke(app, ["stop", "--stop-port", str(monitor.port), "--stop-key", "secret"])
    finally:
        monitor.close()

    assert result.exit_code == 0
    assert calls == ["stopped"]


def test_stop_reads_port_and_key_from_config(tmp_path):
    monitor = StopMonitor(0, "from-config")
    monitor.start()
    _write_config(tmp_path, f"fork:\n  stop_port: {monitor.port}\n  stop_key: from-config\n")
    try:
        result = runner.invoke(app, ["stop", "--root", str(tmp_path)])
        assert monitor.wait(timeout=5)
    finally:
        monitor.close()

    assert result.exit_code == 0


def test_stop_requires_port_and_key(tmp_path):
    result = runner.invoke(app, ["stop", "--root", str(tmp_path)])

    assert result.exit_code == 1
    assert "stop port and a stop key are required" in result.output


def test_stop_unreachable_monitor_exits_one(tmp_path):
    port = _free_port()
    result = runner.invoke(app, ["stop", "--root", str(tmp_path), "--stop-port", str(port), "--stop-key", "k"])

    assert result.exit_code == 1
    assert "Unable to reach stop monitor" in result.output


def _describe_project(root: Path) -> None:
    (root / "webapp").mkdir()
    (root / "classes").mkdir()
    (root / "lib").mkdir()
    (root / "lib" / "util.zip").write_bytes(b"")
    _write_config(
        root,
        """
forkrun:
  project_name: shop
webapp:
  base_dir: webapp
  classes_dir: classes
artifacts:
  project:
    - path: lib/util.zip
      name: util
""",
    )


def test_describe_json(tmp_path):
    _describe_project(tmp_path)

    result = runner.invoke(app, ["describe", "--root", str(tmp_path), "--format", "json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    root = tmp_path.resolve()
    assert payload["context_path"] == "/shop"
    assert payload["base_directory_path"] == str(root / "webapp")
    assert payload["classes_directory_paths"] == [str(root / "classes")]
    assert payload["library_archive_paths"] == [str(root / "lib" / "util.zip")]
    assert payload["overlay_paths"] == []


def test_describe_text(tmp_path):
    _describe_project(tmp_path)

    result = runner.invoke(app, ["describe", "--root", str(tmp_path)])

    assert result.exit_code == 0
    assert "context_path: /shop" in result.stdout
    assert "descriptor_path: (unset)" in result.stdout


def test_describe_reports_missing_paths(tmp_path):
    _write_config(tmp_path, "webapp:\n  classes_dir: missing-classes\n")

    result = runner.invoke(app, ["describe", "--root", str(tmp_path)])

    assert result.exit_code == 0
    assert "Forkrun Diagnostics" in result.output


def test_describe_rejects_unknown_format(tmp_path):
    result = runner.invoke(app, ["describe", "--root", str(tmp_path), "--format", "xml"])
    assert result.exit_code == 2
