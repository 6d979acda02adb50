from __future__ import annotations

import os
import subprocess
import threading
from pathlib import Path
from typing import Callable, IO, List, Optional, Sequence

from forkrun.core.context import ForkrunContext
from forkrun.core.models import ArtifactType, DeploymentDescriptor
from forkrun.handoff.arguments import StarterArguments
from forkrun.handoff.channel import ConfigChannel
from forkrun.launcher.artifacts import (
    ArtifactSource,
    select_extra_entries,
    select_provided_archives,
)
from forkrun.launcher.classpath import join_path_list, resolve_interpreter
from forkrun.utils.diagnostics import ProcessLaunchError

CLASSPATH_ENV_VAR = "PYTHONPATH"
TERMINATE_GRACE_SECONDS = 5.0
WAIT_POLL_SECONDS = 0.2
PUMP_JOIN_SECONDS = 2.0


class CancellationToken:
    """
    Thread-safe cancellation signal. Callbacks registered before or after
    `cancel()` run exactly once.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


def terminate_process(process: Optional[subprocess.Popen]) -> None:
    """Ask a running child to exit without waiting for it."""
    if process is None or process.returncode is not None:
        return
    try:
        process.terminate()
    except OSError:
        pass


def destroy_process(process: Optional[subprocess.Popen]) -> None:
    """Terminate a child that is still running, killing it if it lingers."""
    if process is None or process.poll() is not None:
        return
    try:
        process.terminate()
        process.wait(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()
    except OSError:
        pass


class ChildProcessGuard:
    """
    Scoped ownership of one child process: on leaving the block the child
    is destroyed if it is still alive, whatever the exit path.

    Cancelling the token only signals the child and never waits on it: the
    token may be cancelled by a signal handler that interrupted `wait()`
    on the same process.
    """

    def __init__(self, token: CancellationToken):
        self.token = token
        self.process: Optional[subprocess.Popen] = None

    def attach(self, process: subprocess.Popen) -> subprocess.Popen:
        self.process = process
        self.token.register(self.interrupt)
        return process

    def interrupt(self) -> None:
        terminate_process(self.process)

    def destroy(self) -> None:
        destroy_process(self.process)

    def __enter__(self) -> "ChildProcessGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.token.unregister(self.interrupt)
        self.destroy()


class ConsoleStreamer(threading.Thread):
    """Copies one child stream to the console line by line, tagged with its name."""

    def __init__(self, mode: str, stream: IO[str], emit: Callable[[str, str], None], on_error: Callable[[str], None]):
        super().__init__(name=f"ConsoleStreamer/{mode}", daemon=True)
        self.mode = mode
        self.stream = stream
        self.emit = emit
        self.on_error = on_error

    def run(self) -> None:
        try:
            for line in self.stream:
                self.emit(self.mode, line.rstrip("\r\n"))
        except (OSError, ValueError) as exc:
            self.on_error(f"{self.mode} pump stopped: {exc}")
        finally:
            try:
                self.stream.close()
            except OSError:
                pass


class ProcessOrchestrator:
    """
    Launches the child process for a deployment and waits for it.

    `launch` returns the child's exit code; only failures of the launcher
    itself (spawn failure, interrupted or cancelled wait) raise.
    """

    def __init__(
        self,
        context: ForkrunContext,
        artifact_source: ArtifactSource,
        token: Optional[CancellationToken] = None,
        channel: Optional[ConfigChannel] = None,
    ):
        self.context = context
        self.artifact_source = artifact_source
        self.token = token or CancellationToken()
        self.channel = channel or ConfigChannel(formatter=context.formatter)
        self.formatter = context.formatter

    @property
    def props_path(self) -> Path:
        return self.context.target_dir / self.context.fork.props_file

    def interpreter(self) -> str:
        fork = self.context.fork
        if fork.interpreter:
            return fork.interpreter
        runtime_home = self.context.resolve_path(fork.runtime_home) if fork.runtime_home else None
        return resolve_interpreter(runtime_home)

    def classpath(self) -> str:
        """
        Plugin archives, then the launcher's own entries, then (opt-in)
        provided-scope project archives. Order is preserved end to end.
        """
        plugin_artifacts = self.artifact_source.plugin_artifacts()
        entries: List[Path] = [entry.path for entry in plugin_artifacts if entry.type == ArtifactType.ARCHIVE]

        for extra in select_extra_entries(plugin_artifacts):
            if extra not in entries:
                entries.append(extra)

        if self.context.fork.use_provided:
            self.formatter.log(
                "Including provided-scope dependencies on the child path; duplicate modules may shadow each other.",
                severity="warning",
            )
            provided = select_provided_archives(self.artifact_source.project_artifacts(), plugin_artifacts)
            for archive in provided:
                self.formatter.log(f"Adding provided artifact: {archive}", severity="debug")
            entries.extend(provided)

        return join_path_list(entries)

    def starter_arguments(self, props_file: Path) -> StarterArguments:
        fork = self.context.fork
        return StarterArguments(
            stop_port=fork.stop_port,
            stop_key=fork.stop_key,
            jetty_xml=[self.context.resolve_path(name) for name in fork.jetty_xml],
            context_xml=self.context.resolve_path(fork.context_xml) if fork.context_xml else None,
            props=props_file,
        )

    def build_command(self, props_file: Path, extra_args: Optional[Sequence[str]] = None) -> List[str]:
        command = [self.interpreter(), "-m", self.context.fork.entry_module]
        command.extend(self.starter_arguments(props_file).to_argv())
        command.extend(self.context.fork.extra_args)
        if extra_args:
            command.extend(extra_args)
        return command

    def build_environment(self, classpath: str) -> dict:
        env = os.environ.copy()
        if classpath:
            env[CLASSPATH_ENV_VAR] = classpath
        return env

    def launch(self, descriptor: DeploymentDescriptor, extra_args: Optional[Sequence[str]] = None) -> int:
        """Serialize the descriptor, spawn the child, pump its output and wait."""
        if self.token.cancelled:
            raise ProcessLaunchError("Launch cancelled before the child process was started.")

        props_file = self.channel.serialize(descriptor, self.props_path)
        classpath = self.classpath()
        command = self.build_command(props_file, extra_args)
        self.formatter.log(f"Child command: {command}", severity="debug")
        self.formatter.log(f"Child path: {classpath or '<empty>'}", severity="debug")

        with ChildProcessGuard(self.token) as guard:
            try:
                process = subprocess.Popen(
                    command,
                    cwd=str(self.context.root_dir),
                    env=self.build_environment(classpath),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                )
            except OSError as exc:
                raise ProcessLaunchError(
                    f"Failed to create child process with '{command[0]}': {exc}",
                    command=command,
                ) from exc

            guard.attach(process)
            pumps = [
                self._start_pump("STDOUT", process.stdout),
                self._start_pump("STDERR", process.stderr),
            ]

            try:
                exit_code = self._wait_for(process, guard)
            except KeyboardInterrupt as exc:
                guard.destroy()
                raise ProcessLaunchError("Interrupted while waiting for the child process.", command=command) from exc

            for pump in pumps:
                pump.join(timeout=PUMP_JOIN_SECONDS)

            if self.token.cancelled:
                raise ProcessLaunchError("Child process was cancelled before it finished.", command=command)

        self.formatter.log(f"Forked execution exit: {exit_code}", severity="info")
        return exit_code

    def _wait_for(self, process: subprocess.Popen, guard: ChildProcessGuard) -> int:
        """Wait in short slices; once cancelled, destroy the child instead."""
        while True:
            try:
                return process.wait(timeout=WAIT_POLL_SECONDS)
            except subprocess.TimeoutExpired:
                if self.token.cancelled:
                    guard.destroy()
                    return process.wait()

    def _start_pump(self, mode: str, stream: IO[str]) -> ConsoleStreamer:
        pump = ConsoleStreamer(
            mode,
            stream,
            emit=self.formatter.print_stream_line,
            on_error=lambda message: self.formatter.log(message, severity="debug"),
        )
        pump.start()
        return pump
