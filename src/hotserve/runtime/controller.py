from __future__ import annotations

import signal
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, List, Optional, TextIO

from hotserve.build.builder import ServerBuilder
from hotserve.cli.formatter import OutputFormatter
from hotserve.core.hot_reload import HotReloadConfig, SharedHotReloadConfig
from hotserve.core.models import ServerPaths, SessionSettings
from hotserve.runtime.commands import (
    Bootstrap,
    Command,
    CommandQueue,
    ProcessExited,
    ProcessOutput,
    Rebuild,
    SendCommand,
    SessionItem,
    Start,
    Stop,
    WaitUntilExit,
)
from hotserve.runtime.contracts import SessionState, derive_session_state
from hotserve.runtime.polling_watcher import DebouncedWatcher
from hotserve.runtime.supervisor import ProcessSupervisor, ServerProcess
from hotserve.runtime.watchers import create_session_watchers
from hotserve.utils.diagnostics import HotserveError


@dataclass
class Session:
    """Process state owned by the controller thread."""

    child: Optional[ServerProcess] = None
    artifact_name: Optional[str] = None
    is_stopping: bool = False

    @property
    def state(self) -> SessionState:
        return derive_session_state(self.child is not None, self.is_stopping)


class DevSession:
    """Single-consumer controller of a hot-reload development session.

    Watchers, the operator input reader and per-process output readers all feed
    one bounded CommandQueue; only the thread running `run()` touches
    `self.session`. Interrupts are a flag checked every tick: outside of a
    WaitUntilExit they end the session, inside one they only force the kill.
    """

    def __init__(
        self,
        paths: ServerPaths,
        builder: ServerBuilder,
        supervisor: ProcessSupervisor,
        settings: Optional[SessionSettings] = None,
        commands: Optional[CommandQueue] = None,
        operator_input: Optional[TextIO] = None,
        tick_seconds: float = 0.1,
    ) -> None:
        self.paths = paths
        self.builder = builder
        self.supervisor = supervisor
        self.settings = settings or SessionSettings()
        self.commands = commands or CommandQueue(maxsize=self.settings.queue_size)
        self.operator_input = operator_input
        self.tick_seconds = tick_seconds

        self.session = Session()
        self.watchers: List[DebouncedWatcher] = []
        self._interrupt = threading.Event()
        self._deferred: Deque[Command] = deque()
        self._previous_sigint: Any = None
        self._sigint_installed = False
        self._quiet_since_exit = False

    @classmethod
    def for_project(
        cls,
        paths: ServerPaths,
        settings: Optional[SessionSettings] = None,
        operator_input: Optional[TextIO] = None,
    ) -> DevSession:
        """Wire the local builder and supervisor for a server project root."""
        builder = ServerBuilder(paths)
        supervisor = ProcessSupervisor(paths.output_dir, builder.startup_command)
        return cls(paths, builder, supervisor, settings=settings, operator_input=operator_input)

    @property
    def state(self) -> SessionState:
        return self.session.state

    def start(self, config: HotReloadConfig) -> None:
        """Start watchers, queue the initial build and launch, then run until interrupted."""
        shared_config = SharedHotReloadConfig(config)
        self.watchers = create_session_watchers(self.paths, shared_config, self.commands, self.settings)

        try:
            for watcher in self.watchers:
                watcher.start()

            self.commands.put(Rebuild())
            self.commands.put(Start())
            self.run()
        finally:
            for watcher in self.watchers:
                watcher.stop()

    def interrupt(self) -> None:
        """Same as the operator pressing ^C."""
        self._interrupt.set()

    def run(self) -> None:
        """Event loop: commands, process output, operator input and interrupts."""
        self._install_interrupt_handler()
        self._start_operator_reader()
        try:
            while True:
                if self._interrupt.is_set():
                    self._interrupt.clear()
                    OutputFormatter.log("Stopping development session...", severity="info")
                    break

                item = self._next_item()
                if item is not None:
                    self._dispatch(item)
                else:
                    self._check_child_exit()
        finally:
            self._kill_lingering_child()
            self._restore_interrupt_handler()

    def handle_command(self, command: Command) -> None:
        if isinstance(command, Start):
            self._start()
        elif isinstance(command, Stop):
            self._stop()
        elif isinstance(command, SendCommand):
            self._send(command.text)
        elif isinstance(command, WaitUntilExit):
            self._wait_until_exit()
        elif isinstance(command, Rebuild):
            self._rebuild()
        elif isinstance(command, Bootstrap):
            self._bootstrap(command)
        else:
            raise TypeError(f"Unknown command: {command!r}")

    def _next_item(self) -> Optional[SessionItem]:
        if self._deferred:
            return self._deferred.popleft()
        return self.commands.get(timeout=self.tick_seconds)

    def _dispatch(self, item: SessionItem) -> None:
        if isinstance(item, ProcessOutput):
            if self._is_current(item.generation):
                OutputFormatter.print_process_line(item.line)
            return

        if isinstance(item, ProcessExited):
            if self._is_current(item.generation):
                self._on_child_exited()
            return

        try:
            self.handle_command(item)
        except (HotserveError, OSError) as exc:
            OutputFormatter.log(f"{type(item).__name__} failed: {exc}", severity="error")

    def _check_child_exit(self) -> None:
        """Clear the handle once the child is dead and a further tick brought no output."""
        child = self.session.child
        if child is None or child.is_alive():
            self._quiet_since_exit = False
        elif self._quiet_since_exit:
            self._on_child_exited()
        else:
            self._quiet_since_exit = True

    def _is_current(self, generation: int) -> bool:
        child = self.session.child
        return child is not None and child.generation == generation

    def _start(self) -> None:
        if self.session.child is not None:
            OutputFormatter.log("Server process is already running.", severity="info")
            return

        OutputFormatter.log("Starting server process...", severity="info")
        child = self.supervisor.spawn(self.session.artifact_name)
        self.session.child = child

        reader = threading.Thread(
            target=self._pump_output,
            args=(child,),
            name=f"hotserve-output-{child.generation}",
            daemon=True,
        )
        reader.start()
        OutputFormatter.log(f"Server process started (pid {child.pid}).", severity="success")

    def _stop(self) -> None:
        OutputFormatter.log("Killing server process...", severity="info")
        child = self.session.child
        if child is not None:
            child.terminate()
        self.session.child = None

    def _send(self, text: str) -> None:
        OutputFormatter.log(f"Sending command: {text.strip()!r}", severity="info")
        child = self.session.child
        if child is not None:
            child.write(text)

    def _wait_until_exit(self) -> None:
        OutputFormatter.log("Waiting for server process to exit...", severity="info")
        child = self.session.child
        if child is None:
            OutputFormatter.log("No server process is running.", severity="info")
            return

        self.session.is_stopping = True
        try:
            if self._await_exit(child):
                child.terminate()
        finally:
            self.session.is_stopping = False
            self.session.child = None

        OutputFormatter.log(f"Server process ended (exit code {child.returncode}).", severity="info")

    def _await_exit(self, child: ServerProcess) -> bool:
        """Drain output until the child exits; True means it must be killed."""
        deadline = time.monotonic() + self.settings.stop_timeout_seconds
        quiet_since_exit = False
        while True:
            if self._interrupt.is_set():
                self._interrupt.clear()
                OutputFormatter.log("^C received, killing...", severity="warning")
                return True

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                OutputFormatter.log("Timeout reached, killing...", severity="warning")
                return True

            item = self.commands.get(timeout=min(remaining, self.tick_seconds))
            if item is None:
                # A forked helper can keep stdout open after the server itself has exited.
                if child.is_alive():
                    quiet_since_exit = False
                elif quiet_since_exit:
                    return False
                else:
                    quiet_since_exit = True
                continue

            if isinstance(item, ProcessOutput):
                if item.generation == child.generation:
                    OutputFormatter.print_process_line(item.line)
            elif isinstance(item, ProcessExited):
                if item.generation == child.generation:
                    return False
            else:
                self._deferred.append(item)

    def _rebuild(self) -> None:
        OutputFormatter.log("Building...", severity="info")
        with OutputFormatter.status("Building server..."):
            artifact_name = self.builder.build_all()
        self.session.artifact_name = artifact_name

    def _bootstrap(self, command: Bootstrap) -> None:
        relative = command.path.as_posix()
        OutputFormatter.log(f"Bootstrapping: {relative}", severity="info")
        try:
            self.builder.bootstrap_file(command.path)
        except HotserveError as exc:
            OutputFormatter.log(f"Error while bootstrapping {relative}: {exc}", severity="warning")

    def _on_child_exited(self) -> None:
        child = self.session.child
        self.session.child = None
        self._quiet_since_exit = False
        if child is not None:
            OutputFormatter.log(f"Server process exited (exit code {child.returncode}).", severity="warning")

    def _pump_output(self, child: ServerProcess) -> None:
        for line in child.read_lines():
            self.commands.put(ProcessOutput(generation=child.generation, line=line))
        child.wait()
        self.commands.put(ProcessExited(generation=child.generation))

    def _read_operator_input(self, stream: TextIO) -> None:
        try:
            for line in stream:
                self.commands.put(SendCommand(f"{line.strip()}\n"))
        except (OSError, ValueError):
            return

    def _start_operator_reader(self) -> None:
        if self.operator_input is None:
            return

        reader = threading.Thread(
            target=self._read_operator_input,
            args=(self.operator_input,),
            name="hotserve-operator-input",
            daemon=True,
        )
        reader.start()

    def _kill_lingering_child(self) -> None:
        child = self.session.child
        if child is None:
            return

        OutputFormatter.log("Killing lingering server process...", severity="warning")
        child.terminate()
        self.session.child = None

    def _install_interrupt_handler(self) -> None:
        # signal.signal only works on the main thread; elsewhere interrupt() is the only source.
        if threading.current_thread() is not threading.main_thread():
            return

        self._previous_sigint = signal.getsignal(signal.SIGINT)
        signal.signal(signal.SIGINT, lambda signum, frame: self._interrupt.set())
        self._sigint_installed = True

    def _restore_interrupt_handler(self) -> None:
        if not self._sigint_installed:
            return

        previous = self._previous_sigint if self._previous_sigint is not None else signal.default_int_handler
        signal.signal(signal.SIGINT, previous)
        self._sigint_installed = False
