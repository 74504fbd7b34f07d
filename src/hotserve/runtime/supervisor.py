from __future__ import annotations

import os
import signal
import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from hotserve.core.models import PlatformFamily
from hotserve.utils.diagnostics import ConfigurationError

StartupCommand = Callable[[str, PlatformFamily], List[str]]


def current_platform() -> PlatformFamily:
    """Platform family used to format startup arguments."""
    return "windows" if os.name == "nt" else "linux"


class ServerProcess:
    """Handle to one spawned server process.

    ``generation`` increases with every spawn of the same supervisor so output
    events of a previous process can be told apart from the current one.
    """

    def __init__(self, process: subprocess.Popen, generation: int) -> None:
        self._process = process
        self.generation = generation
        self._group_killed = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll()

    def is_alive(self) -> bool:
        return self._process.poll() is None

    def write(self, text: str) -> None:
        """Best-effort write to stdin; the process may exit at any moment, so failures are ignored."""
        stdin = self._process.stdin
        if stdin is None or not self.is_alive():
            return

        try:
            stdin.write(text)
            stdin.flush()
        except (BrokenPipeError, OSError, ValueError):
            pass

    def read_lines(self) -> Iterator[str]:
        """Yield stdout lines until the stream closes."""
        stdout = self._process.stdout
        if stdout is None:
            return

        try:
            for line in stdout:
                yield line.rstrip("\r\n")
        except (OSError, ValueError):
            return

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for exit; returns the exit code, or None on timeout."""
        try:
            return self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def terminate(self) -> None:
        """Kill the process and its process group immediately. Safe to call on an exited process."""
        if os.name == "nt":
            if self._process.poll() is None:
                try:
                    self._process.kill()
                except OSError:
                    pass
        elif not self._group_killed:
            # The server runs in its own session, so its pid is also the group id of anything it forked.
            self._group_killed = True
            try:
                os.killpg(self._process.pid, signal.SIGKILL)
            except OSError:
                pass
        self._process.wait()

        stdin = self._process.stdin
        if stdin is not None:
            try:
                stdin.close()
            except OSError:
                pass


class ProcessSupervisor:
    """Spawns the managed server with platform-specific startup arguments."""

    def __init__(
        self,
        working_dir: Path,
        startup_command: StartupCommand,
        platform: Optional[PlatformFamily] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        self.working_dir = working_dir
        self.startup_command = startup_command
        self.platform: PlatformFamily = platform or current_platform()
        self.env = env
        self._generation = 0

    def spawn(self, artifact_name: Optional[str]) -> ServerProcess:
        """Start the server for a built artifact. stderr is inherited, stdin/stdout are piped."""
        if not artifact_name:
            raise ConfigurationError("No server artifact has been built yet. Rebuild before starting.")

        argv = self.startup_command(artifact_name, self.platform)
        if not argv:
            raise ConfigurationError("Startup command is empty.")

        spawn_env = None
        if self.env:
            spawn_env = os.environ.copy()
            spawn_env.update(self.env)

        try:
            process = subprocess.Popen(
                argv,
                cwd=str(self.working_dir),
                env=spawn_env,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=None,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                # Own session: the operator's ^C reaches the session controller, not the server.
                start_new_session=True,
            )
        except OSError as exc:
            raise ConfigurationError(f"Unable to launch '{argv[0]}': {exc}", path=str(self.working_dir)) from exc

        self._generation += 1
        return ServerProcess(process, generation=self._generation)
