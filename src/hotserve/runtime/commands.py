from __future__ import annotations

import queue
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import List, Optional, Union


@dataclass(frozen=True)
class Start:
    """Spawn the server unless one is already running."""


@dataclass(frozen=True)
class Stop:
    """Kill the running server immediately."""


@dataclass(frozen=True)
class Rebuild:
    """Invoke the builder and remember the resulting artifact name."""


@dataclass(frozen=True)
class SendCommand:
    """Write text verbatim to the server's stdin."""

    text: str


@dataclass(frozen=True)
class WaitUntilExit:
    """Wait (bounded) for the server to exit after a stop command was sent."""


@dataclass(frozen=True)
class Bootstrap:
    """Re-materialize one file of the config tree, relative to config/."""

    path: PurePosixPath


Command = Union[Start, Stop, Rebuild, SendCommand, WaitUntilExit, Bootstrap]


@dataclass(frozen=True)
class ProcessOutput:
    """One line read from the stdout of the process with the given generation."""

    generation: int
    line: str


@dataclass(frozen=True)
class ProcessExited:
    """The stdout of the process with the given generation reached end-of-file."""

    generation: int


SessionItem = Union[Start, Stop, Rebuild, SendCommand, WaitUntilExit, Bootstrap, ProcessOutput, ProcessExited]


class CommandQueue:
    """Bounded queue feeding the session controller.

    Watchers, the operator input reader and the controller itself put commands;
    process readers put output events. A full queue blocks producers, which is
    the only backpressure in the session.
    """

    def __init__(self, maxsize: int = 32) -> None:
        if maxsize < 1:
            raise ValueError("CommandQueue requires a positive capacity.")
        self._queue: queue.Queue[SessionItem] = queue.Queue(maxsize=maxsize)

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def put(self, item: SessionItem, timeout: Optional[float] = None) -> None:
        self._queue.put(item, timeout=timeout)

    def put_all(self, items: List[Command]) -> None:
        for item in items:
            self._queue.put(item)

    def get(self, timeout: Optional[float] = None) -> Optional[SessionItem]:
        """Return the next item, or None when nothing arrives within the timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[SessionItem]:
        """Remove and return everything currently queued without blocking."""
        items: List[SessionItem] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def qsize(self) -> int:
        return self._queue.qsize()
