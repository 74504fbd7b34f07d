from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from hotserve.cli.formatter import OutputFormatter
from hotserve.runtime.contracts import (
    WatcherEvent,
    WatcherState,
    transition_watcher_state,
)
from hotserve.utils.diagnostics import WatcherError

Fingerprint = Tuple[int, int]


class FileEventKind(str, Enum):
    """Classification of a settled filesystem change."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class FileEvent:
    """One settled change for an absolute path."""

    kind: FileEventKind
    path: Path


@dataclass
class _PendingChange:
    first_kind: FileEventKind
    last_kind: FileEventKind
    last_seen: float


@dataclass(frozen=True)
class WatcherPollResult:
    """Result from one watcher poll cycle."""

    settled: List[FileEvent]

    @property
    def has_events(self) -> bool:
        return bool(self.settled)


def coalesce_kinds(first: FileEventKind, last: FileEventKind) -> FileEventKind:
    """Collapse the first and last raw kinds seen for a path within one window."""
    if last == FileEventKind.REMOVED:
        return FileEventKind.REMOVED
    if first == FileEventKind.CREATED:
        return FileEventKind.CREATED
    return FileEventKind.MODIFIED


class DebouncedWatcher:
    """Polling-based watcher that releases one event per path after a quiet window.

    ``root`` may be a directory (optionally recursive) or a single file; a
    file watch also sees the file being created or removed.
    """

    def __init__(
        self,
        root: Path,
        handler: Callable[[List[FileEvent]], None],
        recursive: bool = True,
        debounce_ms: int = 1000,
        interval_ms: int = 200,
        name: Optional[str] = None,
    ) -> None:
        self.root = root
        self.handler = handler
        self.recursive = recursive
        self.debounce_ms = debounce_ms
        self.interval_ms = interval_ms
        self.name = name or root.name

        self.state: WatcherState = WatcherState.STOPPED
        self._snapshot: Dict[Path, Fingerprint] = {}
        self._pending: Dict[Path, _PendingChange] = {}
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self, background: bool = True) -> None:
        """Take the initial snapshot and, by default, start polling on a daemon thread."""
        if self.state != WatcherState.STOPPED:
            return

        # Recursive watches are always directory watches.
        watch_dir = self.root if self.recursive or self.root.is_dir() else self.root.parent
        if not watch_dir.is_dir():
            raise WatcherError(f"Cannot watch {self.root}: directory {watch_dir} does not exist.")

        self.state = transition_watcher_state(self.state, WatcherEvent.START)
        self._snapshot = self._build_snapshot()
        self._pending.clear()
        self._stop_event.clear()

        if background:
            self._thread = threading.Thread(
                target=self._watch_loop,
                name=f"hotserve-watcher-{self.name}",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        """Stop watcher lifecycle and background loop if active."""
        self._stop_event.set()

        if self._thread is not None and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(self.interval_ms / 1000.0 * 5, 1.0))

        self._thread = None
        self.state = transition_watcher_state(self.state, WatcherEvent.STOP)

    def poll(self, now: float) -> WatcherPollResult:
        """Execute one poll cycle and return the events whose debounce window elapsed."""
        if self.state == WatcherState.STOPPED:
            raise RuntimeError("DebouncedWatcher is not started. Call start() before poll().")

        # A new poll implies the previous batch was handed off.
        self.complete_dispatch()

        current_snapshot = self._build_snapshot()
        changes = self._detect_changes(self._snapshot, current_snapshot)
        self._snapshot = current_snapshot

        for path, kind in changes.items():
            pending = self._pending.get(path)
            if pending is None:
                self._pending[path] = _PendingChange(first_kind=kind, last_kind=kind, last_seen=now)
            else:
                pending.last_kind = kind
                pending.last_seen = now

        if changes:
            self.state = transition_watcher_state(self.state, WatcherEvent.FILE_CHANGE)

        debounce_seconds = self.debounce_ms / 1000.0
        settled_paths = sorted(
            path for path, pending in self._pending.items() if (now - pending.last_seen) >= debounce_seconds
        )
        if not settled_paths:
            return WatcherPollResult(settled=[])

        settled: List[FileEvent] = []
        for path in settled_paths:
            pending = self._pending.pop(path)
            settled.append(FileEvent(kind=coalesce_kinds(pending.first_kind, pending.last_kind), path=path))

        self.state = transition_watcher_state(self.state, WatcherEvent.DEBOUNCE_ELAPSED)
        return WatcherPollResult(settled=settled)

    def complete_dispatch(self) -> None:
        """Return to WATCHING (or DEBOUNCING while other paths are still pending)."""
        if self.state != WatcherState.DISPATCHING:
            return
        if self._pending:
            self.state = transition_watcher_state(self.state, WatcherEvent.FILE_CHANGE)
            return
        self.state = transition_watcher_state(self.state, WatcherEvent.DISPATCH_COMPLETE)

    def poll_once(self, now: float) -> List[FileEvent]:
        """Poll and hand any settled events to the handler; returns what was dispatched."""
        result = self.poll(now=now)
        if not result.has_events:
            return []

        try:
            self.handler(result.settled)
        except Exception as exc:
            OutputFormatter.log(f"Watcher '{self.name}' handler failed: {exc}", severity="error")
        finally:
            self.complete_dispatch()

        return result.settled

    def _watch_loop(self) -> None:
        interval_seconds = max(self.interval_ms / 1000.0, 0.01)
        while not self._stop_event.is_set():
            self.poll_once(now=time.monotonic())
            self._stop_event.wait(interval_seconds)

    def _build_snapshot(self) -> Dict[Path, Fingerprint]:
        snapshot: Dict[Path, Fingerprint] = {}

        if self.root.is_file():
            candidates = [self.root]
        elif self.root.is_dir():
            candidates = self.root.rglob("*") if self.recursive else self.root.iterdir()
        else:
            return snapshot

        for path in candidates:
            try:
                if not path.is_file():
                    continue
                stat = path.stat()
            except OSError:
                continue
            snapshot[path] = (stat.st_mtime_ns, stat.st_size)

        return snapshot

    @staticmethod
    def _detect_changes(
        previous: Dict[Path, Fingerprint],
        current: Dict[Path, Fingerprint],
    ) -> Dict[Path, FileEventKind]:
        changes: Dict[Path, FileEventKind] = {}

        previous_paths = set(previous.keys())
        current_paths = set(current.keys())

        for added in current_paths - previous_paths:
            changes[added] = FileEventKind.CREATED

        for removed in previous_paths - current_paths:
            changes[removed] = FileEventKind.REMOVED

        for existing in previous_paths & current_paths:
            if previous[existing] != current[existing]:
                changes[existing] = FileEventKind.MODIFIED

        return changes
