from __future__ import annotations

from enum import Enum


class WatcherState(str, Enum):
    """High-level states for the debounced watcher lifecycle."""

    STOPPED = "stopped"
    WATCHING = "watching"
    DEBOUNCING = "debouncing"
    DISPATCHING = "dispatching"


class WatcherEvent(str, Enum):
    """Events that drive watcher state transitions."""

    START = "start"
    FILE_CHANGE = "file_change"
    DEBOUNCE_ELAPSED = "debounce_elapsed"
    DISPATCH_COMPLETE = "dispatch_complete"
    STOP = "stop"


class SessionState(str, Enum):
    """Process states of a development session, derived from the session record."""

    NO_PROCESS = "no_process"
    RUNNING = "running"
    AWAITING_EXIT = "awaiting_exit"


def transition_watcher_state(current: WatcherState, event: WatcherEvent) -> WatcherState:
    """Compute the next watcher state for a given event.

    Settled events are only released from DEBOUNCING; a change seen while
    DEBOUNCING keeps the watcher there. Invalid transitions raise ValueError.
    """

    if event == WatcherEvent.STOP:
        return WatcherState.STOPPED

    if current == WatcherState.STOPPED:
        if event == WatcherEvent.START:
            return WatcherState.WATCHING
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    if current == WatcherState.WATCHING:
        if event == WatcherEvent.FILE_CHANGE:
            return WatcherState.DEBOUNCING
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    if current == WatcherState.DEBOUNCING:
        if event == WatcherEvent.FILE_CHANGE:
            return WatcherState.DEBOUNCING
        if event == WatcherEvent.DEBOUNCE_ELAPSED:
            return WatcherState.DISPATCHING
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    if current == WatcherState.DISPATCHING:
        if event == WatcherEvent.DISPATCH_COMPLETE:
            return WatcherState.WATCHING
        if event == WatcherEvent.FILE_CHANGE:
            return WatcherState.DEBOUNCING
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    raise ValueError(f"Unknown watcher state: {current}")


def derive_session_state(has_child: bool, is_stopping: bool) -> SessionState:
    """Map the (child handle present, stop in flight) pair onto a session state."""

    if not has_child:
        return SessionState.NO_PROCESS
    if is_stopping:
        return SessionState.AWAITING_EXIT
    return SessionState.RUNNING
