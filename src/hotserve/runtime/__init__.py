"""Runtime orchestration: watchers, process supervision and the session controller."""

from hotserve.runtime.commands import (
	Bootstrap,
	Command,
	CommandQueue,
	Rebuild,
	SendCommand,
	Start,
	Stop,
	WaitUntilExit,
)
from hotserve.runtime.controller import DevSession, Session
from hotserve.runtime.contracts import SessionState, WatcherState
from hotserve.runtime.polling_watcher import DebouncedWatcher, FileEvent, FileEventKind
from hotserve.runtime.supervisor import ProcessSupervisor, ServerProcess

__all__ = [
	"Bootstrap",
	"Command",
	"CommandQueue",
	"DebouncedWatcher",
	"DevSession",
	"FileEvent",
	"FileEventKind",
	"ProcessSupervisor",
	"Rebuild",
	"SendCommand",
	"ServerProcess",
	"Session",
	"SessionState",
	"Start",
	"Stop",
	"WaitUntilExit",
	"WatcherState",
]
