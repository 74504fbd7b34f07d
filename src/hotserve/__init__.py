"""Development session manager for a managed server process."""

from hotserve.runtime import DevSession, Session

__version__ = "0.3.0"

__all__ = [
	"DevSession",
	"Session",
	"__version__",
]
