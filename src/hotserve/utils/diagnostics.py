from typing import Optional


class HotserveError(Exception):
    """
    Base class for errors surfaced to the operator by hotserve.
    """


class ConfigurationError(HotserveError):
    """
    Raised when a configuration document cannot be read, parsed or validated,
    or when the session lacks state it needs (e.g. no built artifact).
    """
    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        loc = f" (at {path})" if path else ""
        super().__init__(f"{message}{loc}")


class BuildError(HotserveError):
    """
    Raised by the server builder when a rebuild cannot produce a runnable artifact.
    """


class BootstrapError(HotserveError):
    """
    Raised when a single configuration file cannot be materialized into the output directory.
    """
    def __init__(self, message: str, relative_path: str):
        self.message = message
        self.relative_path = relative_path
        super().__init__(f"{message} (path: {relative_path})")


class WatcherError(HotserveError):
    """
    Raised when a filesystem watcher cannot be started.
    """
