from __future__ import annotations

import threading
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from hotserve.config.loader import load_yaml_document
from hotserve.utils.diagnostics import ConfigurationError


class HotReloadAction(BaseModel):
    """What to do with the running server when a matching config file changes.

    Accepted YAML shapes:
    - ``reload``
    - ``restart``
    - ``{run: "<console command>"}``
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["reload", "restart", "run"]
    command: Optional[str] = None

    @classmethod
    def reload(cls) -> HotReloadAction:
        return cls(kind="reload")

    @classmethod
    def restart(cls) -> HotReloadAction:
        return cls(kind="restart")

    @classmethod
    def run(cls, command: str) -> HotReloadAction:
        return cls(kind="run", command=command)

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("run command cannot be empty")
        return value

    @model_validator(mode="after")
    def _command_matches_kind(self) -> HotReloadAction:
        if self.kind == "run" and self.command is None:
            raise ValueError("'run' action requires a command")
        if self.kind != "run" and self.command is not None:
            raise ValueError(f"'{self.kind}' action does not take a command")
        return self


class FileRule(BaseModel):
    """One entry of the hotreload.yaml `files` list."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    action: HotReloadAction

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"kind": value.strip().lower()}
        if isinstance(value, dict) and set(value.keys()) == {"run"}:
            return {"kind": "run", "command": value["run"]}
        return value

    def matches(self, relative_path: str) -> bool:
        """Return True when the pattern matches the relative path or its file name."""
        posix_path = PurePosixPath(relative_path.replace("\\", "/"))
        return fnmatch(posix_path.as_posix(), self.path) or fnmatch(posix_path.name, self.path)


class HotReloadConfig(BaseModel):
    """Parsed hotreload.yaml. Frozen: reloads replace the whole value."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: Path
    files: List[FileRule] = Field(default_factory=list)

    @classmethod
    def load_from(cls, path: Path) -> HotReloadConfig:
        """Parse a hot-reload file, raising ConfigurationError on any failure."""
        if not path.exists():
            raise ConfigurationError("Hot-reload configuration not found.", path=str(path))

        document = load_yaml_document(path)
        try:
            return cls.model_validate({"path": path, "files": document.get("files") or []})
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid hot-reload configuration: {exc}", path=str(path)) from exc

    @classmethod
    def load_or_default(cls, path: Path) -> HotReloadConfig:
        """Like load_from, but a missing file yields an empty rule list."""
        if not path.exists():
            return cls(path=path)
        return cls.load_from(path)

    def find_rule(self, relative_path: str) -> Optional[FileRule]:
        """First rule, in declaration order, whose pattern matches the path."""
        for rule in self.files:
            if rule.matches(relative_path):
                return rule
        return None


class SharedHotReloadConfig:
    """Lock-guarded cell holding the single authoritative HotReloadConfig."""

    def __init__(self, config: HotReloadConfig) -> None:
        self._lock = threading.Lock()
        self._config = config

    @property
    def path(self) -> Path:
        return self.get().path

    def get(self) -> HotReloadConfig:
        with self._lock:
            return self._config

    def replace(self, config: HotReloadConfig) -> None:
        with self._lock:
            self._config = config

    def reload(self) -> HotReloadConfig:
        """Re-parse the backing file and swap it in; on error the current value is kept."""
        with self._lock:
            updated = HotReloadConfig.load_from(self._config.path)
            self._config = updated
            return updated
