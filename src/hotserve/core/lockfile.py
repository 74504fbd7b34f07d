from __future__ import annotations

import json
from pathlib import Path
from typing import List, Set

from pydantic import BaseModel, Field, ValidationError

from hotserve.core.models import AddonSpec


class ResolvedAddon(BaseModel):
    """A requested addon after resolution to a concrete file in the output directory."""

    filename: str
    sha256: str


class LockEntry(BaseModel):
    """One (requested spec, resolved artifact) pair."""

    spec: AddonSpec
    resolved: ResolvedAddon


class Lockfile(BaseModel):
    """Recorded addon resolutions from the last successful build."""

    plugins: List[LockEntry] = Field(default_factory=list)
    mods: List[LockEntry] = Field(default_factory=list)

    def entries(self, addon_type: str) -> List[LockEntry]:
        return self.plugins if addon_type == "plugins" else self.mods

    def filenames(self, addon_type: str) -> Set[str]:
        return {entry.resolved.filename for entry in self.entries(addon_type)}

    @classmethod
    def load(cls, path: Path) -> Lockfile:
        """Load a lockfile; a missing or unreadable file is treated as empty."""
        if not path.exists():
            return cls()

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return cls.model_validate(payload)
        except (OSError, json.JSONDecodeError, ValidationError):
            return cls()

    def save(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path
