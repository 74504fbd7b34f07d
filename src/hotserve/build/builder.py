from __future__ import annotations

import hashlib
import shutil
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

from hotserve.cli.formatter import OutputFormatter
from hotserve.config.loader import interpolate_env_vars
from hotserve.core.lockfile import LockEntry, Lockfile, ResolvedAddon
from hotserve.core.models import AddonSpec, PlatformFamily, ServerConfig, ServerPaths
from hotserve.utils.diagnostics import BootstrapError, BuildError, ConfigurationError


ADDON_FOLDERS = ("plugins", "mods")

# Config files with these suffixes get ${VAR} interpolation; everything else is copied as-is.
TEMPLATE_SUFFIXES = {
    ".yml",
    ".yaml",
    ".json",
    ".toml",
    ".properties",
    ".txt",
    ".conf",
    ".cfg",
    ".ini",
}


def file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ServerBuilder:
    """Materializes a server project's output directory.

    A build re-reads server.yaml, installs the server jar, syncs plugins and
    mods against the previous lockfile, bootstraps every config template and
    finally records the new lockfile. The returned artifact name is the jar's
    file name inside the output directory.
    """

    def __init__(self, paths: ServerPaths, config: Optional[ServerConfig] = None) -> None:
        self.paths = paths
        self.config = config

    def current_config(self) -> ServerConfig:
        if self.config is None:
            self.config = ServerConfig.load_from(self.paths.server_config)
        return self.config

    def startup_command(self, artifact_name: str, platform: PlatformFamily) -> List[str]:
        """Startup-argument collaborator used by the process supervisor."""
        return self.current_config().launcher.get_command(artifact_name, platform)

    def template_variables(self) -> Dict[str, str]:
        config = self.current_config()
        variables = {"SERVER_NAME": config.name}
        variables.update(config.variables)
        return variables

    def build_all(self) -> str:
        """Rebuild the output directory and return the runnable artifact name."""
        try:
            self.config = ServerConfig.load_from(self.paths.server_config)
        except ConfigurationError as exc:
            raise BuildError(str(exc)) from exc

        try:
            return self._build_output()
        except OSError as exc:
            raise BuildError(f"Unable to build {self.paths.output_dir}: {exc}") from exc

    def _build_output(self) -> str:
        self.paths.output_dir.mkdir(parents=True, exist_ok=True)
        artifact_name = self._install_server_jar()

        previous = Lockfile.load(self.paths.lockfile)
        updated = Lockfile()
        # Every addon must resolve before anything recorded in the previous lockfile is removed.
        for addon_type in ADDON_FOLDERS:
            self._resolve_addons(addon_type, updated)
        for addon_type in ADDON_FOLDERS:
            self._remove_stale_addons(addon_type, previous, updated)

        try:
            count = self.bootstrap_all()
        except BootstrapError as exc:
            raise BuildError(f"Bootstrap failed: {exc}") from exc

        updated.save(self.paths.lockfile)
        OutputFormatter.log(f"Bootstrapped {count} config file(s).", severity="info")
        OutputFormatter.log(f"Build complete: {artifact_name}", severity="success")
        return artifact_name

    def bootstrap_all(self) -> int:
        config_dir = self.paths.config_dir
        if not config_dir.is_dir():
            return 0

        count = 0
        for source in sorted(config_dir.rglob("*")):
            if not source.is_file():
                continue
            self.bootstrap_file(source.relative_to(config_dir))
            count += 1
        return count

    def bootstrap_file(self, relative_path: Path | str) -> Path:
        """Render one file from config/ into the output directory."""
        relative = PurePosixPath(str(relative_path).replace("\\", "/"))
        label = relative.as_posix()
        if relative.is_absolute() or ".." in relative.parts:
            raise BootstrapError("Path escapes the config directory", label)

        source = self.paths.config_dir / relative
        if not source.is_file():
            raise BootstrapError("Config file not found", label)

        target = self.paths.output_dir / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if source.suffix.lower() in TEMPLATE_SUFFIXES:
                self._render_template(source, target)
            else:
                shutil.copy2(source, target)
        except OSError as exc:
            raise BootstrapError(f"Unable to write {target}: {exc}", label) from exc

        return target

    def _render_template(self, source: Path, target: Path) -> None:
        try:
            content = source.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            shutil.copy2(source, target)
            return

        target.write_text(interpolate_env_vars(content, self.template_variables()), encoding="utf-8")

    def _install_server_jar(self) -> str:
        config = self.current_config()
        source = self.paths.root_dir / config.jar
        if not source.is_file():
            raise BuildError(f"Server jar not found: {config.jar}")

        target = self.paths.output_dir / source.name
        self._copy_if_changed(source, target, file_sha256(source))
        return source.name

    def _resolve_addons(self, addon_type: str, updated: Lockfile) -> None:
        specs: List[AddonSpec] = getattr(self.current_config(), addon_type)
        if not specs:
            return

        folder = self.paths.output_dir / addon_type
        folder.mkdir(parents=True, exist_ok=True)
        for spec in specs:
            resolved = self._resolve_addon(spec, folder)
            updated.entries(addon_type).append(LockEntry(spec=spec, resolved=resolved))

        OutputFormatter.log(f"Processed {len(specs)} {addon_type}.", severity="info")

    def _remove_stale_addons(self, addon_type: str, previous: Lockfile, updated: Lockfile) -> None:
        folder = self.paths.output_dir / addon_type
        for stale in sorted(previous.filenames(addon_type) - updated.filenames(addon_type)):
            (folder / stale).unlink(missing_ok=True)
            OutputFormatter.log(f"Removed stale {addon_type} file: {stale}", severity="info")

    def _resolve_addon(self, spec: AddonSpec, folder: Path) -> ResolvedAddon:
        source = self.paths.root_dir / spec.path
        if not source.is_file():
            raise BuildError(f"Addon not found: {spec.path}")

        digest = file_sha256(source)
        filename = spec.target_filename()
        self._copy_if_changed(source, folder / filename, digest)
        return ResolvedAddon(filename=filename, sha256=digest)

    @staticmethod
    def _copy_if_changed(source: Path, target: Path, digest: str) -> None:
        if target.is_file() and file_sha256(target) == digest:
            return
        try:
            shutil.copy2(source, target)
        except OSError as exc:
            raise BuildError(f"Unable to copy {source} to {target}: {exc}") from exc
