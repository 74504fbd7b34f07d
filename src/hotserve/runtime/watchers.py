"""Filesystem watchers of a development session and the action resolver they share."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import List, Optional

from hotserve.cli.formatter import OutputFormatter
from hotserve.core.hot_reload import FileRule, HotReloadAction, HotReloadConfig, SharedHotReloadConfig
from hotserve.core.models import ServerPaths, SessionSettings
from hotserve.runtime.commands import (
    Bootstrap,
    Command,
    CommandQueue,
    Rebuild,
    SendCommand,
    Start,
    WaitUntilExit,
)
from hotserve.runtime.polling_watcher import DebouncedWatcher, FileEvent, FileEventKind
from hotserve.utils.diagnostics import ConfigurationError

RELOAD_COMMAND = "reload confirm\n"
RESTART_STOP_COMMAND = "stop\nend\n"
SERVER_CONFIG_STOP_COMMAND = "stop\nend"

_WRITE_KINDS = {FileEventKind.CREATED, FileEventKind.MODIFIED}


def resolve_rule(relative_path: str, config: HotReloadConfig) -> Optional[FileRule]:
    """First matching rule for a path relative to config/, or None."""
    return config.find_rule(relative_path)


def commands_for_action(action: HotReloadAction) -> List[Command]:
    if action.kind == "reload":
        return [SendCommand(RELOAD_COMMAND)]
    if action.kind == "restart":
        return [SendCommand(RESTART_STOP_COMMAND), WaitUntilExit(), Start()]

    command = action.command or ""
    if not command.endswith("\n"):
        command += "\n"
    return [SendCommand(command)]


def server_config_commands() -> List[Command]:
    """Full graceful restart with a rebuild in between."""
    return [SendCommand(SERVER_CONFIG_STOP_COMMAND), WaitUntilExit(), Rebuild(), Start()]


class ConfigTreeHandler:
    """Bootstraps every written config file, then applies the first matching rule."""

    def __init__(self, config_dir: Path, shared_config: SharedHotReloadConfig, commands: CommandQueue) -> None:
        self.config_dir = config_dir
        self.shared_config = shared_config
        self.commands = commands

    def __call__(self, events: List[FileEvent]) -> None:
        for event in events:
            if event.kind not in _WRITE_KINDS:
                continue
            if event.path.is_dir():
                continue

            relative = PurePosixPath(event.path.relative_to(self.config_dir).as_posix())
            self.commands.put(Bootstrap(relative))

            rule = resolve_rule(relative.as_posix(), self.shared_config.get())
            if rule is None:
                continue
            self.commands.put_all(commands_for_action(rule.action))


class HotReloadConfigHandler:
    """Re-parses hotreload.yaml; a bad file keeps the previous rules active."""

    def __init__(self, shared_config: SharedHotReloadConfig) -> None:
        self.shared_config = shared_config

    def __call__(self, events: List[FileEvent]) -> None:
        if not any(event.kind in _WRITE_KINDS for event in events):
            return

        try:
            updated = self.shared_config.reload()
        except ConfigurationError as exc:
            OutputFormatter.log(f"Cannot update {self.shared_config.path.name}: {exc}", severity="error")
            OutputFormatter.log("Keeping the previous hot-reload configuration.", severity="warning")
            return

        OutputFormatter.log(
            f"Reloaded {updated.path.name} ({len(updated.files)} rule(s)).",
            severity="success",
        )


class ServerConfigHandler:
    """Any settled modification of server.yaml triggers stop, rebuild and start."""

    def __init__(self, commands: CommandQueue) -> None:
        self.commands = commands

    def __call__(self, events: List[FileEvent]) -> None:
        for event in events:
            if event.kind != FileEventKind.MODIFIED:
                continue
            self.commands.put_all(server_config_commands())


def create_session_watchers(
    paths: ServerPaths,
    shared_config: SharedHotReloadConfig,
    commands: CommandQueue,
    settings: SessionSettings,
) -> List[DebouncedWatcher]:
    """Build the config-tree, hot-reload-config and server-config watchers (not started)."""
    return [
        DebouncedWatcher(
            paths.config_dir,
            ConfigTreeHandler(paths.config_dir, shared_config, commands),
            recursive=True,
            debounce_ms=settings.debounce_ms,
            interval_ms=settings.poll_interval_ms,
            name="config",
        ),
        DebouncedWatcher(
            paths.hot_reload_config,
            HotReloadConfigHandler(shared_config),
            recursive=False,
            debounce_ms=settings.debounce_ms,
            interval_ms=settings.poll_interval_ms,
            name="hotreload",
        ),
        DebouncedWatcher(
            paths.server_config,
            ServerConfigHandler(commands),
            recursive=False,
            debounce_ms=settings.debounce_ms,
            interval_ms=settings.poll_interval_ms,
            name="server",
        ),
    ]
