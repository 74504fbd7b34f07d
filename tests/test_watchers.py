from pathlib import Path, PurePosixPath

import pytest

from hotserve.core.hot_reload import FileRule, HotReloadAction, HotReloadConfig, SharedHotReloadConfig
from hotserve.core.models import ServerPaths, SessionSettings
from hotserve.runtime.commands import (
    Bootstrap,
    CommandQueue,
    Rebuild,
    SendCommand,
    Start,
    WaitUntilExit,
)
from hotserve.runtime.polling_watcher import FileEvent, FileEventKind
from hotserve.runtime.watchers import (
    ConfigTreeHandler,
    HotReloadConfigHandler,
    ServerConfigHandler,
    commands_for_action,
    create_session_watchers,
    resolve_rule,
)


@pytest.fixture
def project(tmp_path: Path) -> ServerPaths:
    paths = ServerPaths.from_root(tmp_path)
    (paths.config_dir / "plugins").mkdir(parents=True)
    return paths


def _shared(paths: ServerPaths, *rules: FileRule) -> SharedHotReloadConfig:
    return SharedHotReloadConfig(HotReloadConfig(path=paths.hot_reload_config, files=list(rules)))


def _touch(path: Path, content: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def test_reload_rule_bootstraps_then_sends_reload(project: ServerPaths):
    commands = CommandQueue()
    handler = ConfigTreeHandler(
        project.config_dir,
        _shared(project, FileRule(path="plugins/*.yml", action="reload")),
        commands,
    )
    changed = _touch(project.config_dir / "plugins" / "a.yml")

    handler([FileEvent(kind=FileEventKind.MODIFIED, path=changed)])

    assert commands.drain() == [
        Bootstrap(PurePosixPath("plugins/a.yml")),
        SendCommand("reload confirm\n"),
    ]


def test_restart_rule_stops_waits_and_starts(project: ServerPaths):
    commands = CommandQueue()
    handler = ConfigTreeHandler(
        project.config_dir,
        _shared(project, FileRule(path="server.properties", action="restart")),
        commands,
    )
    changed = _touch(project.config_dir / "server.properties")

    handler([FileEvent(kind=FileEventKind.CREATED, path=changed)])

    assert commands.drain() == [
        Bootstrap(PurePosixPath("server.properties")),
        SendCommand("stop\nend\n"),
        WaitUntilExit(),
        Start(),
    ]


def test_run_rule_appends_newline(project: ServerPaths):
    commands = CommandQueue()
    handler = ConfigTreeHandler(
        project.config_dir,
        _shared(project, FileRule(path="ops.json", action={"run": "whitelist reload"})),
        commands,
    )
    changed = _touch(project.config_dir / "ops.json")

    handler([FileEvent(kind=FileEventKind.MODIFIED, path=changed)])

    assert commands.drain() == [
        Bootstrap(PurePosixPath("ops.json")),
        SendCommand("whitelist reload\n"),
    ]


def test_unmatched_file_is_only_bootstrapped(project: ServerPaths):
    commands = CommandQueue()
    handler = ConfigTreeHandler(
        project.config_dir,
        _shared(project, FileRule(path="plugins/*.yml", action="reload")),
        commands,
    )
    changed = _touch(project.config_dir / "bukkit.yml")

    handler([FileEvent(kind=FileEventKind.MODIFIED, path=changed)])

    assert commands.drain() == [Bootstrap(PurePosixPath("bukkit.yml"))]


def test_directories_and_removals_are_skipped_without_dropping_the_batch(project: ServerPaths):
    commands = CommandQueue()
    handler = ConfigTreeHandler(
        project.config_dir,
        _shared(project, FileRule(path="plugins/*.yml", action="reload")),
        commands,
    )
    folder = project.config_dir / "plugins"
    after = _touch(folder / "b.yml")

    handler(
        [
            FileEvent(kind=FileEventKind.CREATED, path=folder),
            FileEvent(kind=FileEventKind.REMOVED, path=folder / "gone.yml"),
            FileEvent(kind=FileEventKind.MODIFIED, path=after),
        ]
    )

    assert commands.drain() == [
        Bootstrap(PurePosixPath("plugins/b.yml")),
        SendCommand("reload confirm\n"),
    ]


def test_config_tree_handler_reads_the_latest_rules(project: ServerPaths):
    commands = CommandQueue()
    shared = _shared(project)
    handler = ConfigTreeHandler(project.config_dir, shared, commands)
    changed = _touch(project.config_dir / "plugins" / "a.yml")

    handler([FileEvent(kind=FileEventKind.MODIFIED, path=changed)])
    shared.replace(
        HotReloadConfig(path=project.hot_reload_config, files=[FileRule(path="plugins/*.yml", action="reload")])
    )
    handler([FileEvent(kind=FileEventKind.MODIFIED, path=changed)])

    assert commands.drain() == [
        Bootstrap(PurePosixPath("plugins/a.yml")),
        Bootstrap(PurePosixPath("plugins/a.yml")),
        SendCommand("reload confirm\n"),
    ]


def test_server_config_change_requests_full_restart_with_rebuild(project: ServerPaths):
    commands = CommandQueue()
    handler = ServerConfigHandler(commands)
    server_yaml = _touch(project.server_config, "jar: paper.jar")

    handler([FileEvent(kind=FileEventKind.MODIFIED, path=server_yaml)])

    assert commands.drain() == [SendCommand("stop\nend"), WaitUntilExit(), Rebuild(), Start()]


def test_server_config_creation_or_removal_is_ignored(project: ServerPaths):
    commands = CommandQueue()
    handler = ServerConfigHandler(commands)

    handler(
        [
            FileEvent(kind=FileEventKind.CREATED, path=project.server_config),
            FileEvent(kind=FileEventKind.REMOVED, path=project.server_config),
        ]
    )

    assert commands.drain() == []


def test_hot_reload_config_handler_swaps_rules(project: ServerPaths, capsys):
    shared = _shared(project)
    _touch(project.hot_reload_config, 'files:\n  - path: "*.yml"\n    action: restart\n')

    HotReloadConfigHandler(shared)([FileEvent(kind=FileEventKind.MODIFIED, path=project.hot_reload_config)])

    rule = shared.get().find_rule("bukkit.yml")
    assert rule is not None
    assert rule.action == HotReloadAction.restart()
    assert "Reloaded hotreload.yaml (1 rule(s))." in capsys.readouterr().err


def test_hot_reload_config_handler_keeps_previous_rules_on_error(project: ServerPaths, capsys):
    shared = _shared(project, FileRule(path="plugins/*.yml", action="reload"))
    before = shared.get()
    _touch(project.hot_reload_config, "files:\n  - path: a.yml\n    action: explode\n")

    HotReloadConfigHandler(shared)([FileEvent(kind=FileEventKind.MODIFIED, path=project.hot_reload_config)])

    assert shared.get() is before
    assert "Keeping the previous hot-reload configuration." in capsys.readouterr().err


def test_resolve_rule_and_action_mapping(project: ServerPaths):
    config = HotReloadConfig(
        path=project.hot_reload_config,
        files=[FileRule(path="ops.json", action={"run": "whitelist reload\n"})],
    )

    rule = resolve_rule("ops.json", config)
    assert rule is not None
    # An explicit trailing newline is not doubled.
    assert commands_for_action(rule.action) == [SendCommand("whitelist reload\n")]
    assert resolve_rule("other.json", config) is None


def test_create_session_watchers_targets_project_files(project: ServerPaths):
    watchers = create_session_watchers(
        project,
        _shared(project),
        CommandQueue(),
        SessionSettings(debounce_ms=250, poll_interval_ms=50),
    )

    assert [watcher.name for watcher in watchers] == ["config", "hotreload", "server"]
    assert [watcher.root for watcher in watchers] == [
        project.config_dir,
        project.hot_reload_config,
        project.server_config,
    ]
    assert [watcher.recursive for watcher in watchers] == [True, False, False]
    assert all(watcher.debounce_ms == 250 for watcher in watchers)
