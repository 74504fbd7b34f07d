import sys
from pathlib import Path

import typer
from pydantic import ValidationError

from hotserve.build.builder import ServerBuilder
from hotserve.cli.formatter import OutputFormatter
from hotserve.core.hot_reload import HotReloadConfig
from hotserve.core.models import ServerPaths, SessionSettings
from hotserve.runtime import DevSession
from hotserve.utils.diagnostics import HotserveError

app = typer.Typer(name="hotserve", help="hotserve CLI Interface", rich_markup_mode=None)


def _read_option_value(tokens: list[str], index: int, option_name: str) -> tuple[str, int]:
    if index + 1 >= len(tokens):
        raise typer.BadParameter(f"Option {option_name} requires a value.")
    return tokens[index + 1], index + 2


def _parse_root_option(tokens: list[str]) -> tuple[Path, list[str]]:
    """Pull --root/-r out of extra args; returns (root, remaining positional tokens)."""
    root_dir = Path(".")
    extras: list[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in ("--root", "-r"):
            root_value, index = _read_option_value(tokens, index, token)
            root_dir = Path(root_value)
            continue
        if token.startswith("--root="):
            root_dir = Path(token.split("=", 1)[1])
            index += 1
            continue
        if token.startswith("-"):
            raise typer.BadParameter(f"Unknown option: {token}")
        extras.append(token)
        index += 1

    return root_dir, extras


def _load_settings() -> SessionSettings:
    try:
        return SessionSettings()
    except ValidationError as exc:
        OutputFormatter.log(f"Invalid HOTSERVE_* setting: {exc}", severity="error")
        raise typer.Exit(code=1)


def _project_paths(root_dir: Path, settings: SessionSettings) -> ServerPaths:
    if not root_dir.exists():
        OutputFormatter.log(f"Root directory '{root_dir}' does not exist.", severity="error")
        raise typer.Exit(code=1)
    return ServerPaths.from_root(root_dir, output_dir=settings.output_dir)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def dev(
    ctx: typer.Context,
):
    """
    Build, launch and hot-reload the server until interrupted.
    """
    root_dir, extras = _parse_root_option(list(ctx.args))
    if extras:
        raise typer.BadParameter(f"Unexpected arguments: {' '.join(extras)}")

    settings = _load_settings()
    paths = _project_paths(root_dir, settings)

    try:
        hot_reload_config = HotReloadConfig.load_or_default(paths.hot_reload_config)
    except HotserveError as exc:
        OutputFormatter.log(str(exc), severity="error")
        raise typer.Exit(code=1)

    OutputFormatter.log(
        f"Starting development session in {paths.root_dir} ({len(hot_reload_config.files)} hot-reload rule(s)).",
        severity="info",
    )
    OutputFormatter.log("Type a line to send it to the server console; press ^C to stop.", severity="info")

    session = DevSession.for_project(paths, settings=settings, operator_input=sys.stdin)
    try:
        session.start(hot_reload_config)
    except HotserveError as exc:
        OutputFormatter.log(f"Development session aborted: {exc}", severity="critical")
        raise typer.Exit(code=1)

    OutputFormatter.log("Development session ended.", severity="success")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def build(
    ctx: typer.Context,
):
    """Build the server output directory once."""
    root_dir, extras = _parse_root_option(list(ctx.args))
    if extras:
        raise typer.BadParameter(f"Unexpected arguments: {' '.join(extras)}")

    settings = _load_settings()
    paths = _project_paths(root_dir, settings)

    try:
        artifact_name = ServerBuilder(paths).build_all()
    except HotserveError as exc:
        OutputFormatter.log(f"Build failed: {exc}", severity="error")
        raise typer.Exit(code=1)

    typer.echo(artifact_name)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def bootstrap(
    ctx: typer.Context,
):
    """Render a single config/ file into the output directory."""
    root_dir, extras = _parse_root_option(list(ctx.args))
    if len(extras) != 1:
        typer.echo("Error: Expected exactly one path relative to config/.", err=True)
        raise typer.Exit(code=2)

    settings = _load_settings()
    paths = _project_paths(root_dir, settings)

    relative_path = Path(extras[0])
    try:
        target = ServerBuilder(paths).bootstrap_file(relative_path)
    except HotserveError as exc:
        OutputFormatter.log(f"Bootstrap failed: {exc}", severity="error")
        raise typer.Exit(code=1)

    OutputFormatter.log(f"Bootstrapped {extras[0]} -> {target}", severity="success")


if __name__ == "__main__":
    app()
