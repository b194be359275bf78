"""CLI entry point for cchud."""

from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console

from cchud import __version__
from cchud.config import Config, display_config_warnings, load_config, save_config
from cchud.dashboard import build_display, collect_view, run_dashboard
from cchud.git_status import collect_git_snapshot
from cchud.log import configure_logging
from cchud.pipeline import build_pipeline
from cchud.xdg_paths import ensure_directories, get_config_file_path, get_log_file_path

app = typer.Typer(
    name="cchud",
    help="Live terminal dashboard for Claude Code sessions.",
    no_args_is_help=False,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cchud {__version__}")
        raise typer.Exit()


def _load(config_path: Path | None, project_dir: Path | None, strict: bool) -> Config:
    config, warnings = load_config(config_path=config_path, project_dir=project_dir, strict=strict)
    if warnings:
        display_config_warnings(warnings, err_console)
        if strict:
            raise typer.Exit(1)
    return config


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    transport: Annotated[
        Path | None,
        typer.Option("--transport", "-t", help="Event pipe or file to read (default: XDG runtime pipe)."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Model id used for cost estimates until events name one."),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    project_dir: Annotated[
        Path | None,
        typer.Option("--project", "-p", help="Project directory for .cchud.yaml and git state (default: cwd)."),
    ] = None,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Exit with error on config validation warnings."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", "-D", help="Log at debug level."),
    ] = False,
    dump_config: Annotated[
        bool,
        typer.Option("--dump-config", help="Output current configuration."),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version."),
    ] = None,
) -> None:
    """Show the live dashboard for the session feeding the event transport."""
    if ctx.invoked_subcommand is not None:
        return

    project = project_dir or Path.cwd()
    config = _load(config_path, project, strict)
    if model:
        config.model = model

    if dump_config:
        console.print(yaml.dump(config.model_dump(mode="json"), default_flow_style=False))
        raise typer.Exit()

    ensure_directories()
    configure_logging("DEBUG" if debug else config.log_level, log_file=get_log_file_path())
    run_dashboard(config, transport_path=transport, repo_path=project, console=console)


@app.command()
def replay(
    events_file: Annotated[Path, typer.Argument(help="Recorded JSONL event file.")],
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Model id used for cost estimates until events name one."),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", "-D", help="Log at debug level."),
    ] = False,
) -> None:
    """Feed a recorded event file through the pipeline and print the final state."""
    configure_logging("DEBUG" if debug else "WARNING")
    if not events_file.is_file():
        err_console.print(f"[red]Error:[/] {events_file} is not a file.")
        raise typer.Exit(1)

    config = _load(config_path, None, strict=False)
    if model:
        config.model = model

    pipeline = build_pipeline(config, events_file)
    with events_file.open(encoding="utf-8", errors="replace") as f:
        for line in f:
            if line.strip():
                pipeline.feed(line)

    console.print(build_display(collect_view(pipeline, collect_git_snapshot(Path.cwd()))))
    stats = pipeline.stats
    console.print(
        f"[dim]{stats.records} records, {stats.events} events, {stats.parse_failures} malformed[/]",
    )


@app.command()
def init_config(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config file."),
    ] = False,
) -> None:
    """Write the default configuration file."""
    path = config_path or get_config_file_path()
    if path.exists() and not force:
        err_console.print(f"[red]Error:[/] {path} already exists (use --force to overwrite).")
        raise typer.Exit(1)
    written = save_config(Config(), path)
    console.print(f"[green]✓[/] Config written to {written}")


if __name__ == "__main__":
    app()
