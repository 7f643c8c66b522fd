import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from . import __version__
from .config import Settings
from .logging_setup import configure as configure_logging
from .systemd_bus import ServiceDirectory, ServiceDirectoryError
from .util import is_tty


logger = logging.getLogger(__name__)

app = typer.Typer(
    name="unitdash",
    add_completion=False,
    help=(
        "Terminal dashboard for systemd service units.\n\n"
        "Usage:\n"
        "  unitdash [opts]            Open the dashboard (system units)\n"
        "  unitdash --user            Manage your user units instead\n"
        "  unitdash ls [opts]         List units (tab-separated)\n"
    ),
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    user: bool = typer.Option(False, "--user", help="Manage user units (session bus) instead of system units"),
    limit_units: list[str] = typer.Option(
        [], "--limit-units", "-l", help="Only show these units (comma-separated, globs allowed)", show_default=False
    ),
    debounce_ms: Optional[float] = typer.Option(None, "--debounce-ms", help="Quiet interval before a coalesced redraw"),
    refresh_seconds: Optional[float] = typer.Option(
        None, "--refresh-seconds", help="Background refresh interval (0 disables)"
    ),
    unit_dir: Optional[Path] = typer.Option(None, "--unit-dir", help="Where new unit files are written"),
    version: Optional[bool] = typer.Option(None, "--version", help="Show version and exit", is_eager=True),
):
    """Open the dashboard over systemd service units."""
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    settings = Settings.load(
        user=user,
        limit_units=limit_units,
        debounce_ms=debounce_ms,
        refresh_seconds=refresh_seconds,
        unit_dir=unit_dir,
    )
    ctx.obj = settings
    if ctx.invoked_subcommand is not None:
        return
    if not is_tty():
        typer.echo("unitdash needs an interactive terminal.", err=True)
        raise typer.Exit(code=1)

    from .dash.app import DashApp, StartupError

    runtime = configure_logging()
    logger.info("starting unitdash %s (%s scope), log file %s", __version__, settings.scope.value, runtime.file_path)
    try:
        asyncio.run(DashApp(settings).run())
    except StartupError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    except Exception:
        logger.exception("dashboard crashed")
        raise


@app.command("ls")
def ls(ctx: typer.Context):
    """List service units. Prints: name\tactive(sub)\tenablement\tdescription"""
    settings: Settings = ctx.obj

    async def _ls():
        directory = ServiceDirectory(settings.scope, settings.limit_units)
        try:
            units = await directory.list_units()
        except ServiceDirectoryError as e:
            typer.echo(str(e), err=True)
            raise typer.Exit(code=1)
        for u in units:
            typer.echo(f"{u.name}\t{u.active_state}({u.sub_state})\t{u.enablement_state or '-'}\t{u.description}")

    asyncio.run(_ls())


def main():
    app()
