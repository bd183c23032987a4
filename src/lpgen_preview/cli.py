"""Preview service - CLI entry point."""

import click

from lpgen_preview import __version__
from lpgen_preview.config import settings
from lpgen_preview.ports import is_port_bindable


@click.group()
@click.version_option(version=__version__, prog_name="lpgen-preview")
def cli() -> None:
    """Preview service - run generated projects' dev servers on demand."""


@cli.command()
@click.option("--host", default=None, help="Interface to bind (overrides PREVIEW_HOST)")
@click.option("--port", type=int, default=None, help="Port to listen on (overrides PREVIEW_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development only)")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the preview HTTP service."""
    import uvicorn

    uvicorn.run(
        "lpgen_preview.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


@cli.command()
def ports() -> None:
    """Report which ports in the preview pool the OS can bind right now."""
    click.echo(click.style("Preview port pool ", fg="cyan", bold=True) + settings.port_range_label)

    busy = 0
    for port in range(settings.port_range_start, settings.port_range_end + 1):
        if is_port_bindable(port):
            click.echo(f"  {port}: " + click.style("free", fg="green"))
        else:
            busy += 1
            click.echo(f"  {port}: " + click.style("in use", fg="yellow"))

    total = settings.port_range_end - settings.port_range_start + 1
    click.echo(f"\n{total - busy} of {total} ports free")


if __name__ == "__main__":
    cli()
