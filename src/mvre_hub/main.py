"""CLI main entry point."""

import click

from .commands import clean, config_group, deploy, preflight, service, start, status, stop
from .shared.logging import configure_logging, level_for_verbosity


@click.group()
@click.option(
    "--deploy-dir",
    type=click.Path(file_okay=False),
    envvar="MVRE_HUB_DEPLOY_DIR",
    help="Deployment directory (default: from config, else ./mvre-hub)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    envvar="MVRE_HUB_CONFIG",
    help="Config file path (default: ~/.config/mvre-hub/config.json)",
)
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v, -vv)")
@click.pass_context
def cli(ctx: click.Context, deploy_dir: str | None, config_path: str | None, verbose: int) -> None:
    """Deploy and operate an MVRE JupyterHub on this host."""
    ctx.ensure_object(dict)
    ctx.obj["deploy_dir"] = deploy_dir
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    configure_logging(level_for_verbosity(verbose))


@cli.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    click.echo(f"mvre-hub version {__version__}")


cli.add_command(deploy)
cli.add_command(start)
cli.add_command(stop)
cli.add_command(clean)
cli.add_command(preflight)
cli.add_command(status)
cli.add_command(config_group)
cli.add_command(service)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
