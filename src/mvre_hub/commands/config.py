"""Config commands."""

import click

from ..application import create_controller
from ..decorators import handle_errors
from ..formatters import config_display_dict, print_config_yaml


@click.group("config")
def config_group():
    """Inspect the deployment configuration."""


@config_group.command("show")
@click.option("--no-sources", is_flag=True, help="Hide where each value came from")
@click.pass_context
@handle_errors
def show(ctx, no_sources):
    """Show the effective configuration (secrets redacted)."""
    controller = create_controller(
        ctx.obj.get("config_path"), ctx.obj.get("deploy_dir"), ctx.obj.get("verbose", 0)
    )
    config = controller.current_config()

    click.echo(f"Config file: {controller.config_path}")
    if not controller.config_path.exists():
        click.echo("  (not created yet, showing defaults)")
    click.echo()
    print_config_yaml(config_display_dict(config, show_sources=not no_sources))
