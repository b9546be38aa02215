"""Systemd service commands."""

import click

from ..application import create_controller
from ..decorators import handle_errors
from ..errors import NotConfigured


@click.group()
def service():
    """Manage the systemd unit that starts the stack at boot."""


@service.command()
@click.pass_context
@handle_errors
def install(ctx):
    """Install and enable the unit (requires root)."""
    controller = create_controller(
        ctx.obj.get("config_path"), ctx.obj.get("deploy_dir"), ctx.obj.get("verbose", 0)
    )
    state = controller.status()
    if not state.is_deployed:
        raise NotConfigured(deploy_dir=state.deploy_dir)

    unit_path = controller.supervisor.install(state.deploy_dir, controller.config_path)
    click.echo(f"✓ Service installed: {unit_path}")


@service.command()
@click.pass_context
@handle_errors
def remove(ctx):
    """Disable and remove the unit (requires root)."""
    controller = create_controller(
        ctx.obj.get("config_path"), ctx.obj.get("deploy_dir"), ctx.obj.get("verbose", 0)
    )
    if controller.supervisor.remove():
        click.echo(f"✓ Service removed: {controller.supervisor.unit_path}")
    else:
        click.echo("Service not installed. Nothing to do.")
