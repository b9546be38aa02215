"""Lifecycle commands: deploy, start, stop, clean, preflight, status.

Each command builds a LifecycleController for the invocation and runs one
transition. Errors are reported by handle_errors.
"""

from __future__ import annotations

import sys

import click

from ..application import create_controller
from ..config import PROFILE_PRODUCTION, PROFILE_STANDARD
from ..decorators import handle_errors
from ..deployment import ALL_CHECKS, LifecycleController
from ..errors import PreflightFailed
from ..formatters import print_deployment_state, print_preflight_report


def _controller(ctx: click.Context) -> LifecycleController:
    return create_controller(
        ctx.obj.get("config_path"),
        ctx.obj.get("deploy_dir"),
        ctx.obj.get("verbose", 0),
    )


strict_option = click.option(
    "--strict", is_flag=True, help="Treat preflight warnings as failures"
)
skip_check_option = click.option(
    "--skip-check",
    "skip_checks",
    multiple=True,
    type=click.Choice(ALL_CHECKS),
    help="Skip a preflight check (repeatable)",
)


@click.command()
@click.option("--domain", default=None, help="Public domain name of the hub")
@click.option("--acme-email", default=None, help="Contact email for ACME (Let's Encrypt)")
@click.option("--client-id", default=None, help="OAuth client ID")
@click.option("--client-secret", default=None, help="OAuth client secret")
@click.option("--oauth-authorize-url", default=None, help="OAuth authorization endpoint")
@click.option("--oauth-token-url", default=None, help="OAuth token endpoint")
@click.option("--oauth-userdata-url", default=None, help="OAuth user info endpoint")
@click.option("--oauth-username-key", default=None, help="Claim used as the hub user name")
@click.option("--dataset-path", default=None, help="Host path of the dataset (mounted read-only)")
@click.option("--shared-path", default=None, help="Host path of shared notebooks")
@click.option("--admin-users", default=None, help="Comma-separated hub admin user names")
@click.option("--user-image", default=None, help="Image tag for single-user servers")
@click.option("--http-port", type=int, default=None, help="Host port for HTTP")
@click.option("--https-port", type=int, default=None, help="Host port for HTTPS")
@click.option("--hub-port", type=int, default=None, help="Host port for the hub (localhost)")
@click.option(
    "--install-notebooks/--no-install-notebooks",
    default=None,
    help="Install the quickstart notebook bundle",
)
@click.option(
    "--allow-missing-dataset/--no-allow-missing-dataset",
    default=None,
    help="Downgrade a missing dataset path to a warning",
)
@click.option(
    "--allow-dummy-auth/--no-allow-dummy-auth",
    default=None,
    help="Use a dummy authenticator when OAuth is not configured (testing only)",
)
@click.option(
    "--production/--standard",
    "production",
    default=None,
    help="Deployment profile (Postgres, resource limits, idle culling)",
)
@click.option("--non-interactive", "-y", is_flag=True, help="Never prompt; fail on missing values")
@strict_option
@skip_check_option
@click.option("--install-service", is_flag=True, help="Install the systemd unit (root)")
@click.pass_context
@handle_errors
def deploy(
    ctx,
    domain,
    acme_email,
    client_id,
    client_secret,
    oauth_authorize_url,
    oauth_token_url,
    oauth_userdata_url,
    oauth_username_key,
    dataset_path,
    shared_path,
    admin_users,
    user_image,
    http_port,
    https_port,
    hub_port,
    install_notebooks,
    allow_missing_dataset,
    allow_dummy_auth,
    production,
    non_interactive,
    strict,
    skip_checks,
    install_service,
):
    """Write the deployment and build its images.

    Values not given on the command line come from the config file, then
    defaults. Missing required values are prompted for unless running
    non-interactively.

    Examples:

        # First deployment
        mvre-hub deploy --domain hub.example.org --acme-email ops@example.org \\
            --dataset-path /srv/mosaic

        # Switch an existing deployment to the production profile
        mvre-hub deploy --production -y
    """
    profile = None
    if production is not None:
        profile = PROFILE_PRODUCTION if production else PROFILE_STANDARD

    overrides = {
        "domain": domain,
        "acme_email": acme_email,
        "client_id": client_id,
        "client_secret": client_secret,
        "oauth_authorize_url": oauth_authorize_url,
        "oauth_token_url": oauth_token_url,
        "oauth_userdata_url": oauth_userdata_url,
        "oauth_username_key": oauth_username_key,
        "dataset_path": dataset_path,
        "shared_path": shared_path,
        "admin_users": admin_users,
        "user_image": user_image,
        "http_port": http_port,
        "https_port": https_port,
        "hub_port": hub_port,
        "install_notebooks": install_notebooks,
        "allow_missing_dataset": allow_missing_dataset,
        "allow_dummy_auth": allow_dummy_auth,
        "profile": profile,
    }
    interactive = not non_interactive and sys.stdin.isatty()

    controller = _controller(ctx)
    try:
        result = controller.deploy(
            overrides,
            interactive=interactive,
            waived=skip_checks,
            strict=strict,
            install_service=install_service,
        )
    except PreflightFailed as e:
        if e.report is not None:
            print_preflight_report(e.report)
        raise

    if result.report is not None and result.report.warnings:
        print_preflight_report(result.report)

    materialized = result.materialized
    click.echo(f"✓ Deployment written to {result.deploy_dir}")
    if materialized is not None:
        click.echo(
            f"  {len(materialized.written)} file(s) written, "
            f"{len(materialized.unchanged)} unchanged"
        )
    if result.config is not None:
        click.echo(f"  Profile: {result.config.profile}")
    click.echo("✓ Images built")
    if result.service_unit is not None:
        click.echo(f"✓ Service installed: {result.service_unit}")
    click.echo("\nNext: mvre-hub start")


@click.command()
@strict_option
@skip_check_option
@click.pass_context
@handle_errors
def start(ctx, strict, skip_checks):
    """Build images if needed and start the stack."""
    controller = _controller(ctx)
    try:
        result = controller.start(waived=skip_checks, strict=strict)
    except PreflightFailed as e:
        if e.report is not None:
            print_preflight_report(e.report)
        raise

    click.echo(f"✓ Stack running ({result.deploy_dir})")


@click.command()
@click.pass_context
@handle_errors
def stop(ctx):
    """Stop the stack; data volumes are kept."""
    result = _controller(ctx).stop()
    if result.changed:
        click.echo("✓ Stack stopped.")
    else:
        click.echo(f"Stack is not running (state: {result.state.value}). Nothing to do.")


@click.command()
@click.option(
    "--full-ice",
    is_flag=True,
    help="Confirm removal of containers, images, volumes, files and config",
)
@click.pass_context
@handle_errors
def clean(ctx, full_ice):
    """Remove the deployment completely.

    Tears down containers, images and volumes, deletes the deployment
    directory, the systemd unit and the config file. Requires --full-ice.
    """
    result = _controller(ctx).clean(full_ice=full_ice)
    click.echo(f"✓ Deployment removed ({result.deploy_dir})")


@click.command()
@strict_option
@skip_check_option
@click.pass_context
@handle_errors
def preflight(ctx, strict, skip_checks):
    """Check host readiness without changing anything."""
    report = _controller(ctx).preflight(strict=strict, waived=skip_checks)
    print_preflight_report(report)
    if not report.ok:
        raise PreflightFailed(report=report)


@click.command()
@click.pass_context
@handle_errors
def status(ctx):
    """Show the lifecycle state and compose services."""
    print_deployment_state(_controller(ctx).status())
