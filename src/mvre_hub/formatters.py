"""CLI output formatting helpers."""

from __future__ import annotations

from typing import Any

import click
import yaml

from .config import SECRET_FIELDS, Configuration, field_names
from .deployment import DeploymentState, LifecycleState, PreflightReport, Severity
from .utils import redact_secret

SEVERITY_MARKS = {
    Severity.PASS: "✓",
    Severity.WARN: "⚠",
    Severity.FAIL: "✗",
}


def print_preflight_report(report: PreflightReport) -> None:
    """Print preflight results.

    Args:
        report: Report from PreflightChecker.run()
    """
    click.echo("Preflight checks:\n")
    for check in report.checks:
        click.echo(f"  {SEVERITY_MARKS[check.severity]} {check.check}: {check.message}")

    click.echo()
    outcome = report.outcome
    if outcome == Severity.PASS:
        click.echo("✓ All checks passed")
    elif outcome == Severity.WARN:
        click.echo(f"⚠ Passed with {len(report.warnings)} warning(s)")
    else:
        strict_note = " (strict: warnings count as failures)" if report.strict else ""
        click.echo(
            f"✗ Failed: {len(report.failures)} failure(s), "
            f"{len(report.warnings)} warning(s){strict_note}"
        )


def print_deployment_state(state: DeploymentState) -> None:
    """Print lifecycle state and compose services."""
    click.echo(f"Deployment: {state.deploy_dir}")
    click.echo(f"State: {state.state.value}")

    if state.state == LifecycleState.UNCONFIGURED:
        click.echo("No deployment found. Run: mvre-hub deploy")
        return
    if state.state == LifecycleState.REMOVED:
        click.echo("Deployment directory is gone. Run: mvre-hub deploy")
        return

    if state.stack is not None and state.stack.message:
        click.echo(f"Compose: {state.stack.message}")
    if state.running_services:
        click.echo("Running services:")
        for svc in state.running_services:
            click.echo(f"  ✓ {svc}")
    if state.stopped_services:
        click.echo("Stopped services:")
        for svc in state.stopped_services:
            click.echo(f"  ✗ {svc}")


def config_display_dict(config: Configuration, show_sources: bool = True) -> dict[str, Any]:
    """Configuration values for display, secrets redacted."""
    data: dict[str, Any] = {}
    for name in field_names():
        value = getattr(config, name)
        if name in SECRET_FIELDS:
            value = redact_secret(value)
        if show_sources:
            data[name] = {"value": value, "source": config.get_source(name)}
        else:
            data[name] = value
    return data


def print_config_yaml(data: dict[str, Any], section: str | None = None) -> None:
    """Print config as YAML.

    Args:
        data: Configuration data
        section: Optional section name for header
    """
    yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False)
    if section:
        click.echo(f"{section}:")
        for line in yaml_str.splitlines():
            click.echo(f"  {line}")
    else:
        click.echo(yaml_str.rstrip("\n"))
