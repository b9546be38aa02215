"""Deployment lifecycle controller.

This module implements the guarded transitions between lifecycle states:

    unconfigured --deploy--> configured --start--> running --stop--> stopped
                                  any --clean --full-ice--> removed

Every transition recomputes the current state first, validates before it
mutates anything and can be re-run after an interruption to converge on the
same end state.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from .. import config as config_store
from ..config import Configuration
from ..errors import (
    ConfigCorrupt,
    ConfirmationRequired,
    MaterializeIOError,
    NotConfigured,
    PreflightFailed,
)
from ..prompts import Prompter
from ..shared.paths import compose_file
from ..utils import utc_now_iso
from .compose import ComposeStack
from .materializer import DeploymentMaterializer, MaterializeResult
from .preflight import CHECK_PORTS, START_CHECKS, PreflightChecker, PreflightReport
from .state import DeploymentState, LifecycleState, StateDetector
from .supervisor import SystemdSupervisor

logger = structlog.get_logger(__name__)


@dataclass
class TransitionResult:
    """Outcome of a lifecycle transition."""

    action: str
    deploy_dir: Path
    previous: LifecycleState
    state: LifecycleState
    changed: bool = True
    report: PreflightReport | None = None


@dataclass
class DeployResult(TransitionResult):
    """Outcome of a deploy."""

    config: Configuration | None = None
    materialized: MaterializeResult | None = None
    service_unit: Path | None = None


def _preflight_error(report: PreflightReport) -> PreflightFailed:
    failing = report.failures or (report.warnings if report.strict else [])
    names = ", ".join(c.identity for c in failing)
    return PreflightFailed(message=f"Preflight checks failed: {names}", report=report)


class LifecycleController:
    """Run lifecycle transitions for one config file."""

    def __init__(
        self,
        config_path: Path,
        deploy_dir_override: Path | str | None = None,
        *,
        prompter: Prompter | None = None,
        checker: PreflightChecker | None = None,
        materializer: DeploymentMaterializer | None = None,
        stack_factory: Callable[[Path], ComposeStack] | None = None,
        supervisor: SystemdSupervisor | None = None,
        stream_output: bool = False,
    ):
        """Initialize lifecycle controller.

        Args:
            config_path: Config file path
            deploy_dir_override: Deployment directory from the command line;
                takes precedence over the persisted value
            prompter: Prompt capability for interactive deploys
            checker: Preflight checker
            materializer: Deployment materializer
            stack_factory: Builds the compose adapter for a directory
            supervisor: Systemd integration
            stream_output: Pass compose output through to the terminal
        """
        self.config_path = config_path
        self.deploy_dir_override = str(deploy_dir_override) if deploy_dir_override else None
        self.prompter = prompter
        self.checker = checker or PreflightChecker()
        self.materializer = materializer or DeploymentMaterializer()
        self.stack_factory = stack_factory or (
            lambda deploy_dir: ComposeStack(deploy_dir, stream_output=stream_output)
        )
        self.supervisor = supervisor or SystemdSupervisor()
        self.detector = StateDetector(self.stack_factory)

    # ── Read-only ─────────────────────────────────────────────

    def _load(self) -> Configuration:
        return config_store.load(self.config_path)

    def _effective(self, persisted: Configuration) -> Configuration:
        """Persisted configuration with the deploy dir override applied."""
        return config_store.merge_tiers(persisted, {"deploy_dir": self.deploy_dir_override})

    def current_config(self) -> Configuration:
        """Merged configuration without validation."""
        return self._effective(self._load())

    def status(self) -> DeploymentState:
        """Derive the current lifecycle state."""
        persisted = self._load()
        effective = self._effective(persisted)
        return self.detector.detect(effective.deploy_path(), persisted)

    def preflight(
        self,
        *,
        strict: bool = False,
        waived: Iterable[str] = (),
        overrides: dict[str, Any] | None = None,
    ) -> PreflightReport:
        """Run every preflight check against the merged configuration.

        Never raises on a failing report; the caller decides.
        """
        persisted = self._load()
        overrides = {"deploy_dir": self.deploy_dir_override, **(overrides or {})}
        effective = config_store.merge_tiers(persisted, overrides)
        current = self.detector.detect(effective.deploy_path(), persisted)
        return self.checker.run(
            effective, waived=self._waivers(waived, current), strict=strict
        )

    def _waivers(self, waived: Iterable[str], current: DeploymentState) -> list[str]:
        waivers = list(waived)
        # A running stack holds its own ports
        if current.state == LifecycleState.RUNNING and CHECK_PORTS not in waivers:
            waivers.append(CHECK_PORTS)
        return waivers

    # ── Transitions ───────────────────────────────────────────

    def deploy(
        self,
        overrides: dict[str, Any] | None = None,
        *,
        interactive: bool = False,
        waived: Iterable[str] = (),
        strict: bool = False,
        install_service: bool = False,
    ) -> DeployResult:
        """Resolve, check, materialize, persist and build.

        Args:
            overrides: Explicit command-line values; None means "not given"
            interactive: Prompt for missing required values
            waived: Preflight checks to skip
            strict: Treat preflight warnings as failures
            install_service: Install the systemd unit afterwards

        Returns:
            DeployResult with the resolved configuration.

        Raises:
            InvalidOAuthConfig, MissingRequiredConfig: Before anything is written.
            PreflightFailed: Before anything is written.
            MaterializeIOError, ConfigWriteFailed: On filesystem errors.
            ExternalToolFailed: If the image build fails; files and config
                are already in place and a re-run converges.
        """
        persisted = self._load()
        overrides = dict(overrides or {})
        if self.deploy_dir_override and overrides.get("deploy_dir") is None:
            overrides["deploy_dir"] = self.deploy_dir_override

        resolved = config_store.resolve(
            persisted, overrides, interactive=interactive, prompter=self.prompter
        )
        deploy_dir = resolved.deploy_path()

        if not resolved.oauth_configured:
            if resolved.allow_dummy_auth:
                logger.warning("dummy_auth_enabled", deploy_dir=str(deploy_dir))
            else:
                logger.warning(
                    "oauth_not_configured",
                    hint="the hub will refuse to start; pass the OAuth options or --allow-dummy-auth",
                )

        current = self.detector.detect(deploy_dir, persisted)
        report = self.checker.run(resolved, waived=self._waivers(waived, current), strict=strict)
        if not report.ok:
            raise _preflight_error(report)

        materialized = self.materializer.materialize(resolved)

        now = utc_now_iso()
        resolved.created_at = persisted.created_at or now
        resolved.last_deployed_at = now
        config_store.save(self.config_path, resolved)

        self.stack_factory(deploy_dir).build()

        service_unit = None
        if install_service:
            service_unit = self.supervisor.install(deploy_dir, self.config_path)

        state = current.state if current.is_deployed else LifecycleState.CONFIGURED
        logger.info("deploy_complete", deploy_dir=str(deploy_dir), profile=resolved.profile)
        return DeployResult(
            action="deploy",
            deploy_dir=deploy_dir,
            previous=current.state,
            state=state,
            report=report,
            config=resolved,
            materialized=materialized,
            service_unit=service_unit,
        )

    def start(self, *, waived: Iterable[str] = (), strict: bool = False) -> TransitionResult:
        """Build if needed and bring the stack up.

        Raises:
            NotConfigured: If nothing is deployed; no tool is invoked.
            PreflightFailed: Before any tool invocation.
            ExternalToolFailed: If build or up fails.
        """
        persisted = self._load()
        effective = self._effective(persisted)
        deploy_dir = effective.deploy_path()

        current = self.detector.detect(deploy_dir, persisted)
        if not current.is_deployed:
            raise NotConfigured(deploy_dir=deploy_dir)

        report = self.checker.run(
            effective,
            checks=START_CHECKS,
            waived=self._waivers(waived, current),
            strict=strict,
        )
        if not report.ok:
            raise _preflight_error(report)

        stack = self.stack_factory(deploy_dir)
        stack.build()
        stack.up()

        logger.info("start_complete", deploy_dir=str(deploy_dir), previous=current.state.value)
        return TransitionResult(
            action="start",
            deploy_dir=deploy_dir,
            previous=current.state,
            state=LifecycleState.RUNNING,
            report=report,
        )

    def stop(self) -> TransitionResult:
        """Stop the stack; a no-op unless it is running."""
        persisted = self._load()
        deploy_dir = self._effective(persisted).deploy_path()

        current = self.detector.detect(deploy_dir, persisted)
        if current.state != LifecycleState.RUNNING:
            logger.info("stop_skipped", deploy_dir=str(deploy_dir), state=current.state.value)
            return TransitionResult(
                action="stop",
                deploy_dir=deploy_dir,
                previous=current.state,
                state=current.state,
                changed=False,
            )

        self.stack_factory(deploy_dir).down()
        logger.info("stop_complete", deploy_dir=str(deploy_dir))
        return TransitionResult(
            action="stop",
            deploy_dir=deploy_dir,
            previous=current.state,
            state=LifecycleState.STOPPED,
        )

    def clean(self, *, full_ice: bool = False) -> TransitionResult:
        """Tear down the stack and remove every trace of the deployment.

        Args:
            full_ice: Explicit confirmation; required

        Raises:
            ConfirmationRequired: Without full_ice, before anything else.
            ExternalToolFailed: If the teardown fails; nothing is removed.
            MaterializeIOError: If the directory cannot be removed.
        """
        if not full_ice:
            raise ConfirmationRequired()

        try:
            persisted = self._load()
        except ConfigCorrupt as e:
            # Removing the deployment must stay possible with a broken config
            logger.warning("config_corrupt_ignored", path=str(self.config_path), error=e.message)
            persisted = Configuration()
        deploy_dir = self._effective(persisted).deploy_path()

        current = self.detector.detect(deploy_dir, persisted)

        if compose_file(deploy_dir).exists():
            self.stack_factory(deploy_dir).teardown()

        if deploy_dir.exists():
            _remove_tree(deploy_dir)

        if self.supervisor.is_installed():
            if self.supervisor.root_check():
                self.supervisor.remove()
            else:
                logger.warning(
                    "service_left_installed",
                    unit=str(self.supervisor.unit_path),
                    hint="re-run 'mvre-hub service remove' as root",
                )

        config_store.delete(self.config_path)

        logger.info("clean_complete", deploy_dir=str(deploy_dir))
        return TransitionResult(
            action="clean",
            deploy_dir=deploy_dir,
            previous=current.state,
            state=LifecycleState.REMOVED,
            changed=current.state != LifecycleState.UNCONFIGURED or current.has_directory,
        )


def _remove_tree(deploy_dir: Path) -> None:
    """Rename the directory away, then delete it.

    After the rename no reader sees a half-deleted deployment.
    """
    try:
        tombstone = Path(
            tempfile.mkdtemp(prefix=f".{deploy_dir.name}.removed-", dir=deploy_dir.parent)
        )
        try:
            os.replace(deploy_dir, tombstone)
        except OSError:
            tombstone.rmdir()
            raise
        shutil.rmtree(tombstone)
    except OSError as e:
        raise MaterializeIOError(
            message=f"Failed to remove {deploy_dir}: {e}", path=deploy_dir
        ) from e
    logger.debug("deploy_dir_removed", deploy_dir=str(deploy_dir))
