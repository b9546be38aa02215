"""Lifecycle state detection.

The lifecycle state is never stored. It is recomputed on every invocation
from the deployment directory, the persisted configuration and what the
compose tool reports.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from ..config import SOURCE_FILE, Configuration
from ..shared.paths import compose_file
from .compose import ComposeStack, StackState, StackStatus

logger = structlog.get_logger(__name__)


class LifecycleState(Enum):
    """Derived state of a deployment."""

    UNCONFIGURED = "unconfigured"  # No directory or no compose file
    CONFIGURED = "configured"  # Materialized, no containers
    RUNNING = "running"  # At least one service running
    STOPPED = "stopped"  # Containers exist, none running
    REMOVED = "removed"  # Directory gone, config still names it


@dataclass
class DeploymentState:
    """Current state of a deployment directory."""

    state: LifecycleState
    deploy_dir: Path
    has_directory: bool = False
    has_compose_file: bool = False
    stack: StackStatus | None = None
    running_services: list[str] = field(default_factory=list)
    stopped_services: list[str] = field(default_factory=list)

    @property
    def is_deployed(self) -> bool:
        return self.state in (
            LifecycleState.CONFIGURED,
            LifecycleState.RUNNING,
            LifecycleState.STOPPED,
        )


class StateDetector:
    """Infer the lifecycle state of a deployment directory."""

    def __init__(self, stack_factory: Callable[[Path], ComposeStack] = ComposeStack):
        """Initialize state detector.

        Args:
            stack_factory: Builds the compose adapter for a directory
        """
        self.stack_factory = stack_factory

    def detect(self, deploy_dir: Path, persisted: Configuration | None = None) -> DeploymentState:
        """Detect current deployment state.

        Args:
            deploy_dir: Absolute deployment directory
            persisted: Configuration as loaded from the config file, used to
                tell a removed deployment from one that never existed

        Returns:
            DeploymentState; the compose tool is only queried when a compose
            file exists.
        """
        result = DeploymentState(LifecycleState.UNCONFIGURED, deploy_dir)
        result.has_directory = deploy_dir.is_dir()

        if not result.has_directory:
            if persisted is not None and _names_directory(persisted, deploy_dir):
                result.state = LifecycleState.REMOVED
            logger.debug("state_detected", deploy_dir=str(deploy_dir), state=result.state.value)
            return result

        result.has_compose_file = compose_file(deploy_dir).exists()
        if not result.has_compose_file:
            logger.debug("state_detected", deploy_dir=str(deploy_dir), state=result.state.value)
            return result

        status = self.stack_factory(deploy_dir).status()
        result.stack = status
        result.running_services = status.running_services
        result.stopped_services = status.stopped_services

        if status.any_running:
            result.state = LifecycleState.RUNNING
        elif status.state == StackState.STOPPED:
            result.state = LifecycleState.STOPPED
        else:
            # EMPTY or UNKNOWN
            result.state = LifecycleState.CONFIGURED

        logger.debug(
            "state_detected",
            deploy_dir=str(deploy_dir),
            state=result.state.value,
            stack=status.state.value,
        )
        return result


def _names_directory(persisted: Configuration, deploy_dir: Path) -> bool:
    if persisted.get_source("deploy_dir") != SOURCE_FILE:
        return False
    return persisted.deploy_path() == deploy_dir
