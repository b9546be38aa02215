"""Deployment package for the MVRE hub stack.

This package implements the deployment lifecycle:
1. Checks host readiness (compose binary, ports, dataset, DNS)
2. Renders the deployment directory (compose, .env, hub config, images)
3. Drives docker compose to build, start, stop and tear down the stack
4. Optionally installs a systemd unit that starts the stack at boot
"""

from .compose import ComposeStack, StackState, StackStatus, compose_command
from .lifecycle import DeployResult, LifecycleController, TransitionResult
from .materializer import DeploymentMaterializer, MaterializeResult, RenderedFile
from .preflight import (
    ALL_CHECKS,
    START_CHECKS,
    CheckResult,
    ComposeDetector,
    DomainResolver,
    PortScanner,
    PortStatus,
    PreflightChecker,
    PreflightReport,
    Severity,
)
from .profiles import Profile, ProfileSettings, profile_settings
from .state import DeploymentState, LifecycleState, StateDetector
from .supervisor import SystemdSupervisor

__all__ = [
    # Preflight
    "ALL_CHECKS",
    "START_CHECKS",
    "CheckResult",
    "ComposeDetector",
    "DomainResolver",
    "PortScanner",
    "PortStatus",
    "PreflightChecker",
    "PreflightReport",
    "Severity",
    # Profiles
    "Profile",
    "ProfileSettings",
    "profile_settings",
    # Rendering
    "DeploymentMaterializer",
    "MaterializeResult",
    "RenderedFile",
    # Compose
    "ComposeStack",
    "StackState",
    "StackStatus",
    "compose_command",
    # State
    "DeploymentState",
    "LifecycleState",
    "StateDetector",
    # Lifecycle
    "DeployResult",
    "LifecycleController",
    "TransitionResult",
    # Supervisor
    "SystemdSupervisor",
]
