"""Error taxonomy for mvre-hub.

Every failure surfaced to the operator is a HubError subclass carrying the
process exit code the CLI should terminate with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .deployment.preflight import PreflightReport

# Process exit codes
EXIT_OK = 0
EXIT_PRECONDITION = 1
EXIT_EXTERNAL_TOOL = 2


@dataclass(eq=False)
class HubError(Exception):
    """Base error class for mvre-hub errors."""

    message: str = "mvre-hub error"
    exit_code: int = EXIT_PRECONDITION

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict for structured logging."""
        return {"error": type(self).__name__, "message": self.message, "exit_code": self.exit_code}


@dataclass(eq=False)
class ConfigCorrupt(HubError):
    """Config file exists but cannot be read or parsed."""

    message: str = "Configuration file is corrupt"
    path: Path | None = None


@dataclass(eq=False)
class MissingRequiredConfig(HubError):
    """Required fields are absent and cannot be prompted for."""

    message: str = ""
    fields: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            flags = ", ".join(f"--{name.replace('_', '-')}" for name in self.fields)
            self.message = f"Missing required configuration: {flags}"


@dataclass(eq=False)
class InvalidOAuthConfig(HubError):
    """OAuth settings are partially configured."""

    message: str = ""
    missing: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            names = ", ".join(f"--{name.replace('_', '-')}" for name in self.missing)
            self.message = (
                "OAuth configuration is incomplete: set all OAuth options or none. "
                f"Missing: {names}"
            )


@dataclass(eq=False)
class ConfigWriteFailed(HubError):
    """Persisting the configuration failed."""

    message: str = "Failed to write configuration"
    path: Path | None = None


@dataclass(eq=False)
class PreflightFailed(HubError):
    """Host readiness checks failed."""

    message: str = "Preflight checks failed"
    report: PreflightReport | None = None


@dataclass(eq=False)
class NotConfigured(HubError):
    """No deployment exists in the target directory."""

    message: str = "Deployment not found. Run 'mvre-hub deploy' first."
    deploy_dir: Path | None = None


@dataclass(eq=False)
class ConfirmationRequired(HubError):
    """A destructive operation was requested without explicit confirmation."""

    message: str = "Safety lock engaged. Use --full-ice to confirm cleanup."


@dataclass(eq=False)
class MaterializeIOError(HubError):
    """Writing or removing deployment files failed."""

    message: str = "Failed to write deployment files"
    path: Path | None = None


@dataclass(eq=False)
class ExternalToolFailed(HubError):
    """An external tool (compose, systemctl) exited unsuccessfully."""

    message: str = ""
    exit_code: int = EXIT_EXTERNAL_TOOL
    command: list[str] = field(default_factory=list)
    returncode: int | None = None
    output: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"'{' '.join(self.command)}' exited with status {self.returncode}"
            if self.output:
                self.message += f"\n{self.output}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["command"] = self.command
        data["returncode"] = self.returncode
        return data


@dataclass(eq=False)
class PermissionDenied(HubError):
    """Operation requires elevated privileges."""

    message: str = "Root privileges required. Re-run with sudo."
    path: Path | None = None
