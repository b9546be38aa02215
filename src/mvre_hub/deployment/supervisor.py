"""Systemd unit management.

Installs and removes a oneshot unit that runs `mvre-hub start` at boot and
`mvre-hub stop` at shutdown for one deployment directory. Both operations
need root and are idempotent.
"""

from __future__ import annotations

import shlex
import shutil
import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

import structlog

from ..errors import ExternalToolFailed, MaterializeIOError, PermissionDenied
from ..shared.paths import SYSTEMD_UNIT_DIR, SYSTEMD_UNIT_NAME
from ..utils import atomic_write, is_root
from .materializer import template_environment

logger = structlog.get_logger(__name__)

UNIT_MODE = 0o644


def cli_command() -> list[str]:
    """Command that runs this tool from a unit file."""
    executable = shutil.which("mvre-hub")
    if executable:
        return [executable]
    return [sys.executable, "-m", "mvre_hub"]


class SystemdSupervisor:
    """Manage the mvre-hub systemd unit."""

    def __init__(
        self,
        unit_dir: Path = SYSTEMD_UNIT_DIR,
        unit_name: str = SYSTEMD_UNIT_NAME,
        *,
        root_check: Callable[[], bool] = is_root,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        """Initialize supervisor integration.

        Args:
            unit_dir: Directory unit files are written to
            unit_name: Unit file name
            root_check: Returns True when running with root privileges
            runner: subprocess.run compatible callable for systemctl
        """
        self.unit_dir = unit_dir
        self.unit_name = unit_name
        self.root_check = root_check
        self.runner = runner

    @property
    def unit_path(self) -> Path:
        return self.unit_dir / self.unit_name

    def is_installed(self) -> bool:
        return self.unit_path.exists()

    def render_unit(self, deploy_dir: Path, config_path: Path) -> str:
        """Render the unit file for a deployment.

        Args:
            deploy_dir: Absolute deployment directory
            config_path: Config file the unit's commands read
        """
        base = [*cli_command(), "--deploy-dir", str(deploy_dir), "--config", str(config_path)]
        template = template_environment().get_template("mvre-hub.service.j2")
        return template.render(
            deploy_dir=str(deploy_dir),
            exec_start=shlex.join([*base, "start"]),
            exec_stop=shlex.join([*base, "stop"]),
        )

    def install(self, deploy_dir: Path, config_path: Path) -> Path:
        """Write and enable the unit.

        Installing again overwrites the unit with fresh content.

        Returns:
            Path of the unit file.

        Raises:
            PermissionDenied: If not running as root.
            ExternalToolFailed: If systemctl fails.
        """
        self._require_root()
        content = self.render_unit(deploy_dir, config_path)
        try:
            atomic_write(self.unit_path, content, mode=UNIT_MODE)
        except OSError as e:
            raise MaterializeIOError(
                message=f"Failed to write unit file {self.unit_path}: {e}", path=self.unit_path
            ) from e

        self._systemctl("daemon-reload")
        self._systemctl("enable", self.unit_name)
        logger.info("service_installed", unit=str(self.unit_path), deploy_dir=str(deploy_dir))
        return self.unit_path

    def remove(self) -> bool:
        """Disable and delete the unit.

        Returns:
            True if a unit was removed, False if none was installed.

        Raises:
            PermissionDenied: If a unit exists and not running as root.
            ExternalToolFailed: If systemctl fails.
        """
        if not self.is_installed():
            logger.debug("service_absent", unit=str(self.unit_path))
            return False

        self._require_root()
        self._systemctl("disable", self.unit_name)
        try:
            self.unit_path.unlink(missing_ok=True)
        except OSError as e:
            raise MaterializeIOError(
                message=f"Failed to remove unit file {self.unit_path}: {e}", path=self.unit_path
            ) from e
        self._systemctl("daemon-reload")
        logger.info("service_removed", unit=str(self.unit_path))
        return True

    def _require_root(self) -> None:
        if not self.root_check():
            raise PermissionDenied(
                message=f"Root privileges required to manage {self.unit_path}. Re-run with sudo.",
                path=self.unit_path,
            )

    def _systemctl(self, *args: str) -> None:
        argv = ["systemctl", *args]
        logger.debug("systemctl_exec", command=" ".join(argv))
        try:
            result = self.runner(argv, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise ExternalToolFailed(
                message="'systemctl' not found. Is systemd available?",
                command=argv,
                returncode=127,
            ) from e

        if result.returncode != 0:
            raise ExternalToolFailed(
                command=argv,
                returncode=result.returncode,
                output=(result.stderr or result.stdout or "").strip(),
            )
