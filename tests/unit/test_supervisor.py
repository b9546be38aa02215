"""Unit tests for systemd unit management."""

from __future__ import annotations

import stat
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from mvre_hub.deployment import SystemdSupervisor
from mvre_hub.deployment.supervisor import cli_command
from mvre_hub.errors import ExternalToolFailed, PermissionDenied


def argv_calls(runner: MagicMock) -> list[list[str]]:
    return [c[0][0] for c in runner.call_args_list]


class TestCliCommand:
    """Tests for cli_command()."""

    def test_installed_script(self):
        with patch("shutil.which", return_value="/usr/local/bin/mvre-hub"):
            assert cli_command() == ["/usr/local/bin/mvre-hub"]

    def test_module_fallback(self):
        with patch("shutil.which", return_value=None):
            assert cli_command() == [sys.executable, "-m", "mvre_hub"]


class TestRenderUnit:
    """Tests for render_unit()."""

    def test_unit_content(self, supervisor, deploy_dir, config_path):
        with patch("shutil.which", return_value="/usr/local/bin/mvre-hub"):
            content = supervisor.render_unit(deploy_dir, config_path)

        base = f"/usr/local/bin/mvre-hub --deploy-dir {deploy_dir} --config {config_path}"
        assert f"ExecStart={base} start" in content
        assert f"ExecStop={base} stop" in content
        assert f"WorkingDirectory={deploy_dir}" in content
        assert "Type=oneshot" in content
        assert "RemainAfterExit=yes" in content
        assert "After=docker.service" in content
        assert "WantedBy=multi-user.target" in content

    def test_paths_with_spaces_are_quoted(self, supervisor, tmp_path, config_path):
        deploy_dir = tmp_path / "my hub"
        with patch("shutil.which", return_value="/usr/local/bin/mvre-hub"):
            content = supervisor.render_unit(deploy_dir, config_path)
        assert f"--deploy-dir '{deploy_dir}'" in content


class TestInstall:
    """Tests for install()."""

    def test_install(self, supervisor, systemctl, deploy_dir, config_path):
        path = supervisor.install(deploy_dir, config_path)

        assert path == supervisor.unit_path
        assert path.is_file()
        assert stat.S_IMODE(path.stat().st_mode) == 0o644
        assert argv_calls(systemctl) == [
            ["systemctl", "daemon-reload"],
            ["systemctl", "enable", "mvre-hub.service"],
        ]

    def test_install_twice(self, supervisor, deploy_dir, config_path):
        """Test reinstalling overwrites the unit with the same content."""
        supervisor.install(deploy_dir, config_path)
        first = supervisor.unit_path.read_text()

        supervisor.install(deploy_dir, config_path)

        assert supervisor.unit_path.read_text() == first

    def test_requires_root(self, tmp_path, systemctl, deploy_dir, config_path):
        supervisor = SystemdSupervisor(tmp_path, root_check=lambda: False, runner=systemctl)

        with pytest.raises(PermissionDenied) as exc_info:
            supervisor.install(deploy_dir, config_path)

        assert exc_info.value.exit_code == 1
        assert not supervisor.is_installed()
        systemctl.assert_not_called()

    def test_systemctl_failure(self, supervisor, systemctl, deploy_dir, config_path):
        systemctl.return_value = MagicMock(
            returncode=1, stdout="", stderr="Failed to connect to bus"
        )

        with pytest.raises(ExternalToolFailed) as exc_info:
            supervisor.install(deploy_dir, config_path)

        assert exc_info.value.exit_code == 2
        assert "Failed to connect to bus" in exc_info.value.output

    def test_systemctl_missing(self, supervisor, systemctl, deploy_dir, config_path):
        systemctl.side_effect = FileNotFoundError("systemctl")

        with pytest.raises(ExternalToolFailed) as exc_info:
            supervisor.install(deploy_dir, config_path)

        assert exc_info.value.returncode == 127


class TestRemove:
    """Tests for remove()."""

    def test_remove_when_absent(self, supervisor, systemctl):
        assert supervisor.remove() is False
        systemctl.assert_not_called()

    def test_remove_when_absent_without_root(self, tmp_path, systemctl):
        """Test removing nothing succeeds even without privileges."""
        supervisor = SystemdSupervisor(tmp_path, root_check=lambda: False, runner=systemctl)
        assert supervisor.remove() is False

    def test_remove(self, supervisor, systemctl, deploy_dir, config_path):
        supervisor.install(deploy_dir, config_path)
        systemctl.reset_mock()
        seen_on_disable: list[bool] = []

        def record(argv, **kwargs):
            if argv[1] == "disable":
                seen_on_disable.append(supervisor.unit_path.exists())
            return MagicMock(returncode=0, stdout="", stderr="")

        systemctl.side_effect = record

        assert supervisor.remove() is True

        assert not supervisor.is_installed()
        assert argv_calls(systemctl) == [
            ["systemctl", "disable", "mvre-hub.service"],
            ["systemctl", "daemon-reload"],
        ]
        # Disabled while the unit file still existed
        assert seen_on_disable == [True]

    def test_remove_requires_root(self, supervisor, systemctl, deploy_dir, config_path):
        supervisor.install(deploy_dir, config_path)
        supervisor.root_check = lambda: False

        with pytest.raises(PermissionDenied):
            supervisor.remove()

        assert supervisor.is_installed()


class TestUnitPath:
    def test_default_location(self):
        supervisor = SystemdSupervisor()
        assert supervisor.unit_path == Path("/etc/systemd/system/mvre-hub.service")
