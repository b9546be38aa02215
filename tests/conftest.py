"""Shared test fixtures for mvre-hub tests.

Fixtures build configurations, deployment paths and a LifecycleController
wired to the fakes in tests.mocks, so no test touches docker or systemd.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mvre_hub.config import Configuration
from mvre_hub.deployment import LifecycleController, PreflightChecker, SystemdSupervisor
from tests.mocks import FakePrompter, StackRecorder, make_checker

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the real config directory and environment."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in ("MVRE_HUB_CONFIG", "MVRE_HUB_DEPLOY_DIR", "MVRE_HUB_COMPOSE"):
        monkeypatch.delenv(name, raising=False)
    # The default deploy_dir is relative to the working directory
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def dataset_dir(tmp_path) -> Path:
    path = tmp_path / "dataset"
    path.mkdir()
    (path / "sample.nc").write_text("netcdf")
    return path


@pytest.fixture
def deploy_dir(tmp_path) -> Path:
    return tmp_path / "deploy"


@pytest.fixture
def config_path(tmp_path) -> Path:
    return tmp_path / "config" / "config.json"


@pytest.fixture
def base_config(deploy_dir, dataset_dir) -> Configuration:
    """A resolved standard-profile configuration."""
    return Configuration(
        deploy_dir=str(deploy_dir),
        domain="hub.example.org",
        acme_email="ops@example.org",
        dataset_path=str(dataset_dir),
    )


@pytest.fixture
def oauth_values() -> dict[str, str]:
    return {
        "client_id": "mvre-hub",
        "client_secret": "s3cr3t-client-value",
        "oauth_authorize_url": "https://sso.example.org/auth",
        "oauth_token_url": "https://sso.example.org/token",
        "oauth_userdata_url": "https://sso.example.org/userinfo",
    }


@pytest.fixture
def deploy_values(deploy_dir, dataset_dir) -> dict:
    """Minimal command-line overrides for a successful deploy."""
    return {
        "deploy_dir": str(deploy_dir),
        "domain": "hub.example.org",
        "acme_email": "ops@example.org",
        "dataset_path": str(dataset_dir),
    }


@pytest.fixture
def stack() -> StackRecorder:
    return StackRecorder()


@pytest.fixture
def systemctl() -> MagicMock:
    return MagicMock(return_value=MagicMock(returncode=0, stdout="", stderr=""))


@pytest.fixture
def supervisor(tmp_path, systemctl) -> SystemdSupervisor:
    unit_dir = tmp_path / "systemd"
    unit_dir.mkdir()
    return SystemdSupervisor(unit_dir, root_check=lambda: True, runner=systemctl)


@pytest.fixture
def make_controller(config_path, stack, supervisor):
    """Build a LifecycleController wired to fakes."""

    def _make(checker: PreflightChecker | None = None, **kwargs) -> LifecycleController:
        kwargs.setdefault("prompter", FakePrompter())
        return LifecycleController(
            config_path,
            checker=checker or make_checker(),
            stack_factory=stack.factory,
            supervisor=supervisor,
            **kwargs,
        )

    return _make
