"""Deployment directory rendering.

This module turns a resolved Configuration into the files of a
deployment directory: compose definition, environment file, hub
configuration and image build contexts. Rendering is a pure function of
the configuration; identical input yields byte-identical files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml
from jinja2 import Environment, PackageLoader, StrictUndefined

from ..config import Configuration
from ..errors import MaterializeIOError
from ..shared.paths import COMPOSE_FILENAME, ENV_FILENAME
from ..utils import atomic_write
from .profiles import ProfileSettings, profile_settings

logger = structlog.get_logger(__name__)

NETWORK_NAME = "mvre-hub-network"
PROJECT_NAME = "mvre-hub"
TRAEFIK_IMAGE = "traefik:v2.11"

FILE_MODE = 0o644
SECRET_MODE = 0o600


@dataclass(frozen=True)
class RenderedFile:
    """One rendered artefact."""

    path: Path
    content: str
    mode: int = FILE_MODE
    overwrite: bool = True  # False: seed file, written only if absent

    @property
    def private(self) -> bool:
        return self.mode & 0o077 == 0


@dataclass
class MaterializeResult:
    """Outcome of writing a deployment directory."""

    deploy_dir: Path
    written: list[Path] = field(default_factory=list)
    unchanged: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def template_environment() -> Environment:
    """Jinja2 environment over the packaged templates."""
    env = Environment(
        loader=PackageLoader("mvre_hub", "templates"),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
    )
    env.filters["pyrepr"] = repr
    return env


def dotenv_value(value: str) -> str:
    """Quote a value for the compose .env file.

    Single quotes keep `$`, `#` and spaces literal. Values that contain a
    single quote are double-quoted with `\\`, `"` and `$` escaped.
    """
    if not value:
        return ""
    if "'" not in value:
        return f"'{value}'"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


class DeploymentMaterializer:
    """Render and write the deployment directory."""

    def __init__(self) -> None:
        self._env = template_environment()

    # ── Rendering ─────────────────────────────────────────────

    def render(self, config: Configuration) -> dict[Path, RenderedFile]:
        """Render every file of the deployment.

        Args:
            config: Resolved configuration

        Returns:
            Mapping of absolute path to rendered file, in write order.
        """
        deploy_dir = config.deploy_path()
        profile = profile_settings(config.profile)

        files = [
            RenderedFile(deploy_dir / COMPOSE_FILENAME, self.render_compose(config, profile)),
            RenderedFile(deploy_dir / ENV_FILENAME, self.render_env(config, profile), SECRET_MODE),
            RenderedFile(
                deploy_dir / "hub" / "jupyterhub_config.py",
                self.render_hub_config(config, profile),
            ),
            RenderedFile(deploy_dir / "hub" / "Dockerfile", self._template("hub.Dockerfile")),
            RenderedFile(deploy_dir / "user" / "Dockerfile", self._template("user.Dockerfile")),
            RenderedFile(
                deploy_dir / "user" / "requirements.txt", self._template("user-requirements.txt")
            ),
            RenderedFile(deploy_dir / "traefik" / "acme.json", "{}\n", SECRET_MODE, overwrite=False),
        ]

        shared_host = config.shared_host_path()
        if config.install_notebooks and shared_host is not None:
            context = {"dataset_mount": config.dataset_mount}
            files.append(
                RenderedFile(
                    shared_host / "README.txt",
                    self._template("notebooks/README.txt", **context),
                    overwrite=False,
                )
            )
            files.append(
                RenderedFile(
                    shared_host / "mosaic_quickstart.ipynb",
                    self._template("notebooks/mosaic_quickstart.ipynb", **context),
                    overwrite=False,
                )
            )

        return {f.path: f for f in files}

    def _template(self, name: str, **context: Any) -> str:
        return self._env.get_template(name).render(**context)

    def build_compose_dict(self, config: Configuration, profile: ProfileSettings) -> dict[str, Any]:
        """Build the compose structure."""
        domain = config.domain
        jupyterhub: dict[str, Any] = {
            "build": "./hub",
            "env_file": ENV_FILENAME,
            "volumes": [
                "./hub/jupyterhub_config.py:/etc/jupyterhub/jupyterhub_config.py:ro",
                "./jupyterhub_data:/srv/jupyterhub",
                "/var/run/docker.sock:/var/run/docker.sock",
            ],
            "ports": [f"127.0.0.1:{config.hub_port}:8000"],
            "labels": [
                "traefik.enable=true",
                f"traefik.http.routers.jupyterhub.rule=Host(`{domain}`)",
                "traefik.http.routers.jupyterhub.entrypoints=websecure",
                "traefik.http.routers.jupyterhub.tls=true",
                "traefik.http.routers.jupyterhub.tls.certresolver=letsencrypt",
                "traefik.http.services.jupyterhub.loadbalancer.server.port=8000",
            ],
            "command": ["jupyterhub", "-f", "/etc/jupyterhub/jupyterhub_config.py"],
            "restart": "unless-stopped",
        }

        services: dict[str, Any] = {
            "jupyterhub": jupyterhub,
            "user-image": {
                "build": "./user",
                "image": "${USER_IMAGE}",
                "command": ["true"],
            },
            "traefik": {
                "image": TRAEFIK_IMAGE,
                "command": [
                    "--providers.docker=true",
                    "--providers.docker.exposedbydefault=false",
                    "--entrypoints.web.address=:80",
                    "--entrypoints.web.http.redirections.entrypoint.to=websecure",
                    "--entrypoints.websecure.address=:443",
                    "--certificatesresolvers.letsencrypt.acme.tlschallenge=true",
                    f"--certificatesresolvers.letsencrypt.acme.email={config.acme_email}",
                    "--certificatesresolvers.letsencrypt.acme.storage=/certs/acme.json",
                ],
                "ports": [f"{config.http_port}:80", f"{config.https_port}:443"],
                "volumes": [
                    "./traefik:/certs",
                    "/var/run/docker.sock:/var/run/docker.sock:ro",
                ],
                "restart": "unless-stopped",
            },
        }

        compose_data: dict[str, Any] = {
            "services": services,
            "networks": {
                "default": {"name": NETWORK_NAME},
            },
        }

        if profile.uses_postgres:
            self._add_postgres_service(compose_data, profile)

        return compose_data

    def _add_postgres_service(self, compose_data: dict[str, Any], profile: ProfileSettings) -> None:
        """Add the Postgres hub database."""
        services = compose_data["services"]
        services["jupyterhub"]["depends_on"] = {
            "postgres": {"condition": "service_healthy"},
        }
        services["postgres"] = {
            "image": profile.postgres_image,
            "environment": {
                "POSTGRES_USER": "${DB_USER}",
                "POSTGRES_PASSWORD": "${DB_PASSWORD}",
                "POSTGRES_DB": "${DB_NAME}",
            },
            "volumes": ["postgres_data:/var/lib/postgresql/data"],
            "healthcheck": {
                "test": ["CMD-SHELL", "pg_isready -U ${DB_USER} -d ${DB_NAME}"],
                "interval": "5s",
                "timeout": "3s",
                "retries": 10,
            },
            "restart": "unless-stopped",
        }
        compose_data["volumes"] = {"postgres_data": {}}

    def render_compose(self, config: Configuration, profile: ProfileSettings) -> str:
        compose_data = self.build_compose_dict(config, profile)
        return yaml.dump(compose_data, default_flow_style=False, sort_keys=False)

    def render_env(self, config: Configuration, profile: ProfileSettings) -> str:
        shared_host = config.shared_host_path()
        db_url = ""
        if profile.uses_postgres:
            db_url = (
                f"postgresql://{profile.db_user}:{config.db_password}"
                f"@{profile.db_host}:{profile.db_port}/{profile.db_name}"
            )

        values = {
            "COMPOSE_PROJECT_NAME": PROJECT_NAME,
            "HUB_DOMAIN": config.domain,
            "OAUTH_CLIENT_ID": config.client_id,
            "OAUTH_CLIENT_SECRET": config.client_secret,
            "USER_IMAGE": config.user_image,
            "DATASET_HOST_PATH": str(config.dataset_host_path()),
            "DATASET_MOUNT_PATH": config.dataset_mount,
            "SHARED_HOST_PATH": str(shared_host) if shared_host else "",
            "SHARED_MOUNT_PATH": config.shared_mount,
            "DB_USER": profile.db_user,
            "DB_PASSWORD": config.db_password if profile.uses_postgres else "",
            "DB_NAME": profile.db_name,
            "JUPYTERHUB_DB_URL": db_url,
        }
        return "".join(f"{key}={dotenv_value(value)}\n" for key, value in values.items())

    def render_hub_config(self, config: Configuration, profile: ProfileSettings) -> str:
        shared_host = config.shared_host_path()
        admin_users = sorted({u.strip() for u in config.admin_users.split(",") if u.strip()})
        return self._template(
            "jupyterhub_config.py.j2",
            profile=profile,
            user_image=config.user_image,
            network_name=NETWORK_NAME,
            dataset_host=str(config.dataset_host_path()),
            dataset_mount=config.dataset_mount,
            shared_host=str(shared_host) if shared_host else "",
            shared_mount=config.shared_mount,
            admin_users=admin_users,
            oauth_configured=config.oauth_configured,
            oauth_authorize_url=config.oauth_authorize_url,
            oauth_token_url=config.oauth_token_url,
            oauth_userdata_url=config.oauth_userdata_url,
            oauth_username_key=config.oauth_username_key,
            oauth_callback_url=f"https://{config.domain}/hub/oauth_callback",
            allow_dummy_auth=config.allow_dummy_auth,
        )

    # ── Writing ───────────────────────────────────────────────

    def directories(self, config: Configuration) -> list[Path]:
        """Directories the deployment needs."""
        deploy_dir = config.deploy_path()
        directories = [
            deploy_dir,
            deploy_dir / "hub",
            deploy_dir / "user",
            deploy_dir / "traefik",
            deploy_dir / "jupyterhub_data",
        ]
        shared_host = config.shared_host_path()
        if shared_host is not None:
            directories.append(shared_host)
        return directories

    def materialize(self, config: Configuration) -> MaterializeResult:
        """Write the deployment directory.

        Only the known file set is written; other files in the directory
        are left alone. Files whose content already matches are not
        rewritten.

        Args:
            config: Resolved configuration

        Returns:
            MaterializeResult listing written, unchanged and skipped files.

        Raises:
            MaterializeIOError: On any filesystem failure. Files written
                before the failure keep their new content.
        """
        files = self.render(config)
        result = MaterializeResult(config.deploy_path())

        for directory in self.directories(config):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise MaterializeIOError(
                    message=f"Failed to create directory {directory}: {e}", path=directory
                ) from e

        for rendered in files.values():
            self._write(rendered, result)

        logger.info(
            "materialize_complete",
            deploy_dir=str(result.deploy_dir),
            written=len(result.written),
            unchanged=len(result.unchanged),
            skipped=len(result.skipped),
        )
        return result

    def _write(self, rendered: RenderedFile, result: MaterializeResult) -> None:
        path = rendered.path
        try:
            if path.exists():
                if not rendered.overwrite:
                    result.skipped.append(path)
                    return
                if path.read_text(encoding="utf-8") == rendered.content:
                    # Secret files are tightened back; other modes belong to the operator
                    if rendered.private and (path.stat().st_mode & 0o777) != rendered.mode:
                        path.chmod(rendered.mode)
                    result.unchanged.append(path)
                    return
            atomic_write(path, rendered.content, mode=rendered.mode)
        except (OSError, UnicodeDecodeError) as e:
            raise MaterializeIOError(message=f"Failed to write {path}: {e}", path=path) from e

        logger.debug("file_written", path=str(path))
        result.written.append(path)
