"""Deployment configuration store.

Handles the persisted deployment configuration (a JSON document, by default
at ~/.config/mvre-hub/config.json) and its resolution against defaults and
command-line overrides.

Precedence (highest to lowest):
1. Command-line flags
2. Config file
3. Defaults
"""

from __future__ import annotations

import json
import os
import secrets
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import structlog

from .errors import ConfigCorrupt, ConfigWriteFailed, InvalidOAuthConfig, MissingRequiredConfig
from .prompts import Prompter
from .shared.paths import DEFAULT_DEPLOY_DIR
from .utils import atomic_write

logger = structlog.get_logger(__name__)

PROFILE_STANDARD = "standard"
PROFILE_PRODUCTION = "production"
PROFILES = (PROFILE_STANDARD, PROFILE_PRODUCTION)

# Must be non-empty for a deploy
REQUIRED_FIELDS = ("domain", "acme_email", "dataset_path")

# All set or all empty
OAUTH_FIELDS = (
    "client_id",
    "client_secret",
    "oauth_authorize_url",
    "oauth_token_url",
    "oauth_userdata_url",
)

SECRET_FIELDS = frozenset({"client_secret", "db_password"})

PROMPT_LABELS = {
    "domain": "Domain name (e.g., hub.example.org)",
    "acme_email": "ACME email (for TLS)",
    "dataset_path": "Dataset host path",
}

# Value sources
SOURCE_DEFAULT = "default"
SOURCE_FILE = "config file"
SOURCE_CLI = "command line"
SOURCE_PROMPT = "prompt"
SOURCE_GENERATED = "generated"


@dataclass
class Configuration:
    """Parameter set for one deployment."""

    deploy_dir: str = str(DEFAULT_DEPLOY_DIR)
    domain: str = ""
    acme_email: str = ""
    client_id: str = ""
    client_secret: str = ""
    oauth_authorize_url: str = ""
    oauth_token_url: str = ""
    oauth_userdata_url: str = ""
    oauth_username_key: str = "preferred_username"
    dataset_path: str = ""
    dataset_mount: str = "/data/mosaic"
    shared_path: str = ""
    shared_mount: str = "/home/jovyan/shared"
    admin_users: str = ""
    user_image: str = "mvre-user:latest"
    profile: str = PROFILE_STANDARD
    db_password: str = ""
    install_notebooks: bool = False
    allow_missing_dataset: bool = False
    allow_dummy_auth: bool = False
    http_port: int = 8080
    https_port: int = 8443
    hub_port: int = 8000
    created_at: str | None = None
    last_deployed_at: str | None = None

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, repr=False, compare=False)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, SOURCE_DEFAULT)

    @property
    def oauth_configured(self) -> bool:
        """True when every OAuth field is set."""
        return all(getattr(self, name) for name in OAUTH_FIELDS)

    def deploy_path(self, base_dir: Path | None = None) -> Path:
        """Absolute deployment directory.

        Args:
            base_dir: Directory relative paths are anchored at (default: cwd)
        """
        path = Path(self.deploy_dir).expanduser()
        if not path.is_absolute():
            path = (base_dir or Path.cwd()) / path
        return Path(os.path.abspath(path))

    def dataset_host_path(self) -> Path:
        """Dataset path on the host, relative paths anchored at the deploy dir."""
        path = Path(self.dataset_path).expanduser()
        if path.is_absolute():
            return path
        return self.deploy_path() / path

    def shared_host_path(self) -> Path | None:
        """Shared notebooks host path, if any.

        Installing notebooks without an explicit shared path uses
        <deploy_dir>/shared.
        """
        if self.shared_path:
            path = Path(self.shared_path).expanduser()
            return path if path.is_absolute() else self.deploy_path() / path
        if self.install_notebooks:
            return self.deploy_path() / "shared"
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serializable field values, without source tracking."""
        return {name: getattr(self, name) for name in field_names()}


def field_names() -> list[str]:
    """Names of persisted Configuration fields, in declaration order."""
    return [f.name for f in fields(Configuration) if not f.name.startswith("_")]


def _expected_type(name: str) -> type:
    default = Configuration.__dataclass_fields__[name].default
    return str if default is None else type(default)


def _check_type(name: str, value: Any) -> bool:
    expected = _expected_type(name)
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, expected)


def load(path: Path) -> Configuration:
    """Load a persisted configuration.

    Unknown keys are ignored and missing keys keep their defaults, so files
    written by other versions stay readable.

    Args:
        path: Config file path

    Returns:
        Configuration with sources marked "config file" for persisted values,
        or an all-defaults Configuration if the file does not exist.

    Raises:
        ConfigCorrupt: If the file exists but cannot be read or parsed.
    """
    config = Configuration()
    if not path.exists():
        logger.debug("config_absent", path=str(path))
        return config

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigCorrupt(message=f"Failed to read config at {path}: {e}", path=path) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigCorrupt(message=f"Failed to parse config at {path}: {e}", path=path) from e

    if not isinstance(data, dict):
        raise ConfigCorrupt(message=f"Config at {path} is not a JSON object", path=path)

    sources: dict[str, str] = {}
    for name in field_names():
        if name not in data or data[name] is None:
            continue
        value = data[name]
        if not _check_type(name, value):
            raise ConfigCorrupt(
                message=(
                    f"Invalid value for '{name}' in {path}: "
                    f"expected {_expected_type(name).__name__}, got {type(value).__name__}"
                ),
                path=path,
            )
        setattr(config, name, value)
        sources[name] = SOURCE_FILE

    if config.profile not in PROFILES:
        raise ConfigCorrupt(
            message=f"Invalid profile '{config.profile}' in {path} (expected one of {', '.join(PROFILES)})",
            path=path,
        )

    config._sources = sources
    logger.debug("config_loaded", path=str(path), fields=len(sources))
    return config


def merge_tiers(
    persisted: Configuration,
    overrides: dict[str, Any],
    defaults: Configuration | None = None,
) -> Configuration:
    """Merge defaults < persisted < overrides without validating.

    Args:
        persisted: Configuration returned by load()
        overrides: Explicit command-line values; None means "not given"
        defaults: Default tier (default: Configuration())

    Returns:
        New Configuration with per-field sources.
    """
    names = field_names()
    config = replace(defaults) if defaults is not None else Configuration()
    sources = {name: SOURCE_DEFAULT for name in names}

    for name in names:
        if persisted.get_source(name) == SOURCE_FILE:
            setattr(config, name, getattr(persisted, name))
            sources[name] = SOURCE_FILE

    for name, value in overrides.items():
        if value is None:
            continue
        if name not in sources:
            raise ValueError(f"Unknown configuration field: {name}")
        setattr(config, name, value)
        sources[name] = SOURCE_CLI

    config._sources = sources
    return config


def missing_required(config: Configuration) -> list[str]:
    """Required fields that are empty."""
    return [name for name in REQUIRED_FIELDS if not str(getattr(config, name)).strip()]


def validate_oauth(config: Configuration) -> None:
    """Enforce OAuth all-or-nothing.

    Raises:
        InvalidOAuthConfig: If some but not all OAuth fields are set.
    """
    present = [name for name in OAUTH_FIELDS if getattr(config, name)]
    if present and len(present) != len(OAUTH_FIELDS):
        missing = [name for name in OAUTH_FIELDS if name not in present]
        raise InvalidOAuthConfig(missing=missing)


def resolve(
    persisted: Configuration,
    overrides: dict[str, Any],
    *,
    interactive: bool,
    prompter: Prompter | None = None,
    defaults: Configuration | None = None,
) -> Configuration:
    """Resolve a complete configuration for a deploy.

    Args:
        persisted: Configuration returned by load()
        overrides: Explicit command-line values; None means "not given"
        interactive: Prompt for missing required values instead of failing
        prompter: Prompt capability used when interactive
        defaults: Default tier (default: Configuration())

    Returns:
        Validated Configuration with an absolute deploy_dir.

    Raises:
        InvalidOAuthConfig: If OAuth is partially configured.
        MissingRequiredConfig: If required values are absent and cannot be
            prompted for; names every absent field.
    """
    config = merge_tiers(persisted, overrides, defaults)

    validate_oauth(config)

    missing = missing_required(config)
    if missing and interactive:
        if prompter is None:
            raise ValueError("interactive resolution requires a prompter")
        for name in missing:
            value = prompter.ask(PROMPT_LABELS[name], secret=name in SECRET_FIELDS)
            if value:
                setattr(config, name, value)
                config._sources[name] = SOURCE_PROMPT
        missing = missing_required(config)

    if missing:
        raise MissingRequiredConfig(fields=missing)

    if config.profile not in PROFILES:
        raise ValueError(f"Unknown profile: {config.profile}")

    if config.profile == PROFILE_PRODUCTION and not config.db_password:
        config.db_password = secrets.token_urlsafe(24)
        config._sources["db_password"] = SOURCE_GENERATED
        logger.info("db_password_generated")

    config.deploy_dir = str(config.deploy_path())
    return config


def save(path: Path, config: Configuration) -> None:
    """Persist a configuration atomically.

    Args:
        path: Config file path
        config: Configuration to write

    Raises:
        ConfigWriteFailed: On any filesystem error; the previous file is intact.
    """
    content = json.dumps(config.to_dict(), indent=2) + "\n"
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        atomic_write(path, content, mode=0o600)
    except OSError as e:
        raise ConfigWriteFailed(message=f"Failed to write config to {path}: {e}", path=path) from e
    logger.info("config_saved", path=str(path))


def delete(path: Path) -> bool:
    """Remove the config file.

    Returns:
        True if a file was removed, False if it did not exist

    Raises:
        ConfigWriteFailed: If the file exists but cannot be removed.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise ConfigWriteFailed(message=f"Failed to remove config {path}: {e}", path=path) from e
    logger.info("config_deleted", path=str(path))
    return True
