"""Shared modules for mvre-hub.

Paths and logging used by the CLI and the deployment package.
"""

from .logging import configure_logging, level_for_verbosity
from .paths import (
    COMPOSE_FILENAME,
    DEFAULT_DEPLOY_DIR,
    ENV_FILENAME,
    SYSTEMD_UNIT_DIR,
    SYSTEMD_UNIT_NAME,
    compose_file,
    config_dir,
    default_config_path,
)

__all__ = [
    # Paths
    "COMPOSE_FILENAME",
    "DEFAULT_DEPLOY_DIR",
    "ENV_FILENAME",
    "SYSTEMD_UNIT_DIR",
    "SYSTEMD_UNIT_NAME",
    "compose_file",
    "config_dir",
    "default_config_path",
    # Logging
    "configure_logging",
    "level_for_verbosity",
]
