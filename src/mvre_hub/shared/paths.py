"""Path management for mvre-hub.

Resolves the config file location and the fixed names inside a
deployment directory.
"""

import os
from pathlib import Path

APP_NAME = "mvre-hub"

# Config file name inside the config directory
CONFIG_FILENAME = "config.json"

# Default deployment directory (relative to the working directory)
DEFAULT_DEPLOY_DIR = Path("./mvre-hub")

# Fixed names inside a deployment directory
COMPOSE_FILENAME = "docker-compose.yml"
ENV_FILENAME = ".env"

# Supervisor unit location
SYSTEMD_UNIT_DIR = Path("/etc/systemd/system")
SYSTEMD_UNIT_NAME = "mvre-hub.service"


def config_dir() -> Path:
    """Get the mvre-hub config directory.

    Returns:
        $XDG_CONFIG_HOME/mvre-hub, or ~/.config/mvre-hub when unset
    """
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def default_config_path() -> Path:
    """Get the default config file path."""
    return config_dir() / CONFIG_FILENAME


def compose_file(deploy_dir: Path) -> Path:
    """Get the compose definition path for a deployment directory."""
    return deploy_dir / COMPOSE_FILENAME
