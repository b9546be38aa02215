"""CLI commands for mvre-hub."""

from .config import config_group
from .lifecycle import clean, deploy, preflight, start, status, stop
from .service import service

__all__ = ["clean", "config_group", "deploy", "preflight", "service", "start", "status", "stop"]
