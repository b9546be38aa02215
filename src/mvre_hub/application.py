"""Component wiring for CLI commands."""

from pathlib import Path

from .deployment import LifecycleController, SystemdSupervisor
from .prompts import QuestionaryPrompter
from .shared.paths import default_config_path


def resolve_config_path(config_path: str | Path | None) -> Path:
    """Config file path from --config / $MVRE_HUB_CONFIG, else the default."""
    if config_path:
        return Path(config_path).expanduser()
    return default_config_path()


def create_controller(
    config_path: str | Path | None = None,
    deploy_dir: str | Path | None = None,
    verbose: int = 0,
) -> LifecycleController:
    """Build a lifecycle controller for the current invocation.

    Args:
        config_path: Config file path (default: default_config_path())
        deploy_dir: Deployment directory override
        verbose: -v count; compose output is streamed from 1 upwards
    """
    return LifecycleController(
        resolve_config_path(config_path),
        deploy_dir,
        prompter=QuestionaryPrompter(),
        supervisor=SystemdSupervisor(),
        stream_output=verbose >= 1,
    )
