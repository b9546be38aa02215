"""Command decorators.

This module maps library errors to operator-facing output and process exit
codes, so commands only deal with the success path.
"""

from functools import wraps
from typing import Callable

import structlog
from rich.console import Console
from rich.markup import escape

from .errors import EXIT_PRECONDITION, HubError

console = Console(stderr=True, highlight=False)

logger = structlog.get_logger(__name__)


def print_error(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)


def handle_errors(func: Callable):
    """Decorator that turns HubError into an error message and exit code.

    KeyboardInterrupt (a cancelled prompt) exits with the precondition code.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except HubError as e:
            logger.debug("command_failed", **e.to_dict())
            print_error(e.message)
            raise SystemExit(e.exit_code) from e
        except KeyboardInterrupt as e:
            print_error("Aborted.")
            raise SystemExit(EXIT_PRECONDITION) from e

    return wrapper

