"""Compose tool adapter.

This module wraps the external `docker compose` tool for a deployment
directory: build, up, down, full teardown and status. Failures are raised
as ExternalToolFailed with the command, exit status and output tail; they
are never retried.
"""

from __future__ import annotations

import json
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from ..errors import ExternalToolFailed
from ..shared.paths import compose_file

logger = structlog.get_logger(__name__)

COMPOSE_ENV_VAR = "MVRE_HUB_COMPOSE"
DEFAULT_COMPOSE_COMMAND = ("docker", "compose")

# Services started by `up`; postgres follows through depends_on
UP_SERVICES = ("jupyterhub", "traefik")

# Images built by `build`
BUILD_SERVICES = ("jupyterhub", "user-image")

# Build-only services whose containers exit immediately
BUILD_ONLY_SERVICES = frozenset({"user-image"})

# A crash-looping container still belongs to a started stack
RUNNING_STATES = frozenset({"running", "restarting"})

# Lines of tool output kept in error messages
OUTPUT_TAIL_LINES = 20


def compose_command() -> list[str]:
    """Get the compose command prefix.

    Uses $MVRE_HUB_COMPOSE (e.g. "docker-compose") when set.
    """
    value = os.environ.get(COMPOSE_ENV_VAR, "").strip()
    if value:
        return shlex.split(value)
    return list(DEFAULT_COMPOSE_COMMAND)


class StackState(Enum):
    """State of the compose stack as reported by the tool."""

    NOT_FOUND = "not_found"  # No compose file
    EMPTY = "empty"  # Compose file exists, no containers
    STOPPED = "stopped"  # Containers exist, none running
    PARTIAL = "partial"  # Some services running
    RUNNING = "running"  # All services running
    UNKNOWN = "unknown"  # Tool could not be queried


@dataclass
class StackStatus:
    """Status of the compose stack."""

    state: StackState
    running_services: list[str] = field(default_factory=list)
    stopped_services: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def any_running(self) -> bool:
        return self.state in (StackState.RUNNING, StackState.PARTIAL)


def _output_tail(*streams: str | None) -> str:
    lines: list[str] = []
    for stream in streams:
        if stream:
            lines.extend(stream.rstrip().splitlines())
    return "\n".join(lines[-OUTPUT_TAIL_LINES:])


def _parse_ps_output(output: str) -> list[dict]:
    """Parse `ps --format json` output.

    Newer compose releases print one JSON object per line, older ones a
    single JSON array.
    """
    output = output.strip()
    if not output:
        return []
    if output.startswith("["):
        data = json.loads(output)
        return [entry for entry in data if isinstance(entry, dict)]

    entries = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        entry = json.loads(line)
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


class ComposeStack:
    """Run compose operations against one deployment directory."""

    def __init__(
        self,
        deploy_dir: Path,
        command: list[str] | None = None,
        stream_output: bool = False,
    ):
        """Initialize compose stack.

        Args:
            deploy_dir: Deployment directory (compose working directory)
            command: Compose command prefix (default: compose_command())
            stream_output: Pass tool output through to the terminal instead
                of capturing it
        """
        self.deploy_dir = deploy_dir
        self.compose_file = compose_file(deploy_dir)
        self.command = command or compose_command()
        self.stream_output = stream_output

    def _argv(self, *args: str) -> list[str]:
        return [*self.command, "-f", str(self.compose_file), *args]

    def _run(self, *args: str, capture: bool = False) -> subprocess.CompletedProcess:
        argv = self._argv(*args)
        logger.debug("compose_exec", command=" ".join(argv), cwd=str(self.deploy_dir))

        try:
            if self.stream_output and not capture:
                result = subprocess.run(argv, cwd=self.deploy_dir, text=True)
            else:
                result = subprocess.run(argv, cwd=self.deploy_dir, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise ExternalToolFailed(
                message=f"'{argv[0]}' not found. Is Docker installed?",
                command=argv,
                returncode=127,
            ) from e

        if result.returncode != 0:
            raise ExternalToolFailed(
                command=argv,
                returncode=result.returncode,
                output=_output_tail(result.stdout, result.stderr),
            )
        return result

    def build(self) -> None:
        """Build the hub and user images."""
        self._run("build", *BUILD_SERVICES)
        logger.info("compose_build_complete", deploy_dir=str(self.deploy_dir))

    def up(self) -> None:
        """Start the stack detached, building missing images."""
        self._run("up", "-d", *UP_SERVICES)
        logger.info("compose_up_complete", deploy_dir=str(self.deploy_dir))

    def down(self) -> None:
        """Stop and remove containers; volumes are preserved."""
        self._run("down")
        logger.info("compose_down_complete", deploy_dir=str(self.deploy_dir))

    def teardown(self) -> None:
        """Remove containers, images and volumes of the stack."""
        self._run("down", "-v", "--rmi", "all", "--remove-orphans")
        logger.info("compose_teardown_complete", deploy_dir=str(self.deploy_dir))

    def status(self) -> StackStatus:
        """Get current stack status.

        Returns:
            StackStatus with current state and service information.
        """
        if not self.compose_file.exists():
            return StackStatus(StackState.NOT_FOUND, message=f"No {self.compose_file.name} found")

        try:
            result = self._run("ps", "-a", "--format", "json", capture=True)
        except ExternalToolFailed as e:
            logger.warning("compose_status_unavailable", error=e.message)
            return StackStatus(StackState.UNKNOWN, message=e.message)

        try:
            entries = _parse_ps_output(result.stdout or "")
        except json.JSONDecodeError as e:
            return StackStatus(StackState.UNKNOWN, message=f"Unparsable compose ps output: {e}")

        running: list[str] = []
        stopped: list[str] = []
        for entry in entries:
            name = entry.get("Service", entry.get("Name", "unknown"))
            if name in BUILD_ONLY_SERVICES:
                continue
            if entry.get("State") in RUNNING_STATES:
                running.append(name)
            else:
                stopped.append(name)

        if not running and not stopped:
            return StackStatus(StackState.EMPTY, message="No containers")
        if not running:
            state = StackState.STOPPED
        elif not stopped:
            state = StackState.RUNNING
        else:
            state = StackState.PARTIAL

        return StackStatus(state, sorted(running), sorted(stopped))
