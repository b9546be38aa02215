"""Preflight readiness checks.

This module validates host readiness before a mutating lifecycle
transition: compose binary, port availability, dataset path and DNS.
Checks only report; they never change host state.
"""

from __future__ import annotations

import errno
import os
import shutil
import socket
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..config import Configuration
from .compose import compose_command

logger = structlog.get_logger(__name__)

CHECK_COMPOSE = "compose"
CHECK_PORTS = "ports"
CHECK_DATASET = "dataset"
CHECK_DNS = "dns"

# Execution order
ALL_CHECKS = (CHECK_COMPOSE, CHECK_PORTS, CHECK_DATASET, CHECK_DNS)

# Checks re-run by `start`
START_CHECKS = (CHECK_COMPOSE, CHECK_PORTS)


class Severity(Enum):
    """Outcome of a single check."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass
class CheckResult:
    """Result of one preflight check."""

    check: str
    severity: Severity
    message: str
    target: str | None = None

    @property
    def identity(self) -> str:
        return f"{self.check}:{self.target}" if self.target else self.check


@dataclass
class PreflightReport:
    """Ordered preflight results for one invocation."""

    checks: list[CheckResult] = field(default_factory=list)
    strict: bool = False

    def add(
        self, check: str, severity: Severity, message: str, target: str | None = None
    ) -> CheckResult:
        result = CheckResult(check, severity, message, target)
        self.checks.append(result)
        return result

    @property
    def failures(self) -> list[CheckResult]:
        return [c for c in self.checks if c.severity == Severity.FAIL]

    @property
    def warnings(self) -> list[CheckResult]:
        return [c for c in self.checks if c.severity == Severity.WARN]

    @property
    def outcome(self) -> Severity:
        """Overall outcome; warnings count as failures in strict mode."""
        if self.failures:
            return Severity.FAIL
        if self.warnings:
            return Severity.FAIL if self.strict else Severity.WARN
        return Severity.PASS

    @property
    def ok(self) -> bool:
        return self.outcome != Severity.FAIL


@dataclass
class ComposeInfo:
    """Compose binary detection result."""

    available: bool
    version: str | None = None
    timed_out: bool = False
    error: str | None = None


class ComposeDetector:
    """Detect the external compose tool."""

    def __init__(self, command: list[str] | None = None, timeout: float = 10.0):
        """Initialize detector.

        Args:
            command: Compose command prefix (default: from compose_command())
            timeout: Seconds to wait for the version probe
        """
        self.command = command or compose_command()
        self.timeout = timeout

    def detect(self) -> ComposeInfo:
        """Check that the compose binary resolves and answers."""
        binary = self.command[0]
        if not shutil.which(binary):
            return ComposeInfo(
                available=False,
                error=f"'{binary}' not found on PATH. Install Docker: https://docs.docker.com/get-docker/",
            )

        try:
            result = subprocess.run(
                [*self.command, "version", "--short"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return ComposeInfo(available=True, timed_out=True, error="compose version timed out")
        except OSError as e:
            return ComposeInfo(available=False, error=str(e))

        if result.returncode != 0:
            return ComposeInfo(
                available=False,
                error=f"'{' '.join(self.command)}' not usable: {result.stderr.strip()}",
            )

        return ComposeInfo(available=True, version=result.stdout.strip())


@dataclass
class PortStatus:
    """Result of a port availability probe.

    available is None when the probe itself could not be performed.
    """

    port: int
    available: bool | None
    service_name: str | None = None
    error: str | None = None


class PortScanner:
    """Check port availability on localhost."""

    def __init__(self, timeout: float = 1.0):
        self.timeout = timeout

    def check_ports(self, ports: dict[int, str]) -> list[PortStatus]:
        """Check if ports are available.

        Args:
            ports: dict of {port_number: service_name}

        Returns:
            List of PortStatus for each checked port.
        """
        return [self._probe(port, service) for port, service in ports.items()]

    def _probe(self, port: int, service: str) -> PortStatus:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.settimeout(self.timeout)
                result = sock.connect_ex(("127.0.0.1", port))
        except OSError as e:
            return PortStatus(port, None, service, error=str(e))

        if result == 0:
            return PortStatus(port, False, service)
        if result == errno.ECONNREFUSED:
            return PortStatus(port, True, service)
        return PortStatus(port, None, service, error=os.strerror(result))


@dataclass
class DnsResult:
    """Result of a domain lookup."""

    resolved: bool
    addresses: list[str] = field(default_factory=list)
    timed_out: bool = False
    error: str | None = None


class DomainResolver:
    """Resolve a domain name with a bounded wait."""

    def __init__(self, timeout: float = 3.0):
        self.timeout = timeout

    def resolve(self, domain: str) -> DnsResult:
        """Look up a domain, giving up after the timeout.

        The lookup runs on a daemon thread: an abandoned lookup never keeps
        the process from exiting.
        """
        outcome: dict[str, object] = {}

        def lookup() -> None:
            try:
                outcome["infos"] = socket.getaddrinfo(domain, None)
            except OSError as e:
                outcome["error"] = e

        worker = threading.Thread(target=lookup, name="dns-lookup", daemon=True)
        worker.start()
        worker.join(self.timeout)

        if worker.is_alive():
            return DnsResult(
                False, timed_out=True, error=f"lookup timed out after {self.timeout:g}s"
            )
        if "error" in outcome:
            return DnsResult(False, error=str(outcome["error"]))

        addresses = sorted({info[4][0] for info in outcome["infos"]})
        return DnsResult(True, addresses)


class PreflightChecker:
    """Run preflight checks against a configuration."""

    def __init__(
        self,
        compose_detector: ComposeDetector | None = None,
        port_scanner: PortScanner | None = None,
        resolver: DomainResolver | None = None,
    ):
        self.compose_detector = compose_detector or ComposeDetector()
        self.port_scanner = port_scanner or PortScanner()
        self.resolver = resolver or DomainResolver()

    def run(
        self,
        config: Configuration,
        *,
        checks: tuple[str, ...] | None = None,
        waived: tuple[str, ...] | list[str] = (),
        strict: bool = False,
    ) -> PreflightReport:
        """Build a preflight report.

        Args:
            config: Configuration to check
            checks: Restrict to these checks (default: all)
            waived: Checks to skip; reported as passed
            strict: Promote warnings to an overall failure

        Returns:
            PreflightReport with one or more results per check.
        """
        unknown = set(waived) - set(ALL_CHECKS)
        if unknown:
            raise ValueError(f"Unknown preflight checks: {', '.join(sorted(unknown))}")

        report = PreflightReport(strict=strict)
        handlers = {
            CHECK_COMPOSE: self._check_compose,
            CHECK_PORTS: self._check_ports,
            CHECK_DATASET: self._check_dataset,
            CHECK_DNS: self._check_dns,
        }

        for name in ALL_CHECKS:
            if checks is not None and name not in checks:
                continue
            if name in waived:
                report.add(name, Severity.PASS, "waived")
                continue
            handlers[name](config, report)

        logger.info(
            "preflight_complete",
            outcome=report.outcome.value,
            failures=[c.identity for c in report.failures],
            warnings=[c.identity for c in report.warnings],
        )
        return report

    def _check_compose(self, config: Configuration, report: PreflightReport) -> None:
        info = self.compose_detector.detect()
        if info.timed_out:
            report.add(CHECK_COMPOSE, Severity.WARN, info.error or "compose did not answer")
        elif not info.available:
            report.add(CHECK_COMPOSE, Severity.FAIL, info.error or "compose not available")
        else:
            report.add(CHECK_COMPOSE, Severity.PASS, f"compose {info.version or 'available'}")

    def _check_ports(self, config: Configuration, report: PreflightReport) -> None:
        ports = {
            config.hub_port: "jupyterhub",
            config.http_port: "traefik (http)",
            config.https_port: "traefik (https)",
        }
        for status in self.port_scanner.check_ports(ports):
            target = str(status.port)
            label = f"Port {status.port} ({status.service_name})"
            if status.available is None:
                report.add(
                    CHECK_PORTS, Severity.WARN, f"{label}: could not probe ({status.error})", target
                )
            elif status.available:
                report.add(CHECK_PORTS, Severity.PASS, f"{label}: available", target)
            else:
                report.add(CHECK_PORTS, Severity.FAIL, f"{label}: in use", target)

    def _check_dataset(self, config: Configuration, report: PreflightReport) -> None:
        waiver = config.allow_missing_dataset
        missing_severity = Severity.WARN if waiver else Severity.FAIL
        suffix = " (allowed by --allow-missing-dataset)" if waiver else ""

        if not config.dataset_path:
            report.add(CHECK_DATASET, missing_severity, f"Dataset path not configured{suffix}")
            return

        path = config.dataset_host_path()
        if not path.exists():
            report.add(CHECK_DATASET, missing_severity, f"Dataset path does not exist: {path}{suffix}")
        elif not os.access(path, os.R_OK):
            report.add(CHECK_DATASET, missing_severity, f"Dataset path is not readable: {path}{suffix}")
        else:
            report.add(CHECK_DATASET, Severity.PASS, f"Dataset path: {path}")

    def _check_dns(self, config: Configuration, report: PreflightReport) -> None:
        if not config.domain:
            report.add(CHECK_DNS, Severity.WARN, "Domain not configured")
            return

        result = self.resolver.resolve(config.domain)
        if result.resolved:
            report.add(CHECK_DNS, Severity.PASS, f"{config.domain} -> {', '.join(result.addresses)}")
        else:
            report.add(CHECK_DNS, Severity.WARN, f"{config.domain} does not resolve: {result.error}")
