"""Test mocks for mvre-hub.

Provides fake implementations for testing:
- StackRecorder / FakeStack: compose operations without docker
- FakeComposeDetector, FakePortScanner, FakeResolver: preflight probes
- FakePrompter: scripted interactive answers
"""

from .fakes import (
    FakeComposeDetector,
    FakePortScanner,
    FakePrompter,
    FakeResolver,
    FakeStack,
    StackRecorder,
    make_checker,
)

__all__ = [
    "FakeComposeDetector",
    "FakePortScanner",
    "FakePrompter",
    "FakeResolver",
    "FakeStack",
    "StackRecorder",
    "make_checker",
]
