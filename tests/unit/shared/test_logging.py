"""Unit tests for mvre_hub.shared.logging module."""

import logging

import pytest

from mvre_hub.shared.logging import configure_logging, level_for_verbosity


@pytest.mark.parametrize(
    "verbose,level",
    [(0, "warning"), (1, "info"), (2, "debug"), (5, "debug")],
)
def test_level_for_verbosity(verbose, level):
    assert level_for_verbosity(verbose) == level


def test_configure_logging_sets_root_level():
    configure_logging("info")
    assert logging.getLogger().level == logging.INFO

    configure_logging("warning")
    assert logging.getLogger().level == logging.WARNING
