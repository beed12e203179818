"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
from pathlib import Path

import pytest


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip real-time tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user config and logs out of the test run."""
    for key in list(os.environ):
        if key.startswith("CARGO_FASTDEV_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CARGO_FASTDEV_CONFIG_FILE", str(tmp_path / "missing-config.yml"))
    monkeypatch.setenv("CARGO_FASTDEV_LOGS_DIR", str(tmp_path / "logs"))
