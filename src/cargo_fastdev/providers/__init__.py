"""Provider interfaces for cargo-fastdev."""
from __future__ import annotations

from .runner import (
    BuildToolRunner,
    CommandError,
    CommandFailedError,
    CommandLaunchError,
    CommandRunner,
    SubprocessRunner,
)

__all__ = [
    "BuildToolRunner",
    "CommandError",
    "CommandFailedError",
    "CommandLaunchError",
    "CommandRunner",
    "SubprocessRunner",
]
