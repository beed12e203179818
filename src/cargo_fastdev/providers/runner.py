"""Subprocess runners for build commands."""
from __future__ import annotations

import logging
import signal
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """Base class for failures raised while running a command."""


class CommandLaunchError(CommandError):
    """Raised when the child process could not be started at all."""

    def __init__(self, label: str, reason: OSError) -> None:
        """Record the command *label* and the underlying OS error."""
        super().__init__(f"failed to run {label}: {reason}")
        self.label = label
        self.reason = reason


class CommandFailedError(CommandError):
    """Raised when the child process exits unsuccessfully."""

    def __init__(
        self,
        label: str,
        returncode: int | None,
        *,
        signal_number: int | None = None,
    ) -> None:
        """Record the command *label* and its exit status."""
        code = "unknown" if returncode is None else str(returncode)
        message = f"{label} failed with exit code: {code}"
        if signal_number is not None:
            message += f" (terminated by {_signal_name(signal_number)})"
        super().__init__(message)
        self.label = label
        self.returncode = returncode
        self.signal_number = signal_number


class CommandRunner(Protocol):
    """Anything able to run ``command args...`` to completion."""

    def run(self, command: str, args: Sequence[str], *, label: str | None = None) -> None:
        """Run the command, raising :class:`CommandError` on failure."""


@dataclass(slots=True)
class SubprocessRunner:
    """Run commands as child processes sharing this process' standard streams."""

    def run(self, command: str, args: Sequence[str], *, label: str | None = None) -> None:
        """Run ``command args...`` and wait for it to exit."""
        argv = [command, *args]
        display = label or command
        LOGGER.debug("Running %s", " ".join(argv))
        try:
            result = subprocess.run(argv, check=False)  # noqa: S603
        except OSError as exc:
            raise CommandLaunchError(display, exc) from exc
        if result.returncode == 0:
            return
        if result.returncode < 0:
            raise CommandFailedError(display, None, signal_number=-result.returncode)
        raise CommandFailedError(display, result.returncode)


@dataclass(slots=True)
class BuildToolRunner:
    """Prefix every command with the build tool binary (``cargo`` by default)."""

    tool: str = "cargo"
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def run(self, command: str, args: Sequence[str], *, label: str | None = None) -> None:
        """Run ``<tool> <command> args...``."""
        self.runner.run(self.tool, [command, *args], label=label or f"{self.tool} {command}")


def _signal_name(number: int) -> str:
    try:
        return signal.Signals(number).name
    except ValueError:
        return f"signal {number}"


__all__ = [
    "BuildToolRunner",
    "CommandError",
    "CommandFailedError",
    "CommandLaunchError",
    "CommandRunner",
    "SubprocessRunner",
]
