"""Probes that detect optional build accelerators on ``PATH``."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from ..config import ToolchainConfig
from .models import TOOL_ORDER, ToolchainStatus, ToolName

LOGGER = logging.getLogger(__name__)

VERSION_ARGS: tuple[str, ...] = ("--version",)


class CommandProbe(Protocol):
    """Return ``True`` when ``binary args...`` could be launched."""

    def __call__(self, binary: str, args: Sequence[str]) -> bool:
        """Launch the binary and report whether it started."""


def subprocess_probe(binary: str, args: Sequence[str]) -> bool:
    """Launch *binary* with captured output; any exit status counts as present."""
    try:
        result = subprocess.run(  # noqa: S603
            [binary, *args],
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        LOGGER.debug("Probe %s could not be launched: %s", binary, exc)
        return False
    LOGGER.debug("Probe %s exited with %s", binary, result.returncode)
    return True


@dataclass(slots=True, frozen=True)
class ProbeDefinition:
    """Which binary to launch for a tool."""

    id: ToolName
    binary: str
    args: tuple[str, ...] = VERSION_ARGS


def collect_probes(config: ToolchainConfig | None = None) -> tuple[ProbeDefinition, ...]:
    """Return the probe set in reporting order."""
    toolchain = config or ToolchainConfig()
    binaries: dict[ToolName, str] = {
        "sccache": toolchain.sccache_bin,
        "mold": toolchain.mold_bin,
        "clang": toolchain.clang_bin,
    }
    return tuple(ProbeDefinition(id=tool, binary=binaries[tool]) for tool in TOOL_ORDER)


def detect_toolchain(
    probes: Sequence[ProbeDefinition] | None = None,
    *,
    probe: CommandProbe = subprocess_probe,
) -> ToolchainStatus:
    """Run every probe and return a fresh :class:`ToolchainStatus`."""
    definitions = collect_probes() if probes is None else probes
    found: dict[str, bool] = {tool: False for tool in TOOL_ORDER}
    for definition in definitions:
        found[definition.id] = probe(definition.binary, definition.args)
    return ToolchainStatus(
        sccache=found["sccache"],
        mold=found["mold"],
        clang=found["clang"],
    )
