"""Data models and helpers for the toolchain doctor."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

ToolName = Literal["sccache", "mold", "clang"]

# Fixed reporting order: compilation cache, linker, compiler.
TOOL_ORDER: tuple[ToolName, ...] = ("sccache", "mold", "clang")

SUGGESTIONS: Mapping[ToolName, str] = {
    "sccache": (
        "Install sccache for faster incremental builds: https://github.com/mozilla/sccache"
    ),
    "mold": "Consider using mold linker for faster linking: https://github.com/rui314/mold",
    "clang": "Clang can provide better diagnostics than GCC",
}


@dataclass(slots=True, frozen=True)
class ToolchainStatus:
    """Snapshot of which optional accelerators could be launched."""

    sccache: bool
    mold: bool
    clang: bool

    def is_present(self, tool: ToolName) -> bool:
        """Return ``True`` when *tool* was detected."""
        return bool(getattr(self, tool))

    def missing(self) -> tuple[ToolName, ...]:
        """Return the absent tools in reporting order."""
        return tuple(tool for tool in TOOL_ORDER if not self.is_present(tool))


@dataclass(slots=True, frozen=True)
class DoctorReport:
    """Complete report for a doctor run."""

    toolchain: ToolchainStatus
    suggestions: tuple[str, ...]


def build_suggestions(status: ToolchainStatus) -> tuple[str, ...]:
    """Return one suggestion per missing tool, in reporting order."""
    return tuple(SUGGESTIONS[tool] for tool in status.missing())


def build_report(status: ToolchainStatus) -> DoctorReport:
    """Create a full DoctorReport from a toolchain snapshot."""
    return DoctorReport(toolchain=status, suggestions=build_suggestions(status))
