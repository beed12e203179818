"""Doctor command infrastructure."""

from __future__ import annotations

from .models import (
    SUGGESTIONS,
    TOOL_ORDER,
    DoctorReport,
    ToolchainStatus,
    ToolName,
    build_report,
    build_suggestions,
)
from .probes import (
    CommandProbe,
    ProbeDefinition,
    collect_probes,
    detect_toolchain,
    subprocess_probe,
)
from .utils import serialize_report

__all__ = [
    "CommandProbe",
    "DoctorReport",
    "ProbeDefinition",
    "SUGGESTIONS",
    "TOOL_ORDER",
    "ToolName",
    "ToolchainStatus",
    "build_report",
    "build_suggestions",
    "collect_probes",
    "detect_toolchain",
    "serialize_report",
    "subprocess_probe",
]
