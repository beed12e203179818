"""Utility helpers for serialising doctor reports."""
from __future__ import annotations

from .models import TOOL_ORDER, DoctorReport


def serialize_report(report: DoctorReport) -> dict[str, object]:
    """Convert a doctor report into a JSON-serialisable mapping."""
    toolchain = {tool: report.toolchain.is_present(tool) for tool in TOOL_ORDER}
    return {
        "toolchain": toolchain,
        "suggestions": list(report.suggestions),
    }
