"""Structured operation logging for cargo-fastdev.

Every CLI command runs inside :meth:`StructuredLogger.operation`. The scope
collects steps and a final result and, when the command finishes, appends one
JSON record to ``operations.jsonl`` plus a one-line summary to
``cargo-fastdev.log`` in the configured logs directory.

Logging must never break a command: when the directory cannot be created or a
write fails the logger disables itself and carries on silently.
"""
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from . import __version__

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG_NAME = "operations.jsonl"
HUMAN_LOG_NAME = "cargo-fastdev.log"


def _sanitize(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


def _iso_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


@dataclass
class OperationScope:
    """Collects steps and the outcome of a single CLI operation."""

    command: str
    args: Mapping[str, object]
    target: Mapping[str, object]
    op_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: str = field(default_factory=_iso_now)
    steps: list[dict[str, object]] = field(default_factory=list)
    result: dict[str, object] | None = None
    max_steps: int | None = None
    steps_dropped: int = 0
    _start: float = field(default_factory=time.perf_counter, repr=False)

    def add_step(
        self,
        name: str,
        *,
        status: str = "success",
        detail: str | None = None,
    ) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"name": name, "status": status, "at": _iso_now()}
        if detail is not None:
            step["detail"] = detail
        self.steps.append(step)
        if self.max_steps is not None and len(self.steps) > self.max_steps:
            del self.steps[0]
            self.steps_dropped += 1
        LOGGER.debug("%s: step %s (%s) %s", self.command, name, status, detail or "")

    def success(
        self,
        message: str,
        *,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            warnings=warnings,
            errors=errors,
            changed=changed,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        warnings: Sequence[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            errors=list(errors) if errors else [message],
            warnings=warnings,
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {"status": status, "message": message}
        if warnings:
            result["warnings"] = list(warnings)
        if errors:
            result["errors"] = list(errors)
        if changed is not None:
            result["changed"] = changed
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = _sanitize(context)
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON-safe record written to the operations log."""
        record: dict[str, object] = {
            "op_id": self.op_id,
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "started_at": self.started_at,
            "finished_at": _iso_now(),
            "duration_ms": int((time.perf_counter() - self._start) * 1000),
            "context": {
                "cargo_fastdev_version": __version__,
                "cwd": os.getcwd(),
                "pid": os.getpid(),
            },
            "steps": list(self.steps),
            "result": self.result or {"status": "unknown", "message": ""},
        }
        if self.steps_dropped:
            record["steps_dropped"] = self.steps_dropped
        return record


class StructuredLogger:
    """Append-only JSONL logger for CLI operations."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare the logs directory, disabling the logger when unavailable."""
        self.logs_dir = Path(logs_dir)
        self._operations_log_path = self.logs_dir / OPERATIONS_LOG_NAME
        self._human_log_path = self.logs_dir / HUMAN_LOG_NAME
        self._enabled = True
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("Disabling operation log; cannot create %s: %s", self.logs_dir, exc)
            self._enabled = False

    @property
    def enabled(self) -> bool:
        """Return ``True`` while records are being written."""
        return self._enabled

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
        max_steps: int | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it when the block exits.

        With *max_steps* only the most recent steps are kept; the rest are
        counted in ``steps_dropped``.
        """
        scope = OperationScope(
            command=command,
            args=dict(args or {}),
            target=dict(target or {}),
            max_steps=max_steps,
        )
        LOGGER.debug("Starting operation %s (%s)", command, scope.op_id)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                code = getattr(exc, "exit_code", None)
                if code == 0:
                    scope.success("Completed.")
                else:
                    message = str(exc) or type(exc).__name__
                    scope.error(message, rc=code if isinstance(code, int) else None)
            raise
        finally:
            if scope.result is None:
                scope.success("Completed.")
            self._write(scope)

    def _write(self, scope: OperationScope) -> None:
        if not self._enabled:
            return
        record = scope.to_record()
        result = record["result"]
        status = result.get("status", "unknown") if isinstance(result, dict) else "unknown"
        message = result.get("message", "") if isinstance(result, dict) else ""
        summary = f"{record['finished_at']} {scope.command} [{status}] {message}".rstrip()
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
            with self._human_log_path.open("a", encoding="utf-8") as handle:
                handle.write(summary + "\n")
        except OSError as exc:
            LOGGER.debug("Disabling operation log after write failure: %s", exc)
            self._enabled = False


def configure_console_logging(verbose: bool) -> None:
    """Attach a Rich stderr handler to the package logger when *verbose*."""
    package_logger = logging.getLogger("cargo_fastdev")
    if not verbose:
        return
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            markup=False,
            rich_tracebacks=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)


__all__ = [
    "OperationScope",
    "StructuredLogger",
    "configure_console_logging",
]
