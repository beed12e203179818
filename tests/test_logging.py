"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import typer
from rich.logging import RichHandler

from cargo_fastdev import __version__
from cargo_fastdev.logging import StructuredLogger, configure_console_logging


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    path = logger._operations_log_path  # type: ignore[attr-defined]
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("demo") as op:
        op.success("done", changed=0)

    assert logger.enabled is False

    with logger.operation("demo-2") as op:
        op.success("done", changed=0)


def test_operation_record_shape(tmp_path: Path) -> None:
    """Records carry the command, args, steps and result."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("init", args={"write": True}, target={"kind": "cargo-config"}) as op:
        op.add_step("config.write", detail=".cargo/config.toml")
        op.success("Wrote config.", changed=1)

    record = _records(logger)[-1]
    assert record["command"] == "init"
    assert record["args"] == {"write": True}
    assert record["target"] == {"kind": "cargo-config"}
    assert record["context"]["cargo_fastdev_version"] == __version__
    assert [step["name"] for step in record["steps"]] == ["config.write"]
    assert record["result"]["status"] == "success"
    assert record["result"]["changed"] == 1

    human = (tmp_path / "logs" / "cargo-fastdev.log").read_text(encoding="utf-8")
    assert "init [success] Wrote config." in human


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("demo", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            changed=1,
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    record = _records(logger)[-1]
    result = record["result"]
    assert record["args"] == {"path": "foo"}
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("demo") as op:
        op.error("boom", errors=None, context={"value": {1, 2}})

    result = _records(logger)[-1]["result"]
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["context"] == {"value": "{1, 2}"}


def test_unhandled_exception_is_recorded_and_reraised(tmp_path: Path) -> None:
    """An exception escaping the scope is logged as an error and propagates."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError, match="kaboom"):
        with logger.operation("demo"):
            raise RuntimeError("kaboom")

    result = _records(logger)[-1]["result"]
    assert result["status"] == "error"
    assert result["message"] == "kaboom"


def test_successful_exit_is_not_an_error(tmp_path: Path) -> None:
    """typer.Exit(0) without an explicit result is recorded as success."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(typer.Exit):
        with logger.operation("demo"):
            raise typer.Exit(code=0)

    assert _records(logger)[-1]["result"]["status"] == "success"


def test_scope_without_result_defaults_to_success(tmp_path: Path) -> None:
    """Leaving the block normally records a success."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("demo"):
        pass

    assert _records(logger)[-1]["result"]["status"] == "success"


def test_max_steps_keeps_most_recent_steps(tmp_path: Path) -> None:
    """Capped scopes keep the tail of the step list and count the rest."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("watch", max_steps=3) as op:
        for index in range(10):
            op.add_step(f"run.{index}")

    record = _records(logger)[-1]
    assert [step["name"] for step in record["steps"]] == ["run.7", "run.8", "run.9"]
    assert record["steps_dropped"] == 7


def test_scope_under_cap_omits_dropped_count(tmp_path: Path) -> None:
    """Records only mention dropped steps when some were dropped."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("demo", max_steps=5) as op:
        op.add_step("only")

    record = _records(logger)[-1]
    assert len(record["steps"]) == 1
    assert "steps_dropped" not in record


@pytest.fixture
def package_logger() -> Iterator[logging.Logger]:
    """Restore the package logger after console-logging tests."""
    logger = logging.getLogger("cargo_fastdev")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


def test_console_logging_attaches_single_rich_handler(package_logger: logging.Logger) -> None:
    """Verbose mode adds one RichHandler no matter how often it is configured."""
    configure_console_logging(True)
    configure_console_logging(True)

    rich_handlers = [h for h in package_logger.handlers if isinstance(h, RichHandler)]
    assert len(rich_handlers) == 1
    assert rich_handlers[0].console.stderr is True
    assert package_logger.level == logging.DEBUG


def test_console_logging_quiet_by_default(package_logger: logging.Logger) -> None:
    """Without --verbose no handler is attached."""
    before = list(package_logger.handlers)

    configure_console_logging(False)

    assert package_logger.handlers == before
