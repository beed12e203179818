"""Typer-powered command line for ``cargo-fastdev``.

Subcommands:

* ``doctor`` reports which optional build accelerators are installed.
* ``init`` prints or writes a ``.cargo/config.toml`` tuned for fast dev builds.
* ``watch`` re-runs a cargo subcommand whenever the working tree changes.
* ``check``/``test``/``run`` are one-shot cargo wrappers.
"""
from __future__ import annotations

import json
import logging
import sys
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from . import __version__
from .cargo_config import ConfigExistsError, generate_config, write_config
from .config import AppConfig, ConfigError, load_config
from .doctor import (
    TOOL_ORDER,
    CommandProbe,
    DoctorReport,
    build_report,
    collect_probes,
    detect_toolchain,
    serialize_report,
    subprocess_probe,
)
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger, configure_console_logging
from .providers import (
    BuildToolRunner,
    CommandError,
    CommandFailedError,
    CommandLaunchError,
    CommandRunner,
    SubprocessRunner,
)
from .templates import TemplateEngine
from .watch import ChangeEvent, WatchError, watch_directory

LOGGER = logging.getLogger(__name__)

console = Console()

CARGO_SUBCOMMAND_NAME = "fastdev"

PASSTHROUGH_SETTINGS = {"allow_extra_args": True, "ignore_unknown_options": True}

# Long watch sessions keep only the most recent runs in the operation record.
WATCH_STEP_LIMIT = 50

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to cargo-fastdev's YAML config file.",
)

FORWARDED_ARGS = typer.Argument(
    None,
    help="Arguments forwarded to cargo (put them after --).",
    show_default=False,
)


class DoctorFormat(str, Enum):
    """Output formats accepted by ``doctor --format``."""

    TEXT = "text"
    JSON = "json"


_GLYPHS = {
    True: "[green]✓[/green]",
    False: "[red]✗[/red]",
}

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Fast Rust dev loop: doctor/init/watch + cargo wrappers.

        Run as ``cargo fastdev <command>`` or ``cargo-fastdev <command>``.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    templates: TemplateEngine
    runner: CommandRunner
    probe: CommandProbe

    @property
    def cargo(self) -> BuildToolRunner:
        """Return a runner that prefixes commands with the build tool."""
        return BuildToolRunner(tool=self.config.build_tool, runner=self.runner)


def _print_raw(text: str, *, end: str = "\n") -> None:
    """Print *text* verbatim (no markup, highlighting or wrapping)."""
    console.print(
        text,
        end=end,
        markup=False,
        highlight=False,
        emoji=False,
        soft_wrap=True,
    )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    LOGGER.debug("Resolved configuration: %s", config.to_dict())

    runtime = RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        templates=TemplateEngine.with_overrides(config.templates_dir),
        runner=SubprocessRunner(),
        probe=subprocess_probe,
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the cargo-fastdev version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Emit debug logging on stderr.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    configure_console_logging(verbose)
    if version:
        console.print(f"cargo-fastdev {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(message, style="red", markup=False, highlight=False, soft_wrap=True)
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _command_failure(op: OperationScope, exc: CommandError) -> NoReturn:
    """Translate a runner failure into the matching exit code."""
    if isinstance(exc, CommandLaunchError):
        _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)
    if isinstance(exc, CommandFailedError):
        _command_error(op, str(exc), rc=ExitCode.COMMAND_FAILED)
    _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)


def _render_doctor_report(report: DoctorReport) -> None:
    """Render a doctor report in a human-friendly format."""
    console.print("Toolchain Status:")
    for tool in TOOL_ORDER:
        console.print(f"  {tool}: {_GLYPHS[report.toolchain.is_present(tool)]}")

    if report.suggestions:
        console.print()
        console.print("Suggestions:")
        for suggestion in report.suggestions:
            _print_raw(f"  - {suggestion}")


@app.command()
def doctor(
    ctx: typer.Context,
    output_format: DoctorFormat = typer.Option(
        DoctorFormat.TEXT,
        "--format",
        "-f",
        case_sensitive=False,
        help="Output format (text or json).",
    ),
) -> None:
    """Check which optional build accelerators are installed."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "doctor",
        args={"format": output_format.value},
        target={"kind": "toolchain"},
    ) as op:
        probes = collect_probes(runtime.config.toolchain)
        status = detect_toolchain(probes, probe=runtime.probe)
        for definition in probes:
            op.add_step(
                f"probe.{definition.id}",
                status="success" if status.is_present(definition.id) else "skipped",
                detail=definition.binary,
            )
        report = build_report(status)
        payload = serialize_report(report)

        if output_format is DoctorFormat.JSON:
            _print_raw(json.dumps(payload, indent=2))
        else:
            _render_doctor_report(report)

        if report.suggestions:
            op.warning(
                "Optional accelerators missing.",
                warnings=[f"missing:{tool}" for tool in status.missing()],
                context={"report": payload},
            )
        else:
            op.success("All accelerators detected.", context={"report": payload})


@app.command()
def init(
    ctx: typer.Context,
    print_config: bool = typer.Option(
        False,
        "--print",
        help="Print the generated config to stdout (the default).",
    ),
    write: bool = typer.Option(
        False,
        "--write",
        help="Write the config to .cargo/config.toml (never overwrites).",
    ),
    use_sccache: bool = typer.Option(
        False,
        "--use-sccache",
        help="Wrap rustc with sccache and link with lld.",
    ),
    use_mold: bool = typer.Option(
        False,
        "--use-mold",
        help="Link with mold (takes precedence over lld).",
    ),
) -> None:
    """Generate a .cargo/config.toml tuned for fast dev builds."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "init",
        args={
            "print": print_config,
            "write": write,
            "use_sccache": use_sccache,
            "use_mold": use_mold,
        },
        target={"kind": "cargo-config", "path": str(runtime.config.cargo_config_dir)},
    ) as op:
        content = generate_config(use_sccache, use_mold, templates=runtime.templates)

        if print_config or not write:
            _print_raw(content, end="")
            op.success("Printed generated config.", changed=0)
            return

        try:
            path = write_config(content, directory=runtime.config.cargo_config_dir)
        except ConfigExistsError as exc:
            _command_error(op, str(exc), rc=ExitCode.CONFLICT)
        except OSError as exc:
            _command_error(op, f"Failed to write config: {exc}", rc=ExitCode.ENVIRONMENT)

        op.add_step("config.write", detail=str(path))
        console.print(f"Wrote {path}", markup=False, highlight=False, soft_wrap=True)
        op.success(f"Wrote {path}.", changed=1, context={"path": str(path)})


@app.command(context_settings=PASSTHROUGH_SETTINGS)
def watch(
    ctx: typer.Context,
    command: str = typer.Argument(..., help="Cargo subcommand to re-run (e.g. check)."),
    args: list[str] | None = FORWARDED_ARGS,
    debounce_ms: int | None = typer.Option(
        None,
        "--debounce-ms",
        min=0,
        help="Delay between a change and the re-run (default from config: 100).",
    ),
    coalesce: bool = typer.Option(
        False,
        "--coalesce",
        help="Run once per burst of changes instead of once per change.",
    ),
) -> None:
    """Re-run a cargo subcommand whenever files change."""
    runtime = _get_runtime(ctx)
    settings = runtime.config.watch
    forwarded = list(args or [])
    delay_ms = settings.debounce_ms if debounce_ms is None else debounce_ms
    delay = settings.debounce_seconds if debounce_ms is None else debounce_ms / 1000.0
    coalesce_bursts = settings.coalesce or coalesce
    cargo = runtime.cargo
    with runtime.logger.operation(
        "watch",
        args={
            "command": command,
            "args": forwarded,
            "debounce_ms": delay_ms,
            "coalesce": coalesce_bursts,
        },
        target={"kind": "directory", "path": str(Path.cwd())},
        max_steps=WATCH_STEP_LIMIT,
    ) as op:

        def _on_trigger(event: ChangeEvent | None) -> None:
            if event is None:
                op.add_step("run.initial", detail=f"{cargo.tool} {command}")
                return
            op.add_step(f"run.{event.kind}", detail=event.path)

        console.print("Watching for changes...")
        try:
            watch_directory(
                cargo,
                command,
                forwarded,
                debounce=delay,
                coalesce=coalesce_bursts,
                ignore_dirs=settings.ignore_dirs,
                on_trigger=_on_trigger,
            )
        except CommandError as exc:
            _command_failure(op, exc)
        except WatchError as exc:
            _command_error(op, f"Watch error: {exc}", rc=ExitCode.ENVIRONMENT)
        except KeyboardInterrupt:
            console.print("Stopped watching.")
            op.warning("Watch interrupted.", warnings=["interrupted"])
            raise typer.Exit(code=ExitCode.INTERRUPTED) from None


def _run_cargo(ctx: typer.Context, subcommand: str, args: list[str] | None) -> None:
    runtime = _get_runtime(ctx)
    forwarded = list(args or [])
    with runtime.logger.operation(
        subcommand,
        args={"args": forwarded},
        target={"kind": "cargo", "subcommand": subcommand},
    ) as op:
        try:
            runtime.cargo.run(subcommand, forwarded)
        except CommandError as exc:
            _command_failure(op, exc)
        op.success(f"{runtime.config.build_tool} {subcommand} succeeded.")


@app.command(context_settings=PASSTHROUGH_SETTINGS)
def check(ctx: typer.Context, args: list[str] | None = FORWARDED_ARGS) -> None:
    """Run cargo check."""
    _run_cargo(ctx, "check", args)


@app.command(context_settings=PASSTHROUGH_SETTINGS)
def test(ctx: typer.Context, args: list[str] | None = FORWARDED_ARGS) -> None:
    """Run cargo test."""
    _run_cargo(ctx, "test", args)


@app.command(context_settings=PASSTHROUGH_SETTINGS)
def run(ctx: typer.Context, args: list[str] | None = FORWARDED_ARGS) -> None:
    """Run cargo run."""
    _run_cargo(ctx, "run", args)


def main(argv: Sequence[str] | None = None) -> None:
    """Console-script entry point; accepts ``cargo fastdev ...`` invocations."""
    args = list(sys.argv[1:] if argv is None else argv)
    if args and args[0] == CARGO_SUBCOMMAND_NAME:
        args = args[1:]
    app(args=args, prog_name="cargo-fastdev")


__all__ = ["RuntimeContext", "app", "main"]
