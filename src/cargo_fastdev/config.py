"""Configuration loader for cargo-fastdev.

Settings are resolved from several sources, lowest precedence first:

1. Built-in defaults.
2. ``~/.config/cargo-fastdev/config.yml`` (or an override path).
3. Environment variables prefixed with ``CARGO_FASTDEV_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export CARGO_FASTDEV_WATCH__DEBOUNCE_MS=250
    export CARGO_FASTDEV_TOOLCHAIN__MOLD_BIN=/opt/mold/bin/mold

Values are coerced via PyYAML's ``safe_load`` so that booleans, numbers and
lists are parsed naturally. The resulting configuration is exposed as
immutable ``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in packaging
    raise RuntimeError(
        "PyYAML is required to load cargo-fastdev configuration. Install with "
        "`pip install cargo-fastdev` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "CARGO_FASTDEV_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ToolchainConfig:
    """Binary names probed by ``doctor``."""

    sccache_bin: str = "sccache"
    mold_bin: str = "mold"
    clang_bin: str = "clang"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "sccache_bin": self.sccache_bin,
            "mold_bin": self.mold_bin,
            "clang_bin": self.clang_bin,
        }


@dataclass(frozen=True)
class WatchConfig:
    """Tunables for the change watcher."""

    debounce_ms: int = 100
    coalesce: bool = False
    ignore_dirs: tuple[str, ...] = (".git", "target")

    @property
    def debounce_seconds(self) -> float:
        """Return the debounce delay in seconds."""
        return self.debounce_ms / 1000.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "debounce_ms": self.debounce_ms,
            "coalesce": self.coalesce,
            "ignore_dirs": list(self.ignore_dirs),
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for cargo-fastdev."""

    config_file: Path
    build_tool: str
    cargo_config_dir: Path
    logs_dir: Path
    templates_dir: Path | None
    toolchain: ToolchainConfig
    watch: WatchConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "build_tool": self.build_tool,
            "cargo_config_dir": str(self.cargo_config_dir),
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
            "toolchain": self.toolchain.to_dict(),
            "watch": self.watch.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/cargo-fastdev/config.yml",
    "build_tool": "cargo",
    "cargo_config_dir": ".cargo",
    "logs_dir": "~/.local/state/cargo-fastdev/logs",
    "templates_dir": None,
    "toolchain": {
        "sccache_bin": "sccache",
        "mold_bin": "mold",
        "clang_bin": "clang",
    },
    "watch": {
        "debounce_ms": 100,
        "coalesce": False,
        "ignore_dirs": [".git", "target"],
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_TOOLCHAIN_KEYS = {"sccache_bin", "mold_bin", "clang_bin"}
ALLOWED_WATCH_KEYS = {"debounce_ms", "coalesce", "ignore_dirs"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    toolchain = raw.get("toolchain")
    if toolchain is not None:
        toolchain_map = _as_dict(toolchain, "toolchain")
        unknown = set(toolchain_map.keys()) - ALLOWED_TOOLCHAIN_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown toolchain configuration keys: {joined}.")

    watch = raw.get("watch")
    if watch is not None:
        watch_map = _as_dict(watch, "watch")
        unknown = set(watch_map.keys()) - ALLOWED_WATCH_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown watch configuration keys: {joined}.")

        coalesce = watch_map.get("coalesce")
        if coalesce is not None and not isinstance(coalesce, bool):
            raise ConfigError(f"watch.coalesce must be a boolean. Got {coalesce!r}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    cargo_config_dir = _to_path(raw.get("cargo_config_dir"))
    logs_dir = _to_path(raw.get("logs_dir"))

    templates_value = raw.get("templates_dir")
    templates_dir: Path | None = None
    if isinstance(templates_value, (str, Path)):
        if str(templates_value).strip():
            templates_dir = _to_path(templates_value)
    elif templates_value is not None:
        raise ConfigError("templates_dir must be a string, Path, or null.")

    build_tool = _expect_non_empty_str(raw.get("build_tool"), "build_tool")

    toolchain_mapping = _as_dict(raw.get("toolchain"), "toolchain")
    defaults = ToolchainConfig()
    toolchain = ToolchainConfig(
        sccache_bin=_expect_non_empty_str(
            toolchain_mapping.get("sccache_bin", defaults.sccache_bin),
            "toolchain.sccache_bin",
        ),
        mold_bin=_expect_non_empty_str(
            toolchain_mapping.get("mold_bin", defaults.mold_bin),
            "toolchain.mold_bin",
        ),
        clang_bin=_expect_non_empty_str(
            toolchain_mapping.get("clang_bin", defaults.clang_bin),
            "toolchain.clang_bin",
        ),
    )

    watch_mapping = _as_dict(raw.get("watch"), "watch")
    watch_defaults = WatchConfig()
    debounce_ms = _expect_int(
        watch_mapping.get("debounce_ms"),
        "watch.debounce_ms",
        default=watch_defaults.debounce_ms,
    )
    if debounce_ms < 0:
        raise ConfigError(f"watch.debounce_ms must be non-negative. Got {debounce_ms}.")

    ignore_raw = watch_mapping.get("ignore_dirs")
    if ignore_raw is None:
        ignore_dirs = watch_defaults.ignore_dirs
    else:
        entries = _as_sequence(ignore_raw, "watch.ignore_dirs")
        parsed: list[str] = []
        for index, entry in enumerate(entries):
            name = _expect_non_empty_str(entry, f"watch.ignore_dirs[{index}]")
            parsed.append(name.strip("/"))
        ignore_dirs = tuple(parsed)

    watch = WatchConfig(
        debounce_ms=debounce_ms,
        coalesce=bool(watch_mapping.get("coalesce", watch_defaults.coalesce)),
        ignore_dirs=ignore_dirs,
    )

    return AppConfig(
        config_file=config_file,
        build_tool=build_tool,
        cargo_config_dir=cargo_config_dir,
        logs_dir=logs_dir,
        templates_dir=templates_dir,
        toolchain=toolchain,
        watch=watch,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_non_empty_str(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigError(f"{key} must be a non-empty string.")
    return text


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "ToolchainConfig",
    "WatchConfig",
    "load_config",
]
