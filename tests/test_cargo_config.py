"""Tests for Cargo config generation and writing."""
from __future__ import annotations

import itertools
import tomllib
from pathlib import Path

import pytest

from cargo_fastdev.cargo_config import (
    ConfigExistsError,
    generate_config,
    select_linker,
    write_config,
)

LLD_FLAGS = 'rustflags = ["-C", "link-arg=-fuse-ld=lld"]'
MOLD_FLAGS = 'rustflags = ["-C", "link-arg=-fuse-ld=mold"]'


@pytest.mark.parametrize(
    ("use_sccache", "use_mold"),
    list(itertools.product([False, True], repeat=2)),
)
def test_generate_config_always_tunes_profiles(use_sccache: bool, use_mold: bool) -> None:
    """Every flag combination keeps the dependency and debug settings."""
    config = generate_config(use_sccache, use_mold)

    assert config.startswith("# Generated by cargo-fastdev\n\n[build]\n")
    assert "opt-level = 1" in config
    assert "debug = true" in config

    parsed = tomllib.loads(config)
    assert parsed["profile"]["dev"]["debug"] is True
    assert parsed["profile"]["dev"]["package"]["*"]["opt-level"] == 1


def test_generate_config_empty() -> None:
    """Without flags the [build] section stays empty."""
    config = generate_config(False, False)

    assert "rustflags" not in config
    assert "rustc-wrapper" not in config
    assert tomllib.loads(config)["build"] == {}


def test_generate_config_with_sccache() -> None:
    """The cache flag enables sccache and links with lld."""
    config = generate_config(True, False)

    assert "# Use sccache for faster incremental builds" in config
    assert 'rustc-wrapper = "sccache"' in config
    assert "link-arg=-fuse-ld=lld" in config
    assert LLD_FLAGS in config


def test_generate_config_with_mold() -> None:
    """The mold flag links with mold."""
    config = generate_config(False, True)

    assert "# Use mold linker for faster linking" in config
    assert "link-arg=-fuse-ld=mold" in config
    assert "sccache" not in config


def test_generate_config_with_both_prefers_mold() -> None:
    """With both flags, sccache still wraps rustc but mold is the linker."""
    config = generate_config(True, True)

    assert 'rustc-wrapper = "sccache"' in config
    assert MOLD_FLAGS in config
    assert "fuse-ld=lld" not in config
    assert config.count("rustflags") == 1

    build = tomllib.loads(config)["build"]
    assert build == {
        "rustc-wrapper": "sccache",
        "rustflags": ["-C", "link-arg=-fuse-ld=mold"],
    }


def test_generate_config_is_deterministic() -> None:
    """Generation is a pure function of the two flags."""
    assert generate_config(True, False) == generate_config(True, False)


@pytest.mark.parametrize(
    ("use_sccache", "use_mold", "expected"),
    [
        (False, False, None),
        (True, False, "lld"),
        (False, True, "mold"),
        (True, True, "mold"),
    ],
)
def test_select_linker(use_sccache: bool, use_mold: bool, expected: str | None) -> None:
    """mold takes precedence over lld."""
    assert select_linker(use_sccache, use_mold) == expected


def test_write_config_creates_directory(tmp_path: Path) -> None:
    """The config directory is created on demand."""
    directory = tmp_path / ".cargo"

    path = write_config("debug = true\n", directory=directory)

    assert path == directory / "config.toml"
    assert path.read_text(encoding="utf-8") == "debug = true\n"


def test_write_config_never_overwrites(tmp_path: Path) -> None:
    """An existing config.toml is left byte-identical."""
    directory = tmp_path / ".cargo"
    directory.mkdir()
    existing = directory / "config.toml"
    existing.write_bytes(b"# mine\n[build]\njobs = 4\n")

    with pytest.raises(ConfigExistsError) as excinfo:
        write_config(generate_config(False, False), directory=directory)

    assert excinfo.value.path == existing
    assert "Use --print" in str(excinfo.value)
    assert existing.read_bytes() == b"# mine\n[build]\njobs = 4\n"
