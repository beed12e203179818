"""Generate and persist the ``.cargo/config.toml`` tuned for fast dev builds."""
from __future__ import annotations

import logging
from pathlib import Path

from .templates import TemplateEngine

LOGGER = logging.getLogger(__name__)

CONFIG_TEMPLATE = "cargo/config.toml.j2"
CONFIG_FILE_NAME = "config.toml"
DEFAULT_CONFIG_DIR = Path(".cargo")


class ConfigExistsError(FileExistsError):
    """Raised when ``init --write`` would overwrite an existing config file."""

    def __init__(self, path: Path) -> None:
        """Remember the conflicting *path*."""
        super().__init__(
            f"{path.name} already exists. Use --print to see what would be written."
        )
        self.path = path


def select_linker(use_sccache: bool, use_mold: bool) -> str | None:
    """Return the linker passed through ``rustflags``.

    ``rustflags`` is a single-valued key, so mold wins over lld when both
    flags are requested.
    """
    if use_mold:
        return "mold"
    if use_sccache:
        return "lld"
    return None


def generate_config(
    use_sccache: bool,
    use_mold: bool,
    *,
    templates: TemplateEngine | None = None,
) -> str:
    """Render the Cargo configuration text for the requested accelerators."""
    engine = templates or TemplateEngine.with_overrides(None)
    return engine.render_to_string(
        CONFIG_TEMPLATE,
        {
            "use_sccache": use_sccache,
            "use_mold": use_mold,
            "linker": select_linker(use_sccache, use_mold),
        },
    )


def write_config(content: str, *, directory: Path = DEFAULT_CONFIG_DIR) -> Path:
    """Create ``<directory>/config.toml`` with *content*; never overwrite."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / CONFIG_FILE_NAME
    try:
        with path.open("x", encoding="utf-8") as handle:
            handle.write(content)
    except FileExistsError as exc:
        raise ConfigExistsError(path) from exc
    LOGGER.debug("Wrote %d bytes to %s", len(content), path)
    return path


__all__ = [
    "ConfigExistsError",
    "generate_config",
    "select_linker",
    "write_config",
]
