"""cargo-fastdev: a fast Rust dev loop (doctor/init/watch + cargo wrappers)."""
from __future__ import annotations

__all__ = ["__version__"]

# NOTE: The version is duplicated in ``pyproject.toml`` and managed by Hatch.
__version__ = "0.1.0"
