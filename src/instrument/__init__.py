"""Instrumentation entry points."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from rules.config import SigprofConfig


def instrument_directory(
    *,
    root: Path,
    out_dir: Path | None = None,
    config: SigprofConfig | None = None,
) -> dict[str, object]:
    """Instrument a tree via lazy import to avoid package import cycles."""
    from instrument.run import instrument_directory as _instrument_directory

    return _instrument_directory(root=root, out_dir=out_dir, config=config)


__all__ = ["instrument_directory"]
