"""Output artifact entry points."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from artifacts.write import OutputBundle


def write_output(out_dir: Path, bundle: OutputBundle) -> list[Path]:
    """Write output via lazy import to avoid package import cycles."""
    from artifacts.write import write_output as _write_output

    return _write_output(out_dir, bundle)


__all__ = ["write_output"]
