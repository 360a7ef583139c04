"""Helpers shared by the manifest writers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import orjson

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from pydantic import BaseModel


def _write_jsonl(path: Path, records: Iterable[BaseModel]) -> None:
    """Write one sorted-key JSON object per line; an empty manifest is an empty file."""
    lines = [
        orjson.dumps(record.model_dump(mode="json"), option=orjson.OPT_SORT_KEYS)
        for record in records
    ]
    path.write_bytes(b"".join(line + b"\n" for line in lines))


def _get_output_dir_name(out_dir: Path, root: Path) -> str:
    """POSIX path of ``out_dir`` relative to ``root``; empty when it lies elsewhere."""
    resolved = out_dir.resolve()
    if resolved == root or not resolved.is_relative_to(root):
        return ""
    return resolved.relative_to(root).as_posix()
