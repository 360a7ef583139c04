"""Parsing of input files into compilation units."""

from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import TYPE_CHECKING

from contract.errors import ParseError
from utils import is_package_path, path_to_module

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path


@dataclass
class CompilationUnit:
    """One parsed Python source file."""

    path: Path
    relative_path: str
    module: str
    tree: ast.Module
    is_package: bool


def parse_unit(path: Path, root: Path) -> CompilationUnit:
    """Parse a single file under ``root``.

    Raises:
        ParseError: If the file cannot be decoded or is not valid syntax.
    """
    relative_path = path.relative_to(root).as_posix()
    try:
        module = path_to_module(relative_path)
    except ValueError as exc:
        msg = f"{relative_path}: {exc}"
        raise ParseError(msg) from exc

    try:
        source = path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as exc:
        msg = f"{relative_path}: not valid UTF-8: {exc}"
        raise ParseError(msg) from exc
    except OSError as exc:
        msg = f"{relative_path}: cannot read source: {exc}"
        raise ParseError(msg) from exc

    try:
        tree = ast.parse(source, filename=relative_path)
    except SyntaxError as exc:
        msg = f"{relative_path}:{exc.lineno}: {exc.msg}"
        raise ParseError(msg) from exc
    except ValueError as exc:
        # ast.parse rejects source containing null bytes with ValueError.
        msg = f"{relative_path}: {exc}"
        raise ParseError(msg) from exc

    return CompilationUnit(
        path=path,
        relative_path=relative_path,
        module=module,
        tree=tree,
        is_package=is_package_path(relative_path),
    )


def parse_units(files: Iterable[Path], root: Path) -> list[CompilationUnit]:
    """Parse every file and return units ordered by relative path."""
    units = [parse_unit(path, root) for path in files]
    units.sort(key=lambda unit: unit.relative_path)

    seen: dict[str, str] = {}
    for unit in units:
        other = seen.setdefault(unit.module, unit.relative_path)
        if other != unit.relative_path:
            msg = f"{unit.relative_path}: module {unit.module!r} is also defined by {other}"
            raise ParseError(msg)
    return units


__all__ = ["CompilationUnit", "parse_unit", "parse_units"]
