"""Discovery of the Python units an instrumentation run processes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

# Staging and backup directories created next to the output directory.
WORK_DIR_PREFIX = ".sigprof-"


@dataclass(frozen=True)
class _DiscoveryRules:
    """Everything that decides whether a ``*.py`` file under the root is a unit."""

    root: Path
    output_parts: tuple[str, ...] = ()
    stale_files: frozenset[str] = frozenset()
    ignored: Callable[[str], bool] | None = None
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    _resolved_root: Path = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_resolved_root", self.root.resolve())

    def skip_reason(self, path: Path) -> str | None:
        """Return why ``path`` is not a unit, or None to keep it."""
        if path.is_symlink() or not path.is_file():
            return "not a regular file"
        if not self._stays_inside(path):
            return "resolves outside the root"

        relative = PurePosixPath(path.relative_to(self.root).as_posix())
        if self.output_parts and relative.parts[: len(self.output_parts)] == self.output_parts:
            return "inside the output directory"
        if any(part.startswith(WORK_DIR_PREFIX) for part in relative.parts):
            return "inside a staging directory"
        if str(relative) in self.stale_files:
            return "stale consolidated module"
        if self.ignored is not None and self.ignored(str(path)):
            return "gitignored"
        if self.include and not any(fnmatch(str(relative), pat) for pat in self.include):
            return "not matched by include"
        if any(fnmatch(str(relative), pat) for pat in self.exclude):
            return "matched by exclude"
        return None

    def _stays_inside(self, path: Path) -> bool:
        try:
            path.resolve().relative_to(self._resolved_root)
        except (OSError, ValueError):
            return False
        return True


def _gitignore_files(root: Path) -> list[Path]:
    """Every regular .gitignore under root, root first, then by relative path."""
    found = {
        path
        for path in root.rglob(".gitignore")
        if path.is_file() and not path.is_symlink()
    }
    return sorted(found, key=lambda p: (len(p.relative_to(root).parts), p.as_posix()))


def _build_gitignore_matcher(
    root: Path,
    *,
    nested_gitignore: bool,
) -> Callable[[str], bool] | None:
    if not nested_gitignore:
        top = root / ".gitignore"
        if top.is_file():
            return cast("Callable[[str], bool]", parse_gitignore(top))
        return None

    matchers = [parse_gitignore(path) for path in _gitignore_files(root)]
    if not matchers:
        return None

    def matches(path_str: str) -> bool:
        # A nested matcher raises ValueError for paths outside its directory.
        for matcher in matchers:
            try:
                if matcher(path_str):
                    return True
            except ValueError:
                continue
        return False

    return matches


def find_python_files(
    directory: Path,
    *,
    output_dir: str = "build",
    generated_module: str | None = None,
    include_patterns: list[str] | None = None,
    exclude_patterns: list[str] | None = None,
    nested_gitignore: bool = False,
) -> Iterator[Path]:
    """Find the Python files to instrument, respecting .gitignore.

    Args:
        directory: Root of the program to instrument
        output_dir: Output directory relative to the root; skipped entirely
        generated_module: Consolidated module name; a stale copy of it at the
            root or directly under src/ is skipped
        include_patterns: fnmatch patterns; when given, a file must match one
        exclude_patterns: fnmatch patterns; a matching file is skipped
        nested_gitignore: Compose every .gitignore under the root instead of
            only the top-level one

    Yields:
        Paths sorted by relative POSIX path.
    """
    rules = _DiscoveryRules(
        root=directory,
        output_parts=PurePosixPath(output_dir).parts if output_dir else (),
        stale_files=frozenset(
            {f"{generated_module}.py", f"src/{generated_module}.py"}
            if generated_module
            else ()
        ),
        ignored=_build_gitignore_matcher(directory, nested_gitignore=nested_gitignore),
        include=tuple(include_patterns or ()),
        exclude=tuple(exclude_patterns or ()),
    )

    kept: list[Path] = []
    for path in directory.rglob("*.py"):
        reason = rules.skip_reason(path)
        if reason is None:
            kept.append(path)
        else:
            logger.debug("skipping %s: %s", path, reason)

    kept.sort(key=lambda p: p.relative_to(directory).as_posix())
    yield from kept


__all__ = ["WORK_DIR_PREFIX", "find_python_files"]
