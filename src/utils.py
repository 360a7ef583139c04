"""Shared utilities for sigprof."""

from __future__ import annotations

import re
from pathlib import Path

_NON_IDENTIFIER = re.compile(r"\W")


def path_to_module(file_path: str | Path) -> str:
    """Convert a relative file path to a Python module name.

    Args:
        file_path: Relative file path (e.g., "src/shop/cart.py" or Path object)

    Returns:
        Module name (e.g., "shop.cart")

    Examples:
        >>> path_to_module("src/shop/cart.py")
        'shop.cart'
        >>> path_to_module("src/shop/__init__.py")
        'shop'
        >>> path_to_module(Path("app.py"))
        'app'
    """
    path_str = file_path.as_posix() if isinstance(file_path, Path) else str(file_path)
    parts = [part for part in path_str.replace("\\", "/").split("/") if part]

    # Sources under src/<package>/... import as <package>.<submodules>.
    if len(parts) >= 2 and parts[0] == "src":
        parts = parts[1:]

    if parts and parts[-1].endswith(".py"):
        parts[-1] = parts[-1][:-3]

    if parts and parts[-1] == "__init__":
        parts = parts[:-1]

    if not parts:
        msg = f"cannot derive a non-empty module name from {path_str!r}"
        raise ValueError(msg)

    return ".".join(parts)


def is_package_path(file_path: str | Path) -> bool:
    """Return True when the path names a package ``__init__`` module."""
    return Path(file_path).name == "__init__.py"


def module_to_identifier(module: str) -> str:
    """Flatten a dotted module path into a single identifier fragment.

    Examples:
        >>> module_to_identifier("pkg.sub-mod")
        'pkg_sub_mod'
    """
    return _NON_IDENTIFIER.sub("_", module.replace(".", "_"))


def import_root_prefix(file_path: str | Path) -> str:
    """Directory prefix that ``path_to_module`` strips, as ``"src/"`` or ``""``.

    The consolidated module has to live under the same prefix as the units
    importing it.

    Examples:
        >>> import_root_prefix("src/shop/cart.py")
        'src/'
        >>> import_root_prefix("pkg/module.py")
        ''
    """
    parts = Path(file_path).as_posix().split("/")
    return "src/" if len(parts) >= 2 and parts[0] == "src" else ""
