"""AST-based import analysis for instrumented units."""

from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import TYPE_CHECKING

from contract.errors import TypeCheckError

if TYPE_CHECKING:
    from collections.abc import Collection

WILDCARD = "*"


@dataclass(frozen=True)
class ImportBinding:
    """A single name bound by an import statement."""

    lineno: int
    col: int
    module: str
    name: str | None
    local_name: str
    explicit_alias: bool

    @property
    def is_wildcard(self) -> bool:
        return self.local_name == WILDCARD

    @property
    def bound_module(self) -> str:
        """Module object bound to ``local_name`` by a plain ``import``.

        ``import a.b`` binds ``a``; ``import a.b as x`` binds ``a.b``.
        """
        if self.explicit_alias:
            return self.module
        return self.module.split(".", 1)[0]


def _process_import_node(node: ast.Import) -> list[ImportBinding]:
    """Process a standard import node (import x)."""
    bindings: list[ImportBinding] = []
    for name in node.names:
        if name.asname:
            local_name = name.asname
        else:
            local_name = name.name.split(".", 1)[0]
        bindings.append(
            ImportBinding(
                lineno=node.lineno,
                col=node.col_offset,
                module=name.name,
                name=None,
                local_name=local_name,
                explicit_alias=name.asname is not None,
            )
        )
    return bindings


def _process_import_from_node(
    node: ast.ImportFrom,
    importing_module: str,
    *,
    is_package: bool,
) -> list[ImportBinding]:
    """Process a from-import node (from x import y)."""
    module = node.module or ""
    if node.level > 0:
        module = resolve_relative_import(
            importing_module, module, node.level, is_package=is_package
        )

    bindings: list[ImportBinding] = []
    for name in node.names:
        if name.name == "*":
            local_name = WILDCARD
        else:
            local_name = name.asname or name.name
        bindings.append(
            ImportBinding(
                lineno=node.lineno,
                col=node.col_offset,
                module=module,
                name=name.name,
                local_name=local_name,
                explicit_alias=name.asname is not None,
            )
        )
    return bindings


def import_bindings(
    node: ast.Import | ast.ImportFrom,
    importing_module: str,
    *,
    is_package: bool,
) -> list[ImportBinding]:
    """Return the bindings a single import statement introduces."""
    if isinstance(node, ast.Import):
        return _process_import_node(node)
    return _process_import_from_node(node, importing_module, is_package=is_package)


def extract_imports(
    tree: ast.Module,
    importing_module: str,
    *,
    is_package: bool = False,
) -> list[ImportBinding]:
    """Extract every import binding in a parsed unit, in source order.

    Args:
        tree: Parsed module
        importing_module: Dotted name of the unit (used for relative imports)
        is_package: Whether the unit is a package ``__init__`` module

    Returns:
        Bindings sorted by (line, column), including imports nested inside
        functions and conditional blocks.

    Raises:
        TypeCheckError: If a relative import escapes the top-level package.
    """
    bindings: list[ImportBinding] = []
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            bindings.extend(
                import_bindings(node, importing_module, is_package=is_package)
            )
    bindings.sort(key=lambda binding: (binding.lineno, binding.col))
    return bindings


def visible_imports(
    bindings: list[ImportBinding],
    known_modules: Collection[str],
) -> dict[str, str]:
    """Map imported module paths to the name they are visible under.

    Plain imports map to their alias, or to the dotted path itself when no
    alias is given. ``from pkg import sub`` maps ``pkg.sub`` to ``sub`` when
    ``pkg.sub`` is a known module. Star imports map to ``WILDCARD``. The
    first binding of a path wins.

    Examples:
        >>> b = extract_imports(ast.parse("import numpy as np\\nfrom m import *"), "app")
        >>> visible_imports(b, set())
        {'numpy': 'np', 'm': '*'}
    """
    visible: dict[str, str] = {}
    for binding in bindings:
        if binding.name is None:
            local_name = binding.local_name if binding.explicit_alias else binding.module
            visible.setdefault(binding.module, local_name)
        elif binding.is_wildcard:
            visible.setdefault(binding.module, WILDCARD)
        else:
            submodule = f"{binding.module}.{binding.name}" if binding.module else binding.name
            if submodule in known_modules:
                visible.setdefault(submodule, binding.local_name)
    return visible


def resolve_relative_import(
    importing_module: str,
    relative_module: str,
    level: int,
    *,
    is_package: bool = False,
) -> str:
    """Turn ``from <dots><relative_module> import ...`` into an absolute module.

    Args:
        importing_module: Dotted name of the unit containing the import
        relative_module: Module text after the dots, possibly empty
        level: How many leading dots the import has
        is_package: True when the unit is a package ``__init__``, whose own
            name is the package the dots count from

    Raises:
        TypeCheckError: If the dots climb above the top-level package.

    Examples:
        >>> resolve_relative_import("shop.cart.totals", "tax", 1)
        'shop.cart.tax'
        >>> resolve_relative_import("shop.cart.totals", "", 2)
        'shop'
        >>> resolve_relative_import("shop.cart", "items", 1, is_package=True)
        'shop.cart.items'
    """
    parts = importing_module.split(".") if importing_module else []
    package_parts = parts if is_package else parts[:-1]

    if level > len(package_parts):
        msg = (
            f"{importing_module}: relative import of level {level} "
            "escapes the top-level package"
        )
        raise TypeCheckError(msg)

    base_parts = package_parts[: len(package_parts) - (level - 1)]
    if relative_module:
        return ".".join([*base_parts, relative_module])
    return ".".join(base_parts)


__all__ = [
    "WILDCARD",
    "ImportBinding",
    "extract_imports",
    "import_bindings",
    "resolve_relative_import",
    "visible_imports",
]
