"""Parsing and static callee resolution for instrumented units"""

from parse.ast_imports import (
    WILDCARD,
    extract_imports,
    resolve_relative_import,
    visible_imports,
)
from parse.frontend import UNKNOWN, Frontend, Resolution
from parse.units import CompilationUnit, parse_unit, parse_units

__all__ = [
    "UNKNOWN",
    "WILDCARD",
    "CompilationUnit",
    "Frontend",
    "Resolution",
    "extract_imports",
    "parse_unit",
    "parse_units",
    "resolve_relative_import",
    "visible_imports",
]
