"""Structural type model shared by the front-end and the instrumenter.

Every type is a frozen dataclass, so equality and hashing are structural:
two callables with the same parameters, results and variadic flag are the
same ``CallableType`` no matter which name, alias or import path was used to
reach them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class NamedType:
    """A nominal type reference such as ``builtins.int`` or ``app.Widget``."""

    module: str
    name: str
    args: tuple[TypeExpr, ...] = ()

    @property
    def display(self) -> str:
        base = f"{self.module}.{self.name}" if self.module else self.name
        if not self.args:
            return base
        return f"{base}[{', '.join(arg.display for arg in self.args)}]"


@dataclass(frozen=True)
class UnionType:
    """A union whose members are flattened, de-duplicated and ordered."""

    members: tuple[TypeExpr, ...]

    @property
    def display(self) -> str:
        return " | ".join(member.display for member in self.members)


@dataclass(frozen=True)
class OpaqueType:
    """An annotation the front-end understood but generated code cannot name."""

    text: str
    reason: str = field(default="", compare=False)

    @property
    def display(self) -> str:
        return f"<opaque {self.text}>"


@dataclass(frozen=True)
class Param:
    """One positional parameter of a callable shape."""

    type: TypeExpr
    has_default: bool = False


@dataclass(frozen=True)
class CallableType:
    """The shape of a function value.

    ``params`` lists positional parameters in order. When ``variadic`` is
    set, the last entry is the element type of the ``*args`` tail.
    ``results`` lists the result types; an empty tuple means the callable
    returns ``None``.
    """

    params: tuple[Param, ...]
    results: tuple[TypeExpr, ...]
    variadic: bool = False

    def __post_init__(self) -> None:
        if self.variadic and not self.params:
            msg = "a variadic callable needs at least one parameter"
            raise ValueError(msg)

    @property
    def fixed_params(self) -> tuple[Param, ...]:
        return self.params[:-1] if self.variadic else self.params

    @property
    def has_defaults(self) -> bool:
        return any(param.has_default for param in self.fixed_params)

    @property
    def display(self) -> str:
        rendered: list[str] = []
        for index, param in enumerate(self.params):
            text = param.type.display
            if self.variadic and index == len(self.params) - 1:
                text = f"*{text}"
            elif param.has_default:
                text = f"{text}="
            rendered.append(text)
        results = ", ".join(result.display for result in self.results)
        return f"({', '.join(rendered)}) -> ({results})"


TypeExpr = NamedType | UnionType | CallableType | OpaqueType

ANY = NamedType("typing", "Any")
NONE = NamedType("builtins", "None")
ELLIPSIS = NamedType("", "...")


def union_of(members: list[TypeExpr] | tuple[TypeExpr, ...]) -> TypeExpr:
    """Build a canonical union, collapsing single-member unions.

    Examples:
        >>> union_of([NONE, NamedType("builtins", "int")]).display
        'builtins.None | builtins.int'
        >>> union_of([NamedType("builtins", "int")]).display
        'builtins.int'
    """
    flat: dict[str, TypeExpr] = {}
    for member in members:
        nested = member.members if isinstance(member, UnionType) else (member,)
        for item in nested:
            flat.setdefault(item.display, item)
    ordered = tuple(flat[key] for key in sorted(flat))
    if len(ordered) == 1:
        return ordered[0]
    return UnionType(ordered)


def iter_opaque(type_expr: TypeExpr) -> list[OpaqueType]:
    """Return every opaque component reachable from ``type_expr``."""
    if isinstance(type_expr, OpaqueType):
        return [type_expr]
    found: list[OpaqueType] = []
    if isinstance(type_expr, NamedType):
        for arg in type_expr.args:
            found.extend(iter_opaque(arg))
    elif isinstance(type_expr, UnionType):
        for member in type_expr.members:
            found.extend(iter_opaque(member))
    else:
        for param in type_expr.params:
            found.extend(iter_opaque(param.type))
        for result in type_expr.results:
            found.extend(iter_opaque(result))
    return found


__all__ = [
    "ANY",
    "ELLIPSIS",
    "NONE",
    "CallableType",
    "NamedType",
    "OpaqueType",
    "Param",
    "TypeExpr",
    "UnionType",
    "iter_opaque",
    "union_of",
]
