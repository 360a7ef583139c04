"""Conversion of annotation syntax into structural types."""

from __future__ import annotations

import ast
import builtins
from typing import TYPE_CHECKING

from contract.errors import TypeCheckError
from contract.types import (
    ANY,
    ELLIPSIS,
    NONE,
    CallableType,
    NamedType,
    OpaqueType,
    Param,
    TypeExpr,
    union_of,
)
from parse.name_resolution import lookup

if TYPE_CHECKING:
    from parse.ast_imports import ImportBinding
    from parse.name_resolution import Binding, ProgramIndex, Scope

BUILTIN_NAMES = frozenset(dir(builtins))

_TYPING_MODULES = frozenset({"typing", "typing_extensions"})

_BUILTIN_ALIASES = {
    "List": "list",
    "Dict": "dict",
    "Set": "set",
    "FrozenSet": "frozenset",
    "Tuple": "tuple",
    "Type": "type",
    "Text": "str",
}

_ABC_ALIASES = {
    name: name
    for name in (
        "Awaitable",
        "Coroutine",
        "AsyncIterable",
        "AsyncIterator",
        "AsyncGenerator",
        "Iterable",
        "Iterator",
        "Generator",
        "Reversible",
        "Container",
        "Collection",
        "Callable",
        "Mapping",
        "MutableMapping",
        "Sequence",
        "MutableSequence",
        "MutableSet",
        "KeysView",
        "ItemsView",
        "ValuesView",
        "Hashable",
        "Sized",
    )
}
_ABC_ALIASES["AbstractSet"] = "Set"

_UNRENDERABLE_FORMS = frozenset(
    {"Literal", "Annotated", "Unpack", "Concatenate", "Required", "NotRequired"}
)

_TYPE_FACTORIES = frozenset(
    {"NewType", "TypeVar", "ParamSpec", "TypeVarTuple", "NamedTuple", "TypedDict"}
)


def canonical_named(module: str, name: str, args: tuple[TypeExpr, ...] = ()) -> NamedType:
    """Normalize typing aliases to the builtin or ``collections.abc`` type.

    Examples:
        >>> canonical_named("typing", "List").display
        'builtins.list'
        >>> canonical_named("typing_extensions", "Sequence").display
        'collections.abc.Sequence'
    """
    if module in _TYPING_MODULES:
        if name in _BUILTIN_ALIASES:
            return NamedType("builtins", _BUILTIN_ALIASES[name], args)
        if name in _ABC_ALIASES:
            return NamedType("collections.abc", _ABC_ALIASES[name], args)
        return NamedType("typing", name, args)
    return NamedType(module, name, args)


def results_of(returned: TypeExpr) -> tuple[TypeExpr, ...]:
    """Split a return annotation into the individual results it carries."""
    if returned == NONE:
        return ()
    if (
        isinstance(returned, NamedType)
        and returned.module == "builtins"
        and returned.name == "tuple"
        and len(returned.args) >= 2
        and ELLIPSIS not in returned.args
    ):
        return returned.args
    return (returned,)


def single_result(results: tuple[TypeExpr, ...]) -> TypeExpr:
    """Inverse of ``results_of``: the type of the returned object."""
    if not results:
        return NONE
    if len(results) == 1:
        return results[0]
    return NamedType("builtins", "tuple", results)


def is_type_factory_call(value: ast.expr | None) -> bool:
    """Return True for ``X = NewType(...)``-style right-hand sides."""
    if not isinstance(value, ast.Call):
        return False
    func = value.func
    if isinstance(func, ast.Name):
        return func.id in _TYPE_FACTORIES
    if isinstance(func, ast.Attribute):
        return func.attr in _TYPE_FACTORIES
    return False


def is_type_alias_annotation(annotation: ast.expr | None) -> bool:
    if isinstance(annotation, ast.Name):
        return annotation.id == "TypeAlias"
    if isinstance(annotation, ast.Attribute):
        return annotation.attr == "TypeAlias"
    return False


class AnnotationResolver:
    """Turn annotation expressions into ``TypeExpr`` values.

    Names are looked up with Python's annotation scoping rules: the scope the
    annotation is evaluated in, enclosing function scopes (class scopes only
    when they are the evaluation scope itself), the module, star imports of
    processed modules, builtins, and finally star imports of external modules.
    A name found nowhere is a ``TypeCheckError``.
    """

    def __init__(self, index: ProgramIndex) -> None:
        self._index = index
        self._cache: dict[ast.expr, TypeExpr] = {}
        self._expanding: set[tuple[str, str]] = set()

    def annotation_type(self, expr: ast.expr, scope: Scope) -> TypeExpr:
        """Resolve one annotation evaluated in ``scope``."""
        cached = self._cache.get(expr)
        if cached is None:
            where = f"{scope.unit.relative_path}:{getattr(expr, 'lineno', '?')}"
            cached = self._convert(expr, scope, where)
            self._cache[expr] = cached
        return cached

    def function_type(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda,
        scope: Scope,
        *,
        drop_first: bool = False,
        first_type: TypeExpr | None = None,
    ) -> CallableType:
        """Build the positional callable shape of a function or lambda.

        Args:
            node: The definition
            scope: Scope the definition's annotations are evaluated in
            drop_first: Omit the first positional parameter (bound methods)
            first_type: Type for an unannotated first parameter (``self``)
        """
        arguments = node.args
        positional = [*arguments.posonlyargs, *arguments.args]
        first_default = len(positional) - len(arguments.defaults)

        params: list[Param] = []
        for index, arg in enumerate(positional):
            if index == 0 and drop_first:
                continue
            if arg.annotation is not None:
                param_type = self.annotation_type(arg.annotation, scope)
            elif index == 0 and first_type is not None:
                param_type = first_type
            else:
                param_type = ANY
            params.append(Param(param_type, has_default=index >= first_default))

        vararg = arguments.vararg
        if vararg is not None:
            element = (
                self.annotation_type(vararg.annotation, scope)
                if vararg.annotation is not None
                else ANY
            )
            params.append(Param(element))

        if isinstance(node, ast.Lambda) or node.returns is None:
            results: tuple[TypeExpr, ...] = (ANY,)
        else:
            results = results_of(self.annotation_type(node.returns, scope))

        if isinstance(node, ast.AsyncFunctionDef):
            coroutine = NamedType(
                "collections.abc", "Coroutine", (ANY, ANY, single_result(results))
            )
            results = (coroutine,)

        return CallableType(tuple(params), results, variadic=vararg is not None)

    def module_type(self, module: str, name: str, where: str) -> TypeExpr:
        """Resolve ``name`` as a type defined at the top level of ``module``."""
        scope = self._index.modules.get(module)
        if scope is None:
            return canonical_named(module, name)

        key = (module, name)
        if key in self._expanding:
            return OpaqueType(name, "recursive type alias")

        entries = scope.bindings.get(name)
        if entries:
            self._expanding.add(key)
            try:
                return self._module_binding_type(name, entries[0], scope, where)
            finally:
                self._expanding.discard(key)

        if self._index.is_module(f"{module}.{name}"):
            return OpaqueType(f"{module}.{name}", "module used as a type")

        for star in scope.star_imports:
            source = self.binding_module(star, name, {module})
            if source is not None:
                return self.module_type(source, name, where)

        if name in BUILTIN_NAMES:
            return NamedType("builtins", name)

        for star in scope.star_imports:
            if star not in self._index.modules:
                return canonical_named(star, name)

        msg = f"{where}: undefined name {name!r} in annotation"
        raise TypeCheckError(msg)

    def binding_module(
        self, module: str, name: str, seen: set[str] | None = None
    ) -> str | None:
        """Return the processed module whose top level binds ``name`` for ``module``.

        Star imports of processed modules are followed; None when nothing binds it.
        """
        scope = self._index.modules.get(module)
        if scope is None:
            return None
        if name in scope.bindings:
            return module
        seen = seen if seen is not None else set()
        seen.add(module)
        for star in scope.star_imports:
            if star in seen:
                continue
            found = self.binding_module(star, name, seen)
            if found is not None:
                return found
        return None

    def defines(self, module: str, name: str) -> bool:
        return self.binding_module(module, name) is not None

    def _convert(self, expr: ast.expr, scope: Scope, where: str) -> TypeExpr:
        if isinstance(expr, ast.Constant):
            return self._constant_type(expr, scope, where)
        if isinstance(expr, ast.Name):
            return self._name_type(expr.id, scope, where)
        if isinstance(expr, ast.Attribute):
            return self._attribute_type(expr, scope, where)
        if isinstance(expr, ast.Subscript):
            return self._subscript_type(expr, scope, where)
        if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.BitOr):
            return union_of(
                [
                    self._convert(expr.left, scope, where),
                    self._convert(expr.right, scope, where),
                ]
            )
        return OpaqueType(ast.unparse(expr), "unsupported annotation syntax")

    def _constant_type(self, expr: ast.Constant, scope: Scope, where: str) -> TypeExpr:
        if expr.value is None:
            return NONE
        if expr.value is Ellipsis:
            return ELLIPSIS
        if isinstance(expr.value, str):
            try:
                parsed = ast.parse(expr.value.strip(), mode="eval")
            except SyntaxError:
                return OpaqueType(expr.value, "unparsable string annotation")
            return self._convert(parsed.body, scope, where)
        return OpaqueType(repr(expr.value), "constant used as a type")

    def _name_type(self, name: str, scope: Scope, where: str) -> TypeExpr:
        found = lookup(name, scope)
        if found is None or found[1].kind == "module":
            return self.module_type(scope.module, name, where)

        entry, owner = found[0][0], found[1]
        if owner.kind == "class" and entry.kind == "class":
            assert isinstance(entry.node, ast.ClassDef)
            info = self._index.classes.get(entry.node)
            if info is not None and info.qualname:
                return NamedType(owner.module, info.qualname)
        if entry.kind == "import" and entry.imported is not None:
            return self._imported_type(entry.imported, where)
        return OpaqueType(name, "local name is not reachable from generated code")

    def _module_binding_type(
        self, name: str, entry: Binding, scope: Scope, where: str
    ) -> TypeExpr:
        if entry.kind == "class":
            return NamedType(scope.module, name)
        if entry.kind == "import" and entry.imported is not None:
            return self._imported_type(entry.imported, where)
        if entry.kind == "assign" and entry.value is not None:
            if is_type_factory_call(entry.value):
                return NamedType(scope.module, name)
            return self._convert(entry.value, scope, where)
        if (
            entry.kind == "annotated"
            and entry.value is not None
            and is_type_alias_annotation(entry.annotation)
        ):
            return self._convert(entry.value, scope, where)
        return OpaqueType(name, f"{entry.kind} binding used as a type")

    def _imported_type(self, binding: ImportBinding, where: str) -> TypeExpr:
        if binding.name is None:
            return OpaqueType(binding.local_name, "module used as a type")
        module, name = binding.module, binding.name
        if self._index.is_module(f"{module}.{name}"):
            return OpaqueType(f"{module}.{name}", "module used as a type")
        if module in self._index.modules:
            return self.module_type(module, name, where)
        return canonical_named(module, name)

    def _module_of_name(self, name: str, scope: Scope) -> str | None:
        found = lookup(name, scope)
        if found is None:
            return None
        entry = found[0][0]
        if entry.kind != "import" or entry.imported is None:
            return None
        imported = entry.imported
        if imported.name is None:
            return imported.bound_module
        submodule = f"{imported.module}.{imported.name}"
        if self._index.is_module(submodule):
            return submodule
        return None

    def _attribute_type(self, expr: ast.Attribute, scope: Scope, where: str) -> TypeExpr:
        parts: list[str] = []
        node: ast.expr = expr
        while isinstance(node, ast.Attribute):
            parts.append(node.attr)
            node = node.value
        if not isinstance(node, ast.Name):
            return OpaqueType(ast.unparse(expr), "unsupported annotation syntax")
        parts.reverse()

        module = self._module_of_name(node.id, scope)
        if module is None:
            base = self._name_type(node.id, scope, where)
            if (
                isinstance(base, NamedType)
                and not base.args
                and base.module in self._index.modules
            ):
                return NamedType(base.module, ".".join([base.name, *parts]))
            return OpaqueType(ast.unparse(expr), "attribute of a non-module")

        rest = parts
        while len(rest) > 1 and self._index.is_module(f"{module}.{rest[0]}"):
            module = f"{module}.{rest[0]}"
            rest = rest[1:]

        if module in self._index.modules:
            head = self.module_type(module, rest[0], where)
            if len(rest) == 1:
                return head
            if isinstance(head, NamedType) and not head.args and head.module in self._index.modules:
                return NamedType(head.module, ".".join([head.name, *rest[1:]]))
            return OpaqueType(ast.unparse(expr), "attribute of a non-class")

        if self._index.is_module(module):
            return OpaqueType(ast.unparse(expr), "namespace package attribute")
        return canonical_named(".".join([module, *rest[:-1]]), rest[-1])

    def _subscript_type(self, expr: ast.Subscript, scope: Scope, where: str) -> TypeExpr:
        base = self._convert(expr.value, scope, where)
        if not isinstance(base, NamedType) or base.args:
            return OpaqueType(ast.unparse(expr), "subscript of a non-generic")

        items = list(expr.slice.elts) if isinstance(expr.slice, ast.Tuple) else [expr.slice]

        if base.module == "typing" and base.name in _UNRENDERABLE_FORMS:
            return OpaqueType(ast.unparse(expr), f"{base.name}[...] is not rendered")
        if (base.module, base.name) == ("collections.abc", "Callable"):
            return self._callable_type(items, expr, scope, where)

        args = tuple(self._convert(item, scope, where) for item in items)
        if (base.module, base.name) == ("typing", "Optional"):
            return union_of([*args, NONE])
        if (base.module, base.name) == ("typing", "Union"):
            return union_of(list(args))
        return NamedType(base.module, base.name, args)

    def _callable_type(
        self, items: list[ast.expr], expr: ast.Subscript, scope: Scope, where: str
    ) -> TypeExpr:
        if len(items) != 2:
            return OpaqueType(ast.unparse(expr), "malformed Callable")
        params_node, returns_node = items
        returned = self._convert(returns_node, scope, where)
        if isinstance(params_node, ast.List):
            params = tuple(
                Param(self._convert(param, scope, where)) for param in params_node.elts
            )
            return CallableType(params, results_of(returned))
        if isinstance(params_node, ast.Constant) and params_node.value is Ellipsis:
            return NamedType("collections.abc", "Callable", (ELLIPSIS, returned))
        return OpaqueType(ast.unparse(expr), "Callable with a parameter specification")


__all__ = [
    "BUILTIN_NAMES",
    "AnnotationResolver",
    "canonical_named",
    "is_type_alias_annotation",
    "is_type_factory_call",
    "results_of",
    "single_result",
]
