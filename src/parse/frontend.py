"""Static callee resolution over a set of parsed units.

The ``Frontend`` answers one question for the rewriter: given the callee
expression of a call, what kind of object is being called and, when it is a
plain function value, what is its ``CallableType``?
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from contract.errors import TypeCheckError
from contract.types import (
    ANY,
    ELLIPSIS,
    CallableType,
    NamedType,
    OpaqueType,
    Param,
    TypeExpr,
)
from parse.ast_imports import extract_imports, visible_imports
from parse.name_resolution import ProgramIndex, lookup
from parse.type_resolution import (
    BUILTIN_NAMES,
    AnnotationResolver,
    is_type_alias_annotation,
    is_type_factory_call,
    results_of,
    single_result,
)
from parse.units import parse_units

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from parse.ast_imports import ImportBinding
    from parse.name_resolution import Binding, ClassInfo, Scope
    from parse.units import CompilationUnit

logger = logging.getLogger(__name__)

ResolutionKind = Literal["function", "conversion", "builtin", "unknown"]

_TRANSPARENT_DECORATORS = frozenset(
    {
        ("abc", "abstractmethod"),
        ("typing", "override"),
        ("typing", "final"),
        ("typing_extensions", "override"),
        ("typing_extensions", "final"),
    }
)

_SEQUENCES = frozenset(
    {
        ("builtins", "list"),
        ("collections.abc", "Sequence"),
        ("collections.abc", "MutableSequence"),
    }
)
_MAPPINGS = frozenset(
    {
        ("builtins", "dict"),
        ("collections.abc", "Mapping"),
        ("collections.abc", "MutableMapping"),
    }
)


@dataclass(frozen=True)
class Resolution:
    """What a callee expression statically refers to."""

    kind: ResolutionKind
    callable: CallableType | None = None

    @property
    def is_callable_value(self) -> bool:
        return self.kind == "function"


UNKNOWN = Resolution("unknown")


@dataclass(frozen=True)
class ValueRef:
    """A value whose static type is known."""

    type: TypeExpr


@dataclass(frozen=True)
class ClassRef:
    """A class object defined in a processed unit."""

    info: ClassInfo


@dataclass(frozen=True)
class InstanceRef:
    """An instance of a class defined in a processed unit."""

    info: ClassInfo


@dataclass(frozen=True)
class SuperRef:
    """The proxy returned by ``super()`` inside a method."""

    info: ClassInfo
    instance: bool


@dataclass(frozen=True)
class ModuleRef:
    name: str


@dataclass(frozen=True)
class BuiltinRef:
    name: str


@dataclass(frozen=True)
class ConversionRef:
    """A callable that converts its argument to a named type (``NewType``)."""


Ref = ValueRef | ClassRef | InstanceRef | SuperRef | ModuleRef | BuiltinRef | ConversionRef

MethodKind = Literal["function", "staticmethod", "classmethod", "property"]

_METHOD_DECORATORS: dict[tuple[str, str], MethodKind] = {
    ("builtins", "staticmethod"): "staticmethod",
    ("builtins", "classmethod"): "classmethod",
    ("builtins", "property"): "property",
}


class Frontend:
    """Parsed units plus the static lookups the rewriter relies on."""

    def __init__(self, units: list[CompilationUnit]) -> None:
        self.units = units
        self.index = ProgramIndex(units)
        self.annotations = AnnotationResolver(self.index)
        self._imports: dict[str, list[ImportBinding]] = {}
        self._resolving: set[tuple[int, str]] = set()
        self._checked = False

    @classmethod
    def from_files(cls, files: Iterable[Path], root: Path) -> Frontend:
        """Parse ``files`` (relative to ``root``) and build a checked front-end.

        Raises:
            ParseError: If any file fails to parse.
            TypeCheckError: If any annotation or import cannot be resolved.
        """
        frontend = cls(parse_units(files, root))
        frontend.check()
        return frontend

    def check(self) -> None:
        """Validate every import and annotation in the processed units.

        Raises:
            TypeCheckError: On a relative import escaping its package, a
                ``from`` import of a name a processed module does not define,
                or an annotation naming an undefined name.
        """
        if self._checked:
            return
        for unit in self.units:
            bindings = self.imports_of(unit)
            for binding in bindings:
                self._check_import(unit, binding)
        for expr, scope in self.index.annotation_sites:
            self.annotations.annotation_type(expr, scope)
        self._checked = True
        logger.debug(
            "checked %d units, %d annotations",
            len(self.units),
            len(self.index.annotation_sites),
        )

    def imports_of(self, unit: CompilationUnit) -> list[ImportBinding]:
        bindings = self._imports.get(unit.module)
        if bindings is None:
            bindings = extract_imports(unit.tree, unit.module, is_package=unit.is_package)
            self._imports[unit.module] = bindings
        return bindings

    def visible_imports(self, unit: CompilationUnit) -> dict[str, str]:
        """Import path to local name (or ``WILDCARD``) for one unit."""
        return visible_imports(self.imports_of(unit), self.index.modules)

    def resolved_type(self, callee: ast.expr, scope: Scope | None = None) -> Resolution:
        """Classify the callee expression of a call.

        Args:
            callee: The ``func`` expression of an ``ast.Call``
            scope: Scope the call runs in; looked up from the index when omitted

        Returns:
            A ``Resolution`` whose ``callable`` is set only for function values.
        """
        if scope is None:
            scope = self.index.callee_scopes.get(callee)
            if scope is None:
                return UNKNOWN
        return self._classify(self.infer(callee, scope))

    def infer(self, expr: ast.expr, scope: Scope) -> Ref | None:
        """Statically evaluate ``expr`` in ``scope``; None when unknown."""
        if isinstance(expr, ast.Name):
            return self._name_ref(expr.id, scope)
        if isinstance(expr, ast.Attribute):
            base = self.infer(expr.value, scope)
            return self._attribute_ref(base, expr.attr) if base is not None else None
        if isinstance(expr, ast.Call):
            return self._call_ref(expr, scope)
        if isinstance(expr, ast.Lambda):
            return ValueRef(self.annotations.function_type(expr, scope))
        if isinstance(expr, ast.Subscript):
            return self._subscript_ref(expr, scope)
        return None

    def _check_import(self, unit: CompilationUnit, binding: ImportBinding) -> None:
        if binding.name is None or binding.is_wildcard:
            return
        if binding.module not in self.index.modules:
            return
        if self.index.is_module(f"{binding.module}.{binding.name}"):
            return
        if not self.annotations.defines(binding.module, binding.name):
            msg = (
                f"{unit.relative_path}:{binding.lineno}: module {binding.module!r} "
                f"has no name {binding.name!r}"
            )
            raise TypeCheckError(msg)

    def _classify(self, ref: Ref | None) -> Resolution:
        if isinstance(ref, ValueRef):
            callable_type = _as_callable(ref.type)
            if callable_type is not None:
                return Resolution("function", callable_type)
            return UNKNOWN
        if isinstance(ref, (ClassRef, ConversionRef)):
            return Resolution("conversion")
        if isinstance(ref, BuiltinRef):
            return Resolution("builtin")
        return UNKNOWN

    def _name_ref(self, name: str, scope: Scope) -> Ref | None:
        found = lookup(name, scope)
        if found is None:
            module_scope = scope.module_scope()
            source = self._star_source(module_scope, name)
            if source is not None:
                return self.module_attr_ref(source, name)
            if name in BUILTIN_NAMES:
                return BuiltinRef(name)
            return None
        entries, owner = found
        return self._binding_ref(name, entries, owner)

    def module_attr_ref(self, module: str, name: str) -> Ref | None:
        """Resolve ``module.name`` for a processed module."""
        if self.index.is_module(f"{module}.{name}"):
            return ModuleRef(f"{module}.{name}")
        scope = self.index.modules.get(module)
        if scope is None:
            return None
        entries = scope.bindings.get(name)
        if entries:
            return self._binding_ref(name, entries, scope)
        source = self._star_source(scope, name)
        if source is not None:
            return self.module_attr_ref(source, name)
        return None

    def _star_source(self, module_scope: Scope, name: str) -> str | None:
        for star in module_scope.star_imports:
            source = self.annotations.binding_module(star, name, {module_scope.module})
            if source is not None:
                return source
        return None

    def _binding_ref(self, name: str, entries: list[Binding], owner: Scope) -> Ref | None:
        if len(entries) > 1:
            # Rebound names are unknown unless one binding declares the type.
            for entry in entries:
                if entry.kind in ("annotated", "param") and entry.annotation is not None:
                    return ValueRef(self._declared_type(entry, owner))
            return None

        entry = entries[0]
        if entry.kind == "def":
            assert isinstance(entry.node, (ast.FunctionDef, ast.AsyncFunctionDef))
            return self._function_ref(entry.node, owner)
        if entry.kind == "class":
            assert isinstance(entry.node, ast.ClassDef)
            return ClassRef(self.index.classes[entry.node])
        if entry.kind == "import" and entry.imported is not None:
            return self._guarded(owner, name, self._imported_ref, entry.imported)
        if entry.kind == "param":
            return self._param_ref(entry, owner)
        if entry.kind == "annotated" and not is_type_alias_annotation(entry.annotation):
            return ValueRef(self._declared_type(entry, owner))
        if entry.kind in ("assign", "annotated") and entry.value is not None:
            if is_type_factory_call(entry.value):
                return ConversionRef()
            return self._guarded(owner, name, self.infer, entry.value, owner)
        return None

    def _guarded(
        self, owner: Scope, name: str, resolve: Callable[..., Ref | None], *args: object
    ) -> Ref | None:
        # Import chains and assignments can refer back to the name being resolved.
        key = (id(owner), name)
        if key in self._resolving:
            return None
        self._resolving.add(key)
        try:
            return resolve(*args)
        finally:
            self._resolving.discard(key)

    def _declared_type(self, entry: Binding, owner: Scope) -> TypeExpr:
        assert entry.annotation is not None
        if entry.kind == "param":
            # Parameter annotations are evaluated where the def statement runs.
            assert owner.parent is not None
            return self.annotations.annotation_type(entry.annotation, owner.parent)
        return self.annotations.annotation_type(entry.annotation, owner)

    def _param_ref(self, entry: Binding, owner: Scope) -> Ref | None:
        if entry.annotation is not None:
            return ValueRef(self._declared_type(entry, owner))
        if entry.param_index != 0:
            return None
        info = self.index.enclosing_class(owner)
        if info is None:
            return None
        assert isinstance(owner.node, (ast.FunctionDef, ast.AsyncFunctionDef))
        kind = self._method_kind(owner.node, info.scope)
        if kind == "classmethod":
            return ClassRef(info)
        if kind in ("function", "property"):
            return InstanceRef(info)
        return None

    def _imported_ref(self, binding: ImportBinding) -> Ref | None:
        if binding.name is None:
            return ModuleRef(binding.bound_module)
        return self.module_attr_ref(binding.module, binding.name)

    def _function_ref(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef, owner: Scope
    ) -> Ref | None:
        if self._method_kind(node, owner) != "function":
            return None
        return ValueRef(self.annotations.function_type(node, owner))

    def _method_kind(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef, scope: Scope
    ) -> MethodKind | None:
        """Classify a def by its decorators; None for decorators that change the value."""
        kind: MethodKind = "function"
        for decorator in node.decorator_list:
            qualified = self._decorator_name(decorator, scope)
            if qualified in _TRANSPARENT_DECORATORS:
                continue
            method_kind = _METHOD_DECORATORS.get(qualified) if qualified else None
            if method_kind is not None and scope.kind == "class":
                kind = method_kind
                continue
            return None
        return kind

    def _decorator_name(self, decorator: ast.expr, scope: Scope) -> tuple[str, str] | None:
        if isinstance(decorator, ast.Name):
            found = lookup(decorator.id, scope)
            if found is None:
                return ("builtins", decorator.id) if decorator.id in BUILTIN_NAMES else None
            entries = found[0]
            imported = entries[0].imported if len(entries) == 1 else None
            if imported is not None and imported.name is not None:
                return (imported.module, imported.name)
            return None
        if isinstance(decorator, ast.Attribute) and isinstance(decorator.value, ast.Name):
            found = lookup(decorator.value.id, scope)
            if found is None or len(found[0]) != 1:
                return None
            imported = found[0][0].imported
            if imported is not None and imported.name is None:
                return (imported.bound_module, decorator.attr)
        return None

    def _call_ref(self, call: ast.Call, scope: Scope) -> Ref | None:
        callee = self.infer(call.func, scope)
        if isinstance(callee, ValueRef):
            callable_type = _as_callable(callee.type)
            if callable_type is None:
                return None
            return ValueRef(single_result(callable_type.results))
        if isinstance(callee, ClassRef):
            return InstanceRef(callee.info)
        if isinstance(callee, BuiltinRef) and callee.name == "super":
            return self._super_ref(scope)
        return None

    def _super_ref(self, scope: Scope) -> Ref | None:
        method_scope = scope
        while method_scope.kind in ("lambda", "comprehension") and method_scope.parent:
            method_scope = method_scope.parent
        info = self.index.enclosing_class(method_scope)
        if info is None:
            return None
        assert isinstance(method_scope.node, (ast.FunctionDef, ast.AsyncFunctionDef))
        kind = self._method_kind(method_scope.node, info.scope)
        if kind in ("function", "property"):
            return SuperRef(info, instance=True)
        if kind == "classmethod":
            return SuperRef(info, instance=False)
        return None

    def _subscript_ref(self, expr: ast.Subscript, scope: Scope) -> Ref | None:
        base = self.infer(expr.value, scope)
        if not isinstance(base, ValueRef) or not isinstance(base.type, NamedType):
            return None
        named = base.type
        key = (named.module, named.name)
        if key in _SEQUENCES and len(named.args) == 1:
            return ValueRef(named.args[0])
        if key in _MAPPINGS and len(named.args) == 2:
            return ValueRef(named.args[1])
        if key == ("builtins", "tuple") and named.args:
            if len(named.args) == 2 and named.args[1] == ELLIPSIS:
                return ValueRef(named.args[0])
            index = expr.slice
            if isinstance(index, ast.Constant) and type(index.value) is int:
                if -len(named.args) <= index.value < len(named.args):
                    return ValueRef(named.args[index.value])
        return None

    def _attribute_ref(self, base: Ref, attr: str) -> Ref | None:
        if isinstance(base, ModuleRef):
            return self.module_attr_ref(base.name, attr)
        if isinstance(base, ClassRef):
            return self._class_member(base.info, attr, instance=False)
        if isinstance(base, InstanceRef):
            return self._class_member(base.info, attr, instance=True)
        if isinstance(base, SuperRef):
            return self._class_member(
                base.info, attr, instance=base.instance, skip_first=True
            )
        if isinstance(base, ValueRef) and isinstance(base.type, NamedType):
            info = self.index.find_class(base.type.module, base.type.name)
            if info is not None:
                return self._class_member(info, attr, instance=True)
        return None

    def _class_member(
        self, info: ClassInfo, attr: str, *, instance: bool, skip_first: bool = False
    ) -> Ref | None:
        for position, cls in enumerate(self._mro(info)):
            if skip_first and position == 0:
                continue
            entries = cls.scope.bindings.get(attr)
            if entries:
                return self._member_ref(cls, attr, entries, instance=instance)
            if instance and attr in cls.instance_attributes:
                annotation, method_scope = cls.instance_attributes[attr]
                return ValueRef(self.annotations.annotation_type(annotation, method_scope))
        return None

    def _member_ref(
        self, cls: ClassInfo, attr: str, entries: list[Binding], *, instance: bool
    ) -> Ref | None:
        entry = entries[0]
        if len(entries) != 1 or entry.kind != "def":
            ref = self._binding_ref(attr, entries, cls.scope)
            if instance and entry.kind == "assign" and isinstance(ref, ValueRef):
                # A plain function stored on the class would be bound on access.
                return None
            return ref

        node = entry.node
        assert isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
        kind = self._method_kind(node, cls.scope)
        if kind is None:
            return None
        function_type = self.annotations.function_type
        if kind == "staticmethod":
            return ValueRef(function_type(node, cls.scope))
        if kind == "classmethod":
            return ValueRef(function_type(node, cls.scope, drop_first=True))
        if kind == "property":
            if not instance:
                return None
            getter = function_type(node, cls.scope, drop_first=True)
            return ValueRef(single_result(getter.results))
        if instance:
            return ValueRef(function_type(node, cls.scope, drop_first=True))
        return ValueRef(function_type(node, cls.scope, first_type=_self_type(cls)))

    def _mro(self, info: ClassInfo) -> list[ClassInfo]:
        order: list[ClassInfo] = []
        pending = [info]
        while pending:
            current = pending.pop(0)
            if current in order:
                continue
            order.append(current)
            pending[0:0] = self._bases(current)
        return order

    def _bases(self, info: ClassInfo) -> list[ClassInfo]:
        if info.bases is None:
            # Set first so a class listing itself as a base terminates.
            info.bases = []
            outer = info.scope.parent
            assert outer is not None
            resolved: list[ClassInfo] = []
            for base in info.node.bases:
                ref = self.infer(base, outer)
                if isinstance(ref, ClassRef):
                    resolved.append(ref.info)
            info.bases = resolved
        return info.bases


def _as_callable(type_expr: TypeExpr) -> CallableType | None:
    if isinstance(type_expr, CallableType):
        return type_expr
    if (
        isinstance(type_expr, NamedType)
        and (type_expr.module, type_expr.name) == ("collections.abc", "Callable")
        and len(type_expr.args) == 2
        and type_expr.args[0] == ELLIPSIS
    ):
        # Callable[..., R] accepts any positional arguments.
        return CallableType((Param(ANY),), results_of(type_expr.args[1]), variadic=True)
    return None


def _self_type(info: ClassInfo) -> TypeExpr:
    if info.qualname is None:
        return OpaqueType(info.node.name, "function-local class")
    return NamedType(info.module, info.qualname)


__all__ = [
    "UNKNOWN",
    "Frontend",
    "Resolution",
    "ResolutionKind",
]
