"""Scope and binding tables for static callee resolution.

Every unit is indexed once into a tree of ``Scope`` objects (module, class,
function, lambda and comprehension scopes). Each scope records the names it
binds and how they were bound, which is all the type resolver needs to
follow a callee back to its definition.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from parse.ast_imports import ImportBinding, import_bindings

if TYPE_CHECKING:
    from parse.units import CompilationUnit

BindingKind = Literal["def", "class", "assign", "annotated", "param", "import", "other"]
ScopeKind = Literal["module", "class", "function", "lambda", "comprehension"]

_COMPREHENSIONS = (ast.ListComp, ast.SetComp, ast.GeneratorExp, ast.DictComp)


@dataclass(frozen=True)
class Binding:
    """How a single name was bound within a scope."""

    kind: BindingKind
    node: ast.AST | None = None
    value: ast.expr | None = None
    annotation: ast.expr | None = None
    imported: ImportBinding | None = None
    param_index: int = -1


@dataclass(eq=False)
class Scope:
    """A lexical scope and the names bound directly inside it."""

    kind: ScopeKind
    unit: CompilationUnit
    node: ast.AST | None
    parent: Scope | None
    bindings: dict[str, list[Binding]] = field(default_factory=dict)
    global_names: set[str] = field(default_factory=set)
    nonlocal_names: set[str] = field(default_factory=set)
    star_imports: list[str] = field(default_factory=list)

    @property
    def module(self) -> str:
        return self.unit.module

    def bind(self, name: str, binding: Binding) -> None:
        self.bindings.setdefault(name, []).append(binding)

    def module_scope(self) -> Scope:
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope


@dataclass(eq=False)
class ClassInfo:
    """A class definition together with its body scope."""

    node: ast.ClassDef
    scope: Scope
    qualname: str | None
    instance_attributes: dict[str, tuple[ast.expr, Scope]] = field(
        default_factory=dict
    )
    bases: list[ClassInfo] | None = None

    @property
    def module(self) -> str:
        return self.scope.module


def lookup(name: str, scope: Scope) -> tuple[list[Binding], Scope] | None:
    """Find the bindings of ``name`` as seen from code running in ``scope``.

    Class scopes are only searched when they are ``scope`` itself, since a
    class body does not enclose the functions defined inside it.
    """
    current = scope
    while current.parent is not None:
        if name in current.global_names:
            break
        entries = current.bindings.get(name)
        visible = current.kind != "class" or current is scope
        if entries and visible and name not in current.nonlocal_names:
            return entries, current
        current = current.parent

    module_scope = scope.module_scope()
    entries = module_scope.bindings.get(name)
    if entries:
        return entries, module_scope
    return None


def _target_names(target: ast.expr) -> list[str]:
    if isinstance(target, ast.Name):
        return [target.id]
    if isinstance(target, (ast.Tuple, ast.List)):
        names: list[str] = []
        for element in target.elts:
            names.extend(_target_names(element))
        return names
    if isinstance(target, ast.Starred):
        return _target_names(target.value)
    return []


class _BindingCollector(ast.NodeVisitor):
    """Record the names bound by a block of statements in one scope.

    Nested functions, classes, lambdas and comprehensions bind their own
    name (where they have one) but are not descended into.
    """

    def __init__(self, scope: Scope) -> None:
        self.scope = scope

    def collect(self, body: list[ast.stmt]) -> None:
        for statement in body:
            self.visit(statement)

    def _bind_other(self, target: ast.expr, node: ast.AST) -> None:
        for name in _target_names(target):
            self.scope.bind(name, Binding("other", node=node))

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self.scope.bind(node.name, Binding("def", node=node))

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self.scope.bind(node.name, Binding("def", node=node))

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self.scope.bind(node.name, Binding("class", node=node))

    def visit_Lambda(self, node: ast.Lambda) -> None:
        return

    def visit_ListComp(self, node: ast.ListComp) -> None:
        return

    def visit_SetComp(self, node: ast.SetComp) -> None:
        return

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        return

    def visit_DictComp(self, node: ast.DictComp) -> None:
        return

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            if isinstance(target, ast.Name):
                self.scope.bind(target.id, Binding("assign", node=node, value=node.value))
            else:
                self._bind_other(target, node)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if isinstance(node.target, ast.Name):
            self.scope.bind(
                node.target.id,
                Binding(
                    "annotated",
                    node=node,
                    value=node.value,
                    annotation=node.annotation,
                ),
            )
        self.generic_visit(node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self._bind_other(node.target, node)
        self.generic_visit(node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self._bind_other(node.target, node)
        self.generic_visit(node)

    def visit_For(self, node: ast.For) -> None:
        self._bind_other(node.target, node)
        self.generic_visit(node)

    def visit_AsyncFor(self, node: ast.AsyncFor) -> None:
        self._bind_other(node.target, node)
        self.generic_visit(node)

    def visit_withitem(self, node: ast.withitem) -> None:
        if node.optional_vars is not None:
            self._bind_other(node.optional_vars, node)
        self.generic_visit(node)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self.scope.bind(node.name, Binding("other", node=node))
        self.generic_visit(node)

    def visit_MatchAs(self, node: ast.MatchAs) -> None:
        if node.name:
            self.scope.bind(node.name, Binding("other", node=node))
        self.generic_visit(node)

    def visit_MatchStar(self, node: ast.MatchStar) -> None:
        if node.name:
            self.scope.bind(node.name, Binding("other", node=node))

    def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
        if node.rest:
            self.scope.bind(node.rest, Binding("other", node=node))
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        self._bind_imports(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self._bind_imports(node)

    def _bind_imports(self, node: ast.Import | ast.ImportFrom) -> None:
        unit = self.scope.unit
        for imported in import_bindings(node, unit.module, is_package=unit.is_package):
            if imported.is_wildcard:
                self.scope.star_imports.append(imported.module)
            else:
                self.scope.bind(
                    imported.local_name,
                    Binding("import", node=node, imported=imported),
                )

    def visit_Global(self, node: ast.Global) -> None:
        self.scope.global_names.update(node.names)

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self.scope.nonlocal_names.update(node.names)


def _bind_parameters(scope: Scope, arguments: ast.arguments, *, lambda_: bool) -> None:
    positional = [*arguments.posonlyargs, *arguments.args]
    for index, arg in enumerate(positional):
        if lambda_:
            scope.bind(arg.arg, Binding("other", node=arg))
        else:
            scope.bind(
                arg.arg,
                Binding("param", node=arg, annotation=arg.annotation, param_index=index),
            )
    for arg in arguments.kwonlyargs:
        if lambda_:
            scope.bind(arg.arg, Binding("other", node=arg))
        else:
            scope.bind(arg.arg, Binding("param", node=arg, annotation=arg.annotation))
    for arg in (arguments.vararg, arguments.kwarg):
        if arg is not None:
            scope.bind(arg.arg, Binding("other", node=arg))


class ProgramIndex:
    """Scopes, classes and call-site scopes for a whole set of units."""

    def __init__(self, units: list[CompilationUnit]) -> None:
        self.units = units
        self.modules: dict[str, Scope] = {}
        self.classes: dict[ast.ClassDef, ClassInfo] = {}
        self.function_scopes: dict[ast.AST, Scope] = {}
        self.callee_scopes: dict[ast.expr, Scope] = {}
        self.annotation_sites: list[tuple[ast.expr, Scope]] = []
        self._module_prefixes: set[str] = set()

        for unit in units:
            self._index_unit(unit)

    def is_module(self, path: str) -> bool:
        """Return True for processed modules and their parent packages."""
        return path in self.modules or path in self._module_prefixes

    def find_class(self, module: str, qualname: str) -> ClassInfo | None:
        """Locate a module-level (or nested) class by qualified name."""
        scope = self.modules.get(module)
        info: ClassInfo | None = None
        for part in qualname.split("."):
            if scope is None:
                return None
            entries = scope.bindings.get(part, [])
            if len(entries) != 1 or entries[0].kind != "class":
                return None
            node = entries[0].node
            assert isinstance(node, ast.ClassDef)
            info = self.classes.get(node)
            scope = info.scope if info is not None else None
        return info

    def enclosing_class(self, scope: Scope) -> ClassInfo | None:
        """Return the class a function scope is a method of, if any."""
        if scope.kind != "function" or scope.parent is None:
            return None
        if scope.parent.kind != "class":
            return None
        node = scope.parent.node
        assert isinstance(node, ast.ClassDef)
        return self.classes.get(node)

    def _index_unit(self, unit: CompilationUnit) -> None:
        scope = Scope("module", unit, unit.tree, None)
        _BindingCollector(scope).collect(unit.tree.body)
        self.modules[unit.module] = scope

        parts = unit.module.split(".")
        for end in range(1, len(parts)):
            self._module_prefixes.add(".".join(parts[:end]))

        for statement in unit.tree.body:
            self._index_node(statement, scope)

    def _index_node(self, node: ast.AST, scope: Scope) -> None:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            self._index_function(node, scope)
            return
        if isinstance(node, ast.ClassDef):
            self._index_class(node, scope)
            return
        if isinstance(node, ast.Lambda):
            self._index_lambda(node, scope)
            return
        if isinstance(node, _COMPREHENSIONS):
            self._index_comprehension(node, scope)
            return
        if isinstance(node, ast.AnnAssign):
            self.annotation_sites.append((node.annotation, scope))
        if isinstance(node, ast.Call):
            self.callee_scopes[node.func] = scope
        for child in ast.iter_child_nodes(node):
            self._index_node(child, scope)

    def _index_function(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef, scope: Scope
    ) -> None:
        arguments = node.args
        outer: list[ast.expr] = [*node.decorator_list, *arguments.defaults]
        outer.extend(default for default in arguments.kw_defaults if default is not None)
        for expr in outer:
            self._index_node(expr, scope)

        annotations = [
            arg.annotation
            for arg in (
                *arguments.posonlyargs,
                *arguments.args,
                *arguments.kwonlyargs,
                arguments.vararg,
                arguments.kwarg,
            )
            if arg is not None and arg.annotation is not None
        ]
        if node.returns is not None:
            annotations.append(node.returns)
        for annotation in annotations:
            self.annotation_sites.append((annotation, scope))
            self._index_node(annotation, scope)

        inner = Scope("function", scope.unit, node, scope)
        _bind_parameters(inner, arguments, lambda_=False)
        _BindingCollector(inner).collect(node.body)
        self.function_scopes[node] = inner
        for statement in node.body:
            self._index_node(statement, inner)

    def _index_class(self, node: ast.ClassDef, scope: Scope) -> None:
        for expr in (*node.decorator_list, *node.bases):
            self._index_node(expr, scope)
        for keyword in node.keywords:
            self._index_node(keyword.value, scope)

        if scope.kind == "module":
            qualname: str | None = node.name
        elif isinstance(scope.node, ast.ClassDef):
            parent_info = self.classes.get(scope.node)
            parent_name = parent_info.qualname if parent_info is not None else None
            qualname = f"{parent_name}.{node.name}" if parent_name else None
        else:
            qualname = None

        inner = Scope("class", scope.unit, node, scope)
        _BindingCollector(inner).collect(node.body)
        info = ClassInfo(node=node, scope=inner, qualname=qualname)
        self.classes[node] = info

        for statement in node.body:
            self._index_node(statement, inner)

        for statement in node.body:
            if isinstance(statement, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self._collect_instance_attributes(info, statement)

    def _collect_instance_attributes(
        self, info: ClassInfo, method: ast.FunctionDef | ast.AsyncFunctionDef
    ) -> None:
        positional = [*method.args.posonlyargs, *method.args.args]
        if not positional:
            return
        receiver = positional[0].arg
        method_scope = self.function_scopes[method]
        for node in ast.walk(method):
            if not isinstance(node, ast.AnnAssign):
                continue
            target = node.target
            if (
                isinstance(target, ast.Attribute)
                and isinstance(target.value, ast.Name)
                and target.value.id == receiver
            ):
                info.instance_attributes.setdefault(
                    target.attr, (node.annotation, method_scope)
                )

    def _index_lambda(self, node: ast.Lambda, scope: Scope) -> None:
        arguments = node.args
        for default in (*arguments.defaults, *arguments.kw_defaults):
            if default is not None:
                self._index_node(default, scope)
        inner = Scope("lambda", scope.unit, node, scope)
        _bind_parameters(inner, arguments, lambda_=True)
        self.function_scopes[node] = inner
        self._index_node(node.body, inner)

    def _index_comprehension(
        self,
        node: ast.ListComp | ast.SetComp | ast.GeneratorExp | ast.DictComp,
        scope: Scope,
    ) -> None:
        inner = Scope("comprehension", scope.unit, node, scope)
        for generator in node.generators:
            for name in _target_names(generator.target):
                inner.bind(name, Binding("other", node=generator))

        for position, generator in enumerate(node.generators):
            # The first iterable is evaluated in the enclosing scope.
            self._index_node(generator.iter, scope if position == 0 else inner)
            for condition in generator.ifs:
                self._index_node(condition, inner)

        if isinstance(node, ast.DictComp):
            self._index_node(node.key, inner)
            self._index_node(node.value, inner)
        else:
            self._index_node(node.elt, inner)


__all__ = [
    "Binding",
    "ClassInfo",
    "ProgramIndex",
    "Scope",
    "lookup",
]
