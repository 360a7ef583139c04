"""Call-site rewriting: route every eligible call through its wrapper."""

from __future__ import annotations

import ast
import logging
from typing import TYPE_CHECKING

from artifacts.models.artifacts.callsites import CallSiteRecord, SourceSpan
from contract.errors import GenerationError
from parse.frontend import UNKNOWN

if TYPE_CHECKING:
    from artifacts.models.artifacts.callsites import SkipReason
    from instrument.registry import SignatureRegistry
    from instrument.wrappers import WrapperGenerator
    from parse.frontend import Frontend, Resolution
    from parse.units import CompilationUnit

logger = logging.getLogger(__name__)

_SKIP_BY_KIND: dict[str, SkipReason] = {
    "builtin": "builtin",
    "conversion": "conversion",
    "unknown": "unknown_callee",
}


def resolve_call_sites(frontend: Frontend) -> dict[ast.Call, Resolution]:
    """Resolve the callee of every call in every unit before any rewriting.

    Resolution may look through assignments anywhere in the program, so it
    has to see the trees as they were parsed.
    """
    resolutions: dict[ast.Call, Resolution] = {}
    for unit in frontend.units:
        for node in ast.walk(unit.tree):
            if isinstance(node, ast.Call):
                resolutions[node] = frontend.resolved_type(node.func)
    return resolutions


class CallSiteRewriter(ast.NodeTransformer):
    """Rewrite ``f(a, b)`` into ``_sigprof_wrapper_N(f, a, b)`` in one unit.

    The traversal is pre-order: a call is replaced first, then the visit
    continues into the callee and arguments of the replacement so nested
    calls are rewritten too. Arguments are moved, never copied, so each is
    still evaluated exactly once and in the original order.
    """

    def __init__(
        self,
        unit: CompilationUnit,
        resolutions: dict[ast.Call, Resolution],
        registry: SignatureRegistry,
        generator: WrapperGenerator,
    ) -> None:
        self.unit = unit
        self._resolutions = resolutions
        self._registry = registry
        self._generator = generator
        self.records: list[CallSiteRecord] = []
        self.used_wrappers: dict[int, str] = {}

    def rewrite(self, generated_module: str) -> ast.Module:
        """Rewrite the unit's tree in place and return it."""
        tree = self.visit(self.unit.tree)
        assert isinstance(tree, ast.Module)
        if self.used_wrappers:
            names = [self.used_wrappers[key] for key in sorted(self.used_wrappers)]
            insert_wrapper_import(tree, generated_module, names)
        ast.fix_missing_locations(tree)
        return tree

    def visit_Call(self, node: ast.Call) -> ast.expr:
        resolution = self._resolutions.get(node, UNKNOWN)
        callee_expr = ast.unparse(node.func)

        reason = self._skip_reason(node, resolution)
        if reason is not None:
            logger.debug(
                "%s:%d: leaving %s unchanged (%s)",
                self.unit.relative_path,
                node.lineno,
                callee_expr,
                reason,
            )
            self._record(node, callee_expr, skip_reason=reason)
            self.generic_visit(node)
            return node

        callable_type = resolution.callable
        assert callable_type is not None
        signature_id, created = self._registry.get_or_create(callable_type)
        if created:
            logger.debug("signature %d: %s", signature_id, callable_type.display)
        try:
            definition = self._generator.generate(callable_type, signature_id)
        except GenerationError:
            self._record(
                node,
                callee_expr,
                skip_reason="generation_failed",
                signature_id=signature_id,
            )
            self.generic_visit(node)
            return node

        wrapper = ast.Name(id=definition.name, ctx=ast.Load())
        ast.copy_location(wrapper, node.func)
        replacement = ast.Call(func=wrapper, args=[node.func, *node.args], keywords=[])
        ast.copy_location(replacement, node)

        self.used_wrappers[signature_id] = definition.name
        self._record(
            node,
            callee_expr,
            signature_id=signature_id,
            wrapper=definition.name,
        )
        self.generic_visit(replacement)
        return replacement

    def _skip_reason(self, node: ast.Call, resolution: Resolution) -> SkipReason | None:
        if not resolution.is_callable_value or resolution.callable is None:
            return _SKIP_BY_KIND.get(resolution.kind, "unknown_callee")
        # Wrappers forward positionals only.
        if node.keywords:
            return "keyword_arguments"
        return None

    def _record(
        self,
        node: ast.Call,
        callee_expr: str,
        *,
        skip_reason: SkipReason | None = None,
        signature_id: int | None = None,
        wrapper: str | None = None,
    ) -> None:
        span = SourceSpan(
            path=self.unit.relative_path,
            start_line=node.lineno,
            start_col=node.col_offset + 1,
            end_line=node.end_lineno or node.lineno,
            end_col=(node.end_col_offset or node.col_offset) + 1,
        )
        self.records.append(
            CallSiteRecord(
                src_span=span,
                module=self.unit.module,
                callee_expr=callee_expr,
                rewritten=wrapper is not None,
                signature_id=signature_id,
                wrapper=wrapper,
                skip_reason=skip_reason,
            )
        )


def insert_wrapper_import(tree: ast.Module, module: str, names: list[str]) -> None:
    """Import ``names`` from ``module`` after the docstring and future imports."""
    body = tree.body
    position = 0
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        position = 1
    while position < len(body):
        current = body[position]
        if not (isinstance(current, ast.ImportFrom) and current.module == "__future__"):
            break
        position += 1

    statement = ast.ImportFrom(
        module=module,
        names=[ast.alias(name=name) for name in names],
        level=0,
    )
    body.insert(position, statement)


__all__ = ["CallSiteRewriter", "insert_wrapper_import", "resolve_call_sites"]
