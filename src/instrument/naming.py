"""Collision-free names for modules referenced by generated code.

Types that appear in wrapper annotations are spelled ``<qualifier>.<Name>``
where the qualifier is chosen once per module path:

- builtins and names declared in the consolidated module are unqualified;
- a module some unit imports under an explicit alias keeps that alias;
- a module imported under its default name, or not imported at all, is
  spelled with its dotted path;
- a module that is only ever star-imported gets a synthesized alias.

Any candidate that would clash with a name the consolidated module already
binds falls back to a synthesized alias.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from contract.errors import GenerationError
from contract.types import CallableType, NamedType, OpaqueType, UnionType
from instrument.wrappers import PAYLOAD_NAMES
from parse.ast_imports import WILDCARD
from parse.type_resolution import BUILTIN_NAMES
from utils import module_to_identifier

if TYPE_CHECKING:
    from collections.abc import Mapping

    from contract.types import TypeExpr

SYNTHESIZED_PREFIX = "_sigprof_mod_"

_RESERVED = "<reserved>"

# Names the consolidated module binds at runtime, mapped to the module they
# refer to. A user import of the same module under the same name is harmless.
_RUNTIME_BINDINGS = {
    "annotations": _RESERVED,
    "json": "json",
    "logging": "logging",
    "time": "time",
    "TYPE_CHECKING": _RESERVED,
}


class NameResolver:
    """Per-run table from module path to the name generated code uses for it."""

    def __init__(self, *, generated_module: str) -> None:
        self.generated_module = generated_module
        self._owners: dict[str, str] = dict.fromkeys(BUILTIN_NAMES, _RESERVED)
        self._owners.update(_RUNTIME_BINDINGS)
        self._owners.update(dict.fromkeys(PAYLOAD_NAMES, _RESERVED))
        self._owners[generated_module] = _RESERVED
        self._candidates: dict[str, str | None] = {}
        self._names: dict[str, str] = {}
        self._used: set[str] = set()
        self._frozen = False

    def seed(self, visible: Mapping[str, str]) -> None:
        """Record one unit's visible imports.

        Call once per unit, in unit order, before anything is rendered. The
        first non-wildcard name seen for a path wins; a path seen only as a
        star import is marked for a synthesized alias.
        """
        if self._frozen:
            msg = "NameResolver.seed() called after names were assigned"
            raise RuntimeError(msg)
        for path, local_name in visible.items():
            if not path:
                continue
            if local_name == WILDCARD:
                self._candidates.setdefault(path, None)
            elif self._candidates.get(path) is None:
                self._candidates[path] = local_name

    def freeze(self) -> None:
        """Assign names to every seeded path, in seeding order."""
        if self._frozen:
            return
        self._frozen = True
        for path, candidate in self._candidates.items():
            self._names[path] = self._assign(path, candidate)

    def qualifier(self, path: str) -> str:
        """Return the name generated code uses for module ``path``."""
        self.freeze()
        name = self._names.get(path)
        if name is None:
            name = self._assign(path, path)
            self._names[path] = name
        self._used.add(path)
        return name

    def render(self, type_expr: TypeExpr) -> str:
        """Spell ``type_expr`` as an annotation valid in the consolidated module.

        Raises:
            GenerationError: If the type contains an ``OpaqueType``.
        """
        if isinstance(type_expr, OpaqueType):
            msg = f"cannot name {type_expr.text!r} in generated code ({type_expr.reason})"
            raise GenerationError(msg)
        if isinstance(type_expr, UnionType):
            return " | ".join(self.render(member) for member in type_expr.members)
        if isinstance(type_expr, CallableType):
            return self.render_callable(type_expr)
        return self._render_named(type_expr)

    def render_callable(self, callable_type: CallableType) -> str:
        """Spell a callable shape as ``Callable[[...], R]``."""
        callable_name = f"{self.qualifier('collections.abc')}.Callable"
        returned = self.render_returns(callable_type.results)
        if callable_type.variadic or callable_type.has_defaults:
            return f"{callable_name}[..., {returned}]"
        params = ", ".join(self.render(param.type) for param in callable_type.params)
        return f"{callable_name}[[{params}], {returned}]"

    def render_returns(self, results: tuple[TypeExpr, ...]) -> str:
        if not results:
            return "None"
        if len(results) == 1:
            return self.render(results[0])
        return f"tuple[{', '.join(self.render(result) for result in results)}]"

    def import_lines(self) -> list[str]:
        """Sorted ``import`` statements for every module rendered so far."""
        lines: list[str] = []
        for path in self._used:
            name = self._names[path]
            lines.append(f"import {path}" if name == path else f"import {path} as {name}")
        return sorted(lines)

    @property
    def table(self) -> dict[str, str]:
        """Snapshot of the assigned path to name table."""
        self.freeze()
        return dict(self._names)

    def _render_named(self, named: NamedType) -> str:
        if named.module in ("builtins", "", self.generated_module):
            base = named.name
        else:
            base = f"{self.qualifier(named.module)}.{named.name}"
        if not named.args:
            return base
        return f"{base}[{', '.join(self.render(arg) for arg in named.args)}]"

    def _assign(self, path: str, candidate: str | None) -> str:
        if candidate is not None and not candidate.startswith("_sigprof"):
            identifier = candidate.split(".", 1)[0]
            # A dotted default import binds its root package.
            owner = identifier if candidate == path else path
            holder = self._owners.get(identifier)
            if holder is None or holder == owner:
                self._owners[identifier] = owner
                return candidate
        return self._synthesize(path)

    def _synthesize(self, path: str) -> str:
        base = f"{SYNTHESIZED_PREFIX}{module_to_identifier(path)}"
        name = base
        suffix = 1
        while self._owners.get(name, path) != path:
            suffix += 1
            name = f"{base}_{suffix}"
        self._owners[name] = path
        return name


__all__ = ["SYNTHESIZED_PREFIX", "NameResolver"]
