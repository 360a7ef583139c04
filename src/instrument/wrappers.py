"""Generation of profiling wrapper functions, one per callable shape."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from contract.artifacts import PAYLOAD_LOGGER
from contract.errors import GenerationError
from contract.types import iter_opaque

if TYPE_CHECKING:
    from contract.types import CallableType
    from instrument.naming import NameResolver

logger = logging.getLogger(__name__)

WRAPPER_PREFIX = "_sigprof_wrapper_"

UNSET_NAME = "_SIGPROF_UNSET"
START_NAME = "_sigprof_start_profiling"
PRESENT_NAME = "_sigprof_present"
PROFILER_NAME = "_SigprofProfiler"
LOGGER_NAME = "_sigprof_logger"

PAYLOAD_NAMES = frozenset(
    {UNSET_NAME, START_NAME, PRESENT_NAME, PROFILER_NAME, LOGGER_NAME}
)

# Bound before any wrapper: parameter defaults are evaluated at def time.
PREAMBLE = f"""\
{UNSET_NAME} = object()
{LOGGER_NAME} = logging.getLogger({PAYLOAD_LOGGER!r})
"""

PAYLOAD = f'''\
class {PROFILER_NAME}:
    """Timing handle for one wrapped call."""

    __slots__ = ("name", "params", "started_at")

    def __init__(self, name: str, params: tuple[object, ...]) -> None:
        self.name = name
        self.params = params
        self.started_at = time.perf_counter_ns()

    def stop_profiling(self, *results: object) -> None:
        elapsed = time.perf_counter_ns() - self.started_at
        {LOGGER_NAME}.info(json.dumps({{"elapsed": elapsed, "name": self.name}}))


def {START_NAME}(fn: object, *params: object) -> {PROFILER_NAME}:
    module = getattr(fn, "__module__", None) or ""
    qualname = getattr(fn, "__qualname__", None) or type(fn).__qualname__
    name = f"{{module}}.{{qualname}}" if module else qualname
    return {PROFILER_NAME}(name, params)


def {PRESENT_NAME}(*params: object) -> tuple[object, ...]:
    """Drop trailing parameters the caller left unset."""
    end = len(params)
    while end and params[end - 1] is {UNSET_NAME}:
        end -= 1
    return params[:end]
'''


def wrapper_name(signature_id: int) -> str:
    """Name of the wrapper generated for ``signature_id``.

    Examples:
        >>> wrapper_name(42)
        '_sigprof_wrapper_42'
    """
    return f"{WRAPPER_PREFIX}{signature_id}"


@dataclass(frozen=True)
class WrapperDefinition:
    """Source of one generated wrapper and the shape it was generated for."""

    signature_id: int
    name: str
    source: str
    callable_type: CallableType


def _joined(names: list[str]) -> str:
    return ", ".join(names)


def render_wrapper(
    callable_type: CallableType, signature_id: int, names: NameResolver
) -> str:
    """Render the source text of the wrapper for one callable shape.

    Parameters are positional-only so a wrapper never captures keywords.
    A parameter with a default becomes ``pN=_SIGPROF_UNSET`` and unset
    trailing values are dropped before forwarding, so the wrapped callable
    applies its own defaults.

    Raises:
        GenerationError: If any component type cannot be named in generated
            code, or defaults are not trailing.
    """
    opaque = iter_opaque(callable_type)
    if opaque:
        first = opaque[0]
        msg = f"cannot name {first.text!r} in generated code ({first.reason})"
        raise GenerationError(msg)

    fixed = callable_type.fixed_params
    seen_default = False
    for param in fixed:
        if seen_default and not param.has_default:
            msg = f"non-default parameter follows a default in {callable_type.display}"
            raise GenerationError(msg)
        seen_default = seen_default or param.has_default

    fn_annotation = names.render_callable(callable_type)
    returns = names.render_returns(callable_type.results)

    fixed_names = [f"p{index}" for index in range(len(fixed))]
    signature = [f"fn: {fn_annotation}"]
    for name, param in zip(fixed_names, fixed):
        text = f"{name}: {names.render(param.type)}"
        if param.has_default:
            text = f"{text} = {UNSET_NAME}"
        signature.append(text)
    signature.append("/")

    tail: str | None = None
    if callable_type.variadic:
        tail = f"p{len(fixed)}"
        signature.append(f"*{tail}: {names.render(callable_type.params[-1].type)}")

    if callable_type.has_defaults:
        collected = f"list({PRESENT_NAME}({_joined(fixed_names)}))"
        forwarded = [f"*{PRESENT_NAME}({_joined(fixed_names)})"]
    else:
        collected = f"[{_joined(fixed_names)}]"
        forwarded = list(fixed_names)
    if tail is not None:
        forwarded.append(f"*{tail}")
    call = f"fn({_joined(forwarded)})"

    lines = [
        f"def {wrapper_name(signature_id)}({_joined(signature)}) -> {returns}:",
        f"    ps = {collected}",
    ]
    if tail is not None:
        lines.append(f"    ps.extend({tail})")
    lines.append(f"    p = {START_NAME}(fn, *ps)")

    result_names = [f"r{index}" for index in range(len(callable_type.results))]
    if not result_names:
        lines.extend([f"    {call}", "    p.stop_profiling()", "    return None"])
    elif len(result_names) == 1:
        lines.extend(
            [
                f"    r0 = {call}",
                "    p.stop_profiling(r0)",
                "    return r0",
            ]
        )
    else:
        lines.extend(
            [
                f"    rs = {call}",
                f"    {_joined(result_names)} = rs",
                f"    p.stop_profiling({_joined(result_names)})",
                "    return rs",
            ]
        )
    return "\n".join(lines) + "\n"


class WrapperGenerator:
    """Generate and remember wrapper definitions keyed by signature id."""

    def __init__(self, names: NameResolver) -> None:
        self._names = names
        self._definitions: dict[int, WrapperDefinition] = {}
        self._failed: dict[int, str] = {}

    def generate(self, callable_type: CallableType, signature_id: int) -> WrapperDefinition:
        """Return the wrapper for ``signature_id``, generating it on first use.

        Raises:
            GenerationError: If the shape cannot be rendered. The failure is
                remembered and re-raised for later requests of the same id.
        """
        existing = self._definitions.get(signature_id)
        if existing is not None:
            return existing
        if signature_id in self._failed:
            raise GenerationError(self._failed[signature_id])

        try:
            source = render_wrapper(callable_type, signature_id, self._names)
        except GenerationError as exc:
            self._failed[signature_id] = str(exc)
            logger.warning(
                "no wrapper for %s: %s", callable_type.display, exc
            )
            raise

        definition = WrapperDefinition(
            signature_id=signature_id,
            name=wrapper_name(signature_id),
            source=source,
            callable_type=callable_type,
        )
        self._definitions[signature_id] = definition
        return definition

    def definitions(self) -> list[WrapperDefinition]:
        """All generated wrappers ordered by signature id."""
        return [self._definitions[key] for key in sorted(self._definitions)]


__all__ = [
    "PAYLOAD",
    "PAYLOAD_NAMES",
    "PREAMBLE",
    "WRAPPER_PREFIX",
    "WrapperDefinition",
    "WrapperGenerator",
    "render_wrapper",
    "wrapper_name",
]
