from __future__ import annotations

import json
import logging

import pytest

from artifacts.write import render_generated_module
from contract.artifacts import BUILD_MARKER
from contract.errors import GenerationError
from contract.types import CallableType, NamedType, OpaqueType, Param
from instrument.naming import NameResolver
from instrument.wrappers import WrapperGenerator, render_wrapper, wrapper_name

INT = NamedType("builtins", "int")
STR = NamedType("builtins", "str")


def _names() -> NameResolver:
    names = NameResolver(generated_module="sigprof_generated")
    names.freeze()
    return names


def _load(definitions: list, names: NameResolver) -> dict[str, object]:
    source = render_generated_module(
        package_name="demo", definitions=definitions, names=names
    )
    namespace: dict[str, object] = {"__name__": "sigprof_generated"}
    exec(compile(source, "sigprof_generated.py", "exec"), namespace)
    return namespace


def _timing_lines(caplog: pytest.LogCaptureFixture) -> list[dict[str, object]]:
    return [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == "sigprof"
    ]


def test_fixed_arity_wrapper_source() -> None:
    shape = CallableType((Param(INT), Param(INT)), (INT,))

    source = render_wrapper(shape, 5, _names())

    assert source.splitlines() == [
        "def _sigprof_wrapper_5(fn: collections.abc.Callable[[int, int], int], "
        "p0: int, p1: int, /) -> int:",
        "    ps = [p0, p1]",
        "    p = _sigprof_start_profiling(fn, *ps)",
        "    r0 = fn(p0, p1)",
        "    p.stop_profiling(r0)",
        "    return r0",
    ]


def test_variadic_wrapper_spreads_the_tail() -> None:
    shape = CallableType((Param(INT), Param(INT)), (INT,), variadic=True)

    source = render_wrapper(shape, 9, _names())

    assert source.splitlines()[0] == (
        "def _sigprof_wrapper_9(fn: collections.abc.Callable[..., int], "
        "p0: int, /, *p1: int) -> int:"
    )
    assert "    ps.extend(p1)" in source
    assert "    r0 = fn(p0, *p1)" in source


def test_zero_and_multiple_result_wrappers() -> None:
    names = _names()
    none_source = render_wrapper(CallableType((Param(STR),), ()), 1, names)
    pair_source = render_wrapper(CallableType((Param(STR),), (INT, STR)), 2, names)

    assert none_source.splitlines()[-3:] == [
        "    fn(p0)",
        "    p.stop_profiling()",
        "    return None",
    ]
    assert "-> tuple[int, str]:" in pair_source
    assert pair_source.splitlines()[-4:] == [
        "    rs = fn(p0)",
        "    r0, r1 = rs",
        "    p.stop_profiling(r0, r1)",
        "    return rs",
    ]


def test_defaulted_parameters_use_the_unset_sentinel() -> None:
    shape = CallableType((Param(INT), Param(INT, has_default=True)), (INT,))

    source = render_wrapper(shape, 3, _names())

    assert "p1: int = _SIGPROF_UNSET, /" in source
    assert "    ps = list(_sigprof_present(p0, p1))" in source
    assert "    r0 = fn(*_sigprof_present(p0, p1))" in source


def test_non_trailing_default_is_rejected() -> None:
    shape = CallableType((Param(INT, has_default=True), Param(INT)), (INT,))

    with pytest.raises(GenerationError, match="non-default parameter"):
        render_wrapper(shape, 3, _names())


def test_generator_remembers_failures(caplog: pytest.LogCaptureFixture) -> None:
    generator = WrapperGenerator(_names())
    shape = CallableType((Param(OpaqueType("Literal['a']", "literal")),), (INT,))

    with pytest.raises(GenerationError):
        generator.generate(shape, 11)
    with pytest.raises(GenerationError):
        generator.generate(shape, 11)

    assert generator.definitions() == []
    warnings = [r for r in caplog.records if "no wrapper for" in r.getMessage()]
    assert len(warnings) == 1


def test_generator_returns_one_definition_per_id() -> None:
    generator = WrapperGenerator(_names())
    shape = CallableType((Param(INT),), (INT,))

    first = generator.generate(shape, 4)
    second = generator.generate(shape, 4)
    other = generator.generate(CallableType((), (INT,)), 2)

    assert first is second
    assert first.name == wrapper_name(4)
    assert [d.signature_id for d in generator.definitions()] == [2, 4]
    assert other.source.startswith(
        "def _sigprof_wrapper_2(fn: collections.abc.Callable[[], int], /) -> int:"
    )


def test_generated_module_layout() -> None:
    names = _names()
    generator = WrapperGenerator(names)
    generator.generate(CallableType((Param(INT),), (INT,)), 20)
    generator.generate(CallableType((Param(STR),), ()), 10)

    source = render_generated_module(
        package_name="demo", definitions=generator.definitions(), names=names
    )
    lines = source.splitlines()

    assert lines[0] == BUILD_MARKER
    assert lines[1] == '"""Profiling wrappers for the demo package."""'
    assert "from __future__ import annotations" in lines
    assert "if TYPE_CHECKING:" in lines
    assert "    import collections.abc" in lines
    assert source.index("_sigprof_wrapper_10") < source.index("_sigprof_wrapper_20")
    assert source.count("class _SigprofProfiler") == 1


def test_wrappers_preserve_call_semantics(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="sigprof")
    names = _names()
    generator = WrapperGenerator(names)
    shapes = {
        "fixed": CallableType((Param(INT), Param(INT)), (INT,)),
        "variadic": CallableType((Param(INT), Param(INT)), (INT,), variadic=True),
        "pair": CallableType((Param(STR),), (STR, STR)),
        "nothing": CallableType((Param(STR),), ()),
        "defaults": CallableType((Param(INT), Param(INT, has_default=True)), (INT,)),
    }
    ids = {key: index + 1 for index, key in enumerate(shapes)}
    for key, shape in shapes.items():
        generator.generate(shape, ids[key])
    module = _load(generator.definitions(), names)

    def add(a: int, b: int) -> int:
        return a + b

    def total(first: int, *rest: int) -> int:
        return first + sum(rest)

    def split(text: str) -> tuple[str, str]:
        head, _, tail = text.partition(":")
        return head, tail

    seen: list[str] = []

    def remember(text: str) -> None:
        seen.append(text)

    def scale(value: int, factor: int = 10) -> int:
        return value * factor

    wrapped = {key: module[wrapper_name(ids[key])] for key in shapes}
    assert wrapped["fixed"](add, 1, 2) == 3
    assert wrapped["variadic"](total, 1, *[2, 3]) == 6
    assert wrapped["variadic"](total, 1) == 1
    assert wrapped["pair"](split, "left:right") == ("left", "right")
    assert wrapped["nothing"](remember, "x") is None
    assert wrapped["defaults"](scale, 2) == 20
    assert wrapped["defaults"](scale, 2, 3) == 6
    assert seen == ["x"]

    lines = _timing_lines(caplog)
    assert len(lines) == 7
    assert all(isinstance(line["elapsed"], int) for line in lines)
    assert str(lines[0]["name"]).endswith("add")
    assert str(lines[-1]["name"]).endswith("scale")
