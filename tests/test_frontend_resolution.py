from __future__ import annotations

import ast
from pathlib import Path

import pytest

from contract.errors import ParseError, TypeCheckError
from contract.types import ANY, CallableType, NamedType, Param
from parse.frontend import Frontend, Resolution
from scan.files import find_python_files

INT = NamedType("builtins", "int")
STR = NamedType("builtins", "str")
FLOAT = NamedType("builtins", "float")


def _write_python_file(repo_root: Path, relative_path: str, source: str) -> Path:
    path = repo_root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source, encoding="utf-8")
    return path


def _frontend(repo_root: Path, files: dict[str, str]) -> Frontend:
    for relative_path, source in files.items():
        _write_python_file(repo_root, relative_path, source)
    return Frontend.from_files(find_python_files(repo_root), repo_root)


def _resolutions(frontend: Frontend, module: str) -> dict[str, Resolution]:
    unit = next(unit for unit in frontend.units if unit.module == module)
    return {
        ast.unparse(node.func): frontend.resolved_type(node.func)
        for node in ast.walk(unit.tree)
        if isinstance(node, ast.Call)
    }


def test_builtins_and_conversions_are_not_function_values(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "app.py": """\
from typing import NewType

UserId = NewType("UserId", int)


class Widget:
    pass


def run(x: list[int]) -> None:
    len(x)
    Widget()
    UserId(5)
    int("3")
""",
        },
    )

    resolved = _resolutions(frontend, "app")

    assert resolved["len"].kind == "builtin"
    assert resolved["int"].kind == "builtin"
    assert resolved["Widget"].kind == "conversion"
    assert resolved["UserId"].kind == "conversion"
    assert not any(resolved[name].is_callable_value for name in ("len", "Widget"))


def test_function_shapes(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "app.py": """\
from typing import Optional


def add(a: int, b: int) -> int:
    return a + b


def pair(x: str) -> tuple[int, str]:
    return len(x), x


def log(*parts: str) -> None:
    print(*parts)


def opt(a: int, b: Optional[int] = None) -> int:
    return a


def untyped(a):
    return a


def run() -> None:
    add(1, 2)
    pair("x")
    log("a", "b")
    opt(1)
    untyped(1)
""",
        },
    )

    resolved = _resolutions(frontend, "app")

    assert resolved["add"].callable == CallableType((Param(INT), Param(INT)), (INT,))
    assert resolved["pair"].callable == CallableType((Param(STR),), (INT, STR))
    assert resolved["log"].callable == CallableType((Param(STR),), (), variadic=True)
    opt = resolved["opt"].callable
    assert opt is not None
    assert opt.params[1].has_default is True
    assert opt.params[1].type.display == "builtins.None | builtins.int"
    assert resolved["untyped"].callable == CallableType((Param(ANY),), (ANY,))


def test_aliases_are_structurally_equal(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "app.py": """\
import typing

Number = int


def first(values: typing.List[Number]) -> Number:
    return values[0]


def second(items: list[int]) -> int:
    return items[0]


def run() -> None:
    first([1])
    second([2])
""",
        },
    )

    resolved = _resolutions(frontend, "app")

    assert resolved["first"].callable == resolved["second"].callable


def test_methods_resolve_with_bound_and_unbound_semantics(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "shop.py": """\
class Counter:
    def __init__(self, start: int) -> None:
        self.value: int = start

    def bump(self, by: int) -> int:
        return self.value + by

    def twice(self) -> int:
        return self.bump(1) + self.bump(1)

    @staticmethod
    def make(n: int) -> "Counter":
        return Counter(n)

    @classmethod
    def zero(cls) -> "Counter":
        return cls.make(0)


def use(c: Counter) -> None:
    c.bump(2)
    Counter.bump(c, 3)
    Counter.make(1)
    Counter.zero()
""",
        },
    )
    counter = NamedType("shop", "Counter")

    resolved = _resolutions(frontend, "shop")

    bound = CallableType((Param(INT),), (INT,))
    assert resolved["self.bump"].callable == bound
    assert resolved["c.bump"].callable == bound
    assert resolved["Counter.bump"].callable == CallableType(
        (Param(counter), Param(INT)), (INT,)
    )
    assert resolved["Counter.make"].callable == CallableType((Param(INT),), (counter,))
    assert resolved["cls.make"].callable == CallableType((Param(INT),), (counter,))
    assert resolved["Counter.zero"].callable == CallableType((), (counter,))
    assert resolved["Counter"].kind == "conversion"


def test_inherited_and_super_methods(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "shapes.py": """\
class Base:
    def area(self) -> float:
        return 0.0


class Square(Base):
    def area(self) -> float:
        return super().area() + 1.0


class Child(Base):
    pass


def run() -> None:
    Child().area()
""",
        },
    )

    resolved = _resolutions(frontend, "shapes")

    expected = CallableType((), (FLOAT,))
    assert resolved["super().area"].callable == expected
    assert resolved["Child().area"].callable == expected


def test_callable_values(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "app.py": """\
from collections.abc import Callable

Handler = Callable[[int], str]


def apply(h: Handler, fn: Callable[..., int], value: int) -> str:
    fn(1, 2)
    return h(value)


def make() -> Callable[[int], int]:
    return lambda n: n


square = lambda n: n * n


def run() -> None:
    make()(3)
    square(2)
""",
        },
    )

    resolved = _resolutions(frontend, "app")

    assert resolved["h"].callable == CallableType((Param(INT),), (STR,))
    assert resolved["fn"].callable == CallableType((Param(ANY),), (INT,), variadic=True)
    assert resolved["make"].callable == CallableType(
        (), (CallableType((Param(INT),), (INT,)),)
    )
    assert resolved["make()"].callable == CallableType((Param(INT),), (INT,))
    assert resolved["square"].callable == CallableType((Param(ANY),), (ANY,))


def test_decorated_functions_are_unknown(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "app.py": """\
import functools


def deco(f):
    return f


@deco
def wrapped(x: int) -> int:
    return x


@functools.lru_cache
def cached(x: int) -> int:
    return x


def run() -> None:
    wrapped(1)
    cached(2)
""",
        },
    )

    resolved = _resolutions(frontend, "app")

    assert resolved["wrapped"].kind == "unknown"
    assert resolved["cached"].kind == "unknown"


def test_imported_functions_resolve_across_modules(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "pkg/__init__.py": "",
            "pkg/util.py": "def scale(x: float) -> float:\n    return x * 2\n",
            "pkg/star.py": "from pkg.util import *\n",
            "pkg/rel.py": (
                "from .util import scale\n\n\n"
                "def run() -> None:\n    scale(1.0)\n"
            ),
            "app.py": """\
import pkg.util
from pkg import util as u
from pkg.util import scale


def run() -> None:
    pkg.util.scale(1.0)
    u.scale(2.0)
    scale(3.0)
""",
            "starred.py": """\
from pkg.star import *


def run() -> None:
    scale(4.0)
""",
        },
    )
    expected = CallableType((Param(FLOAT),), (FLOAT,))

    app = _resolutions(frontend, "app")

    assert app["pkg.util.scale"].callable == expected
    assert app["u.scale"].callable == expected
    assert app["scale"].callable == expected
    assert _resolutions(frontend, "starred")["scale"].callable == expected
    assert _resolutions(frontend, "pkg.rel")["scale"].callable == expected
    assert frontend.visible_imports(
        next(unit for unit in frontend.units if unit.module == "app")
    ) == {"pkg.util": "pkg.util"}


def test_import_cycles_resolve_to_unknown(tmp_path: Path) -> None:
    frontend = _frontend(
        tmp_path,
        {
            "a.py": (
                "from b import *\nfrom b import thing\n\n\n"
                "def run() -> None:\n    thing()\n    missing()\n"
            ),
            "b.py": "from a import *\nfrom a import thing\n",
        },
    )

    resolved = _resolutions(frontend, "a")

    assert resolved["thing"].kind == "unknown"
    assert resolved["missing"].kind == "unknown"


def test_undefined_annotation_is_a_type_error(tmp_path: Path) -> None:
    with pytest.raises(TypeCheckError, match="undefined name 'Nope'"):
        _frontend(tmp_path, {"app.py": "def f(x: Nope) -> None:\n    pass\n"})


def test_from_import_of_missing_name_is_a_type_error(tmp_path: Path) -> None:
    with pytest.raises(TypeCheckError, match="has no name 'nothing'"):
        _frontend(
            tmp_path,
            {
                "util.py": "def scale(x: float) -> float:\n    return x\n",
                "app.py": "from util import nothing\n",
            },
        )


def test_relative_import_escaping_the_package_is_a_type_error(tmp_path: Path) -> None:
    with pytest.raises(TypeCheckError, match="escapes the top-level package"):
        _frontend(tmp_path, {"app.py": "from . import sibling\n"})


def test_syntax_error_is_a_parse_error(tmp_path: Path) -> None:
    with pytest.raises(ParseError, match="app.py:1"):
        _frontend(tmp_path, {"app.py": "def broken(:\n"})


def test_two_files_for_one_module_is_a_parse_error(tmp_path: Path) -> None:
    with pytest.raises(ParseError, match="also defined by"):
        _frontend(tmp_path, {"app.py": "", "src/app.py": ""})


def test_root_init_is_a_parse_error(tmp_path: Path) -> None:
    with pytest.raises(ParseError, match="non-empty module name"):
        _frontend(tmp_path, {"__init__.py": ""})
