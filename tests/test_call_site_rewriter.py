from __future__ import annotations

import ast
import json
import logging
from pathlib import Path

import pytest

from contract.artifacts import CALLSITES_JSONL, SIGNATURES_JSONL
from contract.types import CallableType, NamedType, Param
from instrument.registry import structural_hash
from instrument.run import instrument_directory
from instrument.wrappers import wrapper_name

INT = NamedType("builtins", "int")


def _write_python_file(repo_root: Path, relative_path: str, source: str) -> Path:
    path = repo_root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source, encoding="utf-8")
    return path


def _read_jsonl(path: Path) -> list[dict[str, object]]:
    out: list[dict[str, object]] = []
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line:
            out.append(json.loads(line))
    return out


def _instrument(tmp_path: Path, files: dict[str, str]) -> tuple[dict[str, object], Path]:
    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    for relative_path, source in files.items():
        _write_python_file(repo_root, relative_path, source)
    summary = instrument_directory(root=repo_root)
    return summary, repo_root / "build"


def _output(out_dir: Path, relative_path: str) -> str:
    return (out_dir / relative_path).read_text(encoding="utf-8")


def test_same_shape_shares_one_wrapper(tmp_path: Path) -> None:
    summary, out_dir = _instrument(
        tmp_path,
        {
            "app.py": """\
def f(a: int, b: int) -> int:
    return a + b


def g(x: int, y: int) -> int:
    return x * y


def main() -> int:
    return f(1, 2) + g(3, 4)
""",
        },
    )
    shape = CallableType((Param(INT), Param(INT)), (INT,))
    wrapper = wrapper_name(structural_hash(shape))

    generated = _output(out_dir, "sigprof_generated.py")
    rewritten = _output(out_dir, "app.py")

    assert generated.count("\ndef _sigprof_wrapper_") == 1
    assert f"def {wrapper}(" in generated
    assert f"{wrapper}(f, 1, 2) + {wrapper}(g, 3, 4)" in rewritten
    assert f"from sigprof_generated import {wrapper}" in rewritten
    assert summary["wrapper_count"] == 1
    assert summary["rewritten_count"] == 2

    signatures = _read_jsonl(out_dir / SIGNATURES_JSONL)
    assert [record["call_sites"] for record in signatures] == [2]
    assert signatures[0]["display"] == shape.display


def test_variadic_call_keeps_the_spread(tmp_path: Path) -> None:
    _, out_dir = _instrument(
        tmp_path,
        {
            "app.py": """\
def h(x: int, *rest: int) -> int:
    return x + sum(rest)


def main() -> int:
    c = [3, 4]
    return h(1, 2, *c)
""",
        },
    )
    shape = CallableType((Param(INT), Param(INT)), (INT,), variadic=True)
    wrapper = wrapper_name(structural_hash(shape))

    generated = _output(out_dir, "sigprof_generated.py")

    assert f"{wrapper}(h, 1, 2, *c)" in _output(out_dir, "app.py")
    assert "    ps.extend(p1)" in generated
    assert "    r0 = fn(p0, *p1)" in generated


def test_builtins_and_conversions_are_left_untouched(tmp_path: Path) -> None:
    summary, out_dir = _instrument(
        tmp_path,
        {
            "app.py": """\
class MyType:
    def __init__(self, value: int) -> None:
        self.value = value


def main(x: list[int]) -> MyType:
    n = len(x)
    return MyType(n)
""",
        },
    )

    rewritten = _output(out_dir, "app.py")

    assert "n = len(x)" in rewritten
    assert "return MyType(n)" in rewritten
    assert "sigprof" not in rewritten
    assert summary["wrapper_count"] == 0
    assert summary["skipped"] == {"builtin": 1, "conversion": 1}
    records = _read_jsonl(out_dir / CALLSITES_JSONL)
    assert sorted(str(record["skip_reason"]) for record in records) == [
        "builtin",
        "conversion",
    ]
    assert not any(record["rewritten"] for record in records)


def test_wildcard_import_gets_synthesized_alias(tmp_path: Path) -> None:
    _, out_dir = _instrument(
        tmp_path,
        {
            "shapes.py": """\
class Point:
    def __init__(self, x: float, y: float) -> None:
        self.x = x
        self.y = y


def norm(p: Point) -> float:
    return (p.x ** 2 + p.y ** 2) ** 0.5
""",
            "app.py": """\
from shapes import *

shapes = "a local name that must not be shadowed"


def main() -> float:
    return norm(Point(3.0, 4.0))
""",
        },
    )

    generated = _output(out_dir, "sigprof_generated.py")

    assert "    import shapes as _sigprof_mod_shapes" in generated
    assert "p0: _sigprof_mod_shapes.Point" in generated
    assert "Point(3.0, 4.0)" in _output(out_dir, "app.py")


def test_keyword_calls_are_skipped(tmp_path: Path) -> None:
    summary, out_dir = _instrument(
        tmp_path,
        {
            "app.py": """\
def area(w: int, h: int = 1) -> int:
    return w * h


def main() -> int:
    return area(2, h=3) + area(4)
""",
        },
    )

    rewritten = _output(out_dir, "app.py")
    generated = _output(out_dir, "sigprof_generated.py")

    assert "area(2, h=3)" in rewritten
    assert "(area, 4)" in rewritten
    assert "p1: int = _SIGPROF_UNSET" in generated
    assert summary["skipped"] == {"keyword_arguments": 1}


def test_nested_calls_are_rewritten(tmp_path: Path) -> None:
    _, out_dir = _instrument(
        tmp_path,
        {
            "app.py": """\
def inc(n: int) -> int:
    return n + 1


def main() -> int:
    return inc(inc(1))
""",
        },
    )
    wrapper = wrapper_name(structural_hash(CallableType((Param(INT),), (INT,))))

    assert f"{wrapper}(inc, {wrapper}(inc, 1))" in _output(out_dir, "app.py")


def test_wrapper_import_follows_docstring_and_future_imports(tmp_path: Path) -> None:
    _, out_dir = _instrument(
        tmp_path,
        {
            "app.py": '''\
"""Module docstring."""

from __future__ import annotations

import os


def inc(n: int) -> int:
    return n + 1


VALUE = inc(len(os.sep))
''',
        },
    )

    tree = ast.parse(_output(out_dir, "app.py"))

    assert isinstance(tree.body[0], ast.Expr)
    assert isinstance(tree.body[1], ast.ImportFrom)
    assert tree.body[1].module == "__future__"
    assert isinstance(tree.body[2], ast.ImportFrom)
    assert tree.body[2].module == "sigprof_generated"
    assert isinstance(tree.body[3], ast.Import)


def test_unrenderable_signature_is_skipped_with_one_warning(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING)
    summary, out_dir = _instrument(
        tmp_path,
        {
            "app.py": """\
from typing import Literal


def pick(mode: Literal["a", "b"]) -> int:
    return 1 if mode == "a" else 2


def main() -> int:
    return pick("a") + pick("b")
""",
        },
    )

    records = _read_jsonl(out_dir / CALLSITES_JSONL)

    assert "pick('a') + pick('b')" in _output(out_dir, "app.py")
    assert summary["skipped"] == {"generation_failed": 2}
    assert all(record["signature_id"] is not None for record in records)
    warnings = [r for r in caplog.records if "no wrapper for" in r.getMessage()]
    assert len(warnings) == 1


def test_callsite_manifest_records_spans(tmp_path: Path) -> None:
    _, out_dir = _instrument(
        tmp_path,
        {"pkg/__init__.py": "", "pkg/mod.py": "def f() -> None:\n    pass\n\n\nf()\n"},
    )

    records = _read_jsonl(out_dir / CALLSITES_JSONL)

    assert len(records) == 1
    record = records[0]
    assert record["module"] == "pkg.mod"
    assert record["callee_expr"] == "f"
    assert record["rewritten"] is True
    assert record["src_span"] == {
        "path": "pkg/mod.py",
        "start_line": 5,
        "start_col": 1,
        "end_line": 5,
        "end_col": 4,
    }
