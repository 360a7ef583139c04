from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from cli import main
from contract.artifacts import BUILD_MARKER


def _write_minimal_repo(root: Path) -> None:
    (root / "pkg").mkdir(parents=True, exist_ok=True)
    (root / "pkg" / "__init__.py").write_text("", encoding="utf-8")
    (root / "pkg" / "module.py").write_text(
        '"""Minimal module."""\n',
        encoding="utf-8",
    )


def _copy_mini_repo_fixture(root: Path) -> None:
    fixture_repo = Path(__file__).parent / "fixtures" / "mini_repo"
    shutil.copytree(fixture_repo, root)


def test_cli_instrument_smoke(tmp_path: Path) -> None:
    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    _write_minimal_repo(repo_root)

    exit_code = main([str(repo_root)])

    out_dir = repo_root / "build"
    assert exit_code == 0
    assert (out_dir / "pkg" / "module.py").is_file()
    generated = (out_dir / "sigprof_generated.py").read_text(encoding="utf-8")
    assert generated.startswith(BUILD_MARKER)


def test_cli_default_output_dir_from_fixture(tmp_path: Path) -> None:
    repo_root = tmp_path / "repo"
    _copy_mini_repo_fixture(repo_root)

    assert not (repo_root / "build").exists(), "output dir must not pre-exist"
    exit_code = main([str(repo_root)])

    assert exit_code == 0
    assert (repo_root / "build" / "pkg_a" / "use_core.py").is_file()


def test_cli_output_dir_from_config(tmp_path: Path) -> None:
    repo_root = tmp_path / "repo"
    _copy_mini_repo_fixture(repo_root)
    (repo_root / "sigprof.toml").write_text(
        'output_dir = "out/profiled"\ngenerated_module = "timing_hooks"\n',
        encoding="utf-8",
    )

    exit_code = main([str(repo_root)])

    out_dir = repo_root / "out" / "profiled"
    assert exit_code == 0
    assert (out_dir / "timing_hooks.py").is_file()
    use_core = (out_dir / "pkg_a" / "use_core.py").read_text(encoding="utf-8")
    assert "from timing_hooks import " in use_core


def test_cli_missing_directory_reports_error(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    missing = tmp_path / "missing"

    exit_code = main([str(missing)])

    assert exit_code == 1
    assert "is not a directory" in caplog.text


def test_cli_parse_error_exits_nonzero(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    _write_minimal_repo(repo_root)
    (repo_root / "pkg" / "broken.py").write_text("def broken(:\n", encoding="utf-8")

    exit_code = main([str(repo_root)])

    assert exit_code == 1
    assert "pkg/broken.py:1" in caplog.text
    assert not (repo_root / "build").exists()


def test_cli_invalid_config_exits_nonzero(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    _write_minimal_repo(repo_root)
    (repo_root / "sigprof.toml").write_text('output_dir = "../outside"\n', encoding="utf-8")

    exit_code = main([str(repo_root)])

    assert exit_code == 1
    assert "escapes the root" in caplog.text


def test_cli_requires_exactly_one_directory() -> None:
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2

    with pytest.raises(SystemExit) as exc_info:
        main(["a", "b"])
    assert exc_info.value.code == 2
