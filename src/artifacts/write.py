"""Rendering and atomic writing of an instrumented tree."""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from artifacts.utils import _write_jsonl
from contract.artifacts import BUILD_MARKER, MANIFEST_SPECS, SIGNATURES_JSONL
from contract.errors import EmitError
from instrument.wrappers import PAYLOAD, PREAMBLE
from scan.files import WORK_DIR_PREFIX

if TYPE_CHECKING:
    from artifacts.models.artifacts.callsites import CallSiteRecord
    from artifacts.models.artifacts.signatures import SignatureRecord
    from instrument.naming import NameResolver
    from instrument.wrappers import WrapperDefinition

logger = logging.getLogger(__name__)

RUNTIME_IMPORTS = (
    "import json",
    "import logging",
    "import time",
    "from typing import TYPE_CHECKING",
)


@dataclass
class OutputBundle:
    """Everything one run writes, held in memory until the run has succeeded."""

    sources: dict[str, str] = field(default_factory=dict)
    signatures: list[SignatureRecord] = field(default_factory=list)
    callsites: list[CallSiteRecord] = field(default_factory=list)

    def add_source(self, relative_path: str, text: str) -> None:
        if relative_path in self.sources:
            msg = f"duplicate output path {relative_path}"
            raise EmitError(msg)
        self.sources[relative_path] = text


def render_generated_module(
    *,
    package_name: str,
    definitions: list[WrapperDefinition],
    names: NameResolver,
) -> str:
    """Render the consolidated module.

    Layout: build marker, docstring naming the package, future import,
    runtime imports, type-only imports, shared sentinel and logger, every
    wrapper ordered by signature id, then the profiling payload.
    """
    head = [
        BUILD_MARKER,
        f'"""Profiling wrappers for the {package_name} package."""',
        "",
        "from __future__ import annotations",
        "",
        *RUNTIME_IMPORTS,
    ]
    type_imports = names.import_lines()
    if type_imports:
        head.extend(["", "if TYPE_CHECKING:"])
        head.extend(f"    {line}" for line in type_imports)
    head.extend(["", PREAMBLE.rstrip("\n")])

    ordered = sorted(definitions, key=lambda definition: definition.signature_id)
    blocks = [definition.source.rstrip("\n") for definition in ordered]
    blocks.append(PAYLOAD.rstrip("\n"))
    return "\n".join(head) + "\n\n\n" + "\n\n\n".join(blocks) + "\n"


def write_output(out_dir: Path, bundle: OutputBundle) -> list[Path]:
    """Write ``bundle`` to ``out_dir``, replacing any previous output atomically.

    Files are written into a staging directory beside ``out_dir`` which is
    then swapped into place. On failure the previous output is left as it was.
    An existing ``out_dir`` is only replaced when it is empty or holds a
    previous run's output.

    Returns:
        Paths of every file written, relative paths resolved under ``out_dir``.

    Raises:
        EmitError: If ``out_dir`` holds something other than sigprof output,
            or if any filesystem operation fails.
    """
    _ensure_replaceable(out_dir)
    parent = out_dir.parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f"{WORK_DIR_PREFIX}staging-", dir=parent))
    except OSError as exc:
        msg = f"cannot create staging directory in {parent}: {exc}"
        raise EmitError(msg) from exc

    try:
        written = _write_tree(staging, bundle)
        _swap_into_place(staging, out_dir)
    except OSError as exc:
        shutil.rmtree(staging, ignore_errors=True)
        msg = f"cannot write output to {out_dir}: {exc}"
        raise EmitError(msg) from exc

    logger.info("wrote %d files to %s", len(written), out_dir)
    return [out_dir / relative for relative in written]


def _ensure_replaceable(out_dir: Path) -> None:
    if not out_dir.exists() and not out_dir.is_symlink():
        return
    if not out_dir.is_dir():
        msg = f"output path {out_dir} exists and is not a directory"
        raise EmitError(msg)
    try:
        empty = next(out_dir.iterdir(), None) is None
    except OSError as exc:
        msg = f"cannot inspect output directory {out_dir}: {exc}"
        raise EmitError(msg) from exc
    if not empty and not (out_dir / SIGNATURES_JSONL).is_file():
        msg = (
            f"refusing to replace {out_dir}: it is not empty and has no "
            f"{SIGNATURES_JSONL}, so it was not written by sigprof"
        )
        raise EmitError(msg)


def _write_tree(staging: Path, bundle: OutputBundle) -> list[str]:
    written: list[str] = []
    for relative_path in sorted(bundle.sources):
        target = staging / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(bundle.sources[relative_path], encoding="utf-8")
        written.append(relative_path)

    for name, manifest in MANIFEST_SPECS.items():
        _write_jsonl(staging / manifest.filename, getattr(bundle, name))
        written.append(manifest.filename)
    return written


def _swap_into_place(staging: Path, out_dir: Path) -> None:
    if not out_dir.exists() and not out_dir.is_symlink():
        staging.rename(out_dir)
        return

    previous = staging.with_name(staging.name.replace("staging-", "previous-", 1))
    out_dir.rename(previous)
    try:
        staging.rename(out_dir)
    except OSError:
        previous.rename(out_dir)
        raise
    if previous.is_dir() and not previous.is_symlink():
        shutil.rmtree(previous, ignore_errors=True)
    else:
        previous.unlink(missing_ok=True)


__all__ = ["OutputBundle", "render_generated_module", "write_output"]
