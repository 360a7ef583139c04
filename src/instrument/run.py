"""Entry point that instruments one source tree end to end."""

from __future__ import annotations

import ast
import logging
from collections import Counter
from typing import TYPE_CHECKING

from artifacts.models.artifacts.signatures import SignatureRecord
from artifacts.utils import _get_output_dir_name
from artifacts.write import OutputBundle, render_generated_module, write_output
from instrument.naming import NameResolver
from instrument.registry import SignatureRegistry
from instrument.rewriter import CallSiteRewriter, resolve_call_sites
from instrument.wrappers import WrapperGenerator
from parse.frontend import Frontend
from rules.config import ConfigError, load_config, resolve_output_dir
from scan.files import find_python_files
from utils import import_root_prefix

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from parse.units import CompilationUnit
    from rules.config import SigprofConfig

logger = logging.getLogger(__name__)


def instrument_directory(
    *,
    root: Path,
    out_dir: Path | None = None,
    config: SigprofConfig | None = None,
) -> dict[str, object]:
    """Instrument every Python file under ``root``.

    Args:
        root: Directory holding the program to instrument
        out_dir: Optional output directory (default: config ``output_dir``)
        config: Optional configuration (default: loaded from ``sigprof.toml``)

    Returns:
        Dictionary with counts and the list of written paths.

    Raises:
        SigprofError: Any fatal error. Nothing is written in that case.
    """
    if not root.is_dir():
        msg = f"{root} is not a directory"
        raise ConfigError(msg)
    root = root.resolve()

    if config is None:
        config = load_config(root)

    if out_dir is None:
        out_dir = resolve_output_dir(root, config.output_dir)

    files = list(
        find_python_files(
            root,
            output_dir=_get_output_dir_name(out_dir, root),
            generated_module=config.generated_module,
            include_patterns=config.include,
            exclude_patterns=config.exclude,
            nested_gitignore=config.nested_gitignore,
        )
    )
    logger.info("found %d Python files under %s", len(files), root)

    frontend = Frontend.from_files(files, root)
    if frontend.index.is_module(config.generated_module):
        msg = (
            f"generated_module {config.generated_module!r} clashes with a "
            "module in the processed tree"
        )
        raise ConfigError(msg)
    import_root = _import_root(frontend.units)

    names = NameResolver(generated_module=config.generated_module)
    for unit in frontend.units:
        names.seed(frontend.visible_imports(unit))
    names.freeze()

    registry = SignatureRegistry(probe_limit=config.probe_limit)
    generator = WrapperGenerator(names)
    resolutions = resolve_call_sites(frontend)

    bundle = OutputBundle()
    for unit in frontend.units:
        rewriter = CallSiteRewriter(unit, resolutions, registry, generator)
        tree = rewriter.rewrite(config.generated_module)
        bundle.add_source(unit.relative_path, ast.unparse(tree) + "\n")
        bundle.callsites.extend(rewriter.records)

    definitions = generator.definitions()
    uses = Counter(
        record.signature_id for record in bundle.callsites if record.rewritten
    )
    bundle.signatures = [
        SignatureRecord(
            signature_id=definition.signature_id,
            wrapper=definition.name,
            display=definition.callable_type.display,
            param_count=len(definition.callable_type.params),
            result_count=len(definition.callable_type.results),
            variadic=definition.callable_type.variadic,
            call_sites=uses[definition.signature_id],
        )
        for definition in definitions
    ]
    bundle.add_source(
        f"{import_root}{config.generated_module}.py",
        render_generated_module(
            package_name=root.name,
            definitions=definitions,
            names=names,
        ),
    )

    written = write_output(out_dir, bundle)

    rewritten = sum(1 for record in bundle.callsites if record.rewritten)
    skipped = Counter(
        record.skip_reason for record in bundle.callsites if record.skip_reason
    )
    logger.info(
        "rewrote %d of %d call sites using %d wrappers",
        rewritten,
        len(bundle.callsites),
        len(definitions),
    )
    return {
        "unit_count": len(frontend.units),
        "call_site_count": len(bundle.callsites),
        "rewritten_count": rewritten,
        "skipped": dict(sorted(skipped.items())),
        "signature_count": len(registry),
        "wrapper_count": len(definitions),
        "output_dir": str(out_dir),
        "artifacts": [str(path) for path in written],
    }


def _import_root(units: Sequence[CompilationUnit]) -> str:
    prefixes = {import_root_prefix(unit.relative_path) for unit in units}
    if len(prefixes) > 1:
        msg = (
            "cannot place the generated module: the tree mixes src/ layout "
            "units with top-level units"
        )
        raise ConfigError(msg)
    return prefixes.pop() if prefixes else ""


__all__ = ["instrument_directory"]
