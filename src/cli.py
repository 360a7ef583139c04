"""Command-line interface for sigprof."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from contract.errors import SigprofError
from instrument.run import instrument_directory
from rules.config import load_config

logger = logging.getLogger(__name__)


def setup_logging(level: str = "WARNING") -> None:
    """Configure logging to stderr."""
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sigprof",
        description=(
            "Rewrite every statically resolvable call under DIR to go through "
            "a timing wrapper"
        ),
    )
    parser.add_argument(
        "root",
        metavar="DIR",
        help="Directory holding the program to instrument",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    setup_logging()
    root = Path(args.root).expanduser().resolve()

    try:
        config = load_config(root)
        logging.getLogger().setLevel(config.log_level)
        summary = instrument_directory(root=root, config=config)
    except SigprofError as exc:
        logger.error("%s", exc)
        return 1

    logger.info(
        "instrumented %s unit(s) into %s",
        summary["unit_count"],
        summary["output_dir"],
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
