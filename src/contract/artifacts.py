"""Output artifact contract definitions.

Filenames and markers that downstream tooling may rely on when reading an
instrumented tree.
"""

from __future__ import annotations

from dataclasses import dataclass

# Schema version stamped into every manifest record.
ARTIFACT_SCHEMA_VERSION = 1

SIGNATURES_JSONL = "sigprof_signatures.jsonl"
CALLSITES_JSONL = "sigprof_callsites.jsonl"

DEFAULT_GENERATED_MODULE = "sigprof_generated"

# Conditional-compilation marker, first line of the consolidated module.
BUILD_MARKER = "# sigprof: build=profiling"

# Logger the generated payload writes timing lines to.
PAYLOAD_LOGGER = "sigprof"


@dataclass(frozen=True)
class ManifestSpec:
    """One JSONL manifest, keyed in MANIFEST_SPECS by its OutputBundle attribute."""

    filename: str


MANIFEST_SPECS: dict[str, ManifestSpec] = {
    "signatures": ManifestSpec(filename=SIGNATURES_JSONL),
    "callsites": ManifestSpec(filename=CALLSITES_JSONL),
}


__all__ = [
    "ARTIFACT_SCHEMA_VERSION",
    "BUILD_MARKER",
    "CALLSITES_JSONL",
    "DEFAULT_GENERATED_MODULE",
    "MANIFEST_SPECS",
    "PAYLOAD_LOGGER",
    "SIGNATURES_JSONL",
    "ManifestSpec",
]
