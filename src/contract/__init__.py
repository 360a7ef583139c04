"""Stable contract surface for sigprof.

Types, errors and artifact names shared by the front-end, the instrumenter
and anything that reads an instrumented tree.
"""

from contract.artifacts import (
    ARTIFACT_SCHEMA_VERSION,
    BUILD_MARKER,
    CALLSITES_JSONL,
    DEFAULT_GENERATED_MODULE,
    MANIFEST_SPECS,
    SIGNATURES_JSONL,
    ManifestSpec,
)
from contract.errors import (
    EmitError,
    GenerationError,
    HashCollisionExhausted,
    ParseError,
    SigprofError,
    TypeCheckError,
)
from contract.types import CallableType, NamedType, OpaqueType, Param, UnionType

__all__ = [
    "ARTIFACT_SCHEMA_VERSION",
    "BUILD_MARKER",
    "CALLSITES_JSONL",
    "DEFAULT_GENERATED_MODULE",
    "MANIFEST_SPECS",
    "SIGNATURES_JSONL",
    "CallableType",
    "EmitError",
    "GenerationError",
    "HashCollisionExhausted",
    "ManifestSpec",
    "NamedType",
    "OpaqueType",
    "Param",
    "ParseError",
    "SigprofError",
    "TypeCheckError",
    "UnionType",
]
