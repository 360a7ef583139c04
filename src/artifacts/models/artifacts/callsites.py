"""Call-site records for the instrumentation manifest."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from contract.artifacts import ARTIFACT_SCHEMA_VERSION

SkipReason = Literal[
    "builtin",
    "conversion",
    "unknown_callee",
    "keyword_arguments",
    "generation_failed",
]


class SourceSpan(BaseModel):
    """Source span of a call expression in the original unit."""

    path: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int


class CallSiteRecord(BaseModel):
    """Schema for sigprof_callsites.jsonl records."""

    schema_version: int = Field(default=ARTIFACT_SCHEMA_VERSION)
    src_span: SourceSpan
    module: str
    callee_expr: str = Field(description="Callee expression as written")
    rewritten: bool
    signature_id: int | None = Field(
        default=None, description="Registry id when the callee resolved to a function"
    )
    wrapper: str | None = Field(default=None, description="Wrapper routed through")
    skip_reason: SkipReason | None = None


__all__ = ["CallSiteRecord", "SkipReason", "SourceSpan"]
