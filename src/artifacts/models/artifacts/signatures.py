"""Signature records: one per generated wrapper."""

from __future__ import annotations

from pydantic import BaseModel, Field

from contract.artifacts import ARTIFACT_SCHEMA_VERSION


class SignatureRecord(BaseModel):
    """Schema for sigprof_signatures.jsonl records."""

    schema_version: int = Field(default=ARTIFACT_SCHEMA_VERSION)
    signature_id: int
    wrapper: str
    display: str = Field(description="Canonical display form of the callable type")
    param_count: int
    result_count: int
    variadic: bool
    call_sites: int = Field(default=0, description="Rewritten sites using the wrapper")


__all__ = ["SignatureRecord"]
