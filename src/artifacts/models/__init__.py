"""Model namespace for sigprof manifest schemas."""

from artifacts.models.artifacts.callsites import CallSiteRecord, SkipReason, SourceSpan
from artifacts.models.artifacts.signatures import SignatureRecord

__all__ = [
    "CallSiteRecord",
    "SignatureRecord",
    "SkipReason",
    "SourceSpan",
]
