"""Error taxonomy for an instrumentation run.

Everything except ``GenerationError`` is fatal: it propagates out of the run
and the CLI turns it into a non-zero exit status. ``GenerationError`` is
caught by the rewriter, which leaves the offending call site untouched.
"""

from __future__ import annotations


class SigprofError(Exception):
    """Base class for all sigprof failures."""


class ParseError(SigprofError):
    """Raised when an input unit is not valid Python source."""


class TypeCheckError(SigprofError):
    """Raised when static types of an input unit cannot be resolved."""


class HashCollisionExhausted(SigprofError):
    """Raised when the signature registry exceeds its probe bound."""


class GenerationError(SigprofError):
    """Raised when a callable type cannot be rendered as a wrapper."""


class EmitError(SigprofError):
    """Raised when output cannot be written."""


__all__ = [
    "EmitError",
    "GenerationError",
    "HashCollisionExhausted",
    "ParseError",
    "SigprofError",
    "TypeCheckError",
]
