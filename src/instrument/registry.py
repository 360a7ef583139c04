"""Signature registry: one stable id per distinct callable shape."""

from __future__ import annotations

import logging
import zlib
from typing import TYPE_CHECKING

from contract.errors import HashCollisionExhausted

if TYPE_CHECKING:
    from collections.abc import Callable

    from contract.types import CallableType

logger = logging.getLogger(__name__)

DEFAULT_PROBE_LIMIT = 10_000

_ID_MASK = 0xFFFFFFFF


def structural_hash(callable_type: CallableType) -> int:
    """Deterministic 32-bit hash of a callable's canonical display form.

    ``hash()`` is salted per process for strings, so it cannot give ids that
    are stable between runs.
    """
    return zlib.crc32(callable_type.display.encode("utf-8")) & _ID_MASK


class SignatureRegistry:
    """Map structurally identical ``CallableType`` values to one integer id.

    Ids start at the structural hash and are probed linearly on collision:
    a slot held by a different type moves the candidate to the next integer.
    The registry belongs to a single run and is not shared between runs.
    """

    def __init__(
        self,
        *,
        probe_limit: int = DEFAULT_PROBE_LIMIT,
        hasher: Callable[[CallableType], int] = structural_hash,
    ) -> None:
        if probe_limit <= 0:
            msg = f"probe_limit must be positive, got {probe_limit}"
            raise ValueError(msg)
        self.probe_limit = probe_limit
        self._hasher = hasher
        self._forward: dict[CallableType, int] = {}
        self._backward: dict[int, CallableType] = {}

    def __len__(self) -> int:
        return len(self._forward)

    def __contains__(self, callable_type: object) -> bool:
        return callable_type in self._forward

    def get_or_create(self, callable_type: CallableType) -> tuple[int, bool]:
        """Return the id of ``callable_type`` and whether it was just assigned.

        Raises:
            HashCollisionExhausted: If more than ``probe_limit`` occupied
                slots were probed without finding a free one.
        """
        known = self._forward.get(callable_type)
        if known is not None:
            return known, False

        candidate = self._hasher(callable_type) & _ID_MASK
        probes = 0
        occupant = self._backward.get(candidate)
        while occupant is not None:
            if occupant == callable_type:
                self._forward[callable_type] = candidate
                return candidate, False
            probes += 1
            if probes > self.probe_limit:
                msg = (
                    f"more than {self.probe_limit} hash collisions while "
                    f"registering {callable_type.display}"
                )
                raise HashCollisionExhausted(msg)
            candidate = (candidate + 1) & _ID_MASK
            occupant = self._backward.get(candidate)

        if probes:
            logger.debug(
                "signature %s placed after %d collisions", callable_type.display, probes
            )
        self._forward[callable_type] = candidate
        self._backward[candidate] = callable_type
        return candidate, True

    def items(self) -> list[tuple[int, CallableType]]:
        """Registered (id, type) pairs ordered by id."""
        return sorted(self._backward.items())


__all__ = ["DEFAULT_PROBE_LIMIT", "SignatureRegistry", "structural_hash"]
