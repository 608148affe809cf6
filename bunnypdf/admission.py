"""
Admission control for PDF renders.

A counting gate that caps how many renders (and therefore browser contexts)
exist at once. Unlike asyncio.Semaphore it never waits: when the ceiling is
reached the caller is rejected immediately with CapacityExceededError.

The check and the increment in try_acquire() happen without an await in
between, so two coroutines on the same event loop can never both observe the
last free slot.
"""

import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Set

from .errors import CapacityExceededError

logger = logging.getLogger(__name__)

_token_ids = itertools.count(1)


@dataclass(frozen=True)
class AdmissionToken:
    """Proof that one admission slot is held."""
    token_id: int = field(default_factory=lambda: next(_token_ids))


class AdmissionController:
    """Non-blocking counting gate with a fixed ceiling."""

    def __init__(self, ceiling: int = 2):
        if ceiling < 1:
            raise ValueError("ceiling must be at least 1")
        self.ceiling = ceiling
        self._outstanding: Set[int] = set()
        self.high_water_mark = 0

    @property
    def outstanding(self) -> int:
        return len(self._outstanding)

    @property
    def available(self) -> int:
        return self.ceiling - len(self._outstanding)

    def try_acquire(self) -> AdmissionToken:
        """
        Take a slot if one is free.

        Returns:
            A token that must be passed to release() exactly once

        Raises:
            CapacityExceededError: If the ceiling is already reached
        """
        if len(self._outstanding) >= self.ceiling:
            logger.warning(
                f"Admission denied: {len(self._outstanding)}/{self.ceiling} renders in flight"
            )
            raise CapacityExceededError()

        token = AdmissionToken()
        self._outstanding.add(token.token_id)
        self.high_water_mark = max(self.high_water_mark, len(self._outstanding))
        return token

    def release(self, token: AdmissionToken) -> None:
        """
        Return a slot.

        Raises:
            RuntimeError: If the token is unknown or was already released
        """
        try:
            self._outstanding.remove(token.token_id)
        except KeyError:
            raise RuntimeError(f"Admission token {token.token_id} is not outstanding") from None

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[AdmissionToken]:
        """Hold a slot for the duration of the block."""
        token = self.try_acquire()
        try:
            yield token
        finally:
            self.release(token)
