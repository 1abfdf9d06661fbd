"""
Idempotency gate for payment submissions.

A submission carries a caller-supplied idempotency key. The first
successful execution for a key has its response recorded; every later
submission with the same key gets that response back without the handler
running again. Failed executions are not recorded, so a retry after a
failure runs the full flow again.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import structlog

from payout_gateway.core.record_store import DuplicateKeyError, RecordStore
from payout_gateway.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

IDEMPOTENCY_HEADER = "idempotency-key"

Handler = Callable[[str], Awaitable[Dict[str, Any]]]


class MissingIdempotencyKeyError(Exception):
    """Raised when a submission carries no idempotency key."""

    def __init__(self, message: str = "Idempotency key required"):
        super().__init__(message)


@dataclass(frozen=True)
class IdempotentResult:
    """Outcome of a gated execution."""

    response: Dict[str, Any]
    replayed: bool


class IdempotencyGate:
    """
    Deduplicates submissions by idempotency key.

    Within one process, executions for the same key are serialized by a
    per-key lock held from lookup to recording, so a concurrent duplicate
    waits and then replays. Across processes the unique constraint on the
    key decides: the losing insert is logged and dropped.
    """

    def __init__(self, record_store: RecordStore):
        self.record_store = record_store
        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._key_holders: Dict[str, int] = {}

    @staticmethod
    def require_key(idempotency_key: Optional[str]) -> str:
        """
        Validate that a key was supplied.

        Raises:
            MissingIdempotencyKeyError: If the key is absent or blank
        """
        if idempotency_key is None or not idempotency_key.strip():
            raise MissingIdempotencyKeyError()
        return idempotency_key

    async def lookup(self, idempotency_key: str) -> Optional[Dict[str, Any]]:
        """
        Return the recorded response for a key, if any.

        Raises:
            StoreUnavailableError: If the store cannot be queried
        """
        stored = await self.record_store.find_request(idempotency_key)
        if stored is None:
            metrics.record_idempotency_lookup("miss")
            return None

        metrics.record_idempotency_lookup("replay")
        logger.info("idempotency_replay", idempotency_key=idempotency_key)
        return stored.response

    async def record(self, idempotency_key: str, response: Dict[str, Any]) -> bool:
        """
        Record the response for a first-time key.

        Returns:
            bool: False if another execution recorded the key first
        """
        try:
            await self.record_store.insert_request(idempotency_key, response)
        except DuplicateKeyError:
            metrics.record_idempotency_race()
            logger.warning("idempotency_key_already_recorded", idempotency_key=idempotency_key)
            return False

        logger.info("idempotency_response_recorded", idempotency_key=idempotency_key)
        return True

    @asynccontextmanager
    async def _hold_key(self, idempotency_key: str) -> AsyncIterator[None]:
        lock = self._key_locks.setdefault(idempotency_key, asyncio.Lock())
        self._key_holders[idempotency_key] = self._key_holders.get(idempotency_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_holders[idempotency_key] -= 1
            if self._key_holders[idempotency_key] == 0:
                del self._key_holders[idempotency_key]
                del self._key_locks[idempotency_key]

    async def execute(
        self, idempotency_key: Optional[str], handler: Handler
    ) -> IdempotentResult:
        """
        Run handler at most once per key.

        Args:
            idempotency_key: Key from the request, possibly missing
            handler: Side-effecting work, called with the key

        Returns:
            IdempotentResult: Recorded response on replay, fresh response otherwise

        Raises:
            MissingIdempotencyKeyError: If no key was supplied
            StoreUnavailableError: If the lookup or the recording fails
        """
        key = self.require_key(idempotency_key)

        async with self._hold_key(key):
            stored = await self.lookup(key)
            if stored is not None:
                return IdempotentResult(response=stored, replayed=True)

            response = await handler(key)
            await self.record(key, response)
            return IdempotentResult(response=response, replayed=False)
