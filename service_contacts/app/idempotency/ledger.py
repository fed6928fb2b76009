"""
Idempotency ledger for mutating contact operations.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..cache.resilient import ResilientCache

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"
DEFAULT_IDEMPOTENCY_TTL = 86400  # 24 hours


@dataclass
class IdempotencyResult:
    """Outcome of a ledger lookup."""
    duplicate: bool
    cached_response: Optional[Dict[str, Any]] = None


class IdempotencyLedger:
    """Remembers the first response produced for an (operation, client key) pair.

    Idempotency is opt-in: without a client key nothing is looked up or
    stored. The ledger does not lock; two concurrent attempts with the same
    key can both execute. It only prevents a retried request from producing
    a second client-visible effect once the first response has been stored.
    """

    def __init__(
        self,
        cache: ResilientCache,
        ttl_seconds: int = DEFAULT_IDEMPOTENCY_TTL,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("contacts.idempotency")

    @staticmethod
    def _key(operation: str, client_key: str) -> str:
        return f"idempotency:{operation}:{client_key}"

    async def check(self, operation: str, client_key: Optional[str]) -> IdempotencyResult:
        """Look up a previous response for this operation and key."""
        if not client_key:
            return IdempotencyResult(duplicate=False)

        cached = await self.cache.get(self._key(operation, client_key))
        if cached is None:
            return IdempotencyResult(duplicate=False)

        try:
            response = json.loads(cached)
        except ValueError as e:
            self.logger.warning(
                "Discarding unreadable idempotency record",
                operation=operation,
                idempotency_key=client_key,
                error=str(e)
            )
            return IdempotencyResult(duplicate=False)

        self.logger.info("Idempotent request detected", operation=operation, idempotency_key=client_key)
        if self.metrics:
            self.metrics.increment_counter("idempotent_replays_total", operation=operation.split("-", 1)[0])
        return IdempotencyResult(duplicate=True, cached_response=response)

    async def store(self, operation: str, client_key: Optional[str], response: Dict[str, Any]) -> None:
        """Record the response of a committed mutation."""
        if not client_key:
            return

        await self.cache.set(self._key(operation, client_key), json.dumps(response), self.ttl_seconds)
