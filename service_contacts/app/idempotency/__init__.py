"""Idempotency ledger for mutating contact operations."""

from .ledger import IDEMPOTENCY_KEY_HEADER, IdempotencyLedger, IdempotencyResult

__all__ = ["IDEMPOTENCY_KEY_HEADER", "IdempotencyLedger", "IdempotencyResult"]
