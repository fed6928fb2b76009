"""
Mutation pipeline for contacts.

Every write follows the same sequence: idempotency pre-check, a
read-committed transaction that re-verifies its preconditions and issues a
single mutating statement, then cache invalidation and (for create/update)
recording the response in the idempotency ledger. Cache and ledger failures
never fail a committed write.
"""

from contextlib import nullcontext
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..cache.resilient import ResilientCache
from ..errors import ContactNotFoundError, EmailExistsError
from ..idempotency.ledger import IdempotencyLedger
from ..models import Contact, ContactCreateRequest, ContactUpdateRequest
from ..persistence.base import (
    EMAIL_UNIQUE_CONSTRAINT,
    READ_COMMITTED,
    ContactStore,
    UniqueConstraintError,
)
from ..query.planner import LIST_CACHE_PREFIX, LIST_EPOCH_KEY, contact_cache_key

CREATE_OPERATION = "create-contact"


def update_operation(contact_id: UUID) -> str:
    return f"update-contact-{contact_id}"


@dataclass
class MutationResult:
    """Contact produced by a write, and whether it was replayed from the ledger."""
    contact: Contact
    replayed: bool = False


class MutationPipeline:
    """Transactional create/update/delete with cache invalidation."""

    def __init__(
        self,
        store: ContactStore,
        cache: ResilientCache,
        ledger: IdempotencyLedger,
        *,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.cache = cache
        self.ledger = ledger
        self.metrics = metrics
        self.logger = get_logger("contacts.mutations")

    async def create(self, payload: ContactCreateRequest, idempotency_key: Optional[str] = None) -> MutationResult:
        """Create a contact, replaying the first response for a repeated key."""
        previous = await self.ledger.check(CREATE_OPERATION, idempotency_key)
        if previous.duplicate:
            return MutationResult(Contact.model_validate(previous.cached_response), replayed=True)

        email = str(payload.email)
        with self._timed("create"):
            try:
                async with self.store.transaction(READ_COMMITTED) as tx:
                    if await tx.get_by_email(email) is not None:
                        raise EmailExistsError(email)
                    contact = await tx.insert(payload.name, email, payload.phone)
            except UniqueConstraintError as e:
                raise self._translate(e, email) from e

        self.logger.info("Contact created", contact_id=str(contact.id))

        await self._invalidate()
        await self.ledger.store(CREATE_OPERATION, idempotency_key, self._response(contact))
        return MutationResult(contact)

    async def update(self, contact_id: UUID, payload: ContactUpdateRequest,
                     idempotency_key: Optional[str] = None) -> MutationResult:
        """Apply a partial update; omitted fields keep their stored values."""
        operation = update_operation(contact_id)
        previous = await self.ledger.check(operation, idempotency_key)
        if previous.duplicate:
            return MutationResult(Contact.model_validate(previous.cached_response), replayed=True)

        email = str(payload.email) if payload.email is not None else None
        with self._timed("update"):
            try:
                async with self.store.transaction(READ_COMMITTED) as tx:
                    current = await tx.get(contact_id)
                    if current is None:
                        raise ContactNotFoundError(contact_id)

                    if email is not None and email != current.email:
                        if await tx.get_by_email(email) is not None:
                            raise EmailExistsError(email)

                    contact = await tx.update(contact_id, name=payload.name, email=email, phone=payload.phone)
                    if contact is None:
                        raise ContactNotFoundError(contact_id)
            except UniqueConstraintError as e:
                raise self._translate(e, email) from e

        self.logger.info("Contact updated", contact_id=str(contact_id))

        await self._invalidate(contact_id)
        await self.ledger.store(operation, idempotency_key, self._response(contact))
        return MutationResult(contact)

    async def delete(self, contact_id: UUID) -> None:
        """Delete a contact; a missing contact leaves storage unchanged."""
        with self._timed("delete"):
            async with self.store.transaction(READ_COMMITTED) as tx:
                if await tx.get(contact_id) is None:
                    raise ContactNotFoundError(contact_id)
                if not await tx.delete(contact_id):
                    raise ContactNotFoundError(contact_id)

        self.logger.info("Contact deleted", contact_id=str(contact_id))
        await self._invalidate(contact_id)

    async def _invalidate(self, contact_id: Optional[UUID] = None):
        # Epoch first: pages read before this write land under a key no read uses
        await self.cache.incr(LIST_EPOCH_KEY)
        await self.cache.delete_prefix(LIST_CACHE_PREFIX)
        if contact_id is not None:
            await self.cache.delete_prefix(contact_cache_key(contact_id))

    @staticmethod
    def _response(contact: Contact) -> dict:
        return contact.model_dump(mode="json", by_alias=True)

    def _translate(self, error: UniqueConstraintError, email: Optional[str]) -> Exception:
        if error.constraint == EMAIL_UNIQUE_CONSTRAINT:
            self.logger.info("Email uniqueness enforced by storage", email=email)
            return EmailExistsError(email or "")
        return error

    def _timed(self, operation: str):
        if self.metrics:
            return self.metrics.time_db_query(operation)
        return nullcontext()
