"""
Storage contract consumed by the query planner and the mutation pipeline.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, List, Optional, Sequence, Tuple
from uuid import UUID

from ..models import Contact
from .predicates import Predicate

READ_COMMITTED = "read_committed"

# Name of the storage-level constraint guarding email uniqueness
EMAIL_UNIQUE_CONSTRAINT = "contacts_email_key"

OrderBy = Sequence[Tuple[str, str]]


class UniqueConstraintError(Exception):
    """A write violated a storage-level unique constraint."""

    def __init__(self, constraint: Optional[str], message: str = "Unique constraint violated"):
        self.constraint = constraint
        super().__init__(f"{message}: {constraint}")


class ContactTransaction(ABC):
    """Operations available inside a storage transaction."""

    @abstractmethod
    async def get(self, contact_id: UUID) -> Optional[Contact]:
        """Fetch a contact by id."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Contact]:
        """Fetch a contact by its exact email."""

    @abstractmethod
    async def insert(self, name: str, email: str, phone: str) -> Contact:
        """Insert a contact; storage assigns id and timestamps."""

    @abstractmethod
    async def update(self, contact_id: UUID, *, name: Optional[str] = None,
                     email: Optional[str] = None, phone: Optional[str] = None) -> Optional[Contact]:
        """Apply the given fields and refresh ``updated_at``."""

    @abstractmethod
    async def delete(self, contact_id: UUID) -> bool:
        """Delete a contact; False if no row matched."""


class ContactStore(ABC):
    """Transactional contact storage."""

    async def start(self):
        """Open connections and prepare the schema."""

    async def stop(self):
        """Close connections."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def find_many(self, where: Optional[Predicate], order_by: OrderBy,
                        limit: int, offset: int = 0) -> List[Contact]:
        """Return matching contacts in the requested order."""

    @abstractmethod
    async def count(self, where: Optional[Predicate]) -> int:
        """Count matching contacts."""

    @abstractmethod
    async def get(self, contact_id: UUID) -> Optional[Contact]:
        """Fetch a contact by id outside any transaction."""

    @abstractmethod
    def transaction(self, isolation: str = READ_COMMITTED) -> AsyncContextManager[ContactTransaction]:
        """Open a transaction that commits on normal exit and rolls back on error."""
