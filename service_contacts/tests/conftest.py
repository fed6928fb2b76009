"""
Shared fixtures for Contacts service tests.
"""

import asyncio
import operator
import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID

import pytest
from prometheus_client import CollectorRegistry

from shared.config import get_config
from shared.metrics import MetricsCollector
from service_contacts.app.cache.resilient import ResilientCache
from service_contacts.app.idempotency.ledger import IdempotencyLedger
from service_contacts.app.models import Contact
from service_contacts.app.mutations.pipeline import MutationPipeline
from service_contacts.app.persistence.base import (
    EMAIL_UNIQUE_CONSTRAINT,
    READ_COMMITTED,
    ContactStore,
    ContactTransaction,
    UniqueConstraintError,
)
from service_contacts.app.persistence.predicates import AllOf, AnyOf, Compare, Contains, RawPredicate
from service_contacts.app.query.planner import QueryPlanner
from service_contacts.app.query.search import PHONE_DIGITS_SQL

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

COMPARATORS = {
    "=": operator.eq,
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


def matches(contact: Contact, predicate) -> bool:
    """Evaluate a filter predicate against one contact."""
    if predicate is None:
        return True
    if isinstance(predicate, Contains):
        haystack = getattr(contact, predicate.column)
        needle = predicate.value
        if predicate.case_insensitive:
            return needle.lower() in haystack.lower()
        return needle in haystack
    if isinstance(predicate, Compare):
        return COMPARATORS[predicate.operator](getattr(contact, predicate.column), predicate.value)
    if isinstance(predicate, AllOf):
        return all(matches(contact, part) for part in predicate.parts)
    if isinstance(predicate, AnyOf):
        return any(matches(contact, part) for part in predicate.parts)
    if isinstance(predicate, RawPredicate) and predicate.sql == PHONE_DIGITS_SQL:
        digits = predicate.params[0].strip("%").replace("\\", "")
        return digits in re.sub(r"\D", "", contact.phone)
    raise AssertionError(f"Unsupported predicate in fake store: {predicate!r}")


class FakeContactTransaction(ContactTransaction):
    """Writes go straight to the store and are undone on rollback."""

    def __init__(self, store: "FakeContactStore"):
        self.store = store
        self.undo: List = []

    async def get(self, contact_id: UUID) -> Optional[Contact]:
        return self.store.rows.get(contact_id)

    async def get_by_email(self, email: str) -> Optional[Contact]:
        found = self.store.find_by_email(email)
        # Let concurrent transactions interleave between check and write
        await asyncio.sleep(0)
        return found

    async def insert(self, name: str, email: str, phone: str) -> Contact:
        if self.store.find_by_email(email) is not None:
            raise UniqueConstraintError(EMAIL_UNIQUE_CONSTRAINT)
        contact = self.store.build(name, email, phone)
        self.store.rows[contact.id] = contact
        self.undo.append(lambda: self.store.rows.pop(contact.id, None))
        return contact

    async def update(self, contact_id: UUID, *, name: Optional[str] = None,
                     email: Optional[str] = None, phone: Optional[str] = None) -> Optional[Contact]:
        current = self.store.rows.get(contact_id)
        if current is None:
            return None
        if email is not None:
            holder = self.store.find_by_email(email)
            if holder is not None and holder.id != contact_id:
                raise UniqueConstraintError(EMAIL_UNIQUE_CONSTRAINT)

        changes = {"updated_at": self.store.now()}
        for field, value in (("name", name), ("email", email), ("phone", phone)):
            if value is not None:
                changes[field] = value
        updated = current.model_copy(update=changes)
        self.store.rows[contact_id] = updated
        self.undo.append(lambda: self.store.rows.__setitem__(contact_id, current))
        return updated

    async def delete(self, contact_id: UUID) -> bool:
        current = self.store.rows.pop(contact_id, None)
        if current is None:
            return False
        self.undo.append(lambda: self.store.rows.__setitem__(contact_id, current))
        return True


class FakeContactStore(ContactStore):
    """In-memory contact store enforcing the email unique constraint."""

    def __init__(self):
        self.rows: Dict[UUID, Contact] = {}
        self.ticks = 0
        self.find_many_calls = 0
        self.count_calls = 0
        self.get_calls = 0
        self.transactions: List[str] = []
        self.healthy = True

    def now(self) -> datetime:
        self.ticks += 1
        return BASE_TIME + timedelta(seconds=self.ticks)

    def build(self, name: str, email: str, phone: str, created_at: Optional[datetime] = None) -> Contact:
        timestamp = created_at or self.now()
        return Contact(
            id=uuid.uuid4(),
            name=name,
            email=email,
            phone=phone,
            created_at=timestamp,
            updated_at=timestamp
        )

    def add(self, name: str, email: str, phone: str, created_at: Optional[datetime] = None) -> Contact:
        """Seed a contact directly, bypassing transactions."""
        contact = self.build(name, email, phone, created_at)
        self.rows[contact.id] = contact
        return contact

    def find_by_email(self, email: str) -> Optional[Contact]:
        return next((c for c in self.rows.values() if c.email == email), None)

    @property
    def storage_calls(self) -> int:
        return self.find_many_calls + self.count_calls + self.get_calls + len(self.transactions)

    async def health_check(self) -> bool:
        return self.healthy

    async def find_many(self, where, order_by, limit: int, offset: int = 0) -> List[Contact]:
        self.find_many_calls += 1
        rows = [c for c in self.rows.values() if matches(c, where)]
        for column, direction in reversed(list(order_by)):
            rows.sort(key=lambda c: getattr(c, column), reverse=direction == "desc")
        return rows[offset:offset + limit]

    async def count(self, where) -> int:
        self.count_calls += 1
        return sum(1 for c in self.rows.values() if matches(c, where))

    async def get(self, contact_id: UUID) -> Optional[Contact]:
        self.get_calls += 1
        return self.rows.get(contact_id)

    @asynccontextmanager
    async def transaction(self, isolation: str = READ_COMMITTED):
        self.transactions.append(isolation)
        tx = FakeContactTransaction(self)
        try:
            yield tx
        except BaseException:
            for undo in reversed(tx.undo):
                undo()
            raise


@pytest.fixture
def metrics():
    """Metrics collector on a private registry."""
    return MetricsCollector("contacts", registry=CollectorRegistry())


@pytest.fixture
def store():
    """Empty in-memory contact store."""
    return FakeContactStore()


@pytest.fixture
def cache(metrics):
    """Cache facade backed by the in-process store."""
    return ResilientCache(None, metrics=metrics)


@pytest.fixture
def ledger(cache, metrics):
    """Idempotency ledger over the test cache."""
    return IdempotencyLedger(cache, metrics=metrics)


@pytest.fixture
def planner(store, cache, metrics):
    """Query planner over the fake store."""
    return QueryPlanner(store, cache, metrics=metrics)


@pytest.fixture
def pipeline(store, cache, ledger, metrics):
    """Mutation pipeline over the fake store."""
    return MutationPipeline(store, cache, ledger, metrics=metrics)


@pytest.fixture
def config():
    """Service configuration without external dependencies."""
    return get_config("contacts", 8000, env="local", redis_url=None)
