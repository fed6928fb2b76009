"""
Query planner for contact reads.

A list request is resolved once into either an :class:`OffsetQuery` or a
:class:`KeysetQuery`; each has its own executor that returns a common
:class:`RowSet`, and the envelope is shaped from that. Results are cached
read-through under a canonical serialization of the normalized parameters.
"""

import asyncio
import json
import math
from contextlib import nullcontext
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union
from uuid import UUID

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..cache.resilient import ResilientCache
from ..errors import ContactNotFoundError
from ..models import (
    SORT_COLUMNS,
    Contact,
    KeysetPage,
    ListContactsParams,
    OffsetPage,
    PaginationMode,
    SortField,
    SortOrder,
    contact_page_adapter,
)
from ..pagination.cursor import CursorValue, MalformedCursor, decode_cursor, encode_cursor
from ..persistence.base import ContactStore
from ..persistence.predicates import AnyOf, AllOf, Compare, Predicate, all_of
from .search import plan_search

LIST_CACHE_PREFIX = "list:"
LIST_EPOCH_KEY = "list-epoch"
CONTACT_CACHE_PREFIX = "contact:"
DEFAULT_CACHE_TTL = 300


@dataclass(frozen=True)
class OffsetQuery:
    """Page selected by skip count; total is counted."""
    where: Optional[Predicate]
    sort: SortField
    order: SortOrder
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class KeysetQuery:
    """Page selected by a (sort value, id) boundary; total is never counted."""
    where: Optional[Predicate]
    sort: SortField
    order: SortOrder
    page_size: int
    after: Optional[Tuple[CursorValue, UUID]] = None


ListQuery = Union[OffsetQuery, KeysetQuery]


@dataclass
class RowSet:
    """Rows for one page plus mode-specific metadata."""
    rows: List[Contact]
    total: Optional[int] = None  # None: not computed
    next_cursor: Optional[str] = None
    has_more: bool = False


def list_cache_key(params: ListContactsParams, epoch: int = 0) -> str:
    """Deterministic cache key for normalized list parameters.

    ``epoch`` is the list-invalidation counter read before storage was
    queried. Every committed write bumps it, so a page computed from rows read
    before the write is stored under a key no later read looks up.
    """
    canonical = json.dumps(
        params.model_dump(mode="json", by_alias=True),
        sort_keys=True,
        separators=(",", ":")
    )
    return f"{LIST_CACHE_PREFIX}{epoch}:{canonical}"


def contact_cache_key(contact_id: Union[UUID, str]) -> str:
    return f"{CONTACT_CACHE_PREFIX}{contact_id}"


def order_by(sort: SortField, order: SortOrder) -> List[Tuple[str, str]]:
    """Sort column first, id as the tie-break in the same direction."""
    return [(SORT_COLUMNS[sort], order.value), ("id", order.value)]


def keyset_boundary(sort: SortField, order: SortOrder, value: CursorValue, after_id: UUID) -> Predicate:
    """Rows strictly after ``(value, after_id)`` in ``(sort, id)`` order."""
    column = SORT_COLUMNS[sort]
    operator = ">" if order is SortOrder.ASC else "<"
    return AnyOf((
        Compare(column, operator, value),
        AllOf((
            Compare(column, "=", value),
            Compare("id", operator, after_id),
        )),
    ))


class QueryPlanner:
    """Plans, executes and caches contact reads."""

    def __init__(
        self,
        store: ContactStore,
        cache: ResilientCache,
        *,
        metrics: Optional[MetricsCollector] = None,
        cache_ttl: int = DEFAULT_CACHE_TTL,
    ):
        self.store = store
        self.cache = cache
        self.metrics = metrics
        self.cache_ttl = cache_ttl
        self.logger = get_logger("contacts.query")

    async def list_contacts(self, params: ListContactsParams) -> Union[OffsetPage, KeysetPage]:
        """Serve one page of contacts for ``params``."""
        cache_key = list_cache_key(params, await self.list_epoch())

        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                page = contact_page_adapter.validate_json(cached)
                self.logger.debug("Cache hit", cache_key=cache_key)
                return page
            except ValueError as e:
                self.logger.warning("Discarding unreadable cache entry", cache_key=cache_key, error=str(e))

        query = self.resolve(params)

        with self._timed("findMany"):
            if isinstance(query, KeysetQuery):
                row_set = await self._run_keyset(query)
            else:
                row_set = await self._run_offset(query)

        page = self._shape(query, row_set)
        await self.cache.set(cache_key, page.model_dump_json(by_alias=True), self.cache_ttl)
        return page

    async def list_epoch(self) -> int:
        """Current list-invalidation counter; 0 before the first write."""
        raw = await self.cache.get(LIST_EPOCH_KEY)
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            self.logger.warning("Discarding unreadable list epoch", value=raw)
            return 0

    def resolve(self, params: ListContactsParams) -> ListQuery:
        """Choose search and pagination strategy once for the whole request.

        Phone-digit search only runs with offset pagination; a keyset request
        that turns out to be a phone search is answered with offset semantics.
        """
        search = plan_search(params.q)

        if params.pagination is PaginationMode.KEYSET and not search.phone_search:
            after = None
            if params.cursor:
                after = self._decode_boundary(params.cursor, params.sort)
            return KeysetQuery(
                where=search.where,
                sort=params.sort,
                order=params.order,
                page_size=params.page_size,
                after=after,
            )

        if params.pagination is PaginationMode.KEYSET:
            self.logger.info(
                "Phone search requested with keyset pagination, using offset pagination",
                phone_digits=search.phone_digits
            )

        return OffsetQuery(
            where=search.where,
            sort=params.sort,
            order=params.order,
            page=params.page,
            page_size=params.page_size,
        )

    @staticmethod
    def _decode_boundary(token: str, sort: SortField) -> Tuple[CursorValue, UUID]:
        value, raw_id = decode_cursor(token, sort)
        try:
            return value, UUID(raw_id)
        except ValueError as e:
            raise MalformedCursor(f"invalid id: {raw_id}") from e

    async def _run_offset(self, query: OffsetQuery) -> RowSet:
        rows, total = await asyncio.gather(
            self.store.find_many(
                query.where,
                order_by(query.sort, query.order),
                limit=query.page_size,
                offset=query.offset,
            ),
            self.store.count(query.where),
        )
        return RowSet(rows=rows, total=total)

    async def _run_keyset(self, query: KeysetQuery) -> RowSet:
        where = query.where
        if query.after is not None:
            value, after_id = query.after
            where = all_of(where, keyset_boundary(query.sort, query.order, value, after_id))

        rows = await self.store.find_many(
            where,
            order_by(query.sort, query.order),
            limit=query.page_size + 1,
        )

        if len(rows) <= query.page_size:
            return RowSet(rows=rows)

        rows = rows[:query.page_size]
        last = rows[-1]
        sort_value = getattr(last, SORT_COLUMNS[query.sort])
        return RowSet(rows=rows, next_cursor=encode_cursor(sort_value, str(last.id)), has_more=True)

    @staticmethod
    def _shape(query: ListQuery, row_set: RowSet) -> Union[OffsetPage, KeysetPage]:
        if isinstance(query, KeysetQuery):
            return KeysetPage(data=row_set.rows, cursor=row_set.next_cursor, has_more=row_set.has_more)

        total = row_set.total or 0
        return OffsetPage(
            data=row_set.rows,
            page=query.page,
            page_size=query.page_size,
            total=total,
            total_pages=math.ceil(total / query.page_size),
        )

    async def get_contact(self, contact_id: UUID) -> Contact:
        """Read one contact through the cache."""
        cache_key = contact_cache_key(contact_id)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                return Contact.model_validate_json(cached)
            except ValueError as e:
                self.logger.warning("Discarding unreadable cache entry", cache_key=cache_key, error=str(e))

        with self._timed("findUnique"):
            contact = await self.store.get(contact_id)

        if contact is None:
            raise ContactNotFoundError(contact_id)

        await self.cache.set(cache_key, contact.model_dump_json(by_alias=True), self.cache_ttl)
        return contact

    def _timed(self, operation: str):
        if self.metrics:
            return self.metrics.time_db_query(operation)
        return nullcontext()
