"""
Contacts service.
"""

from typing import Dict, Optional
from uuid import UUID

from fastapi import Header, Query, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.metrics import MetricsCollector

from .cache.resilient import ResilientCache
from .idempotency.ledger import IDEMPOTENCY_KEY_HEADER, IdempotencyLedger
from .models import (
    ContactCreateRequest,
    ContactUpdateRequest,
    MAX_PAGE,
    MAX_PAGE_SIZE,
    ListContactsParams,
    PaginationMode,
    SortField,
    SortOrder,
)
from .mutations.pipeline import MutationPipeline
from .persistence.base import ContactStore
from .persistence.postgres import PostgreSQLContactStore
from .query.planner import QueryPlanner

SERVICE_NAME = "contacts"
SERVICE_PORT = 8000


class ContactsService(BaseService):
    """Contacts service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[ContactStore] = None,
        cache: Optional[ResilientCache] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config, metrics=metrics)

        # Initialize components
        if store is None:
            store = PostgreSQLContactStore(
                self.config.database_url,
                min_size=self.config.db_pool_min_size,
                max_size=self.config.db_pool_max_size,
                command_timeout=self.config.db_command_timeout
            )
        if cache is None:
            cache = ResilientCache(self.config.redis_url, metrics=self.metrics)
        self.store = store
        self.cache = cache
        self.ledger = IdempotencyLedger(self.cache, self.config.idempotency_ttl_seconds, metrics=self.metrics)
        self.planner = QueryPlanner(
            self.store,
            self.cache,
            metrics=self.metrics,
            cache_ttl=self.config.cache_ttl_seconds
        )
        self.mutations = MutationPipeline(self.store, self.cache, self.ledger, metrics=self.metrics)

        @self.app.on_event("startup")
        async def _startup():
            await self.store.start()
            await self.cache.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.cache.stop()
            await self.store.stop()

        self._setup_contacts_routes()

        self.app.state.contacts_service = self

    def _setup_contacts_routes(self):
        """Set up contact routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Contacts Service",
                "version": "1.0.0",
                "capabilities": ["search", "offset_pagination", "keyset_pagination", "idempotency", "caching"]
            }

        @self.app.get("/v1/contacts")
        async def list_contacts(
            q: Optional[str] = Query(None, description="Search name, email or phone"),
            page: int = Query(1, ge=1, le=MAX_PAGE, description="Page number (offset pagination)"),
            page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE, alias="pageSize", description="Items per page"),
            sort: SortField = Query(SortField.CREATED_AT, description="Sort field"),
            order: SortOrder = Query(SortOrder.ASC, description="Sort direction"),
            pagination: PaginationMode = Query(PaginationMode.OFFSET, description="Pagination strategy"),
            cursor: Optional[str] = Query(None, description="Keyset cursor from the previous page"),
        ):
            """List contacts with search, sorting and pagination."""
            params = ListContactsParams(
                q=q,
                page=page,
                page_size=page_size,
                sort=sort,
                order=order,
                pagination=pagination,
                cursor=cursor
            )
            page_result = await self.planner.list_contacts(params)
            return page_result.model_dump(mode="json", by_alias=True)

        @self.app.get("/v1/contacts/{contact_id}")
        async def get_contact(contact_id: UUID):
            """Get a single contact."""
            contact = await self.planner.get_contact(contact_id)
            return contact.model_dump(mode="json", by_alias=True)

        @self.app.post("/v1/contacts", status_code=201)
        async def create_contact(
            payload: ContactCreateRequest,
            idempotency_key: Optional[str] = Header(None, alias=IDEMPOTENCY_KEY_HEADER),
        ):
            """Create a contact."""
            result = await self.mutations.create(payload, idempotency_key)
            return result.contact.model_dump(mode="json", by_alias=True)

        @self.app.put("/v1/contacts/{contact_id}")
        async def update_contact(
            contact_id: UUID,
            payload: ContactUpdateRequest,
            idempotency_key: Optional[str] = Header(None, alias=IDEMPOTENCY_KEY_HEADER),
        ):
            """Partially update a contact."""
            result = await self.mutations.update(contact_id, payload, idempotency_key)
            return result.contact.model_dump(mode="json", by_alias=True)

        @self.app.delete("/v1/contacts/{contact_id}", status_code=204)
        async def delete_contact(contact_id: UUID):
            """Delete a contact."""
            await self.mutations.delete(contact_id)
            return Response(status_code=204)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check contacts dependencies."""
        dependencies = {}

        dependencies["postgres"] = "ok" if await self.store.health_check() else "error"
        dependencies["cache"] = await self.cache.health_check()

        return dependencies


def create_app():
    """Create contacts service application."""
    service = ContactsService()
    return service.app


if __name__ == "__main__":
    service = ContactsService()
    service.run()
