"""
PostgreSQL persistence layer for the Contacts Service.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional
from uuid import UUID

import asyncpg

from shared.errors import ServiceError
from shared.logging import get_logger
from ..models import Contact
from .base import (
    READ_COMMITTED,
    ContactStore,
    ContactTransaction,
    OrderBy,
    UniqueConstraintError,
)
from .predicates import Predicate, compile_where

SORTABLE_COLUMNS = frozenset({"id", "name", "email", "created_at"})
DIRECTIONS = {"asc": "ASC", "desc": "DESC"}

CONTACT_COLUMNS = "id, name, email, phone, created_at, updated_at"


def row_to_contact(row) -> Contact:
    """Convert database row to Contact snapshot."""
    return Contact(
        id=row['id'],
        name=row['name'],
        email=row['email'],
        phone=row['phone'],
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


def render_order_by(order_by: OrderBy) -> str:
    """Render ``[(column, direction), ...]`` against the sortable allowlist."""
    clauses = []
    for column, direction in order_by:
        if column not in SORTABLE_COLUMNS:
            raise ValueError(f"Unsupported sort column: {column}")
        clauses.append(f"{column} {DIRECTIONS[direction.lower()]}")
    return f"ORDER BY {', '.join(clauses)}" if clauses else ""


def _unique_violation(error: asyncpg.UniqueViolationError) -> UniqueConstraintError:
    return UniqueConstraintError(getattr(error, "constraint_name", None), str(error))


class PostgreSQLContactTransaction(ContactTransaction):
    """Contact operations bound to one connection inside a transaction."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def get(self, contact_id: UUID) -> Optional[Contact]:
        row = await self.conn.fetchrow(
            f"SELECT {CONTACT_COLUMNS} FROM contacts WHERE id = $1", contact_id
        )
        return row_to_contact(row) if row else None

    async def get_by_email(self, email: str) -> Optional[Contact]:
        row = await self.conn.fetchrow(
            f"SELECT {CONTACT_COLUMNS} FROM contacts WHERE email = $1", email
        )
        return row_to_contact(row) if row else None

    async def insert(self, name: str, email: str, phone: str) -> Contact:
        try:
            row = await self.conn.fetchrow(f"""
                INSERT INTO contacts (id, name, email, phone, created_at, updated_at)
                VALUES ($1, $2, $3, $4, NOW(), NOW())
                RETURNING {CONTACT_COLUMNS}
            """, uuid.uuid4(), name, email, phone)
        except asyncpg.UniqueViolationError as e:
            raise _unique_violation(e) from e
        return row_to_contact(row)

    async def update(self, contact_id: UUID, *, name: Optional[str] = None,
                     email: Optional[str] = None, phone: Optional[str] = None) -> Optional[Contact]:
        assignments = []
        params: List[object] = [contact_id]
        for column, value in (("name", name), ("email", email), ("phone", phone)):
            if value is not None:
                params.append(value)
                assignments.append(f"{column} = ${len(params)}")
        assignments.append("updated_at = NOW()")

        try:
            row = await self.conn.fetchrow(f"""
                UPDATE contacts SET {', '.join(assignments)}
                WHERE id = $1
                RETURNING {CONTACT_COLUMNS}
            """, *params)
        except asyncpg.UniqueViolationError as e:
            raise _unique_violation(e) from e
        return row_to_contact(row) if row else None

    async def delete(self, contact_id: UUID) -> bool:
        result = await self.conn.execute("DELETE FROM contacts WHERE id = $1", contact_id)
        return result == "DELETE 1"


class PostgreSQLContactStore(ContactStore):
    """asyncpg-backed contact store.

    Email uniqueness is enforced by the ``contacts_email_key`` constraint; a
    violation surfaces as :class:`UniqueConstraintError`. All other database
    errors propagate unchanged.
    """

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10,
                 command_timeout: float = 30, pool: Optional[asyncpg.Pool] = None):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("contacts.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        """Start the persistence layer."""
        try:
            if self.pool is None:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=self.command_timeout
                )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise ServiceError("Failed to start PostgreSQL persistence", {"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS contacts (
                    id UUID PRIMARY KEY,
                    name VARCHAR(50) NOT NULL,
                    email VARCHAR(255) NOT NULL,
                    phone VARCHAR(50) NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    CONSTRAINT contacts_email_key UNIQUE (email)
                );
            """)

            # Keyset pagination walks (sort column, id)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_contacts_name_id ON contacts(name, id);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_contacts_created_at_id ON contacts(created_at, id);
            """)

    async def find_many(self, where: Optional[Predicate], order_by: OrderBy,
                        limit: int, offset: int = 0) -> List[Contact]:
        where_sql, params = compile_where(where)
        params.append(limit)
        limit_placeholder = f"${len(params)}"
        params.append(offset)
        offset_placeholder = f"${len(params)}"

        query = (
            f"SELECT {CONTACT_COLUMNS} FROM contacts {where_sql} {render_order_by(order_by)} "
            f"LIMIT {limit_placeholder} OFFSET {offset_placeholder}"
        )

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [row_to_contact(row) for row in rows]

    async def count(self, where: Optional[Predicate]) -> int:
        where_sql, params = compile_where(where)
        async with self.pool.acquire() as conn:
            count = await conn.fetchval(f"SELECT COUNT(*) FROM contacts {where_sql}", *params)
        return count or 0

    async def get(self, contact_id: UUID) -> Optional[Contact]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {CONTACT_COLUMNS} FROM contacts WHERE id = $1", contact_id
            )
        return row_to_contact(row) if row else None

    @asynccontextmanager
    async def transaction(self, isolation: str = READ_COMMITTED) -> AsyncIterator[ContactTransaction]:
        async with self.pool.acquire() as conn:
            async with conn.transaction(isolation=isolation):
                yield PostgreSQLContactTransaction(conn)

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False
