"""
Contact persistence.

- base: storage contract (ContactStore, ContactTransaction) and the
  unique-constraint error surfaced by writes.
- predicates: structured filter language compiled to asyncpg SQL.
- postgres: asyncpg implementation over the ``contacts`` table.
"""
