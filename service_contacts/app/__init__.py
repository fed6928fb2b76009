"""
Contacts Service application package.

- app.main: FastAPI surface for contact CRUD, health and metrics.
- app.query: list planning (search routing, offset/keyset pagination,
  response envelopes) and cached single-contact reads.
- app.mutations: transactional create/update/delete with post-commit cache
  invalidation and idempotency capture.
- app.cache: pluggable cache stores and the failure-tolerant facade.
- app.idempotency: client-keyed replay ledger.
- app.pagination: opaque keyset cursors.
- app.persistence: storage contract and the PostgreSQL store.
"""
