"""
Contacts Service package.

Serves paginated, searchable, cacheable and idempotent CRUD over a
relational table of contacts.
"""
