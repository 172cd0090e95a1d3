"""
Repository layer for data access.

Record and audit repositories come in two backends with the same methods:
SQL (async SQLAlchemy, Postgres RLS scoped by the app.tenant_id GUC) and a
process-local in-memory store. A unit of work groups one record mutation and
its audit entry into a single commit.
"""
