"""
Postgres record store: ORM tables, connection settings and tenant-scoped sessions.

Only used when STORE_BACKEND=postgres; the memory backend never creates the engine.
"""

from .base import Base
from .config import Settings, get_settings
from .session import dispose_engine, get_engine, get_session_maker, ping_database, set_current_tenant

# Registers the quality tables on Base.metadata for Alembic autogenerate.
from . import models as models  # noqa: F401

__all__ = [
    "Base",
    "Settings",
    "dispose_engine",
    "get_engine",
    "get_session_maker",
    "get_settings",
    "models",
    "ping_database",
    "set_current_tenant",
]
