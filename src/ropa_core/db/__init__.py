"""Database connectivity: async SQLAlchemy engine, ORM tables, session management."""

from ropa_core.db.engine import create_async_engine_factory, get_async_session_factory, get_session
from ropa_core.db.tables import Base

__all__ = [
    "Base",
    "create_async_engine_factory",
    "get_async_session_factory",
    "get_session",
]
