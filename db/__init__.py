"""Database package for the entity resolution engine."""
from db.connection import (
    dispose_engine,
    get_db,
    get_engine,
    get_session_factory,
    make_session_factory,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "make_session_factory",
    "session_scope",
    "get_db",
    "dispose_engine",
]
