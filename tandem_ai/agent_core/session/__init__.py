"""Session persistence backends."""

from .sql import SqlSessionStore, create_all, create_engine, create_sessionmaker
from .store import FileSessionStore, InMemorySessionStore, SessionStore

__all__ = [
    "FileSessionStore",
    "InMemorySessionStore",
    "SessionStore",
    "SqlSessionStore",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]
