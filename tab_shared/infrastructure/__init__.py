"""
Infrastructure: database engine and sessions, request correlation.
"""

from tab_shared.infrastructure.db import engine, SessionLocal, get_db

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
]
