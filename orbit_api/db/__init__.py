# orbit_api/db/__init__.py
"""
Database package for SQLAlchemy setup, session management, and base models.
"""

from orbit_api.db.base import Base
from orbit_api.db.session import get_session, get_sessionmaker, transaction_session

__all__ = [
    "Base",
    "get_session",
    "get_sessionmaker",
    "transaction_session",
]
