"""
Database Module
===============

Provides database session management, base model and the subscription
repository.
"""

from app.db.base import Base
from app.db.session import get_db, init_db, close_db

__all__ = ["Base", "get_db", "init_db", "close_db"]
