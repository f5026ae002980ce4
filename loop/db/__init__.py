"""
Database Module
===============

Provides database session management and base model.
"""

from loop.db.base import Base
from loop.db.session import close_db, get_db, init_db

__all__ = ["Base", "get_db", "init_db", "close_db"]
