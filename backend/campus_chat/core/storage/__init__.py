"""Database storage layer."""

from .database import Base, Database, get_db

__all__ = ["Base", "Database", "get_db"]
