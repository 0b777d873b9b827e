"""
Database Module
===============

Provides engine/session factories and the base model.
"""

from app.db.base import Base
from app.db.session import check_connection, create_engine, create_session_factory

__all__ = ["Base", "check_connection", "create_engine", "create_session_factory"]
