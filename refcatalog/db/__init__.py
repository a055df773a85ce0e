"""
Database ORM Models
SQLAlchemy models and engine helpers for the local replica.
"""

from .models import Base, CatalogRecordRow, SyncMetadata
from .session import create_replica_engine, create_session_factory

__all__ = [
    "Base",
    "CatalogRecordRow",
    "SyncMetadata",
    "create_replica_engine",
    "create_session_factory",
]
