"""
Database Package - Analysis Store with SQLAlchemy
=================================================

Persistent cache of article analyses plus debate card history.
"""

from .models import Base, Article, DebateHistoryEntry, StorageMeta, SCHEMA_VERSION
from .store import SqlStorage, MIGRATIONS, DEBATE_HISTORY_LIMIT, initialize_schema

__all__ = [
    # Models
    "Base", "Article", "DebateHistoryEntry", "StorageMeta", "SCHEMA_VERSION",
    # Store
    "SqlStorage", "MIGRATIONS", "DEBATE_HISTORY_LIMIT", "initialize_schema",
]
