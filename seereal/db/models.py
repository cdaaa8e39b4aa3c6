"""
SQLAlchemy Models for the Analysis Store
========================================

Persisted root layout:
- articles: one row per article URL (the cache)
- debate_records: capped, most-recent-first history of debate card batches
- storage_meta: key/value metadata, holds the schema version

Supports SQLite (default) and PostgreSQL via SQLAlchemy.
"""

from sqlalchemy import (
    Column, String, Text, Integer, Boolean, BigInteger, Index, JSON
)
from sqlalchemy.orm import declarative_base

from ..schemas import AnalysisRecord, BiasScore, DebateCard, DebateRecord

Base = declarative_base()

# Bump together with a new entry in store.MIGRATIONS
SCHEMA_VERSION = 2
SCHEMA_VERSION_KEY = "schema_version"


class Article(Base):
    """Cached bias analysis for one article URL"""
    __tablename__ = "articles"

    url = Column(String(2048), primary_key=True)
    title = Column(Text, nullable=False, default="")
    author = Column(Text, nullable=True)
    source = Column(Text, nullable=True)
    bias_json = Column(JSON, nullable=False, default=dict)
    timestamp = Column(BigInteger, nullable=False)  # epoch ms
    cached = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_articles_timestamp", "timestamp"),
    )

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> "Article":
        return cls(
            url=record.url,
            title=record.title,
            author=record.author,
            source=record.source,
            bias_json=record.bias.model_dump(),
            timestamp=record.timestamp,
            cached=record.cached,
        )

    def to_record(self) -> AnalysisRecord:
        return AnalysisRecord(
            url=self.url,
            title=self.title or "",
            author=self.author,
            source=self.source,
            bias=BiasScore.model_validate(self.bias_json or {}),
            timestamp=int(self.timestamp),
            cached=bool(self.cached),
        )


class DebateHistoryEntry(Base):
    """One generated batch of debate cards"""
    __tablename__ = "debate_records"

    id = Column(String(64), primary_key=True)
    seq = Column(BigInteger, nullable=False)  # insertion order, newest is highest
    url = Column(Text, nullable=False, default="unknown")
    article_title = Column(Text, nullable=False, default="")
    purpose = Column(Text, nullable=False, default="")
    cards_json = Column(JSON, nullable=False, default=list)
    timestamp = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_debate_records_seq", "seq"),
    )

    @classmethod
    def from_record(cls, record: DebateRecord, seq: int) -> "DebateHistoryEntry":
        return cls(
            id=record.id,
            seq=seq,
            url=record.url,
            article_title=record.article_title,
            purpose=record.purpose,
            cards_json=[card.model_dump() for card in record.cards],
            timestamp=record.timestamp,
        )

    def to_record(self) -> DebateRecord:
        return DebateRecord(
            id=self.id,
            url=self.url or "unknown",
            article_title=self.article_title or "",
            purpose=self.purpose or "",
            cards=[DebateCard.model_validate(card) for card in (self.cards_json or [])],
            timestamp=int(self.timestamp),
        )


class StorageMeta(Base):
    """Key/value metadata for the store"""
    __tablename__ = "storage_meta"

    key = Column(String(64), primary_key=True)
    value = Column(Integer, nullable=True)
