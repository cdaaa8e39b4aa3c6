"""
Analysis Store
==============

SQLAlchemy-backed persistence for cached analyses and debate history.

Lifecycle is explicit: ``open()`` creates the engine, tables and runs schema
migrations; ``close()`` disposes the engine. Instances are injected where
needed, there is no module-level store.

Failure policy:
- Reads never raise. Backend errors are logged and surface as None / [].
- Writes raise StorageWriteFailure; callers must not assume persistence.

All public operations are coroutines; the blocking SQLAlchemy work runs in a
worker thread. Each operation is a single transaction.
"""

import asyncio
import json
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Generator, List, Optional, Type, TypeVar

from sqlalchemy import create_engine, delete, func, inspect, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_settings
from ..errors import SeeRealError, StorageReadFailure, StorageWriteFailure
from ..schemas import AnalysisRecord, ArticleMetadata, DebateRecord, StorageStats
from ..timeutils import Clock, now_ms
from .models import (
    Base,
    Article,
    DebateHistoryEntry,
    StorageMeta,
    SCHEMA_VERSION,
    SCHEMA_VERSION_KEY,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEBATE_HISTORY_LIMIT = 50


def _create_engine_for_url(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs = {
            "connect_args": {"check_same_thread": False},
            "echo": echo,
        }
        # In-memory databases must share one connection across threads
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=echo,
    )


# =============================================================================
# Schema migrations
# =============================================================================

def _migrate_v1_to_v2(conn: Connection) -> None:
    """v2 added articles.cached"""
    columns = {c["name"] for c in inspect(conn).get_columns("articles")}
    if "cached" not in columns:
        conn.execute(text("ALTER TABLE articles ADD COLUMN cached BOOLEAN NOT NULL DEFAULT FALSE"))


# MIGRATIONS[v] upgrades a store at version v to v + 1
MIGRATIONS: Dict[int, Callable[[Connection], None]] = {
    1: _migrate_v1_to_v2,
}


def migration_path(stored_version: Optional[int]) -> Optional[List[Callable[[Connection], None]]]:
    """
    Steps that bring ``stored_version`` up to SCHEMA_VERSION.

    Returns None when there is no path (no version stored, a newer version,
    or a gap in MIGRATIONS).
    """
    if stored_version is None or stored_version > SCHEMA_VERSION:
        return None
    steps = []
    for version in range(stored_version, SCHEMA_VERSION):
        step = MIGRATIONS.get(version)
        if step is None:
            return None
        steps.append(step)
    return steps


def _read_version(conn: Connection) -> Optional[int]:
    value = conn.execute(
        select(StorageMeta.value).where(StorageMeta.key == SCHEMA_VERSION_KEY)
    ).scalar()
    return int(value) if value is not None else None


def _write_version(conn: Connection, version: int) -> None:
    conn.execute(delete(StorageMeta).where(StorageMeta.key == SCHEMA_VERSION_KEY))
    conn.execute(StorageMeta.__table__.insert().values(key=SCHEMA_VERSION_KEY, value=version))


def initialize_schema(engine: Engine) -> None:
    """
    Create missing tables and bring the stored schema to SCHEMA_VERSION.

    Without a migration path the article cache is reset. Debate history is
    only ever backfilled (created if missing), never wiped.
    """
    Base.metadata.create_all(bind=engine)
    with engine.begin() as conn:
        stored = _read_version(conn)
        if stored == SCHEMA_VERSION:
            return

        steps = migration_path(stored)
        if steps is None:
            if stored is None:
                logger.info(f"Initializing storage schema v{SCHEMA_VERSION}")
            else:
                logger.warning(
                    f"Storage schema v{stored} has no migration to v{SCHEMA_VERSION}; "
                    "resetting article cache"
                )
            Article.__table__.drop(conn, checkfirst=True)
            Article.__table__.create(conn)
        else:
            for step in steps:
                step(conn)
            logger.info(f"Migrated storage schema v{stored} -> v{SCHEMA_VERSION}")

        _write_version(conn, SCHEMA_VERSION)


class SqlStorage:
    """
    Persistent store for article analyses and debate history.

    Usage:
        storage = SqlStorage("sqlite:///./seereal.db")
        storage.open()
        record = await storage.get_analysis(url)
        storage.close()
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        history_limit: int = DEBATE_HISTORY_LIMIT,
        clock: Clock = now_ms,
        echo: bool = False,
    ):
        self.database_url = database_url or get_settings().database_url
        self.history_limit = history_limit
        self.clock = clock
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None
        self._history_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> None:
        """Create the engine and initialize the schema"""
        if self._engine is not None:
            return
        engine = _create_engine_for_url(self.database_url, echo=self.echo)
        try:
            initialize_schema(engine)
        except Exception:
            engine.dispose()
            raise
        self._engine = engine
        self._sessionmaker = sessionmaker(
            bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def close(self) -> None:
        """Dispose the engine"""
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # -------------------------------------------------------------------------
    # Session and failure policy
    # -------------------------------------------------------------------------

    @contextmanager
    def _session(self, failure_cls: Type[SeeRealError]) -> Generator[Session, None, None]:
        if self._sessionmaker is None:
            raise failure_cls("Storage is not open")
        db = self._sessionmaker()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def _read(self, operation: str, fn: Callable[[], T], default_factory: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except (SQLAlchemyError, ValueError, StorageReadFailure) as e:
            # ValueError covers undecodable JSON columns and pydantic ValidationError
            logger.error(f"[storage] Failed to {operation}: {e}")
            return default_factory()

    async def _write(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except StorageWriteFailure as e:
            logger.error(f"[storage] Failed to {operation}: {e}")
            raise
        except SQLAlchemyError as e:
            logger.error(f"[storage] Failed to {operation}: {e}")
            raise StorageWriteFailure(f"Failed to {operation}", {"operation": operation}) from e

    # -------------------------------------------------------------------------
    # Articles
    # -------------------------------------------------------------------------

    async def get_analysis(self, url: str) -> Optional[AnalysisRecord]:
        def _get():
            with self._session(StorageReadFailure) as db:
                row = db.get(Article, url)
                return row.to_record() if row is not None else None

        return await self._read("get analysis", _get, lambda: None)

    async def save_analysis(self, record: AnalysisRecord) -> None:
        def _save():
            with self._session(StorageWriteFailure) as db:
                db.merge(Article.from_record(record))

        await self._write("save analysis", _save)

    async def delete_analysis(self, url: str) -> None:
        def _delete():
            with self._session(StorageWriteFailure) as db:
                db.execute(delete(Article).where(Article.url == url))

        await self._write("delete analysis", _delete)

    async def list_analyses(self) -> List[AnalysisRecord]:
        """All analyses, newest first (ties ordered by URL)"""
        def _list():
            with self._session(StorageReadFailure) as db:
                rows = db.execute(
                    select(Article).order_by(Article.timestamp.desc(), Article.url.asc())
                ).scalars().all()
                return [row.to_record() for row in rows]

        return await self._read("list analyses", _list, list)

    async def list_metadata(self) -> List[ArticleMetadata]:
        return [ArticleMetadata.from_record(record) for record in await self.list_analyses()]

    async def clear_analyses(self) -> None:
        """Remove every analysis; debate history is untouched"""
        def _clear():
            with self._session(StorageWriteFailure) as db:
                db.execute(delete(Article))

        await self._write("clear analyses", _clear)

    async def evict_older_than(self, max_age_ms: int, now_ms: Optional[int] = None) -> int:
        """Remove analyses with ``now - timestamp >= max_age_ms``; returns count removed"""
        now = self.clock() if now_ms is None else now_ms
        cutoff = now - max_age_ms

        def _evict():
            with self._session(StorageWriteFailure) as db:
                result = db.execute(delete(Article).where(Article.timestamp <= cutoff))
                return result.rowcount or 0

        removed = await self._write("evict old analyses", _evict)
        if removed:
            logger.info(f"[storage] Evicted {removed} analyses older than {max_age_ms} ms")
        return removed

    # -------------------------------------------------------------------------
    # Debate history
    # -------------------------------------------------------------------------

    async def save_debate_record(self, record: DebateRecord) -> None:
        """Prepend to history, keeping only the newest ``history_limit`` records"""
        def _save():
            # seq allocation and commit happen under one lock
            with self._history_lock, self._session(StorageWriteFailure) as db:
                top = db.execute(select(func.max(DebateHistoryEntry.seq))).scalar() or 0
                db.merge(DebateHistoryEntry.from_record(record, top + 1))
                db.flush()
                stale_ids = db.execute(
                    select(DebateHistoryEntry.id)
                    .order_by(DebateHistoryEntry.seq.desc())
                    .offset(self.history_limit)
                ).scalars().all()
                if stale_ids:
                    db.execute(
                        delete(DebateHistoryEntry).where(DebateHistoryEntry.id.in_(stale_ids))
                    )

        await self._write("save debate record", _save)

    async def list_debate_records(self) -> List[DebateRecord]:
        """Debate history, newest first"""
        def _list():
            with self._session(StorageReadFailure) as db:
                rows = db.execute(
                    select(DebateHistoryEntry).order_by(DebateHistoryEntry.seq.desc())
                ).scalars().all()
                return [row.to_record() for row in rows]

        return await self._read("list debate records", _list, list)

    async def delete_debate_record(self, record_id: str) -> None:
        def _delete():
            with self._session(StorageWriteFailure) as db:
                db.execute(delete(DebateHistoryEntry).where(DebateHistoryEntry.id == record_id))

        await self._write("delete debate record", _delete)

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    async def get_stats(self) -> StorageStats:
        articles = await self.list_analyses()
        debates = await self.list_debate_records()
        timestamps = [a.timestamp for a in articles] + [d.timestamp for d in debates]

        root = {
            "articles": {a.url: a.model_dump() for a in articles},
            "debate_history": [d.model_dump() for d in debates],
            "version": SCHEMA_VERSION,
        }
        return StorageStats(
            count=len(articles),
            oldest_timestamp=min(timestamps) if timestamps else None,
            newest_timestamp=max(timestamps) if timestamps else None,
            estimated_size_bytes=len(json.dumps(root)),
            debate_count=len(debates),
        )
