"""
Analysis Coordinator
====================

Orchestrates analysis requests:

    CacheCheck -> Compute -> Persist -> Cleanup (detached) -> Done

- CacheCheck: a stored analysis younger than the TTL is returned as cached
- Compute: bias analysis over a bounded prefix of the article text
- Persist: the record overwrites any previous record for the URL
- Cleanup: age-based eviction runs as a background job; its failures are
  logged and never reach the caller

Concurrent requests for the same URL that miss the cache share a single
Compute/Persist when ``coalesce_inflight`` is on. With it off, each request
computes and the last write wins.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional

from .analyzers import AuthorLookup, BiasAnalyzer, DebateCardGenerator, VideoGenerator
from .config import Settings, get_settings
from .db.store import SqlStorage
from .jobs.queue import BackgroundQueue
from .llm_client import ModelClient
from .schemas import (
    AnalysisRecord,
    AnalysisResult,
    ArticleMetadata,
    AuthorInfoResult,
    DebateCardsResult,
    DebateRecord,
    RelatedArticlesResult,
    StorageStats,
    VideoResult,
)
from .timeutils import Clock, days_to_ms, hours_to_ms, now_ms

logger = logging.getLogger(__name__)


class AnalysisCoordinator:
    """
    Entry point for every operation of the message API.

    Usage:
        coordinator = AnalysisCoordinator(storage, ModelClient(), BackgroundQueue())
        result = await coordinator.analyze_article(text, url=url, title=title)
    """

    def __init__(
        self,
        storage: SqlStorage,
        model_client: ModelClient,
        queue: Optional[BackgroundQueue] = None,
        settings: Optional[Settings] = None,
        clock: Clock = now_ms,
        bias_analyzer: Optional[BiasAnalyzer] = None,
        debate_generator: Optional[DebateCardGenerator] = None,
        author_lookup: Optional[AuthorLookup] = None,
        video_generator: Optional[VideoGenerator] = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage
        self.model_client = model_client
        self.queue = queue or BackgroundQueue()
        self.clock = clock

        self.ttl_ms = hours_to_ms(self.settings.cache_ttl_hours)
        self.max_age_ms = days_to_ms(self.settings.max_age_days)
        self.coalesce_inflight = self.settings.coalesce_inflight

        self.bias_analyzer = bias_analyzer or BiasAnalyzer(
            model_client, max_chars=self.settings.max_prompt_chars
        )
        self.debate_generator = debate_generator or DebateCardGenerator(
            model_client, max_chars=self.settings.max_prompt_chars
        )
        self.author_lookup = author_lookup or AuthorLookup(model_client)
        self.video_generator = video_generator or VideoGenerator(model_client)

        self._inflight: Dict[str, asyncio.Task] = {}

    # -------------------------------------------------------------------------
    # Bias analysis
    # -------------------------------------------------------------------------

    def is_fresh(self, record: AnalysisRecord, now: Optional[int] = None) -> bool:
        now = self.clock() if now is None else now
        return now - record.timestamp < self.ttl_ms

    async def analyze_article(
        self,
        text: str,
        url: str = "unknown",
        title: str = "Untitled Article",
        author: Optional[str] = None,
        source: Optional[str] = None,
    ) -> AnalysisResult:
        """
        Analyze an article, serving a fresh cached result when one exists.

        Raises:
            InvalidCredential / AllModelsFailed: analysis failed, nothing persisted
            StorageWriteFailure: analysis succeeded but could not be saved
        """
        stored = await self.storage.get_analysis(url)
        if stored is not None and self.is_fresh(stored):
            logger.debug(f"Cache hit for {url}")
            return AnalysisResult(bias=stored.bias, cached=True, timestamp=stored.timestamp)

        if not self.coalesce_inflight:
            return await self._compute_and_persist(text, url, title, author, source)

        task = self._inflight.get(url)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._compute_and_persist(text, url, title, author, source)
            )
            self._inflight[url] = task
            task.add_done_callback(lambda t, key=url: self._forget_inflight(key, t))
        else:
            logger.debug(f"Joining in-flight analysis for {url}")
        return await asyncio.shield(task)

    def _forget_inflight(self, url: str, task: asyncio.Task) -> None:
        if self._inflight.get(url) is task:
            del self._inflight[url]
        # Retrieve the exception so an unawaited failure is not reported twice
        if not task.cancelled():
            task.exception()

    async def _compute_and_persist(
        self,
        text: str,
        url: str,
        title: str,
        author: Optional[str],
        source: Optional[str],
    ) -> AnalysisResult:
        bias = await self.bias_analyzer.analyze(text)
        timestamp = self.clock()

        record = AnalysisRecord(
            url=url,
            title=title,
            author=author,
            source=source,
            bias=bias,
            timestamp=timestamp,
            cached=False,
        )
        await self.storage.save_analysis(record)

        self.queue.enqueue_job(self._evict_old_analyses, name="evict_old_analyses")
        return AnalysisResult(bias=bias, cached=False, timestamp=timestamp)

    async def _evict_old_analyses(self) -> int:
        return await self.storage.evict_older_than(self.max_age_ms, now_ms=self.clock())

    async def get_cached_analysis(self, url: str) -> Optional[AnalysisResult]:
        """Stored result for ``url`` regardless of age, or None"""
        stored = await self.storage.get_analysis(url)
        if stored is None:
            return None
        return AnalysisResult(bias=stored.bias, cached=True, timestamp=stored.timestamp)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def get_article_history(self) -> List[AnalysisRecord]:
        return await self.storage.list_analyses()

    async def get_article_metadata(self) -> List[ArticleMetadata]:
        return await self.storage.list_metadata()

    async def get_storage_stats(self) -> StorageStats:
        return await self.storage.get_stats()

    async def delete_article(self, url: str) -> None:
        await self.storage.delete_analysis(url)

    async def clear_history(self) -> None:
        await self.storage.clear_analyses()

    async def get_debate_history(self) -> List[DebateRecord]:
        return await self.storage.list_debate_records()

    async def delete_debate_record(self, record_id: str) -> None:
        await self.storage.delete_debate_record(record_id)

    # -------------------------------------------------------------------------
    # Generation flows
    # -------------------------------------------------------------------------

    async def generate_debate_cards(
        self,
        text: str,
        purpose: str,
        title: str,
        author: Optional[str] = None,
        source: Optional[str] = None,
        date: Optional[str] = None,
        url: Optional[str] = None,
    ) -> DebateCardsResult:
        """
        Generate cards and record the batch in history (background save).

        Raises:
            CredentialMissing / InvalidCredential / AnalysisFailed
        """
        cards = await self.debate_generator.generate(text, purpose, title, author, source, date)

        if cards:
            record = DebateRecord(
                id=uuid.uuid4().hex[:13],
                url=url or "unknown",
                article_title=title,
                purpose=purpose,
                cards=cards,
                timestamp=self.clock(),
            )
            self.queue.enqueue_job(
                self.storage.save_debate_record, record, name="save_debate_record"
            )

        return DebateCardsResult(cards=cards)

    async def fetch_author_info(self, author_name: str) -> AuthorInfoResult:
        info = await self.author_lookup.fetch_author_info(author_name)
        return AuthorInfoResult(author_info=info)

    async def fetch_related_articles(self, title: str, source: Optional[str] = None) -> RelatedArticlesResult:
        articles = await self.author_lookup.fetch_related_articles(title, source)
        return RelatedArticlesResult(related_articles=articles)

    async def generate_video(self, title: str, excerpt: str = "", reasoning: str = "") -> VideoResult:
        return await self.video_generator.generate(title, excerpt, reasoning)
