"""
Message API Dispatcher
======================

Maps the extension's ``{type, payload}`` messages onto coordinator
operations and returns JSON-ready data.

Commands:
- ANALYZE_ARTICLE          {text, url, title, author, source} -> AnalysisResult
- GET_CACHED_ANALYSIS      url -> AnalysisResult | null
- GET_ARTICLE_HISTORY      -> [AnalysisRecord]
- GET_ARTICLE_METADATA     -> [ArticleMetadata]
- GET_STORAGE_STATS        -> StorageStats
- DELETE_ARTICLE           url -> {success}
- CLEAR_HISTORY            -> {success}
- GET_DEBATE_HISTORY       -> [DebateRecord]
- DELETE_DEBATE_RECORD     id -> {success}
- GENERATE_DEBATE_CARDS    {text, purpose, title, ...} -> {cards}
- FETCH_AUTHOR_INFO        {authorName} -> {authorInfo}
- FETCH_RELATED_ARTICLES   {title, source} -> {relatedArticles}
- GENERATE_VIDEO           {title, excerpt, reasoning} -> VideoResult
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .coordinator import AnalysisCoordinator
from .errors import InvalidPayload, UnknownCommand
from .schemas import (
    AnalyzeArticlePayload,
    AuthorInfoPayload,
    CommandType,
    GenerateDebateCardsPayload,
    GenerateVideoPayload,
    RelatedArticlesPayload,
)

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)

SUCCESS = {"success": True}


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _parse(model: Type[P], payload: Any) -> P:
    try:
        return model.model_validate(payload or {})
    except ValidationError as e:
        errors = [
            {"loc": err.get("loc"), "msg": err.get("msg"), "type": err.get("type")}
            for err in e.errors()
        ]
        raise InvalidPayload(f"Invalid payload for {model.__name__}", {"errors": errors}) from e


def _key(payload: Any, *names: str) -> str:
    """Accept either a bare string or an object carrying one of ``names``"""
    value: Optional[Any] = payload
    if isinstance(payload, dict):
        value = next((payload[n] for n in names if payload.get(n)), None)
    if not isinstance(value, str) or not value.strip():
        raise InvalidPayload(f"Expected {' or '.join(names)} as a non-empty string")
    return value


class CommandDispatcher:
    """Routes command messages to the coordinator"""

    def __init__(self, coordinator: AnalysisCoordinator):
        self.coordinator = coordinator
        self._handlers: Dict[CommandType, Callable[[Any], Awaitable[Any]]] = {
            CommandType.ANALYZE_ARTICLE: self._analyze_article,
            CommandType.GET_CACHED_ANALYSIS: self._get_cached_analysis,
            CommandType.GET_ARTICLE_HISTORY: self._get_article_history,
            CommandType.GET_ARTICLE_METADATA: self._get_article_metadata,
            CommandType.GET_STORAGE_STATS: self._get_storage_stats,
            CommandType.DELETE_ARTICLE: self._delete_article,
            CommandType.CLEAR_HISTORY: self._clear_history,
            CommandType.GET_DEBATE_HISTORY: self._get_debate_history,
            CommandType.DELETE_DEBATE_RECORD: self._delete_debate_record,
            CommandType.GENERATE_DEBATE_CARDS: self._generate_debate_cards,
            CommandType.FETCH_AUTHOR_INFO: self._fetch_author_info,
            CommandType.FETCH_RELATED_ARTICLES: self._fetch_related_articles,
            CommandType.GENERATE_VIDEO: self._generate_video,
        }

    async def dispatch(self, message_type: str, payload: Any = None) -> Any:
        """
        Run one command.

        Raises:
            UnknownCommand: ``message_type`` is not a known command
            InvalidPayload: the payload failed validation
            SeeRealError: whatever the underlying operation raises
        """
        try:
            command = CommandType(message_type)
        except ValueError:
            raise UnknownCommand(f"Unknown message type: {message_type}") from None

        logger.debug(f"Dispatching {command.value}")
        result = await self._handlers[command](payload)
        return _dump(result)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _analyze_article(self, payload: Any):
        req = _parse(AnalyzeArticlePayload, payload)
        return await self.coordinator.analyze_article(
            text=req.text,
            url=req.url,
            title=req.title,
            author=req.author,
            source=req.source,
        )

    async def _get_cached_analysis(self, payload: Any):
        return await self.coordinator.get_cached_analysis(_key(payload, "url"))

    async def _get_article_history(self, payload: Any):
        return await self.coordinator.get_article_history()

    async def _get_article_metadata(self, payload: Any):
        return await self.coordinator.get_article_metadata()

    async def _get_storage_stats(self, payload: Any):
        return await self.coordinator.get_storage_stats()

    async def _delete_article(self, payload: Any):
        await self.coordinator.delete_article(_key(payload, "url"))
        return SUCCESS

    async def _clear_history(self, payload: Any):
        await self.coordinator.clear_history()
        return SUCCESS

    async def _get_debate_history(self, payload: Any):
        return await self.coordinator.get_debate_history()

    async def _delete_debate_record(self, payload: Any):
        await self.coordinator.delete_debate_record(_key(payload, "id"))
        return SUCCESS

    async def _generate_debate_cards(self, payload: Any):
        req = _parse(GenerateDebateCardsPayload, payload)
        return await self.coordinator.generate_debate_cards(
            text=req.text,
            purpose=req.purpose,
            title=req.title,
            author=req.author,
            source=req.source,
            date=req.date,
            url=req.url,
        )

    async def _fetch_author_info(self, payload: Any):
        if isinstance(payload, str):
            payload = {"authorName": payload}
        req = _parse(AuthorInfoPayload, payload)
        return await self.coordinator.fetch_author_info(req.author_name)

    async def _fetch_related_articles(self, payload: Any):
        req = _parse(RelatedArticlesPayload, payload)
        return await self.coordinator.fetch_related_articles(req.title, req.source)

    async def _generate_video(self, payload: Any):
        req = _parse(GenerateVideoPayload, payload)
        return await self.coordinator.generate_video(req.title, req.excerpt, req.reasoning)
