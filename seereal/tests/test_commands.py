"""
Tests for the Message Dispatcher
================================

Command routing, payload validation and result shapes.
"""

import json
import pytest
from pathlib import Path

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from seereal.commands import CommandDispatcher
from seereal.config import Settings
from seereal.coordinator import AnalysisCoordinator
from seereal.db import SqlStorage
from seereal.errors import CredentialMissing, InvalidPayload, UnknownCommand
from seereal.jobs import BackgroundQueue
from seereal.schemas import CommandType

NOW = 1_700_000_000_000

ARTICLE = "Parliament passed the budget late on Thursday after a long debate over spending."


class FakeModelClient:
    def __init__(self, settings, responses=None):
        self.settings = settings
        self.responses = responses or {}
        self.prompts = []

    def has_credential(self):
        return self.settings.has_gemini_key

    async def complete(self, prompt, model_order, json_mode=False, parse=None):
        self.prompts.append(prompt)
        key = next((k for k in self.responses if k in prompt), None)
        text = self.responses.get(key, '{"left_right": 5}')
        return parse(text) if parse else text


@pytest.fixture
def storage(tmp_path):
    store = SqlStorage(f"sqlite:///{tmp_path / 'commands.db'}", clock=lambda: NOW)
    store.open()
    yield store
    store.close()


def make_dispatcher(storage, api_key="test-key", responses=None):
    settings = Settings(gemini_api_key=api_key, _env_file=None)
    client = FakeModelClient(settings, responses)
    coordinator = AnalysisCoordinator(
        storage, client, queue=BackgroundQueue(), settings=settings, clock=lambda: NOW
    )
    return CommandDispatcher(coordinator)


# =============================================================================
# Routing
# =============================================================================

class TestRouting:
    """Tests for command routing"""

    @pytest.mark.asyncio
    async def test_every_command_has_a_handler(self, storage):
        dispatcher = make_dispatcher(storage)
        assert set(dispatcher._handlers) == set(CommandType)

    @pytest.mark.asyncio
    async def test_unknown_command(self, storage):
        dispatcher = make_dispatcher(storage)
        with pytest.raises(UnknownCommand) as exc_info:
            await dispatcher.dispatch("OPEN_POPUP", {})
        assert str(exc_info.value) == "Unknown message type: OPEN_POPUP"

    @pytest.mark.asyncio
    async def test_invalid_payload(self, storage):
        dispatcher = make_dispatcher(storage)
        with pytest.raises(InvalidPayload) as exc_info:
            await dispatcher.dispatch("ANALYZE_ARTICLE", {"url": "https://example.com/a"})
        assert exc_info.value.details["errors"]

    @pytest.mark.asyncio
    async def test_url_payload_must_be_string(self, storage):
        dispatcher = make_dispatcher(storage)
        with pytest.raises(InvalidPayload):
            await dispatcher.dispatch("GET_CACHED_ANALYSIS", 42)


# =============================================================================
# Article commands
# =============================================================================

class TestArticleCommands:
    """Tests for analysis and history commands"""

    @pytest.mark.asyncio
    async def test_analyze_then_cached(self, storage):
        dispatcher = make_dispatcher(storage)
        payload = {"text": ARTICLE, "url": "https://example.com/a", "title": "Budget"}

        first = await dispatcher.dispatch("ANALYZE_ARTICLE", payload)
        second = await dispatcher.dispatch("ANALYZE_ARTICLE", payload)
        await dispatcher.coordinator.queue.drain()

        assert first["cached"] is False
        assert first["bias"]["left_right"] == 5
        assert first["timestamp"] == NOW
        assert second["cached"] is True
        json.dumps(second)

    @pytest.mark.asyncio
    async def test_cached_analysis_accepts_string_or_object(self, storage):
        dispatcher = make_dispatcher(storage)
        await dispatcher.dispatch("ANALYZE_ARTICLE", {"text": ARTICLE, "url": "u"})
        await dispatcher.coordinator.queue.drain()

        by_string = await dispatcher.dispatch("GET_CACHED_ANALYSIS", "u")
        by_object = await dispatcher.dispatch("GET_CACHED_ANALYSIS", {"url": "u"})
        missing = await dispatcher.dispatch("GET_CACHED_ANALYSIS", "missing")

        assert by_string == by_object
        assert by_string["cached"] is True
        assert missing is None

    @pytest.mark.asyncio
    async def test_history_metadata_stats_delete_clear(self, storage):
        dispatcher = make_dispatcher(storage)
        await dispatcher.dispatch("ANALYZE_ARTICLE", {"text": ARTICLE, "url": "a"})
        await dispatcher.dispatch("ANALYZE_ARTICLE", {"text": ARTICLE, "url": "b"})
        await dispatcher.coordinator.queue.drain()

        history = await dispatcher.dispatch("GET_ARTICLE_HISTORY")
        metadata = await dispatcher.dispatch("GET_ARTICLE_METADATA")
        stats = await dispatcher.dispatch("GET_STORAGE_STATS")

        assert sorted(r["url"] for r in history) == ["a", "b"]
        assert {"url", "title", "left_right", "objectivity", "confidence"} <= set(metadata[0])
        assert stats["count"] == 2

        assert await dispatcher.dispatch("DELETE_ARTICLE", "a") == {"success": True}
        assert [r["url"] for r in await dispatcher.dispatch("GET_ARTICLE_HISTORY")] == ["b"]

        assert await dispatcher.dispatch("CLEAR_HISTORY") == {"success": True}
        assert await dispatcher.dispatch("GET_ARTICLE_HISTORY") == []


# =============================================================================
# Generation commands
# =============================================================================

class TestGenerationCommands:
    """Tests for debate, author and related-article commands"""

    @pytest.mark.asyncio
    async def test_debate_cards_and_history(self, storage):
        cards = json.dumps({"cards": [{
            "tag": "Budget passed",
            "cite": "Doe, 2024 (Gazette)",
            "body": "Parliament passed the budget late on Thursday",
            "highlights": ["passed the budget"],
        }]})
        dispatcher = make_dispatcher(storage, responses={"policy debate researcher": cards})

        result = await dispatcher.dispatch("GENERATE_DEBATE_CARDS", {
            "text": ARTICLE, "purpose": "Affirm", "title": "Budget", "url": "https://example.com/a",
        })
        await dispatcher.coordinator.queue.drain()

        assert result["cards"][0]["tag"] == "Budget passed"
        history = await dispatcher.dispatch("GET_DEBATE_HISTORY")
        assert len(history) == 1
        assert history[0]["purpose"] == "Affirm"

        assert await dispatcher.dispatch("DELETE_DEBATE_RECORD", {"id": history[0]["id"]}) == {"success": True}
        assert await dispatcher.dispatch("GET_DEBATE_HISTORY") == []

    @pytest.mark.asyncio
    async def test_debate_cards_without_key(self, storage):
        dispatcher = make_dispatcher(storage, api_key=None)
        with pytest.raises(CredentialMissing):
            await dispatcher.dispatch("GENERATE_DEBATE_CARDS", {"text": ARTICLE, "purpose": "Affirm"})

    @pytest.mark.asyncio
    async def test_author_info_uses_camel_case(self, storage):
        profile = json.dumps({"name": "Jane Doe", "socialLinks": [{"platform": "X", "url": "https://x.com/j"}]})
        dispatcher = make_dispatcher(storage, responses={"journalist": profile})

        result = await dispatcher.dispatch("FETCH_AUTHOR_INFO", {"authorName": "Jane Doe"})

        assert list(result) == ["authorInfo"]
        info = result["authorInfo"]
        assert info["name"] == "Jane Doe"
        assert info["socialLinks"][0]["platform"] == "X"
        assert "imageUrl" in info

    @pytest.mark.asyncio
    async def test_related_articles(self, storage):
        related = json.dumps({"articles": [{"title": "Other", "url": "https://example.org/o", "source": "Org"}]})
        dispatcher = make_dispatcher(storage, responses={"news articles": related})

        result = await dispatcher.dispatch("FETCH_RELATED_ARTICLES", {"title": "Budget", "source": "Gazette"})

        assert result == {"relatedArticles": [
            {"title": "Other", "url": "https://example.org/o", "source": "Org", "date": None},
        ]}

    @pytest.mark.asyncio
    async def test_no_related_articles_is_empty_envelope(self, storage):
        dispatcher = make_dispatcher(storage, responses={"news articles": '{"articles": null}'})

        result = await dispatcher.dispatch("FETCH_RELATED_ARTICLES", {"title": "Budget"})

        assert result == {"relatedArticles": []}
