"""
Tests for Analyzers
===================

Bias parsing, debate card normalization, author/related lookups and the
video client (bounded polling, URI discovery).
"""

import base64
import json
import pytest
from pathlib import Path

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import httpx

from seereal.analyzers import (
    AuthorLookup,
    BiasAnalyzer,
    DebateCardGenerator,
    VideoGenerator,
    find_video_uri,
    normalize_cards,
)
from seereal.analyzers.bias import build_bias_prompt, parse_bias_response
from seereal.config import Settings
from seereal.errors import (
    AllModelsFailed,
    AnalysisFailed,
    CredentialMissing,
    InvalidCredential,
    MalformedModelOutput,
    VideoGenerationTimeout,
)
from seereal.llm_client import ModelClient


def make_settings(**overrides):
    values = {"gemini_api_key": "test-key", "_env_file": None}
    values.update(overrides)
    return Settings(**values)


class ScriptedClient:
    """Minimal ModelClient stand-in returning one canned response"""

    def __init__(self, response=None, error=None, api_key="test-key"):
        self.settings = make_settings(gemini_api_key=api_key)
        self.response = response
        self.error = error
        self.prompts = []

    def has_credential(self):
        return self.settings.has_gemini_key

    async def complete(self, prompt, model_order, json_mode=False, parse=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return parse(self.response) if parse else self.response


# =============================================================================
# Bias
# =============================================================================

class TestBiasAnalyzer:
    """Tests for bias scoring"""

    def test_parse_clamps_and_strips_fences(self):
        score = parse_bias_response('```json\n{"left_right": 400, "objectivity": "-3", "reasoning": "x"}\n```')
        assert score.left_right == 100
        assert score.objectivity == 0
        assert score.reasoning == "x"

    def test_parse_rejects_non_json(self):
        with pytest.raises(MalformedModelOutput):
            parse_bias_response("The article leans left.")

    def test_prompt_is_bounded(self):
        prompt = build_bias_prompt("a" * 20000, max_chars=15000)
        assert prompt.count("a" * 100) > 0
        assert prompt.endswith("a" * 15000)
        assert not prompt.endswith("a" * 15001)

    @pytest.mark.asyncio
    async def test_analyze_uses_bias_chain(self):
        client = ScriptedClient(response='{"left_right": 12, "confidence": 90}')
        analyzer = BiasAnalyzer(client)

        score = await analyzer.analyze("Some article")

        assert score.left_right == 12
        assert score.confidence == 90
        assert analyzer.model_order == client.settings.model_order("bias")

    @pytest.mark.asyncio
    async def test_missing_key_is_neutral(self):
        client = ScriptedClient(api_key=None)
        score = await BiasAnalyzer(client).analyze("Some article")

        assert client.prompts == []
        assert score.left_right == 0
        assert score.sensationalism == 50
        assert score.confidence == 0

    @pytest.mark.asyncio
    async def test_failure_propagates(self):
        client = ScriptedClient(error=AllModelsFailed(RuntimeError("down")))
        with pytest.raises(AllModelsFailed):
            await BiasAnalyzer(client).analyze("Some article")


# =============================================================================
# Debate cards
# =============================================================================

ARTICLE = "Line one of the story.\n\nThe senator   said the bill would pass. Critics disagreed strongly."


class TestNormalizeCards:
    """Tests for normalize_cards"""

    def test_verbatim_body_kept(self):
        cards = normalize_cards(
            [{"tag": "t", "cite": "c", "body": "The senator said the bill would pass.", "highlights": ["bill would pass"]}],
            ARTICLE,
        )
        assert len(cards) == 1
        assert cards[0].highlights == ["bill would pass"]

    def test_paraphrased_body_dropped(self):
        cards = normalize_cards([{"tag": "t", "body": "The senator claimed passage was likely."}], ARTICLE)
        assert cards == []

    def test_invalid_shapes_dropped(self):
        cards = normalize_cards(["not a card", {"tag": "no body"}, {"body": ""}], ARTICLE)
        assert cards == []

    def test_highlights_outside_body_dropped(self):
        cards = normalize_cards(
            [{"tag": "t", "body": "Critics disagreed strongly.", "highlights": ["Critics", "senator", "Critics"]}],
            ARTICLE,
        )
        assert cards[0].highlights == ["Critics"]

    def test_non_list_input(self):
        assert normalize_cards(None, ARTICLE) == []
        assert normalize_cards({"tag": "t"}, ARTICLE) == []


class TestDebateCardGenerator:
    """Tests for DebateCardGenerator"""

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        with pytest.raises(CredentialMissing):
            await DebateCardGenerator(ScriptedClient(api_key=None)).generate(ARTICLE, "p", "t")

    @pytest.mark.asyncio
    async def test_all_models_failed_becomes_analysis_failed(self):
        client = ScriptedClient(error=AllModelsFailed(RuntimeError("down")))
        with pytest.raises(AnalysisFailed):
            await DebateCardGenerator(client).generate(ARTICLE, "p", "t")

    @pytest.mark.asyncio
    async def test_invalid_key_propagates(self):
        client = ScriptedClient(error=InvalidCredential("bad key"))
        with pytest.raises(InvalidCredential):
            await DebateCardGenerator(client).generate(ARTICLE, "p", "t")

    @pytest.mark.asyncio
    async def test_prompt_carries_citation_fields(self):
        client = ScriptedClient(response='{"cards": []}')
        await DebateCardGenerator(client).generate(ARTICLE, "Affirm", "Title", author="Doe", source="Gazette", date="2024")

        prompt = client.prompts[0]
        assert '"Affirm"' in prompt
        assert '"Doe"' in prompt
        assert '"Gazette"' in prompt
        assert '"2024"' in prompt


# =============================================================================
# Author / related
# =============================================================================

class TestAuthorLookup:
    """Tests for AuthorLookup"""

    @pytest.mark.asyncio
    async def test_author_profile(self):
        client = ScriptedClient(response=json.dumps({
            "name": None,
            "bio": "Reporter.",
            "age": 41,
            "articles": [{"title": "A", "url": "https://example.com/a"}],
            "socialLinks": None,
            "imageUrl": None,
        }))

        info = await AuthorLookup(client).fetch_author_info("Jane Doe")

        assert info.name == "Jane Doe"
        assert info.age == "41"
        assert info.articles[0].title == "A"
        assert info.social_links == []

    @pytest.mark.asyncio
    async def test_author_failure(self):
        client = ScriptedClient(error=AllModelsFailed(RuntimeError("down")))
        with pytest.raises(AnalysisFailed):
            await AuthorLookup(client).fetch_author_info("Jane Doe")

    @pytest.mark.asyncio
    async def test_author_missing_key(self):
        with pytest.raises(CredentialMissing):
            await AuthorLookup(ScriptedClient(api_key=None)).fetch_author_info("Jane Doe")

    @pytest.mark.asyncio
    async def test_related_articles(self):
        client = ScriptedClient(response=json.dumps({
            "articles": [
                {"title": "Other take", "url": "https://example.org/b", "source": "Org"},
                "garbage",
            ]
        }))

        articles = await AuthorLookup(client).fetch_related_articles("Title", "Gazette")

        assert [a.title for a in articles] == ["Other take"]
        assert "from Gazette" in client.prompts[0]

    @pytest.mark.asyncio
    async def test_related_failure_is_empty(self):
        client = ScriptedClient(error=AllModelsFailed(RuntimeError("down")))
        assert await AuthorLookup(client).fetch_related_articles("Title") == []

    @pytest.mark.asyncio
    async def test_related_missing_key_raises(self):
        with pytest.raises(CredentialMissing):
            await AuthorLookup(ScriptedClient(api_key=None)).fetch_related_articles("Title")


# =============================================================================
# Video
# =============================================================================

VIDEO_URI = "https://files.example.com/v1/video.mp4"
VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42"


class VideoBackend:
    """Mock transport for prompt, start, poll and download"""

    def __init__(self, pending_polls=0, prompt_status=200, operation_response=None):
        self.pending_polls = pending_polls
        self.prompt_status = prompt_status
        self.operation_response = operation_response or {
            "generateVideoResponse": {"generatedSamples": [{"video": {"uri": VIDEO_URI}}]}
        }
        self.polls = 0
        self.start_bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith(":generateContent"):
            if self.prompt_status != 200:
                return httpx.Response(self.prompt_status, text="unavailable")
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "  A council chamber, documentary style.  "}]}}]
            })
        if path.endswith(":predictLongRunning"):
            self.start_bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"name": "models/veo/operations/op-1"})
        if path.endswith("/operations/op-1"):
            self.polls += 1
            if self.polls <= self.pending_polls:
                return httpx.Response(200, json={"done": False})
            return httpx.Response(200, json={"done": True, "response": self.operation_response})
        if str(request.url) == VIDEO_URI:
            return httpx.Response(200, content=VIDEO_BYTES, headers={"content-type": "video/mp4"})
        return httpx.Response(404, text="not found")


def make_video_generator(backend, sleeps, **overrides):
    settings = make_settings(**overrides)
    http = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    client = ModelClient(settings, http_client=http)

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return VideoGenerator(client, sleep=fake_sleep)


class TestFindVideoUri:
    """Tests for find_video_uri"""

    def test_known_paths(self):
        assert find_video_uri(
            {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": "a"}}]}}
        ) == "a"
        assert find_video_uri({"generatedVideos": [{"video": {"uri": "b"}}]}) == "b"

    def test_generic_search(self):
        assert find_video_uri({"outer": [{"inner": {"uri": "c"}}]}) == "c"

    def test_search_depth_is_bounded(self):
        node = {"uri": "deep"}
        for _ in range(10):
            node = {"next": node}
        assert find_video_uri(node) is None

    def test_missing(self):
        assert find_video_uri({}) is None
        assert find_video_uri(None) is None


class TestVideoGenerator:
    """Tests for VideoGenerator"""

    @pytest.mark.asyncio
    async def test_happy_path(self):
        backend = VideoBackend(pending_polls=2)
        sleeps = []
        generator = make_video_generator(backend, sleeps)

        result = await generator.generate("Council votes", excerpt="Buses", reasoning="Factual")

        assert base64.b64decode(result.video_base64) == VIDEO_BYTES
        assert result.mime_type == "video/mp4"
        assert backend.polls == 3
        assert sleeps == [8.0, 8.0]
        assert backend.start_bodies[0]["instances"][0]["prompt"] == "A council chamber, documentary style."

    @pytest.mark.asyncio
    async def test_polling_is_bounded(self):
        backend = VideoBackend(pending_polls=1000)
        sleeps = []
        generator = make_video_generator(backend, sleeps, video_max_poll_attempts=3)

        with pytest.raises(VideoGenerationTimeout):
            await generator.generate("Council votes")

        assert backend.polls == 3
        assert len(sleeps) == 3

    @pytest.mark.asyncio
    async def test_prompt_failure_uses_template(self):
        backend = VideoBackend(prompt_status=500)
        generator = make_video_generator(backend, [])

        await generator.generate("Council votes")

        prompt = backend.start_bodies[0]["instances"][0]["prompt"]
        assert prompt.startswith("Cinematic, documentary-style short clip about: Council votes")

    @pytest.mark.asyncio
    async def test_missing_uri(self):
        backend = VideoBackend(operation_response={"generatedVideos": []})
        generator = make_video_generator(backend, [])

        with pytest.raises(MalformedModelOutput):
            await generator.generate("Council votes")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        generator = make_video_generator(VideoBackend(), [], gemini_api_key=None)
        with pytest.raises(CredentialMissing):
            await generator.generate("Council votes")
