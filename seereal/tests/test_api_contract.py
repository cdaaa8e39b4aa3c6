"""
Tests for API Contract
======================

Ensures the API always returns valid JSON with expected structure.
Tests both success and error cases.
"""

import pytest
from pathlib import Path

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fastapi.testclient import TestClient

from seereal.api import app
from seereal.config import get_settings
from seereal.errors import API_KEY_MESSAGE


ARTICLE = "Regulators approved the merger on Monday, ending a review that lasted nearly two years."


# =============================================================================
# Test Client
# =============================================================================

@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client over a fresh SQLite store with no API key"""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    get_settings.cache_clear()
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()


def send(client, message_type, payload=None):
    return client.post("/messages", json={"type": message_type, "payload": payload})


# =============================================================================
# Health Check Tests
# =============================================================================

class TestHealthEndpoint:
    """Tests for /health endpoint"""

    def test_health_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_valid_json(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert "version" in data
        assert data["llm_configured"] is False
        assert "timestamp" in data


# =============================================================================
# Message Tests
# =============================================================================

class TestMessages:
    """Tests for POST /messages"""

    def test_analyze_without_key_is_neutral(self, client):
        response = send(client, "ANALYZE_ARTICLE", {"text": ARTICLE, "url": "https://example.com/m"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["cached"] is False
        assert data["bias"]["left_right"] == 0
        assert data["bias"]["objectivity"] == 50

    def test_second_analysis_is_cached(self, client):
        payload = {"text": ARTICLE, "url": "https://example.com/m"}
        send(client, "ANALYZE_ARTICLE", payload)

        data = send(client, "ANALYZE_ARTICLE", payload).json()["data"]
        assert data["cached"] is True

    def test_history_round_trip(self, client):
        send(client, "ANALYZE_ARTICLE", {"text": ARTICLE, "url": "https://example.com/m", "title": "Merger"})

        history = send(client, "GET_ARTICLE_HISTORY").json()["data"]
        assert [r["title"] for r in history] == ["Merger"]

        assert send(client, "DELETE_ARTICLE", "https://example.com/m").json()["data"] == {"success": True}
        assert send(client, "GET_ARTICLE_HISTORY").json()["data"] == []

    def test_cached_analysis_missing_is_null(self, client):
        response = send(client, "GET_CACHED_ANALYSIS", "https://example.com/none")
        assert response.status_code == 200
        assert response.json()["data"] is None

    def test_storage_stats(self, client):
        data = send(client, "GET_STORAGE_STATS").json()["data"]
        assert data["count"] == 0
        assert data["debate_count"] == 0


# =============================================================================
# Error Envelope Tests
# =============================================================================

class TestErrorEnvelope:
    """Errors use {"error": {code, message, details}}"""

    def test_unknown_command(self, client):
        response = send(client, "OPEN_POPUP")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "unknown_command"
        assert error["message"] == "Unknown message type: OPEN_POPUP"

    def test_invalid_payload(self, client):
        response = send(client, "ANALYZE_ARTICLE", {"url": "https://example.com/m"})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "invalid_payload"
        assert error["details"]["info"]["errors"]

    def test_missing_key_for_debate_cards(self, client):
        response = send(client, "GENERATE_DEBATE_CARDS", {"text": ARTICLE, "purpose": "Affirm"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "credential_missing"
        assert error["message"] == API_KEY_MESSAGE
        assert error["details"]["retryable"] is False

    def test_missing_key_for_author_info(self, client):
        response = send(client, "FETCH_AUTHOR_INFO", {"authorName": "Jane Doe"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "credential_missing"
