"""
Video Summary Client
====================

Short summary clips via Gemini's long-running video model.

Flow:
1. Scene prompt from title + context (fallback chain, template on failure)
2. Start a long-running operation
3. Poll it a bounded number of times
4. Locate the video URI and download the bytes
"""

import asyncio
import base64
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from ..errors import (
    AnalysisFailed,
    CredentialMissing,
    InvalidCredential,
    MalformedModelOutput,
    SeeRealError,
    VideoGenerationTimeout,
)
from ..llm_client import ModelClient, is_invalid_key_error
from ..schemas import VideoResult

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 2000
MAX_URI_SEARCH_DEPTH = 6

VIDEO_PROMPT = """You are writing a single video scene prompt for an AI video generator. The video will be very short (under 15 seconds) and must visually summarize the news article in one clear, cinematic moment.

Given the article title and context below, output ONLY one short paragraph (2-4 sentences) that describes:
- The main subject (people, place, or event) and one key action or moment.
- Visual style: e.g. "cinematic", "documentary", "news broadcast style", "dramatic".
- Setting and mood that match the article (e.g. "tense", "hopeful", "busy city", "quiet room").
No meta-commentary. No "the video shows...". Write as a direct scene description for the video model.

Article title: {title}

Context/summary: {context}

Video prompt:"""


def fallback_video_prompt(title: str) -> str:
    return f"Cinematic, documentary-style short clip about: {title}. Clear, neutral visual summary."


# =============================================================================
# Video URI extraction
# =============================================================================

def _generate_video_response_uri(response: Dict[str, Any]) -> Any:
    return response["generateVideoResponse"]["generatedSamples"][0]["video"]["uri"]


def _generated_videos_uri(response: Dict[str, Any]) -> Any:
    return response["generatedVideos"][0]["video"]["uri"]


VIDEO_URI_EXTRACTORS: Tuple[Callable[[Dict[str, Any]], Any], ...] = (
    _generate_video_response_uri,
    _generated_videos_uri,
)


def _search_uri(node: Any, depth: int) -> Optional[str]:
    if depth < 0:
        return None
    if isinstance(node, dict):
        uri = node.get("uri")
        if isinstance(uri, str) and uri:
            return uri
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        found = _search_uri(child, depth - 1)
        if found:
            return found
    return None


def find_video_uri(response: Any, max_depth: int = MAX_URI_SEARCH_DEPTH) -> Optional[str]:
    """
    Locate the video URI in an operation response.

    Known paths are tried first. Only if none match, a generic search for a
    ``uri`` key runs, limited to ``max_depth`` levels.
    """
    if not isinstance(response, dict):
        return None
    for extractor in VIDEO_URI_EXTRACTORS:
        try:
            uri = extractor(response)
        except (KeyError, IndexError, TypeError):
            continue
        if isinstance(uri, str) and uri:
            return uri
    uri = _search_uri(response, max_depth)
    if uri:
        logger.info("Video URI found by generic search; response shape changed?")
    return uri


class VideoGenerator:
    """Bounded-polling client for the long-running video model"""

    def __init__(
        self,
        client: ModelClient,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.settings = client.settings
        self.sleep = sleep

    @property
    def base_url(self) -> str:
        return self.settings.gemini_base_url.rstrip("/")

    async def generate_prompt(self, title: str, context: str) -> str:
        prompt = VIDEO_PROMPT.format(title=title, context=context[:MAX_CONTEXT_CHARS])
        try:
            text = await self.client.complete(prompt, self.settings.model_order("prompt"))
            return text.strip()
        except InvalidCredential:
            raise
        except SeeRealError as e:
            logger.error(f"Video prompt generation error: {e}")
            return fallback_video_prompt(title)

    async def generate(self, title: str, excerpt: str = "", reasoning: str = "") -> VideoResult:
        """
        Raises:
            CredentialMissing: no API key configured
            InvalidCredential: the key was rejected
            VideoGenerationTimeout: polling budget exhausted
            AnalysisFailed / MalformedModelOutput: the operation failed
        """
        if not self.client.has_credential():
            raise CredentialMissing()

        context = "\n\n".join(part for part in (excerpt, reasoning) if part)
        prompt = await self.generate_prompt(title, context)
        operation = await self.start_operation(prompt)
        response = await self.poll_operation(operation)
        uri = find_video_uri(response)
        if not uri:
            raise MalformedModelOutput("Video response missing video URI")
        return await self.download(uri)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        http = await self.client.get_http_client()
        try:
            response = await http.request(method, url, headers=self.client.auth_headers(), **kwargs)
        except httpx.HTTPError as e:
            raise AnalysisFailed(f"Video request failed: {e}") from e
        if response.status_code >= 400:
            if is_invalid_key_error(response.status_code, response.text):
                raise InvalidCredential("API key not valid. Check the Gemini API key in the extension popup.")
            raise AnalysisFailed(
                f"Video request failed: {response.status_code}",
                {"body": response.text[:500]},
            )
        return response

    async def start_operation(self, prompt: str) -> str:
        """Start generation; returns the operation name"""
        body = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "durationSeconds": "6",
                "aspectRatio": "16:9",
                "resolution": "720p",
            },
        }
        url = f"{self.base_url}/models/{self.settings.video_model}:predictLongRunning"
        response = await self._request("POST", url, json=body)
        name = response.json().get("name")
        if not name or not isinstance(name, str):
            raise MalformedModelOutput("Video start: missing operation name in response")
        logger.info(f"Started video operation {name}")
        return name

    async def poll_operation(self, operation_name: str) -> Dict[str, Any]:
        """Poll until done, at most ``video_max_poll_attempts`` times"""
        url = operation_name if operation_name.startswith("http") else f"{self.base_url}/{operation_name}"
        attempts = self.settings.video_max_poll_attempts

        for attempt in range(attempts):
            data = (await self._request("GET", url)).json()
            error = data.get("error") or {}
            if error.get("message"):
                raise AnalysisFailed(f"Video error: {error['message']}")
            if data.get("done"):
                return data.get("response") or {}
            logger.debug(f"Video operation pending (attempt {attempt + 1}/{attempts})")
            await self.sleep(self.settings.video_poll_interval_seconds)

        raise VideoGenerationTimeout("Video generation timed out", {"attempts": attempts})

    async def download(self, uri: str) -> VideoResult:
        response = await self._request("GET", uri, follow_redirects=True)
        mime_type = response.headers.get("content-type", "").split(";")[0].strip() or "video/mp4"
        return VideoResult(
            video_base64=base64.b64encode(response.content).decode("ascii"),
            mime_type=mime_type,
        )
