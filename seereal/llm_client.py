"""
LLM Client for Gemini
=====================

Supports:
- Google Gemini REST API (generateContent)

Used for:
- Bias scoring
- Debate card generation
- Author / related-article lookup
- Video scene prompts

Every call goes through an ordered model fallback chain. A rejected API key
aborts the chain at once since no other model can succeed with it.
"""

import json
import logging
import httpx
import hashlib
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field

from .config import Settings, get_settings
from .errors import (
    AllModelsFailed,
    CredentialMissing,
    InvalidCredential,
    MalformedModelOutput,
)

logger = logging.getLogger(__name__)

INVALID_KEY_MARKERS = ("API key not valid", "API_KEY_INVALID")

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


# =============================================================================
# Robust JSON Parser
# =============================================================================

def strip_code_fences(content: str) -> str:
    """Remove a leading ```json / ``` fence and its trailing ``` fence."""
    stripped = (content or "").strip()
    if stripped.startswith("```"):
        stripped = _FENCE_OPEN.sub("", stripped, count=1)
        stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped


def parse_json_robust(content: str) -> Tuple[Optional[Any], bool, str]:
    """
    Parse JSON content robustly, handling common LLM output issues.

    Handles:
    - Empty content
    - Markdown code fences (```json...```)
    - Prefix or trailing text around a JSON object (takes the largest {...} block)

    Args:
        content: Raw content from LLM

    Returns:
        Tuple of (parsed_value, success, error_message)
    """
    if not content or not content.strip():
        return None, False, "Empty content"

    content = strip_code_fences(content)

    try:
        return json.loads(content), True, ""
    except json.JSONDecodeError as e:
        first_error = str(e)

    # Find top-level {...} blocks
    brace_blocks = []
    depth = 0
    start_idx = None

    for i, char in enumerate(content):
        if char == '{':
            if depth == 0:
                start_idx = i
            depth += 1
        elif char == '}' and depth > 0:
            depth -= 1
            if depth == 0 and start_idx is not None:
                brace_blocks.append(content[start_idx:i + 1])
                start_idx = None

    for block in sorted(brace_blocks, key=len, reverse=True):
        try:
            return json.loads(block), True, ""
        except json.JSONDecodeError:
            continue

    return None, False, first_error


def parse_json_object(content: str) -> Dict[str, Any]:
    """Parse model output into a JSON object or raise MalformedModelOutput."""
    data, ok, error = parse_json_robust(content)
    if not ok:
        raise MalformedModelOutput(f"Model output is not valid JSON: {error}")
    if not isinstance(data, dict):
        raise MalformedModelOutput(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    return data


def safe_log_content(content: str, max_chars: int = 120) -> str:
    """
    Create a safe log representation of content.

    Args:
        content: Content to log
        max_chars: Maximum characters to show

    Returns:
        Safe log string with length and hash
    """
    if not content:
        return "(empty)"

    content_hash = hashlib.sha256(content.encode()).hexdigest()[:12]
    preview = content[:max_chars].replace('\n', ' ')

    return f"len={len(content)} hash={content_hash} preview='{preview}...'"


# =============================================================================
# Response shape extractors
# =============================================================================

def _gemini_text(data: Dict[str, Any]) -> Optional[str]:
    parts = data["candidates"][0]["content"]["parts"]
    texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    return "".join(texts) if texts else None


def _openai_text(data: Dict[str, Any]) -> Optional[str]:
    content = data["choices"][0]["message"]["content"]
    return content if isinstance(content, str) else None


def _plain_text(data: Dict[str, Any]) -> Optional[str]:
    text = data["text"]
    return text if isinstance(text, str) else None


# Tried in order; no generic search for text.
RESPONSE_TEXT_EXTRACTORS: Tuple[Callable[[Dict[str, Any]], Optional[str]], ...] = (
    _gemini_text,
    _openai_text,
    _plain_text,
)


def extract_response_text(data: Any) -> Optional[str]:
    """Return the completion text from a known response shape, or None."""
    if not isinstance(data, dict):
        return None
    for extractor in RESPONSE_TEXT_EXTRACTORS:
        try:
            text = extractor(data)
        except (KeyError, IndexError, TypeError):
            continue
        if text is not None:
            return text
    return None


def is_invalid_key_error(status_code: Optional[int], body: str) -> bool:
    if status_code == 401:
        return True
    return any(marker in (body or "") for marker in INVALID_KEY_MARKERS)


@dataclass
class LLMResponse:
    """Response from LLM"""
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    raw_response: Optional[Dict] = None


class ModelClient:
    """
    Gemini client with an ordered model fallback chain.

    Usage:
        client = ModelClient()
        text = await client.complete("Analyze this text...", ["gemini-2.5-flash", "gemini-2.0-flash"])
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._owns_client = http_client is None

    def has_credential(self) -> bool:
        return self.settings.has_gemini_key

    def auth_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": (self.settings.gemini_api_key or "").strip(),
        }

    async def get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.llm_timeout)
            self._owns_client = True
        return self._http_client

    async def close(self):
        """Close HTTP client"""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def generate(
        self,
        model: str,
        prompt: str,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResponse:
        """
        Call a single Gemini model.

        Raises:
            CredentialMissing: no API key configured
            InvalidCredential: the API key was rejected
            MalformedModelOutput: response has no recognizable text
            httpx.HTTPError: transport or non-credential HTTP failures
        """
        if not self.has_credential():
            raise CredentialMissing()

        generation_config: Dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if generation_config:
            payload["generationConfig"] = generation_config

        url = f"{self.settings.gemini_base_url.rstrip('/')}/models/{model}:generateContent"
        client = await self.get_http_client()

        response = await client.post(url, json=payload, headers=self.auth_headers())
        if response.status_code >= 400:
            body = response.text
            if is_invalid_key_error(response.status_code, body):
                raise InvalidCredential(
                    "API key not valid. Check the Gemini API key in the extension popup.",
                    {"model": model, "status": response.status_code},
                )
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedModelOutput(f"{model} returned a non-JSON body: {e}")

        content = extract_response_text(data)
        if content is None:
            block_reason = None
            if isinstance(data, dict):
                block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise MalformedModelOutput(
                f"{model} response missing text" + (f" (blocked: {block_reason})" if block_reason else "")
            )

        usage_metadata = (data.get("usageMetadata") or {}) if isinstance(data, dict) else {}
        return LLMResponse(
            content=content,
            model=model,
            usage={
                "input_tokens": usage_metadata.get("promptTokenCount", 0),
                "output_tokens": usage_metadata.get("candidatesTokenCount", 0),
            },
            raw_response=data,
        )

    async def complete(
        self,
        prompt: str,
        model_order: Sequence[str],
        json_mode: bool = False,
        parse: Optional[Callable[[str], Any]] = None,
    ) -> Any:
        """
        Run the prompt through the fallback chain.

        Returns the first non-empty response text, or ``parse(text)`` when a
        parser is given. A MalformedModelOutput raised by the parser counts as
        that model's failure and the chain moves on.

        Raises:
            CredentialMissing: before any network call when no key is set
            InvalidCredential: on the first rejected-key response
            AllModelsFailed: when every model failed
        """
        if not self.has_credential():
            raise CredentialMissing()

        errors: List[Tuple[str, BaseException]] = []
        last_error: Optional[BaseException] = None

        for model in model_order:
            try:
                response = await self.generate(model, prompt, json_mode=json_mode)
                content = response.content
                if not content or not content.strip():
                    raise MalformedModelOutput(f"{model} returned an empty response")
                logger.debug(
                    f"{model} response ({response.usage.get('input_tokens', 0)} in, "
                    f"{response.usage.get('output_tokens', 0)} out tokens): {safe_log_content(content)}"
                )
                if parse is None:
                    return content
                return parse(content)
            except InvalidCredential:
                logger.error(f"Model {model} rejected the API key; aborting fallback chain")
                raise
            except Exception as e:
                if isinstance(e, httpx.HTTPStatusError):
                    logger.warning(
                        f"Model {model} failed: {e.response.status_code} - "
                        f"{safe_log_content(e.response.text)}"
                    )
                else:
                    logger.warning(f"Model {model} failed: {e}")
                errors.append((model, e))
                last_error = e

        raise AllModelsFailed(last_error, errors)
