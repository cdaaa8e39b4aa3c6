"""
Debate Card Generator
=====================

Turns an article into policy-debate evidence cards: a strategic tag, a
citation, a verbatim body excerpt and highlighted phrases.

There is no safe default for fabricated evidence, so every failure is
surfaced to the caller.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..errors import AllModelsFailed, AnalysisFailed, CredentialMissing
from ..llm_client import ModelClient, parse_json_object
from ..schemas import DebateCard

logger = logging.getLogger(__name__)

MAX_DEBATE_CHARS = 15000

DEBATE_FAILED_MESSAGE = "Failed to generate debate cards. Please check your API key and try again."


def build_debate_prompt(
    text: str,
    purpose: str,
    title: str,
    author: Optional[str] = None,
    source: Optional[str] = None,
    date: Optional[str] = None,
    max_chars: int = MAX_DEBATE_CHARS,
) -> str:
    return f"""Act as a competitive policy debate researcher. Generate 2-4 "debate cards" from the following article text that support the following purpose: "{purpose}".

Format Requirements for each card:
1. **Tag**: A single sentence summarizing the argument made by the evidence. Must be punchy and strategic.
2. **Cite**: Use the author "{author or 'Unknown'}", the date "{date or 'n.d.'}", and source "{source or 'Unknown'}". Format as "Author, Date (Source)".
3. **Body**: This MUST be a continuous, EXACT, VERBATIM segment (at least one full paragraph) from the article. DO NOT change a single character, punctuation, or capitalization.
4. **Highlights**: Identify specific phrases or full clauses within the Body that should be emphasized. Highlights must form a coherent, condensed version of the argument that can be spoken aloud. Prefer long, readable phrases and complete sentences over isolated single words.

**CRITICAL**: The "body" will be compared against the original article text. If it is not exact, the card will be rejected.

Article Title: {title}
Article Text: {text[:max_chars]}

Return a JSON object with this structure:
{{
  "cards": [
    {{
      "tag": "Short summary",
      "cite": "Author, Date (Source)",
      "body": "Exact text from article",
      "highlights": ["phrase one", "phrase two"]
    }}
  ]
}}

Only use text from the article. Ensure "body" is an exact match for a segment of the article. Return ONLY valid JSON."""


def _squash(value: str) -> str:
    return " ".join(value.split())


def normalize_cards(raw_cards: Any, article_text: str) -> List[DebateCard]:
    """
    Validate model cards against the article.

    - Cards that fail validation are dropped
    - Bodies must appear verbatim in the article (whitespace-insensitive)
    - Highlights must appear in the body; duplicates are removed in order
    """
    if not isinstance(raw_cards, list):
        return []

    article = _squash(article_text)
    cards: List[DebateCard] = []

    for index, raw in enumerate(raw_cards):
        try:
            card = DebateCard.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Dropping debate card {index}: invalid shape ({e.error_count()} errors)")
            continue

        if not card.body.strip() or _squash(card.body) not in article:
            logger.warning(f"Dropping debate card {index}: body is not a verbatim article excerpt")
            continue

        body = _squash(card.body)
        card.highlights = [h for h in card.highlights if _squash(h) and _squash(h) in body]
        cards.append(card)

    return cards


class DebateCardGenerator:
    """Debate card generation over the debate model fallback chain"""

    def __init__(
        self,
        client: ModelClient,
        model_order: Optional[List[str]] = None,
        max_chars: int = MAX_DEBATE_CHARS,
    ):
        self.client = client
        self.model_order = model_order or client.settings.model_order("debate")
        self.max_chars = max_chars

    async def generate(
        self,
        text: str,
        purpose: str,
        title: str,
        author: Optional[str] = None,
        source: Optional[str] = None,
        date: Optional[str] = None,
    ) -> List[DebateCard]:
        """
        Generate cards for ``purpose`` from ``text``.

        Raises:
            CredentialMissing: no API key configured
            InvalidCredential: the key was rejected
            AnalysisFailed: every model failed or returned malformed output
        """
        if not self.client.has_credential():
            raise CredentialMissing()

        prompt = build_debate_prompt(text, purpose, title, author, source, date, self.max_chars)
        try:
            data: Dict[str, Any] = await self.client.complete(
                prompt,
                self.model_order,
                json_mode=True,
                parse=parse_json_object,
            )
        except AllModelsFailed as e:
            logger.error(f"Error generating debate cards: {e}")
            raise AnalysisFailed(DEBATE_FAILED_MESSAGE, {"cause": str(e.last_error)}) from e

        cards = normalize_cards(data.get("cards"), text)
        logger.info(f"Generated {len(cards)} debate cards for purpose '{purpose[:60]}'")
        return cards
