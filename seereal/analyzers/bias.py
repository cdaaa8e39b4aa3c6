"""
Bias Analyzer
=============

Scores the political and rhetorical bias of an article with Gemini.

Role:
- Build the scoring prompt from a bounded prefix of the article
- Run it through the bias model fallback chain
- Clamp every metric into its declared range

Without an API key the analyzer degrades to a fixed neutral score instead of
failing; no network call is made in that case.
"""

import logging
from typing import List, Optional

from ..llm_client import ModelClient, parse_json_object
from ..schemas import BiasScore

logger = logging.getLogger(__name__)

MAX_ANALYSIS_CHARS = 15000

NEUTRAL_REASONING = "AI analysis unavailable. Add GEMINI_API_KEY to enable."

BIAS_PROMPT = """Analyze this article and return metrics people care about. Return ONLY valid JSON with these exact keys (no markdown, no code blocks):
{
  "left_right": number (-100 = far left, 0 = center, 100 = far right),
  "auth_lib": number (-100 = authoritarian, 0 = balanced, 100 = libertarian),
  "nat_glob": number (-100 = nationalist, 0 = balanced, 100 = globalist),
  "objectivity": number (0 = very opinionated, 100 = very factual and neutral),
  "sensationalism": number (0 = dry/restrained, 100 = highly sensational/clickbait),
  "clarity": number (0 = confusing or opaque, 100 = very clear and well-structured),
  "tone_calm_urgent": number (-100 = very calm/measured, 100 = very urgent/alarming),
  "confidence": number (0-100, how confident you are in this analysis),
  "reasoning": string (concise, punchy summary; max 2 sentences)
}

Article text:
"""


def neutral_bias_score() -> BiasScore:
    """Fixed score returned when analysis is unavailable"""
    return BiasScore(
        left_right=0,
        auth_lib=0,
        nat_glob=0,
        objectivity=50,
        sensationalism=50,
        clarity=50,
        tone_calm_urgent=0,
        confidence=0,
        reasoning=NEUTRAL_REASONING,
    )


def parse_bias_response(content: str) -> BiasScore:
    """Parse model output into a clamped BiasScore (raises MalformedModelOutput)"""
    return BiasScore.model_validate(parse_json_object(content))


def build_bias_prompt(text: str, max_chars: int = MAX_ANALYSIS_CHARS) -> str:
    return BIAS_PROMPT + text[:max_chars]


class BiasAnalyzer:
    """Bias scoring over the model fallback chain"""

    def __init__(
        self,
        client: ModelClient,
        model_order: Optional[List[str]] = None,
        max_chars: int = MAX_ANALYSIS_CHARS,
    ):
        self.client = client
        self.model_order = model_order or client.settings.model_order("bias")
        self.max_chars = max_chars

    async def analyze(self, text: str) -> BiasScore:
        """
        Score an article.

        Returns the neutral score when no credential is configured.

        Raises:
            InvalidCredential: the key was rejected
            AllModelsFailed: every model failed or returned malformed output
        """
        if not self.client.has_credential():
            logger.info("No Gemini API key configured; returning neutral bias score")
            return neutral_bias_score()

        prompt = build_bias_prompt(text, self.max_chars)
        try:
            score = await self.client.complete(
                prompt,
                self.model_order,
                json_mode=True,
                parse=parse_bias_response,
            )
        except Exception as e:
            logger.error(f"Bias analysis failed: {e}")
            raise

        return score
