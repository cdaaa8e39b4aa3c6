"""
Author and Related-Article Lookup
=================================

Author profiles go through the author model fallback chain and fail loudly.
Related articles are best effort: anything other than a missing key yields
an empty list so the panel never breaks.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..errors import AllModelsFailed, AnalysisFailed, CredentialMissing, InvalidCredential
from ..llm_client import ModelClient, parse_json_object
from ..schemas import AuthorInfo, RelatedArticle

logger = logging.getLogger(__name__)

AUTHOR_FAILED_MESSAGE = "Failed to fetch author information. Please try again."


def build_author_prompt(author_name: str) -> str:
    return f"""Search for information about the journalist/author "{author_name}". Provide:
1. A brief biography (2-3 sentences)
2. Their occupation/role
3. Age (if publicly available)
4. List of 3-5 notable articles they've written (with titles and URLs if available)
5. Any social media or professional profile links (LinkedIn, Twitter, etc.)
6. A URL to a publicly available profile picture of the author (if found)

Format your response as a JSON object with this structure:
{{
  "name": "{author_name}",
  "bio": "brief biography",
  "occupation": "their role/title",
  "age": "age if available, otherwise null",
  "articles": [
    {{"title": "article title", "url": "article url", "source": "publication", "date": "publication date"}}
  ],
  "socialLinks": [
    {{"platform": "platform name", "url": "profile url"}}
  ],
  "imageUrl": "url to author image or null"
}}

If you cannot find specific information, use null for that field. Only include verified, publicly available information. Return only valid JSON."""


def build_related_prompt(title: str, source: Optional[str] = None) -> str:
    from_source = f" from {source}" if source else ""
    return f"""Find 3-5 real, recent news articles that cover the same topic as this article: "{title}"{from_source}.
Try to find articles from different sources with varying political perspectives if possible.

Return a JSON object with this structure:
{{
  "articles": [
    {{
      "title": "Article Title",
      "url": "Article URL",
      "source": "News Source Name",
      "date": "Publication Date (approximate is fine)"
    }}
  ]
}}

Return ONLY valid JSON. If you cannot find specific articles, return an empty array."""


class AuthorLookup:
    """Author profile and related-article lookups"""

    def __init__(self, client: ModelClient):
        self.client = client
        self.author_models = client.settings.model_order("author")
        self.related_models = client.settings.model_order("related")

    async def fetch_author_info(self, author_name: str) -> AuthorInfo:
        """
        Raises:
            CredentialMissing: no API key configured
            InvalidCredential: the key was rejected
            AnalysisFailed: models failed or the profile did not validate
        """
        if not self.client.has_credential():
            raise CredentialMissing()

        try:
            data: Dict[str, Any] = await self.client.complete(
                build_author_prompt(author_name),
                self.author_models,
                json_mode=True,
                parse=parse_json_object,
            )
        except AllModelsFailed as e:
            logger.error(f"Error fetching author info: {e}")
            raise AnalysisFailed(AUTHOR_FAILED_MESSAGE, {"cause": str(e.last_error)}) from e

        if not data.get("name"):
            data["name"] = author_name
        try:
            return AuthorInfo.model_validate(data)
        except ValidationError as e:
            logger.error(f"Author info did not validate: {e}")
            raise AnalysisFailed(AUTHOR_FAILED_MESSAGE) from e

    async def fetch_related_articles(self, title: str, source: Optional[str] = None) -> List[RelatedArticle]:
        """Related coverage; empty on any model or parse failure"""
        if not self.client.has_credential():
            raise CredentialMissing()

        try:
            data: Dict[str, Any] = await self.client.complete(
                build_related_prompt(title, source),
                self.related_models,
                json_mode=True,
                parse=parse_json_object,
            )
        except (AllModelsFailed, InvalidCredential) as e:
            logger.error(f"Error fetching related articles: {e}")
            return []

        articles: List[RelatedArticle] = []
        for item in data.get("articles") or []:
            try:
                articles.append(RelatedArticle.model_validate(item))
            except ValidationError:
                logger.debug(f"Skipping malformed related article: {item!r}")
        return articles
