"""
Article Extraction Capability
=============================

The page scraper lives in the extension; the core only defines what an
extracted article looks like and the minimum-content rule. Pages that yield
less than MIN_ARTICLE_CHARS of text never reach the coordinator.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, TYPE_CHECKING

from .errors import ExtractionFailed
from .schemas import AnalysisResult

if TYPE_CHECKING:
    from .coordinator import AnalysisCoordinator

logger = logging.getLogger(__name__)

MIN_ARTICLE_CHARS = 100
EXCERPT_CHARS = 300

EXTRACTION_FAILED_MESSAGE = "Could not extract article text from this page"


@dataclass
class ExtractedArticle:
    """Article text and metadata scraped from a page"""
    title: str
    text: str
    url: str
    author: Optional[str] = None
    source: Optional[str] = None
    date: Optional[str] = None
    excerpt: str = ""


class ArticleExtractor(Protocol):
    def extract(self) -> Optional[ExtractedArticle]:
        ...


def make_excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    excerpt = text[:limit].strip()
    return excerpt + ("..." if len(text) > limit else "")


def build_extracted_article(
    title: str,
    text: str,
    url: str,
    author: Optional[str] = None,
    source: Optional[str] = None,
    date: Optional[str] = None,
    min_chars: int = MIN_ARTICLE_CHARS,
) -> Optional[ExtractedArticle]:
    """Package scraped content; None when the text is too short to analyze"""
    text = (text or "").strip()
    if len(text) < min_chars:
        logger.debug(f"Extracted text too short ({len(text)} < {min_chars} chars)")
        return None
    return ExtractedArticle(
        title=(title or "").strip() or "Untitled Article",
        text=text,
        url=url,
        author=(author or "").strip() or None,
        source=(source or "").strip() or None,
        date=date,
        excerpt=make_excerpt(text),
    )


async def analyze_extracted(
    extractor: ArticleExtractor,
    coordinator: "AnalysisCoordinator",
) -> AnalysisResult:
    """
    Extract the current page and analyze it.

    Raises:
        ExtractionFailed: the extractor returned nothing; the coordinator is not called
    """
    article = extractor.extract()
    if article is None:
        raise ExtractionFailed(EXTRACTION_FAILED_MESSAGE)
    return await coordinator.analyze_article(
        text=article.text,
        url=article.url,
        title=article.title,
        author=article.author,
        source=article.source,
    )
