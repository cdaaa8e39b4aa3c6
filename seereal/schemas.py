"""
Pydantic Schemas for SeeReal Core
=================================

Records persisted by the store, payloads accepted by the message API and
results returned to the extension.

Bias metrics are clamped at ingestion:
- Bipolar metrics (left_right, auth_lib, nat_glob, tone_calm_urgent): [-100, 100], default 0
- Unipolar metrics (objectivity, sensationalism, clarity, confidence): [0, 100], default 50
Anything that is not a finite number (or numeric string) takes the default.
"""

import math
from typing import List, Optional, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum
from datetime import datetime


# =============================================================================
# BIAS SCORE
# =============================================================================

BIPOLAR_FIELDS = ("left_right", "auth_lib", "nat_glob", "tone_calm_urgent")
UNIPOLAR_FIELDS = ("objectivity", "sensationalism", "clarity", "confidence")

BIPOLAR_RANGE = (-100.0, 100.0)
UNIPOLAR_RANGE = (0.0, 100.0)
BIPOLAR_DEFAULT = 0.0
UNIPOLAR_DEFAULT = 50.0
DEFAULT_REASONING = "Analysis unavailable"


def clamp_metric(value: Any, low: float, high: float, default: float) -> float:
    """
    Clamp a raw metric into [low, high].

    Numeric strings are parsed. Booleans, NaN, infinities, None and anything
    else non-numeric yield the default.
    """
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if not isinstance(value, (int, float)):
        return default
    value = float(value)
    if not math.isfinite(value):
        return default
    return max(low, min(high, value))


class BiasScore(BaseModel):
    """Seven bounded bias metrics plus confidence and a short reasoning"""
    left_right: float = Field(BIPOLAR_DEFAULT, description="-100 far left .. 100 far right")
    auth_lib: float = Field(BIPOLAR_DEFAULT, description="-100 authoritarian .. 100 libertarian")
    nat_glob: float = Field(BIPOLAR_DEFAULT, description="-100 nationalist .. 100 globalist")
    objectivity: float = Field(UNIPOLAR_DEFAULT, description="0 opinionated .. 100 factual")
    sensationalism: float = Field(UNIPOLAR_DEFAULT, description="0 restrained .. 100 clickbait")
    clarity: float = Field(UNIPOLAR_DEFAULT, description="0 opaque .. 100 clear")
    tone_calm_urgent: float = Field(BIPOLAR_DEFAULT, description="-100 calm .. 100 urgent")
    confidence: float = Field(UNIPOLAR_DEFAULT, description="0-100 model confidence")
    reasoning: str = DEFAULT_REASONING

    @field_validator(*BIPOLAR_FIELDS, mode="before")
    @classmethod
    def _clamp_bipolar(cls, value: Any) -> float:
        return clamp_metric(value, *BIPOLAR_RANGE, BIPOLAR_DEFAULT)

    @field_validator(*UNIPOLAR_FIELDS, mode="before")
    @classmethod
    def _clamp_unipolar(cls, value: Any) -> float:
        return clamp_metric(value, *UNIPOLAR_RANGE, UNIPOLAR_DEFAULT)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _coerce_reasoning(cls, value: Any) -> str:
        if value is None:
            return DEFAULT_REASONING
        return str(value)


# =============================================================================
# ARTICLE RECORDS
# =============================================================================

class AnalysisRecord(BaseModel):
    """One cached analysis, keyed by article URL"""
    url: str
    title: str = "Untitled Article"
    author: Optional[str] = None
    source: Optional[str] = None
    bias: BiasScore
    timestamp: int = Field(..., description="Epoch milliseconds")
    cached: bool = False


class ArticleMetadata(BaseModel):
    """Lightweight projection of an AnalysisRecord for list views"""
    url: str
    title: str
    author: Optional[str] = None
    source: Optional[str] = None
    timestamp: int
    left_right: float
    objectivity: float
    confidence: float

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> "ArticleMetadata":
        return cls(
            url=record.url,
            title=record.title,
            author=record.author,
            source=record.source,
            timestamp=record.timestamp,
            left_right=record.bias.left_right,
            objectivity=record.bias.objectivity,
            confidence=record.bias.confidence,
        )


class AnalysisResult(BaseModel):
    """Result of ANALYZE_ARTICLE / GET_CACHED_ANALYSIS"""
    bias: BiasScore
    cached: bool
    timestamp: int


class StorageStats(BaseModel):
    """Storage usage summary"""
    count: int = 0
    oldest_timestamp: Optional[int] = None
    newest_timestamp: Optional[int] = None
    estimated_size_bytes: int = 0
    debate_count: int = 0


# =============================================================================
# DEBATE CARDS
# =============================================================================

class DebateCard(BaseModel):
    """Verbatim excerpt plus citation, tag and highlighted phrases"""
    tag: str
    cite: str = ""
    body: str
    highlights: List[str] = Field(default_factory=list)

    @field_validator("highlights", mode="before")
    @classmethod
    def _dedupe_highlights(cls, value: Any) -> List[str]:
        if not value:
            return []
        if isinstance(value, str):
            value = [value]
        seen: List[str] = []
        for item in value:
            if isinstance(item, str) and item and item not in seen:
                seen.append(item)
        return seen


class DebateRecord(BaseModel):
    """One batch of generated debate cards kept in history"""
    id: str
    url: str = "unknown"
    article_title: str
    purpose: str
    cards: List[DebateCard] = Field(default_factory=list)
    timestamp: int


class DebateCardsResult(BaseModel):
    cards: List[DebateCard] = Field(default_factory=list)


# =============================================================================
# AUTHOR / RELATED / VIDEO
# =============================================================================

class AuthorArticle(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    source: Optional[str] = None
    date: Optional[str] = None


class SocialLink(BaseModel):
    platform: Optional[str] = None
    url: Optional[str] = None


class AuthorInfo(BaseModel):
    """Author profile as returned by the model (camelCase keys accepted)"""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    bio: Optional[str] = None
    occupation: Optional[str] = None
    age: Optional[str] = None
    articles: List[AuthorArticle] = Field(default_factory=list)
    social_links: List[SocialLink] = Field(default_factory=list, alias="socialLinks")
    image_url: Optional[str] = Field(None, alias="imageUrl")

    @field_validator("articles", "social_links", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return value or []

    @field_validator("age", mode="before")
    @classmethod
    def _age_to_str(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)


class RelatedArticle(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    source: Optional[str] = None
    date: Optional[str] = None


class AuthorInfoResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    author_info: AuthorInfo = Field(..., alias="authorInfo")


class RelatedArticlesResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    related_articles: List[RelatedArticle] = Field(default_factory=list, alias="relatedArticles")


class VideoResult(BaseModel):
    video_base64: str
    mime_type: str = "video/mp4"


# =============================================================================
# MESSAGE API
# =============================================================================

class CommandType(str, Enum):
    """Message names accepted from the extension"""
    ANALYZE_ARTICLE = "ANALYZE_ARTICLE"
    GET_CACHED_ANALYSIS = "GET_CACHED_ANALYSIS"
    GET_ARTICLE_HISTORY = "GET_ARTICLE_HISTORY"
    GET_ARTICLE_METADATA = "GET_ARTICLE_METADATA"
    GET_STORAGE_STATS = "GET_STORAGE_STATS"
    DELETE_ARTICLE = "DELETE_ARTICLE"
    CLEAR_HISTORY = "CLEAR_HISTORY"
    GET_DEBATE_HISTORY = "GET_DEBATE_HISTORY"
    DELETE_DEBATE_RECORD = "DELETE_DEBATE_RECORD"
    GENERATE_DEBATE_CARDS = "GENERATE_DEBATE_CARDS"
    FETCH_AUTHOR_INFO = "FETCH_AUTHOR_INFO"
    FETCH_RELATED_ARTICLES = "FETCH_RELATED_ARTICLES"
    GENERATE_VIDEO = "GENERATE_VIDEO"


class CommandMessage(BaseModel):
    """Envelope posted by the extension: {type, payload}"""
    type: str
    payload: Any = None


class AnalyzeArticlePayload(BaseModel):
    text: str = Field(..., min_length=1)
    url: str = "unknown"
    title: str = "Untitled Article"
    author: Optional[str] = None
    source: Optional[str] = None


class GenerateDebateCardsPayload(BaseModel):
    text: str = Field(..., min_length=1)
    purpose: str = Field(..., min_length=1)
    title: str = "Untitled Article"
    author: Optional[str] = None
    source: Optional[str] = None
    date: Optional[str] = None
    url: Optional[str] = None


class AuthorInfoPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    author_name: str = Field(..., min_length=1, alias="authorName")


class RelatedArticlesPayload(BaseModel):
    title: str = Field(..., min_length=1)
    source: Optional[str] = None


class GenerateVideoPayload(BaseModel):
    title: str = Field(..., min_length=1)
    excerpt: str = ""
    reasoning: str = ""


class HealthResponse(BaseModel):
    status: str
    version: str
    llm_configured: bool
    timestamp: datetime


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Any = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
