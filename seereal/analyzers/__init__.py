"""
Analyzers Module
================

Model-backed operations built on the shared ModelClient:
- BiasAnalyzer: bias scoring with neutral fallback
- DebateCardGenerator: verbatim evidence cards
- AuthorLookup: author profiles and related coverage
- VideoGenerator: short summary clips (bounded polling)
"""

from .bias import BiasAnalyzer, neutral_bias_score, parse_bias_response, MAX_ANALYSIS_CHARS
from .debate import DebateCardGenerator, normalize_cards
from .author import AuthorLookup
from .video import VideoGenerator, find_video_uri

__all__ = [
    "BiasAnalyzer",
    "neutral_bias_score",
    "parse_bias_response",
    "MAX_ANALYSIS_CHARS",
    "DebateCardGenerator",
    "normalize_cards",
    "AuthorLookup",
    "VideoGenerator",
    "find_video_uri",
]
