"""
SeeReal Core - News Bias Analysis Backend
=========================================

Backend core for the SeeReal browser extension:
1. Scoring political bias of news articles via Gemini
2. Caching analyses persistently with TTL and age-based eviction
3. Keeping a bounded history of generated debate cards

The extension talks to this service through a small message API.
"""

__version__ = "1.0.0"
