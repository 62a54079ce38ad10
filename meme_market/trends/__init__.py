"""Trend aggregation over external popularity sources.

Provides:
 - Source adapters for search interest, two social-mention feeds, a video
   platform and a short-video platform (all over httpx).
 - A per-source breaker with cooldown-based recovery and a minimum
   inter-call limiter.
 - `TrendAggregator`, the weighted and clamped combination used by the
   price engine.
"""

from .aggregator import TrendAggregator
from .breaker import ProviderBreaker, BreakerStatus
from .cache import TrendCache
from .http import MinIntervalLimiter, build_client
from .keywords import SYMBOL_KEYWORDS, search_terms
from .providers import (
    BaseProvider, GoogleTrendsProvider, TwitterProvider, RedditProvider, YouTubeProvider, TikTokProvider,
    ProviderError, build_providers,
)

__all__ = [
    'TrendAggregator', 'ProviderBreaker', 'BreakerStatus', 'TrendCache', 'MinIntervalLimiter', 'build_client',
    'SYMBOL_KEYWORDS', 'search_terms', 'BaseProvider', 'GoogleTrendsProvider', 'TwitterProvider',
    'RedditProvider', 'YouTubeProvider', 'TikTokProvider', 'ProviderError', 'build_providers',
]
