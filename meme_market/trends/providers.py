from __future__ import annotations

import json
import random
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from meme_market.core.config import ProviderSettings
from meme_market.core.timeutils import Clock, local_hour, now_ms
from .keywords import keyword_popularity


class ProviderError(Exception):
    """A trend source answered with something unusable."""


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def _nonzero(v: float, scale: float) -> float:
    # fallbacks must never be an exact zero
    return v if v != 0.0 else scale * 1e-3


@dataclass
class BaseProvider:
    kind: str
    cfg: ProviderSettings
    client: httpx.AsyncClient
    fallback_range: float = 0.01
    clock: Clock = field(default=now_ms)

    def configured(self) -> bool:
        """False when credentials are missing; the aggregator then uses the
        fallback without counting a failure."""
        return True

    async def fetch(self, symbol: str, terms: List[str]) -> Optional[float]:  # pragma: no cover
        """Real score, or None when the source answered but had no data."""
        raise NotImplementedError

    def fallback(self, rng: random.Random, terms: List[str], quiet: bool = False) -> float:
        r = self.fallback_range / 2 if quiet else self.fallback_range
        return _nonzero(rng.uniform(-r, r), r)


# --------------------------- Google Trends (search interest) ---------------------------
class GoogleTrendsProvider(BaseProvider):
    EXPLORE_URL = "https://trends.google.com/trends/api/explore"
    MULTILINE_URL = "https://trends.google.com/trends/api/widgetdata/multiline"

    @staticmethod
    def _parse(text: str) -> Dict[str, Any]:
        # responses are prefixed with an anti-JSON-hijacking line such as ")]}'"
        start = text.find("{")
        if start < 0:
            raise ProviderError("no JSON body")
        return json.loads(text[start:])

    async def fetch(self, symbol: str, terms: List[str]) -> Optional[float]:
        req = {"comparisonItem": [{"keyword": terms[0], "geo": "", "time": "now 7-d"}], "category": 0, "property": ""}
        r = await self.client.get(self.EXPLORE_URL, params={"hl": "en-US", "tz": "0", "req": json.dumps(req)})
        r.raise_for_status()
        widgets = self._parse(r.text).get("widgets") or []
        series = next((w for w in widgets if w.get("id") == "TIMESERIES"), None)
        if series is None:
            raise ProviderError("explore response has no TIMESERIES widget")
        r2 = await self.client.get(self.MULTILINE_URL, params={
            "hl": "en-US", "tz": "0", "req": json.dumps(series.get("request")), "token": series.get("token"),
        })
        r2.raise_for_status()
        points = (self._parse(r2.text).get("default") or {}).get("timelineData") or []
        values = [float(p["value"][0]) for p in points if p.get("value")]
        if not values:
            return None
        avg = sum(values) / len(values)
        return _clamp((avg - 50.0) / 1000.0, -0.05, 0.05)

    def fallback(self, rng: random.Random, terms: List[str], quiet: bool = False) -> float:
        """Keyword popularity scaled by time of day, plus a little noise."""
        hour = local_hour(self.clock())
        if 16 <= hour <= 22:
            mult = 1.2
        elif 0 <= hour <= 6:
            mult = 0.7
        else:
            mult = 1.0
        base = keyword_popularity(terms[0]) * mult
        return _nonzero(_clamp(base + rng.uniform(-0.01, 0.01), -0.03, 0.05), 0.01)


# --------------------------- Twitter / X recent search ---------------------------
class TwitterProvider(BaseProvider):
    URL = "https://api.twitter.com/2/tweets/search/recent"

    def configured(self) -> bool:
        return bool(self.cfg.bearer_token)

    async def fetch(self, symbol: str, terms: List[str]) -> Optional[float]:
        r = await self.client.get(
            self.URL,
            params={"query": " OR ".join(terms[:2]), "max_results": 10, "tweet.fields": "public_metrics"},
            headers={"Authorization": f"Bearer {self.cfg.bearer_token}"},
        )
        r.raise_for_status()
        tweets = r.json().get("data") or []
        if not tweets:
            return None
        total = 0
        for t in tweets:
            m = t.get("public_metrics") or {}
            total += int(m.get("like_count", 0)) + int(m.get("retweet_count", 0)) + int(m.get("reply_count", 0))
        avg = total / len(tweets)
        return max(-0.02, min(avg / 1000.0, 0.05))


# --------------------------- Reddit subreddit search ---------------------------
class RedditProvider(BaseProvider):
    URL = "https://www.reddit.com/r/{sub}/search.json"

    async def fetch(self, symbol: str, terms: List[str]) -> Optional[float]:
        subs = self.cfg.subreddits or ["memes"]
        # one subreddit per call to stay inside the public rate limit
        r = await self.client.get(
            self.URL.format(sub=subs[0]),
            params={"q": terms[0], "restrict_sr": 1, "sort": "new", "t": "week", "limit": 10},
        )
        r.raise_for_status()
        children = (r.json().get("data") or {}).get("children") or []
        posts = [c.get("data") or {} for c in children]
        if not posts:
            return None
        total = sum(int(p.get("score") or 0) + int(p.get("num_comments") or 0) for p in posts)
        avg = total / len(posts)
        return max(-0.02, min(avg / 500.0, 0.04))


# --------------------------- YouTube data API search ---------------------------
class YouTubeProvider(BaseProvider):
    URL = "https://www.googleapis.com/youtube/v3/search"

    def configured(self) -> bool:
        return bool(self.cfg.api_key)

    async def fetch(self, symbol: str, terms: List[str]) -> Optional[float]:
        since = datetime.fromtimestamp(self.clock() / 1000, tz=timezone.utc) - timedelta(days=7)
        r = await self.client.get(self.URL, params={
            "part": "snippet", "q": terms[0], "type": "video", "maxResults": 25,
            "publishedAfter": since.strftime("%Y-%m-%dT%H:%M:%SZ"), "key": self.cfg.api_key,
        })
        r.raise_for_status()
        count = len(r.json().get("items") or [])
        if count == 0:
            return None
        return max(-0.01, min(count / 100.0, 0.02))


# --------------------------- TikTok tag page (lightweight scrape) ---------------------------
class TikTokProvider(BaseProvider):
    URL = "https://www.tiktok.com/tag/{tag}"
    _VIEWS = re.compile(r'"viewCount"\s*:\s*"?(\d+)')
    _VIDEOS = re.compile(r'"videoCount"\s*:\s*"?(\d+)')

    async def fetch(self, symbol: str, terms: List[str]) -> Optional[float]:
        tag = re.sub(r"\s+", "", terms[0])
        r = await self.client.get(self.URL.format(tag=tag))
        r.raise_for_status()
        views = [int(v) for v in self._VIEWS.findall(r.text)]
        videos = [int(v) for v in self._VIDEOS.findall(r.text)]
        if not views and not videos:
            return None
        score = 0.0
        if views:
            score += min(max(views) / 50_000_000, 0.05)
        if videos:
            score += min(max(videos) / 1000, 0.02)
        return _clamp(score, -0.02, 0.05)


PROVIDER_CLASSES = {
    "google_trends": (GoogleTrendsProvider, 0.03),
    "twitter": (TwitterProvider, 0.015),
    "reddit": (RedditProvider, 0.01),
    "youtube": (YouTubeProvider, 0.01),
    "tiktok": (TikTokProvider, 0.005),
}


def build_providers(trend_cfg, client: httpx.AsyncClient, clock: Clock = now_ms) -> Dict[str, BaseProvider]:
    out: Dict[str, BaseProvider] = {}
    for kind, (cls, fb_range) in PROVIDER_CLASSES.items():
        pcfg: ProviderSettings = getattr(trend_cfg, kind)
        out[kind] = cls(kind, pcfg, client, fallback_range=fb_range, clock=clock)
        if not out[kind].configured():
            logger.info("[trends] {} has no credentials; using fallback scores", kind)
    return out
