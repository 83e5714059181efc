"""Sentiment source with a per-token TTL cache.

No social feed is wired in, so every lookup resolves to a neutral score;
the cache keeps repeated lookups for the same mint cheap once a real fetcher
replaces ``_fetch``.
"""

from __future__ import annotations

import time

from sniper.config import SentimentConfig
from sniper.discovery.models import TokenMetadata
from sniper.scoring.base import SentimentResult


class CachedSentiment:
    def __init__(self, cfg: SentimentConfig) -> None:
        self.cfg = cfg
        self._cache: dict[str, tuple[float, SentimentResult]] = {}

    async def sentiment(self, token: TokenMetadata) -> SentimentResult:
        if not self.cfg.enabled:
            return SentimentResult()

        now = time.monotonic()
        cached = self._cache.get(token.address)
        if cached is not None and now - cached[0] < self.cfg.cache_ttl:
            return cached[1]

        result = await self._fetch(_keywords(token))
        self._cache[token.address] = (now, result)
        return result

    async def _fetch(self, keywords: list[str]) -> SentimentResult:
        return SentimentResult(score=0.0, mentions=0, keywords=keywords)


def _keywords(token: TokenMetadata) -> list[str]:
    symbol = token.token.symbol.lower()
    first_word = token.token.name.lower().split(" ")[0] if token.token.name else symbol
    return [symbol, first_word, f"${symbol}"]
