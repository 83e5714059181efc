"""Token and discovery-event models shared by discovery, scoring and execution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class Token(BaseModel):
    """On-chain identity of a token mint."""

    address: str = Field(..., description="Mint address.")
    symbol: str = "UNKNOWN"
    name: str = "Unknown Token"
    decimals: int = 9
    mint_authority: Optional[str] = None
    freeze_authority: Optional[str] = None
    is_mutable: bool = True
    supply: float = 0.0


class SocialMetrics(BaseModel):
    twitter_followers: int = 0
    tweet_velocity: float = 0.0
    telegram_members: int = 0


class TokenMetadata(BaseModel):
    """Market snapshot of a token at discovery time. Prices are in USD."""

    token: Token
    price: float = 0.0
    liquidity: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    holders: int = 0
    top10_holder_percent: float = 0.0
    is_mint_revoked: bool = False
    is_freeze_revoked: bool = False
    is_liquidity_burned: bool = False
    social: Optional[SocialMetrics] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def address(self) -> str:
        return self.token.address


class DiscoveryEvent(BaseModel):
    """A newly listed token announced by a discovery source."""

    token: TokenMetadata
    source: str = Field(default="pumpfun", description="pumpfun, dex or social.")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
