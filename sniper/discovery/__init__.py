"""New-token discovery: event models, bounded channel, pump.fun feed."""
from .channel import DiscoveryChannel, DiscoverySource
from .models import DiscoveryEvent, SocialMetrics, Token, TokenMetadata
from .pumpfun import PumpFunFeed

__all__ = [
    "DiscoveryChannel",
    "DiscoverySource",
    "DiscoveryEvent",
    "SocialMetrics",
    "Token",
    "TokenMetadata",
    "PumpFunFeed",
]
