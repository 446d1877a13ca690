"""
JobQuarry crawler module - resilient fetching against a blocking job site.

Key Features:
- Identity pool with checkout/checkin and usage/error/age retirement
- aiohttp primary transport, curl_cffi browser-impersonating fallback
- Soft-block detection (403/429/503, implausibly short pages, empty bodies)
- Exponential backoff with jitter
- Adaptive concurrency between a floor and a ceiling
- Egress proxy rotation
"""

from .concurrency import AdaptiveConcurrencyLimiter
from .gateway import FetchGateway, classify_response
from .identity import Identity, IdentityPool, should_retire
from .proxies import ProxyRotator
from .transports import AiohttpTransport, CurlCffiTransport, Transport, TransportError, TransportResponse
from .user_agents import HeaderProfileFactory

__all__ = [
    "AdaptiveConcurrencyLimiter",
    "AiohttpTransport",
    "CurlCffiTransport",
    "FetchGateway",
    "HeaderProfileFactory",
    "Identity",
    "IdentityPool",
    "ProxyRotator",
    "Transport",
    "TransportError",
    "TransportResponse",
    "classify_response",
    "should_retire",
]
