"""
HTTP transports used by the fetch gateway.

The primary transport is a pooled aiohttp session. The fallback transport
uses curl_cffi browser impersonation, which presents a real browser's TLS
and HTTP/2 fingerprint and header order.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, runtime_checkable

import aiohttp
import structlog
from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession

logger = structlog.get_logger(__name__)

# Headers that curl_cffi derives from the impersonated browser; sending the
# identity's own values would contradict the TLS fingerprint.
_FINGERPRINT_HEADERS = {"user-agent", "sec-ch-ua", "sec-ch-ua-mobile", "sec-ch-ua-platform", "accept-encoding"}


class TransportError(Exception):
    """Transport-level failure (DNS, connect, TLS, reset, timeout)."""


@dataclass
class TransportResponse:
    status: int
    text: str
    final_url: str
    cookies: Dict[str, str] = field(default_factory=dict)


@runtime_checkable
class Transport(Protocol):
    """Performs a single GET. Raises TransportError on transport failure."""

    name: str

    async def get(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        cookies: Dict[str, str],
        proxy: Optional[str],
        timeout: float,
    ) -> TransportResponse: ...

    async def close(self) -> None: ...


class AiohttpTransport:
    """Lightweight primary transport backed by one aiohttp session."""

    name = "aiohttp"

    def __init__(self) -> None:
        self.session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(limit=0, ttl_dns_cache=30, enable_cleanup_closed=True)
            # Cookies belong to identities, not to the shared session.
            self.session = aiohttp.ClientSession(connector=connector, cookie_jar=aiohttp.DummyCookieJar())
        return self.session

    async def get(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        cookies: Dict[str, str],
        proxy: Optional[str],
        timeout: float,
    ) -> TransportResponse:
        session = self._get_session()
        try:
            async with asyncio.timeout(timeout):
                async with session.get(
                    url,
                    headers=headers,
                    cookies=cookies or None,
                    proxy=proxy,
                    allow_redirects=True,
                ) as response:
                    body = await response.read()
                    charset = response.charset or "utf-8"
                    return TransportResponse(
                        status=response.status,
                        text=body.decode(charset, errors="replace"),
                        final_url=str(response.url),
                        cookies={name: morsel.value for name, morsel in response.cookies.items()},
                    )
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None


class CurlCffiTransport:
    """Hardened fallback transport with browser-grade TLS fingerprinting."""

    name = "curl_cffi"

    def __init__(self, impersonate: str = "chrome124") -> None:
        self.impersonate = impersonate
        self._session: Optional[AsyncSession] = None

    def _get_session(self) -> AsyncSession:
        if self._session is None:
            self._session = AsyncSession(impersonate=self.impersonate)
        return self._session

    async def get(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        cookies: Dict[str, str],
        proxy: Optional[str],
        timeout: float,
    ) -> TransportResponse:
        sent_headers = {k: v for k, v in headers.items() if k.lower() not in _FINGERPRINT_HEADERS}
        try:
            if proxy:
                # Proxied requests use fresh sessions
                async with AsyncSession(impersonate=self.impersonate) as session:
                    response = await session.get(
                        url, headers=sent_headers, cookies=cookies, proxy=proxy, timeout=timeout, allow_redirects=True
                    )
            else:
                response = await self._get_session().get(
                    url, headers=sent_headers, cookies=cookies, timeout=timeout, allow_redirects=True
                )
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out after {timeout}s") from e
        except CurlError as e:
            raise TransportError(str(e)) from e

        return TransportResponse(
            status=response.status_code,
            text=response.text or "",
            final_url=str(response.url),
            cookies=dict(response.cookies),
        )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
