"""
Browser header profiles for identity rotation.

Each identity carries one profile for its whole life: a desktop user agent,
the client hints a real browser with that user agent would send, a locale
and a viewport width. Request-specific headers (referer, sec-fetch-site) are
layered on per request.
"""

from __future__ import annotations

import random
import re
from typing import Dict, List, Optional

SITE_ORIGIN = "https://www.simplyhired.com"

_CHROME_VERSION = re.compile(r"Chrome/(\d+)")

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"


class HeaderProfileFactory:
    """
    Builds realistic desktop header profiles.

    Features:
    - Chrome, Edge and Firefox on Windows and macOS
    - sec-ch-ua client hints consistent with the Chrome major version
    - Locale and viewport variation
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

        # Desktop browsers (Chrome first, most common)
        self.desktop_agents: List[str] = [
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:130.0) Gecko/20100101 Firefox/130.0",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:128.0) Gecko/20100101 Firefox/128.0",
        ]
        self.locales = ["en-US,en;q=0.9", "en-GB,en;q=0.9", "en;q=0.9"]
        self.viewport_widths = [1920, 1536, 1440, 1366, 2560]

    def create_profile(self) -> Dict[str, str]:
        """Return the static header set for a new identity."""
        user_agent = self._rng.choice(self.desktop_agents)
        headers = {
            "user-agent": user_agent,
            "accept": HTML_ACCEPT,
            "accept-language": self._rng.choice(self.locales),
            "accept-encoding": "gzip, deflate, br",
            "cache-control": "max-age=0",
            "upgrade-insecure-requests": "1",
            "viewport-width": str(self._rng.choice(self.viewport_widths)),
        }
        headers.update(client_hints(user_agent))
        return headers


def platform_for(user_agent: str) -> str:
    if "Windows" in user_agent:
        return '"Windows"'
    if "Macintosh" in user_agent:
        return '"macOS"'
    return '"Linux"'


def client_hints(user_agent: str) -> Dict[str, str]:
    """sec-ch-ua headers for Chromium browsers. Firefox sends none."""
    match = _CHROME_VERSION.search(user_agent)
    if not match:
        return {}
    version = match.group(1)
    brand = "Microsoft Edge" if "Edg/" in user_agent else "Google Chrome"
    return {
        "sec-ch-ua": f'"Chromium";v="{version}", "{brand}";v="{version}", "Not_A Brand";v="24"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": platform_for(user_agent),
    }


def request_headers(profile: Dict[str, str], referer: Optional[str], *, data_request: bool = False) -> Dict[str, str]:
    """Layer navigation headers for one request on top of an identity profile."""
    headers = dict(profile)
    same_site = bool(referer and referer.startswith(SITE_ORIGIN))
    if data_request:
        headers["accept"] = "*/*"
        headers["x-nextjs-data"] = "1"
        headers["sec-fetch-dest"] = "empty"
        headers["sec-fetch-mode"] = "cors"
        headers["sec-fetch-site"] = "same-origin"
        headers.pop("upgrade-insecure-requests", None)
    else:
        headers["sec-fetch-dest"] = "document"
        headers["sec-fetch-mode"] = "navigate"
        headers["sec-fetch-user"] = "?1"
        headers["sec-fetch-site"] = "same-origin" if same_site else ("cross-site" if referer else "none")
    if referer:
        headers["referer"] = referer
    return headers
