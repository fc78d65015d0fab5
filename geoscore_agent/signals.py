"""
Best-effort external signals for the GEO score.

Each checker returns a fixed point contribution and degrades to 0 on any
failure (network error, proxy downtime, malformed payload). Nothing raised
while talking to a third party ever reaches the caller.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

WIKIPEDIA_API_URL = os.getenv("GEOSCORE_WIKIPEDIA_API_URL", "https://en.wikipedia.org/w/api.php")
SCHEMA_PROXY_BASE = os.getenv("GEOSCORE_SCHEMA_PROXY", "https://cors-anywhere.herokuapp.com")
HTTP_TIMEOUT_MS = max(1, int(os.getenv("GEOSCORE_HTTP_TIMEOUT_MS", "10000")))

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 GeoScoreAgent/1.0"
)

WIKI_POINTS = 20
SCHEMA_POINTS = 5
SCHEMA_MARKER = "schema.org"

# Any async callable taking the raw target URL and returning its markup.
MarkupFetcher = Callable[[str], Awaitable[str]]


@asynccontextmanager
async def _client_scope(client: httpx.AsyncClient | None, timeout_ms: int) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout_ms / 1000, follow_redirects=True) as own:
        yield own


def _search_titles(data: Any) -> list[str]:
    results = data["query"]["search"]
    return [r["title"] for r in results if isinstance(r, dict) and isinstance(r.get("title"), str)]


def titles_match(brand: str, titles: list[str]) -> bool:
    needle = brand.lower()
    for title in titles:
        t = title.lower()
        if needle in t or t in needle:
            return True
    return False


async def check_wikipedia(
    brand: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout_ms: int = HTTP_TIMEOUT_MS,
) -> int:
    if not brand:
        return 0

    params = {
        "action": "query",
        "list": "search",
        "format": "json",
        "origin": "*",
        "srsearch": brand,
    }
    try:
        async with _client_scope(client, timeout_ms) as http:
            res = await http.get(WIKIPEDIA_API_URL, params=params, headers={"user-agent": USER_AGENT})
            res.raise_for_status()
            data = res.json()
        titles = _search_titles(data)
    except Exception as e:
        logger.debug("wikipedia check failed for %r: %s", brand, e)
        return 0

    if not titles:
        return 0
    return WIKI_POINTS if titles_match(brand, titles) else 0


class ProxyMarkupFetcher:
    """Fetch page markup through a public CORS proxy (``<base>/<url>``).

    The default proxy is rate-limited and often down; callers should treat a
    failure as "no signal", which is what check_schema_markup does.
    """

    def __init__(
        self,
        proxy_base: str = SCHEMA_PROXY_BASE,
        *,
        timeout_ms: int = HTTP_TIMEOUT_MS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.proxy_base = proxy_base.rstrip("/")
        self.timeout_ms = timeout_ms
        self._client = client

    def proxied_url(self, url: str) -> str:
        return f"{self.proxy_base}/{url}"

    async def __call__(self, url: str) -> str:
        async with _client_scope(self._client, self.timeout_ms) as http:
            res = await http.get(
                self.proxied_url(url),
                headers={
                    "user-agent": USER_AGENT,
                    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    # cors-anywhere refuses requests without one of these.
                    "x-requested-with": "XMLHttpRequest",
                },
            )
            res.raise_for_status()
            return res.text


async def check_schema_markup(url: str, *, fetcher: MarkupFetcher | None = None) -> int:
    fetch = fetcher or ProxyMarkupFetcher()
    try:
        markup = await fetch(url)
    except Exception as e:
        logger.debug("schema markup check failed for %r: %s", url, e)
        return 0
    return SCHEMA_POINTS if SCHEMA_MARKER in (markup or "") else 0
