from __future__ import annotations

import re
from urllib.parse import SplitResult, urlsplit

from .models import ScoreBreakdown


FAVICON_SERVICE_URL = "https://www.google.com/s2/favicons"
FAVICON_SIZE = 128

RECALL_MAX = 40
SEO_MAX = 25
PLATFORM_BASE_MAX = 10
PLATFORM_CAP = 15

SEO_SALT = "seo"
PLATFORM_SALT = "consistent_platforms"

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d+.-]*:")

# Schemes that cannot exist without a host (e.g. "https://" alone is not a URL).
_HOST_REQUIRED_SCHEMES = {"http", "https", "ws", "wss", "ftp"}


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_units(text: str) -> list[int]:
    data = text.encode("utf-16-le", errors="surrogatepass")
    return [int.from_bytes(data[i:i + 2], "little") for i in range(0, len(data), 2)]


def hash_score(text: str, max: int = 100, offset: int = 0) -> int:
    """Fold ``text`` into ``[offset, offset + max)``.

    Rolling ``hash * 31 + code_unit`` over UTF-16 code units, wrapped to a
    signed 32-bit integer after every step so results stay reproducible
    across implementations.
    """
    if max <= 0:
        raise ValueError("max must be a positive integer")

    h = 0
    for unit in _utf16_units(text):
        h = _to_int32(unit + (_to_int32(h << 5) - h))
    return (abs(h) % max) + offset


def _parse_url(raw: str) -> SplitResult | None:
    value = (raw or "").strip()
    if not _SCHEME_RE.match(value):
        return None
    try:
        parsed = urlsplit(value)
        # Accessing .port validates it; a bad port is a parse failure.
        parsed.port
    except ValueError:
        return None
    if parsed.scheme.lower() in _HOST_REQUIRED_SCHEMES and not parsed.hostname:
        return None
    return parsed


def extract_brand_name(raw: str) -> str:
    parsed = _parse_url(raw)
    if parsed is None:
        return (raw or "").lower().split(".")[0]

    hostname = parsed.hostname or ""
    if hostname.startswith("www."):
        hostname = hostname[4:]
    parts = hostname.split(".")
    return parts[0] if len(parts) >= 2 else hostname


def fetch_logo(raw: str) -> str:
    parsed = _parse_url(raw)
    if parsed is None:
        return ""
    return f"{FAVICON_SERVICE_URL}?sz={FAVICON_SIZE}&domain={parsed.hostname or ''}"


def recall_score(url: str) -> int:
    return hash_score(url, RECALL_MAX)


def seo_score(url: str) -> int:
    return hash_score(url + SEO_SALT, SEO_MAX)


def platform_score(url: str, schema_score: int) -> int:
    # Only the sum is capped; the hash base is already below PLATFORM_BASE_MAX.
    return min(PLATFORM_CAP, hash_score(url + PLATFORM_SALT, PLATFORM_BASE_MAX) + schema_score)


def build_breakdown(url: str, brand: str, *, wiki_score: int, schema_score: int) -> ScoreBreakdown:
    recall = recall_score(url)
    seo = seo_score(url)
    platforms = platform_score(url, schema_score)
    return ScoreBreakdown(
        brand=brand,
        recall=recall,
        wiki=wiki_score,
        seo=seo,
        platforms=platforms,
        total=recall + wiki_score + seo + platforms,
    )
