"""
Normalization of untrusted care guide URL candidates and product identifiers
"""

import ipaddress
import re
from typing import Iterable, List, Optional
from urllib.parse import quote, urlsplit

from care_guides.signing import QueryParameters

MAX_GUIDES = 50
MAX_PRODUCT_IDS = 50

GUIDE_PARAM = "guide"
GUIDES_PARAM = "guides"

PRODUCT_GID_PREFIX = "gid://shopify/Product/"
_PRODUCT_GID_RE = re.compile(r"^(?:gid://shopify/Product/)?(\d+)$")

# lower case DNS labels (urlsplit lower-cases hostname), dotted IPv4 included
_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)*\.?$"
)
_UNSAFE_URL_CHARS = set('<>"`{}|\\^')


def _values(params: QueryParameters, name: str) -> List[str]:
    value = params.get(name)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def collect_candidates(params: QueryParameters) -> List[str]:
    """
    Merge the repeated 'guide' field and the comma separated 'guides' field.

    Every 'guide' value comes first (in received order), followed by each
    comma separated piece of every 'guides' value.
    """
    candidates = _values(params, GUIDE_PARAM)
    for joined in _values(params, GUIDES_PARAM):
        candidates.extend(joined.split(","))
    return candidates


def _valid_host(hostname: str) -> bool:
    if _HOSTNAME_RE.match(hostname):
        return True
    # IPv6 literal, urlsplit strips the brackets
    try:
        ipaddress.IPv6Address(hostname)
    except ValueError:
        return False
    return True


def is_guide_url(candidate: str) -> bool:
    for ch in candidate:
        if ch in _UNSAFE_URL_CHARS or ch.isspace() or ord(ch) < 32 or ord(ch) == 127:
            return False
    try:
        parts = urlsplit(candidate)
        # raises on a non-numeric or out of range port
        parts.port
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not parts.netloc or not parts.hostname:
        return False
    return _valid_host(parts.hostname)


def normalize_guides(candidates: Iterable[str], limit: int = MAX_GUIDES) -> List[str]:
    """
    Trim, validate, deduplicate and cap a list of candidate URLs.

    Anything that is not an absolute http(s) URL is silently dropped so one bad
    entry never blanks the whole list.
    """
    guides = []
    seen = set()
    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        url = candidate.strip()
        if not url or url in seen or not is_guide_url(url):
            continue
        seen.add(url)
        guides.append(url)
        if len(guides) >= limit:
            break
    return guides


def article_url(storefront_base: str, blog_handle: str, article_handle: str) -> Optional[str]:
    if not blog_handle or not article_handle:
        return None
    base = storefront_base.rstrip("/")
    return f"{base}/blogs/{quote(blog_handle, safe='')}/{quote(article_handle, safe='')}"


def parse_product_ids(values: Iterable[str], limit: int = MAX_PRODUCT_IDS) -> List[str]:
    """
    Turn numeric ids or Product GIDs (comma separated and/or repeated) into a
    deduplicated list of Product GIDs, ignoring anything else.
    """
    gids = []
    for value in values:
        for piece in value.split(","):
            match = _PRODUCT_GID_RE.match(piece.strip())
            if not match:
                continue
            gid = PRODUCT_GID_PREFIX + match.group(1)
            if gid not in gids:
                gids.append(gid)
            if len(gids) >= limit:
                return gids
    return gids
