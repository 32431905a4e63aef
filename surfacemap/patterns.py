# surfacemap/patterns.py
"""
URL pattern derivation for near-duplicate grouping.

    http://t.example/item/42?b=2&a=1  ->  http://t.example/item/{num}?a=&b=

Path segments:
    pure digits                -> {num}
    UUID                       -> {uuid}
    hex blob (16+ chars)       -> {hash}
    prefix-123 / prefix_123.x  -> prefix-{num} / prefix_{num}.x
Query: keys sorted ascending (deduplicated), values stripped.
"""

import hashlib
import re
from typing import List
from urllib.parse import unquote_plus, urlsplit

_DIGITS_RE = re.compile(r"^\d+$")
_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_HEX_RE = re.compile(r"^[0-9a-fA-F]{16,}$")
_SUFFIX_NUM_RE = re.compile(r"^(.+?)([-_])(\d+)(\.\w+)?$")


def _segment_placeholder(segment: str) -> str:
    if not segment:
        return segment
    if _DIGITS_RE.match(segment):
        return "{num}"
    if _UUID_RE.match(segment):
        return "{uuid}"
    if _HEX_RE.match(segment):
        return "{hash}"
    m = _SUFFIX_NUM_RE.match(segment)
    if m:
        return f"{m.group(1)}{m.group(2)}{{num}}{m.group(4) or ''}"
    return segment


def pattern_path(path: str) -> str:
    """Replace variable path segments with placeholders."""
    return "/".join(_segment_placeholder(s) for s in path.split("/"))


def query_keys(query_or_url: str) -> List[str]:
    """
    Parameter names of a query string (or of a full URL), in order of appearance,
    without duplicates. Keys are percent-decoded.
    """
    query = query_or_url
    if "://" in query_or_url:
        query = urlsplit(query_or_url).query
    keys: List[str] = []
    for part in query.split("&"):
        if not part:
            continue
        key = unquote_plus(part.split("=", 1)[0])
        if key and key not in keys:
            keys.append(key)
    return keys


def query_pairs(query: str) -> List[tuple]:
    """(name, value) pairs of a query string, percent-decoded, duplicates kept."""
    pairs = []
    for part in query.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        pairs.append((unquote_plus(key), unquote_plus(value)))
    return pairs


def derive_pattern(url: str) -> str:
    """
    Pattern of a canonical URL. Stable under query-key permutation and
    under changes of parameter values.
    """
    p = urlsplit(url)
    pattern = f"{p.scheme}://{p.netloc}{pattern_path(p.path or '/')}"
    keys = sorted(query_keys(p.query))
    if keys:
        pattern += "?" + "&".join(f"{k}=" for k in keys)
    if p.fragment:
        # Only present for SPA-aware scopes; "#/user/7" routes group like paths
        pattern += "#" + pattern_path(p.fragment)
    return pattern


def pattern_hash(pattern: str) -> str:
    """128-bit hex digest of a pattern string."""
    return hashlib.md5(pattern.encode("utf-8")).hexdigest()
