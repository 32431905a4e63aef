# surfacemap/layered.py
"""
URL type classification and per-type deduplication.

Each canonical URL is routed to exactly one bucket, checked in this order:

    static-asset -> ajax -> file-param -> restful -> multi-param -> normal

and each bucket applies its own duplicate policy:

    static-asset, ajax, restful   key = full URL; first sighting NEW, later DUPLICATE
    file-param                    key = pattern; one NEW per encoding variant of the
                                  file value (normal / url-encoded / path-traversal)
    multi-param, normal           key = pattern; first URL NEW (the representative)

In the multi-param and normal buckets a different URL in a known group is a REPEAT:
not rejected here, but handed to the pattern cap downstream. Only the exact same URL
is a DUPLICATE there. The file-param bucket is stricter: a URL whose file value is
an already sampled variant is a DUPLICATE. Variants are read from the raw query,
before percent-decoding, so "..%2Fb.txt" stays url-encoded.
"""

import logging
import re
import threading
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Set
from urllib.parse import unquote_plus, urlsplit

from .patterns import derive_pattern, query_pairs

logger = logging.getLogger(__name__)


class UrlType(str, Enum):
    STATIC_ASSET = "static-asset"
    AJAX = "ajax"
    FILE_PARAM = "file-param"
    RESTFUL = "restful"
    MULTI_PARAM = "multi-param"
    NORMAL = "normal"


class LayerOutcome(str, Enum):
    NEW = "new"
    REPEAT = "repeat"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class LayerVerdict:
    outcome: LayerOutcome
    url_type: UrlType
    key: str
    detail: str = ""

    @property
    def rejected(self) -> bool:
        return self.outcome is LayerOutcome.DUPLICATE


FILE_PARAM_KEYS = frozenset({
    "file", "filename", "filepath", "path", "document", "doc", "image", "img",
    "attachment", "download", "resource", "src", "url", "view",
})

_STATIC_RE = re.compile(
    r"\.(?:jpg|jpeg|png|gif|bmp|svg|webp|ico|css|js|woff|woff2|ttf|eot|mp4|mp3|avi|pdf|zip|rar|swf)$",
    re.IGNORECASE,
)
_AJAX_RE = re.compile(r"/(?:ajax|api|v\d+|graphql|rest|rpc)(?:/|$)|\.json$|\.xml$", re.IGNORECASE)
_ID_SEGMENT_RE = re.compile(
    r"^(?:\d+|[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}|[0-9a-fA-F]{16,})$"
)
_NAME_SEGMENT_RE = re.compile(r"^[A-Za-z][A-Za-z_-]*$")
_SLUG_NUM_RE = re.compile(r"^[A-Za-z][\w-]*?[-_]\d+(?:\.\w+)?$")


class UrlTypeClassifier:
    """Tag a canonical URL with its UrlType. Regexes are compiled once at import."""

    def classify(self, url: str) -> UrlType:
        p = urlsplit(url)
        path = p.path or "/"
        names = [name.lower() for name, _ in query_pairs(p.query)]

        if _STATIC_RE.search(path):
            return UrlType.STATIC_ASSET
        if _AJAX_RE.search(path):
            return UrlType.AJAX
        if any(n in FILE_PARAM_KEYS for n in names):
            return UrlType.FILE_PARAM
        if self._is_restful(path):
            return UrlType.RESTFUL
        if len(set(names)) >= 2:
            return UrlType.MULTI_PARAM
        return UrlType.NORMAL

    @staticmethod
    def _is_restful(path: str) -> bool:
        segments = [s for s in path.split("/") if s]
        for i, seg in enumerate(segments):
            # /user/42, /orders/550e8400-...
            if i > 0 and _ID_SEGMENT_RE.match(seg) and _NAME_SEGMENT_RE.match(segments[i - 1]):
                return True
            # /product-12.html, /post_7
            if _SLUG_NUM_RE.match(seg):
                return True
        return False


def file_value_variant(value: str) -> str:
    """Encoding variant of a file-like parameter value."""
    lowered = value.lower()
    if "../" in value or "..\\" in value or "%2e%2e" in lowered:
        return "path-traversal"
    if "%2f" in lowered or "%5c" in lowered or "%2e" in lowered:
        return "url-encoded"
    return "normal"


def raw_file_values(query: str) -> List[str]:
    """Values of file-like parameters, still percent-encoded as they appear in the URL."""
    values = []
    for part in query.split("&"):
        name, sep, value = part.partition("=")
        if sep and unquote_plus(name).lower() in FILE_PARAM_KEYS:
            values.append(value)
    return values


class _PatternBucket:
    """Members of one pattern inside a pattern-keyed bucket."""

    __slots__ = ("urls", "variants")

    def __init__(self):
        self.urls: Set[str] = set()
        self.variants: Set[str] = set()


class LayeredDeduper:
    """
    Per-type dedup tables. One writer lock covers all of them; every operation is
    a couple of dict/set lookups.
    """

    def __init__(self, classifier: UrlTypeClassifier = None):
        self.classifier = classifier or UrlTypeClassifier()
        self.lock = threading.Lock()
        self.exact: Dict[UrlType, Set[str]] = {
            UrlType.STATIC_ASSET: set(),
            UrlType.AJAX: set(),
            UrlType.RESTFUL: set(),
        }
        self.patterned: Dict[UrlType, Dict[str, _PatternBucket]] = {
            UrlType.FILE_PARAM: {},
            UrlType.MULTI_PARAM: {},
            UrlType.NORMAL: {},
        }
        self.counters: Dict[str, int] = defaultdict(int)

    def classify(self, url: str) -> UrlType:
        return self.classifier.classify(url)

    def check(self, url: str) -> LayerVerdict:
        """Record the URL in its bucket and report NEW / REPEAT / DUPLICATE."""
        url_type = self.classifier.classify(url)
        with self.lock:
            if url_type in self.exact:
                verdict = self._check_exact(url, url_type)
            elif url_type is UrlType.FILE_PARAM:
                verdict = self._check_file_param(url)
            else:
                verdict = self._check_pattern(url, url_type)
            self.counters[f"{url_type.value}.total"] += 1
            self.counters[f"{url_type.value}.{verdict.outcome.value}"] += 1
        return verdict

    def stats(self) -> Dict[str, int]:
        with self.lock:
            out = dict(self.counters)
            for url_type, table in self.exact.items():
                out[f"{url_type.value}.unique"] = len(table)
            for url_type, table in self.patterned.items():
                out[f"{url_type.value}.patterns"] = len(table)
            return out

    # -------------------------------- buckets --------------------------------

    def _check_exact(self, url: str, url_type: UrlType) -> LayerVerdict:
        table = self.exact[url_type]
        if url in table:
            return LayerVerdict(LayerOutcome.DUPLICATE, url_type, url, "same URL")
        table.add(url)
        return LayerVerdict(LayerOutcome.NEW, url_type, url)

    def _check_pattern(self, url: str, url_type: UrlType) -> LayerVerdict:
        key = derive_pattern(url)
        table = self.patterned[url_type]
        bucket = table.get(key)
        if bucket is None:
            bucket = table[key] = _PatternBucket()
            bucket.urls.add(url)
            return LayerVerdict(LayerOutcome.NEW, url_type, key)
        if url in bucket.urls:
            return LayerVerdict(LayerOutcome.DUPLICATE, url_type, key, "same URL")
        bucket.urls.add(url)
        return LayerVerdict(LayerOutcome.REPEAT, url_type, key)

    def _check_file_param(self, url: str) -> LayerVerdict:
        key = derive_pattern(url)
        table = self.patterned[UrlType.FILE_PARAM]
        bucket = table.setdefault(key, _PatternBucket())
        if url in bucket.urls:
            return LayerVerdict(LayerOutcome.DUPLICATE, UrlType.FILE_PARAM, key, "same URL")
        bucket.urls.add(url)

        values = raw_file_values(urlsplit(url).query)
        variants = {file_value_variant(value) for value in values} or {"normal"}
        fresh = variants - bucket.variants
        bucket.variants |= variants
        if fresh:
            return LayerVerdict(LayerOutcome.NEW, UrlType.FILE_PARAM, key, ",".join(sorted(fresh)))
        return LayerVerdict(LayerOutcome.DUPLICATE, UrlType.FILE_PARAM, key, "variant already sampled")
