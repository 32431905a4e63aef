# surfacemap/classifier.py
"""
Resource classifier: canonical URL -> ResourceKind.

Driven by extension tables plus three overrides, checked in this order:
  1) host outside the target domains  -> external
  2) .js / .css family                -> javascript / css
  3) API-looking path                 -> api
  4) file-like query parameter        -> page (show.php?file=x.jpg is an endpoint)
  5) static media tables              -> image / video / audio / font / document / archive / other-static
  6) anything else                    -> page

should_request(kind) is a fixed table, so a URL never flips between fetch/no-fetch.
"""

import re
import threading
from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, Optional
from urllib.parse import urlsplit

from .normalizer import extension_of, host_of
from .patterns import query_keys


class ResourceKind(str, Enum):
    PAGE = "page"
    JAVASCRIPT = "javascript"
    CSS = "css"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FONT = "font"
    DOCUMENT = "document"
    ARCHIVE = "archive"
    OTHER_STATIC = "other-static"
    EXTERNAL = "external"
    API = "api"


REQUESTED_KINDS = frozenset({
    ResourceKind.PAGE, ResourceKind.JAVASCRIPT, ResourceKind.CSS, ResourceKind.API,
})

EXTENSION_KINDS: Dict[str, ResourceKind] = {}
for _kind, _exts in (
    (ResourceKind.JAVASCRIPT, "js mjs jsx"),
    (ResourceKind.CSS, "css scss sass less"),
    (ResourceKind.IMAGE, "jpg jpeg png gif svg webp ico bmp tif tiff avif"),
    (ResourceKind.VIDEO, "mp4 avi mov wmv flv mkv webm m4v mpg mpeg 3gp"),
    (ResourceKind.AUDIO, "mp3 wav ogg m4a aac flac wma opus aiff"),
    (ResourceKind.FONT, "woff woff2 ttf eot otf"),
    (ResourceKind.DOCUMENT, "pdf doc docx xls xlsx ppt pptx txt csv rtf"),
    (ResourceKind.ARCHIVE, "zip rar tar gz bz2 7z tgz"),
    (ResourceKind.OTHER_STATIC, "swf apk dmg exe msi deb rpm iso"),
):
    for _ext in _exts.split():
        EXTENSION_KINDS[_ext] = _kind

# Query keys that make a URL a dynamic endpoint regardless of its extension
DYNAMIC_PARAM_KEYS = frozenset({
    "file", "filename", "path", "resource", "download", "view", "src", "url",
})

_API_PATH_RE = re.compile(r"/api/|/v[1-9]/|/rest/|/graphql|/ajax/", re.IGNORECASE)


def should_request(kind: ResourceKind) -> bool:
    """True for kinds the fetcher should download: page, javascript, css, api."""
    return kind in REQUESTED_KINDS


def host_matches(host: str, domain: str, allow_subdomains: bool = True) -> bool:
    """
    Domain rule match:
      "example.com"    exact (plus subdomains when allow_subdomains)
      "*.example.com"  any subdomain of example.com, and example.com itself
    """
    domain = domain.lower().strip()
    if not domain or not host:
        return False
    if domain.startswith("*."):
        base = domain[2:]
        return host == base or host.endswith("." + base)
    if host == domain:
        return True
    return allow_subdomains and host.endswith("." + domain)


class ResourceClassifier:
    """Pure classification plus per-kind counters."""

    def __init__(self, target_domains: Iterable[str] = (), allow_subdomains: bool = True):
        self.target_domains = tuple(d.lower() for d in target_domains)
        self.allow_subdomains = allow_subdomains
        self.lock = threading.Lock()
        self.counters: Dict[str, int] = defaultdict(int)

    def is_external(self, url: str) -> bool:
        if not self.target_domains:
            return False
        host = host_of(url)
        return not any(host_matches(host, d, self.allow_subdomains) for d in self.target_domains)

    def classify(self, url: str) -> ResourceKind:
        kind = self._classify(url)
        with self.lock:
            self.counters[f"kind.{kind.value}"] += 1
        return kind

    def _classify(self, url: str) -> ResourceKind:
        if self.is_external(url):
            return ResourceKind.EXTERNAL

        ext = extension_of(url)
        kind: Optional[ResourceKind] = EXTENSION_KINDS.get(ext)
        if kind in (ResourceKind.JAVASCRIPT, ResourceKind.CSS):
            return kind

        path = urlsplit(url).path
        if _API_PATH_RE.search(path):
            return ResourceKind.API

        keys = {k.lower() for k in query_keys(url)}
        if keys & DYNAMIC_PARAM_KEYS:
            return ResourceKind.PAGE

        return kind or ResourceKind.PAGE

    def should_request(self, kind: ResourceKind) -> bool:
        return should_request(kind)

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return dict(self.counters)
