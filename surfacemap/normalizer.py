# surfacemap/normalizer.py
"""
URL normalization: raw candidate + base URL -> canonical absolute URL(s).

Canonical form (the equality key for the visited set):
- scheme and host lowercased, IDN hosts converted to punycode
- default ports dropped (80 for http, 443 for https), userinfo dropped
- "." and ".." segments resolved, empty path becomes "/"
- percent-encoding normalized: unreserved bytes decoded, everything else uppercase hex
- query string kept byte-exact (reordering is the pattern deriver's job)
- fragment dropped unless keep_fragment is set

Protocol-relative candidates ("//host/path") resolve to two real endpoints, so they
produce two canonical URLs, the base's scheme first.
"""

import logging
import re
import threading
from collections import defaultdict
from typing import Dict, List
from urllib.parse import quote, urljoin, urlsplit

from .errors import UrlParseError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}

_UNRESERVED = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~")
_PCT_RE = re.compile(r"%([0-9A-Fa-f]{2})")
_LONE_PCT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_BAD_HOST_CHARS = re.compile(r"[\s<>\"{}|\\^`/?#@]")
_PATH_SAFE = "/;:@!$&'()*+,=-._~%"


# -------------------------- Small URL utilities --------------------------

def _normalize_percent(text: str) -> str:
    """Decode %XX for unreserved characters, uppercase the hex of the rest."""
    def repl(m: "re.Match[str]") -> str:
        ch = chr(int(m.group(1), 16))
        if ch in _UNRESERVED:
            return ch
        return "%" + m.group(1).upper()
    return _PCT_RE.sub(repl, text)


def _remove_dot_segments(path: str) -> str:
    """RFC 3986 section 5.2.4, for absolute paths."""
    segments = path.split("/")
    out: List[str] = []
    for seg in segments:
        if seg == "..":
            # out[0] is the empty string before the leading slash
            if len(out) > 1:
                out.pop()
        elif seg == ".":
            continue
        else:
            out.append(seg)
    if segments[-1] in (".", ".."):
        out.append("")
    result = "/".join(out)
    if not result.startswith("/"):
        result = "/" + result
    return result


def _canonical_path(path: str) -> str:
    if not path:
        return "/"
    # Percent-encode what is not allowed in a path (spaces, non-ASCII, ...)
    path = quote(path, safe=_PATH_SAFE)
    path = _LONE_PCT_RE.sub("%25", path)
    path = _normalize_percent(path)
    return _remove_dot_segments(path)


def _canonical_host(raw_host: str) -> str:
    host = raw_host.strip().rstrip(".").lower()
    if not host:
        raise UrlParseError("empty host")
    if ":" in host:
        # IPv6 literal (urlsplit already removed the brackets)
        return f"[{host}]"
    if _BAD_HOST_CHARS.search(host):
        raise UrlParseError(f"invalid host: {raw_host!r}")
    if not host.isascii():
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError as exc:
            raise UrlParseError(f"invalid international host: {raw_host!r}") from exc
    return host


def canonicalize(url: str, keep_fragment: bool = False) -> str:
    """
    Turn an absolute URL into its canonical string. Raises UrlParseError.

    canonicalize(canonicalize(u)) == canonicalize(u) for every accepted u.
    """
    if not url or not url.strip():
        raise UrlParseError("empty URL")
    try:
        p = urlsplit(url.strip())
    except ValueError as exc:
        raise UrlParseError(f"unparseable URL: {exc}") from exc

    scheme = p.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise UrlParseError(f"unsupported scheme: {scheme or '(none)'}")

    host = _canonical_host(p.hostname or "")
    try:
        port = p.port
    except ValueError as exc:
        raise UrlParseError(f"invalid port in {url!r}") from exc
    if port is not None and port != DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"

    path = _canonical_path(p.path)
    query = f"?{p.query}" if p.query else ""
    frag = ""
    if keep_fragment and p.fragment:
        frag = "#" + _normalize_percent(p.fragment)
    return f"{scheme}://{host}{path}{query}{frag}"


def host_of(url: str) -> str:
    """Hostname of a URL (lowercase, no port) or empty string if unparseable."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def extension_of(url: str) -> str:
    """
    Lowercased extension of the final path segment, without the dot.
    "/a/b.JS?x=1" -> "js"; "/a/b" -> "".
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    last = path.rsplit("/", 1)[-1]
    if "." not in last:
        return ""
    return last.rsplit(".", 1)[-1].lower()


# ------------------------------- Normalizer -------------------------------

class UrlNormalizer:
    """
    Resolve raw candidates against a base URL and canonicalize them.

    Stateless apart from counters, so one instance is shared by all workers.
    """

    def __init__(self, keep_fragment: bool = False):
        self.keep_fragment = keep_fragment
        self.lock = threading.Lock()
        self.counters: Dict[str, int] = defaultdict(int)

    def canonicalize(self, url: str) -> str:
        return canonicalize(url, keep_fragment=self.keep_fragment)

    def normalize(self, raw: str, base: str) -> List[str]:
        """
        Return 1 or 2 canonical URLs for a raw candidate. Raises UrlParseError.
        """
        with self.lock:
            self.counters["total"] += 1
        try:
            out = self._resolve(raw, base)
        except UrlParseError:
            with self.lock:
                self.counters["failed"] += 1
            raise
        with self.lock:
            self.counters["emitted"] += len(out)
        return out

    def _resolve(self, raw: str, base: str) -> List[str]:
        candidate = (raw or "").strip()
        if not candidate:
            raise UrlParseError("empty candidate")

        lowered = candidate.lower()
        if lowered.startswith(("http://", "https://")):
            return [self.canonicalize(candidate)]

        # Everything else needs a usable base
        try:
            base_canon = canonicalize(base, keep_fragment=False)
        except UrlParseError as exc:
            raise UrlParseError(f"invalid base URL {base!r}: {exc}") from exc
        b = urlsplit(base_canon)

        if candidate.startswith("//"):
            with self.lock:
                self.counters["protocol_relative"] += 1
            schemes = [b.scheme] + [s for s in ALLOWED_SCHEMES if s != b.scheme]
            out: List[str] = []
            for scheme in schemes:
                c = self.canonicalize(f"{scheme}:{candidate}")
                if c not in out:
                    out.append(c)
            return out

        if candidate.startswith("/"):
            return [self.canonicalize(f"{b.scheme}://{b.netloc}{candidate}")]

        try:
            joined = urljoin(base_canon, candidate)
        except ValueError as exc:
            raise UrlParseError(f"cannot resolve {candidate!r}: {exc}") from exc
        return [self.canonicalize(joined)]

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return dict(self.counters)
