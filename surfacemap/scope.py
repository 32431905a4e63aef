# surfacemap/scope.py
"""
Scope controller: decide whether a canonical URL belongs to the engagement.

Checks run in a fixed order and the first failure is reported:
  protocol -> domain -> depth -> path -> extension -> query names -> regex

Extension excludes are informational only. A ".js" in exclude_extensions still passes
scope, because script and style bodies are where hidden endpoints live. Whether a URL
is actually downloaded is ResourceClassifier.should_request's call.

Domain and path decisions are memoized; the caches are bounded the same way for both.
"""

import logging
import re
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlsplit

from .classifier import host_matches
from .config import ScopeConfig
from .errors import ConfigError
from .normalizer import extension_of
from .patterns import query_keys

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeVerdict:
    in_scope: bool
    rule: str = ""        # which check failed: "protocol", "domain", ...
    detail: str = ""


_IN_SCOPE = ScopeVerdict(True)


def path_matches(path: str, pattern: str) -> bool:
    """Exact "/login", prefix "/admin/*", suffix "*.php"."""
    if path == pattern:
        return True
    if pattern.endswith("*") and path.startswith(pattern[:-1]):
        return True
    if pattern.startswith("*") and path.endswith(pattern[1:]):
        return True
    return False


class _BoundedCache:
    """dict with a size cap; evicts the oldest entry when full."""

    def __init__(self, max_entries: int = 10000):
        self.max_entries = max_entries
        self._data: Dict[str, bool] = {}

    def get(self, key: str) -> Optional[bool]:
        return self._data.get(key)

    def put(self, key: str, value: bool) -> None:
        if len(self._data) >= self.max_entries:
            self._data.pop(next(iter(self._data)))
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


class ScopeController:
    """
    Include/exclude rules over protocol, domain, path, extension, query names and regex.

    Typical usage:
        scope = ScopeController(ScopeConfig(include_domains=("t.example",)))
        scope.check("https://t.example/login").in_scope
    """

    def __init__(self, cfg: Optional[ScopeConfig] = None, cache_size: int = 10000):
        self.cfg = cfg or ScopeConfig()
        try:
            self.include_regex = re.compile(self.cfg.include_regex) if self.cfg.include_regex else None
            self.exclude_regex = re.compile(self.cfg.exclude_regex) if self.cfg.exclude_regex else None
        except re.error as exc:
            raise ConfigError(f"invalid scope regex: {exc}") from exc

        self.include_ext = frozenset(e.lower().lstrip(".") for e in self.cfg.include_extensions)
        self.exclude_ext = frozenset(e.lower().lstrip(".") for e in self.cfg.exclude_extensions)
        self.include_params = frozenset(self.cfg.include_params)
        self.exclude_params = frozenset(self.cfg.exclude_params)

        self.lock = threading.Lock()
        self._host_cache = _BoundedCache(cache_size)
        self._path_cache = _BoundedCache(cache_size)
        self.counters: Dict[str, int] = defaultdict(int)

    # ------------------------------- public API ------------------------------

    def is_in_scope(self, url: str, depth: Optional[int] = None) -> bool:
        return self.check(url, depth).in_scope

    def check(self, url: str, depth: Optional[int] = None) -> ScopeVerdict:
        try:
            p = urlsplit(url)
        except ValueError as exc:
            return self._count(ScopeVerdict(False, "parse", str(exc)))

        with self.lock:
            verdict = self._check_locked(url, p, depth)
            self.counters["total"] += 1
            if verdict.in_scope:
                self.counters["passed"] += 1
                if self.extension_excluded(url):
                    self.counters["excluded_extension_seen"] += 1
            else:
                self.counters[f"rejected.{verdict.rule}"] += 1
        if not verdict.in_scope:
            logger.debug("out of scope [%s] %s %s", verdict.rule, url, verdict.detail)
        return verdict

    def extension_excluded(self, url: str) -> bool:
        """True if the URL's extension is in exclude_extensions (informational)."""
        ext = extension_of(url)
        return bool(ext) and ext in self.exclude_ext

    def stats(self) -> Dict[str, int]:
        with self.lock:
            out = dict(self.counters)
            out["cache.hosts"] = len(self._host_cache)
            out["cache.paths"] = len(self._path_cache)
            return out

    # -------------------------------- internals ------------------------------

    def _count(self, verdict: ScopeVerdict) -> ScopeVerdict:
        with self.lock:
            self.counters["total"] += 1
            self.counters[f"rejected.{verdict.rule}"] += 1
        return verdict

    def _check_locked(self, url: str, p, depth: Optional[int]) -> ScopeVerdict:
        scheme = p.scheme.lower()
        if not ((scheme == "http" and self.cfg.allow_http) or (scheme == "https" and self.cfg.allow_https)):
            return ScopeVerdict(False, "protocol", scheme)

        host = (p.hostname or "").lower()
        if not self._host_allowed(host):
            return ScopeVerdict(False, "domain", host)

        if self.cfg.max_depth > 0 and depth is not None and depth > self.cfg.max_depth:
            return ScopeVerdict(False, "depth", f"{depth} > {self.cfg.max_depth}")

        path = p.path or "/"
        if not self._path_allowed(path):
            return ScopeVerdict(False, "path", path)

        ext = extension_of(url)
        if ext and self.include_ext and ext not in self.include_ext:
            return ScopeVerdict(False, "extension", ext)

        if not self._params_allowed(query_keys(p.query)):
            return ScopeVerdict(False, "params", p.query)

        if self.exclude_regex is not None and self.exclude_regex.search(url):
            return ScopeVerdict(False, "regex", "matches exclude_regex")
        if self.include_regex is not None and not self.include_regex.search(url):
            return ScopeVerdict(False, "regex", "does not match include_regex")

        return _IN_SCOPE

    def _host_allowed(self, host: str) -> bool:
        cached = self._host_cache.get(host)
        if cached is not None:
            return cached
        sub = self.cfg.allow_subdomains
        if not host or any(host_matches(host, d, sub) for d in self.cfg.exclude_domains):
            ok = False
        elif self.cfg.include_domains:
            ok = any(host_matches(host, d, sub) for d in self.cfg.include_domains)
        else:
            ok = True
        self._host_cache.put(host, ok)
        return ok

    def _path_allowed(self, path: str) -> bool:
        cached = self._path_cache.get(path)
        if cached is not None:
            return cached
        if any(path_matches(path, rule) for rule in self.cfg.exclude_paths):
            ok = False
        elif self.cfg.include_paths:
            ok = any(path_matches(path, rule) for rule in self.cfg.include_paths)
        else:
            ok = True
        self._path_cache.put(path, ok)
        return ok

    def _params_allowed(self, names) -> bool:
        if not self.include_params and not self.exclude_params:
            return True
        if not names:
            return not self.include_params
        if any(n in self.exclude_params for n in names):
            return False
        if self.include_params:
            return any(n in self.include_params for n in names)
        return True
