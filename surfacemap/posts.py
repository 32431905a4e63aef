# surfacemap/posts.py
"""
POST request dedup.

A form submission is identified by (method, canonical URL, sorted parameter names).
Values never matter: logging in as alice and as bob is the same endpoint.
"""

import hashlib
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .errors import UrlParseError
from .normalizer import canonicalize

logger = logging.getLogger(__name__)


@dataclass
class PostRecord:
    url: str
    method: str
    param_names: Tuple[str, ...]
    count: int = 1


def post_fingerprint(method: str, url: str, param_names: Iterable[str]) -> str:
    """md5 of "METHOD|canonical-url|a,b,c" with names sorted and deduplicated."""
    names = ",".join(sorted(set(param_names)))
    key = f"{method.upper()}|{url}|{names}"
    return hashlib.md5(key.encode("utf-8")).hexdigest()


class PostDeduper:
    """fingerprint -> PostRecord, first observation wins."""

    def __init__(self, keep_fragment: bool = False):
        self.keep_fragment = keep_fragment
        self.lock = threading.Lock()
        self.records_by_fp: Dict[str, PostRecord] = {}
        self.counters: Dict[str, int] = defaultdict(int)

    def admit(self, url: str, method: str, param_names: Iterable[str]) -> bool:
        """True the first time a fingerprint is observed, False afterwards."""
        names = tuple(sorted(set(param_names)))
        method = (method or "POST").upper()
        try:
            canonical = canonicalize(url, keep_fragment=self.keep_fragment)
        except UrlParseError as exc:
            logger.debug("post rejected, bad URL %r: %s", url, exc)
            with self.lock:
                self.counters["total"] += 1
                self.counters["rejected.parse_error"] += 1
            return False

        fp = post_fingerprint(method, canonical, names)
        with self.lock:
            self.counters["total"] += 1
            record = self.records_by_fp.get(fp)
            if record is not None:
                record.count += 1
                self.counters["rejected.duplicate"] += 1
                return False
            self.records_by_fp[fp] = PostRecord(canonical, method, names)
            self.counters["admitted"] += 1
        logger.debug("new %s endpoint %s %s", method, canonical, names)
        return True

    def records(self) -> List[PostRecord]:
        with self.lock:
            return list(self.records_by_fp.values())

    def stats(self) -> Dict[str, int]:
        with self.lock:
            out = dict(self.counters)
            out["unique"] = len(self.records_by_fp)
            return out
