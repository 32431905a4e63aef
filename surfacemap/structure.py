# surfacemap/structure.py
"""
Structural dedup and the pattern-group arena.

Pattern groups live in a list (the arena) and are addressed by integer id. Everything
else (the hash index, the URL -> group index, DOM verification) stores ids, never
references, so there is exactly one owner of each group.

The first URL of a pattern becomes its representative. Later URLs are only candidates
for skipping: the pattern cap and DOM verification decide what happens to them.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import urlsplit

from .errors import InternalInvariantViolation
from .patterns import derive_pattern, pattern_hash, query_pairs

logger = logging.getLogger(__name__)

MAX_PARAM_SAMPLES = 10


class VerificationState(str, Enum):
    NEW = "new"
    SAMPLING = "sampling"
    VERIFIED_SIMILAR = "verified-similar"
    VERIFIED_DIFFERENT = "verified-different"

    @property
    def terminal(self) -> bool:
        return self in (VerificationState.VERIFIED_SIMILAR, VerificationState.VERIFIED_DIFFERENT)


@dataclass
class PatternGroup:
    """Per-pattern bookkeeping. Mutated only under the owning component's lock."""

    id: int
    pattern: str
    pattern_hash: str
    first_url: str

    seen_count: int = 0
    crawled_count: int = 0
    skipped_count: int = 0

    # Fetch outcomes (fed by record_fetch_result)
    fetch_count: int = 0
    status_codes: Counter = field(default_factory=Counter)
    avg_response_ms: float = 0.0
    new_links: int = 0
    new_forms: int = 0
    new_apis: int = 0
    productive_fetches: int = 0
    adjustment: float = 0.0

    param_names: Set[str] = field(default_factory=set)
    param_samples: Dict[str, List[str]] = field(default_factory=dict)
    representatives: List[str] = field(default_factory=list)

    # DOM verification
    signatures: list = field(default_factory=list)
    state: VerificationState = VerificationState.NEW
    avg_similarity: float = 0.0

    @property
    def success_rate(self) -> float:
        if not self.fetch_count:
            return 0.0
        ok = sum(n for code, n in self.status_codes.items() if 200 <= code < 300)
        return ok / self.fetch_count

    @property
    def discovery_rate(self) -> float:
        return self.productive_fetches / self.fetch_count if self.fetch_count else 0.0

    def summary(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "pattern": self.pattern,
            "first_url": self.first_url,
            "seen": self.seen_count,
            "crawled": self.crawled_count,
            "skipped": self.skipped_count,
            "fetched": self.fetch_count,
            "state": self.state.value,
            "avg_similarity": round(self.avg_similarity, 4),
            "adjustment": round(self.adjustment, 3),
            "params": sorted(self.param_names),
            "representatives": list(self.representatives),
        }


class StructuralDeduper:
    """
    pattern hash -> group id -> PatternGroup.

    observe() is the only way groups are created. lookup/get never create.
    """

    def __init__(self, max_representatives: int = 3):
        self.max_representatives = max_representatives
        self.lock = threading.Lock()
        self._groups: List[PatternGroup] = []       # arena; index == id
        self._by_hash: Dict[str, int] = {}
        self._by_url: Dict[str, int] = {}
        self.duplicate_candidates = 0

    def observe(self, url: str) -> Tuple[PatternGroup, bool]:
        """
        Find or create the group for a canonical URL and record the sighting.
        Returns (group, created).
        """
        pattern = derive_pattern(url)
        digest = pattern_hash(pattern)
        with self.lock:
            gid = self._by_hash.get(digest)
            created = gid is None
            if created:
                gid = len(self._groups)
                self._groups.append(PatternGroup(gid, pattern, digest, first_url=url))
                self._by_hash[digest] = gid
            else:
                self.duplicate_candidates += 1
            group = self._get_locked(gid)
            group.seen_count += 1
            self._by_url.setdefault(url, gid)
            self._record_params(group, url)
            if url not in group.representatives and len(group.representatives) < self.max_representatives:
                group.representatives.append(url)
        if created:
            logger.debug("new pattern #%d %s", gid, pattern)
        return group, created

    def group_for_url(self, url: str) -> Optional[PatternGroup]:
        with self.lock:
            gid = self._by_url.get(url)
            return None if gid is None else self._get_locked(gid)

    def get(self, gid: int) -> PatternGroup:
        with self.lock:
            return self._get_locked(gid)

    def groups(self) -> List[PatternGroup]:
        with self.lock:
            return list(self._groups)

    def representatives(self) -> Dict[str, List[str]]:
        """pattern -> representative URLs, for reporting."""
        with self.lock:
            return {g.pattern: list(g.representatives) for g in self._groups}

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return {
                "patterns": len(self._groups),
                "urls": len(self._by_url),
                "duplicate_candidates": self.duplicate_candidates,
            }

    # -------------------------------- internals ------------------------------

    def _get_locked(self, gid: int) -> PatternGroup:
        if not 0 <= gid < len(self._groups) or self._groups[gid].id != gid:
            raise InternalInvariantViolation(f"pattern group #{gid} is indexed but not stored")
        return self._groups[gid]

    @staticmethod
    def _record_params(group: PatternGroup, url: str) -> None:
        for name, value in query_pairs(urlsplit(url).query):
            group.param_names.add(name)
            samples = group.param_samples.setdefault(name, [])
            if value not in samples and len(samples) < MAX_PARAM_SAMPLES:
                samples.append(value)
