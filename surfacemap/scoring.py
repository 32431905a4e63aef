# surfacemap/scoring.py
"""
Business-value scoring and per-pattern crawl caps.

Stage A (priors): a URL's path and parameter names say a lot about what it does.
/admin and /login are worth crawling exhaustively, ?page=7 is not. Each URL gets a
base score in [0, 100] from keyword tables plus small bonuses and penalties.

Stage B (learning): every fetch result nudges the pattern's adjustment toward a
target derived from its success rate, discovery rate and latency, with an EMA:

    adjustment += (target - adjustment) * learning_rate,  clamped to [-20, 20]

Effective score = base + adjustment, clamped to [0, 100]. The effective score picks
a tier, and the tier picks the cap on how many URLs of that pattern get crawled.
High-tier patterns are never capped.
"""

import logging
import re
import threading
from collections import defaultdict
from enum import Enum
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from .config import ScoringConfig
from .patterns import query_pairs
from .structure import PatternGroup

logger = logging.getLogger(__name__)

ADJUSTMENT_LIMIT = 20.0
IMAGE_DISPLAY_SCORE = 15.0
DEFAULT_BASE_SCORE = 50.0


class Tier(str, Enum):
    LOW = "low"
    MID = "mid"
    HIGH = "high"


# (business type, base score, path/param token prefixes), first match wins
BUSINESS_TYPES: List[Tuple[str, float, Tuple[str, ...]]] = [
    ("admin_panel", 95, ("admin", "manage", "backend", "console", "dashboard")),
    ("authentication", 90, ("login", "logout", "signin", "signup", "register", "auth", "oauth", "sso", "passwd", "password")),
    ("payment", 90, ("pay", "checkout", "billing", "invoice", "cart", "order")),
    ("api_endpoint", 85, ("api", "graphql", "rest", "rpc", "ajax")),
    ("file_upload", 85, ("upload", "attachment", "import")),
    ("user_profile", 80, ("user", "profile", "account", "member", "settings")),
    ("search", 65, ("search", "query", "lookup", "find")),
    ("form_page", 65, ("form", "submit", "contact", "feedback", "comment", "guestbook")),
    ("detail_page", 55, ("detail", "item", "product", "article", "post", "show", "view")),
    ("list_page", 50, ("list", "index", "catalog", "category", "archive", "browse")),
    ("pagination", 40, ("page", "offset", "limit", "sort")),
    ("language", 35, ("lang", "locale", "i18n")),
    ("analytics", 20, ("track", "analytics", "beacon", "pixel", "stats")),
    ("static_resource", 10, ("static", "assets", "public", "dist", "vendor")),
]

VALUABLE_PARAMS: Dict[str, float] = {
    "id": 5, "uid": 8, "user_id": 8, "userid": 8, "token": 10, "key": 10, "api_key": 10,
    "apikey": 10, "secret": 10, "password": 10, "pass": 10, "email": 7, "username": 7,
    "phone": 7, "action": 6, "cmd": 8, "command": 8, "exec": 8, "method": 6,
    "callback": 5, "redirect": 7, "return_url": 7, "next": 5, "url": 7, "path": 7,
    "file": 8, "upload": 9, "debug": 8, "role": 8,
}

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")
_VERSION_TOKEN_RE = re.compile(r"^v\d+$")
_CRUD_RE = re.compile(r"(?:create|update|delete|edit|modify|remove|add|save)", re.IGNORECASE)
_SENSITIVE_RE = re.compile(r"(?:config|setting|permission|privilege|role|grant)", re.IGNORECASE)
_RESOURCE_ID_RE = re.compile(
    r"^(?:\d+|[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})$"
)

# Image display endpoints: showimage.php?file=..., /get_thumb?img=...
_IMAGE_PATH_RE = re.compile(r"(?:show|display|view|get)[-_]?(?:image|img|pic|photo|thumb)", re.IGNORECASE)
_IMAGE_VALUE_RE = re.compile(
    r"\.(?:jpe?g|png|gif|bmp|svg|webp|ico)$|/(?:images?|pictures?|photos?|thumbs?)/", re.IGNORECASE
)
_FILE_LIKE_PARAMS = frozenset({"file", "filename", "path", "src", "img", "image", "pic", "photo"})


def is_image_display(url: str) -> bool:
    p = urlsplit(url)
    if _IMAGE_PATH_RE.search(p.path):
        return True
    for name, value in query_pairs(p.query):
        if name.lower() in _FILE_LIKE_PARAMS and _IMAGE_VALUE_RE.search(value):
            return True
    return False


def _tokens(text: str) -> List[str]:
    return [t for t in _TOKEN_SPLIT_RE.split(text.lower()) if t]


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


class BusinessScorer:
    """Stage A priors, Stage B learning, tiers and caps."""

    def __init__(self, cfg: Optional[ScoringConfig] = None):
        self.cfg = cfg or ScoringConfig()
        self.lock = threading.Lock()
        self.counters: Dict[str, int] = defaultdict(int)

    # ------------------------------- stage A --------------------------------

    def business_type(self, url: str) -> Tuple[str, float]:
        p = urlsplit(url)
        tokens = _tokens(p.path) + [t for name, _ in query_pairs(p.query) for t in _tokens(name)]
        for btype, score, prefixes in BUSINESS_TYPES:
            for token in tokens:
                if token.startswith(prefixes):
                    return btype, float(score)
                if btype == "api_endpoint" and _VERSION_TOKEN_RE.match(token):
                    return btype, float(score)
        return "unknown", DEFAULT_BASE_SCORE

    def base_score(self, url: str) -> float:
        """Stage A score of one canonical URL, in [0, 100]."""
        if is_image_display(url):
            return IMAGE_DISPLAY_SCORE

        p = urlsplit(url)
        _, score = self.business_type(url)

        names = []
        for name, _ in query_pairs(p.query):
            if name not in names:
                names.append(name)
        for name in names:
            lowered = name.lower()
            score += VALUABLE_PARAMS.get(lowered, 0)
            if lowered not in VALUABLE_PARAMS and ("admin" in lowered or "auth" in lowered):
                score += 8

        segments = [s for s in p.path.split("/") if s]
        depth = len(segments)
        if depth == 0:
            score -= 5
        elif 3 <= depth <= 5:
            score += 5
        elif depth > 6:
            score -= 3

        if len(names) == 1:
            score += 3
        elif 2 <= len(names) <= 4:
            score += 5
        elif len(names) > 8:
            score -= 5

        if len(segments) >= 2 and _RESOURCE_ID_RE.match(segments[-1]):
            score += 8
        if _CRUD_RE.search(p.path):
            score += 10
        if _SENSITIVE_RE.search(p.path):
            score += 12

        return _clamp(score, 0.0, 100.0)

    # ------------------------------ tiers & caps -----------------------------

    def effective_score(self, base: float, group: PatternGroup) -> float:
        return _clamp(base + group.adjustment, 0.0, 100.0)

    def tier_for(self, score: float) -> Tier:
        if score >= self.cfg.high_value_threshold:
            return Tier.HIGH
        if score >= self.cfg.mid_value_threshold:
            return Tier.MID
        return Tier.LOW

    def cap_for(self, tier: Tier) -> int:
        return {
            Tier.HIGH: self.cfg.cap_high,
            Tier.MID: self.cfg.cap_mid,
            Tier.LOW: self.cfg.cap_low,
        }[tier]

    # ------------------------------- stage B --------------------------------

    def record_result(
        self,
        group: PatternGroup,
        status: int,
        response_time_ms: float,
        new_links: bool = False,
        new_forms: bool = False,
        new_apis: bool = False,
    ) -> float:
        """Fold one fetch result into the group and return its new adjustment."""
        group.fetch_count += 1
        group.status_codes[status] += 1
        group.avg_response_ms += (response_time_ms - group.avg_response_ms) / group.fetch_count
        group.new_links += int(bool(new_links))
        group.new_forms += int(bool(new_forms))
        group.new_apis += int(bool(new_apis))
        if new_links or new_forms or new_apis:
            group.productive_fetches += 1

        with self.lock:
            self.counters["results"] += 1
        if not self.cfg.enable_adaptive:
            return group.adjustment

        target = self.learning_target(group)
        group.adjustment += (target - group.adjustment) * self.cfg.learning_rate
        group.adjustment = _clamp(group.adjustment, -ADJUSTMENT_LIMIT, ADJUSTMENT_LIMIT)
        return group.adjustment

    @staticmethod
    def learning_target(group: PatternGroup) -> float:
        target = 0.0
        if group.success_rate >= 0.9:
            target += 5
        elif group.success_rate < 0.5:
            target -= 10
        if group.discovery_rate > 0.5:
            target += 10
        elif group.discovery_rate < 0.1:
            target -= 5
        if group.avg_response_ms > 5000:
            target -= 3
        return target

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return dict(self.counters)
