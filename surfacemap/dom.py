# surfacemap/dom.py
"""
DOM signatures and the sampling verifier.

A URL pattern looks duplicate when its URLs differ only in values. Whether the pages
really are the same template is an empirical question, so we sample a few responses
per pattern, fingerprint their tag structure, and compare.

Signature contents:
  - 64-bit SimHash over tag-path shingles ("html/body/div/a"), weighted by frequency
  - structural hash: md5 of the pre-order (depth, tag) sequence
  - counts: nodes, links, forms, inputs, max depth
  - frequency map of common tags

Text nodes are not part of the signature: two product pages with different names and prices
produce the same signature.
"""

import hashlib
import logging
import math
import threading
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Sequence, Union

from bs4 import BeautifulSoup, Tag

from .structure import PatternGroup, VerificationState

logger = logging.getLogger(__name__)

SIMHASH_BITS = 64

TRACKED_TAGS = (
    "html", "head", "body", "title", "meta", "link", "script", "style",
    "div", "span", "p", "a", "img", "ul", "ol", "li", "table", "thead", "tbody",
    "tr", "td", "th", "form", "input", "select", "option", "textarea", "button",
    "label", "h1", "h2", "h3", "h4", "nav", "header", "footer", "section",
    "article", "aside", "main", "iframe", "br", "hr", "strong", "em", "i", "b",
)
_TRACKED = frozenset(TRACKED_TAGS)
_INPUT_TAGS = frozenset({"input", "select", "textarea"})


@dataclass(frozen=True)
class DomSignature:
    simhash: int
    struct_hash: str
    node_count: int
    link_count: int
    form_count: int
    input_count: int
    depth: int
    tag_counts: Dict[str, int] = field(default_factory=dict)


def _shingle_hash(shingle: str) -> int:
    return int.from_bytes(hashlib.md5(shingle.encode("utf-8")).digest()[:8], "big")


def simhash(weighted: Dict[str, int]) -> int:
    """64-bit SimHash of weighted features."""
    v = [0] * SIMHASH_BITS
    for feature, weight in weighted.items():
        h = _shingle_hash(feature)
        for bit in range(SIMHASH_BITS):
            if (h >> bit) & 1:
                v[bit] += weight
            else:
                v[bit] -= weight
    out = 0
    for bit in range(SIMHASH_BITS):
        if v[bit] > 0:
            out |= 1 << bit
    return out


def extract_signature(html: Union[str, bytes]) -> DomSignature:
    """Fingerprint the tag structure of an HTML document. CPU only."""
    if isinstance(html, bytes):
        html = html.decode("utf-8", errors="ignore")
    soup = BeautifulSoup(html, "html.parser")

    shingles: Counter = Counter()
    tags: Counter = Counter()
    sequence: List[str] = []
    max_depth = 0

    # Iterative pre-order walk; deeply nested junk must not hit the recursion limit
    stack = [(child, 1, "") for child in reversed(soup.contents) if isinstance(child, Tag)]
    while stack:
        node, depth, parent_path = stack.pop()
        name = node.name.lower()
        path = f"{parent_path}/{name}" if parent_path else name
        shingles[path] += 1
        tags[name] += 1
        sequence.append(f"{depth}:{name}")
        max_depth = max(max_depth, depth)
        for child in reversed(node.contents):
            if isinstance(child, Tag):
                stack.append((child, depth + 1, path))

    struct_hash = hashlib.md5(",".join(sequence).encode("utf-8")).hexdigest()
    return DomSignature(
        simhash=simhash(shingles),
        struct_hash=struct_hash,
        node_count=sum(tags.values()),
        link_count=tags["a"],
        form_count=tags["form"],
        input_count=sum(tags[t] for t in _INPUT_TAGS),
        depth=max_depth,
        tag_counts={t: n for t, n in tags.items() if t in _TRACKED},
    )


def hamming_distance(a: int, b: int) -> int:
    return bin(a ^ b).count("1")


def _ratio(a: int, b: int) -> float:
    if a == 0 and b == 0:
        return 1.0
    return 1.0 - abs(a - b) / max(a, b)


def _cosine(a: Dict[str, int], b: Dict[str, int]) -> float:
    norm_a = math.sqrt(sum(v * v for v in a.values()))
    norm_b = math.sqrt(sum(v * v for v in b.values()))
    if norm_a == 0 and norm_b == 0:
        return 1.0
    if norm_a == 0 or norm_b == 0:
        return 0.0
    dot = sum(v * b.get(k, 0) for k, v in a.items())
    return dot / (norm_a * norm_b)


def similarity(a: DomSignature, b: DomSignature) -> float:
    """
    1.0 for equal structural hashes, otherwise the mean of:
      SimHash agreement (1 - hamming/64),
      mean ratio over depth/nodes/links/forms/inputs,
      cosine of the tag-frequency vectors.
    """
    if a.struct_hash == b.struct_hash:
        return 1.0
    sim = 1.0 - hamming_distance(a.simhash, b.simhash) / SIMHASH_BITS
    features = (
        _ratio(a.depth, b.depth),
        _ratio(a.node_count, b.node_count),
        _ratio(a.link_count, b.link_count),
        _ratio(a.form_count, b.form_count),
        _ratio(a.input_count, b.input_count),
    )
    feat = sum(features) / len(features)
    cos = _cosine(a.tag_counts, b.tag_counts)
    return (sim + feat + cos) / 3.0


def mean_pairwise_similarity(signatures: Sequence[DomSignature]) -> float:
    pairs = list(combinations(signatures, 2))
    if not pairs:
        return 1.0
    return sum(similarity(a, b) for a, b in pairs) / len(pairs)


class DomVerifier:
    """
    Per-pattern state machine:

        new -> sampling -> verified-similar | verified-different

    The decision is taken when the sample_count-th signature arrives and never revisited.
    """

    def __init__(self, sample_count: int = 3, threshold: float = 0.85, enabled: bool = True):
        self.sample_count = sample_count
        self.threshold = threshold
        self.enabled = enabled
        self.lock = threading.Lock()
        self.counters: Dict[str, int] = defaultdict(int)

    def track(self, group: PatternGroup) -> VerificationState:
        """Move a freshly seen group into sampling."""
        if self.enabled and group.state is VerificationState.NEW:
            group.state = VerificationState.SAMPLING
            with self.lock:
                self.counters["sampling"] += 1
        return group.state

    def record(self, group: PatternGroup, signature: DomSignature) -> VerificationState:
        """Add one sample; decide once enough samples are in."""
        if not self.enabled or group.state.terminal:
            return group.state
        self.track(group)
        if len(group.signatures) >= self.sample_count:
            return group.state

        group.signatures.append(signature)
        with self.lock:
            self.counters["signatures"] += 1
        if len(group.signatures) < self.sample_count:
            return group.state

        group.avg_similarity = mean_pairwise_similarity(group.signatures)
        if group.avg_similarity >= self.threshold:
            group.state = VerificationState.VERIFIED_SIMILAR
        else:
            group.state = VerificationState.VERIFIED_DIFFERENT
        with self.lock:
            self.counters[group.state.value] += 1
        logger.info(
            "pattern %s -> %s (mean similarity %.3f over %d samples)",
            group.pattern, group.state.value, group.avg_similarity, len(group.signatures),
        )
        return group.state

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return dict(self.counters)
