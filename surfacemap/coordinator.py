# surfacemap/coordinator.py
"""
Admission coordinator: the single entry point fetcher workers talk to.

What this file does (at a glance)
---------------------------------
- admit(raw, base) runs one candidate through the whole pipeline and returns a Decision:
      normalize -> visited? -> quality -> scope -> resource kind -> layered dedup
      -> pattern group -> business score -> pattern cap -> DOM verification -> admit
- record_fetch_result(...) feeds fetch outcomes back into the pattern's learned score
  adjustment and, while the pattern is sampling, into DOM verification.
- admit_post(...) dedups form / AJAX POST endpoints by fingerprint.
- discover(...) is the fetcher-side convenience: extract candidates from a response,
  drop garbage, admit the rest, register POST endpoints.
- stats() flattens every component's counters into one name -> int mapping.

Threading
---------
One lock covers admission and callbacks, so admit() calls are linearizable: two
workers admitting the same URL get exactly one "admitted". Components keep their own
small locks for counters; whenever both are held, the coordinator lock is taken first.
Nothing inside the lock does I/O. DOM signature extraction (the only heavy CPU step)
runs on the caller's thread before the lock is taken: record_fetch_result peeks at
the group's state and sample count unlocked to decide whether to extract, and
DomVerifier.record checks both again under the lock.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .classifier import ResourceClassifier, ResourceKind, should_request
from .config import Config
from .decision import Decision, Reason
from .dom import DomVerifier, extract_signature
from .errors import UrlParseError
from .extractor import UrlExtractor
from .layered import LayeredDeduper
from .normalizer import UrlNormalizer
from .posts import PostDeduper, PostRecord
from .quality import QualityFilter, QualityVerdict
from .scope import ScopeController
from .scoring import BusinessScorer, Tier
from .structure import StructuralDeduper, VerificationState

logger = logging.getLogger(__name__)

_SCRIPT_KINDS = (ResourceKind.JAVASCRIPT, ResourceKind.CSS)


class AdmissionCoordinator:
    """
    Shared admission core for one crawl run.

    Typical usage:
        core = AdmissionCoordinator(Config())
        d = core.admit("/item?id=1", "http://t.example/")
        if d.allow:
            fetch(d.canonical_url)
            core.record_fetch_result(d.canonical_url, 200, 120, html=body)
    """

    # --------------------------- lifecycle & wiring ---------------------------

    def __init__(self, cfg: Optional[Config] = None):
        self.cfg = cfg or Config()
        # Configuration errors are fatal here, before any admission happens.
        self.cfg.validate()

        self.normalizer = UrlNormalizer(keep_fragment=self.cfg.keep_fragment)
        self.quality = QualityFilter(self.cfg.quality)
        self.scope = ScopeController(self.cfg.scope)
        self.classifier = ResourceClassifier(
            self.cfg.effective_target_domains, self.cfg.scope.allow_subdomains
        )
        self.layered = LayeredDeduper()
        self.structure = StructuralDeduper(self.cfg.dedup.max_per_pattern_same_group)
        self.dom = DomVerifier(
            sample_count=self.cfg.dedup.sample_count,
            threshold=self.cfg.dedup.dom_threshold,
            enabled=self.cfg.dedup.enable_dom_verification,
        )
        self.scorer = BusinessScorer(self.cfg.scoring)
        self.posts = PostDeduper(keep_fragment=self.cfg.keep_fragment)
        self.extractor = UrlExtractor()

        # Shared state across fetcher threads.
        self.lock = threading.Lock()
        self.visited: set = set()
        self._assets: Dict[str, ResourceKind] = {}
        self.counters: Dict[str, int] = defaultdict(int)

        logger.info(
            "admission core ready (scope=%s, dom_verification=%s, adaptive=%s)",
            ",".join(self.cfg.scope.include_domains) or "*",
            self.cfg.dedup.enable_dom_verification,
            self.cfg.scoring.enable_adaptive,
        )

    # ------------------------------- admission -------------------------------

    def admit(self, raw: str, base: str, depth: Optional[int] = None) -> Decision:
        """
        Decide whether to enqueue one raw candidate.

        Protocol-relative candidates have two canonical forms; the returned Decision
        is for the base's scheme and the other form is in decision.alternates.
        """
        decisions = self.admit_all(raw, base, depth)
        primary = decisions[0]
        primary.alternates = decisions[1:]
        return primary

    def admit_all(self, raw: str, base: str, depth: Optional[int] = None) -> List[Decision]:
        """One Decision per canonical form of the candidate."""
        return self._admit_candidate(raw, base, depth, None)

    def _admit_candidate(
        self, raw: str, base: str, depth: Optional[int], verdict: Optional[QualityVerdict]
    ) -> List[Decision]:
        try:
            canonicals = self.normalizer.normalize(raw, base)
        except UrlParseError as exc:
            with self.lock:
                return [self._reject(None, Reason.PARSE_ERROR, str(exc))]

        decisions = []
        for canonical in canonicals:
            with self.lock:
                if canonical in self.visited:
                    decisions.append(self._reject(canonical, Reason.ALREADY_VISITED))
                    continue
                if verdict is None:
                    verdict = self.quality.check(raw)
                decisions.append(self._admit_locked(canonical, depth, verdict))
        return decisions

    def _admit_locked(self, url: str, depth: Optional[int], verdict: QualityVerdict) -> Decision:
        if not verdict.passed:
            return self._reject(url, Reason.LOW_QUALITY, verdict.layer or "")

        scope = self.scope.check(url, depth)
        if not scope.in_scope:
            return self._reject(url, Reason.OUT_OF_SCOPE, f"{scope.rule}: {scope.detail}")

        kind = self.classifier.classify(url)
        if not should_request(kind):
            self._assets.setdefault(url, kind)
            reason = Reason.EXTERNAL_RESOURCE if kind is ResourceKind.EXTERNAL else Reason.STATIC_RESOURCE
            return self._reject(url, reason, kind.value, kind=kind)

        layer = self.layered.check(url)
        if layer.rejected:
            return self._reject(
                url, Reason.DUPLICATE, f"{layer.url_type.value} bucket: {layer.detail}", kind=kind,
                url_type=layer.url_type.value,
            )

        group, _ = self.structure.observe(url)
        self.dom.track(group)
        context = dict(kind=kind, url_type=layer.url_type.value, pattern=group.pattern)

        score = self.scorer.effective_score(self.scorer.base_score(url), group)
        tier = self.scorer.tier_for(score)
        high = tier is Tier.HIGH

        if not high and score < self.cfg.scoring.min_business_score and kind not in _SCRIPT_KINDS:
            group.skipped_count += 1
            return self._reject(url, Reason.LOW_BUSINESS_SCORE, f"score {score:.1f}", score, **context)

        cap = self.scorer.cap_for(tier)
        if not high and group.crawled_count >= cap:
            group.skipped_count += 1
            return self._reject(
                url, Reason.CAP_EXCEEDED, f"{group.crawled_count}/{cap} ({tier.value} tier)", score, **context
            )

        if group.state is VerificationState.VERIFIED_SIMILAR:
            group.skipped_count += 1
            return self._reject(
                url, Reason.PATTERN_VERIFIED_SIMILAR, f"mean similarity {group.avg_similarity:.3f}",
                score, **context
            )

        self.visited.add(url)
        group.crawled_count += 1
        self.counters["total"] += 1
        self.counters["allowed"] += 1
        return Decision(
            allow=True,
            canonical_url=url,
            reason=Reason.ADMITTED,
            priority=score,
            needs_dom_analysis=group.state is VerificationState.SAMPLING,
            detail=f"{tier.value} tier",
            kind=kind.value,
            url_type=layer.url_type.value,
            pattern=group.pattern,
        )

    def _reject(
        self,
        url: Optional[str],
        reason: str,
        detail: str = "",
        priority: float = 0.0,
        kind: Optional[ResourceKind] = None,
        url_type: Optional[str] = None,
        pattern: Optional[str] = None,
    ) -> Decision:
        self.counters["total"] += 1
        self.counters[f"rejected.{Reason.code(reason)}"] += 1
        logger.debug("reject %s: %s %s", url, reason, detail)
        return Decision(
            allow=False,
            canonical_url=url,
            reason=reason,
            priority=priority,
            detail=detail,
            kind=kind.value if kind is not None else None,
            url_type=url_type,
            pattern=pattern,
        )

    # ----------------------------- fetch callbacks ----------------------------

    def record_fetch_result(
        self,
        canonical: str,
        status: int,
        response_time_ms: float,
        html: Optional[str] = None,
        new_links_found: bool = False,
        new_forms_found: bool = False,
        new_apis_found: bool = False,
    ) -> None:
        """Feed one fetch outcome back into the URL's pattern group."""
        try:
            url = self.normalizer.canonicalize(canonical)
        except UrlParseError as exc:
            logger.warning("fetch result for unparseable URL %r: %s", canonical, exc)
            with self.lock:
                self.counters["callbacks.invalid"] += 1
            return

        group = self.structure.group_for_url(url)
        wants_sample = (
            html is not None
            and group is not None
            and self.dom.enabled
            and not group.state.terminal
            and len(group.signatures) < self.dom.sample_count
        )
        # CPU-only, outside the lock
        signature = extract_signature(html) if wants_sample else None

        with self.lock:
            self.counters["callbacks.total"] += 1
            if group is None or url not in self.visited:
                self.counters["callbacks.unknown"] += 1
                logger.warning("fetch result for a URL that was never admitted: %s", url)
                return
            self.scorer.record_result(
                group, status, response_time_ms,
                new_links=new_links_found, new_forms=new_forms_found, new_apis=new_apis_found,
            )
            if signature is not None:
                self.dom.record(group, signature)

    # ---------------------------------- POST ----------------------------------

    def admit_post(self, url: str, method: str, param_names: Iterable[str]) -> bool:
        return self.posts.admit(url, method, param_names)

    # -------------------------------- discovery -------------------------------

    def discover(
        self,
        page_url: str,
        body: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        content_type: str = "text/html",
        depth: Optional[int] = None,
    ) -> List[Tuple[str, Decision]]:
        """
        Extract candidates from one response and admit them.

        Garbage is dropped by the quality filter before normalization. Returns
        (raw candidate, decision) pairs, alternates flattened. POST endpoints found in
        HTML/JS are registered through admit_post.
        """
        candidates = []
        if headers:
            candidates += self.extractor.extract_headers(headers, page_url)
        if body:
            ct = (content_type or "").lower()
            if "javascript" in ct or "ecmascript" in ct:
                candidates += self.extractor.extract_js(body, page_url)
                posts = self.extractor.extract_js_posts(body, page_url)
            elif "css" in ct:
                candidates += self.extractor.extract_css(body, page_url)
                posts = []
            else:
                candidates += self.extractor.extract_html(body, page_url)
                posts = self.extractor.extract_post_requests(body, page_url)
            for req in posts:
                try:
                    target = self.normalizer.normalize(req.url, page_url)[0]
                except UrlParseError as exc:
                    logger.debug("skipping POST target %r: %s", req.url, exc)
                    continue
                self.admit_post(target, req.method, req.param_names)

        out: List[Tuple[str, Decision]] = []
        for cand in candidates:
            verdict = self.quality.check(cand.value)
            if not verdict.passed:
                with self.lock:
                    decision = self._reject(None, Reason.LOW_QUALITY, verdict.layer or "")
                out.append((cand.value, decision))
                continue
            for decision in self._admit_candidate(cand.value, cand.base, depth, verdict):
                out.append((cand.value, decision))
        return out

    # -------------------------------- reporting -------------------------------

    def is_visited(self, url: str) -> bool:
        try:
            canonical = self.normalizer.canonicalize(url)
        except UrlParseError:
            return False
        with self.lock:
            return canonical in self.visited

    def assets(self) -> List[Tuple[str, str]]:
        """(url, kind) for every resource recorded but not requested."""
        with self.lock:
            return [(url, kind.value) for url, kind in self._assets.items()]

    def pattern_report(self) -> List[Dict[str, object]]:
        with self.lock:
            return [g.summary() for g in self.structure.groups()]

    def post_records(self) -> List[PostRecord]:
        return self.posts.records()

    def stats(self) -> Dict[str, int]:
        with self.lock:
            out = {f"coordinator.{k}": v for k, v in self.counters.items()}
            out["coordinator.visited"] = len(self.visited)
            out["coordinator.assets"] = len(self._assets)
            components = (
                ("normalizer", self.normalizer),
                ("quality", self.quality),
                ("scope", self.scope),
                ("classifier", self.classifier),
                ("layered", self.layered),
                ("structure", self.structure),
                ("dom", self.dom),
                ("scoring", self.scorer),
                ("posts", self.posts),
                ("extractor", self.extractor),
            )
            for prefix, component in components:
                for name, value in component.stats().items():
                    out[f"{prefix}.{name}"] = value
        return out
