"""
Tests for DOM signatures and the sampling verifier.
"""
import pytest

from surfacemap.dom import (
    DomVerifier,
    extract_signature,
    hamming_distance,
    mean_pairwise_similarity,
    similarity,
    simhash,
)
from surfacemap.structure import StructuralDeduper, VerificationState


def _group(url="http://t.example/product-1.html"):
    group, _ = StructuralDeduper().observe(url)
    return group


class TestSignature:
    def test_counts(self, pages):
        sig = extract_signature(pages.product(1))
        assert sig.link_count == 2
        assert sig.form_count == 1
        assert sig.input_count == 1
        assert sig.tag_counts["a"] == 2
        assert sig.depth >= 4

    def test_text_does_not_matter(self, pages):
        a = extract_signature(pages.product(1))
        b = extract_signature(pages.product(99))
        assert a.struct_hash == b.struct_hash
        assert a.simhash == b.simhash
        assert similarity(a, b) == 1.0

    def test_bytes_input(self, pages):
        assert extract_signature(pages.plain.encode("utf-8")) == extract_signature(pages.plain)

    def test_empty_document(self):
        sig = extract_signature("")
        assert sig.node_count == 0
        assert sig.depth == 0

    def test_deep_nesting(self):
        html = "<div>" * 600 + "</div>" * 600
        assert extract_signature(html).depth == 600


class TestSimilarity:
    def test_different_layouts_score_low(self, pages):
        sigs = [extract_signature(p) for p in (pages.plain, pages.form, pages.links)]
        assert mean_pairwise_similarity(sigs) < 0.85

    def test_symmetric_and_bounded(self, pages):
        a, b = extract_signature(pages.plain), extract_signature(pages.form)
        assert similarity(a, b) == pytest.approx(similarity(b, a))
        assert 0.0 <= similarity(a, b) <= 1.0

    def test_simhash_helpers(self, pages):
        assert hamming_distance(0b1011, 0b0001) == 2
        assert simhash({"html/body": 3}) == simhash({"html/body": 3})
        assert mean_pairwise_similarity([extract_signature(pages.plain)]) == 1.0


class TestDomVerifier:
    def test_similar_pages_become_verified_similar(self, pages):
        v = DomVerifier(sample_count=3, threshold=0.85)
        group = _group()
        assert v.track(group) is VerificationState.SAMPLING
        for i in range(1, 3):
            assert v.record(group, extract_signature(pages.product(i))) is VerificationState.SAMPLING
        assert v.record(group, extract_signature(pages.product(3))) is VerificationState.VERIFIED_SIMILAR
        assert group.avg_similarity == 1.0

    def test_different_pages_become_verified_different(self, pages):
        v = DomVerifier(sample_count=3, threshold=0.85)
        group = _group()
        for page in (pages.plain, pages.form, pages.links):
            v.record(group, extract_signature(page))
        assert group.state is VerificationState.VERIFIED_DIFFERENT
        assert group.avg_similarity < 0.85

    def test_terminal_state_never_changes(self, pages):
        v = DomVerifier(sample_count=2)
        group = _group()
        v.record(group, extract_signature(pages.product(1)))
        v.record(group, extract_signature(pages.product(2)))
        assert group.state is VerificationState.VERIFIED_SIMILAR
        v.record(group, extract_signature(pages.form))
        assert group.state is VerificationState.VERIFIED_SIMILAR
        assert len(group.signatures) == 2

    def test_disabled_does_nothing(self, pages):
        v = DomVerifier(enabled=False)
        group = _group()
        assert v.track(group) is VerificationState.NEW
        assert v.record(group, extract_signature(pages.plain)) is VerificationState.NEW
        assert group.signatures == []

    def test_stats(self, pages):
        v = DomVerifier(sample_count=2)
        group = _group()
        v.record(group, extract_signature(pages.product(1)))
        v.record(group, extract_signature(pages.product(2)))
        stats = v.stats()
        assert stats["sampling"] == 1
        assert stats["signatures"] == 2
        assert stats["verified-similar"] == 1
