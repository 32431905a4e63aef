"""
Tests for the pattern-group arena.
"""
import pytest

from surfacemap.errors import InternalInvariantViolation
from surfacemap.structure import StructuralDeduper, VerificationState


class TestObserve:
    def setup_method(self):
        self.s = StructuralDeduper(max_representatives=2)

    def test_same_pattern_same_group(self):
        g1, created1 = self.s.observe("http://t.example/item?id=1")
        g2, created2 = self.s.observe("http://t.example/item?id=2")
        assert created1 and not created2
        assert g1 is g2
        assert g1.seen_count == 2
        assert g1.first_url == "http://t.example/item?id=1"
        assert g1.state is VerificationState.NEW

    def test_representatives_bounded(self):
        for i in range(5):
            group, _ = self.s.observe(f"http://t.example/item?id={i}")
        assert group.representatives == ["http://t.example/item?id=0", "http://t.example/item?id=1"]

    def test_param_samples(self):
        for i in range(15):
            group, _ = self.s.observe(f"http://t.example/item?id={i}")
        assert group.param_names == {"id"}
        assert len(group.param_samples["id"]) == 10

    def test_lookup_never_creates(self):
        assert self.s.group_for_url("http://t.example/nope") is None
        assert self.s.groups() == []

    def test_group_for_url_and_get(self):
        group, _ = self.s.observe("http://t.example/user/7")
        assert self.s.group_for_url("http://t.example/user/7") is group
        assert self.s.get(group.id) is group
        assert self.s.representatives() == {"http://t.example/user/{num}": ["http://t.example/user/7"]}

    def test_unknown_id_is_invariant_violation(self):
        with pytest.raises(InternalInvariantViolation):
            self.s.get(3)

    def test_stats(self):
        self.s.observe("http://t.example/a?x=1")
        self.s.observe("http://t.example/a?x=2")
        self.s.observe("http://t.example/b")
        assert self.s.stats() == {"patterns": 2, "urls": 3, "duplicate_candidates": 1}


class TestPatternGroupRates:
    def test_rates_and_summary(self):
        s = StructuralDeduper()
        group, _ = s.observe("http://t.example/item?id=1")
        assert group.success_rate == 0.0
        assert group.discovery_rate == 0.0
        group.fetch_count = 4
        group.status_codes.update({200: 3, 500: 1})
        group.productive_fetches = 1
        assert group.success_rate == 0.75
        assert group.discovery_rate == 0.25
        summary = group.summary()
        assert summary["pattern"] == "http://t.example/item?id="
        assert summary["state"] == "new"
        assert summary["params"] == ["id"]
