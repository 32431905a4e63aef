"""
Tests for the quality filter cascade.
"""
import pytest

from surfacemap.config import QualityConfig
from surfacemap.extractor import UrlExtractor
from surfacemap.quality import QualityFilter


@pytest.fixture
def qf():
    return QualityFilter()


class TestRejections:
    """Each layer rejects what it is meant to catch."""

    @pytest.mark.parametrize("value,layer", [
        ("a", "length"),
        ("x" * 501, "length"),
        ("function", "keyword"),
        ("return", "keyword"),
        ("undefined", "keyword"),
        ("margin-top", "keyword"),
        ("application/json", "keyword"),
        ("POST", "keyword"),
        ("user.id", "pattern"),
        ("handle()", "pattern"),
        ("a && b", "pattern"),
        ("<div class=x>", "pattern"),
        ("{foo}", "pattern"),
        ("/^\\d+$/g", "pattern"),
        ("%41%42%43%44", "encoding"),
        ("%20%20%20%20", "encoding"),
        ("", "length"),
        ("\x00\x01\x02a", "control"),
        ("x[{y", "structure"),
        ("#fff", "symbol"),
        ("12345", "symbol"),
        ("../", "symbol"),
    ])
    def test_rejected_at_layer(self, qf, value, layer):
        verdict = qf.check(value)
        assert not verdict.passed
        assert verdict.layer == layer

    def test_garbage_from_javascript(self, qf):
        """Identifiers pulled out of a JS function never look like URLs."""
        for token in ("function", "return", "user.id", "handle()"):
            assert not qf.is_high_quality(token)

    def test_garbage_from_javascript_yields_no_candidates(self):
        js = "function handle(){ return user.id; }"
        assert UrlExtractor().extract_js(js, "http://t.example/") == []


class TestPasses:
    @pytest.mark.parametrize("value", [
        "/admin/",
        "/login",
        "/api/v1/users",
        "product-1.html",
        "main.js",
        "www.example.com",
        "http://t.example/item?id=1",
        "//cdn.example.com/a.js",
        "../up/index.php",
        "showimage.php?file=./pictures/1.jpg",
    ])
    def test_real_urls_pass(self, qf, value):
        assert qf.check(value).passed, value

    def test_decision_depends_only_on_string(self, qf):
        first = qf.check("/search?q=x")
        second = qf.check("/search?q=x")
        assert first == second


class TestConfigAndStats:
    def test_custom_length_bounds(self):
        qf = QualityFilter(QualityConfig(min_url_length=5))
        assert qf.check("/abc").layer == "length"
        assert qf.check("/abcd").passed

    def test_counters(self, qf):
        qf.check("/ok")
        qf.check("function")
        qf.check("user.id")
        stats = qf.stats()
        assert stats["total"] == 3
        assert stats["passed"] == 1
        assert stats["rejected.keyword"] == 1
        assert stats["rejected.pattern"] == 1
