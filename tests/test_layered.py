"""
Tests for URL type classification and per-type dedup.
"""
import pytest

from surfacemap.layered import (
    LayeredDeduper, LayerOutcome, UrlType, UrlTypeClassifier, file_value_variant, raw_file_values,
)


class TestUrlType:
    """First matching bucket wins."""

    @pytest.mark.parametrize("url,url_type", [
        ("http://t.example/a/logo.png", UrlType.STATIC_ASSET),
        ("http://t.example/app.js?v=3", UrlType.STATIC_ASSET),
        ("http://t.example/api/users", UrlType.AJAX),
        ("http://t.example/v1/orders/9", UrlType.AJAX),
        ("http://t.example/data.json", UrlType.AJAX),
        ("http://t.example/show.php?file=a.txt", UrlType.FILE_PARAM),
        ("http://t.example/user/42", UrlType.RESTFUL),
        ("http://t.example/product-12.html", UrlType.RESTFUL),
        ("http://t.example/search?q=a&page=2", UrlType.MULTI_PARAM),
        ("http://t.example/item?id=1", UrlType.NORMAL),
        ("http://t.example/about", UrlType.NORMAL),
    ])
    def test_classify(self, url, url_type):
        assert UrlTypeClassifier().classify(url) is url_type


class TestFileValueVariant:
    def test_variants(self):
        assert file_value_variant("./pictures/1.jpg") == "normal"
        assert file_value_variant("..%2Fetc%2Fpasswd") == "url-encoded"
        assert file_value_variant("../../etc/passwd") == "path-traversal"
        assert file_value_variant("%2e%2e/secret") == "path-traversal"


class TestLayeredDeduper:
    def setup_method(self):
        self.d = LayeredDeduper()

    def test_exact_buckets(self):
        url = "http://t.example/user/42"
        assert self.d.check(url).outcome is LayerOutcome.NEW
        assert self.d.check("http://t.example/user/43").outcome is LayerOutcome.NEW
        verdict = self.d.check(url)
        assert verdict.outcome is LayerOutcome.DUPLICATE
        assert verdict.rejected

    def test_pattern_buckets_repeat_then_duplicate(self):
        assert self.d.check("http://t.example/item?id=1").outcome is LayerOutcome.NEW
        repeat = self.d.check("http://t.example/item?id=2")
        assert repeat.outcome is LayerOutcome.REPEAT
        assert not repeat.rejected
        assert repeat.key == "http://t.example/item?id="
        assert self.d.check("http://t.example/item?id=2").outcome is LayerOutcome.DUPLICATE

    def test_file_param_keeps_one_url_per_variant(self):
        base = "http://t.example/show.php?file="
        assert self.d.check(base + "a.txt").outcome is LayerOutcome.NEW

        sampled = self.d.check(base + "b.txt")
        assert sampled.outcome is LayerOutcome.DUPLICATE
        assert sampled.rejected
        assert sampled.detail == "variant already sampled"

        encoded = self.d.check(base + "..%2Fb.txt")
        assert encoded.outcome is LayerOutcome.NEW
        assert encoded.detail == "url-encoded"
        traversal = self.d.check(base + "../../etc/passwd")
        assert traversal.outcome is LayerOutcome.NEW
        assert traversal.detail == "path-traversal"

        assert self.d.check(base + "../x").outcome is LayerOutcome.DUPLICATE
        assert self.d.check(base + "a.txt").detail == "same URL"

    def test_encoded_slash_is_not_decoded_away(self):
        base = "http://t.example/show.php?file="
        assert self.d.check(base + "x.txt").outcome is LayerOutcome.NEW
        assert self.d.check(base + "dir%2Fy.txt").outcome is LayerOutcome.NEW
        assert self.d.check(base + "dir%2Fz.txt").outcome is LayerOutcome.DUPLICATE

    def test_file_param_without_value_is_normal_variant(self):
        assert self.d.check("http://t.example/show.php?file").outcome is LayerOutcome.NEW

    def test_raw_file_values(self):
        assert raw_file_values("file=..%2Fa&id=3&Path=%2e%2e/b&view") == ["..%2Fa", "%2e%2e/b"]

    def test_stats(self):
        self.d.check("http://t.example/item?id=1")
        self.d.check("http://t.example/item?id=2")
        self.d.check("http://t.example/api/x")
        stats = self.d.stats()
        assert stats["normal.total"] == 2
        assert stats["normal.new"] == 1
        assert stats["normal.repeat"] == 1
        assert stats["normal.patterns"] == 1
        assert stats["ajax.unique"] == 1
