"""
Tests for POST endpoint dedup.
"""
from surfacemap.posts import PostDeduper, post_fingerprint


class TestPostDeduper:
    def setup_method(self):
        self.p = PostDeduper()

    def test_same_endpoint_admitted_once(self):
        """Three logins with different values are one endpoint."""
        url = "http://t.example/login"
        assert self.p.admit(url, "POST", ["username", "password"]) is True
        assert self.p.admit(url, "POST", ["password", "username"]) is False
        assert self.p.admit(url, "post", ["username", "password", "username"]) is False
        records = self.p.records()
        assert len(records) == 1
        assert records[0].count == 3
        assert records[0].param_names == ("password", "username")

    def test_url_is_canonicalized(self):
        assert self.p.admit("HTTP://T.example:80/login", "POST", ["u"])
        assert not self.p.admit("http://t.example/login", "POST", ["u"])

    def test_different_params_or_method_are_new(self):
        url = "http://t.example/login"
        assert self.p.admit(url, "POST", ["username", "password"])
        assert self.p.admit(url, "POST", ["username", "password", "otp"])
        assert self.p.admit(url, "PUT", ["username", "password"])

    def test_bad_url(self):
        assert self.p.admit("javascript:void(0)", "POST", ["a"]) is False
        assert self.p.stats()["rejected.parse_error"] == 1

    def test_stats(self):
        self.p.admit("http://t.example/a", "POST", [])
        self.p.admit("http://t.example/a", "POST", [])
        stats = self.p.stats()
        assert stats["total"] == 2
        assert stats["admitted"] == 1
        assert stats["rejected.duplicate"] == 1
        assert stats["unique"] == 1


class TestFingerprint:
    def test_order_and_case_insensitive(self):
        a = post_fingerprint("post", "http://t.example/x", ["b", "a"])
        b = post_fingerprint("POST", "http://t.example/x", ["a", "b", "a"])
        assert a == b
        assert a != post_fingerprint("POST", "http://t.example/y", ["a", "b"])
