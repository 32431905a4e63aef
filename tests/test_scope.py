"""
Tests for the scope controller.
"""
import pytest

from surfacemap.config import ScopeConfig
from surfacemap.errors import ConfigError
from surfacemap.scope import ScopeController, path_matches


def scope(**kwargs):
    return ScopeController(ScopeConfig(**kwargs))


class TestDomains:
    def test_no_rules_allows_everything(self):
        assert scope().is_in_scope("http://anything.example/x")

    def test_include_domain_with_subdomains(self):
        s = scope(include_domains=("t.example",))
        assert s.is_in_scope("http://t.example/")
        assert s.is_in_scope("https://api.t.example/v1")
        v = s.check("http://cdn.example.com/a.js")
        assert not v.in_scope
        assert v.rule == "domain"

    def test_subdomains_disabled(self):
        s = scope(include_domains=("t.example",), allow_subdomains=False)
        assert not s.is_in_scope("http://api.t.example/")

    def test_exclude_beats_include(self):
        s = scope(include_domains=("*.t.example",), exclude_domains=("admin.t.example",))
        assert s.is_in_scope("http://www.t.example/")
        assert not s.is_in_scope("http://admin.t.example/")


class TestRules:
    def test_protocol(self):
        s = scope(allow_http=False)
        v = s.check("http://t.example/")
        assert (v.in_scope, v.rule) == (False, "protocol")
        assert s.is_in_scope("https://t.example/")

    def test_depth(self):
        s = scope(max_depth=2)
        assert s.is_in_scope("http://t.example/", depth=2)
        assert s.check("http://t.example/", depth=3).rule == "depth"
        assert s.is_in_scope("http://t.example/")

    def test_paths(self):
        s = scope(include_paths=("/shop/*", "/login"), exclude_paths=("*.bak",))
        assert s.is_in_scope("http://t.example/shop/item")
        assert s.is_in_scope("http://t.example/login")
        assert s.check("http://t.example/blog").rule == "path"
        assert not s.is_in_scope("http://t.example/shop/db.bak")

    def test_include_extensions(self):
        s = scope(include_extensions=("php", ".html"))
        assert s.is_in_scope("http://t.example/a.php")
        assert s.is_in_scope("http://t.example/b.html")
        assert s.is_in_scope("http://t.example/dir/")
        assert s.check("http://t.example/c.asp").rule == "extension"

    def test_exclude_extensions_are_informational(self):
        s = scope(exclude_extensions=("js",))
        assert s.is_in_scope("http://t.example/app.js")
        assert s.extension_excluded("http://t.example/app.js")
        assert s.stats()["excluded_extension_seen"] == 1

    def test_params(self):
        s = scope(include_params=("id",), exclude_params=("debug",))
        assert s.is_in_scope("http://t.example/p?id=1")
        assert not s.is_in_scope("http://t.example/p?id=1&debug=1")
        assert not s.is_in_scope("http://t.example/p?x=1")
        assert s.check("http://t.example/p").rule == "params"

    def test_regex(self):
        s = scope(include_regex=r"/app/", exclude_regex=r"logout")
        assert s.is_in_scope("http://t.example/app/home")
        assert not s.is_in_scope("http://t.example/app/logout")
        assert s.check("http://t.example/other").rule == "regex"

    def test_invalid_regex_is_config_error(self):
        with pytest.raises(ConfigError):
            scope(include_regex="(")


class TestPathMatches:
    def test_forms(self):
        assert path_matches("/login", "/login")
        assert path_matches("/admin/users", "/admin/*")
        assert path_matches("/x/index.php", "*.php")
        assert not path_matches("/login2", "/login")


class TestStats:
    def test_counters_and_caches(self):
        s = scope(include_domains=("t.example",))
        s.check("http://t.example/a")
        s.check("http://t.example/a")
        s.check("http://other.example/")
        stats = s.stats()
        assert stats["total"] == 3
        assert stats["passed"] == 2
        assert stats["rejected.domain"] == 1
        assert stats["cache.hosts"] == 2
        assert stats["cache.paths"] == 1
