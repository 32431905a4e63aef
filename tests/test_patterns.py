"""
Tests for pattern derivation.
"""
from surfacemap.patterns import derive_pattern, pattern_hash, pattern_path, query_keys, query_pairs


class TestDerivePattern:
    """Pattern strings group URLs that differ only in values."""

    def test_numeric_segment_and_sorted_keys(self):
        assert derive_pattern("http://t.example/item/42?b=2&a=1") == "http://t.example/item/{num}?a=&b="

    def test_query_key_permutation_is_stable(self):
        a = derive_pattern("http://t.example/p?x=1&y=2&z=3")
        b = derive_pattern("http://t.example/p?z=9&x=8&y=7")
        assert a == b

    def test_value_changes_are_stable(self):
        assert derive_pattern("http://t.example/item?id=1") == derive_pattern("http://t.example/item?id=999")

    def test_slug_with_number(self):
        assert derive_pattern("http://t.example/product-12.html") == "http://t.example/product-{num}.html"
        assert derive_pattern("http://t.example/post_7") == "http://t.example/post_{num}"

    def test_uuid_and_hash_segments(self):
        url = "http://t.example/o/550e8400-e29b-41d4-a716-446655440000/f/0123456789abcdef0123"
        assert derive_pattern(url) == "http://t.example/o/{uuid}/f/{hash}"

    def test_duplicate_keys_collapse(self):
        assert derive_pattern("http://t.example/s?a=1&a=2") == "http://t.example/s?a="

    def test_plain_segments_untouched(self):
        assert pattern_path("/about/team") == "/about/team"

    def test_fragment_route_patterned(self):
        assert derive_pattern("http://t.example/#/user/7") == "http://t.example/#/user/{num}"


class TestQueryHelpers:
    def test_query_keys_from_url_and_query(self):
        assert query_keys("http://t.example/?b=1&a=2&b=3") == ["b", "a"]
        assert query_keys("user%5Fid=1&x") == ["user_id", "x"]

    def test_query_pairs_keeps_duplicates(self):
        assert query_pairs("a=1&a=2&b") == [("a", "1"), ("a", "2"), ("b", "")]

    def test_pattern_hash_is_md5_hex(self):
        h = pattern_hash("http://t.example/item?id=")
        assert len(h) == 32
        assert h == pattern_hash("http://t.example/item?id=")
        assert h != pattern_hash("http://t.example/item?uid=")

    def test_md5_like_segment_is_hash_not_num(self):
        url = "http://t.example/files/d41d8cd98f00b204e9800998ecf8427e"
        assert derive_pattern(url) == "http://t.example/files/{hash}"
