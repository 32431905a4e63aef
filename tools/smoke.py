# tools/smoke.py
"""
Zero-network smoke checks to make sure the project is wired correctly.

What it does:
  1) Imports all modules (fails fast if paths/packaging are broken).
  2) Builds a Config with overrides and prints key fields.
  3) Sanity-checks URL canonicalization and pattern derivation.
  4) Runs the extractor on a tiny HTML snippet.
  5) Pushes a few candidates through the admission coordinator.

What it does NOT do:
  - No network calls, no fetching. Keep it safe/offline.

Usage:
    python3 tools/smoke.py
"""

from surfacemap.config import Config, ScopeConfig
from surfacemap.coordinator import AdmissionCoordinator
from surfacemap.decision import Reason
from surfacemap.extractor import UrlExtractor
from surfacemap.normalizer import canonicalize
from surfacemap.patterns import derive_pattern


def check_imports_and_config():
    print("[1] Imports OK")
    cfg = Config().with_overrides(scope=ScopeConfig(include_domains=("www.example.com",)))
    cfg.validate()
    print("[2] Config OK")
    print(f"    scope={cfg.scope.include_domains}, sample_count={cfg.dedup.sample_count}")
    print(f"    caps low/mid/high={cfg.scoring.cap_low}/{cfg.scoring.cap_mid}/{cfg.scoring.cap_high}")
    return cfg


def check_url_helpers():
    print("[3] URL helper sanity")
    raw = "HTTP://Sub.Example.com:80/Path/../index.html?x=1#frag"
    c = canonicalize(raw)
    p = derive_pattern("https://example.com/user/42?b=2&a=1")
    print(f"    raw: {raw}")
    print(f"    canonical: {c}")
    print(f"    pattern: {p}")
    assert c == "http://sub.example.com/index.html?x=1"
    assert p == "https://example.com/user/{num}?a=&b="


def check_extractor():
    print("[4] Extractor smoke")
    html = b"""
    <html><body>
      <a href="/about#team">About</a>
      <a href="https://example.com/contact">Contact</a>
      <a href="mailto:hr@example.com">Email</a>
      <button onclick="window.open('/popup.php')">Open</button>
      <script>fetch('/api/items');</script>
    </body></html>
    """
    found = [c.value for c in UrlExtractor().extract_html(html, "https://www.example.com/start")]
    print(f"    extracted: {found}")
    assert "/about#team" in found
    assert "/popup.php" in found
    assert "/api/items" in found
    assert all(not v.startswith("mailto:") for v in found)


def check_admission(cfg):
    print("[5] Admission smoke")
    core = AdmissionCoordinator(cfg)
    base = "https://www.example.com/"
    first = core.admit("/item?id=1", base)
    again = core.admit("/item?id=1", base)
    garbage = core.admit("function", base)
    print(f"    first={first.reason}, again={again.reason}, garbage={garbage.reason}")
    assert first.allow
    assert again.reason == Reason.ALREADY_VISITED
    assert garbage.reason == Reason.LOW_QUALITY


def main():
    cfg = check_imports_and_config()
    check_url_helpers()
    check_extractor()
    check_admission(cfg)
    print("\nSmoke tests passed. If this works, your project structure is sane.")


if __name__ == "__main__":
    main()
