# surfacemap/extractor.py
"""
URL extraction from HTML, JavaScript, CSS and response headers.

Why this file exists:
- Pages hide endpoints in far more places than <a href>. Forms, iframes, srcsets,
  data-* attributes, inline handlers, scripts, stylesheets and redirect headers all
  point somewhere.
- HTML on the internet is a glorious mess. BeautifulSoup is good at surviving it.

Public API:
    UrlExtractor().extract_html(html, base_url)       -> list[Candidate]
    UrlExtractor().extract_js(js, base_url)           -> list[Candidate]
    UrlExtractor().extract_css(css, base_url)         -> list[Candidate]
    UrlExtractor().extract_headers(headers, base_url) -> list[Candidate]
    UrlExtractor().extract_post_requests(html, base_url) -> list[PostRequest]

JavaScript is only mined at anchored sites: complete http(s) URLs, string arguments of
known network calls (fetch, $.ajax, axios, XMLHttpRequest.open, ...), assignments to
apiUrl / baseURL / endpoint, and string literals that look like API paths or server-side
pages. A greedy "anything with a slash" regex over JS mostly finds identifiers and CSS
tokens.

Candidates are raw strings. Resolution against the base and canonicalization happen
later in the normalizer.
"""

import logging
import re
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Tuple, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    value: str      # raw string as found
    source: str     # provenance, e.g. "a@href", "js:fetch", "css:url", "header:location"
    base: str       # absolute URL to resolve against


@dataclass(frozen=True)
class PostRequest:
    url: str
    method: str
    param_names: Tuple[str, ...] = ()
    content_type: str = "application/x-www-form-urlencoded"
    source: str = "html-form"


# tag -> attributes that hold a URL
URL_ATTRIBUTES: Dict[str, Tuple[str, ...]] = {
    "a": ("href",),
    "area": ("href",),
    "link": ("href",),
    "form": ("action",),
    "iframe": ("src",),
    "frame": ("src",),
    "embed": ("src",),
    "object": ("data",),
    "img": ("src", "srcset"),
    "source": ("src", "srcset"),
    "script": ("src",),
    "video": ("src", "poster"),
    "audio": ("src",),
    "track": ("src",),
    "input": ("src",),
    "button": ("formaction",),
}
SRCSET_ATTRIBUTES = frozenset({"srcset"})

DATA_ATTRIBUTES = frozenset({
    "data-url", "data-href", "data-src", "data-link", "data-ajax", "data-target",
})

EVENT_ATTRIBUTES = frozenset({
    "onclick", "onmouseover", "onmousedown", "ondblclick", "onload", "onerror",
    "onsubmit", "onfocus", "onblur", "onchange",
})

_SKIP_SCHEMES = ("mailto:", "tel:", "data:", "about:", "blob:", "sms:")

# Quoted string without whitespace; "q" is the quote, "u" the content
_Q = r"""(?P<q>['"`])(?P<u>[^'"`\s<>]+?)(?P=q)"""

_COMPLETE_URL_RE = re.compile(r"""(?<![\w/])https?://[^\s'"`<>()\[\]{}\\,;|^*]+""")

JS_CONTEXTS: List[Tuple[str, "re.Pattern[str]"]] = [
    ("js:fetch", re.compile(r"\bfetch\s*\(\s*" + _Q)),
    ("js:jquery.ajax", re.compile(r"(?:\$|\bjQuery)\.ajax\s*\(\s*\{[^}]*?\burl\s*:\s*" + _Q)),
    ("js:jquery.ajax", re.compile(r"(?:\$|\bjQuery)\.ajax\s*\(\s*" + _Q)),
    ("js:jquery.get", re.compile(r"(?:\$|\bjQuery)\.(?:get|post|getJSON)\s*\(\s*" + _Q)),
    ("js:axios", re.compile(r"\baxios\.(?:get|post|put|delete|patch|head)\s*\(\s*" + _Q)),
    ("js:xhr.open", re.compile(r"\.open\s*\(\s*['\"`][A-Za-z]+['\"`]\s*,\s*" + _Q)),
    ("js:sendBeacon", re.compile(r"\bnavigator\.sendBeacon\s*\(\s*" + _Q)),
    ("js:window.open", re.compile(r"\bwindow\.open\s*\(\s*" + _Q)),
    ("js:location", re.compile(r"\blocation(?:\.href)?\s*=(?!=)\s*" + _Q)),
    ("js:location", re.compile(r"\blocation\.(?:assign|replace)\s*\(\s*" + _Q)),
    ("js:assignment", re.compile(r"(?<![\w$])(?:apiUrl|baseURL|endpoint)\s*[:=](?!=)\s*" + _Q)),
]

_LITERAL_RE = re.compile(r"""(?P<q>['"`])(?P<u>[^'"`\s<>]{2,300}?)(?P=q)""")
_API_LITERAL_RE = re.compile(r"^/(?:api|v\d+|admin)(?:/[^\s]*)?$")
_FILE_LITERAL_RE = re.compile(
    r"^(?:\.{1,2}/|/)?[\w\-./]+\.(?:php|jsp|asp|aspx|do|action|html|htm)(?:\?[^\s]*)?$"
)

_CSS_URL_RE = re.compile(r"""url\(\s*(?P<q>['"]?)(?P<u>[^'")]+?)(?P=q)\s*\)""", re.IGNORECASE)
_CSS_IMPORT_RE = re.compile(r"""@import\s+(?P<q>['"])(?P<u>[^'"]+)(?P=q)""", re.IGNORECASE)

_REFRESH_URL_RE = re.compile(r"""url\s*=\s*['"]?(?P<u>[^'";]+)""", re.IGNORECASE)
_LINK_HEADER_RE = re.compile(r"<(?P<u>[^>]+)>")

# POST call sites in JavaScript
_JS_POSTS: List[Tuple[str, "re.Pattern[str]"]] = [
    ("js:jquery.post", re.compile(r"(?:\$|\bjQuery)\.post\s*\(\s*" + _Q + r"(?:\s*,\s*\{(?P<data>[^}]*)\})?")),
    ("js:axios", re.compile(
        r"\baxios\.(?P<m>post|put|patch|delete)\s*\(\s*" + _Q + r"(?:\s*,\s*\{(?P<data>[^}]*)\})?"
    )),
    ("js:xhr.open", re.compile(
        r"\.open\s*\(\s*['\"`](?P<m>POST|PUT|PATCH|DELETE)['\"`]\s*,\s*" + _Q, re.IGNORECASE
    )),
]
_JS_AJAX_BLOCK_RE = re.compile(r"(?:\$|\bjQuery)\.ajax\s*\(\s*\{(?P<body>[^}]*)")
_JS_FETCH_BLOCK_RE = re.compile(r"\bfetch\s*\(\s*" + _Q + r"\s*,\s*\{(?P<body>[^}]*)")
_OPTION_URL_RE = re.compile(r"""\burl\s*:\s*(?P<q>['"`])(?P<u>[^'"`\s]+?)(?P=q)""")
_OPTION_METHOD_RE = re.compile(r"""\b(?:type|method)\s*:\s*['"`](?P<m>\w+)['"`]""")
_OBJECT_KEY_RE = re.compile(r"""(?:^|[,{])\s*['"]?(?P<k>[A-Za-z_$][\w$]*)['"]?\s*:""")


def _is_navigable(value: str) -> bool:
    """
    Decide whether an attribute value is something worth handing on.

    Empty values, bare "#", and schemes that don't lead to an HTTP request
    (mailto:, tel:, data:, ...) are dropped. "javascript:" is handled separately:
    its body goes to the JS extractor.
    """
    if not value:
        return False
    v = value.strip()
    if not v or v == "#":
        return False
    return not v.lower().startswith(_SKIP_SCHEMES)


def _dedupe_keep_order(candidates: Iterable[Candidate]) -> List[Candidate]:
    """
    Remove repeated values but keep the first sighting (and its provenance).
    Order reflects on-page position, which is handy when reading decision logs.
    """
    seen = set()
    out: List[Candidate] = []
    for c in candidates:
        if c.value not in seen:
            seen.add(c.value)
            out.append(c)
    return out


def _srcset_urls(value: str) -> List[str]:
    """Each comma-delimited srcset item, first whitespace-delimited field."""
    out = []
    for item in value.split(","):
        parts = item.strip().split()
        if parts:
            out.append(parts[0])
    return out


def _object_keys(text: str) -> Tuple[str, ...]:
    if not text:
        return ()
    keys: List[str] = []
    for m in _OBJECT_KEY_RE.finditer(text):
        if m.group("k") not in keys:
            keys.append(m.group("k"))
    return tuple(keys)


def _as_text(data: Union[str, bytes]) -> str:
    if isinstance(data, bytes):
        # Bad bytes shouldn't stop discovery.
        return data.decode("utf-8", errors="ignore")
    return data or ""


class UrlExtractor:
    """Stateless apart from counters; one instance can serve every worker."""

    def __init__(self):
        self.lock = threading.Lock()
        self.counters: Dict[str, int] = defaultdict(int)

    def _count(self, name: str, n: int = 1) -> None:
        with self.lock:
            self.counters[name] += n

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return dict(self.counters)

    # ---------------------------------- HTML ----------------------------------

    def extract_html(self, html: Union[str, bytes], base_url: str) -> List[Candidate]:
        """
        Step-by-step:
          1) Parse with BeautifulSoup's built-in "html.parser".
          2) Honor <base href> as the resolution base for everything else.
          3) Walk every element: URL attributes, srcsets, meta refresh, data-* attributes,
             event handlers (-> JS), style attributes (-> CSS), inline script and style
             bodies.
          4) De-duplicate by value, keeping first-seen order.
        A single element that blows up is skipped; the rest of the page still counts.
        """
        soup = BeautifulSoup(_as_text(html), "html.parser")
        out: List[Candidate] = []

        page_base = base_url
        base_tag = soup.find("base", href=True)
        if base_tag is not None:
            href = base_tag.get("href", "").strip()
            if _is_navigable(href):
                out.append(Candidate(href, "base@href", base_url))
                page_base = urljoin(base_url, href)

        for element in soup.find_all(True):
            try:
                self._scan_element(element, page_base, out)
            except Exception as exc:
                # One bizarre element must not cost us the rest of the page.
                logger.debug("skipping <%s> on %s: %s", element.name, base_url, exc)
                self._count("segments.failed")

        result = _dedupe_keep_order(out)
        self._count("html.pages")
        self._count("html.candidates", len(result))
        return result

    def _scan_element(self, element, base: str, out: List[Candidate]) -> None:
        name = (element.name or "").lower()
        if name == "base":
            return

        for attr in URL_ATTRIBUTES.get(name, ()):
            value = element.get(attr)
            if not value or not isinstance(value, str):
                continue
            if attr in SRCSET_ATTRIBUTES:
                for url in _srcset_urls(value):
                    self._emit(url, f"{name}@{attr}", base, out)
            else:
                self._emit(value, f"{name}@{attr}", base, out)

        if name == "meta" and (element.get("http-equiv") or "").lower() == "refresh":
            m = _REFRESH_URL_RE.search(element.get("content") or "")
            if m:
                self._emit(m.group("u"), "meta@refresh", base, out)

        for attr, value in element.attrs.items():
            if not isinstance(value, str):
                continue
            lowered = attr.lower()
            if lowered in DATA_ATTRIBUTES:
                self._emit(value, f"{name}@{lowered}", base, out)
            elif lowered in EVENT_ATTRIBUTES:
                out.extend(self.extract_js(value, base, source=f"{name}@{lowered}"))
            elif lowered == "style":
                out.extend(self.extract_css(value, base, source=f"{name}@style"))

        if name == "script" and not element.get("src"):
            body = element.string or ""
            if body.strip():
                out.extend(self.extract_js(body, base))
        elif name == "style":
            body = element.string or ""
            if body.strip():
                out.extend(self.extract_css(body, base))

    def _emit(self, value: str, source: str, base: str, out: List[Candidate]) -> None:
        v = value.strip()
        if v.lower().startswith("javascript:"):
            out.extend(self.extract_js(v[len("javascript:"):], base, source=f"{source}:javascript"))
            return
        if _is_navigable(v):
            out.append(Candidate(v, source, base))

    # ------------------------------- JavaScript -------------------------------

    def extract_js(self, js: Union[str, bytes], base_url: str, source: str = "js") -> List[Candidate]:
        """Anchored extraction only; see the module docstring for the list of contexts."""
        code = _as_text(js)
        out: List[Candidate] = []

        for m in _COMPLETE_URL_RE.finditer(code):
            url = m.group(0).rstrip(".:!?")
            host_start = url.find("://") + 3
            if host_start < len(url) and url[host_start].isalnum():
                out.append(Candidate(url, f"{source}:absolute", base_url))

        for label, rx in JS_CONTEXTS:
            for m in rx.finditer(code):
                value = m.group("u")
                if "${" not in value:
                    out.append(Candidate(value, f"{source}:{label[3:]}", base_url))

        for m in _LITERAL_RE.finditer(code):
            value = m.group("u")
            if "${" in value:
                continue
            if _API_LITERAL_RE.match(value) or _FILE_LITERAL_RE.match(value):
                out.append(Candidate(value, f"{source}:literal", base_url))

        result = _dedupe_keep_order(out)
        self._count("js.candidates", len(result))
        return result

    # ---------------------------------- CSS -----------------------------------

    def extract_css(self, css: Union[str, bytes], base_url: str, source: str = "css") -> List[Candidate]:
        text = _as_text(css)
        out: List[Candidate] = []
        for rx, label in ((_CSS_IMPORT_RE, "import"), (_CSS_URL_RE, "url")):
            for m in rx.finditer(text):
                value = m.group("u").strip()
                lowered = value.lower()
                if not value or value.startswith("#") or lowered.startswith(("data:", "javascript:")):
                    continue
                out.append(Candidate(value, f"{source}:{label}", base_url))
        result = _dedupe_keep_order(out)
        self._count("css.candidates", len(result))
        return result

    # -------------------------------- headers ---------------------------------

    def extract_headers(self, headers: Mapping[str, str], base_url: str) -> List[Candidate]:
        """Location, Content-Location, Refresh ("5; url=/next") and Link (<url>; rel=...)."""
        out: List[Candidate] = []
        for name, value in headers.items():
            if not value:
                continue
            lowered = name.lower()
            if lowered in ("location", "content-location"):
                self._emit(value, f"header:{lowered}", base_url, out)
            elif lowered == "refresh":
                m = _REFRESH_URL_RE.search(value)
                if m:
                    self._emit(m.group("u"), "header:refresh", base_url, out)
            elif lowered == "link":
                for m in _LINK_HEADER_RE.finditer(value):
                    self._emit(m.group("u"), "header:link", base_url, out)
        result = _dedupe_keep_order(out)
        self._count("headers.candidates", len(result))
        return result

    # --------------------------------- POSTs ----------------------------------

    def extract_post_requests(self, html: Union[str, bytes], base_url: str) -> List[PostRequest]:
        """POST forms plus POST call sites in inline scripts."""
        soup = BeautifulSoup(_as_text(html), "html.parser")
        page_base = base_url
        base_tag = soup.find("base", href=True)
        if base_tag is not None and _is_navigable(base_tag.get("href", "")):
            page_base = urljoin(base_url, base_tag["href"].strip())

        out: List[PostRequest] = []
        for form in soup.find_all("form"):
            method = (form.get("method") or "get").strip().upper()
            if method != "POST":
                continue
            action = (form.get("action") or "").strip()
            target = urljoin(page_base, action) if action else base_url
            names: List[str] = []
            for field in form.find_all(["input", "select", "textarea", "button"]):
                field_name = field.get("name")
                if field_name and field_name not in names:
                    names.append(field_name)
            enctype = (form.get("enctype") or "application/x-www-form-urlencoded").strip().lower()
            out.append(PostRequest(target, "POST", tuple(names), enctype, "html-form"))
        self._count("posts.form", len(out))

        for script in soup.find_all("script"):
            if script.get("src") or not script.string:
                continue
            out.extend(self.extract_js_posts(script.string, page_base))
        return out

    def extract_js_posts(self, js: Union[str, bytes], base_url: str) -> List[PostRequest]:
        code = _as_text(js)
        out: List[PostRequest] = []

        for label, rx in _JS_POSTS:
            for m in rx.finditer(code):
                groups = m.groupdict()
                method = (groups.get("m") or "POST").upper()
                out.append(PostRequest(
                    urljoin(base_url, m.group("u")), method, _object_keys(groups.get("data") or ""),
                    "application/x-www-form-urlencoded", label,
                ))

        for m in _JS_AJAX_BLOCK_RE.finditer(code):
            body = m.group("body")
            method_m = _OPTION_METHOD_RE.search(body)
            url_m = _OPTION_URL_RE.search(body)
            if url_m and method_m and method_m.group("m").upper() != "GET":
                out.append(PostRequest(
                    urljoin(base_url, url_m.group("u")), method_m.group("m").upper(), (),
                    "application/x-www-form-urlencoded", "js:jquery.ajax",
                ))

        for m in _JS_FETCH_BLOCK_RE.finditer(code):
            method_m = _OPTION_METHOD_RE.search(m.group("body"))
            if method_m and method_m.group("m").upper() != "GET":
                out.append(PostRequest(
                    urljoin(base_url, m.group("u")), method_m.group("m").upper(), (),
                    "application/json", "js:fetch",
                ))

        self._count("posts.js", len(out))
        return out
