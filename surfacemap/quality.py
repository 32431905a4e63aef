# surfacemap/quality.py
"""
Quality filter: reject strings that are clearly not URLs.

Candidates recovered from JavaScript and CSS are full of identifiers, property names,
MIME types and code fragments that happen to sit in string literals. This module runs
a fixed cascade of cheap checks; the first layer that objects wins.

    L1 length      too short / too long
    L2 keyword     JS keywords and globals, CSS properties, MIME types, HTTP verbs
    L3 pattern     code markers, HTML tags, bracketed expressions, regex literals,
                   bare member access (user.id), bare calls (handle())
    L4 encoding    mostly escape sequences
    L5 control     mostly control characters
    L6 structure   code-ish bracket/quote pairs
    L7 symbol      only punctuation, hex colors, single letters, bare numbers

The decision depends only on the string. Counters are the only state.
"""

import logging
import re
import threading
import unicodedata
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Optional

from .config import QualityConfig

logger = logging.getLogger(__name__)


JS_KEYWORDS = frozenset({
    "function", "return", "var", "let", "const", "if", "else", "for", "while", "do",
    "switch", "case", "break", "continue", "try", "catch", "finally", "throw", "new",
    "this", "super", "class", "extends", "static", "async", "await", "yield", "import",
    "export", "default", "delete", "void", "typeof", "instanceof", "in", "of",
    "undefined", "null", "true", "false", "nan", "infinity",
    "window", "document", "console", "navigator", "location", "localstorage",
    "sessionstorage", "json", "math", "object", "array", "string", "number", "boolean",
    "promise", "symbol", "date", "regexp", "error", "prototype", "constructor",
    "arguments", "length", "push", "pop", "shift", "unshift", "splice", "slice",
    "concat", "join", "split", "map", "filter", "reduce", "foreach", "then",
    "jquery", "$",
})

CSS_PROPERTIES = frozenset({
    "margin", "padding", "border", "color", "background", "width", "height", "display",
    "position", "top", "left", "right", "bottom", "flex", "grid", "font", "text",
    "opacity", "overflow", "transform", "transition", "animation", "cursor", "outline",
    "z-index", "line-height", "box-shadow", "content", "float", "clear", "visibility",
    "rgba", "rgb", "hsl", "hsla", "auto", "none", "center", "inherit", "initial",
    "unset", "relative", "absolute", "fixed", "sticky", "hidden", "visible", "inline",
    "block", "bold", "italic", "normal", "solid", "dashed", "transparent", "important",
})

MIME_TYPES = frozenset({
    "application/json", "application/xml", "application/javascript",
    "application/x-www-form-urlencoded", "application/octet-stream", "application/pdf",
    "multipart/form-data", "text/html", "text/plain", "text/css", "text/javascript",
    "text/xml", "text/csv", "image/png", "image/jpeg", "image/gif", "image/svg+xml",
    "image/webp", "video/mp4", "audio/mpeg", "font/woff", "font/woff2",
})

HTTP_METHODS = frozenset({
    "get", "post", "put", "delete", "patch", "head", "options", "trace", "connect",
})

# Final components that make "a.b.c" look like a file or a host rather than member access
_NAME_SUFFIXES = frozenset({
    "html", "htm", "php", "asp", "aspx", "jsp", "do", "action", "cgi", "pl", "py",
    "js", "mjs", "css", "json", "xml", "txt", "csv", "pdf", "svg", "png", "jpg", "jpeg",
    "gif", "ico", "webp", "map", "zip", "gz", "tar", "rar", "7z", "swf", "wasm",
    "doc", "docx", "xls", "xlsx", "mp3", "mp4", "woff", "woff2", "ttf", "eot",
    "com", "net", "org", "edu", "gov", "io", "co", "info", "biz", "dev", "app", "me",
    "us", "uk", "de", "fr", "cn", "jp", "ru", "in", "example", "local", "test",
})

_CODE_PATTERNS = [
    re.compile(r"\bfunction\s*\("),
    re.compile(r"=>\s*[{(]"),
    re.compile(r"\b(?:var|let|const)\s+\w+\s*="),
    re.compile(r"===|!=="),
    re.compile(r"&&|\|\|"),
    re.compile(r"\bconsole\."),
    re.compile(r"\.(?:push|pop|splice|concat|join|split|shift|unshift)\("),
    re.compile(r"\.(?:forEach|map|filter|reduce|then|catch)\("),
    re.compile(r"\b(?:return|typeof|throw)\s"),
    re.compile(r"</?[a-zA-Z][a-zA-Z0-9]*[^>]*>"),   # HTML tag literal
    re.compile(r"^[({\[].*[)}\]]$"),                 # bracketed expression
    # regex literal; requires a regex metacharacter so "/admin/" stays a path
    re.compile(r"^/(?=[^/]*[\\^$*|()\[\]{}]).+/[gimsuy]*$"),
    re.compile(r"^[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*\([^()]*\)$"),  # bare call
]
_MEMBER_ACCESS_RE = re.compile(r"^[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)+$")

_ENCODED_RE = re.compile(
    r"%[0-9A-Fa-f]{2}|\\x[0-9A-Fa-f]{2}|\\u[0-9A-Fa-f]{4}|&#\d+;|&[a-zA-Z]+;"
)

_STRUCTURE_MARKERS = ("]}", "[{", "})", "({", '""', "''", "``")

_SYMBOL_PATTERNS = [
    re.compile(r"^[#?&=\-_./:\\|~!@$%^*()+\[\]{}]+$"),
    re.compile(r"^#[0-9A-Fa-f]{3,8}$"),
    re.compile(r"^[a-zA-Z]$"),
    re.compile(r"^\d+$"),
]


@dataclass(frozen=True)
class QualityVerdict:
    passed: bool
    layer: Optional[str] = None   # "length", "keyword", ... when rejected
    detail: str = ""


_PASS = QualityVerdict(True)


class QualityFilter:
    """Layered rejection cascade. One instance is shared by all workers."""

    LAYERS = ("length", "keyword", "pattern", "encoding", "control", "structure", "symbol")

    def __init__(self, cfg: Optional[QualityConfig] = None):
        self.cfg = cfg or QualityConfig()
        self.lock = threading.Lock()
        self.counters: Dict[str, int] = defaultdict(int)

    def is_high_quality(self, candidate: str) -> bool:
        return self.check(candidate).passed

    def check(self, candidate: str) -> QualityVerdict:
        verdict = self._evaluate(candidate or "")
        with self.lock:
            self.counters["total"] += 1
            if verdict.passed:
                self.counters["passed"] += 1
            else:
                self.counters[f"rejected.{verdict.layer}"] += 1
        if not verdict.passed:
            logger.debug("quality reject [%s] %r: %s", verdict.layer, candidate, verdict.detail)
        return verdict

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return dict(self.counters)

    # -------------------------------- layers --------------------------------

    def _evaluate(self, candidate: str) -> QualityVerdict:
        s = candidate.strip()

        size = len(s.encode("utf-8"))
        if size < self.cfg.min_url_length or size > self.cfg.max_url_length:
            return QualityVerdict(False, "length", f"{size} bytes")

        lowered = s.lower()
        if lowered in JS_KEYWORDS:
            return QualityVerdict(False, "keyword", "javascript keyword")
        if lowered in CSS_PROPERTIES or _has_css_prefix(lowered):
            return QualityVerdict(False, "keyword", "css property")
        if lowered in MIME_TYPES:
            return QualityVerdict(False, "keyword", "mime type")
        if lowered in HTTP_METHODS:
            return QualityVerdict(False, "keyword", "http method")

        for rx in _CODE_PATTERNS:
            if rx.search(s):
                return QualityVerdict(False, "pattern", rx.pattern)
        if _MEMBER_ACCESS_RE.match(s) and s.rsplit(".", 1)[-1].lower() not in _NAME_SUFFIXES:
            return QualityVerdict(False, "pattern", "member access")

        encoded = sum(len(m.group(0)) for m in _ENCODED_RE.finditer(s))
        if encoded / len(s) > self.cfg.max_encoding_ratio:
            return QualityVerdict(False, "encoding", f"{encoded}/{len(s)} encoded")

        control = sum(1 for ch in s if unicodedata.category(ch) == "Cc")
        printable = sum(1 for ch in s if ch.isprintable())
        if control / len(s) > self.cfg.max_control_ratio or printable < 2:
            return QualityVerdict(False, "control", f"{control} control chars")

        for marker in _STRUCTURE_MARKERS:
            if marker in s:
                return QualityVerdict(False, "structure", marker)

        for rx in _SYMBOL_PATTERNS:
            if rx.match(s):
                return QualityVerdict(False, "symbol", rx.pattern)

        return _PASS


def _has_css_prefix(lowered: str) -> bool:
    """margin-top, border-left-width, ... (property name followed by '-')."""
    head, sep, _ = lowered.partition("-")
    return bool(sep) and head in CSS_PROPERTIES and "/" not in lowered and "." not in lowered
