# surfacemap/decision.py
"""
Admission decisions and their reason codes.

Every admit() call returns a Decision, allowed or not. Rejections are ordinary
values with a reason code, so nothing is ever dropped without a trace.
"""

from dataclasses import dataclass, field
from typing import List, Optional


class Reason:
    ADMITTED = "admitted"
    PARSE_ERROR = "parse error"
    ALREADY_VISITED = "already visited"
    LOW_QUALITY = "low quality"
    OUT_OF_SCOPE = "out of scope"
    STATIC_RESOURCE = "static resource"
    EXTERNAL_RESOURCE = "external resource"
    DUPLICATE = "duplicate"
    LOW_BUSINESS_SCORE = "low business score"
    CAP_EXCEEDED = "cap exceeded"
    PATTERN_VERIFIED_SIMILAR = "pattern verified similar"

    @staticmethod
    def code(reason: str) -> str:
        """Counter-friendly form: "cap exceeded" -> "cap_exceeded"."""
        return reason.replace(" ", "_")


@dataclass
class Decision:
    allow: bool
    canonical_url: Optional[str]
    reason: str
    priority: float = 0.0
    needs_dom_analysis: bool = False
    detail: str = ""

    # Context for logs and reports
    kind: Optional[str] = None
    url_type: Optional[str] = None
    pattern: Optional[str] = None

    # Other canonical forms of the same raw candidate (protocol-relative input)
    alternates: List["Decision"] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.allow

    def all(self) -> List["Decision"]:
        """This decision followed by its alternates."""
        return [self] + list(self.alternates)
