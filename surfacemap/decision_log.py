# surfacemap/decision_log.py
"""
Tab-separated decision log: one row per admission decision, STAT rows at the end.

TSV columns
-----------
timestamp  raw  canonical  allow  reason  priority  kind  url_type  pattern  needs_dom  detail

The coordinator never writes this file itself (no I/O inside admission). Whoever
calls admit() hands the decision to DecisionLog.write().
"""

import csv
import os
import threading
import time
from typing import Dict, Iterator, List, Mapping, Optional

from .decision import Decision

COLUMNS = [
    "timestamp", "raw", "canonical", "allow", "reason", "priority",
    "kind", "url_type", "pattern", "needs_dom", "detail",
]


def ensure_parent_dir(filepath: str) -> None:
    """Create the parent directory for a file if it does not exist."""
    parent = os.path.dirname(os.path.abspath(filepath))
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)


class DecisionLog:
    """Thread-safe TSV writer. Use as a context manager or call close()."""

    def __init__(self, path: str):
        ensure_parent_dir(path)
        self.path = path
        self.lock = threading.Lock()
        self.rows = 0
        self._fh = open(path, "w", newline="", encoding="utf-8")
        self.csv = csv.writer(self._fh, delimiter="\t")
        self.csv.writerow(COLUMNS)

    def __enter__(self) -> "DecisionLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def write(self, raw: str, decision: Decision) -> None:
        """Write the decision and any alternates (protocol-relative forms)."""
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
        with self.lock:
            for d in decision.all():
                self.csv.writerow([
                    ts, _clean(raw), d.canonical_url or "", int(d.allow), d.reason,
                    f"{d.priority:.2f}", d.kind or "", d.url_type or "", d.pattern or "",
                    int(d.needs_dom_analysis), _clean(d.detail),
                ])
                self.rows += 1

    def write_stats(self, stats: Mapping[str, int]) -> None:
        with self.lock:
            self.csv.writerow([])
            for name in sorted(stats):
                self.csv.writerow(["STAT", name, stats[name]])

    def close(self) -> None:
        """Flush and close. Safe to call twice."""
        with self.lock:
            if not self._fh.closed:
                self._fh.flush()
                self._fh.close()


def _clean(text: str) -> str:
    """Tabs and newlines would break the row format."""
    return (text or "").replace("\t", " ").replace("\r", " ").replace("\n", " ")


def read_decisions(path: str) -> Iterator[Dict[str, str]]:
    """Yield decision rows as dicts; STAT rows, blank lines and the header are skipped."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        r = csv.reader(f, delimiter="\t")
        for row in r:
            if not row or row[0] in ("STAT", "timestamp"):
                continue
            if len(row) < len(COLUMNS):
                continue
            yield dict(zip(COLUMNS, row))


def read_stats(path: str) -> Dict[str, int]:
    """The STAT block of a decision log."""
    out: Dict[str, int] = {}
    with open(path, "r", encoding="utf-8", newline="") as f:
        for row in csv.reader(f, delimiter="\t"):
            if len(row) == 3 and row[0] == "STAT":
                try:
                    out[row[1]] = int(row[2])
                except ValueError:
                    continue
    return out
