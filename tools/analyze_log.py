# tools/analyze_log.py
"""
Tiny helper to compute simple stats from a decision log.

Usage:
    python3 tools/analyze_log.py logs/decisions.tsv

Outputs:
    - total decisions and allow rate
    - count by rejection reason
    - count by resource kind and URL type (admitted only)
    - patterns with the most decisions (top 10)
"""

import sys
from collections import Counter

from surfacemap.decision_log import read_decisions, read_stats


def analyze(path: str):
    total = 0
    allowed = 0
    reasons = Counter()
    kinds = Counter()
    url_types = Counter()
    patterns = Counter()

    for row in read_decisions(path):
        total += 1
        if row["allow"] == "1":
            allowed += 1
            kinds[row["kind"] or "-"] += 1
            url_types[row["url_type"] or "-"] += 1
        else:
            reasons[row["reason"]] += 1
        if row["pattern"]:
            patterns[row["pattern"]] += 1

    rate = (100.0 * allowed / total) if total else 0.0
    print(f"File: {path}")
    print(f"Total decisions: {total}")
    print(f"Admitted: {allowed} ({rate:.1f}%)")
    print("Rejections by reason:")
    for reason, cnt in reasons.most_common():
        print(f"  {reason}: {cnt}")
    print("Admitted by kind:")
    for kind, cnt in kinds.most_common():
        print(f"  {kind}: {cnt}")
    print("Admitted by URL type:")
    for url_type, cnt in url_types.most_common():
        print(f"  {url_type}: {cnt}")
    print("Top patterns:")
    for pattern, cnt in patterns.most_common(10):
        print(f"  {cnt:5d}  {pattern}")

    stats = read_stats(path)
    if stats:
        print("Pipeline counters:")
        for name in sorted(stats):
            print(f"  {name}: {stats[name]}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python3 tools/analyze_log.py <path_to_tsv>", file=sys.stderr)
        sys.exit(2)
    analyze(sys.argv[1])
