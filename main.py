# main.py
"""
Entry point for offline admission replay.
Wires up: read candidates -> build Config -> run AdmissionCoordinator -> write decision log.

Input file format (one candidate per line, blanks and '#' comments ignored):
    <base_url><TAB><raw candidate>
    <raw candidate>                  (uses --base)
"""

import argparse
import logging
import sys
from typing import List, Optional, Tuple

from surfacemap.config import Config, load_config
from surfacemap.coordinator import AdmissionCoordinator
from surfacemap.decision_log import DecisionLog
from surfacemap.errors import ConfigError

logger = logging.getLogger("surfacemap.main")


def read_candidates(path: str, default_base: Optional[str]) -> List[Tuple[str, str]]:
    """Load (base, raw) pairs; ignore blanks and lines starting with '#'."""
    pairs: List[Tuple[str, str]] = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                s = line.rstrip("\r\n")
                if not s.strip() or s.lstrip().startswith("#"):
                    continue
                if "\t" in s:
                    base, raw = s.split("\t", 1)
                elif default_base:
                    base, raw = default_base, s
                else:
                    logger.warning("line %d has no base URL and --base is not set; skipped", lineno)
                    continue
                pairs.append((base.strip(), raw.strip()))
    except FileNotFoundError:
        print(f"Candidates file not found: {path}", file=sys.stderr)
        sys.exit(2)
    return pairs


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Replay candidate URLs through the admission pipeline and log every decision."
    )
    p.add_argument("--candidates", required=True, help="Path to candidates file (see module docstring).")
    p.add_argument("--base", default=None, help="Base URL for lines without one.")
    p.add_argument("--config", default=None, help="Optional YAML config file.")
    p.add_argument("--log", default="logs/decisions.tsv", help="Path to output TSV decision log.")
    p.add_argument("--include-domain", action="append", default=[],
                   help="Restrict scope to this domain (repeatable). Overrides the config file.")
    p.add_argument("--min-score", type=float, default=None,
                   help="Override scoring.min_business_score.")
    p.add_argument("--no-dom", action="store_true", help="Disable DOM-similarity verification.")
    p.add_argument("--log-level", default="INFO", help="Python logging level (DEBUG, INFO, ...).")
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    cfg = load_config(args.config) if args.config else Config()
    if args.include_domain:
        cfg = cfg.with_overrides(scope=cfg.scope.with_overrides(include_domains=tuple(args.include_domain)))
    if args.min_score is not None:
        cfg = cfg.with_overrides(scoring=cfg.scoring.with_overrides(min_business_score=args.min_score))
    if args.no_dom:
        cfg = cfg.with_overrides(dedup=cfg.dedup.with_overrides(enable_dom_verification=False))
    cfg.validate()
    return cfg


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 1) Config
    try:
        cfg = build_config(args)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    # 2) Candidates
    pairs = read_candidates(args.candidates, args.base)
    if not pairs:
        print("No candidates found in the provided file.", file=sys.stderr)
        return 2

    # 3) Replay
    core = AdmissionCoordinator(cfg)
    allowed = 0
    with DecisionLog(args.log) as log:
        for base, raw in pairs:
            decision = core.admit(raw, base)
            log.write(raw, decision)
            allowed += sum(1 for d in decision.all() if d.allow)
        stats = core.stats()
        log.write_stats(stats)

    logger.info("replayed %d candidates, %d admitted, log at %s", len(pairs), allowed, args.log)
    return 0


if __name__ == "__main__":
    sys.exit(main())
