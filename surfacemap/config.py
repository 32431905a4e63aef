# surfacemap/config.py
"""
Central configuration for the admission pipeline.
Keep policy and tunables here so the components stay lean.

Every section is a frozen dataclass. List-like options are tuples, so a Config can be
shared across fetcher threads without anyone mutating it mid-run. Use with_overrides()
to derive a tweaked copy.
"""

import re
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Tuple

import yaml

from .errors import ConfigError


@dataclass(frozen=True)
class ScopeConfig:
    # Domains: exact "example.com", wildcard "*.example.com"
    include_domains: Tuple[str, ...] = ()
    exclude_domains: Tuple[str, ...] = ()
    allow_subdomains: bool = True

    # Paths: exact "/login", prefix "/admin/*", suffix "*.php"
    include_paths: Tuple[str, ...] = ()
    exclude_paths: Tuple[str, ...] = ()

    # Free-form regexes over the whole canonical URL
    include_regex: str = ""
    exclude_regex: str = ""

    # Extensions without the dot. Excludes are informational only (see ScopeController).
    include_extensions: Tuple[str, ...] = ()
    exclude_extensions: Tuple[str, ...] = ()

    # Query parameter names
    include_params: Tuple[str, ...] = ()
    exclude_params: Tuple[str, ...] = ()

    allow_http: bool = True
    allow_https: bool = True
    max_depth: int = 0  # 0 = unlimited

    def with_overrides(self, **kwargs) -> "ScopeConfig":
        """Return a copy with specific fields overridden."""
        return replace(self, **kwargs)


@dataclass(frozen=True)
class DedupConfig:
    # DOM verification: sample this many responses per pattern, then decide
    sample_count: int = 3
    dom_threshold: float = 0.85
    enable_dom_verification: bool = True
    # Representatives kept per pattern for reporting
    max_per_pattern_same_group: int = 3

    def with_overrides(self, **kwargs) -> "DedupConfig":
        return replace(self, **kwargs)


@dataclass(frozen=True)
class ScoringConfig:
    min_business_score: float = 30.0
    high_value_threshold: float = 70.0
    mid_value_threshold: float = 50.0

    # Per-pattern crawl caps by tier
    cap_low: int = 2
    cap_mid: int = 5
    cap_high: int = 20

    # Learned adjustment (EMA over fetch outcomes)
    enable_adaptive: bool = True
    learning_rate: float = 0.1

    def with_overrides(self, **kwargs) -> "ScoringConfig":
        return replace(self, **kwargs)


@dataclass(frozen=True)
class QualityConfig:
    min_url_length: int = 2
    max_url_length: int = 500
    max_encoding_ratio: float = 0.4
    max_control_ratio: float = 0.2

    def with_overrides(self, **kwargs) -> "QualityConfig":
        return replace(self, **kwargs)


_SECTIONS = {
    "scope": ScopeConfig,
    "dedup": DedupConfig,
    "scoring": ScoringConfig,
    "quality": QualityConfig,
}


@dataclass(frozen=True)
class Config:
    scope: ScopeConfig = field(default_factory=ScopeConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)

    # SPA-aware scopes keep "#/route" fragments in canonical URLs
    keep_fragment: bool = False
    # Hosts that count as "ours" for the resource classifier; empty = use scope.include_domains
    target_domains: Tuple[str, ...] = ()

    def with_overrides(self, **kwargs) -> "Config":
        """Return a copy with specific fields overridden."""
        return replace(self, **kwargs)

    @property
    def effective_target_domains(self) -> Tuple[str, ...]:
        return self.target_domains or self.scope.include_domains

    # ------------------------------ construction ------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """
        Build a Config from plain data (what yaml.safe_load or json.load give you).

        Sections are optional; unknown keys are an error so typos don't silently
        fall back to defaults.
        """
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _SECTIONS:
                kwargs[key] = _build_section(_SECTIONS[key], key, value)
            elif key == "keep_fragment":
                kwargs[key] = bool(value)
            elif key == "target_domains":
                kwargs[key] = _as_tuple(key, value)
            else:
                raise ConfigError(f"unknown config key: {key!r}")
        cfg = cls(**kwargs)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        """Raise ConfigError if any option is out of range."""
        d, s, q, sc = self.dedup, self.scoring, self.quality, self.scope

        if d.sample_count < 2:
            raise ConfigError("dedup.sample_count must be >= 2")
        if not 0.0 < d.dom_threshold <= 1.0:
            raise ConfigError("dedup.dom_threshold must be in (0, 1]")
        if d.max_per_pattern_same_group < 1:
            raise ConfigError("dedup.max_per_pattern_same_group must be >= 1")

        if not 0.0 <= s.min_business_score <= 100.0:
            raise ConfigError("scoring.min_business_score must be in [0, 100]")
        if not s.mid_value_threshold <= s.high_value_threshold <= 100.0:
            raise ConfigError("scoring thresholds must satisfy mid <= high <= 100")
        if not 0 < s.cap_low <= s.cap_mid <= s.cap_high:
            raise ConfigError("scoring caps must satisfy 0 < cap_low <= cap_mid <= cap_high")
        if not 0.0 < s.learning_rate <= 1.0:
            raise ConfigError("scoring.learning_rate must be in (0, 1]")

        if not 1 <= q.min_url_length <= q.max_url_length:
            raise ConfigError("quality url length bounds are inconsistent")
        for name in ("max_encoding_ratio", "max_control_ratio"):
            if not 0.0 <= getattr(q, name) <= 1.0:
                raise ConfigError(f"quality.{name} must be in [0, 1]")

        if not (sc.allow_http or sc.allow_https):
            raise ConfigError("scope must allow at least one of http/https")
        if sc.max_depth < 0:
            raise ConfigError("scope.max_depth must be >= 0")
        for name in ("include_regex", "exclude_regex"):
            pattern = getattr(sc, name)
            if pattern:
                try:
                    re.compile(pattern)
                except re.error as exc:
                    raise ConfigError(f"scope.{name} is not a valid regex: {exc}") from exc


def _as_tuple(key: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(str(v) for v in value)
    raise ConfigError(f"{key} must be a list of strings")


def _build_section(section_cls, name: str, value: Any):
    if value is None:
        return section_cls()
    if not isinstance(value, Mapping):
        raise ConfigError(f"config section {name!r} must be a mapping")

    known = {f.name: f for f in fields(section_cls)}
    kwargs: Dict[str, Any] = {}
    for key, raw in value.items():
        f = known.get(key)
        if f is None:
            raise ConfigError(f"unknown option {name}.{key}")
        default = f.default
        if isinstance(default, tuple):
            kwargs[key] = _as_tuple(f"{name}.{key}", raw)
        elif isinstance(default, bool):
            kwargs[key] = bool(raw)
        elif isinstance(default, (int, float)):
            try:
                kwargs[key] = type(default)(raw)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"{name}.{key} must be a number, got {raw!r}") from exc
        else:
            kwargs[key] = "" if raw is None else str(raw)
    return section_cls(**kwargs)


def load_config(path: str) -> Config:
    """Load and validate a YAML config file."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in config file {path}: {exc}") from exc
    return Config.from_dict(data or {})
