# surfacemap/errors.py
"""
Exception types for the admission pipeline.

Rejections (out of scope, duplicate, cap exceeded, ...) are NOT exceptions. They travel
as reason codes on a Decision. Exceptions are reserved for:
  - bad configuration (fatal at construction time)
  - unparseable URLs (caught by the coordinator and turned into a rejection)
  - broken internal bookkeeping (fatal, means there is a bug)
"""


class SurfaceMapError(Exception):
    """Base class for everything raised by this package."""


class ConfigError(SurfaceMapError, ValueError):
    """Configuration is missing, malformed, or out of range."""


class UrlParseError(SurfaceMapError, ValueError):
    """A candidate or base URL cannot be turned into a canonical http(s) URL."""


class InternalInvariantViolation(SurfaceMapError, RuntimeError):
    """An index refers to state that does not exist. Never caused by input."""
