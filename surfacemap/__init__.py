# surfacemap/__init__.py
"""
surfacemap package marker.

Exposes the main public surface so callers can do:
    from surfacemap import AdmissionCoordinator, Config
"""
from .config import Config, load_config
from .coordinator import AdmissionCoordinator
from .decision import Decision, Reason
from .errors import ConfigError, InternalInvariantViolation, SurfaceMapError, UrlParseError

__all__ = [
    "AdmissionCoordinator",
    "Config",
    "ConfigError",
    "Decision",
    "InternalInvariantViolation",
    "Reason",
    "SurfaceMapError",
    "UrlParseError",
    "load_config",
]
__version__ = "0.1.0"
