"""nbdocs: execute tutorial notebooks and publish them as markdown documentation."""

from ._version import __version__
from .config import BuildConfig, ConfigError, load_config
from .services.build_service import BuildService

__all__ = [
    "__version__",
    "BuildConfig",
    "BuildService",
    "ConfigError",
    "load_config",
]
