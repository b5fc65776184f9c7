"""
Catalog Mirror.

Offline crawl and enrichment jobs that keep a local mirror of the
Roblox music and experience catalog fresh.
"""

from catalog_mirror.config import Settings, get_settings
from catalog_mirror.logger import get_logger, setup_logging

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "__version__",
]
