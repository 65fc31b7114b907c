"""Watch Analytics - behavioral analytics over a viewer's watch history."""

from importlib.metadata import version

try:
    __version__ = version("watch-analytics")
except Exception:
    __version__ = "0.1.0"  # Fallback for development

# Re-export public API
from watch_analytics.storage import (
    DataAccessError,
    ShowProgress,
    SQLiteStorage,
    WatchEvent,
)

__all__ = [
    # Version
    "__version__",
    # Storage
    "SQLiteStorage",
    "WatchEvent",
    "ShowProgress",
    "DataAccessError",
]
