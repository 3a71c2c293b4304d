"""Application records, persistence and the registry that joins them with health.

The registry lives in ``appwatch.apps.registry`` and is imported from there.
"""

from appwatch.apps.models import (
    Application,
    ApplicationView,
    HealthResult,
    HealthStatus,
    HealthType,
    Protocol,
    ValidationError,
)
from appwatch.apps.store import AppNotFoundError, AppStore

__all__ = [
    "AppNotFoundError",
    "AppStore",
    "Application",
    "ApplicationView",
    "HealthResult",
    "HealthStatus",
    "HealthType",
    "Protocol",
    "ValidationError",
]
