"""Utility Functions"""

from erflow_core.utils.rate_limit import RateLimiter
from erflow_core.utils.resilience import (
    service_startup_retry,
    create_custom_retry,
)

__all__ = [
    "RateLimiter",
    "service_startup_retry",
    "create_custom_retry",
]
