"""Configuration Module

Environment-driven settings for the workflow engine and gateway client.
"""

from .settings import (
    DwellTimings,
    WorkflowSettings,
    load_settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "DwellTimings",
    "WorkflowSettings",
    "load_settings",
    "get_settings",
    "reset_settings",
]
