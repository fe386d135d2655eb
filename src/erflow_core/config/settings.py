"""Workflow configuration.

Settings are read from ERFLOW_* environment variables (a local .env file is
loaded first). Invalid values are logged and replaced by the default, so a
typo never stops the dashboard from starting.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DwellTimings:
    """Minimum seconds a case must stay in a status before the engine moves it.

    Only the relative ordering of the pipeline matters; the defaults are demo
    pacing.
    """

    plan_preparation: float = 3.0  # AMBULANCE_DISPATCHED → PREP_READY
    transit_departure: float = 2.0  # PREP_READY → IN_TRANSIT
    arrival_handover: float = 5.0  # ARRIVED → MOVING_TO_THEATRE
    theatre_transfer: float = 8.0  # MOVING_TO_THEATRE → IN_OPERATION_THEATRE

    def __post_init__(self):
        for name in ("plan_preparation", "transit_departure", "arrival_handover", "theatre_transfer"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")


@dataclass
class WorkflowSettings:
    """Configuration for the engine, workflow actions and gateway client."""

    tick_interval: float = 1.0
    dwell: DwellTimings = field(default_factory=DwellTimings)
    high_severity_threshold: int = 8
    default_eta_minutes: int = 15

    gateway_url: str = "http://localhost:54321"
    gateway_api_key: Optional[str] = None
    gateway_timeout: float = 30.0
    gateway_rate_limit: int = 10  # requests per minute
    gateway_rate_window: float = 60.0

    hospital_capacity: int = 12
    hospital_max_capacity: int = 20

    def __post_init__(self):
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be > 0")
        if not 1 <= self.high_severity_threshold <= 10:
            raise ValueError("high_severity_threshold must be within 1-10")
        if self.default_eta_minutes < 0:
            raise ValueError("default_eta_minutes must be >= 0")


def _env(
    name: str,
    default: T,
    cast: Callable[[str], T],
    validate: Callable[[T], bool] = lambda value: True,
) -> T:
    """Read one variable, falling back to ``default`` on absence or bad value.

    A value that parses but fails ``validate`` counts as bad.
    """
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        value = None
    if value is None or not validate(value):
        logger.warning(f"Invalid value in {name}: {raw!r}, using {default!r}")
        return default
    return value


def _positive(value) -> bool:
    return value > 0


def _non_negative(value) -> bool:
    return value >= 0


def load_settings(env_file: Optional[str] = None) -> WorkflowSettings:
    """Build settings from the environment.

    Args:
        env_file: Optional .env path (default: search from the working directory)

    Returns:
        WorkflowSettings populated from ERFLOW_* variables
    """
    load_dotenv(env_file)

    defaults = DwellTimings()
    dwell = DwellTimings(
        plan_preparation=_env("ERFLOW_DWELL_PLAN_PREPARATION", defaults.plan_preparation, float, _non_negative),
        transit_departure=_env("ERFLOW_DWELL_TRANSIT_DEPARTURE", defaults.transit_departure, float, _non_negative),
        arrival_handover=_env("ERFLOW_DWELL_ARRIVAL_HANDOVER", defaults.arrival_handover, float, _non_negative),
        theatre_transfer=_env("ERFLOW_DWELL_THEATRE_TRANSFER", defaults.theatre_transfer, float, _non_negative),
    )

    settings = WorkflowSettings(
        tick_interval=_env("ERFLOW_TICK_INTERVAL", 1.0, float, _positive),
        dwell=dwell,
        high_severity_threshold=_env(
            "ERFLOW_HIGH_SEVERITY_THRESHOLD", 8, int, lambda value: 1 <= value <= 10
        ),
        default_eta_minutes=_env("ERFLOW_DEFAULT_ETA_MINUTES", 15, int, _non_negative),
        gateway_url=os.getenv("ERFLOW_GATEWAY_URL", "http://localhost:54321"),
        gateway_api_key=os.getenv("ERFLOW_GATEWAY_API_KEY") or None,
        gateway_timeout=_env("ERFLOW_GATEWAY_TIMEOUT", 30.0, float, _positive),
        gateway_rate_limit=_env("ERFLOW_GATEWAY_RATE_LIMIT", 10, int, _positive),
        gateway_rate_window=_env("ERFLOW_GATEWAY_RATE_WINDOW", 60.0, float, _positive),
        hospital_capacity=_env("ERFLOW_HOSPITAL_CAPACITY", 12, int, _non_negative),
        hospital_max_capacity=_env("ERFLOW_HOSPITAL_MAX_CAPACITY", 20, int, _positive),
    )

    logger.info(
        f"Settings loaded: tick={settings.tick_interval}s, dwell={settings.dwell}, "
        f"gateway={settings.gateway_url}"
    )
    return settings


# Singleton instance for global access
_settings_instance: Optional[WorkflowSettings] = None


def get_settings() -> WorkflowSettings:
    """Get or create the global WorkflowSettings instance."""
    global _settings_instance

    if _settings_instance is None:
        _settings_instance = load_settings()

    return _settings_instance


def reset_settings():
    """Reset the global WorkflowSettings instance.

    Used for testing or reconfiguration.
    """
    global _settings_instance
    _settings_instance = None
    logger.warning("WorkflowSettings instance reset")
