"""View Projections

Pure filters feeding the dashboard panels.
"""

from .projections import (
    ambulance_board,
    awaiting_approval,
    high_severity_inbound,
    active_dispatch,
    remote_queue,
    in_theatre_pipeline,
    status_counts,
    severity_band,
    transit_progress,
    latest_update,
    estimated_wait_minutes,
    remote_queue_waits,
)

__all__ = [
    "ambulance_board",
    "awaiting_approval",
    "high_severity_inbound",
    "active_dispatch",
    "remote_queue",
    "in_theatre_pipeline",
    "status_counts",
    "severity_band",
    "transit_progress",
    "latest_update",
    "estimated_wait_minutes",
    "remote_queue_waits",
]
