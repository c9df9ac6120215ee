"""Prometheus-text metrics for the realtime layer."""

from .metrics import realtime_connections, realtime_events_total, realtime_online_users
from .registry import registry

__all__ = [
    "registry",
    "realtime_connections",
    "realtime_events_total",
    "realtime_online_users",
]
