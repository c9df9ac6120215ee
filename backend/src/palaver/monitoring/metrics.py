"""Metric definitions for the realtime layer."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events handed to connection outboxes.",
    label_names=("kind", "outcome"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

realtime_online_users = registry.gauge(
    "realtime_online_users",
    "Number of distinct users present in the presence registry.",
)
