"""Counters and gauges for the message pipeline, account security and realtime relay."""

from .metrics import (
    account_security_events_total,
    attachment_failures_total,
    messages_created_total,
    rate_limit_rejections_total,
    realtime_connections,
    realtime_events_total,
    realtime_publish_errors_total,
)
from .registry import MetricsRegistry, registry

__all__ = [
    "MetricsRegistry",
    "registry",
    "account_security_events_total",
    "attachment_failures_total",
    "messages_created_total",
    "rate_limit_rejections_total",
    "realtime_connections",
    "realtime_events_total",
    "realtime_publish_errors_total",
]
