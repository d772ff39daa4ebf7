"""Metric definitions for the message pipeline, account security and realtime fan-out."""

from __future__ import annotations

from .registry import registry


messages_created_total = registry.counter(
    "messages_created_total",
    "Messages persisted by the message service.",
    label_names=("channel_type", "with_attachment"),
)

attachment_failures_total = registry.counter(
    "attachment_failures_total",
    "Attachment uploads rejected by the image store.",
    label_names=("reason",),
)

rate_limit_rejections_total = registry.counter(
    "rate_limit_rejections_total",
    "Requests rejected because a rate limit window was exhausted.",
    label_names=("name",),
)

account_security_events_total = registry.counter(
    "account_security_events_total",
    "Account security operations by outcome.",
    label_names=("action", "outcome"),
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Realtime events emitted locally or relayed between workers.",
    label_names=("event", "direction"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of websocket connections registered on this worker.",
)

realtime_publish_errors_total = registry.counter(
    "realtime_publish_errors_total",
    "Failures relaying realtime events to other workers.",
    label_names=("reason",),
)
