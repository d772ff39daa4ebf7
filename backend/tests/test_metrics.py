from __future__ import annotations

import pytest

from app.monitoring.registry import MetricsRegistry


def test_metrics_endpoint_exposes_application_metrics(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    body = response.text
    for name in (
        "messages_created_total",
        "attachment_failures_total",
        "rate_limit_rejections_total",
        "account_security_events_total",
        "realtime_events_total",
        "realtime_active_connections",
        "realtime_publish_errors_total",
    ):
        assert f"# TYPE {name}" in body


def test_registry_renders_labelled_samples():
    registry = MetricsRegistry()
    counter = registry.counter("jobs_total", "Jobs.", label_names=("kind",))
    gauge = registry.gauge("workers", "Workers.")

    counter.labels("mail").inc()
    counter.labels("mail").inc(2)
    gauge.labels().set(3)
    gauge.labels().dec()

    rendered = registry.render()
    assert 'jobs_total{kind="mail"} 3' in rendered
    assert "workers 2" in rendered
    assert counter.value("mail") == 3


def test_registry_rejects_bad_usage():
    registry = MetricsRegistry()
    counter = registry.counter("jobs_total", "Jobs.", label_names=("kind",))

    with pytest.raises(ValueError):
        registry.counter("jobs_total", "Again.")
    with pytest.raises(ValueError):
        counter.labels()
    with pytest.raises(AttributeError):
        counter.labels("mail").dec()
