"""Scrape endpoint for the in-process metrics registry."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from app.monitoring import registry

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=PlainTextResponse, include_in_schema=False)
def scrape_metrics() -> PlainTextResponse:
    return PlainTextResponse(
        registry.render(),
        media_type=PROMETHEUS_CONTENT_TYPE,
        headers={"Cache-Control": "no-store"},
    )
