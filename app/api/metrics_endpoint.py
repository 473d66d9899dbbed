"""Prometheus scrape endpoint.

Returns the text exposition format, for example:

  # TYPE enrollment_transitions_total counter
  enrollment_transitions_total{transition="confirm_payment"} 12.0
  enrollment_access_decisions_total{reason="expired",scope="course"} 3.0

Restrict /metrics to the Prometheus server at the network layer; it is
not behind bearer authentication.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
