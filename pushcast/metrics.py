from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REQS = Counter(
    "pushcast_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "pushcast_latency_seconds",
    "Latency",
    ["method", "path"],
)
SUBSCRIPTIONS = Gauge(
    "pushcast_subscriptions",
    "Registered push subscriptions",
)
BROADCASTS = Counter(
    "pushcast_broadcasts_total",
    "Broadcasts dispatched",
)
DELIVERIES = Counter(
    "pushcast_deliveries_total",
    "Delivery attempts by outcome",
    ["outcome"],
)
BROADCAST_LAT = Histogram(
    "pushcast_broadcast_duration_seconds",
    "Time from dispatch until every delivery reported",
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r
