"""
HTTP routes for the website tracker.

POST /collect receives events from the tracking script, GET /stats serves
the aggregated dashboard data, GET /health is a liveness probe.
"""

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .errors import IngestValidationError, SiteNotAllowedError, StatsUnavailableError, StoreError
from .models import StatsResult
from .service import TrackerService


def _client_ip(request: Request) -> str:
    """Best-effort client IP: Cloudflare header, then proxy chain, then peer."""
    client_ip = request.headers.get("CF-Connecting-IP", "").strip()
    if not client_ip:
        client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else ""
    return client_ip


def _error(reason: str, status_code: int) -> JSONResponse:
    return JSONResponse({"ok": False, "error": reason}, status_code=status_code)


def create_tracker_router(service: TrackerService) -> APIRouter:
    """
    Create the tracker router.

    Args:
        service: TrackerService bound to an event store

    Returns:
        APIRouter with /collect, /stats and /health
    """
    router = APIRouter(tags=["tracker"])

    @router.post("/collect")
    async def collect(request: Request):
        """Store one tracking event."""
        try:
            payload = await request.json()
        except ValueError:
            return _error("invalid_payload", 400)

        try:
            event_id = await service.ingest(
                payload,
                user_agent=request.headers.get("User-Agent"),
                client_ip=_client_ip(request),
            )
        except IngestValidationError as e:
            return _error(e.reason, e.status_code)
        except StoreError:
            return _error("store_unavailable", 500)

        return {"ok": True, "id": event_id}

    @router.get("/stats", response_model=StatsResult)
    async def stats(
        site: str | None = Query(None),
        since_min: str | None = Query(None, alias="sinceMin"),
        sankey_layers: str | None = Query(None, alias="sankeyLayers"),
    ):
        """Aggregated stats for the dashboard."""
        try:
            return await service.compute_stats(site=site, since_min=since_min, layers=sankey_layers)
        except SiteNotAllowedError as e:
            return _error(e.reason, e.status_code)
        except StatsUnavailableError:
            return _error("stats_unavailable", 500)

    @router.get("/health", response_class=PlainTextResponse)
    async def health():
        return "ok"

    return router
