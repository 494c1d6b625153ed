from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from landing_edge.config import Settings, get_settings
from landing_edge.services.interceptor import EdgeInterceptor

logger = logging.getLogger(__name__)

INTERNAL_PREFIX = "/__edge"

internal_router = APIRouter(prefix=INTERNAL_PREFIX, tags=["Internal"], include_in_schema=False)
debug_router = APIRouter(prefix=INTERNAL_PREFIX, tags=["Debug"], include_in_schema=False)
pages_router = APIRouter(tags=["Pages"], include_in_schema=False)


async def get_interceptor(request: Request) -> EdgeInterceptor:
    interceptor: EdgeInterceptor = request.app.state.interceptor
    return interceptor


async def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


@internal_router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@internal_router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@debug_router.get("/debug")
async def debug_report(
    interceptor: EdgeInterceptor = Depends(get_interceptor),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    """
    Configuration presence and a live probe of the attribution service.
    Only mounted outside production; never echoes secret values.
    """
    probe = None
    if interceptor.attribution is not None:
        probe = await interceptor.attribution.probe()

    return {
        "config": {
            "AFFWP_PARENT_URL": bool(settings.affwp_parent_url),
            "AFFWP_PUBLIC_KEY": bool(settings.affwp_public_key),
            "AFFWP_TOKEN": bool(settings.affwp_token),
            "AFFWP_REF_VAR": settings.affwp_ref_var,
            "AFFWP_COOKIE_DAYS": settings.affwp_cookie_days,
            "AFFWP_CREDIT_LAST": settings.affwp_credit_last,
        },
        "experiments": sorted(interceptor.experiments.config.experiments.keys()),
        "attribution_probe": probe,
    }


@pages_router.api_route("/{full_path:path}", methods=["GET", "HEAD"])
async def serve_page(request: Request, interceptor: EdgeInterceptor = Depends(get_interceptor)) -> Response:
    return await interceptor.handle(request)
