from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from landing_edge.config import Settings, get_settings
from landing_edge.core.experiments_config import ExperimentsConfig
from landing_edge.integrations.affiliatewp import AffiliateWPClient
from landing_edge.routes.edge import debug_router, internal_router, pages_router
from landing_edge.services.content import ContentFetcher, build_origin_transport
from landing_edge.services.experiments import ExperimentService, RandomSource
from landing_edge.services.interceptor import EdgeInterceptor
from landing_edge.utils.errors import install_exception_handlers

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    experiments: Optional[ExperimentsConfig] = None,
    origin_transport: Optional[httpx.AsyncBaseTransport] = None,
    attribution_transport: Optional[httpx.AsyncBaseTransport] = None,
    rng: Optional[RandomSource] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        experiment_config = experiments or ExperimentsConfig.load(settings.experiments_config_path)

        origin, default_transport = build_origin_transport(settings.origin_url, settings.static_dir)
        origin_client = httpx.AsyncClient(transport=origin_transport or default_transport, timeout=30.0)
        attribution = AffiliateWPClient(
            settings.affwp_parent_url,
            settings.affwp_public_key,
            settings.affwp_token,
            timeout_s=settings.affwp_timeout_seconds,
            transport=attribution_transport,
        )
        if not settings.attribution_configured:
            logger.warning("AffiliateWP credentials are not configured; attribution is disabled")

        app.state.settings = settings
        app.state.interceptor = EdgeInterceptor(
            settings,
            ExperimentService(experiment_config, rng=rng),
            ContentFetcher(origin_client, origin),
            attribution,
        )
        try:
            yield
        finally:
            await origin_client.aclose()
            await attribution.aclose()

    app = FastAPI(
        title="Landing Edge",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    install_exception_handlers(app)
    app.include_router(internal_router)
    if settings.debug_routes_enabled:
        app.include_router(debug_router)
    # Catch-all must stay last.
    app.include_router(pages_router)
    return app


app = create_app()
