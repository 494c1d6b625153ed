from __future__ import annotations

import logging
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from landing_edge.config import Settings
from landing_edge.integrations.affiliatewp import AffiliateWPClient
from landing_edge.observability.metrics import edge_attribution_visits_total, edge_requests_total
from landing_edge.services.content import ContentFetcher
from landing_edge.services.experiments import ExperimentService
from landing_edge.services.tagging import maybe_tag
from landing_edge.utils.cookies import (
    AFFILIATE_COOKIE,
    CAMPAIGN_COOKIE,
    VISIT_COOKIE,
    append_set_cookie,
    encode_cookie_value,
    format_set_cookie,
    parse_cookie_header,
)

logger = logging.getLogger(__name__)

VARIANT_COOKIE_MAX_AGE = 30 * 86400
UNKNOWN_IP = "0.0.0.0"


def is_html(response: Response, path: str) -> bool:
    """Either signal is enough: origins often mislabel index documents."""
    content_type = response.headers.get("content-type", "")
    if "text/html" in content_type.lower():
        return True
    return path == "" or path.endswith("/") or path.endswith(".html")


def client_ip(request: Request) -> str:
    ip = request.headers.get("cf-connecting-ip", "").strip()
    if ip:
        return ip
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IP


def first_query_value(request: Request, name: str) -> str:
    """`?ref=5&ref=7` credits affiliate 5: the first occurrence wins."""
    values = request.query_params.getlist(name)
    return values[0] if values else ""


def copy_response(response: Response) -> StreamingResponse:
    copied = StreamingResponse(
        getattr(response, "body_iterator", None) or iter([response.body]),
        status_code=response.status_code,
        background=response.background,
    )
    copied.raw_headers = list(response.raw_headers)
    return copied


class EdgeInterceptor:
    """
    Per-request pipeline in front of the static origin:
    assign variant -> fetch content -> classify -> attribution/cookies/tagging.
    Holds no per-request state; the experiment table is shared read-only.
    """

    def __init__(
        self,
        settings: Settings,
        experiments: ExperimentService,
        fetcher: ContentFetcher,
        attribution: Optional[AffiliateWPClient] = None,
    ):
        self.settings = settings
        self.experiments = experiments
        self.fetcher = fetcher
        self.attribution = attribution

    async def handle(self, request: Request) -> Response:
        cookies = parse_cookie_header(request.headers.get("cookie"))
        path = request.url.path

        decision = self.experiments.resolve(path, cookies)
        override_path = None
        if decision and decision.variant.path != path:
            override_path = decision.variant.path

        response = await self.fetcher.fetch(request, override_path)
        html = is_html(response, override_path or path)

        affiliate_id = first_query_value(request, self.settings.affwp_ref_var)
        needs_affiliate = bool(affiliate_id) and html
        needs_assignment_cookie = decision is not None and decision.is_new
        needs_tag = decision is not None and html

        if not (needs_affiliate or needs_assignment_cookie or needs_tag):
            edge_requests_total.labels(outcome="passthrough").inc()
            return response

        edge_requests_total.labels(outcome="modified").inc()
        result: Response = copy_response(response)

        if needs_assignment_cookie:
            append_set_cookie(
                result,
                format_set_cookie(decision.cookie_name, decision.variant.name, VARIANT_COOKIE_MAX_AGE),
            )

        if needs_affiliate:
            await self._apply_attribution(request, result, affiliate_id, cookies)

        if needs_tag:
            result = maybe_tag(result, decision.experiment_key, decision.variant.name)

        return result

    async def _apply_attribution(
        self,
        request: Request,
        response: Response,
        affiliate_id: str,
        cookies: dict[str, str],
    ) -> None:
        if not self.settings.affwp_credit_last and cookies.get(AFFILIATE_COOKIE) and cookies.get(VISIT_COOKIE):
            logger.info(
                "Keeping first referrer, skipping attribution",
                extra={"affiliate_id": cookies.get(AFFILIATE_COOKIE)},
            )
            edge_attribution_visits_total.labels(result="skipped").inc()
            return

        if self.attribution is None or not self.attribution.is_configured:
            logger.error("AffiliateWP tracking: missing AFFWP_PARENT_URL, AFFWP_PUBLIC_KEY or AFFWP_TOKEN")
            edge_attribution_visits_total.labels(result="unconfigured").inc()
            return

        campaign = first_query_value(request, "campaign")
        landing_url = f"{request.url.scheme}://{request.url.netloc}{request.url.path}"

        visit_id = await self.attribution.create_visit(
            affiliate_id=affiliate_id,
            ip=client_ip(request),
            url=landing_url,
            campaign=campaign,
            referrer=request.headers.get("referer", ""),
        )
        edge_attribution_visits_total.labels(result="created" if visit_id else "failed").inc()

        max_age = self.settings.affiliate_cookie_max_age
        append_set_cookie(response, format_set_cookie(AFFILIATE_COOKIE, encode_cookie_value(affiliate_id), max_age))
        if campaign:
            append_set_cookie(response, format_set_cookie(CAMPAIGN_COOKIE, encode_cookie_value(campaign), max_age))
        if visit_id:
            append_set_cookie(response, format_set_cookie(VISIT_COOKIE, encode_cookie_value(visit_id), max_age))
