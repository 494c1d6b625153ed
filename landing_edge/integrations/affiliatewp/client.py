from __future__ import annotations

import base64
import logging
import time
from typing import Any, Optional

import httpx

from landing_edge.observability.metrics import edge_attribution_latency_seconds
from landing_edge.utils.errors import (
    AttributionError,
    AttributionProtocolError,
    AttributionTransportError,
)

logger = logging.getLogger(__name__)

REST_PREFIX = "/wp-json/affwp/v1"
BODY_PREVIEW_CHARS = 200


class AffiliateWPClient:
    """Registers landing-page visits with the AffiliateWP REST API on the parent site."""

    def __init__(
        self,
        parent_url: Optional[str],
        public_key: Optional[str],
        token: Optional[str],
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.parent_url = (parent_url or "").strip().rstrip("/")
        self.public_key = (public_key or "").strip()
        self.token = (token or "").strip()
        self.timeout_s = timeout_s
        self._client = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    @property
    def is_configured(self) -> bool:
        return bool(self.parent_url and self.public_key and self.token)

    @property
    def api_base(self) -> str:
        return f"{self.parent_url}{REST_PREFIX}"

    def _headers(self) -> dict[str, str]:
        credentials = base64.b64encode(f"{self.public_key}:{self.token}".encode("utf-8")).decode("ascii")
        return {
            "Authorization": f"Basic {credentials}",
            "Content-Type": "application/x-www-form-urlencoded",
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_visit(
        self,
        affiliate_id: str,
        ip: str,
        url: str,
        campaign: str = "",
        referrer: str = "",
    ) -> Optional[str]:
        """
        Creates a visit record and returns its id, or None when the visit could not be registered.
        Never raises: attribution loss is preferred over delaying or failing the page.
        """
        params = {
            "affiliate_id": affiliate_id,
            "ip": ip,
            "url": url,
            "campaign": campaign,
            "referrer": referrer,
        }
        started = time.perf_counter()
        try:
            data = await self._post_visit(params)
            visit_id = self._extract_visit_id(data)
        except AttributionProtocolError as exc:
            logger.warning(
                "AffiliateWP API error %s: %s",
                exc.status_code,
                exc.body[:BODY_PREVIEW_CHARS],
                extra={"affiliate_id": affiliate_id},
            )
            return None
        except AttributionError as exc:
            logger.warning("AffiliateWP API request failed: %s", exc, extra={"affiliate_id": affiliate_id})
            return None
        finally:
            edge_attribution_latency_seconds.observe(time.perf_counter() - started)

        logger.info("AffiliateWP visit created", extra={"affiliate_id": affiliate_id, "visit_id": visit_id})
        return visit_id

    async def _post_visit(self, params: dict[str, str]) -> Any:
        try:
            response = await self._client.post(
                f"{self.api_base}/visits",
                params=params,
                headers=self._headers(),
                content=b"",
            )
        except httpx.HTTPError as exc:
            raise AttributionTransportError(f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise AttributionProtocolError(
                f"unexpected status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise AttributionProtocolError(
                "response body is not JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc

    @staticmethod
    def _extract_visit_id(data: Any) -> str:
        if not isinstance(data, dict):
            raise AttributionProtocolError("response is not a JSON object", body=str(data))

        for field in ("visit_id", "id"):
            value = data.get(field)
            if value is None or value == "" or value is False or value == 0:
                continue
            if isinstance(value, (dict, list)):
                continue
            return str(value)

        raise AttributionProtocolError("response has no visit id", body=str(data))

    async def probe(self) -> dict[str, Any]:
        """Connectivity check against the visits endpoint, used by the debug surface."""
        if not self.is_configured:
            return {"ok": False, "status_code": None, "error": "attribution service is not configured"}

        try:
            response = await self._client.get(
                f"{self.api_base}/visits",
                params={"number": 1},
                headers={"Authorization": self._headers()["Authorization"]},
            )
        except httpx.HTTPError as exc:
            return {"ok": False, "status_code": None, "error": f"{type(exc).__name__}: {exc}"}

        error = None if response.is_success else response.text[:BODY_PREVIEW_CHARS]
        return {"ok": response.is_success, "status_code": response.status_code, "error": error}
