from __future__ import annotations

import logging
from typing import Optional

import httpx
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import StreamingResponse
from starlette.routing import Mount
from starlette.staticfiles import StaticFiles

from landing_edge.utils.errors import ContentUnavailableError

logger = logging.getLogger(__name__)

LOCAL_ORIGIN = "http://static.local"

HOP_BY_HOP_HEADERS = frozenset(
    {
        b"connection",
        b"keep-alive",
        b"proxy-authenticate",
        b"proxy-authorization",
        b"te",
        b"trailer",
        b"transfer-encoding",
        b"upgrade",
    }
)
_DROPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {b"host", b"content-length", b"accept-encoding"}


def build_origin_transport(origin_url: Optional[str], static_dir: str) -> tuple[str, Optional[httpx.AsyncBaseTransport]]:
    """
    Returns (origin base URL, transport) for the content store.
    With no ORIGIN_URL the static directory is served in-process.
    """
    if origin_url:
        return origin_url, None
    static_app = Starlette(routes=[Mount("/", app=StaticFiles(directory=static_dir, html=True, check_dir=False))])
    return LOCAL_ORIGIN, httpx.ASGITransport(app=static_app)


class ContentFetcher:
    """Streams static content from the origin, optionally from a rewritten path."""

    def __init__(self, client: httpx.AsyncClient, origin: str):
        self.client = client
        self.origin = origin.rstrip("/")

    @staticmethod
    def _forward_headers(request: Request) -> list[tuple[bytes, bytes]]:
        headers = [(k, v) for k, v in request.headers.raw if k.lower() not in _DROPPED_REQUEST_HEADERS]
        # Keep bodies unencoded so HTML can be tagged in flight.
        headers.append((b"accept-encoding", b"identity"))
        return headers

    async def fetch(self, request: Request, override_path: Optional[str] = None) -> StreamingResponse:
        path = override_path or request.url.path
        url = f"{self.origin}{path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"

        upstream_request = self.client.build_request(request.method, url, headers=self._forward_headers(request))
        try:
            upstream = await self.client.send(upstream_request, stream=True)
        except httpx.HTTPError as exc:
            logger.error("Content origin request failed for %s: %s", path, exc)
            raise ContentUnavailableError("Content origin is unavailable", {"path": path}) from exc

        # In-memory transports hand back responses that httpx has already read.
        body = iter([upstream.content]) if upstream.is_stream_consumed else upstream.aiter_raw()
        response = StreamingResponse(
            body,
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        response.raw_headers = [
            (k.lower(), self._relative_location(k, v))
            for k, v in upstream.headers.raw
            if k.lower() not in HOP_BY_HOP_HEADERS
        ]
        return response

    def _relative_location(self, name: bytes, value: bytes) -> bytes:
        # Redirects issued by the origin must not point visitors at the origin host.
        origin = self.origin.encode("latin-1")
        if name.lower() == b"location" and value.startswith(origin):
            return value[len(origin):] or b"/"
        return value
