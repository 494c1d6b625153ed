from __future__ import annotations

from typing import AsyncIterator, Iterable, Optional

from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from landing_edge.config import Settings


class FixedRandom:
    def __init__(self, value: float):
        self.value = value
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.value

class ForbiddenRandom:
    def random(self) -> float:
        raise AssertionError("randomness must not be consulted for sticky assignments")

def make_settings(**overrides) -> Settings:
    values = {
        "AFFWP_PARENT_URL": "https://learn.example.com",
        "AFFWP_PUBLIC_KEY": "pub",
        "AFFWP_TOKEN": "tok",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_request(
    path: str,
    query: str = "",
    headers: Optional[dict[str, str]] = None,
    method: str = "GET",
) -> Request:
    raw_headers = [(b"host", b"go.example.com")]
    for name, value in (headers or {}).items():
        raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "https",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "root_path": "",
        "query_string": query.encode("utf-8"),
        "headers": raw_headers,
        "server": ("go.example.com", 443),
        "client": ("198.51.100.20", 51000),
    }
    return Request(scope)

async def _chunks(parts: Iterable[bytes]) -> AsyncIterator[bytes]:
    for part in parts:
        yield part

def streaming(parts: Iterable[bytes], content_type: str = "text/html; charset=utf-8", status_code: int = 200) -> StreamingResponse:
    parts = list(parts)
    response = StreamingResponse(_chunks(parts), status_code=status_code, media_type=content_type)
    response.headers["content-length"] = str(sum(len(p) for p in parts))
    return response

async def read_body(response: Response) -> bytes:
    body_iterator = getattr(response, "body_iterator", None)
    if body_iterator is None:
        return response.body
    body = b""
    async for chunk in body_iterator:
        body += chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
    return body

def set_cookies(response: Response) -> list[str]:
    return [v.decode("latin-1") for k, v in response.raw_headers if k == b"set-cookie"]

PAGE = (
    b"<!doctype html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n<title>Start</title>\n"
    b"</head>\n<body><h1>Start</h1></body>\n</html>\n"
)

