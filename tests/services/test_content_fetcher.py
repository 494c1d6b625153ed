import httpx
import pytest

from helpers import make_request, read_body
from landing_edge.services.content import LOCAL_ORIGIN, ContentFetcher, build_origin_transport
from landing_edge.utils.errors import ContentUnavailableError


def _fetcher(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, ContentFetcher(client, "https://origin.example.com/")


@pytest.mark.asyncio
async def test_passes_request_through_unchanged():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        return httpx.Response(
            200,
            headers={"content-type": "text/css", "cache-control": "max-age=600", "connection": "keep-alive"},
            content=b"body{}",
        )

    client, fetcher = _fetcher(handler)
    async with client:
        request = make_request("/style.css", query="v=3", headers={"cookie": "a=1", "accept-encoding": "gzip, br"})
        response = await fetcher.fetch(request)
        body = await read_body(response)
        await response.background()

    assert seen["url"] == "https://origin.example.com/style.css?v=3"
    assert seen["headers"]["cookie"] == "a=1"
    assert seen["headers"]["accept-encoding"] == "identity"
    assert seen["headers"]["host"] == "origin.example.com"
    assert response.status_code == 200
    assert response.headers["content-type"] == "text/css"
    assert response.headers["cache-control"] == "max-age=600"
    assert "connection" not in response.headers
    assert body == b"body{}"


class ChunkedBody(httpx.AsyncByteStream):
    def __init__(self, *chunks: bytes):
        self.chunks = chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "make_response",
    [
        lambda: httpx.Response(200, headers={"content-type": "text/html"}, content=b"<p>hello</p>"),
        lambda: httpx.Response(200, headers={"content-type": "text/html"}, stream=ChunkedBody(b"<p>hel", b"lo</p>")),
    ],
    ids=["already-read", "streamed"],
)
async def test_body_relayed_whether_or_not_origin_buffered_it(make_response):
    client, fetcher = _fetcher(lambda request: make_response())
    async with client:
        response = await fetcher.fetch(make_request("/hello/"))
        body = await read_body(response)
        await response.background()

    assert body == b"<p>hello</p>"


@pytest.mark.asyncio
async def test_override_path_rewrites_target_and_keeps_query():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html></html>")

    client, fetcher = _fetcher(handler)
    async with client:
        request = make_request("/beginners-course/start/", query="ref=7")
        await fetcher.fetch(request, "/beginners-course/start-b/")

    assert seen["url"] == "https://origin.example.com/beginners-course/start-b/?ref=7"


@pytest.mark.asyncio
async def test_origin_errors_pass_through():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, headers={"content-type": "text/html"}, content=b"not here")

    client, fetcher = _fetcher(handler)
    async with client:
        response = await fetcher.fetch(make_request("/missing/"))
        assert response.status_code == 404
        assert await read_body(response) == b"not here"


@pytest.mark.asyncio
async def test_unreachable_origin_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, fetcher = _fetcher(handler)
    async with client:
        with pytest.raises(ContentUnavailableError) as exc_info:
            await fetcher.fetch(make_request("/"))
    assert exc_info.value.http_status == 502


@pytest.mark.asyncio
async def test_origin_redirect_made_relative():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(307, headers={"location": "https://origin.example.com/beginners-course/start/"})

    client, fetcher = _fetcher(handler)
    async with client:
        response = await fetcher.fetch(make_request("/beginners-course/start"))
    assert response.headers["location"] == "/beginners-course/start/"


@pytest.mark.asyncio
async def test_local_static_directory(tmp_path):
    (tmp_path / "course").mkdir()
    (tmp_path / "course" / "index.html").write_text("<html><head></head><body>course</body></html>")

    origin, transport = build_origin_transport(None, str(tmp_path))
    assert origin == LOCAL_ORIGIN

    async with httpx.AsyncClient(transport=transport) as client:
        fetcher = ContentFetcher(client, origin)
        response = await fetcher.fetch(make_request("/course/"))
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert b"course" in await read_body(response)

        missing = await fetcher.fetch(make_request("/nope.css"))
        assert missing.status_code == 404


def test_remote_origin_uses_default_transport():
    origin, transport = build_origin_transport("https://bucket.example.com", "public")
    assert origin == "https://bucket.example.com"
    assert transport is None
