"""
Injects the active experiment/variant marker into HTML pages.

The marker is a small inline script placed right before the first ``</head>``:

    <script>window.abExperiment="beginners-course-start";window.abVariant="variant-b";...</script>

Analytics snippets on the page read the two globals; if the page already
defines ``window.abTrack`` it is called with both values.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional, Union

from starlette.responses import Response

logger = logging.getLogger(__name__)

HEAD_CLOSE = b"</head>"
TRACK_FUNCTION = "abTrack"


def _js_string(value: str) -> str:
    return json.dumps(value).replace("</", "<\\/")


def build_tag_script(experiment_key: str, variant_name: str) -> bytes:
    return (
        "<script>"
        f"window.abExperiment={_js_string(experiment_key)};"
        f"window.abVariant={_js_string(variant_name)};"
        f'if(typeof window.{TRACK_FUNCTION}==="function")'
        f"{{window.{TRACK_FUNCTION}(window.abExperiment,window.abVariant);}}"
        "</script>"
    ).encode("utf-8")


def inject_before_head_close(body: bytes, snippet: bytes) -> bytes:
    index = body.lower().find(HEAD_CLOSE)
    if index == -1:
        return body
    return body[:index] + snippet + body[index:]


async def inject_into_stream(
    chunks: AsyncIterator[Union[bytes, str]],
    snippet: bytes,
) -> AsyncIterator[bytes]:
    """
    Streams ``chunks`` through, inserting ``snippet`` before the first ``</head>``.
    At most len(HEAD_CLOSE) - 1 bytes are held back while searching, so a tag split
    across chunks is still found.
    """
    keep = len(HEAD_CLOSE) - 1
    pending = b""
    injected = False

    async for chunk in chunks:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if injected:
            yield chunk
            continue

        pending += chunk
        index = pending.lower().find(HEAD_CLOSE)
        if index != -1:
            yield pending[:index] + snippet + pending[index:]
            pending = b""
            injected = True
        elif len(pending) > keep:
            yield pending[:-keep]
            pending = pending[-keep:]

    if pending:
        yield pending


def maybe_tag(
    response: Response,
    experiment_key: Optional[str] = None,
    variant_name: Optional[str] = None,
) -> Response:
    if not experiment_key:
        return response

    encoding = response.headers.get("content-encoding", "identity").lower()
    if encoding not in ("", "identity"):
        logger.warning("Skipping variant tag for %s-encoded body", encoding)
        return response

    snippet = build_tag_script(experiment_key, variant_name or "")

    body_iterator = getattr(response, "body_iterator", None)
    if body_iterator is not None:
        response.body_iterator = inject_into_stream(body_iterator, snippet)
        if "content-length" in response.headers:
            del response.headers["content-length"]
        return response

    response.body = inject_before_head_close(response.body, snippet)
    response.headers["content-length"] = str(len(response.body))
    return response
