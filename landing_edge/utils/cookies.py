from __future__ import annotations

from typing import Optional
from urllib.parse import quote, unquote

from starlette.responses import Response

AFFILIATE_COOKIE = "affwp_affiliate_id"
VISIT_COOKIE = "affwp_visit_id"
CAMPAIGN_COOKIE = "affwp_campaign"
VARIANT_COOKIE_PREFIX = "ab_"

# Characters encodeURIComponent leaves alone.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def parse_cookie_header(raw: Optional[str]) -> dict[str, str]:
    """Parse a ``Cookie`` request header into a name -> value mapping.

    Values are percent-decoded. Entries without a name are dropped; a later
    duplicate name wins.
    """
    cookies: dict[str, str] = {}
    if not raw:
        return cookies
    for pair in raw.split(";"):
        name, _, value = pair.strip().partition("=")
        name = name.strip()
        if not name:
            continue
        cookies[name] = unquote(value.strip())
    return cookies


def encode_cookie_value(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def format_set_cookie(name: str, value: str, max_age: int, path: str = "/") -> str:
    return f"{name}={value}; Path={path}; Max-Age={max_age}; SameSite=Lax"


def append_set_cookie(response: Response, directive: str) -> None:
    response.headers.append("set-cookie", directive)
