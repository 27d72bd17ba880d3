"""Response decoding helpers.

Every decode path funnels through ``decode_response`` so failures carry the
request URL and the raw body. Nothing is silently dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from collectors.lib.errors import DecodeError, RequestError

logger = logging.getLogger(__name__)

__all__ = ["decode_response", "request_url", "raise_for_unhandled_status"]


def request_url(response: httpx.Response) -> Optional[str]:
    """Best-effort URL of the request that produced a response."""
    try:
        return str(response.request.url)
    except RuntimeError:
        # Responses built by hand in tests have no request attached
        return None


def decode_response(response: Optional[httpx.Response]) -> Any:
    """Read and JSON-decode a response body.

    Raises:
        DecodeError: If the response is missing, unreadable or not JSON.
    """
    if response is None:
        raise DecodeError("Response is missing")

    url = request_url(response)
    try:
        raw = response.read()
    except httpx.HTTPError as exc:
        raise DecodeError(
            f"Error reading response from {url}", url=url, cause=exc
        ) from exc

    text = raw.decode(response.encoding or "utf-8", errors="replace")
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise DecodeError(
            f"Error decoding response from {url}",
            url=url,
            body=text,
            cause=exc,
        ) from exc


def raise_for_unhandled_status(response: httpx.Response) -> None:
    """Raise RequestError for any non-2xx status left after response hooks."""
    if response.is_success:
        return
    url = request_url(response)
    logger.debug("Unhandled HTTP %d from %s", response.status_code, url)
    raise RequestError(
        f"Request failed with HTTP {response.status_code}",
        url=url,
        status_code=response.status_code,
        details={"body": response.text[:200]} if response.content else None,
    )
