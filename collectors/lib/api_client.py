"""HTTP client used by collectors.

Wraps an ``httpx.Client`` with a base URL, authentication headers and retry
with exponential backoff. Retries cover transport failures and throttling
or server-side statuses; once they run out, the last response is returned
as-is so the collector can classify it. Statuses such as 401 and 404 are
never retried here.

Example:
    with ApiClient("https://bitbucket.example.com", token="${BITBUCKET_TOKEN}") as client:
        response = client.get("rest/api/1.0/projects/PROJ/repos/app/branches",
                              params={"page": 1})
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx
import requests_toolbelt
import tenacity
from requests_toolbelt.utils.user_agent import user_agent
from tenacity import (
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from collectors import __version__

logger = logging.getLogger(__name__)

__all__ = ["ApiClient", "RETRYABLE_STATUS_CODES"]

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_USER_AGENT = user_agent(
    "bitbucket-collector",
    __version__,
    extras=[
        ("httpx", getattr(httpx, "__version__", "unknown")),
        ("tenacity", getattr(tenacity, "__version__", "unknown")),
        ("requests-toolbelt", getattr(requests_toolbelt, "__version__", "unknown")),
    ],
)


class ApiClient:
    """Authenticated, retrying HTTP GET capability for one API endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        max_backoff: float = 30.0,
        pool_maxsize: int = 10,
        pool_connections: int = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not endpoint:
            raise ValueError("endpoint is required (e.g., 'https://bitbucket.example.com')")

        self.endpoint = endpoint.rstrip("/") + "/"
        self.max_retries = max(max_retries, 1)
        self.backoff_factor = backoff_factor
        self.max_backoff = max_backoff

        request_headers = {"Accept": "application/json", "User-Agent": _USER_AGENT}
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        request_headers.update(headers or {})

        auth = None
        if username and password:
            auth = httpx.BasicAuth(username, password)

        self._client = httpx.Client(
            base_url=self.endpoint,
            headers=request_headers,
            auth=auth,
            timeout=timeout,
            limits=httpx.Limits(
                max_connections=pool_maxsize,
                max_keepalive_connections=pool_connections,
            ),
            transport=transport,
        )
        self.total_requests = 0

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Send a GET request, retrying transient failures.

        Args:
            path: Path relative to the endpoint; may carry its own query string
            params: Query parameters merged into the URL

        Returns:
            The final response, whatever its status

        Raises:
            httpx.HTTPError: If the transport keeps failing
        """
        # httpx replaces, rather than extends, a query string already on the URL
        base, _, query = path.lstrip("/").partition("?")
        merged = httpx.QueryParams(query).merge(params or {})

        @tenacity.retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_factor, max=self.max_backoff),
            retry=(
                retry_if_exception_type(httpx.TransportError)
                | retry_if_result(self._should_retry)
            ),
            retry_error_callback=self._last_result,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def do_request() -> httpx.Response:
            self.total_requests += 1
            logger.debug("GET %s params=%s", base, merged)
            response = self._client.get(base, params=merged)
            if response.status_code == 429:
                self._respect_retry_after(response)
            return response

        return do_request()

    def _should_retry(self, response: httpx.Response) -> bool:
        return response.status_code in RETRYABLE_STATUS_CODES

    @staticmethod
    def _last_result(retry_state: tenacity.RetryCallState) -> httpx.Response:
        # Out of attempts: hand back the last response, or re-raise the last error
        assert retry_state.outcome is not None
        return retry_state.outcome.result()

    def _respect_retry_after(self, response: httpx.Response) -> None:
        retry_after = response.headers.get("Retry-After")
        if not retry_after:
            return
        try:
            wait_seconds = float(retry_after)
        except (TypeError, ValueError):
            return
        if wait_seconds > 0:
            wait_seconds = min(wait_seconds, self.max_backoff)
            logger.warning(
                "Rate limited by API; sleeping %.1f seconds before retrying",
                wait_seconds,
            )
            time.sleep(wait_seconds)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
