"""Helpers shared by collector tests.

Provides utilities for:
- Answering ApiClient requests from an in-process handler
- Building paged Bitbucket Server responses
- Creating tool-layer tables that seed input iterators
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import httpx
import pandas as pd

BASE_URL = "https://bitbucket.example.com/"


class RecordingHandler:
    """MockTransport handler that records requests and answers from a callable."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]):
        self.respond = respond
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def query_values(self, name: str) -> List[Optional[str]]:
        return [r.url.params.get(name) for r in self.requests]


def page(
    values: List[Any],
    *,
    next_link: str = "",
    size: Optional[int] = None,
    status: int = 200,
) -> httpx.Response:
    """Build a paged Bitbucket Server response."""
    body: Dict[str, Any] = {"values": values, "next": next_link, "isLastPage": not next_link}
    if size is not None:
        body["size"] = size
    return httpx.Response(status, json=body)


def next_link(path: str, token: Any) -> str:
    return f"{BASE_URL}{path.lstrip('/')}?page={token}"


def create_seed_table(con, table: str, rows: List[Dict[str, Any]]) -> None:
    """Create a tool-layer table holding seed rows.

    Rows need ``repo_id``, ``connection_id``, the seed column and
    ``bitbucket_updated_at`` as a naive UTC datetime.
    """
    df = pd.DataFrame(rows)
    df["connection_id"] = df["connection_id"].astype("int64")
    df["bitbucket_updated_at"] = pd.to_datetime(df["bitbucket_updated_at"])
    con.create_table(table, df)
