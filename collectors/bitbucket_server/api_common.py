"""Shared pieces of the Bitbucket Server collectors.

Query builders, response decoders, seed input types and input iterators
used by every Bitbucket Server resource collector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping
from urllib.parse import parse_qs, urlparse

import httpx

from collectors.lib.collector import ApiCollectorArgs, TaskContext
from collectors.lib.decoding import decode_response, request_url
from collectors.lib.errors import DecodeError, FinishCollect
from collectors.lib.iterator import CursorIterator, build_input_iterator
from collectors.lib.models import (
    CollectorState,
    RequestData,
    SeedInput,
    format_rfc3339,
)

if TYPE_CHECKING:
    from collectors.lib.collector import StatefulApiCollector

logger = logging.getLogger(__name__)

__all__ = [
    "BitbucketInput",
    "BranchInput",
    "CommitInput",
    "BitbucketServerPagination",
    "get_query",
    "get_query_fields",
    "get_query_created_and_updated",
    "get_next_page_custom_data",
    "get_total_pages_from_response",
    "total_pages",
    "get_raw_messages_from_response",
    "get_branches_iterator",
    "get_commits_iterator",
    "get_pull_requests_iterator",
]

BRANCHES_TABLE = "_tool_bitbucket_server_branches"
COMMITS_TABLE = "_tool_bitbucket_server_commits"
PULL_REQUESTS_TABLE = "_tool_bitbucket_server_pull_requests"
UPDATED_AT_COLUMN = "bitbucket_updated_at"

QueryBuilder = Callable[[RequestData], Dict[str, Any]]


@dataclass(frozen=True)
class BitbucketInput(SeedInput):
    """A pull request, by its Bitbucket id."""

    column = "bitbucket_id"

    bitbucket_id: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BitbucketInput":
        return cls(int(row[cls.column]))


@dataclass(frozen=True)
class BranchInput(SeedInput):
    """A branch, by name."""

    column = "branch"

    branch: str


@dataclass(frozen=True)
class CommitInput(SeedInput):
    """A commit, by sha."""

    column = "commit_sha"

    commit_sha: str


@dataclass
class BitbucketServerPagination:
    """Paged response envelope. Only ``values`` is always present."""

    values: List[Any] = field(default_factory=list)
    limit: int = 0
    size: int = 0
    page: int = 0
    start: int = 0
    next: str = ""
    is_last_page: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BitbucketServerPagination":
        return cls(
            values=list(data.get("values") or []),
            limit=int(data.get("limit") or 0),
            size=int(data.get("size") or 0),
            page=int(data.get("page") or 0),
            start=int(data.get("start") or 0),
            next=data.get("next") or "",
            is_last_page=bool(data.get("isLastPage", False)),
        )


def _decode_object(response: httpx.Response) -> Mapping[str, Any]:
    body = decode_response(response)
    if not isinstance(body, dict):
        raise DecodeError(
            "Expected a JSON object in response",
            url=request_url(response),
            body=response.text,
        )
    return body


def get_query(request: RequestData) -> Dict[str, Any]:
    """Base query: every state, current page and page length."""
    return {
        "state": "all",
        "page": str(request.pager.page),
        "pagelen": str(request.pager.size),
    }


def get_query_fields(fields: str) -> QueryBuilder:
    """Base query plus a field projection."""

    def query(request: RequestData) -> Dict[str, Any]:
        params = get_query(request)
        params["fields"] = fields
        return params

    return query


def get_query_created_and_updated(
    fields: str, collector: "StatefulApiCollector"
) -> QueryBuilder:
    """Query for incremental collection, sorted by creation.

    Adds an ``updated_on`` filter only on incremental runs with a watermark.
    """

    def query(request: RequestData) -> Dict[str, Any]:
        params = get_query(request)
        params["fields"] = fields
        params["sort"] = "created_on"
        state = collector.state
        if state.is_incremental and state.since is not None:
            params["q"] = f"updated_on>={format_rfc3339(state.since)}"
        return params

    return query


def get_next_page_custom_data(_: RequestData, prev_response: httpx.Response) -> str:
    """Extract the next page token from the ``next`` link.

    Raises:
        FinishCollect: If ``next`` is empty
        DecodeError: If the body or the link cannot be decoded
    """
    next_link = _decode_object(prev_response).get("next") or ""
    if next_link == "":
        raise FinishCollect()

    pages = parse_qs(urlparse(next_link).query).get("page")
    if not pages:
        raise DecodeError(
            "next link has no page parameter",
            url=request_url(prev_response),
            body=next_link,
        )
    logger.debug("Next page token %s from %s", pages[0], next_link)
    return pages[0]


def total_pages(size: int, page_size: int) -> int:
    """Pages needed for ``size`` records, rounding any remainder up."""
    pages = size // page_size
    if size % page_size > 0:
        pages += 1
    return pages


def get_total_pages_from_response(response: httpx.Response, args: ApiCollectorArgs) -> int:
    body = BitbucketServerPagination.from_dict(_decode_object(response))
    return total_pages(body.size, args.page_size)


def get_raw_messages_from_response(response: httpx.Response) -> List[Any]:
    """Return the ``values`` array as-is."""
    values = _decode_object(response).get("values")
    if values is None:
        return []
    if not isinstance(values, list):
        raise DecodeError(
            "values is not an array",
            url=request_url(response),
            body=response.text,
        )
    return values


def get_branches_iterator(ctx: TaskContext, state: CollectorState) -> CursorIterator:
    return build_input_iterator(
        ctx.con, BRANCHES_TABLE, ctx.params, state, BranchInput, updated_column=UPDATED_AT_COLUMN
    )


def get_commits_iterator(ctx: TaskContext, state: CollectorState) -> CursorIterator:
    return build_input_iterator(
        ctx.con, COMMITS_TABLE, ctx.params, state, CommitInput, updated_column=UPDATED_AT_COLUMN
    )


def get_pull_requests_iterator(ctx: TaskContext, state: CollectorState) -> CursorIterator:
    return build_input_iterator(
        ctx.con,
        PULL_REQUESTS_TABLE,
        ctx.params,
        state,
        BitbucketInput,
        updated_column=UPDATED_AT_COLUMN,
    )
