"""Pagination strategies for API collection.

Provides state machines for the pagination patterns the collectors use.
Each state hands the engine the first request for a seed, then turns every
response into either the next request or ``None`` when the seed is done.
The engine never branches on the strategy itself.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional

import httpx

from collectors.lib.errors import FinishCollect
from collectors.lib.models import CollectionParams, Pager, RequestData, SeedInput

if TYPE_CHECKING:
    from collectors.lib.collector import ApiCollectorArgs

logger = logging.getLogger(__name__)

__all__ = [
    "PaginationStrategy",
    "PaginationState",
    "PageCountPaginationState",
    "CursorPaginationState",
    "UndeterminedPaginationState",
    "build_pagination_state",
    "strategy_for",
]

GetTotalPages = Callable[[httpx.Response, "ApiCollectorArgs"], int]
GetNextPageCustomData = Callable[[RequestData, httpx.Response], Any]


class PaginationStrategy(Enum):
    """Supported pagination strategies."""

    PAGE_COUNT = "page_count"
    CURSOR = "cursor"
    UNDETERMINED = "undetermined"


class PaginationState(ABC):
    """Base class for pagination state machines.

    One instance drives the pages of a single seed.
    """

    def __init__(
        self,
        page_size: int,
        params: CollectionParams,
        seed: Optional[SeedInput] = None,
    ) -> None:
        """Initialize pagination state.

        Args:
            page_size: Records requested per page
            params: Collection scope, passed through to query builders
            seed: Current seed input, or None for seedless collectors
        """
        self.page_size = page_size
        self.params = params
        self.seed = seed

    def first_request(self) -> RequestData:
        """Build the request for the first page of the seed."""
        return self._request(page=1)

    @abstractmethod
    def on_response(
        self,
        request: RequestData,
        response: httpx.Response,
        records: List[Any],
    ) -> Optional[RequestData]:
        """Process a page response.

        Args:
            request: The request that produced the response
            response: The HTTP response
            records: Records parsed from the response

        Returns:
            The next request, or None when the seed is complete
        """
        ...

    @abstractmethod
    def describe(self, request: RequestData) -> str:
        """Human-readable position for logging."""
        ...

    def _request(self, page: Any, custom_data: Any = None) -> RequestData:
        return RequestData(
            pager=Pager(page=page, size=self.page_size),
            params=self.params,
            input=self.seed,
            custom_data=custom_data,
        )


class PageCountPaginationState(PaginationState):
    """Pages 1..N where N comes from the first response.

    Typical API pattern:
        GET /items?page=1&pagelen=100   -> {"size": 250, "values": [...]}
        GET /items?page=2&pagelen=100
        GET /items?page=3&pagelen=100
    """

    def __init__(
        self,
        page_size: int,
        params: CollectionParams,
        seed: Optional[SeedInput],
        *,
        get_total_pages: GetTotalPages,
        args: "ApiCollectorArgs",
    ) -> None:
        super().__init__(page_size, params, seed)
        self._get_total_pages = get_total_pages
        self._args = args
        self.total_pages: Optional[int] = None

    def on_response(
        self,
        request: RequestData,
        response: httpx.Response,
        records: List[Any],
    ) -> Optional[RequestData]:
        if self.total_pages is None:
            self.total_pages = self._get_total_pages(response, self._args)
            logger.debug("Total pages for %s: %d", self.seed, self.total_pages)
        next_page = int(request.pager.page) + 1
        if next_page > self.total_pages:
            return None
        return self._request(page=next_page)

    def describe(self, request: RequestData) -> str:
        if self.total_pages is None:
            return f"page {request.pager.page}"
        return f"page {request.pager.page}/{self.total_pages}"


class CursorPaginationState(PaginationState):
    """Follow a server-provided next link.

    The next request uses whatever page token the callback extracts. Tokens
    are not assumed to be sequential.

    Typical API pattern:
        GET /items?page=1     -> {"next": "https://host/items?page=7", ...}
        GET /items?page=7     -> {"next": "", ...}
    """

    def __init__(
        self,
        page_size: int,
        params: CollectionParams,
        seed: Optional[SeedInput],
        *,
        get_next_page_custom_data: GetNextPageCustomData,
    ) -> None:
        super().__init__(page_size, params, seed)
        self._get_next = get_next_page_custom_data

    def on_response(
        self,
        request: RequestData,
        response: httpx.Response,
        records: List[Any],
    ) -> Optional[RequestData]:
        try:
            token = self._get_next(request, response)
        except FinishCollect:
            return None
        return self._request(page=token, custom_data=token)

    def describe(self, request: RequestData) -> str:
        if request.custom_data is None:
            return "(cursor pagination, first page)"
        return f"(cursor={request.custom_data})"


class UndeterminedPaginationState(PaginationState):
    """Sequential pages until one comes back short.

    Used when the API reports neither a total nor a next link.
    """

    def on_response(
        self,
        request: RequestData,
        response: httpx.Response,
        records: List[Any],
    ) -> Optional[RequestData]:
        if not records or len(records) < self.page_size:
            return None
        return self._request(page=int(request.pager.page) + 1)

    def describe(self, request: RequestData) -> str:
        return f"page {request.pager.page}"


def strategy_for(args: "ApiCollectorArgs") -> PaginationStrategy:
    """Pick the strategy implied by the collector arguments."""
    if args.get_total_pages is not None:
        return PaginationStrategy.PAGE_COUNT
    if args.get_next_page_custom_data is not None:
        return PaginationStrategy.CURSOR
    return PaginationStrategy.UNDETERMINED


def build_pagination_state(
    args: "ApiCollectorArgs",
    params: CollectionParams,
    seed: Optional[SeedInput] = None,
) -> PaginationState:
    """Create the pagination state for one seed.

    Args:
        args: Collector arguments
        params: Collection scope
        seed: Current seed input

    Returns:
        Appropriate PaginationState subclass instance
    """
    strategy = strategy_for(args)
    if strategy == PaginationStrategy.PAGE_COUNT:
        return PageCountPaginationState(
            args.page_size,
            params,
            seed,
            get_total_pages=args.get_total_pages,  # type: ignore[arg-type]
            args=args,
        )
    elif strategy == PaginationStrategy.CURSOR:
        return CursorPaginationState(
            args.page_size,
            params,
            seed,
            get_next_page_custom_data=args.get_next_page_custom_data,  # type: ignore[arg-type]
        )
    else:
        return UndeterminedPaginationState(args.page_size, params, seed)
