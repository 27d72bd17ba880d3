"""Stateful, paginated API collection engine.

A ``StatefulApiCollector`` runs one collection for one raw table:

    Init      load the previous state and resolve the watermark
    Running   for every seed, page through the resource and persist raw rows
    Completed save the run start time as the next watermark
    Failed    leave state untouched and re-raise

Resource collectors are thin configuration on top of it:

    collector = StatefulApiCollector(ctx, "bitbucket_server_api_commits")
    collector.init_collector(ApiCollectorArgs(
        api_client=ctx.api_client,
        page_size=100,
        input=get_branches_iterator(ctx, collector.state),
        url_template="rest/api/1.0/projects/{{ .Params.FullName }}/commits?until={{ .Input.Branch }}",
        query=get_query,
        get_total_pages=get_total_pages_from_response,
        response_parser=get_raw_messages_from_response,
    ))
    result = collector.execute()
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

import httpx
import ibis

from collectors.lib.api_client import ApiClient
from collectors.lib.decoding import raise_for_unhandled_status, request_url
from collectors.lib.errors import (
    AuthenticationError,
    CollectionCancelled,
    ConfigurationError,
    IgnoreAndContinue,
    RequestError,
)
from collectors.lib.logging import CollectorLogger
from collectors.lib.models import (
    CollectionParams,
    CollectorState,
    LatestState,
    RequestData,
    RunStatus,
    SeedInput,
    SyncPolicy,
    parse_datetime,
)
from collectors.lib.pagination import (
    GetNextPageCustomData,
    GetTotalPages,
    build_pagination_state,
    strategy_for,
)
from collectors.lib.state import StateStore, resolve_collector_state
from collectors.lib.storage import RawDataStore
from collectors.lib.template import render_url_template

__all__ = [
    "TaskContext",
    "ApiCollectorArgs",
    "StatefulApiCollector",
    "ignore_http_status_404",
]

QueryBuilder = Callable[[RequestData], Dict[str, Any]]
ResponseParser = Callable[[httpx.Response], List[Any]]
AfterResponse = Callable[[httpx.Response], None]


def _close_input(args: "ApiCollectorArgs") -> None:
    close = getattr(args.input, "close", None)
    if close is not None:
        close()


def ignore_http_status_404(response: httpx.Response) -> None:
    """Classify statuses before decoding.

    401 aborts the run; 404 skips the current seed. Anything else is left
    for the engine's generic status check.
    """
    if response.status_code == 401:
        raise AuthenticationError(
            "authentication failed, please check your access token",
            url=request_url(response),
        )
    if response.status_code == 404:
        raise IgnoreAndContinue()


@dataclass
class TaskContext:
    """Collaborators shared by every collector of one task."""

    params: CollectionParams
    api_client: ApiClient
    con: ibis.BaseBackend
    state_store: StateStore
    sync_policy: SyncPolicy = field(default_factory=SyncPolicy)


@dataclass
class ApiCollectorArgs:
    """Configuration of one resource collector.

    Set ``get_total_pages`` for APIs reporting a total up front,
    ``get_next_page_custom_data`` for APIs returning a next link, or
    neither to page until a short page comes back.
    """

    api_client: ApiClient
    url_template: str
    response_parser: ResponseParser
    page_size: int = 100
    input: Optional[Iterable[SeedInput]] = None
    query: Optional[QueryBuilder] = None
    get_total_pages: Optional[GetTotalPages] = None
    get_next_page_custom_data: Optional[GetNextPageCustomData] = None
    after_response: Optional[AfterResponse] = ignore_http_status_404

    def validate(self) -> List[str]:
        """Return a list of configuration problems."""
        errors: List[str] = []
        if self.api_client is None:
            errors.append("api_client is required")
        if not self.url_template:
            errors.append("url_template is required")
        if self.response_parser is None:
            errors.append("response_parser is required")
        if self.page_size <= 0:
            errors.append("page_size must be positive")
        if self.get_total_pages is not None and self.get_next_page_custom_data is not None:
            errors.append(
                "get_total_pages and get_next_page_custom_data are mutually exclusive"
            )
        return errors


class StatefulApiCollector:
    """Collects one raw table, resuming from the last successful run."""

    def __init__(self, ctx: TaskContext, table: str) -> None:
        self.ctx = ctx
        self.params = ctx.params
        self.table = table
        self.status = RunStatus.INIT
        self.args: Optional[ApiCollectorArgs] = None
        self._stats: Dict[str, int] = {}

        self.log = CollectorLogger(__name__)
        self.log.set_context(
            connection_id=self.params.connection_id,
            full_name=self.params.full_name,
            table=table,
        )

        self.started_at = datetime.now(timezone.utc)
        self._latest = ctx.state_store.load(self.params, table)
        self.state: CollectorState = resolve_collector_state(self._latest, ctx.sync_policy)
        self.store = RawDataStore(ctx.con, table)

    @property
    def since(self) -> Optional[datetime]:
        return self.state.since

    @property
    def is_incremental(self) -> bool:
        return self.state.is_incremental

    def init_collector(self, args: ApiCollectorArgs) -> None:
        """Validate and attach the resource configuration."""
        errors = args.validate()
        if errors:
            _close_input(args)
            raise ConfigurationError(
                "Invalid collector arguments",
                issues=errors,
                connection_id=self.params.connection_id,
                full_name=self.params.full_name,
                table=self.table,
            )
        self.args = args

    def execute(
        self,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Run the collection.

        Args:
            cancel: Event checked between page fetches
            deadline: Time after which no new page is fetched; naive values are UTC

        Returns:
            Dictionary with collection results

        Raises:
            CollectorError: On any failure; state is left unchanged
        """
        if self.args is None:
            raise ConfigurationError(
                "init_collector() must be called before execute()", table=self.table
            )
        if self.status != RunStatus.INIT:
            raise ConfigurationError(
                f"Collector already ran (status: {self.status.value})", table=self.table
            )

        if deadline is not None:
            deadline = parse_datetime(deadline)

        args = self.args
        self.status = RunStatus.RUNNING
        self._stats = {"seeds": 0, "skipped_seeds": 0, "pages_fetched": 0, "row_count": 0}
        requests_before = args.api_client.total_requests

        self.log.info(
            "Starting %s collection of %s (since: %s, pagination: %s)",
            "incremental" if self.is_incremental else "full",
            self.table,
            self.since,
            strategy_for(args).value,
        )

        try:
            self.store.ensure_table()
            for seed in self._seeds(args):
                self._stats["seeds"] += 1
                self._collect_seed(args, seed, cancel, deadline)
        except BaseException as exc:
            self.status = RunStatus.FAILED
            self.log.error("Collection of %s failed: %s", self.table, exc)
            raise
        finally:
            _close_input(args)

        self.status = RunStatus.COMPLETED
        new_state = LatestState(
            latest_success_start=self.started_at,
            time_after=self.ctx.sync_policy.time_after,
        )
        self.ctx.state_store.save(self.params, self.table, new_state)

        result: Dict[str, Any] = {
            "status": self.status.value,
            "table": self.table,
            "since": self.since.isoformat() if self.since else None,
            "is_incremental": self.is_incremental,
            "new_watermark": self.started_at.isoformat(),
            "total_requests": args.api_client.total_requests - requests_before,
            **self._stats,
        }
        self.log.info(
            "Collected %d records for %s from %d seeds in %d pages (%d requests)",
            result["row_count"],
            self.table,
            result["seeds"],
            result["pages_fetched"],
            result["total_requests"],
        )
        return result

    def _seeds(self, args: ApiCollectorArgs) -> Iterator[Optional[SeedInput]]:
        if args.input is None:
            yield None
            return
        yield from args.input

    def _collect_seed(
        self,
        args: ApiCollectorArgs,
        seed: Optional[SeedInput],
        cancel: Optional[threading.Event],
        deadline: Optional[datetime],
    ) -> None:
        url = render_url_template(args.url_template, self.params, seed)
        pagination = build_pagination_state(args, self.params, seed)
        request: Optional[RequestData] = pagination.first_request()
        page_index = 0

        while request is not None:
            self._check_cancelled(cancel, deadline)
            page_index += 1

            response = self._fetch(args, url, request)
            if response is None:
                self._stats["skipped_seeds"] += 1
                self.log.info("Resource not found for %s; skipping", seed)
                return

            records = args.response_parser(response)
            next_request = pagination.on_response(request, response, records)
            written = self.store.append(
                self.params, seed, request_url(response), page_index, records
            )

            self._stats["pages_fetched"] += 1
            self._stats["row_count"] += written
            self.log.debug(
                "Fetched %d records %s for %s",
                written,
                pagination.describe(request),
                seed,
            )
            request = next_request

    def _fetch(
        self,
        args: ApiCollectorArgs,
        url: str,
        request: RequestData,
    ) -> Optional[httpx.Response]:
        """Send one request; None means the seed should be skipped."""
        query = args.query(request) if args.query else None
        try:
            response = args.api_client.get(url, params=query)
        except httpx.HTTPError as exc:
            raise RequestError(
                f"Request to {url} failed",
                url=url,
                cause=exc,
                connection_id=self.params.connection_id,
                full_name=self.params.full_name,
                table=self.table,
            ) from exc

        if args.after_response is not None:
            try:
                args.after_response(response)
            except IgnoreAndContinue:
                return None
        raise_for_unhandled_status(response)
        return response

    def _check_cancelled(
        self,
        cancel: Optional[threading.Event],
        deadline: Optional[datetime],
    ) -> None:
        if cancel is not None and cancel.is_set():
            raise CollectionCancelled("Collection cancelled", table=self.table)
        if deadline is not None and datetime.now(timezone.utc) >= deadline:
            raise CollectionCancelled(
                "Collection deadline exceeded",
                table=self.table,
                details={"deadline": deadline.isoformat()},
            )
