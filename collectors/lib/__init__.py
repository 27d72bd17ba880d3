"""Collection engine modules.

This package contains the reusable pieces every resource collector is
configured from: the stateful collector, pagination strategies, input
iterators, raw storage, state persistence and the HTTP client.
"""

from collectors.lib.api_client import ApiClient
from collectors.lib.collector import (
    ApiCollectorArgs,
    StatefulApiCollector,
    TaskContext,
    ignore_http_status_404,
)
from collectors.lib.config_loader import (
    CollectorConfig,
    ConnectionConfig,
    build_task_context,
    load_collector_config,
    parse_collector_config,
)
from collectors.lib.decoding import decode_response, raise_for_unhandled_status
from collectors.lib.errors import (
    AuthenticationError,
    CollectionCancelled,
    CollectorError,
    ConfigurationError,
    DecodeError,
    FinishCollect,
    IgnoreAndContinue,
    RequestError,
)
from collectors.lib.iterator import CursorIterator, build_input_iterator
from collectors.lib.logging import (
    CollectorLogger,
    JSONFormatter,
    setup_logging,
)
from collectors.lib.models import (
    CollectionParams,
    CollectorState,
    LatestState,
    Pager,
    RequestData,
    RunStatus,
    SeedInput,
    SyncPolicy,
)
from collectors.lib.pagination import (
    CursorPaginationState,
    PageCountPaginationState,
    PaginationState,
    PaginationStrategy,
    UndeterminedPaginationState,
    build_pagination_state,
)
from collectors.lib.state import JsonStateStore, StateStore, resolve_collector_state
from collectors.lib.storage import RawDataStore, raw_table_name
from collectors.lib.template import render_url_template

__all__ = [
    # API client
    "ApiClient",
    # Collector
    "ApiCollectorArgs",
    "StatefulApiCollector",
    "TaskContext",
    "ignore_http_status_404",
    # Config
    "CollectorConfig",
    "ConnectionConfig",
    "build_task_context",
    "load_collector_config",
    "parse_collector_config",
    # Decoding
    "decode_response",
    "raise_for_unhandled_status",
    # Errors
    "AuthenticationError",
    "CollectionCancelled",
    "CollectorError",
    "ConfigurationError",
    "DecodeError",
    "FinishCollect",
    "IgnoreAndContinue",
    "RequestError",
    # Input sources
    "CursorIterator",
    "build_input_iterator",
    # Logging
    "CollectorLogger",
    "JSONFormatter",
    "setup_logging",
    # Models
    "CollectionParams",
    "CollectorState",
    "LatestState",
    "Pager",
    "RequestData",
    "RunStatus",
    "SeedInput",
    "SyncPolicy",
    # Pagination
    "CursorPaginationState",
    "PageCountPaginationState",
    "PaginationState",
    "PaginationStrategy",
    "UndeterminedPaginationState",
    "build_pagination_state",
    # State
    "JsonStateStore",
    "StateStore",
    "resolve_collector_state",
    # Storage
    "RawDataStore",
    "raw_table_name",
    # Templates
    "render_url_template",
]
