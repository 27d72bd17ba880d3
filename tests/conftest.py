"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Callable, List, Optional

import httpx
import ibis
import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from collectors.lib.api_client import ApiClient  # noqa: E402
from collectors.lib.collector import TaskContext  # noqa: E402
from collectors.lib.models import CollectionParams, SyncPolicy  # noqa: E402
from collectors.lib.state import JsonStateStore  # noqa: E402
from tests.helpers import BASE_URL, RecordingHandler, create_seed_table  # noqa: E402


@pytest.fixture
def params() -> CollectionParams:
    return CollectionParams(connection_id=1, full_name="PROJ/repos/app")


@pytest.fixture
def con():
    """In-memory DuckDB connection."""
    return ibis.duckdb.connect()


@pytest.fixture
def state_store(tmp_path) -> JsonStateStore:
    return JsonStateStore(tmp_path / "state")


@pytest.fixture
def make_client():
    """Build ApiClients whose requests go to a handler instead of the network.

    The handler is reachable as ``client.handler``.
    """
    clients: List[ApiClient] = []

    def factory(respond: Callable[[httpx.Request], httpx.Response], **kwargs) -> ApiClient:
        handler = respond if isinstance(respond, RecordingHandler) else RecordingHandler(respond)
        kwargs.setdefault("token", "secret-token")
        kwargs.setdefault("max_retries", 1)
        kwargs.setdefault("backoff_factor", 0)
        client = ApiClient(BASE_URL, transport=httpx.MockTransport(handler), **kwargs)
        client.handler = handler
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def make_ctx(params, con, state_store):
    def factory(client: ApiClient, sync_policy: Optional[SyncPolicy] = None) -> TaskContext:
        return TaskContext(
            params=params,
            api_client=client,
            con=con,
            state_store=state_store,
            sync_policy=sync_policy or SyncPolicy(),
        )

    return factory


@pytest.fixture
def seed_table(con):
    def factory(table: str, rows) -> None:
        create_seed_table(con, table, rows)

    return factory
