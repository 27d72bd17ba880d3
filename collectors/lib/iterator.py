"""Input sources for collectors.

A collector that needs one request sequence per branch, commit or pull
request reads those seeds from rows a previous collection already
persisted. ``CursorIterator`` walks an ibis table expression lazily, one
ordered chunk at a time, and decodes each row into the configured
SeedInput variant.

Example:
    with build_input_iterator(con, "_tool_bitbucket_server_branches",
                              params, state, BranchInput) as seeds:
        for seed in seeds:
            ...
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, Dict, Iterator, Optional, Type

import ibis
import ibis.expr.types as ir

from collectors.lib.models import CollectionParams, CollectorState, SeedInput, to_naive_utc

logger = logging.getLogger(__name__)

__all__ = ["CursorIterator", "build_input_iterator"]

DEFAULT_BATCH_SIZE = 500


class CursorIterator(Iterator[SeedInput]):
    """Lazy, finite, single-pass iterator of seed inputs.

    Rows are fetched in ordered chunks on demand, so seeds are produced
    while the collector works rather than loaded up front. Once exhausted
    or closed the iterator stays empty; it is not restartable.
    """

    def __init__(
        self,
        expr: ir.Table,
        input_type: Type[SeedInput],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.input_type = input_type
        self.batch_size = batch_size
        self._expr = expr.select(input_type.column).order_by(input_type.column)
        self._buffer: Deque[Dict[str, Any]] = deque()
        self._offset = 0
        self._exhausted = False
        self._closed = False
        self.fetched = 0

    def __iter__(self) -> "CursorIterator":
        return self

    def __next__(self) -> SeedInput:
        if self._closed:
            raise StopIteration
        if not self._buffer and not self._exhausted:
            self._fetch_batch()
        if not self._buffer:
            self._exhausted = True
            raise StopIteration
        self.fetched += 1
        return self.input_type.from_row(self._buffer.popleft())

    def _fetch_batch(self) -> None:
        rows = self._expr.limit(self.batch_size, offset=self._offset).to_pyarrow().to_pylist()
        self._offset += len(rows)
        if len(rows) < self.batch_size:
            self._exhausted = True
        self._buffer.extend(rows)
        logger.debug(
            "Fetched %d %s rows (offset %d)",
            len(rows),
            self.input_type.__name__,
            self._offset,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release buffered rows. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        logger.debug("Closed %s iterator after %d seeds", self.input_type.__name__, self.fetched)

    def __enter__(self) -> "CursorIterator":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def build_input_iterator(
    con: ibis.BaseBackend,
    table: str,
    params: CollectionParams,
    state: CollectorState,
    input_type: Type[SeedInput],
    *,
    updated_column: Optional[str] = "bitbucket_updated_at",
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> CursorIterator:
    """Build an iterator over rows in ``table`` that belong to ``params``.

    Rows are scoped by ``repo_id`` and ``connection_id``. On incremental
    runs with a watermark, only rows whose ``updated_column`` is after
    the watermark are returned.

    Args:
        con: Ibis backend holding previously collected rows
        table: Table name
        params: Collection scope
        state: Resolved collector state for this run
        input_type: SeedInput variant rows decode into
        updated_column: Column compared against the watermark
        batch_size: Rows fetched per chunk

    Returns:
        CursorIterator yielding ``input_type`` instances
    """
    t = con.table(table)
    expr = t.filter(
        (t.repo_id == params.full_name) & (t.connection_id == params.connection_id)
    )
    if updated_column and state.is_incremental and state.since is not None:
        expr = expr.filter(expr[updated_column] > to_naive_utc(state.since))
        logger.debug("Filtering %s on %s > %s", table, updated_column, state.since)
    return CursorIterator(expr, input_type, batch_size=batch_size)
