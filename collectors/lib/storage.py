"""Raw data storage for collectors.

Collected API records land untouched in a ``_raw_<table>`` table, one row
per record, tagged with the collection params, the seed that produced it,
the request URL and the page ordinal. Rows are only ever appended; a re-run
may write the same records again.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import ibis
import pandas as pd

from collectors.lib.models import CollectionParams, SeedInput

logger = logging.getLogger(__name__)

__all__ = ["RAW_TABLE_PREFIX", "RAW_SCHEMA", "RawDataStore", "raw_table_name"]

RAW_TABLE_PREFIX = "_raw_"

RAW_SCHEMA = ibis.schema(
    {
        "params": "string",
        "data": "string",
        "url": "string",
        "input": "string",
        "page": "int64",
        "created_at": "timestamp",
    }
)


def raw_table_name(table: str) -> str:
    if table.startswith(RAW_TABLE_PREFIX):
        return table
    return f"{RAW_TABLE_PREFIX}{table}"


class RawDataStore:
    """Append-only raw record table backed by an ibis connection."""

    def __init__(self, con: ibis.BaseBackend, table: str) -> None:
        self.con = con
        self.table = raw_table_name(table)

    def ensure_table(self) -> None:
        """Create the raw table if it does not exist yet."""
        if self.table not in self.con.list_tables():
            self.con.create_table(self.table, schema=RAW_SCHEMA)
            logger.info("Created raw table %s", self.table)

    def append(
        self,
        params: CollectionParams,
        seed: Optional[SeedInput],
        url: Optional[str],
        page: int,
        records: Sequence[Any],
    ) -> int:
        """Append one page of records.

        Returns:
            Number of rows written (0 for an empty page)
        """
        if not records:
            return 0

        params_json = params.to_json()
        input_json = seed.to_json() if seed is not None else ""
        created_at = datetime.now(timezone.utc).replace(tzinfo=None)
        df = pd.DataFrame(
            {
                "params": [params_json] * len(records),
                "data": [json.dumps(r, separators=(",", ":")) for r in records],
                "url": [url or ""] * len(records),
                "input": [input_json] * len(records),
                "page": pd.Series([page] * len(records), dtype="int64"),
                "created_at": pd.to_datetime([created_at] * len(records)),
            },
            columns=list(RAW_SCHEMA.names),
        )
        self.con.insert(self.table, df)
        logger.debug("Wrote %d rows to %s (page %d)", len(records), self.table, page)
        return len(records)

    def _scoped(self, params: Optional[CollectionParams]) -> Any:
        t = self.con.table(self.table)
        if params is not None:
            t = t.filter(t.params == params.to_json())
        return t

    def count(self, params: Optional[CollectionParams] = None) -> int:
        """Count raw rows, optionally for a single scope."""
        if self.table not in self.con.list_tables():
            return 0
        return int(self._scoped(params).count().execute())

    def read(self, params: Optional[CollectionParams] = None) -> List[Dict[str, Any]]:
        """Return raw rows with ``data`` and ``input`` decoded."""
        if self.table not in self.con.list_tables():
            return []
        rows = self._scoped(params).to_pyarrow().to_pylist()
        for row in rows:
            row["data"] = json.loads(row["data"])
            row["input"] = json.loads(row["input"]) if row["input"] else None
        return rows
