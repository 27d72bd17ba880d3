"""Core value types shared by the collection engine.

These are plain dataclasses. Nothing here talks to the network or to
storage; the engine threads them through a run explicitly.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional

__all__ = [
    "CollectionParams",
    "SeedInput",
    "Pager",
    "RequestData",
    "CollectorState",
    "LatestState",
    "SyncPolicy",
    "RunStatus",
    "parse_datetime",
    "to_naive_utc",
    "format_rfc3339",
]


class RunStatus(Enum):
    """Lifecycle of a single collection run."""

    INIT = "init"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CollectionParams:
    """Scope of a collection run.

    Every raw row written during a run is tagged with these params, and the
    input source and state store are keyed by them.
    """

    connection_id: int
    full_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ConnectionId": self.connection_id, "FullName": self.full_name}

    def to_json(self) -> str:
        """Stable JSON form used for tagging and lookups."""
        return json.dumps(self.to_dict(), sort_keys=True)


@dataclass(frozen=True)
class SeedInput:
    """One unit of pagination context, e.g. a branch or a pull request.

    Subclasses declare a single field and set ``column`` to the persisted
    column that field is projected from.
    """

    column: ClassVar[str] = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SeedInput":
        return cls(row[cls.column])  # type: ignore[call-arg]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)


@dataclass
class Pager:
    """Page descriptor for one request. Pages are 1-based."""

    page: Any = 1
    size: int = 100


@dataclass
class RequestData:
    """Everything a query builder may need to build one request."""

    pager: Pager
    params: CollectionParams
    input: Optional[SeedInput] = None
    custom_data: Any = None


@dataclass
class CollectorState:
    """Watermark and mode resolved for the current run."""

    since: Optional[datetime] = None
    is_incremental: bool = False


@dataclass
class LatestState:
    """What the state store remembers about the last successful run."""

    latest_success_start: Optional[datetime] = None
    time_after: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "latest_success_start": _iso_or_none(self.latest_success_start),
            "time_after": _iso_or_none(self.time_after),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LatestState":
        return cls(
            latest_success_start=parse_datetime(data.get("latest_success_start")),
            time_after=parse_datetime(data.get("time_after")),
        )


@dataclass
class SyncPolicy:
    """How the caller wants this run to treat previous state.

    ``full_sync`` ignores the stored watermark. ``time_after`` limits
    collection to data updated after a fixed date; changing it between
    runs forces a full collection.
    """

    full_sync: bool = False
    time_after: Optional[datetime] = None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 value into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(value: datetime) -> datetime:
    """Convert to the naive UTC form persisted rows use."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def format_rfc3339(value: datetime) -> str:
    """Format as RFC 3339 in UTC with second precision, e.g. 2023-01-01T00:00:00Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _iso_or_none(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
