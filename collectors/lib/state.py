"""Collector state persistence for incremental collection.

The state store remembers, per collection scope and raw table, when the
last successful run started and which ``time_after`` it ran with. A run
reads it once at start and writes it once at the end of a successful run;
failed runs never touch it, so the next run resumes from the last committed
watermark.

State is stored as JSON files in a state directory.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Union

from collectors.lib.models import CollectionParams, CollectorState, LatestState, SyncPolicy

logger = logging.getLogger(__name__)

__all__ = [
    "StateStore",
    "JsonStateStore",
    "resolve_collector_state",
    "DEFAULT_STATE_DIR",
]

# Default state directory - can be overridden via environment variable
DEFAULT_STATE_DIR = ".state"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class StateStore(Protocol):
    """Where collectors load and save their LatestState."""

    def load(self, params: CollectionParams, table: str) -> Optional[LatestState]: ...

    def save(self, params: CollectionParams, table: str, state: LatestState) -> None: ...


class JsonStateStore:
    """File-per-scope JSON state store.

    Example:
        >>> store = JsonStateStore("/var/lib/collector/state")
        >>> store.load(params, "bitbucket_server_api_commits")
    """

    def __init__(self, state_dir: Optional[Union[str, Path]] = None) -> None:
        if state_dir is None:
            state_dir = os.environ.get("COLLECTOR_STATE_DIR", DEFAULT_STATE_DIR)
        self.state_dir = Path(state_dir)

    def path_for(self, params: CollectionParams, table: str) -> Path:
        """Get the path to the state file for a scope."""
        name = f"{params.connection_id}_{params.full_name}_{table}"
        return self.state_dir / f"{_UNSAFE_CHARS.sub('_', name)}_state.json"

    def load(self, params: CollectionParams, table: str) -> Optional[LatestState]:
        """Return the last saved state, or None if there is none."""
        path = self.path_for(params, table)

        if not path.exists():
            logger.debug("No collector state found for %s", path.name)
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if data.get("params") != params.to_dict() or data.get("table") != table:
                logger.warning("State file %s belongs to another scope; ignoring it", path)
                return None
            state = LatestState.from_dict(data)
            logger.debug(
                "Found collector state for %s: %s (updated %s)",
                table,
                state.latest_success_start,
                data.get("updated_at", "unknown"),
            )
            return state
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as exc:
            logger.warning("Invalid collector state file %s: %s", path, exc)
            return None

    def save(self, params: CollectionParams, table: str, state: LatestState) -> None:
        """Persist state after a successful run."""
        self.state_dir.mkdir(parents=True, exist_ok=True)

        path = self.path_for(params, table)
        data = {
            "params": params.to_dict(),
            "table": table,
            **state.to_dict(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        # Write then rename so a crash never leaves half a file behind
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(path)
        logger.info("Saved collector state for %s: %s", table, state.latest_success_start)

    def delete(self, params: CollectionParams, table: str) -> bool:
        """Delete state to force a full collection next time.

        Returns:
            True if state was deleted, False if it didn't exist
        """
        path = self.path_for(params, table)
        if path.exists():
            path.unlink()
            logger.info("Deleted collector state for %s", table)
            return True
        return False


def resolve_collector_state(
    latest: Optional[LatestState],
    policy: Optional[SyncPolicy] = None,
) -> CollectorState:
    """Decide watermark and mode for a run.

    A run is incremental only when a full sync was not requested, a
    previous run succeeded, and ``time_after`` has not changed since that
    run. Otherwise the run collects everything (after ``time_after``, when
    set).
    """
    policy = policy or SyncPolicy()

    if policy.full_sync:
        logger.info("Full sync requested; ignoring previous state")
        return CollectorState(since=policy.time_after, is_incremental=False)

    if latest is None or latest.latest_success_start is None:
        return CollectorState(since=policy.time_after, is_incremental=False)

    if latest.time_after != policy.time_after:
        logger.info(
            "time_after changed from %s to %s; collecting in full",
            latest.time_after,
            policy.time_after,
        )
        return CollectorState(since=policy.time_after, is_incremental=False)

    return CollectorState(since=latest.latest_success_start, is_incremental=True)
