"""YAML configuration loader for collection tasks.

Example YAML (bitbucket.yaml):
    connection:
      id: 1
      endpoint: https://bitbucket.example.com/
      token: ${BITBUCKET_TOKEN}
      max_retries: 3
    scope:
      full_name: PROJ/repos/app
    sync_policy:
      full_sync: false
      time_after: 2023-01-01T00:00:00Z
    storage:
      database: ./collector.duckdb
      state_dir: ./.state

Usage:
    from collectors.lib.config_loader import load_collector_config, build_task_context
    config = load_collector_config("./bitbucket.yaml", env_file=".env")
    ctx = build_task_context(config)
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import ibis
import yaml
from dotenv import load_dotenv

from collectors.lib.api_client import ApiClient
from collectors.lib.collector import TaskContext
from collectors.lib.errors import ConfigurationError
from collectors.lib.models import CollectionParams, SyncPolicy, parse_datetime
from collectors.lib.state import JsonStateStore

logger = logging.getLogger(__name__)

__all__ = [
    "CollectorConfig",
    "ConnectionConfig",
    "load_collector_config",
    "parse_collector_config",
    "build_task_context",
]

# ${VAR_NAME} references in string values
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass
class ConnectionConfig:
    """How to reach the API."""

    id: int
    endpoint: str
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 0.5


@dataclass
class CollectorConfig:
    """Everything needed to build a TaskContext."""

    connection: ConnectionConfig
    full_name: str
    sync_policy: SyncPolicy = field(default_factory=SyncPolicy)
    database: str = ":memory:"
    state_dir: Optional[str] = None

    @property
    def params(self) -> CollectionParams:
        return CollectionParams(connection_id=self.connection.id, full_name=self.full_name)


def _expand(value: Any, missing: List[str]) -> Any:
    """Recursively expand ${VAR} references, recording unset names."""
    if isinstance(value, str):

        def replacer(match: re.Match[str]) -> str:
            name = match.group(1)
            env_value = os.environ.get(name)
            if env_value is None:
                missing.append(name)
                return match.group(0)
            return env_value

        return ENV_VAR_PATTERN.sub(replacer, value)
    if isinstance(value, dict):
        return {k: _expand(v, missing) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v, missing) for v in value]
    return value


def load_collector_config(
    path: Union[str, Path],
    *,
    env_file: Optional[Union[str, Path]] = None,
) -> CollectorConfig:
    """Load and validate a collector YAML file.

    Args:
        path: Path to the YAML file
        env_file: Optional .env file loaded before expansion

    Returns:
        Validated CollectorConfig

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", field="path", value=path)

    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=False)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    logger.debug("Loaded collector config from %s", path)
    return parse_collector_config(raw)


def parse_collector_config(raw: Any) -> CollectorConfig:
    """Validate a config mapping and build a CollectorConfig.

    Every problem is collected and reported together.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Config must be a mapping at the top level")

    missing_vars: List[str] = []
    raw = _expand(raw, missing_vars)
    issues: List[str] = [f"environment variable not set: {name}" for name in missing_vars]

    connection: Dict[str, Any] = raw.get("connection") or {}
    scope: Dict[str, Any] = raw.get("scope") or {}
    policy: Dict[str, Any] = raw.get("sync_policy") or {}
    storage: Dict[str, Any] = raw.get("storage") or {}

    connection_id = connection.get("id")
    if isinstance(connection_id, str) and connection_id.isdigit():
        connection_id = int(connection_id)
    if connection_id is None:
        issues.append("connection.id is required")
    elif not isinstance(connection_id, int) or isinstance(connection_id, bool):
        issues.append(f"connection.id must be an integer, got {connection_id!r}")

    endpoint = connection.get("endpoint")
    if not endpoint:
        issues.append("connection.endpoint is required (e.g., 'https://bitbucket.example.com/')")

    has_token = bool(connection.get("token"))
    has_basic = bool(connection.get("username")) and bool(connection.get("password"))
    if not (has_token or has_basic):
        issues.append("connection needs either token or username and password")

    full_name = scope.get("full_name")
    if not full_name:
        issues.append("scope.full_name is required (e.g., 'PROJ/repos/app')")

    time_after = None
    try:
        time_after = parse_datetime(policy.get("time_after"))
    except (TypeError, ValueError):
        issues.append(f"sync_policy.time_after is not a valid timestamp: {policy.get('time_after')!r}")

    if issues:
        raise ConfigurationError("Invalid collector configuration", issues=issues)

    return CollectorConfig(
        connection=ConnectionConfig(
            id=connection_id,
            endpoint=endpoint,
            token=connection.get("token"),
            username=connection.get("username"),
            password=connection.get("password"),
            timeout=float(connection.get("timeout", 30.0)),
            max_retries=int(connection.get("max_retries", 3)),
            backoff_factor=float(connection.get("backoff_factor", 0.5)),
        ),
        full_name=full_name,
        sync_policy=SyncPolicy(
            full_sync=bool(policy.get("full_sync", False)),
            time_after=time_after,
        ),
        database=str(storage.get("database", ":memory:")),
        state_dir=storage.get("state_dir"),
    )


def build_task_context(config: CollectorConfig, **client_kwargs: Any) -> TaskContext:
    """Create the collaborators described by a config.

    Extra keyword arguments are passed to ApiClient (e.g. ``transport``).
    """
    conn = config.connection
    api_client = ApiClient(
        conn.endpoint,
        token=conn.token,
        username=conn.username,
        password=conn.password,
        timeout=conn.timeout,
        max_retries=conn.max_retries,
        backoff_factor=conn.backoff_factor,
        **client_kwargs,
    )
    return TaskContext(
        params=config.params,
        api_client=api_client,
        con=ibis.duckdb.connect(config.database),
        state_store=JsonStateStore(config.state_dir),
        sync_policy=config.sync_policy,
    )
