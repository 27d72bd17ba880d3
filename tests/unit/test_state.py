"""Tests for collector state persistence and watermark resolution."""

import json
from datetime import datetime, timezone

from collectors.lib.models import CollectionParams, LatestState, SyncPolicy
from collectors.lib.state import JsonStateStore, resolve_collector_state

TABLE = "bitbucket_server_api_pull_requests"
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 2, 1, tzinfo=timezone.utc)
TIME_AFTER = datetime(2023, 1, 1, tzinfo=timezone.utc)


class TestJsonStateStore:
    def test_missing_state(self, state_store, params):
        assert state_store.load(params, TABLE) is None

    def test_save_and_load(self, state_store, params):
        state_store.save(params, TABLE, LatestState(latest_success_start=T0, time_after=TIME_AFTER))
        loaded = state_store.load(params, TABLE)
        assert loaded == LatestState(latest_success_start=T0, time_after=TIME_AFTER)

    def test_keyed_by_params_and_table(self, state_store, params):
        state_store.save(params, TABLE, LatestState(latest_success_start=T0))
        other = CollectionParams(connection_id=2, full_name=params.full_name)
        assert state_store.load(other, TABLE) is None
        assert state_store.load(params, "bitbucket_server_api_commits") is None

    def test_file_name_is_sanitized(self, state_store, params):
        path = state_store.path_for(params, TABLE)
        assert "/" not in path.name
        assert path.name.endswith("_state.json")

    def test_no_temp_file_left(self, state_store, params):
        state_store.save(params, TABLE, LatestState(latest_success_start=T0))
        assert [p.suffix for p in state_store.state_dir.iterdir()] == [".json"]

    def test_corrupt_file_is_ignored(self, state_store, params):
        path = state_store.path_for(params, TABLE)
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        assert state_store.load(params, TABLE) is None

    def test_file_for_another_scope_is_ignored(self, state_store, params):
        state_store.save(params, TABLE, LatestState(latest_success_start=T0))
        path = state_store.path_for(params, TABLE)
        data = json.loads(path.read_text(encoding="utf-8"))
        data["params"]["FullName"] = "OTHER/repos/x"
        path.write_text(json.dumps(data), encoding="utf-8")
        assert state_store.load(params, TABLE) is None

    def test_delete(self, state_store, params):
        state_store.save(params, TABLE, LatestState(latest_success_start=T0))
        assert state_store.delete(params, TABLE) is True
        assert state_store.delete(params, TABLE) is False
        assert state_store.load(params, TABLE) is None

    def test_state_dir_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COLLECTOR_STATE_DIR", str(tmp_path / "env-state"))
        assert JsonStateStore().state_dir == tmp_path / "env-state"


class TestResolveCollectorState:
    def test_first_run_is_full(self):
        state = resolve_collector_state(None, SyncPolicy())
        assert state.is_incremental is False
        assert state.since is None

    def test_first_run_uses_time_after(self):
        state = resolve_collector_state(None, SyncPolicy(time_after=TIME_AFTER))
        assert state.is_incremental is False
        assert state.since == TIME_AFTER

    def test_previous_success_is_incremental(self):
        latest = LatestState(latest_success_start=T1, time_after=TIME_AFTER)
        state = resolve_collector_state(latest, SyncPolicy(time_after=TIME_AFTER))
        assert state.is_incremental is True
        assert state.since == T1

    def test_full_sync_ignores_previous_state(self):
        latest = LatestState(latest_success_start=T1)
        state = resolve_collector_state(latest, SyncPolicy(full_sync=True))
        assert state.is_incremental is False
        assert state.since is None

    def test_changed_time_after_forces_full(self):
        latest = LatestState(latest_success_start=T1, time_after=TIME_AFTER)
        new_time_after = datetime(2022, 1, 1, tzinfo=timezone.utc)
        state = resolve_collector_state(latest, SyncPolicy(time_after=new_time_after))
        assert state.is_incremental is False
        assert state.since == new_time_after

    def test_default_policy(self):
        state = resolve_collector_state(LatestState(latest_success_start=T0))
        assert state.is_incremental is True
        assert state.since == T0
