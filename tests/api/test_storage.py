"""Tests for api/storage.py and api/state.py — durable per-user state."""

import json

from liftsync_mcp.api.model import PendingSync, SetRecord
from liftsync_mcp.api.state import WorkoutState
from liftsync_mcp.api.storage import JsonFileStore, MemoryStore
from liftsync_mcp.sdk.types import SyncType


class TestMemoryStore:
    def test_values_are_copied(self):
        store = MemoryStore()
        value = {"a": [1]}
        store.set("k", value)
        value["a"].append(2)
        assert store.get("k") == {"a": [1]}

    def test_remove_many(self):
        store = MemoryStore({"a": 1, "b": 2})
        store.remove_many(["a", "missing"])
        assert store.snapshot() == {"b": 2}


class TestJsonFileStore:
    def test_roundtrip_on_disk(self, tmp_path):
        store = JsonFileStore(tmp_path, "u1")
        assert store.set_many({"a": 1, "b": [2]}) is True
        assert JsonFileStore(tmp_path, "u1").get("b") == [2]
        assert json.loads(store.path.read_text()) == {"a": 1, "b": [2]}

    def test_users_are_isolated(self, tmp_path):
        JsonFileStore(tmp_path, "u1").set("k", 1)
        assert JsonFileStore(tmp_path, "u2").get("k") is None

    def test_path_is_sanitized(self, tmp_path):
        store = JsonFileStore(tmp_path, "../evil")
        assert store.path.parent == tmp_path
        assert store.path.name == "user_evil.json"

    def test_corrupt_file_reads_empty(self, tmp_path):
        store = JsonFileStore(tmp_path, "u1")
        store.path.write_text("{not json")
        assert store.get("k", "default") == "default"

    def test_write_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = JsonFileStore(blocker / "sub", "u1")
        assert store.set("k", 1) is False

    def test_no_temp_files_left(self, tmp_path):
        store = JsonFileStore(tmp_path, "u1")
        store.set("k", 1)
        assert [p.name for p in tmp_path.iterdir()] == ["user_u1.json"]


class TestWorkoutState:
    def test_load_drops_malformed_entries(self):
        store = MemoryStore({
            "completedDays": {
                "1": {"0": {"0": {"weight": 50, "reps": 5, "completedAt": "2026-02-19T10:00:00+00:00"}}},
                "x": {"0": {"0": {"weight": 1, "reps": 1}}},
            },
            "lockedDays": {"1": True, "-2": True},
            "pendingSyncs": [
                {"type": "recordSet", "data": {"sessionId": "1"}, "timestamp": "t"},
                {"type": "bogus", "data": {}},
            ],
        })
        state = WorkoutState(store, "u1")
        state.load()
        assert list(state.completed_days) == [1]
        assert state.locked_days == {1: True}
        assert len(state.pending_syncs) == 1
        assert state.current_day == 1

    def test_pending_syncs_persist_before_publish(self):
        store = MemoryStore()
        state = WorkoutState(store, "u1")
        op = PendingSync(type=SyncType.END_SESSION, data={"sessionId": "s"}, timestamp="t")
        state.update_pending_syncs(lambda ops: ops + [op])
        assert store.get("pendingSyncs")[0]["id"] == op.id
        assert state.pending_syncs[0].id == op.id

    def test_completed_days_persist_with_string_keys(self):
        store = MemoryStore()
        state = WorkoutState(store, "u1")
        record = SetRecord(weight=60, reps=8, completed_at="2026-02-19T10:00:00+00:00")
        state.update_completed_days(lambda view: view.setdefault(2, {}).setdefault(0, {}).update({1: record}))
        assert store.get("completedDays")["2"]["0"]["1"]["weight"] == 60
        assert state.read_completed_days()[2][0][1].reps == 8

    def test_clear_active_session(self):
        store = MemoryStore({"workoutStartTime": "t", "currentSessionId": "s", "lastSetEndTime": "t2"})
        state = WorkoutState(store, "u1")
        state.load()
        assert state.has_active_session
        state.clear_active_session()
        assert not state.has_active_session
        assert store.get("currentSessionId") is None
        assert store.get("lastSetEndTime") is None

    def test_commit_reconciliation_is_all_or_nothing(self):
        class FailingStore(MemoryStore):
            def set_many(self, values):
                return False

        state = WorkoutState(FailingStore(), "u1")
        state.locked_days = {3: True}
        record = SetRecord(weight=1, reps=1, completed_at="t")
        assert state.commit_reconciliation({1: {0: {0: record}}}, {1: True}) is False
        assert state.completed_days == {}
        assert state.locked_days == {3: True}
