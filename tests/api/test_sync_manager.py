"""Tests for api/sync_manager.py — pending operation queue and id translation."""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from liftsync_mcp.api.model import PendingSync
from liftsync_mcp.api.sync_manager import SyncManager, is_valid_set_payload
from liftsync_mcp.sdk.client import ApiError, NotFoundError, SessionExpiredError, UnauthorizedError
from liftsync_mcp.sdk.types import SyncType

LOCAL_ID = "local_1771495200000_a1b2c3"


def _start(local_id=LOCAL_ID):
    return PendingSync(
        type=SyncType.START_SESSION,
        data={"person": "Alice", "dayNumber": 1, "dayTitle": "Push", "muscleGroups": ["chest"],
              "isDemo": False, "startTime": "2026-02-19T10:00:00.000+02:00"},
        timestamp="2026-02-19T10:00:00.000+02:00",
        local_session_id=local_id,
    )


def _set(session_id=LOCAL_ID, weight=80, reps=5, set_index=0):
    return PendingSync(
        type=SyncType.RECORD_SET,
        data={"sessionId": session_id, "exerciseName": "Bench Press", "exerciseIndex": 0,
              "setIndex": set_index, "startTime": "t0", "endTime": "t1",
              "weight": weight, "reps": reps, "note": "", "isWarmup": False, "muscleGroup": "chest"},
        timestamp="t1",
    )


def _end(session_id=LOCAL_ID, local=True):
    return PendingSync(
        type=SyncType.END_SESSION,
        data={"sessionId": session_id, "endTime": "t9"},
        timestamp="t9",
        local_session_id=session_id if local else None,
    )


@pytest.fixture
def manager(state):
    return SyncManager(state, Mock(), on_session_translated=AsyncMock(), on_drained=AsyncMock())


def _queue(manager, *ops):
    for op in ops:
        manager.add_pending_sync(op)


def test_is_valid_set_payload():
    assert is_valid_set_payload({"weight": 20, "reps": 1})
    assert not is_valid_set_payload({"weight": 0, "reps": 5})
    assert not is_valid_set_payload({"weight": 20, "reps": 0})
    assert not is_valid_set_payload({"weight": "heavy", "reps": 5})
    assert not is_valid_set_payload({})


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_start_translates_every_queued_peer(mock_sdk, manager, state):
    mock_sdk.start_session.return_value = "srv-1"
    state.set_current_session_id(LOCAL_ID)
    _queue(manager, _start(), _set(set_index=0), _set(set_index=1), _end())

    assert await manager.sync_pending_data() is True

    assert mock_sdk.start_session.call_args[0][1:3] == ("Alice", 1)
    assert [c[0][1] for c in mock_sdk.record_set.call_args_list] == ["srv-1", "srv-1"]
    assert mock_sdk.end_session.call_args[0][1] == "srv-1"
    assert state.pending_syncs == []
    assert state.store.get("pendingSyncs") == []
    assert state.session_translations == {LOCAL_ID: "srv-1"}
    assert state.current_session_id == "srv-1"
    manager.on_session_translated.assert_awaited_once_with(LOCAL_ID, "srv-1")
    manager.on_drained.assert_awaited_once()


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_failed_start_keeps_session_bound_ops(mock_sdk, manager, state):
    mock_sdk.start_session.side_effect = ApiError("unreachable", 503)
    _queue(manager, _start(), _set(), _end())

    assert await manager.sync_pending_data() is False

    mock_sdk.record_set.assert_not_called()
    mock_sdk.end_session.assert_not_called()
    assert [op.type for op in state.pending_syncs] == [
        SyncType.START_SESSION, SyncType.RECORD_SET, SyncType.END_SESSION,
    ]


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_start_without_id_is_kept(mock_sdk, manager, state):
    mock_sdk.start_session.return_value = None
    _queue(manager, _start())
    assert await manager.sync_pending_data() is False
    assert state.pending_syncs[0].type == SyncType.START_SESSION
    assert state.session_translations == {}


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_replay_after_translation_does_not_start_twice(mock_sdk, manager, state):
    state.add_session_translation(LOCAL_ID, "srv-1")
    _queue(manager, _start(), _set())

    assert await manager.sync_pending_data() is True

    mock_sdk.start_session.assert_not_called()
    assert mock_sdk.record_set.call_args[0][1] == "srv-1"


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_invalid_sets_are_dropped_without_server_call(mock_sdk, manager, state):
    _queue(manager, _set("srv-1", weight=0), _set(LOCAL_ID, reps=0))

    assert await manager.sync_pending_data() is True

    mock_sdk.record_set.assert_not_called()
    assert state.pending_syncs == []


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_rejections_are_dropped(mock_sdk, manager, state):
    mock_sdk.record_set.side_effect = NotFoundError("not found: Session", 404)
    mock_sdk.end_session.side_effect = UnauthorizedError("unauthorized: not yours", 403)
    _queue(manager, _set("srv-9"), _end("srv-9", local=False))

    assert await manager.sync_pending_data() is True
    assert state.pending_syncs == []


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_rejected_start_drops_its_session(mock_sdk, manager, state):
    mock_sdk.start_session.side_effect = UnauthorizedError("unauthorized: not yours", 403)
    _queue(manager, _start(), _set(LOCAL_ID), _end(LOCAL_ID), _set("srv-1"))

    assert await manager.sync_pending_data() is True
    assert await manager.sync_pending_data() is True

    mock_sdk.start_session.assert_called_once()
    mock_sdk.record_set.assert_called_once()
    assert mock_sdk.record_set.call_args[0][1] == "srv-1"
    assert state.pending_syncs == []
    assert LOCAL_ID not in state.session_translations


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_transient_failures_are_kept_in_order(mock_sdk, manager, state):
    mock_sdk.record_set.side_effect = [ApiError("boom", 500), {}]
    first, second = _set("srv-1", set_index=0), _set("srv-1", set_index=1)
    _queue(manager, first, second)

    assert await manager.sync_pending_data() is False
    assert [op.id for op in state.pending_syncs] == [first.id]


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_local_bound_ops_wait_for_their_start(mock_sdk, manager, state):
    _queue(manager, _set(LOCAL_ID), _end(LOCAL_ID))

    assert await manager.sync_pending_data() is False

    mock_sdk.record_set.assert_not_called()
    mock_sdk.end_session.assert_not_called()
    assert len(state.pending_syncs) == 2


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_missing_exercise_name_gets_placeholder(mock_sdk, manager, state):
    op = _set("srv-1")
    op.data["exerciseName"] = None
    op.data["exerciseIndex"] = 3
    _queue(manager, op)

    await manager.sync_pending_data()
    assert mock_sdk.record_set.call_args[0][2] == "Exercise 3"


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_second_drain_is_refused_while_running(mock_sdk, manager, state):
    _queue(manager, _set("srv-1"))
    manager.draining = True

    assert await manager.sync_pending_data() is False
    mock_sdk.record_set.assert_not_called()
    assert len(state.pending_syncs) == 1


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_ops_queued_during_drain_survive(mock_sdk, manager, state):
    late = _set("srv-1", set_index=4)

    def record_and_enqueue(*args):
        if args[3] == 0:
            manager.add_pending_sync(late)
        raise ApiError("boom", 500)

    mock_sdk.record_set.side_effect = record_and_enqueue
    early = _set("srv-1", set_index=0)
    _queue(manager, early)

    assert await manager.sync_pending_data() is False
    assert [op.id for op in state.pending_syncs] == [early.id, late.id]


@pytest.mark.asyncio
@patch("liftsync_mcp.api.sync_manager.sdk_sessions")
async def test_expiry_persists_queue_and_raises(mock_sdk, manager, state):
    mock_sdk.start_session.side_effect = SessionExpiredError("SESSION_EXPIRED", 401)
    ops = [_start(), _set(), _end()]
    _queue(manager, *ops)

    with pytest.raises(SessionExpiredError):
        await manager.sync_pending_data()

    assert [op.id for op in state.read_pending_syncs()] == [op.id for op in ops]
    assert manager.draining is False
    manager.on_drained.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_queue_is_drained(manager):
    assert await manager.sync_pending_data() is True
    manager.on_drained.assert_not_awaited()


def test_cleanup_removes_orphans_only(manager, state):
    orphan = "local_1771495200000_ffffff"
    _queue(manager, _start(), _set(LOCAL_ID), _set(orphan), _end(orphan), _set("srv-1"))

    assert manager.cleanup_invalid_syncs() == 2
    assert [op.session_id for op in state.pending_syncs if op.type != SyncType.START_SESSION] == [LOCAL_ID, "srv-1"]


def test_cleanup_for_one_local_session(manager, state):
    _queue(manager, _start(), _set(LOCAL_ID), _end(LOCAL_ID))
    assert manager.cleanup_invalid_syncs(LOCAL_ID) == 2
    assert [op.type for op in state.pending_syncs] == [SyncType.START_SESSION]
