"""Tests for api/reconcile.py — rebuilding completed days from server history."""

from datetime import datetime, timedelta

import pytest
from unittest.mock import MagicMock, Mock, patch

from liftsync_mcp.api.model import SetRecord
from liftsync_mcp.api.reconcile import ServerReconciliation, timing_to_record
from liftsync_mcp.sdk.client import ApiError, SessionExpiredError
from liftsync_mcp.sdk.types import SetSource

BASE = datetime(2026, 2, 19, 10, 0, 0).astimezone()


def _at(minutes):
    return (BASE + timedelta(minutes=minutes)).isoformat(timespec="milliseconds")


def _timing(name, set_index, minutes, weight=100):
    return {
        "exercise_name": name, "set_index": set_index, "weight": weight, "reps": 5,
        "start_time": _at(minutes - 1), "end_time": _at(minutes), "is_warmup": False,
    }


def _session(session_id, day, timings, ended=True):
    return {
        "id": session_id,
        "day_number": day,
        "start_time": _at(0),
        "end_time": _at(60) if ended else None,
        "set_timings": timings,
    }


@pytest.fixture
def sdk():
    sessions = MagicMock()
    program = MagicMock()
    program.fetch_saved_program.return_value = None
    with patch("liftsync_mcp.api.reconcile.sdk_sessions", sessions), \
            patch("liftsync_mcp.api.reconcile.sdk_program", program):
        yield sessions, program


def _serve(sessions_mock, *details):
    sessions_mock.get_session_history.return_value = [{"id": d["id"]} for d in details]
    by_id = {d["id"]: d for d in details}
    sessions_mock.get_session.side_effect = lambda client, sid: by_id[sid]


def test_timing_to_record():
    record = timing_to_record(_timing("Dips", 1, 5))
    assert record.source == SetSource.SERVER
    assert record.completed_at == _at(5)
    assert record.exercise_name == "Dips"


@pytest.mark.asyncio
async def test_rebuilds_view_and_locks(sdk, state):
    sessions, _ = sdk
    _serve(sessions,
           _session(1, 1, [_timing("Bench Press", 0, 5), _timing("dips", 1, 10), _timing("Mystery", 2, 12)]),
           _session(2, 2, [], ended=False))

    view = await ServerReconciliation(state, Mock()).sync_from_server()

    assert view[1][0][0].weight == 100
    assert view[1][1][1].source == SetSource.SERVER
    # unknown name falls back to the timing's position
    assert view[1][2][2].exercise_name == "Mystery"
    assert state.locked_days == {1: True}
    assert state.store.get("completedDays")["1"]["1"]["1"]["source"] == "server"
    assert sessions.get_session_history.call_args[0][1:4] == ("Alice", None, 100)


@pytest.mark.asyncio
async def test_unlocked_override_is_not_repopulated(sdk, state):
    sessions, _ = sdk
    state.set_unlocked_override(1, True)
    _serve(sessions, _session(1, 1, [_timing("Bench Press", 0, 5)]))

    view = await ServerReconciliation(state, Mock()).sync_from_server()

    assert 1 not in view
    assert state.locked_days == {}


@pytest.mark.asyncio
async def test_latest_end_time_wins_both_ways(sdk, state):
    sessions, _ = sdk
    state.set_workout_start_time(_at(0))
    state.set_current_session_id("42")
    local_newer = SetRecord(weight=120, reps=3, completed_at=_at(20), source=SetSource.LOCAL)
    local_older = SetRecord(weight=60, reps=3, completed_at=_at(8), source=SetSource.LOCAL)
    state.update_completed_days(
        lambda view: view.setdefault(1, {}).setdefault(0, {}).update({0: local_newer, 1: local_older})
    )
    _serve(sessions, _session("42", 1, [_timing("Bench Press", 0, 10), _timing("Bench Press", 1, 15)], ended=False))

    view = await ServerReconciliation(state, Mock()).sync_from_server()

    assert view[1][0][0].weight == 120
    assert view[1][0][0].source == SetSource.LOCAL
    assert view[1][0][1].weight == 100
    assert view[1][0][1].source == SetSource.SERVER


@pytest.mark.asyncio
async def test_local_sets_of_local_session_are_not_remerged(sdk, state):
    sessions, _ = sdk
    state.set_workout_start_time(_at(0))
    state.set_current_session_id("local_1771495200000_a1b2c3")
    state.update_completed_days(
        lambda view: view.setdefault(2, {}).setdefault(0, {}).update(
            {0: SetRecord(weight=1, reps=1, completed_at=_at(30))}
        )
    )
    _serve(sessions, _session(1, 1, [_timing("Bench Press", 0, 5)]))

    view = await ServerReconciliation(state, Mock()).sync_from_server()
    assert 2 not in view


@pytest.mark.asyncio
async def test_detail_failure_aborts_without_changes(sdk, state):
    sessions, _ = sdk
    before = SetRecord(weight=50, reps=5, completed_at=_at(1))
    state.update_completed_days(lambda view: view.setdefault(2, {}).setdefault(0, {}).update({0: before}))
    sessions.get_session_history.return_value = [{"id": 1}, {"id": 2}]
    sessions.get_session.side_effect = [_session(1, 1, []), ApiError("boom", 500)]

    assert await ServerReconciliation(state, Mock()).sync_from_server() is None

    assert state.completed_days[2][0][0].weight == 50
    assert state.locked_days == {}


@pytest.mark.asyncio
async def test_expiry_propagates(sdk, state):
    sessions, _ = sdk
    sessions.get_session_history.side_effect = SessionExpiredError("SESSION_EXPIRED", 401)
    with pytest.raises(SessionExpiredError):
        await ServerReconciliation(state, Mock()).sync_from_server()


@pytest.mark.asyncio
async def test_skips_without_person(sdk, state):
    sessions, _ = sdk
    state.selected_person = None
    assert await ServerReconciliation(state, Mock()).sync_from_server() is None
    sessions.get_session_history.assert_not_called()


@pytest.mark.asyncio
async def test_empty_history_changes_nothing(sdk, state):
    sessions, _ = sdk
    state.set_day_locked(2, True)
    _serve(sessions)
    assert await ServerReconciliation(state, Mock()).sync_from_server() is None
    assert state.locked_days == {2: True}


@pytest.mark.asyncio
async def test_program_refresh_is_advisory(sdk, state):
    sessions, program = sdk
    program.fetch_saved_program.side_effect = ApiError("boom", 500)
    _serve(sessions, _session(1, 1, [_timing("Bench Press", 0, 5)]))

    view = await ServerReconciliation(state, Mock()).sync_from_server()
    assert view[1][0][0].weight == 100


@pytest.mark.asyncio
async def test_server_program_with_more_exercises_is_applied(sdk, state, program):
    sessions, sdk_program = sdk
    server = {"days": [dict(d) for d in program["days"]]}
    server["days"][1] = {
        "dayNumber": 2,
        "people": {"Alice": {"exercises": [{"name": "Back Squat", "sets": 4}, {"name": "RDL", "sets": 3}]}},
    }
    sdk_program.fetch_saved_program.return_value = server
    _serve(sessions, _session(1, 2, [_timing("RDL", 0, 5)]))

    view = await ServerReconciliation(state, Mock()).sync_from_server()

    assert [e["name"] for e in state.program["days"][1]["people"]["Alice"]["exercises"]] == ["Back Squat", "RDL"]
    assert view[2][1][0].exercise_name == "RDL"


@pytest.mark.asyncio
async def test_fetch_session_history_fails_soft(sdk, state):
    sessions, _ = sdk
    sessions.get_session_history.side_effect = ApiError("boom", 500)
    assert await ServerReconciliation(state, Mock()).fetch_session_history() == []
