"""
Tests for liftsync MCP joint session tools.
"""

import json
import pytest
from unittest.mock import MagicMock, patch
from mcp.server.fastmcp import FastMCP

from liftsync_mcp import joint
from liftsync_mcp.api.messages import JointInviteMessage, JointProgressMessage
from liftsync_mcp.api.model import ProgressPayload
from tests.conftest import get_tool_result_text


@pytest.fixture
def app_with_joint():
    app = FastMCP("Test liftsync Joint")
    app = joint.register_tools(app)
    return app


@pytest.fixture
def sharing():
    mock = MagicMock()
    with patch("liftsync_mcp.api.joint.sdk_sharing", mock):
        yield mock


def _joint_session_payload():
    return {"id": "j1", "participants": [
        {"userId": "u1", "username": "alice"},
        {"userId": "u2", "username": "bob"},
    ]}


async def _call(app, name, args=None):
    result = await app.call_tool(name, args or {})
    return json.loads(get_tool_result_text(result))


@pytest.mark.asyncio
async def test_send_invite_without_session(app_with_joint, sharing):
    data = await _call(app_with_joint, "send_joint_invite", {"to_user_id": "u2"})
    assert data == {"sent": False, "invite_status": "idle"}
    sharing.send_joint_invite.assert_not_called()


@pytest.mark.asyncio
async def test_send_invite(app_with_joint, sharing, runtime):
    runtime.state.set_current_session_id("42")
    sharing.send_joint_invite.return_value = {"inviteId": "inv-1"}
    data = await _call(app_with_joint, "send_joint_invite", {"to_user_id": "u2"})
    assert data == {"sent": True, "invite_status": "waiting"}


@pytest.mark.asyncio
async def test_accept_invite(app_with_joint, sharing, runtime):
    runtime.state.set_workout_start_time("2026-02-19T10:00:00.000+02:00")
    runtime.joint.pending_invite = JointInviteMessage(invite_id="inv-1", from_user_id="u2")
    sharing.accept_joint_invite.return_value = {"jointSession": _joint_session_payload()}

    data = await _call(app_with_joint, "accept_joint_invite")

    assert data["accepted"] is True
    assert data["invite_status"] == "active"
    assert data["joint_session"]["id"] == "j1"
    # exercise list goes out over HTTP when there is no realtime connection
    assert sharing.push_joint_progress.call_args[0][2]["exerciseNames"][0]["name"] == "Bench Press"


@pytest.mark.asyncio
async def test_accept_without_invite(app_with_joint, sharing):
    data = await _call(app_with_joint, "accept_joint_invite")
    assert data["accepted"] is False
    assert data["joint_session"] is None


@pytest.mark.asyncio
async def test_decline_invite(app_with_joint, sharing, runtime):
    runtime.joint.pending_invite = JointInviteMessage(invite_id="inv-1")
    data = await _call(app_with_joint, "decline_joint_invite")
    assert data == {"declined": True}
    sharing.decline_joint_invite.assert_called_once()


@pytest.mark.asyncio
async def test_push_progress_and_status(app_with_joint, sharing, runtime):
    runtime.state.set_workout_start_time("2026-02-19T10:00:00.000+02:00")
    runtime.joint.pending_invite = JointInviteMessage(invite_id="inv-1")
    sharing.accept_joint_invite.return_value = {"jointSession": _joint_session_payload()}
    await _call(app_with_joint, "accept_joint_invite")

    data = await _call(app_with_joint, "push_joint_progress", {
        "exercise_index": 0, "set_index": 1, "exercise_name": "Bench Press", "ready_for_next": True,
    })
    assert data == {"pushed": True}

    runtime.joint.handle_message(JointProgressMessage(progress=ProgressPayload(
        exercise_index=0, set_index=2, exercise_name="Incline Press", from_user_id="u2",
    )))
    status = await _call(app_with_joint, "get_joint_status")
    assert status["is_in_joint_session"] is True
    assert status["partner_progress"]["setIndex"] == 2
    assert status["my_progress"]["setIndex"] == 1
    assert status["partner_completed_sets"] == [{"exercise_name": "Incline Press", "set_index": 2}]
    assert [e["name"] for e in status["partner_exercise_list"]] == ["Incline Press", "bench press "]
    assert status["realtime_connected"] is False


@pytest.mark.asyncio
async def test_leave(app_with_joint, sharing, runtime):
    runtime.state.set_workout_start_time("2026-02-19T10:00:00.000+02:00")
    runtime.joint.pending_invite = JointInviteMessage(invite_id="inv-1")
    sharing.accept_joint_invite.return_value = {"jointSession": _joint_session_payload()}
    await _call(app_with_joint, "accept_joint_invite")

    data = await _call(app_with_joint, "leave_joint_session")

    assert data == {"left": True, "invite_status": "idle"}
    assert sharing.leave_joint_session.call_args[0][1] == "j1"
