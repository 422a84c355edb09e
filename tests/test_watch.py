"""
Tests for liftsync MCP watch session tools.
"""

import json
import pytest
from unittest.mock import MagicMock, patch
from mcp.server.fastmcp import FastMCP

from liftsync_mcp import watch
from liftsync_mcp.api.messages import LiveSessionUpdateMessage
from liftsync_mcp.sdk.client import SessionExpiredError
from tests.conftest import get_tool_result_text


@pytest.fixture
def app_with_watch():
    app = FastMCP("Test liftsync Watch")
    app = watch.register_tools(app)
    return app


@pytest.fixture
def sharing():
    mock = MagicMock()
    with patch("liftsync_mcp.api.joint.sdk_sharing", mock):
        yield mock


async def _call(app, name, args=None):
    result = await app.call_tool(name, args or {})
    return json.loads(get_tool_result_text(result))


@pytest.mark.asyncio
async def test_start_watching(app_with_watch, sharing, runtime):
    sharing.get_friend_live_session.return_value = {"id": "s9", "exercises": []}

    data = await _call(app_with_watch, "start_watching", {
        "friend_id": "u2", "friend_username": "bob", "session_id": "s9",
    })

    assert data["started"] is True
    assert data["target"] == {"friend_id": "u2", "friend_username": "bob", "session_id": "s9"}
    assert data["session"]["id"] == "s9"

    runtime.joint.handle_message(LiveSessionUpdateMessage(friend_id="u2", session_id="s9", session={"id": "s9", "sets": 4}))
    status = await _call(app_with_watch, "get_watch_status")
    assert status["session"]["sets"] == 4


@pytest.mark.asyncio
async def test_start_watching_ended_session(app_with_watch, sharing):
    sharing.get_friend_live_session.return_value = None
    data = await _call(app_with_watch, "start_watching", {
        "friend_id": "u2", "friend_username": "bob", "session_id": "s9",
    })
    assert data["started"] is False
    assert data["error"] == "session_ended"


@pytest.mark.asyncio
async def test_start_watching_expired(app_with_watch, sharing):
    sharing.get_friend_live_session.side_effect = SessionExpiredError("SESSION_EXPIRED", 401)
    data = await _call(app_with_watch, "start_watching", {
        "friend_id": "u2", "friend_username": "bob", "session_id": "s9",
    })
    assert data["error_code"] == "SESSION_EXPIRED"


@pytest.mark.asyncio
async def test_stop_watching(app_with_watch, sharing, runtime):
    sharing.get_friend_live_session.return_value = {"id": "s9"}
    await _call(app_with_watch, "start_watching", {
        "friend_id": "u2", "friend_username": "bob", "session_id": "s9",
    })
    assert await _call(app_with_watch, "stop_watching") == {"stopped": True}
    assert runtime.joint.is_watching is False
