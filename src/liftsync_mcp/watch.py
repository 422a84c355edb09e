"""
Watch session tools for the liftsync MCP server.

Follow a friend's live session read-only.
"""

import json

from fastmcp import Context

from liftsync_mcp.client_factory import get_runtime, handle_token_expired
from liftsync_mcp.sdk.client import SessionExpiredError


def register_tools(app):
    """Register watch session tools with the MCP app."""

    @app.tool()
    async def start_watching(ctx: Context, friend_id: str, friend_username: str, session_id: str) -> str:
        """
        Start following a friend's live session.

        Fetches the session once; later updates arrive over the realtime
        connection.

        Args:
            friend_id: The friend's user id
            friend_username: Display name, for status output
            session_id: The friend's live session id

        Returns:
            JSON with the live session snapshot, or the error
            ("session_ended" or "poll_error")
        """
        try:
            runtime = await get_runtime(ctx)
            watching = await runtime.joint.start_watching(friend_id, friend_username, session_id)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        status = runtime.joint.watch_status()
        status["started"] = watching
        return json.dumps(status, indent=2)

    @app.tool()
    async def stop_watching(ctx: Context) -> str:
        """
        Stop following the friend's live session.

        Returns:
            JSON confirmation
        """
        try:
            runtime = await get_runtime(ctx)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        runtime.joint.stop_watching()
        return json.dumps({"stopped": True}, indent=2)

    @app.tool()
    async def get_watch_status(ctx: Context) -> str:
        """
        Get the latest snapshot of the watched session.

        Returns:
            JSON watch status
        """
        try:
            runtime = await get_runtime(ctx)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps(runtime.joint.watch_status(), indent=2)

    return app
