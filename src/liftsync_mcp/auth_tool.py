"""
Authentication tools for the liftsync MCP server.

Provides session management and the feature list.
"""

import json
import logging

from fastmcp import Context

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

from liftsync_mcp.client_factory import (
    get_client,
    get_settings,
    set_session_tokens,
    clear_session_tokens,
    discard_runtime,
)
from liftsync_mcp.sdk.client import LiftSyncClient


def register_tools(app):
    """Register authentication tools with the MCP app."""

    @app.tool()
    async def set_liftsync_session(token: str, user_id: str, ctx: Context) -> dict:
        """
        Start a liftsync session from an existing auth token.

        Token issuance happens elsewhere (the mobile app or web login);
        this only stores the token for subsequent tool calls.

        Args:
            token: Bearer token for the workout server
            user_id: The account's user id

        Returns:
            Session result
        """
        if not token or not user_id:
            return {"success": False, "error": "token and user_id are required"}
        try:
            settings = get_settings()
            client = LiftSyncClient(server_url=settings.server_url, token=token, user_id=str(user_id))
            set_session_tokens(ctx, client.export_token())
            return {"success": True, "message": "Session restored", "user_id": str(user_id)}
        except Exception as e:
            logger.error(f"Error restoring liftsync session: {e}")
            return {"success": False, "error": str(e)}

    @app.tool()
    async def liftsync_logout(ctx: Context) -> dict:
        """
        Logout from the current liftsync session.

        Stops the realtime connection and background sync. Queued workout
        data stays on disk and syncs after the next login.

        Returns:
            Logout confirmation
        """
        try:
            client = get_client(ctx)
            await discard_runtime(client.user_id or "default")
        except ValueError:
            pass
        clear_session_tokens(ctx)
        return {"success": True, "message": "Logged out"}

    @app.tool()
    async def get_available_features(ctx: Context) -> str:
        """
        Get list of available liftsync features.

        Returns:
            JSON with available feature categories
        """
        features = {
            "platform": "liftsync workout tracker",
            "auth": [
                "set_liftsync_session - Store an auth token for this MCP session",
                "liftsync_logout - Clear session and stop background sync",
                "get_available_features - This feature list",
            ],
            "workouts": [
                "start_workout - Start (or resume) the session for the current day",
                "record_set - Log a set locally and sync it (queued when offline)",
                "end_workout - End the session and lock the day",
                "delete_set - Remove a logged set locally",
                "lock_day / unlock_day - Mark a day done, or reopen it fresh",
                "select_day - Choose person and program day",
                "sync_pending - Replay queued operations now",
                "sync_from_server - Rebuild completed days from server history",
                "rename_exercise / add_extra_sets / add_exercise - Edit the program (local first, server best effort)",
                "set_app_state - Background or foreground the client (foreground replays the queue)",
                "get_workout_state - Current session, queue and completed sets",
            ],
            "joint_sessions": [
                "send_joint_invite - Invite a friend into your session",
                "accept_joint_invite / decline_joint_invite - Answer a pending invite",
                "leave_joint_session - Leave and notify the partner",
                "push_joint_progress - Share your current exercise and set",
                "get_joint_status - Partner progress, sync pulse, partner exercise list",
            ],
            "watch": [
                "start_watching - Follow a friend's live session (read-only)",
                "stop_watching - Stop following",
                "get_watch_status - Latest live snapshot",
            ],
            "notes": [
                "Sets are always saved locally first; server sync never blocks logging",
                "Live updates arrive over a websocket that reconnects with backoff",
            ],
        }
        return json.dumps(features, indent=2)

    return app
