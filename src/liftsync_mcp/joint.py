"""
Joint session tools for the liftsync MCP server.

Invite a friend, answer invites, share progress, and leave.
"""

import json

from fastmcp import Context

from liftsync_mcp.client_factory import get_runtime, handle_token_expired
from liftsync_mcp.sdk.client import SessionExpiredError


def register_tools(app):
    """Register joint session tools with the MCP app."""

    @app.tool()
    async def send_joint_invite(ctx: Context, to_user_id: str) -> str:
        """
        Invite a friend to train together in your current session.

        Requires an active solo session that has reached the server.

        Args:
            to_user_id: The friend's user id

        Returns:
            JSON with whether the invite was sent and the invite status
        """
        try:
            runtime = await get_runtime(ctx)
            sent = await runtime.joint.send_invite(to_user_id)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({
            "sent": sent,
            "invite_status": runtime.joint.invite_status.value,
        }, indent=2)

    @app.tool()
    async def accept_joint_invite(ctx: Context) -> str:
        """
        Accept the pending joint session invite.

        Returns:
            JSON with the joint session, or accepted=false if there was nothing to accept
        """
        try:
            runtime = await get_runtime(ctx)
            accepted = await runtime.accept_invite()
        except SessionExpiredError:
            return handle_token_expired(ctx)
        joint_session = runtime.joint.joint_session
        return json.dumps({
            "accepted": accepted,
            "joint_session": joint_session.to_dict() if joint_session else None,
            "invite_status": runtime.joint.invite_status.value,
        }, indent=2)

    @app.tool()
    async def decline_joint_invite(ctx: Context) -> str:
        """
        Decline the pending joint session invite.

        Returns:
            JSON with whether an invite was declined
        """
        try:
            runtime = await get_runtime(ctx)
            declined = await runtime.joint.decline_invite()
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({"declined": declined}, indent=2)

    @app.tool()
    async def leave_joint_session(ctx: Context) -> str:
        """
        Leave the joint session and notify the partner.

        Local joint state is cleared even if the partner cannot be reached.

        Returns:
            JSON confirmation
        """
        try:
            runtime = await get_runtime(ctx)
            await runtime.joint.leave_joint_session()
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({
            "left": True,
            "invite_status": runtime.joint.invite_status.value,
        }, indent=2)

    @app.tool()
    async def push_joint_progress(
        ctx: Context,
        exercise_index: int = None,
        set_index: int = None,
        exercise_name: str = None,
        ready_for_next: bool = False,
    ) -> str:
        """
        Share your current exercise and set with your partner.

        Sent over the realtime connection, or over HTTP when it is down.

        Args:
            exercise_index: 0-based exercise position (optional)
            set_index: 0-based set position (optional)
            exercise_name: Exercise name (optional)
            ready_for_next: Signal that you are ready for the next set

        Returns:
            JSON with whether the progress was delivered
        """
        try:
            runtime = await get_runtime(ctx)
            pushed = await runtime.joint.push_progress(
                exercise_index, set_index, exercise_name, ready_for_next
            )
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({"pushed": pushed}, indent=2)

    @app.tool()
    async def get_joint_status(ctx: Context) -> str:
        """
        Get joint session state.

        Includes invite status, pending invite, partner progress, the sync
        pulse cue, the partner's completed sets and their exercise list.

        Returns:
            JSON joint session status
        """
        try:
            runtime = await get_runtime(ctx)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        status = runtime.joint.joint_status()
        status["realtime_connected"] = bool(runtime.transport and runtime.transport.connected)
        return json.dumps(status, indent=2)

    return app
