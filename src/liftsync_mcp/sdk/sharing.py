"""
Joint session and watch session SDK functions.

Invite/accept/decline, progress push, leave, and friend live sessions.
"""

from typing import Any, Dict, Optional

from liftsync_mcp.sdk.client import LiftSyncClient, UnauthorizedError


def send_joint_invite(
    client: LiftSyncClient, to_user_id: str, from_session_id: str
) -> Dict[str, Any]:
    """
    Invite a friend to train together.

    POST api/sharing/joint-sessions/invite

    Returns:
        {inviteId, ...}
    """
    return client.make_request(
        "POST",
        "api/sharing/joint-sessions/invite",
        json_data={"toUserId": to_user_id, "fromSessionId": from_session_id},
    )


def get_pending_invite(client: LiftSyncClient) -> Optional[Dict[str, Any]]:
    """
    Get the invite currently waiting for this user, if any.

    GET api/sharing/joint-sessions/invites/pending
    """
    return client.make_request(
        "GET", "api/sharing/joint-sessions/invites/pending", allow_not_found=True
    )


def accept_joint_invite(client: LiftSyncClient, invite_id: str) -> Dict[str, Any]:
    """
    Accept an invite.

    POST api/sharing/joint-sessions/invites/{inviteId}/accept

    Returns:
        {jointSession: {id, participants: [...]}}
    """
    return client.make_request(
        "POST", f"api/sharing/joint-sessions/invites/{invite_id}/accept"
    )


def decline_joint_invite(client: LiftSyncClient, invite_id: str) -> Dict[str, Any]:
    """
    Decline an invite.

    POST api/sharing/joint-sessions/invites/{inviteId}/decline
    """
    return client.make_request(
        "POST", f"api/sharing/joint-sessions/invites/{invite_id}/decline"
    )


def push_joint_progress(
    client: LiftSyncClient, joint_session_id: str, progress: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Push progress over HTTP when the realtime channel is down.

    PATCH api/sharing/joint-sessions/{id}/progress
    """
    return client.make_request(
        "PATCH",
        f"api/sharing/joint-sessions/{joint_session_id}/progress",
        json_data=progress,
    )


def leave_joint_session(client: LiftSyncClient, joint_session_id: str) -> Dict[str, Any]:
    """
    Leave a joint session.

    DELETE api/sharing/joint-sessions/{id}/leave
    """
    return client.make_request(
        "DELETE", f"api/sharing/joint-sessions/{joint_session_id}/leave"
    )


def get_friend_live_session(
    client: LiftSyncClient, friend_id: str, session_id: str
) -> Optional[Dict[str, Any]]:
    """
    Get a friend's live session snapshot.

    GET api/sharing/watch/friend/{friendId}/session/{sessionId}/live

    Returns:
        The live session dict, or None if it ended or is not shared with us
    """
    try:
        response = client.make_request(
            "GET",
            f"api/sharing/watch/friend/{friend_id}/session/{session_id}/live",
            allow_not_found=True,
        )
    except UnauthorizedError:
        return None
    if response is None:
        return None
    return response.get("liveSession") or None
