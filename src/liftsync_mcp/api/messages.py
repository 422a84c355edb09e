"""
Realtime message codec.

Each known message kind is its own frozen dataclass; `Message` is the union
consumers `match` on. Decoding is strict: a known type with a malformed
payload raises MessageDecodeError rather than being half-filled.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from liftsync_mcp.api.model import JointSession, ProgressPayload
from liftsync_mcp.sdk.types import MessageType


class MessageDecodeError(ValueError):
    """A realtime frame could not be decoded."""


@dataclass(frozen=True)
class JointInviteMessage:
    invite_id: str
    from_user_id: Optional[str] = None
    from_username: Optional[str] = None
    from_session_id: Optional[str] = None


@dataclass(frozen=True)
class InviteStatusMessage:
    status: str
    joint_session: Optional[JointSession] = None


@dataclass(frozen=True)
class JointProgressMessage:
    progress: ProgressPayload


@dataclass(frozen=True)
class JointSessionEndedMessage:
    joint_session_id: Optional[str] = None


@dataclass(frozen=True)
class LiveSessionUpdateMessage:
    friend_id: str
    session_id: Optional[str] = None
    session: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FriendSessionEndedMessage:
    friend_id: str
    session_id: Optional[str] = None


@dataclass(frozen=True)
class UnknownMessage:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


Message = Union[
    JointInviteMessage,
    InviteStatusMessage,
    JointProgressMessage,
    JointSessionEndedMessage,
    LiveSessionUpdateMessage,
    FriendSessionEndedMessage,
    UnknownMessage,
]


def decode_message(text: Union[str, bytes]) -> Message:
    """Decode one raw realtime frame.

    Raises:
        MessageDecodeError: On invalid JSON or a malformed known message
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MessageDecodeError(f"invalid JSON: {e}") from e
    return parse_message(data)


def parse_message(data: Any) -> Message:
    """Turn a decoded JSON object into a typed message.

    Raises:
        MessageDecodeError: If the object is not a valid message
    """
    if not isinstance(data, dict):
        raise MessageDecodeError("message must be a JSON object")
    msg_type = data.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise MessageDecodeError("message has no type")

    try:
        return _parse_known(msg_type, data)
    except (KeyError, TypeError, ValueError) as e:
        raise MessageDecodeError(f"malformed {msg_type} message: {e}") from e


def _parse_known(msg_type: str, data: Dict[str, Any]) -> Message:
    if msg_type == MessageType.JOINT_INVITE:
        return JointInviteMessage(
            invite_id=str(data["inviteId"]),
            from_user_id=_opt_str(data.get("fromUserId")),
            from_username=data.get("fromUsername"),
            from_session_id=_opt_str(data.get("fromSessionId")),
        )

    if msg_type == MessageType.INVITE_STATUS:
        status = data["status"]
        if not isinstance(status, str):
            raise ValueError("status must be a string")
        raw_session = data.get("jointSession")
        return InviteStatusMessage(
            status=status,
            joint_session=JointSession.from_dict(raw_session) if raw_session else None,
        )

    if msg_type == MessageType.JOINT_PROGRESS:
        progress = data["progress"]
        if not isinstance(progress, dict):
            raise ValueError("progress must be an object")
        payload = ProgressPayload.from_dict(progress)
        if payload.from_user_id is None and data.get("fromUserId") is not None:
            payload.from_user_id = str(data["fromUserId"])
        return JointProgressMessage(progress=payload)

    if msg_type == MessageType.JOINT_SESSION_ENDED:
        return JointSessionEndedMessage(joint_session_id=_opt_str(data.get("jointSessionId")))

    if msg_type == MessageType.LIVE_SESSION_UPDATE:
        session = data.get("session") or data.get("liveSession") or {}
        if not isinstance(session, dict):
            raise ValueError("session must be an object")
        return LiveSessionUpdateMessage(
            friend_id=str(data["friendId"]),
            session_id=_opt_str(data.get("sessionId")),
            session=session,
        )

    if msg_type == MessageType.FRIEND_SESSION_ENDED:
        return FriendSessionEndedMessage(
            friend_id=str(data["friendId"]),
            session_id=_opt_str(data.get("sessionId")),
        )

    payload = {k: v for k, v in data.items() if k != "type"}
    return UnknownMessage(type=msg_type, payload=payload)


def _opt_str(value) -> Optional[str]:
    return str(value) if value is not None else None


# ── Outgoing frames ─────────────────────────────────────────────────────


def push_progress_frame(joint_session_id: str, progress: ProgressPayload) -> dict:
    return {
        "type": MessageType.PUSH_JOINT_PROGRESS.value,
        "jointSessionId": joint_session_id,
        "progress": progress.to_dict(),
    }


def leave_joint_session_frame(joint_session_id: str) -> dict:
    return {
        "type": MessageType.LEAVE_JOINT_SESSION.value,
        "jointSessionId": joint_session_id,
    }


def session_started_frame(session_id: str) -> dict:
    return {"type": MessageType.SESSION_STARTED.value, "sessionId": session_id}
