"""
Joint session coordination and watch sessions.

Joint sessions: idle -> sending -> waiting -> active -> idle, with declined
and error as side exits. Progress goes out over the realtime transport when
it is open and over HTTP otherwise.

Watch sessions: one read-only target at a time, fetched once on start and
then refreshed only by live_session_update / friend_session_ended pushes.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from liftsync_mcp.api import program as program_ops
from liftsync_mcp.api.messages import (
    FriendSessionEndedMessage,
    InviteStatusMessage,
    JointInviteMessage,
    JointProgressMessage,
    JointSessionEndedMessage,
    LiveSessionUpdateMessage,
    Message,
    UnknownMessage,
    leave_joint_session_frame,
    push_progress_frame,
)
from liftsync_mcp.api.model import (
    JointSession,
    PartnerCompletedSet,
    PartnerProgress,
    ProgressPayload,
    WatchTarget,
)
from liftsync_mcp.api.state import WorkoutState
from liftsync_mcp.api.transport import RealtimeTransport
from liftsync_mcp.sdk import sharing as sdk_sharing
from liftsync_mcp.sdk.client import LiftSyncClient, SessionExpiredError
from liftsync_mcp.sdk.types import SYNC_PULSE_SECONDS, InviteStatus
from liftsync_mcp.utils import is_local_session_id

logger = logging.getLogger(__name__)


def _name_key(name: Optional[str]) -> str:
    return (name or "").strip().lower()


class JointSessionCoordinator:
    """Joint session state machine plus the watch-session client for one user."""

    def __init__(
        self,
        state: WorkoutState,
        client: LiftSyncClient,
        transport: Optional[RealtimeTransport] = None,
        user_id: str = None,
        sync_pulse_seconds: float = SYNC_PULSE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.state = state
        self.client = client
        self.transport = transport
        self.user_id = str(user_id) if user_id is not None else state.user_id
        self.sync_pulse_seconds = sync_pulse_seconds
        self._clock = clock

        self.invite_status = InviteStatus.IDLE
        self.joint_session: Optional[JointSession] = None
        self.pending_invite: Optional[JointInviteMessage] = None
        self.partner_progress: Optional[PartnerProgress] = None
        self.my_progress: Optional[ProgressPayload] = None
        self.is_partner_ready = False
        self.sync_pulse = False
        self.partner_completed_sets: List[PartnerCompletedSet] = []
        self._pulse_handle: Optional[asyncio.TimerHandle] = None
        self._last_pushed_key: Optional[str] = None

        self.watch_target: Optional[WatchTarget] = None
        self.watch_session: Optional[Dict[str, Any]] = None
        self.watch_loading = False
        self.watch_error: Optional[str] = None

    # ── Derived ─────────────────────────────────────────────────────────

    @property
    def is_in_joint_session(self) -> bool:
        return self.invite_status == InviteStatus.ACTIVE and self.joint_session is not None

    @property
    def is_watching(self) -> bool:
        return self.watch_target is not None

    def _my_exercise_names(self) -> List[Dict[str, Any]]:
        person = self.state.selected_person
        return [
            {"name": e.name, "sets": e.sets}
            for e in program_ops.day_exercise_entries(self.state.program, self.state.current_day)
            if e.person == person and e.name
        ]

    @property
    def my_exercise_names_key(self) -> str:
        """Content key of my current exercise list, used to dedupe automatic pushes."""
        return "||".join(e["name"] for e in self._my_exercise_names())

    @property
    def partner_exercise_list(self) -> List[Dict[str, Any]]:
        """Partner's distinct exercises for the current day.

        Prefers exercises tagged with a person other than mine, falling back
        to the whole day. First occurrence wins, compared case and space
        insensitively.
        """
        if not self.is_in_joint_session:
            return []
        entries = program_ops.day_exercise_entries(self.state.program, self.state.current_day)
        if not entries:
            return []
        person = self.state.selected_person
        others = [e for e in entries if e.person and e.person != person]
        seen = set()
        result = []
        for entry in others or entries:
            key = _name_key(entry.name)
            if key and key not in seen:
                seen.add(key)
                result.append({"name": entry.name, "sets": entry.sets})
        return result

    # ── Incoming messages ───────────────────────────────────────────────

    def handle_message(self, message: Message) -> None:
        """Apply one realtime message. Registered as a transport listener."""
        match message:
            case JointProgressMessage(progress=progress):
                self._on_progress(progress)
            case JointInviteMessage():
                if not self.is_in_joint_session:
                    self.pending_invite = message
                    logger.info(f"Joint invite {message.invite_id} from {message.from_username}")
            case InviteStatusMessage(status="accepted", joint_session=session) if session is not None:
                self.invite_status = InviteStatus.ACTIVE
                self.joint_session = session
                logger.info(f"Joint session {session.id} active")
            case InviteStatusMessage(status="declined"):
                self.invite_status = InviteStatus.DECLINED
            case InviteStatusMessage(status="session_ended"):
                self._reset()
            case InviteStatusMessage():
                logger.debug(f"Ignoring invite status {message.status}")
            case JointSessionEndedMessage():
                logger.info("Joint session ended by partner")
                self._reset()
            case LiveSessionUpdateMessage(friend_id=friend_id, session_id=session_id):
                if self._is_watch_target(friend_id, session_id):
                    self.watch_session = message.session
            case FriendSessionEndedMessage(friend_id=friend_id, session_id=session_id):
                if self._is_watch_target(friend_id, session_id):
                    self.watch_target = None
                    self.watch_session = None
                    self.watch_error = "session_ended"
            case UnknownMessage():
                logger.debug(f"Unhandled realtime message type {message.type}")

    def _on_progress(self, progress: ProgressPayload) -> None:
        if progress.from_user_id is not None and progress.from_user_id == self.user_id:
            return

        if progress.exercise_names is not None and progress.from_user_id and self.joint_session:
            self.joint_session = self.joint_session.with_exercise_names(
                progress.from_user_id, progress.exercise_names
            )

        previous = self.partner_progress
        changed = (
            previous is None
            or previous.exercise_index != progress.exercise_index
            or previous.set_index != progress.set_index
        )
        if changed and progress.ready_for_next:
            self._trigger_sync_pulse()
        if changed and progress.exercise_name is not None and progress.set_index is not None:
            self._add_partner_completed_set(progress.exercise_name, progress.set_index)

        self.partner_progress = PartnerProgress(
            exercise_index=progress.exercise_index,
            set_index=progress.set_index,
            exercise_name=progress.exercise_name,
            ready_for_next=progress.ready_for_next,
            last_updated=self._clock(),
        )
        self.is_partner_ready = progress.ready_for_next

    def _add_partner_completed_set(self, exercise_name: str, set_index: int) -> None:
        key = _name_key(exercise_name)
        for existing in self.partner_completed_sets:
            if _name_key(existing.exercise_name) == key and existing.set_index == set_index:
                return
        self.partner_completed_sets.append(PartnerCompletedSet(exercise_name, set_index))

    def _trigger_sync_pulse(self) -> None:
        self.sync_pulse = True
        if self._pulse_handle is not None:
            self._pulse_handle.cancel()
        loop = asyncio.get_running_loop()
        self._pulse_handle = loop.call_later(self.sync_pulse_seconds, self._clear_sync_pulse)

    def _clear_sync_pulse(self) -> None:
        self._pulse_handle = None
        self.sync_pulse = False

    def _reset(self) -> None:
        """Drop every piece of joint session state in one step."""
        self.joint_session = None
        self.partner_progress = None
        self.invite_status = InviteStatus.IDLE
        self.is_partner_ready = False
        self.my_progress = None
        self.partner_completed_sets = []
        self._last_pushed_key = None
        if self._pulse_handle is not None:
            self._pulse_handle.cancel()
            self._pulse_handle = None
        self.sync_pulse = False

    # ── Invites ─────────────────────────────────────────────────────────

    async def send_invite(self, to_user_id: str) -> bool:
        """Invite a friend into the current solo session."""
        session_id = self.state.current_session_id
        if not session_id or self.is_in_joint_session:
            logger.info("Cannot invite: no active solo session")
            return False
        if is_local_session_id(session_id):
            logger.info("Cannot invite: session has not reached the server yet")
            return False

        self.invite_status = InviteStatus.SENDING
        try:
            response = await asyncio.to_thread(
                sdk_sharing.send_joint_invite, self.client, str(to_user_id), session_id
            )
        except SessionExpiredError:
            self.invite_status = InviteStatus.ERROR
            raise
        except Exception as e:
            logger.error(f"Failed to send joint invite: {e}")
            self.invite_status = InviteStatus.ERROR
            return False

        if not (response or {}).get("inviteId"):
            logger.error("Joint invite response carried no invite id")
            self.invite_status = InviteStatus.ERROR
            return False
        self.invite_status = InviteStatus.WAITING
        return True

    async def accept_invite(self) -> bool:
        invite = self.pending_invite
        if invite is None:
            return False
        try:
            response = await asyncio.to_thread(
                sdk_sharing.accept_joint_invite, self.client, invite.invite_id
            )
            raw_session = (response or {}).get("jointSession")
            if not raw_session:
                logger.error("Accept response carried no joint session")
                return False
            session = JointSession.from_dict(raw_session)
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.error(f"Failed to accept joint invite: {e}")
            return False

        self.pending_invite = None
        self.invite_status = InviteStatus.ACTIVE
        self.joint_session = session
        logger.info(f"Joined joint session {session.id}")
        await self.check_solo_session()
        return True

    async def decline_invite(self) -> bool:
        invite = self.pending_invite
        if invite is None:
            return False
        try:
            await asyncio.to_thread(sdk_sharing.decline_joint_invite, self.client, invite.invite_id)
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.warning(f"Failed to decline joint invite: {e}")
        self.pending_invite = None
        return True

    async def restore_pending_invite(self) -> Optional[JointInviteMessage]:
        """Pick up an invite that arrived while we were offline. Fails soft."""
        try:
            response = await asyncio.to_thread(sdk_sharing.get_pending_invite, self.client)
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.warning(f"Could not fetch pending invite: {e}")
            return None

        raw = (response or {}).get("invite")
        invite_id = (raw or {}).get("id", (raw or {}).get("inviteId"))
        if invite_id is None or self.is_in_joint_session:
            return None
        self.pending_invite = JointInviteMessage(
            invite_id=str(invite_id),
            from_user_id=str(raw["fromUserId"]) if raw.get("fromUserId") is not None else None,
            from_username=raw.get("fromUsername"),
            from_session_id=str(raw["fromSessionId"]) if raw.get("fromSessionId") is not None else None,
        )
        return self.pending_invite

    # ── Active session ──────────────────────────────────────────────────

    async def leave_joint_session(self) -> None:
        """Notify the partner (best effort) and reset locally no matter what."""
        joint_id = self.joint_session.id if self.joint_session else None
        try:
            if joint_id:
                if self.transport is not None:
                    await self.transport.send(leave_joint_session_frame(joint_id))
                try:
                    await asyncio.to_thread(sdk_sharing.leave_joint_session, self.client, joint_id)
                except SessionExpiredError:
                    raise
                except Exception as e:
                    logger.warning(f"Failed to leave joint session on server: {e}")
        finally:
            self._reset()
        logger.info(f"Left joint session {joint_id}")

    async def check_solo_session(self) -> bool:
        """Leave the joint session when no solo workout backs it."""
        if self.is_in_joint_session and not self.state.workout_start_time:
            logger.info("Solo workout not running, leaving joint session")
            await self.leave_joint_session()
            return True
        return False

    async def push_progress(
        self,
        exercise_index: Optional[int],
        set_index: Optional[int],
        exercise_name: Optional[str],
        ready_for_next: bool = False,
    ) -> bool:
        """Explicit progress push. Always sent, never deduplicated."""
        if self.joint_session is None:
            return False
        progress = ProgressPayload(
            exercise_index=exercise_index,
            set_index=set_index,
            exercise_name=exercise_name,
            ready_for_next=ready_for_next,
            exercise_names=self._my_exercise_names(),
        )
        self.my_progress = progress
        return await self._send_progress(self.joint_session.id, progress)

    async def push_exercise_list(self) -> bool:
        """Send my exercise list once per distinct list in this joint session."""
        if not self.is_in_joint_session:
            return False
        key = self.my_exercise_names_key
        if not key or key == self._last_pushed_key:
            return False
        self._last_pushed_key = key
        progress = ProgressPayload(exercise_names=self._my_exercise_names())
        return await self._send_progress(self.joint_session.id, progress)

    async def _send_progress(self, joint_id: str, progress: ProgressPayload) -> bool:
        if self.transport is not None and self.transport.is_open:
            if await self.transport.send(push_progress_frame(joint_id, progress)):
                return True
        try:
            await asyncio.to_thread(
                sdk_sharing.push_joint_progress, self.client, joint_id, progress.to_dict()
            )
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.warning(f"Failed to push joint progress: {e}")
            return False
        return True

    # ── Watch ───────────────────────────────────────────────────────────

    def _is_watch_target(self, friend_id: str, session_id: Optional[str]) -> bool:
        target = self.watch_target
        if target is None or target.friend_id != str(friend_id):
            return False
        return session_id is None or session_id == target.session_id

    async def start_watching(self, friend_id: str, friend_username: str, session_id: str) -> bool:
        """Set the watch target and fetch its live session once."""
        self.watch_target = WatchTarget(str(friend_id), friend_username, str(session_id))
        self.watch_session = None
        self.watch_error = None
        self.watch_loading = True
        try:
            live = await asyncio.to_thread(
                sdk_sharing.get_friend_live_session, self.client, str(friend_id), str(session_id)
            )
        except SessionExpiredError:
            self.watch_target = None
            raise
        except Exception as e:
            logger.error(f"Failed to start watching: {e}")
            self.watch_error = "poll_error"
            self.watch_target = None
            return False
        finally:
            self.watch_loading = False

        if not live:
            self.watch_error = "session_ended"
            self.watch_target = None
            return False
        self.watch_session = live
        return True

    def stop_watching(self) -> None:
        self.watch_target = None
        self.watch_session = None
        self.watch_error = None
        self.watch_loading = False

    # ── Snapshots ───────────────────────────────────────────────────────

    def joint_status(self) -> dict:
        return {
            "invite_status": self.invite_status.value,
            "is_in_joint_session": self.is_in_joint_session,
            "joint_session": self.joint_session.to_dict() if self.joint_session else None,
            "pending_invite": {
                "invite_id": self.pending_invite.invite_id,
                "from_user_id": self.pending_invite.from_user_id,
                "from_username": self.pending_invite.from_username,
            } if self.pending_invite else None,
            "partner_progress": self.partner_progress.to_dict() if self.partner_progress else None,
            "my_progress": self.my_progress.to_dict() if self.my_progress else None,
            "is_partner_ready": self.is_partner_ready,
            "sync_pulse": self.sync_pulse,
            "partner_completed_sets": [
                {"exercise_name": s.exercise_name, "set_index": s.set_index}
                for s in self.partner_completed_sets
            ],
            "partner_exercise_list": self.partner_exercise_list,
        }

    def watch_status(self) -> dict:
        target = self.watch_target
        return {
            "is_watching": self.is_watching,
            "target": {
                "friend_id": target.friend_id,
                "friend_username": target.friend_username,
                "session_id": target.session_id,
            } if target else None,
            "session": self.watch_session,
            "loading": self.watch_loading,
            "error": self.watch_error,
        }
