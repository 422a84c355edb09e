"""
Session lifecycle: start, record sets, end.

Local state is always written first. The server call comes second and
falls back to the pending operation queue when it fails. A local session
id is never sent to the server; operations bound to one go straight to
the queue.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from liftsync_mcp.api import completed_days as cd
from liftsync_mcp.api import program as program_ops
from liftsync_mcp.api.messages import session_started_frame
from liftsync_mcp.api.model import PendingSync, SetRecord
from liftsync_mcp.api.state import WorkoutState
from liftsync_mcp.api.sync_manager import SyncManager
from liftsync_mcp.api.transport import RealtimeTransport
from liftsync_mcp.sdk import sessions as sdk_sessions
from liftsync_mcp.sdk.client import LiftSyncClient, RejectedError, SessionExpiredError
from liftsync_mcp.sdk.types import (
    DEFAULT_REST_SECONDS,
    INACTIVITY_THRESHOLD_SECONDS,
    MAX_REST_SECONDS,
    MIN_REST_SECONDS,
    POST_END_SYNC_DELAY_SECONDS,
    SetSource,
    SyncType,
)
from liftsync_mcp.utils import (
    generate_local_session_id,
    is_local_session_id,
    local_iso_now,
    timestamp_of,
)

logger = logging.getLogger(__name__)


class SessionManager:
    """NoSession -> Active -> Ended for one user. At most one active session."""

    def __init__(
        self,
        state: WorkoutState,
        client: LiftSyncClient,
        sync_manager: SyncManager,
        transport: Optional[RealtimeTransport] = None,
        is_demo: bool = False,
        post_end_sync_delay: float = POST_END_SYNC_DELAY_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.state = state
        self.client = client
        self.sync_manager = sync_manager
        self.transport = transport
        self.is_demo = is_demo
        self.post_end_sync_delay = post_end_sync_delay
        self._clock = clock
        self._drain_handle: Optional[asyncio.TimerHandle] = None
        self._drain_task: Optional[asyncio.Task] = None

    # ── Start ───────────────────────────────────────────────────────────

    async def start_workout(self) -> Optional[str]:
        """Start a session, or return the active one.

        Returns:
            Server session id, or a local session id when the server is unreachable

        Raises:
            SessionExpiredError: After the start has been queued under a local id
        """
        if self.state.has_active_session:
            logger.info(f"Workout already started, returning existing session {self.state.current_session_id}")
            return self.state.current_session_id

        start_time = local_iso_now()
        self.state.set_workout_start_time(start_time)
        self.update_last_activity_time()
        self.state.set_last_set_end_time(None)

        day_number = self.state.current_day
        day = program_ops.find_day(self.state.program, day_number) or {}
        payload = {
            "person": self.state.selected_person,
            "dayNumber": day_number,
            "dayTitle": day.get("dayTitle"),
            "muscleGroups": list(day.get("muscleGroups") or []),
            "isDemo": self.is_demo,
            "startTime": start_time,
        }

        session_id = None
        expired = None
        try:
            session_id = await asyncio.to_thread(
                sdk_sessions.start_session,
                self.client,
                payload["person"],
                day_number,
                payload["dayTitle"],
                payload["muscleGroups"],
                self.is_demo,
                start_time,
            )
        except SessionExpiredError as e:
            expired = e
        except Exception as e:
            logger.error(f"Failed to start session on server (offline): {e}")

        if session_id:
            self.state.set_current_session_id(session_id)
            logger.info(f"Session started on server with ID {session_id}")
            await self.announce_session(session_id)
            return session_id

        local_id = generate_local_session_id()
        self.state.set_current_session_id(local_id)
        self.sync_manager.add_pending_sync(PendingSync(
            type=SyncType.START_SESSION,
            data=payload,
            timestamp=start_time,
            local_session_id=local_id,
        ))
        logger.info(f"Session queued for sync with local ID {local_id}")
        if expired is not None:
            raise expired
        return local_id

    async def announce_session(self, session_id: str) -> bool:
        """Tell the realtime channel a session is live. Best effort."""
        if self.transport is None or is_local_session_id(session_id):
            return False
        return await self.transport.send(session_started_frame(session_id))

    # ── Sets ────────────────────────────────────────────────────────────

    async def save_set_details(
        self,
        day_number: int,
        exercise_index: int,
        set_index: int,
        weight: float,
        reps: int,
        note: str = "",
        is_warmup: bool = False,
    ) -> SetRecord:
        """Record a set locally, then on the server (or in the queue).

        Starts a session first if none is active. The local write is never
        rolled back.
        """
        expired = None
        if not self.state.has_active_session:
            logger.info("Starting new workout session for set")
            try:
                await self.start_workout()
            except SessionExpiredError as e:
                expired = e
        session_id = self.state.current_session_id

        self.update_last_activity_time()
        set_start = self.state.last_set_end_time or self.state.workout_start_time or local_iso_now()
        set_end = local_iso_now()

        exercise = program_ops.exercise_at(
            self.state.program, day_number, self.state.selected_person, exercise_index
        ) or {}
        exercise_name = exercise.get("name") or f"Exercise {exercise_index}"
        muscle_group = exercise.get("muscleGroup")

        record = SetRecord(
            weight=weight or 0,
            reps=reps or 0,
            completed_at=set_end,
            note=note or "",
            is_warmup=bool(is_warmup),
            source=SetSource.LOCAL,
            exercise_name=exercise_name,
            started_at=set_start,
        )

        def write(view):
            view.setdefault(day_number, {}).setdefault(exercise_index, {})[set_index] = record

        self.state.update_completed_days(write)

        payload = {
            "sessionId": session_id,
            "exerciseName": exercise_name,
            "exerciseIndex": exercise_index,
            "dayNumber": day_number,
            "muscleGroup": muscle_group,
            "setIndex": set_index,
            "startTime": set_start,
            "endTime": set_end,
            "weight": record.weight,
            "reps": record.reps,
            "note": record.note,
            "isWarmup": record.is_warmup,
        }
        queued = PendingSync(type=SyncType.RECORD_SET, data=payload, timestamp=set_end)

        try:
            if not session_id:
                logger.error("No session ID available for set, queuing")
                self.sync_manager.add_pending_sync(queued)
            elif is_local_session_id(session_id):
                self.sync_manager.add_pending_sync(queued)
            else:
                await self._record_or_queue(queued)
        finally:
            self.state.set_last_set_end_time(set_end)
        if expired is not None:
            raise expired
        return record

    async def _record_or_queue(self, queued: PendingSync) -> None:
        data = queued.data
        try:
            await asyncio.to_thread(
                sdk_sessions.record_set,
                self.client,
                data["sessionId"],
                data["exerciseName"],
                data["setIndex"],
                data["startTime"],
                data["endTime"],
                data["weight"],
                data["reps"],
                data["note"],
                data["isWarmup"],
                data["muscleGroup"],
            )
        except SessionExpiredError:
            self.sync_manager.add_pending_sync(queued)
            raise
        except Exception as e:
            logger.error(f"Failed to record set on server (offline): {e}")
            self.sync_manager.add_pending_sync(queued)
            return
        logger.info("Set recorded on server")

    def delete_set_details(self, day_number: int, exercise_index: int, set_index: int) -> bool:
        """Local-only removal. Not synchronized to the server."""
        return self.state.update_completed_days(
            lambda view: cd.remove_set(view, day_number, exercise_index, set_index)
        )

    # ── End ─────────────────────────────────────────────────────────────

    async def end_workout(self, auto_completed: bool = False) -> bool:
        """Lock the day, end the session and clear active-session state.

        Returns:
            True if a session was ended, False if none was active
        """
        session_id = self.state.current_session_id
        if not self.state.workout_start_time and not session_id:
            logger.info("No active workout to end")
            return False

        self._lock_after_end(self.state.current_day)
        end_time = local_iso_now()
        expired = None

        if is_local_session_id(session_id):
            removed = self.sync_manager.remove_pending_syncs(
                lambda op: op.type == SyncType.END_SESSION and op.session_id == session_id
            )
            logger.info(f"Cleaned {removed} queued endSession syncs for local session {session_id}")
            self.sync_manager.add_pending_sync(PendingSync(
                type=SyncType.END_SESSION,
                data={"sessionId": session_id, "endTime": end_time},
                timestamp=end_time,
                local_session_id=session_id,
            ))
            logger.info("Local session will be ended once its start syncs")
        elif session_id:
            try:
                await asyncio.to_thread(sdk_sessions.end_session, self.client, session_id, end_time)
                logger.info(f"Session {session_id} ended on server")
            except RejectedError as e:
                logger.info(f"Session doesn't exist on server, not queuing end: {e}")
            except SessionExpiredError as e:
                self._queue_end(session_id, end_time)
                expired = e
            except Exception as e:
                logger.error(f"Failed to end session on server: {e}")
                self._queue_end(session_id, end_time)

        self.state.clear_active_session()
        logger.info(f"Active workout cleared (auto_completed={auto_completed})")

        if self.state.pending_syncs:
            self._schedule_drain()
        if expired is not None:
            raise expired
        return True

    def _queue_end(self, session_id: str, end_time: str) -> None:
        self.sync_manager.add_pending_sync(PendingSync(
            type=SyncType.END_SESSION,
            data={"sessionId": session_id, "endTime": end_time},
            timestamp=end_time,
        ))

    def _lock_after_end(self, day_number: int) -> None:
        if self.state.unlocked_overrides.get(day_number):
            logger.info(f"Day {day_number} has an unlocked override, not re-locking")
            return
        self.state.set_day_locked(day_number, True)

    def _schedule_drain(self) -> None:
        if self._drain_handle is not None:
            self._drain_handle.cancel()
        loop = asyncio.get_running_loop()
        self._drain_handle = loop.call_later(self.post_end_sync_delay, self._spawn_drain)

    def _spawn_drain(self) -> None:
        self._drain_handle = None
        self._drain_task = asyncio.ensure_future(self._post_end_drain())

    async def _post_end_drain(self) -> None:
        try:
            await self.sync_manager.sync_pending_data()
        except SessionExpiredError:
            logger.error("Session expired during post-workout sync; queue kept for next login")

    def cancel_scheduled_drain(self) -> None:
        if self._drain_handle is not None:
            self._drain_handle.cancel()
            self._drain_handle = None

    # ── Day locking ─────────────────────────────────────────────────────

    def lock_day(self, day_number: int) -> None:
        """Explicit lock. Also clears the day's unlocked override."""
        self.state.set_day_locked(day_number, True)
        if self.state.unlocked_overrides.get(day_number):
            self.state.set_unlocked_override(day_number, False)

    def unlock_day(self, day_number: int) -> None:
        """Unlock and clear the day so it appears fresh, even after reconciliation."""
        self.state.set_unlocked_override(day_number, True)
        self.state.set_day_locked(day_number, False)
        self.state.update_completed_days(lambda view: view.pop(day_number, None))

    # ── Activity ────────────────────────────────────────────────────────

    def update_last_activity_time(self) -> None:
        self.state.set_last_activity_time(self._clock())

    def is_session_stale(self) -> bool:
        last_end = self.state.last_set_end_time
        if not last_end:
            return False
        return self._clock() - timestamp_of(last_end) > INACTIVITY_THRESHOLD_SECONDS

    async def check_and_end_stale_session(self) -> bool:
        """Auto-end a session whose last set ended more than 30 minutes ago."""
        if not self.state.has_active_session or not self.is_session_stale():
            return False
        logger.info("Detected stale session, auto-ending")
        await self.end_workout(auto_completed=True)
        return True

    def session_statistics(self, day_number: int = None) -> Optional[dict]:
        """Totals for the active session, or None when no session is running."""
        start = self.state.workout_start_time
        if not start:
            return None
        day_number = day_number or self.state.current_day
        now = self._clock()

        start_ts = timestamp_of(start)
        set_times = sorted(
            timestamp_of(record.completed_at)
            for _, _, _, record in cd.iter_sets({day_number: self.state.completed_days.get(day_number, {})})
            if timestamp_of(record.completed_at) >= start_ts
        )
        rests = []
        for prev, cur in zip(set_times, set_times[1:]):
            gap = int(cur - prev)
            if MIN_REST_SECONDS <= gap <= MAX_REST_SECONDS:
                rests.append(gap)
        average_rest = round(sum(rests) / len(rests)) if rests else DEFAULT_REST_SECONDS

        last_end = self.state.last_set_end_time
        day = program_ops.find_day(self.state.program, day_number) or {}
        workout = (day.get("people") or {}).get(self.state.selected_person or "") or {}
        return {
            "total_time": int(now - start_ts),
            "average_rest": average_rest,
            "current_rest": int(now - timestamp_of(last_end)) if last_end else 0,
            "completed_sets": cd.count_completed_sets(self.state.completed_days, day_number),
            "total_sets": int(workout.get("totalSets") or 0),
        }
