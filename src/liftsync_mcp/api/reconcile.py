"""
Server reconciliation.

Rebuilds the Completed-Days View and locked days from server session
history on demand. The pass works on a private copy and commits both maps
together at the end; any failure fetching history aborts it without
touching persisted state.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from liftsync_mcp.api import completed_days as cd
from liftsync_mcp.api import program as program_ops
from liftsync_mcp.api.model import SetRecord
from liftsync_mcp.api.state import WorkoutState
from liftsync_mcp.sdk import program as sdk_program
from liftsync_mcp.sdk import sessions as sdk_sessions
from liftsync_mcp.sdk.client import LiftSyncClient, SessionExpiredError
from liftsync_mcp.sdk.types import RECONCILE_HISTORY_LIMIT, SetSource
from liftsync_mcp.utils import is_local_session_id, parse_index, timestamp_of

logger = logging.getLogger(__name__)


def timing_to_record(timing: Dict[str, Any]) -> SetRecord:
    """Server set timing -> server-sourced SetRecord."""
    return SetRecord(
        weight=timing.get("weight") or 0,
        reps=timing.get("reps") or 0,
        completed_at=timing.get("end_time") or "",
        note=timing.get("note") or "",
        is_warmup=bool(timing.get("is_warmup", False)),
        source=SetSource.SERVER,
        exercise_name=timing.get("exercise_name"),
        started_at=timing.get("start_time"),
    )


class ServerReconciliation:
    """Re-derives local completion state from the server."""

    def __init__(self, state: WorkoutState, client: LiftSyncClient, history_limit: int = RECONCILE_HISTORY_LIMIT):
        self.state = state
        self.client = client
        self.history_limit = history_limit

    async def fetch_session_history(self, limit: int = 30, include_timings: bool = False) -> List[dict]:
        """Recent sessions for the selected person. Fails soft to []."""
        try:
            return await asyncio.to_thread(
                sdk_sessions.get_session_history,
                self.client,
                self.state.selected_person,
                None,
                limit,
                include_timings,
            )
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.error(f"Error fetching session history: {e}")
            return []

    async def sync_from_server(self) -> Optional[cd.CompletedDays]:
        """Run one reconciliation pass.

        Returns:
            The committed view, or None when the pass was skipped or aborted
        """
        person = self.state.selected_person
        if not person or not (self.state.program or {}).get("days"):
            logger.info("Skipping server sync: no person or program selected")
            return None

        logger.info("Syncing completed days from server...")
        program = await self._refresh_program()

        try:
            sessions = await asyncio.to_thread(
                sdk_sessions.get_session_history, self.client, person, None, self.history_limit
            )
            details = []
            for summary in sessions:
                details.append(await asyncio.to_thread(sdk_sessions.get_session, self.client, summary["id"]))
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.error(f"Server sync aborted, local state untouched: {e}")
            return None

        if not sessions:
            logger.info("No server sessions found")
            return None

        overrides = dict(self.state.unlocked_overrides)
        locked_days = dict(self.state.locked_days)
        view: cd.CompletedDays = {}

        for session in details:
            self._merge_session(session, program, person, overrides, locked_days, view)

        self._remerge_local_sets(overrides, view)

        if not self.state.commit_reconciliation(view, locked_days):
            return None
        logger.info(f"Sync complete: {len(view)} days synced, {len(locked_days)} days locked")
        return view

    # ── Steps ───────────────────────────────────────────────────────────

    async def _refresh_program(self) -> dict:
        """Advisory: merge the server program in. Failure keeps the local one."""
        local = self.state.program
        try:
            server = await asyncio.to_thread(sdk_program.fetch_saved_program, self.client)
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.warning(f"Could not refresh program from server: {e}")
            return local

        merged, applied = program_ops.merge_programs(local, server)
        if applied:
            self.state.set_program(merged)
            logger.info("Program refreshed from server")
        return merged

    def _merge_session(
        self,
        session: Dict[str, Any],
        program: dict,
        person: str,
        overrides: Dict[int, bool],
        locked_days: Dict[int, bool],
        view: cd.CompletedDays,
    ) -> None:
        try:
            day_number = parse_index(session.get("day_number"), "day_number")
        except ValueError as e:
            logger.error(f"Skipping session {session.get('id')} with bad day: {e}")
            return

        if overrides.get(day_number):
            logger.info(f"Skipping set sync for unlocked day {day_number}")
            return
        if session.get("end_time"):
            locked_days[day_number] = True

        exercises = program_ops.person_exercises(program, day_number, person)
        if not exercises:
            return

        for position, timing in enumerate(session.get("set_timings") or []):
            try:
                set_index = parse_index(timing.get("set_index"), "set_index")
            except ValueError as e:
                logger.error(f"Skipping malformed set timing in session {session.get('id')}: {e}")
                continue
            exercise_index = program_ops.resolve_exercise_index(
                exercises, timing.get("exercise_name"), position
            )
            cd.merge_set_record(view, day_number, exercise_index, set_index, timing_to_record(timing))

    def _remerge_local_sets(self, overrides: Dict[int, bool], view: cd.CompletedDays) -> None:
        """Keep local sets of the running server session the server hasn't caught up with."""
        session_id = self.state.current_session_id
        start = self.state.workout_start_time
        if not session_id or is_local_session_id(session_id) or not start:
            return

        start_ts = timestamp_of(start)
        local_view = self.state.read_completed_days()
        for day, ex, set_index, record in cd.iter_sets(local_view):
            if overrides.get(day):
                continue
            if timestamp_of(record.completed_at) >= start_ts:
                cd.merge_set_record(view, day, ex, set_index, record)
