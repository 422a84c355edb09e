"""
Pending operation queue.

Mutations that could not reach the server are queued durably and replayed
in enqueue order. A successful startSession replay translates its local
session id to the server id in every queued peer before they run.

Failure classes:
    - transient: kept and retried on the next drain
    - authoritative rejection (not found / unauthorized): dropped
    - invalid set (weight <= 0 or reps < 1): dropped without a server call
    - session expired: queue persisted, error re-raised
"""

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Dict, List, Optional, Set

from liftsync_mcp.api.model import PendingSync
from liftsync_mcp.api.state import WorkoutState
from liftsync_mcp.sdk import sessions as sdk_sessions
from liftsync_mcp.sdk.client import LiftSyncClient, RejectedError, SessionExpiredError
from liftsync_mcp.sdk.types import SyncType
from liftsync_mcp.utils import is_local_session_id

logger = logging.getLogger(__name__)

SESSION_BOUND_TYPES = (SyncType.RECORD_SET, SyncType.END_SESSION)


def is_valid_set_payload(data: dict) -> bool:
    """weight > 0 and reps >= 1. Anything else is a corrupted or partial set."""
    try:
        return float(data.get("weight") or 0) > 0 and int(data.get("reps") or 0) >= 1
    except (TypeError, ValueError):
        return False


class SyncManager:
    """Durable replay queue for one user."""

    def __init__(
        self,
        state: WorkoutState,
        client: LiftSyncClient,
        on_session_translated: Optional[Callable[[str, str], Awaitable[None]]] = None,
        on_drained: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.state = state
        self.client = client
        self.on_session_translated = on_session_translated
        self.on_drained = on_drained
        self.draining = False

    @property
    def pending_count(self) -> int:
        return len(self.state.pending_syncs)

    def add_pending_sync(self, op: PendingSync) -> None:
        """Append and persist one operation."""
        self.state.update_pending_syncs(lambda ops: ops + [op])
        logger.info(f"Queued {op.type.value} for sync (session={op.session_id or op.local_session_id})")

    def remove_pending_syncs(self, predicate: Callable[[PendingSync], bool]) -> int:
        """Remove every queued operation matching predicate.

        Returns:
            Number of operations removed
        """
        removed = []

        def mutate(ops):
            kept = []
            for op in ops:
                (removed if predicate(op) else kept).append(op)
            return kept

        self.state.update_pending_syncs(mutate)
        return len(removed)

    def cleanup_invalid_syncs(self, local_session_id: str = None) -> int:
        """Drop recordSet/endSession operations whose local session can never start.

        With local_session_id, removes those bound to that id. Without it,
        removes those bound to any local id with no startSession left in the
        queue.

        Returns:
            Number of operations removed
        """
        queued_starts = {
            op.local_session_id
            for op in self.state.read_pending_syncs()
            if op.type == SyncType.START_SESSION and op.local_session_id
        }

        def is_orphan(op: PendingSync) -> bool:
            if op.type not in SESSION_BOUND_TYPES or not is_local_session_id(op.session_id):
                return False
            if local_session_id is not None:
                return op.session_id == local_session_id
            return op.session_id not in queued_starts

        removed = self.remove_pending_syncs(is_orphan)
        if removed:
            logger.info(f"Cleaned up {removed} invalid syncs")
        return removed

    async def sync_pending_data(self) -> bool:
        """Run one drain pass unless one is already running.

        Returns:
            True if the queue is empty afterwards

        Raises:
            SessionExpiredError: Queue is persisted first
        """
        if self.draining:
            logger.info("Sync already in progress, skipping")
            return False
        ops = self.state.read_pending_syncs()
        if not ops:
            return True

        self.draining = True
        try:
            remaining = await self._drain(ops)
        finally:
            self.draining = False

        if remaining:
            logger.info(f"{remaining} syncs still pending")
            return False

        logger.info("All pending syncs completed successfully")
        await self._notify_drained()
        return True

    # ── Drain ───────────────────────────────────────────────────────────

    async def _drain(self, ops: List[PendingSync]) -> int:
        logger.info(f"Attempting to sync {len(ops)} pending operations...")
        attempted: Set[str] = {op.id for op in ops}
        failed: List[PendingSync] = []

        for index in range(len(ops)):
            op = self._translate(ops[index])
            try:
                keep = await self._replay(op, ops, index)
            except SessionExpiredError:
                self._commit(failed + [op] + ops[index + 1:], attempted)
                raise
            except Exception as e:
                logger.error(f"Failed to sync {op.type.value}: {e}")
                keep = True
            if keep:
                failed.append(op)

        return len(self._commit(failed, attempted))

    async def _replay(self, op: PendingSync, ops: List[PendingSync], index: int) -> bool:
        """Attempt one operation. Returns True to keep it queued."""
        data = op.data

        if op.type == SyncType.START_SESSION:
            local_id = op.local_session_id
            if local_id and local_id in self.state.session_translations:
                logger.info(f"Session {local_id} already started as {self.state.session_translations[local_id]}, skipping")
                return False
            try:
                session_id = await asyncio.to_thread(
                    sdk_sessions.start_session,
                    self.client,
                    data.get("person"),
                    data.get("dayNumber"),
                    data.get("dayTitle"),
                    data.get("muscleGroups"),
                    bool(data.get("isDemo", False)),
                    data.get("startTime") or op.timestamp,
                )
            except RejectedError as e:
                logger.warning(f"Server rejected queued session start {local_id}, dropping it and its sets: {e}")
                if local_id:
                    self.cleanup_invalid_syncs(local_id)
                return False
            if not session_id:
                logger.warning("Server returned no session id for queued session start")
                return True
            logger.info(f"Synced session start ({local_id} -> {session_id})")
            if local_id:
                await self._translate_session(local_id, session_id, ops, index)
            return False

        if op.type == SyncType.RECORD_SET:
            if not is_valid_set_payload(data):
                logger.info(f"Dropping invalid queued set (weight={data.get('weight')}, reps={data.get('reps')})")
                return False
            session_id = op.session_id
            if not session_id:
                logger.info("Dropping queued set with no session id")
                return False
            if is_local_session_id(session_id):
                logger.info(f"Skipping recordSet for local session {session_id}")
                return True
            exercise_name = data.get("exerciseName")
            if not exercise_name:
                exercise_name = f"Exercise {data.get('exerciseIndex', '?')}"
            try:
                await asyncio.to_thread(
                    sdk_sessions.record_set,
                    self.client,
                    session_id,
                    exercise_name,
                    data.get("setIndex"),
                    data.get("startTime"),
                    data.get("endTime"),
                    data.get("weight"),
                    data.get("reps"),
                    data.get("note") or "",
                    bool(data.get("isWarmup", False)),
                    data.get("muscleGroup"),
                )
            except RejectedError as e:
                logger.warning(f"Server rejected queued set, dropping: {e}")
                return False
            logger.info("Synced set record")
            return False

        if op.type == SyncType.END_SESSION:
            session_id = op.session_id
            if is_local_session_id(session_id):
                logger.info(f"Skipping endSession for local session {session_id}")
                return True
            try:
                await asyncio.to_thread(
                    sdk_sessions.end_session, self.client, session_id, data.get("endTime")
                )
            except RejectedError as e:
                logger.info(f"Session {session_id} doesn't exist on server, dropping sync: {e}")
                return False
            logger.info("Synced session end")
            return False

        logger.warning(f"Unknown sync type: {op.type}")
        return False

    async def _translate_session(
        self, local_id: str, server_id: str, ops: List[PendingSync], index: int
    ) -> None:
        """Record local_id -> server_id and rewrite every queued peer before it runs."""
        self.state.add_session_translation(local_id, server_id)
        for later in range(index + 1, len(ops)):
            ops[later] = self._translate(ops[later])

        if self.state.current_session_id == local_id:
            self.state.set_current_session_id(server_id)

        if self.on_session_translated is not None:
            try:
                await self.on_session_translated(local_id, server_id)
            except SessionExpiredError:
                raise
            except Exception as e:
                logger.warning(f"Session translation hook failed: {e}")

    def _translate(self, op: PendingSync) -> PendingSync:
        if op.type not in SESSION_BOUND_TYPES:
            return op
        server_id = self.state.session_translations.get(op.session_id or "")
        if not server_id:
            return op
        return replace(op, data={**op.data, "sessionId": server_id})

    def _commit(self, kept: List[PendingSync], attempted: Set[str]) -> List[PendingSync]:
        """Replace the queue with what survived plus anything appended meanwhile.

        Operations removed from storage while the drain was suspended stay removed.
        """
        def mutate(current):
            current_ids = {op.id for op in current}
            survivors = [op for op in kept if op.id in current_ids]
            appended = [self._translate(op) for op in current if op.id not in attempted]
            return survivors + appended

        return self.state.update_pending_syncs(mutate)

    async def _notify_drained(self) -> None:
        if self.on_drained is None:
            return
        try:
            await self.on_drained()
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.warning(f"Post-sync refresh failed: {e}")
