"""
Per-user runtime: wires transport, state and the coordinators together.

Owns the background loops (queue drain every 30s while work is pending,
stale-session check every 60s) and routes realtime messages to the joint
session coordinator.
"""

import asyncio
import logging
from typing import List, Optional

from liftsync_mcp.api.joint import JointSessionCoordinator
from liftsync_mcp.api.model import SetRecord
from liftsync_mcp.api.program import ProgramOperations
from liftsync_mcp.api.reconcile import ServerReconciliation
from liftsync_mcp.api.sessions import SessionManager
from liftsync_mcp.api.state import WorkoutState
from liftsync_mcp.api.storage import JsonFileStore, KeyValueStore
from liftsync_mcp.api.sync_manager import SyncManager
from liftsync_mcp.api.transport import RealtimeTransport, realtime_url
from liftsync_mcp.config import Settings
from liftsync_mcp.sdk.client import LiftSyncClient, SessionExpiredError
from liftsync_mcp.sdk.types import (
    PENDING_SYNC_INTERVAL_SECONDS,
    STALE_CHECK_INTERVAL_SECONDS,
    AppState,
)

logger = logging.getLogger(__name__)


class WorkoutRuntime:
    """Everything one authenticated user needs, with an explicit lifecycle."""

    def __init__(
        self,
        client: LiftSyncClient,
        store: KeyValueStore,
        transport: Optional[RealtimeTransport] = None,
        pending_sync_interval: float = PENDING_SYNC_INTERVAL_SECONDS,
        stale_check_interval: float = STALE_CHECK_INTERVAL_SECONDS,
    ):
        self.client = client
        self.user_id = str(client.user_id or "default")
        self.transport = transport
        self.pending_sync_interval = pending_sync_interval
        self.stale_check_interval = stale_check_interval

        self.state = WorkoutState(store, self.user_id)
        self.state.load()
        self.sync_manager = SyncManager(
            self.state, client, on_session_translated=self._on_session_translated
        )
        self.sessions = SessionManager(self.state, client, self.sync_manager, transport)
        self.reconciliation = ServerReconciliation(self.state, client)
        self.joint = JointSessionCoordinator(self.state, client, transport, self.user_id)
        self.program = ProgramOperations(self.state, client)

        if transport is not None:
            transport.add_listener(self.joint.handle_message)
            transport.add_open_listener(self._on_transport_open)

        self.started = False
        self.session_expired = False
        self._tasks: List[asyncio.Task] = []
        self._drain_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings, client: LiftSyncClient) -> "WorkoutRuntime":
        store = JsonFileStore(settings.state_dir, client.user_id or "default")
        transport = None
        if client.access_token:
            transport = RealtimeTransport(
                realtime_url(settings.server_url, client.access_token),
                client.access_token,
                enabled=settings.realtime_enabled,
            )
        return cls(client, store, transport)

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def start(self) -> None:
        if self.started:
            return
        self.started = True
        logger.info(f"Starting runtime for user {self.user_id}")
        if self.state.pending_syncs:
            self.sync_manager.cleanup_invalid_syncs()
        if self.transport is not None:
            await self.transport.connect()
        self._tasks = [
            asyncio.create_task(self._pending_sync_loop()),
            asyncio.create_task(self._stale_check_loop()),
        ]
        try:
            await self.joint.restore_pending_invite()
        except SessionExpiredError:
            self.session_expired = True

    async def stop(self) -> None:
        if not self.started:
            return
        self.started = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._drain_task is not None:
            self._drain_task.cancel()
            await asyncio.gather(self._drain_task, return_exceptions=True)
            self._drain_task = None
        self.sessions.cancel_scheduled_drain()
        if self.transport is not None:
            await self.transport.disconnect()
        logger.info(f"Stopped runtime for user {self.user_id}")

    async def handle_app_state(self, app_state: AppState) -> None:
        if self.transport is not None:
            await self.transport.handle_app_state(app_state)
        if app_state == AppState.ACTIVE and self.state.pending_syncs:
            await self.drain_quietly()

    # ── Composite operations ────────────────────────────────────────────

    async def save_set(self, day_number: int, exercise_index: int, set_index: int,
                       weight: float, reps: int, note: str = "", is_warmup: bool = False) -> SetRecord:
        record = await self.sessions.save_set_details(
            day_number, exercise_index, set_index, weight, reps, note, is_warmup
        )
        await self.joint.push_exercise_list()
        return record

    async def end_workout(self, auto_completed: bool = False) -> bool:
        """End the solo session; a joint session without one is left automatically."""
        try:
            ended = await self.sessions.end_workout(auto_completed)
        finally:
            await self.joint.check_solo_session()
        return ended

    async def accept_invite(self) -> bool:
        accepted = await self.joint.accept_invite()
        if accepted:
            await self.joint.push_exercise_list()
        return accepted

    async def select(self, person: str = None, day_number: int = None) -> None:
        self.state.select(person=person, day=day_number)
        await self.joint.push_exercise_list()

    async def drain_quietly(self) -> bool:
        """Drain from a background context, where nobody can catch an expiry."""
        try:
            return await self.sync_manager.sync_pending_data()
        except SessionExpiredError:
            logger.error("Session expired during background sync")
            self.session_expired = True
            return False

    # ── Hooks and loops ─────────────────────────────────────────────────

    def _on_transport_open(self) -> None:
        if not self.state.pending_syncs:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.ensure_future(self.drain_quietly())

    async def _on_session_translated(self, local_id: str, server_id: str) -> None:
        if self.state.current_session_id == server_id:
            await self.sessions.announce_session(server_id)

    async def _pending_sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.pending_sync_interval)
            if not self.state.pending_syncs:
                continue
            try:
                await self.drain_quietly()
            except Exception:
                logger.exception("Background sync failed")

    async def _stale_check_loop(self) -> None:
        while True:
            await asyncio.sleep(self.stale_check_interval)
            try:
                if await self.sessions.check_and_end_stale_session():
                    await self.joint.check_solo_session()
            except SessionExpiredError:
                logger.error("Session expired during stale session check")
                self.session_expired = True
            except Exception:
                logger.exception("Stale session check failed")
