"""
Persisted per-user workout state.

Every mutation follows the same order: read the persisted snapshot, mutate
a copy, persist it, then publish it on this object. A crash between steps
loses at most the in-flight mutation.
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional

from liftsync_mcp.api.completed_days import CompletedDays, copy_view, view_from_json, view_to_json
from liftsync_mcp.api.model import PendingSync
from liftsync_mcp.api.storage import KeyValueStore
from liftsync_mcp.sdk.types import StorageKey
from liftsync_mcp.utils import is_local_session_id, parse_index

logger = logging.getLogger(__name__)

K = StorageKey

ACTIVE_SESSION_KEYS = [
    K.WORKOUT_START_TIME.value,
    K.CURRENT_SESSION_ID.value,
    K.LAST_ACTIVITY_TIME.value,
    K.LAST_SET_END_TIME.value,
]


def flags_from_json(raw: Optional[dict], label: str) -> Dict[int, bool]:
    """Parse a {"<day>": true} map strictly, dropping malformed keys."""
    flags = {}
    for key, value in (raw or {}).items():
        try:
            day = parse_index(key, label)
        except ValueError as e:
            logger.error(f"Dropping malformed {label} entry: {e}")
            continue
        if value:
            flags[day] = True
    return flags


def flags_to_json(flags: Dict[int, bool]) -> dict:
    return {str(day): True for day, value in flags.items() if value}


def pending_from_json(raw: Optional[list]) -> List[PendingSync]:
    ops = []
    for item in raw or []:
        try:
            ops.append(PendingSync.from_dict(item))
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Dropping unreadable pending sync {item!r}: {e}")
    return ops


class WorkoutState:
    """In-memory published view of one user's persisted state."""

    def __init__(self, store: KeyValueStore, user_id: str):
        self.store = store
        self.user_id = user_id

        self.program: Optional[dict] = None
        self.selected_person: Optional[str] = None
        self.current_day: int = 1
        self.completed_days: CompletedDays = {}
        self.locked_days: Dict[int, bool] = {}
        self.unlocked_overrides: Dict[int, bool] = {}
        self.workout_start_time: Optional[str] = None
        self.current_session_id: Optional[str] = None
        self.pending_syncs: List[PendingSync] = []
        self.last_activity_time: Optional[float] = None
        self.last_set_end_time: Optional[str] = None
        self.session_translations: Dict[str, str] = {}

    def load(self) -> None:
        """Publish everything currently persisted."""
        get = self.store.get
        self.program = get(K.WORKOUT_DATA.value)
        self.selected_person = get(K.SELECTED_PERSON.value)
        self.current_day = get(K.CURRENT_DAY.value) or 1
        self.completed_days = view_from_json(get(K.COMPLETED_DAYS.value))
        self.locked_days = flags_from_json(get(K.LOCKED_DAYS.value), "lockedDays")
        self.unlocked_overrides = flags_from_json(get(K.UNLOCKED_OVERRIDES.value), "unlockedOverrides")
        self.workout_start_time = get(K.WORKOUT_START_TIME.value)
        self.current_session_id = get(K.CURRENT_SESSION_ID.value)
        self.pending_syncs = pending_from_json(get(K.PENDING_SYNCS.value))
        self.last_activity_time = get(K.LAST_ACTIVITY_TIME.value)
        self.last_set_end_time = get(K.LAST_SET_END_TIME.value)
        self.session_translations = dict(get(K.SESSION_ID_TRANSLATIONS.value) or {})

    # ── Derived ─────────────────────────────────────────────────────────

    @property
    def has_active_session(self) -> bool:
        return bool(self.workout_start_time and self.current_session_id)

    @property
    def is_local_session(self) -> bool:
        return is_local_session_id(self.current_session_id)

    # ── Persisted collections ───────────────────────────────────────────

    def update_completed_days(self, mutator: Callable[[CompletedDays], Any]) -> Any:
        """Read-modify-write the Completed-Days View.

        Returns:
            Whatever the mutator returns
        """
        view = view_from_json(self.store.get(K.COMPLETED_DAYS.value))
        result = mutator(view)
        self._persist(K.COMPLETED_DAYS, view_to_json(view))
        self.completed_days = view
        return result

    def read_completed_days(self) -> CompletedDays:
        """Latest persisted view, independent of the published copy."""
        return view_from_json(self.store.get(K.COMPLETED_DAYS.value))

    def update_pending_syncs(
        self, mutator: Callable[[List[PendingSync]], List[PendingSync]]
    ) -> List[PendingSync]:
        """Read-modify-write the Pending Operation Queue."""
        ops = pending_from_json(self.store.get(K.PENDING_SYNCS.value))
        new_ops = list(mutator(ops))
        self._persist(K.PENDING_SYNCS, [op.to_dict() for op in new_ops])
        self.pending_syncs = new_ops
        return new_ops

    def read_pending_syncs(self) -> List[PendingSync]:
        """Latest persisted queue, independent of the published copy."""
        return pending_from_json(self.store.get(K.PENDING_SYNCS.value))

    def update_program(self, mutator: Callable[[dict], Optional[dict]]) -> bool:
        """Read-modify-write the program. A mutator returning None aborts."""
        program = copy.deepcopy(self.store.get(K.WORKOUT_DATA.value) or self.program)
        if not program:
            return False
        new_program = mutator(program)
        if new_program is None:
            return False
        self._persist(K.WORKOUT_DATA, new_program)
        self.program = new_program
        return True

    def set_program(self, program: Optional[dict]) -> None:
        self._persist(K.WORKOUT_DATA, program)
        self.program = program

    def select(self, person: Optional[str] = None, day: Optional[int] = None) -> None:
        if person is not None:
            self._persist(K.SELECTED_PERSON, person)
            self.selected_person = person
        if day is not None:
            self._persist(K.CURRENT_DAY, day)
            self.current_day = day

    # ── Day flags ───────────────────────────────────────────────────────

    def set_day_locked(self, day: int, locked: bool) -> None:
        flags = flags_from_json(self.store.get(K.LOCKED_DAYS.value), "lockedDays")
        if locked:
            flags[day] = True
        else:
            flags.pop(day, None)
        self._persist(K.LOCKED_DAYS, flags_to_json(flags))
        self.locked_days = flags

    def set_unlocked_override(self, day: int, unlocked: bool) -> None:
        flags = flags_from_json(self.store.get(K.UNLOCKED_OVERRIDES.value), "unlockedOverrides")
        if unlocked:
            flags[day] = True
        else:
            flags.pop(day, None)
        self._persist(K.UNLOCKED_OVERRIDES, flags_to_json(flags))
        self.unlocked_overrides = flags

    def commit_reconciliation(self, view: CompletedDays, locked_days: Dict[int, bool]) -> bool:
        """Persist and publish the view and locked days together, or neither."""
        ok = self.store.set_many({
            K.COMPLETED_DAYS.value: view_to_json(view),
            K.LOCKED_DAYS.value: flags_to_json(locked_days),
        })
        if not ok:
            logger.error("Could not persist reconciled state - keeping previous view")
            return False
        self.completed_days = copy_view(view)
        self.locked_days = dict(locked_days)
        return True

    # ── Active session ──────────────────────────────────────────────────

    def set_workout_start_time(self, start_time: str) -> None:
        self._persist(K.WORKOUT_START_TIME, start_time)
        self.workout_start_time = start_time

    def set_current_session_id(self, session_id: Optional[str]) -> None:
        self._persist(K.CURRENT_SESSION_ID, session_id)
        self.current_session_id = session_id

    def set_last_set_end_time(self, end_time: Optional[str]) -> None:
        self._persist(K.LAST_SET_END_TIME, end_time)
        self.last_set_end_time = end_time

    def set_last_activity_time(self, timestamp: float) -> None:
        self._persist(K.LAST_ACTIVITY_TIME, timestamp)
        self.last_activity_time = timestamp

    def clear_active_session(self) -> None:
        if not self.store.remove_many(ACTIVE_SESSION_KEYS):
            logger.warning("Could not remove active session keys from storage")
        self.workout_start_time = None
        self.current_session_id = None
        self.last_activity_time = None
        self.last_set_end_time = None

    def add_session_translation(self, local_id: str, server_id: str) -> None:
        translations = dict(self.store.get(K.SESSION_ID_TRANSLATIONS.value) or {})
        translations[local_id] = server_id
        self._persist(K.SESSION_ID_TRANSLATIONS, translations)
        self.session_translations = translations

    # ── Internals ───────────────────────────────────────────────────────

    def _persist(self, key: StorageKey, value: Any) -> None:
        if not self.store.set(key.value, value):
            logger.warning(f"Could not persist {key.value}; keeping in-memory copy only")

    def snapshot(self) -> dict:
        """JSON-friendly summary for tool output."""
        return {
            "user_id": self.user_id,
            "selected_person": self.selected_person,
            "current_day": self.current_day,
            "current_session_id": self.current_session_id,
            "workout_start_time": self.workout_start_time,
            "last_set_end_time": self.last_set_end_time,
            "completed_days": view_to_json(self.completed_days),
            "locked_days": sorted(self.locked_days),
            "unlocked_overrides": sorted(self.unlocked_overrides),
            "pending_syncs": [op.to_dict() for op in self.pending_syncs],
        }
