"""
Completed-Days View helpers.

The view is a nested mapping day -> exercise index -> set index -> SetRecord.
Everything here is pure: callers copy, mutate, persist, then publish.
"""

import copy
import logging
from typing import Dict, Iterator, Optional, Tuple

from liftsync_mcp.api.model import SetRecord
from liftsync_mcp.api import program as program_ops
from liftsync_mcp.sdk.types import SetSource
from liftsync_mcp.utils import parse_index, timestamp_of

logger = logging.getLogger(__name__)

CompletedDays = Dict[int, Dict[int, Dict[int, SetRecord]]]


# ── Serialization ───────────────────────────────────────────────────────


def view_from_json(raw: Optional[dict]) -> CompletedDays:
    """Rebuild the view from its persisted form.

    Keys are parsed strictly; entries with malformed keys or records are
    dropped and logged.
    """
    view: CompletedDays = {}
    for day_key, exercises in (raw or {}).items():
        for ex_key, sets in (exercises or {}).items():
            for set_key, record in (sets or {}).items():
                try:
                    day = parse_index(day_key, "dayNumber")
                    ex = parse_index(ex_key, "exerciseIndex")
                    set_index = parse_index(set_key, "setIndex")
                    parsed = SetRecord.from_dict(record)
                except (ValueError, TypeError, AttributeError) as e:
                    logger.error(f"Dropping malformed completed set {day_key}/{ex_key}/{set_key}: {e}")
                    continue
                view.setdefault(day, {}).setdefault(ex, {})[set_index] = parsed
    return view


def view_to_json(view: CompletedDays) -> dict:
    return {
        str(day): {
            str(ex): {str(s): record.to_dict() for s, record in sets.items()}
            for ex, sets in exercises.items()
        }
        for day, exercises in view.items()
    }


def copy_view(view: CompletedDays) -> CompletedDays:
    return copy.deepcopy(view)


def iter_sets(view: CompletedDays) -> Iterator[Tuple[int, int, int, SetRecord]]:
    for day, exercises in view.items():
        for ex, sets in exercises.items():
            for set_index, record in sets.items():
                yield day, ex, set_index, record


# ── Mutation ────────────────────────────────────────────────────────────


def merge_set_record(
    view: CompletedDays, day: int, exercise_index: int, set_index: int, record: SetRecord
) -> bool:
    """Merge one record in place using the latest-endTime-wins rule.

    On equal end times a server record replaces a local one.

    Returns:
        True if the record was written
    """
    sets = view.setdefault(day, {}).setdefault(exercise_index, {})
    existing = sets.get(set_index)
    if existing is None:
        sets[set_index] = record
        return True

    new_ts = timestamp_of(record.completed_at)
    old_ts = timestamp_of(existing.completed_at)
    if new_ts > old_ts or (
        new_ts == old_ts
        and record.source == SetSource.SERVER
        and existing.source == SetSource.LOCAL
    ):
        sets[set_index] = record
        return True
    return False


def remove_set(view: CompletedDays, day: int, exercise_index: int, set_index: int) -> bool:
    """Remove a set in place and prune now-empty parents.

    Returns:
        True if a set was removed
    """
    sets = view.get(day, {}).get(exercise_index)
    if not sets or set_index not in sets:
        return False
    del sets[set_index]
    if not sets:
        del view[day][exercise_index]
    if not view[day]:
        del view[day]
    return True


# ── Queries ─────────────────────────────────────────────────────────────


def is_set_complete(view: CompletedDays, day: int, exercise_index: int, set_index: int) -> bool:
    return get_set_details(view, day, exercise_index, set_index) is not None


def get_set_details(
    view: CompletedDays, day: int, exercise_index: int, set_index: int
) -> Optional[SetRecord]:
    return view.get(day, {}).get(exercise_index, {}).get(set_index)


def exercise_completed_sets(view: CompletedDays, day: int, exercise_index: int) -> int:
    return len(view.get(day, {}).get(exercise_index, {}))


def count_completed_sets(view: CompletedDays, day: int) -> int:
    return sum(len(sets) for sets in view.get(day, {}).values())


def are_all_exercises_complete(
    program: Optional[dict], person: Optional[str], day: int, view: CompletedDays
) -> bool:
    """True when every planned set of every exercise of the day is logged."""
    exercises = program_ops.person_exercises(program, day, person)
    if not exercises:
        return False
    for index, exercise in enumerate(exercises):
        if exercise_completed_sets(view, day, index) < int(exercise.get("sets") or 0):
            return False
    return True


def is_day_locked(locked_days: Dict[int, bool], day: int) -> bool:
    return bool(locked_days.get(day))


def is_day_complete(
    locked_days: Dict[int, bool],
    day: int,
    program: Optional[dict],
    person: Optional[str],
    view: CompletedDays,
) -> bool:
    """A locked day is complete; otherwise all planned sets must be logged."""
    if is_day_locked(locked_days, day):
        return True
    return are_all_exercises_complete(program, person, day, view)
