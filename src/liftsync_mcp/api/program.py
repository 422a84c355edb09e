"""
Program definition helpers and advisory program edits.

Programs stay plain dicts as the server sends them:

    {"days": [{"dayNumber": 1, "dayTitle": "Push", "muscleGroups": [...],
               "people": {"Alice": {"exercises": [{"name", "sets", "muscleGroup"}],
                                    "totalSets": 12}}}]}

Edits write the local program first (authoritative) and then tell the
server as an advisory call: failure is logged, never queued for replay.
"""

import asyncio
import copy
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from liftsync_mcp.api.model import ExerciseEntry
from liftsync_mcp.sdk import program as sdk_program
from liftsync_mcp.sdk.client import LiftSyncClient, SessionExpiredError

if TYPE_CHECKING:
    from liftsync_mcp.api.state import WorkoutState

logger = logging.getLogger(__name__)


def find_day(program: Optional[dict], day_number: int) -> Optional[dict]:
    for day in (program or {}).get("days") or []:
        if day.get("dayNumber") == day_number:
            return day
    return None


def person_exercises(program: Optional[dict], day_number: int, person: Optional[str]) -> List[dict]:
    day = find_day(program, day_number)
    if not day or not person:
        return []
    workout = (day.get("people") or {}).get(person) or {}
    return list(workout.get("exercises") or [])


def exercise_at(
    program: Optional[dict], day_number: int, person: Optional[str], exercise_index: int
) -> Optional[dict]:
    exercises = person_exercises(program, day_number, person)
    if 0 <= exercise_index < len(exercises):
        return exercises[exercise_index]
    return None


def day_exercise_entries(program: Optional[dict], day_number: int) -> List[ExerciseEntry]:
    """All exercises of a day across people, tagged with their person."""
    day = find_day(program, day_number)
    if not day:
        return []
    entries = []
    for person, workout in (day.get("people") or {}).items():
        for exercise in (workout or {}).get("exercises") or []:
            entries.append(ExerciseEntry(
                name=exercise.get("name") or "",
                sets=int(exercise.get("sets") or 0),
                person=person,
            ))
    return entries


def resolve_exercise_index(exercises: List[dict], name: Optional[str], fallback: int) -> int:
    """Index of the exercise whose name matches case-insensitively, else fallback."""
    if name:
        wanted = name.lower()
        for index, exercise in enumerate(exercises):
            if (exercise.get("name") or "").lower() == wanted:
                return index
    return fallback


def merge_programs(local: dict, server: Optional[dict]) -> Tuple[dict, bool]:
    """Merge a server program into the local one.

    Only applies when the server knows at least as many days. Per day and
    person the side with more exercises wins (ties go to the server);
    people only the server knows are added.

    Returns:
        (merged program, whether the server program was applied)
    """
    server_days = (server or {}).get("days") or []
    local_days = (local or {}).get("days") or []
    if not server_days or len(server_days) < len(local_days):
        return local, False

    merged_days = []
    for local_day in local_days:
        server_day = next(
            (d for d in server_days if d.get("dayNumber") == local_day.get("dayNumber")),
            None,
        )
        if not server_day:
            merged_days.append(local_day)
            continue

        people = dict(local_day.get("people") or {})
        for person, server_workout in (server_day.get("people") or {}).items():
            local_workout = people.get(person)
            if not local_workout:
                people[person] = server_workout
                continue
            server_count = len((server_workout or {}).get("exercises") or [])
            local_count = len(local_workout.get("exercises") or [])
            people[person] = server_workout if server_count >= local_count else local_workout

        merged_days.append({**local_day, "people": people})

    return {**local, "days": merged_days}, True


class ProgramOperations:
    """Local-first program edits with advisory server patches."""

    def __init__(self, state: "WorkoutState", client: LiftSyncClient):
        self.state = state
        self.client = client

    async def rename_exercise(
        self,
        day_number: int,
        person: str,
        exercise_index: int,
        new_name: str,
        new_muscle_group: str = None,
    ) -> bool:
        def mutate(program):
            exercise = exercise_at(program, day_number, person, exercise_index)
            if exercise is None:
                return None
            exercise["name"] = new_name
            if new_muscle_group is not None:
                exercise["muscleGroup"] = new_muscle_group
            return program

        if not self.state.update_program(mutate):
            return False
        await self._advise(
            "rename exercise",
            sdk_program.rename_exercise,
            day_number, person, exercise_index, new_name, new_muscle_group,
        )
        return True

    async def add_extra_sets(
        self, day_number: int, person: str, exercise_index: int, additional_sets: int
    ) -> bool:
        if additional_sets < 1:
            raise ValueError("additional_sets must be >= 1")

        def mutate(program):
            exercise = exercise_at(program, day_number, person, exercise_index)
            if exercise is None:
                return None
            exercise["sets"] = int(exercise.get("sets") or 0) + additional_sets
            workout = find_day(program, day_number)["people"][person]
            if "totalSets" in workout:
                workout["totalSets"] = int(workout["totalSets"] or 0) + additional_sets
            return program

        if not self.state.update_program(mutate):
            return False
        await self._advise(
            "patch exercise sets",
            sdk_program.patch_exercise_sets,
            day_number, person, exercise_index, additional_sets,
        )
        return True

    async def add_exercise(self, day_number: int, person: str, exercise: Dict[str, Any]) -> bool:
        if not exercise.get("name"):
            raise ValueError("exercise name is required")
        new_exercise = copy.deepcopy(exercise)
        new_exercise["sets"] = int(new_exercise.get("sets") or 1)

        def mutate(program):
            day = find_day(program, day_number)
            if day is None:
                return None
            workout = day.setdefault("people", {}).setdefault(person, {"exercises": []})
            workout.setdefault("exercises", []).append(new_exercise)
            if "totalSets" in workout:
                workout["totalSets"] = int(workout["totalSets"] or 0) + new_exercise["sets"]
            return program

        if not self.state.update_program(mutate):
            return False
        await self._advise("add exercise", sdk_program.add_exercise, day_number, person, new_exercise)
        return True

    async def _advise(self, label: str, fn, *args) -> None:
        """Run an advisory server call. Failure is logged, never escalated."""
        try:
            await asyncio.to_thread(fn, self.client, *args)
        except SessionExpiredError:
            raise
        except Exception as e:
            logger.warning(f"Could not {label} on server (local program kept): {e}")
