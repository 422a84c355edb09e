"""
Saved program SDK functions.

Fetch the saved program and apply small patches (rename, add, set count).
"""

from typing import Any, Dict, Optional

from liftsync_mcp.sdk.client import LiftSyncClient


def fetch_saved_program(client: LiftSyncClient) -> Optional[Dict[str, Any]]:
    """
    Get the user's saved program.

    GET api/program

    Returns:
        Program dict ({days: [...]}) or None if nothing is saved
    """
    response = client.make_request("GET", "api/program", allow_not_found=True)
    if response is None:
        return None
    return response.get("program") or None


def rename_exercise(
    client: LiftSyncClient,
    day_number: int,
    person: str,
    exercise_index: int,
    new_name: str,
    new_muscle_group: str = None,
) -> Dict[str, Any]:
    """
    Rename an exercise in the saved program.

    PATCH api/program/exercise/rename
    """
    payload = {
        "dayNumber": day_number,
        "person": person,
        "exerciseIndex": exercise_index,
        "newName": new_name,
    }
    if new_muscle_group is not None:
        payload["newMuscleGroup"] = new_muscle_group
    return client.make_request("PATCH", "api/program/exercise/rename", json_data=payload)


def add_exercise(
    client: LiftSyncClient,
    day_number: int,
    person: str,
    exercise: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Append an exercise to a day of the saved program.

    PATCH api/program/exercise/add

    Args:
        exercise: {name, sets, muscleGroup?}
    """
    return client.make_request(
        "PATCH",
        "api/program/exercise/add",
        json_data={"dayNumber": day_number, "person": person, "exercise": exercise},
    )


def patch_exercise_sets(
    client: LiftSyncClient,
    day_number: int,
    person: str,
    exercise_index: int,
    additional_sets: int,
) -> Dict[str, Any]:
    """
    Increase the set count of an exercise.

    PATCH api/program/exercise/sets
    """
    return client.make_request(
        "PATCH",
        "api/program/exercise/sets",
        json_data={
            "dayNumber": day_number,
            "person": person,
            "exerciseIndex": exercise_index,
            "additionalSets": additional_sets,
        },
    )
