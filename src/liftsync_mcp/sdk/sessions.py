"""
Workout session SDK functions.

Start/end sessions, record sets, read session history.
"""

from typing import Any, Dict, List, Optional

from liftsync_mcp.sdk.client import LiftSyncClient


def start_session(
    client: LiftSyncClient,
    person: str,
    day_number: int,
    day_title: str = None,
    muscle_groups: List[str] = None,
    is_demo: bool = False,
    start_time: str = None,
) -> Optional[str]:
    """
    Create a workout session on the server.

    POST api/sessions/start

    Args:
        person: Selected profile within the program
        day_number: Program day number
        day_title: Display title of the day
        muscle_groups: Muscle groups trained that day
        is_demo: Demo sessions are excluded from analytics
        start_time: Local ISO-8601 start time with UTC offset

    Returns:
        Server-assigned session id as a string, or None if the response carries none
    """
    response = client.make_request(
        "POST",
        "api/sessions/start",
        json_data={
            "person": person,
            "dayNumber": day_number,
            "dayTitle": day_title,
            "muscleGroups": muscle_groups or [],
            "isDemo": is_demo,
            "startTime": start_time,
        },
    )
    session = response.get("session") or {}
    session_id = session.get("id", response.get("sessionId"))
    return str(session_id) if session_id is not None else None


def record_set(
    client: LiftSyncClient,
    session_id: str,
    exercise_name: str,
    set_index: int,
    start_time: str,
    end_time: str,
    weight: float,
    reps: int,
    note: str = "",
    is_warmup: bool = False,
    muscle_group: str = None,
) -> Dict[str, Any]:
    """
    Record a completed set.

    POST api/sessions/{id}/set

    Args:
        session_id: Server-issued session id (never a local sentinel)
        exercise_name: Exercise name, e.g. "Barbell Back Squat"
        set_index: 0-based set position within the exercise
        start_time: ISO-8601
        end_time: ISO-8601
        weight: Load lifted
        reps: Repetitions
        note: Free-text note
        is_warmup: Warmup sets are excluded from volume
        muscle_group: Used only on first insert of the exercise

    Returns:
        The server's timing record
    """
    response = client.make_request(
        "POST",
        f"api/sessions/{session_id}/set",
        json_data={
            "exerciseName": exercise_name,
            "setIndex": set_index,
            "startTime": start_time,
            "endTime": end_time,
            "weight": weight,
            "reps": reps,
            "note": note,
            "isWarmup": is_warmup,
            "muscleGroup": muscle_group,
        },
    )
    return response.get("timing") or {}


def end_session(
    client: LiftSyncClient, session_id: str, end_time: str = None
) -> Dict[str, Any]:
    """
    End a workout session.

    POST api/sessions/{id}/end

    Raises:
        NotFoundError / UnauthorizedError: The server does not know the session
    """
    response = client.make_request(
        "POST",
        f"api/sessions/{session_id}/end",
        json_data={"endTime": end_time},
    )
    return response.get("session") or {}


def get_session_history(
    client: LiftSyncClient,
    person: str = None,
    day_number: int = None,
    limit: int = 10,
    include_timings: bool = False,
) -> List[Dict[str, Any]]:
    """
    List recent session summaries.

    GET api/sessions?person&dayNumber&limit&includeTimings

    Returns:
        List of session summary dicts (id, day_number, start_time, end_time, ...)
    """
    params = {}
    if person:
        params["person"] = person
    if day_number:
        params["dayNumber"] = str(day_number)
    if limit:
        params["limit"] = str(limit)
    if include_timings:
        params["includeTimings"] = "true"

    response = client.make_request("GET", "api/sessions", params=params)
    return response.get("sessions") or []


def get_session(client: LiftSyncClient, session_id: str) -> Dict[str, Any]:
    """
    Get a full session with its set timings.

    GET api/sessions/{id}

    Returns:
        Session dict with day_number, start_time, end_time and set_timings[]
    """
    response = client.make_request("GET", f"api/sessions/{session_id}")
    return response.get("session") or {}
