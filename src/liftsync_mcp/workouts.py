"""
Workout session tools for the liftsync MCP server.

Start/end sessions, log sets, lock days, and sync with the server.
"""

import json

from fastmcp import Context

from liftsync_mcp.client_factory import get_runtime, handle_token_expired
from liftsync_mcp.sdk.client import SessionExpiredError
from liftsync_mcp.sdk.types import AppState
from liftsync_mcp.utils import format_duration, is_local_session_id, parse_index


def register_tools(app):
    """Register workout session tools with the MCP app."""

    @app.tool()
    async def start_workout(ctx: Context) -> str:
        """
        Start a workout session for the selected person and day.

        Returns the existing session if one is already running. When the
        server is unreachable a local session id is issued and the start is
        queued for sync.

        Returns:
            JSON with session_id and whether it is still local
        """
        try:
            runtime = await get_runtime(ctx)
            session_id = await runtime.sessions.start_workout()
        except SessionExpiredError:
            return handle_token_expired(ctx)

        return json.dumps({
            "session_id": session_id,
            "is_local": is_local_session_id(session_id),
            "start_time": runtime.state.workout_start_time,
            "day_number": runtime.state.current_day,
        }, indent=2)

    @app.tool()
    async def record_set(
        ctx: Context,
        day_number: int,
        exercise_index: int,
        set_index: int,
        weight: float,
        reps: int,
        note: str = "",
        is_warmup: bool = False,
    ) -> str:
        """
        Log a completed set.

        The set is saved locally first and never lost; the server call
        follows and is queued if it fails. Starts a session if none is active.

        Args:
            day_number: Program day number
            exercise_index: 0-based exercise position for the selected person
            set_index: 0-based set position within the exercise
            weight: Load lifted
            reps: Repetitions completed
            note: Optional note
            is_warmup: Warmup sets are excluded from volume

        Returns:
            JSON with the stored set and the number of queued operations
        """
        try:
            day = parse_index(day_number, "day_number")
            exercise = parse_index(exercise_index, "exercise_index")
            set_idx = parse_index(set_index, "set_index")
        except ValueError as e:
            return json.dumps({"error": str(e)}, indent=2)

        try:
            runtime = await get_runtime(ctx)
            record = await runtime.save_set(day, exercise, set_idx, weight, reps, note, is_warmup)
        except SessionExpiredError:
            return handle_token_expired(ctx)

        return json.dumps({
            "day_number": day,
            "exercise_index": exercise,
            "set_index": set_idx,
            "set": record.to_dict(),
            "session_id": runtime.state.current_session_id,
            "pending_syncs": len(runtime.state.pending_syncs),
        }, indent=2)

    @app.tool()
    async def end_workout(ctx: Context) -> str:
        """
        End the active workout session.

        Locks the day (unless it was explicitly unlocked), ends the session on
        the server or queues the end, and leaves any joint session.

        Returns:
            JSON with the result
        """
        try:
            runtime = await get_runtime(ctx)
            day = runtime.state.current_day
            ended = await runtime.end_workout()
        except SessionExpiredError:
            return handle_token_expired(ctx)

        return json.dumps({
            "ended": ended,
            "day_number": day,
            "day_locked": bool(runtime.state.locked_days.get(day)),
            "pending_syncs": len(runtime.state.pending_syncs),
        }, indent=2)

    @app.tool()
    async def delete_set(ctx: Context, day_number: int, exercise_index: int, set_index: int) -> str:
        """
        Remove a logged set from the local view.

        Local only; the server copy is not deleted.

        Returns:
            JSON with whether a set was removed
        """
        try:
            runtime = await get_runtime(ctx)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        removed = runtime.sessions.delete_set_details(day_number, exercise_index, set_index)
        return json.dumps({"removed": removed}, indent=2)

    @app.tool()
    async def lock_day(ctx: Context, day_number: int) -> str:
        """
        Mark a day as done. Clears any unlocked override on it.

        Returns:
            JSON with the locked days
        """
        try:
            runtime = await get_runtime(ctx)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        runtime.sessions.lock_day(day_number)
        return json.dumps({"locked_days": sorted(runtime.state.locked_days)}, indent=2)

    @app.tool()
    async def unlock_day(ctx: Context, day_number: int) -> str:
        """
        Reopen a day so it appears fresh.

        Clears the day's logged sets and keeps server sync from
        re-populating or re-locking it until it is locked again.

        Returns:
            JSON with the locked days and unlocked overrides
        """
        try:
            runtime = await get_runtime(ctx)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        runtime.sessions.unlock_day(day_number)
        return json.dumps({
            "locked_days": sorted(runtime.state.locked_days),
            "unlocked_overrides": sorted(runtime.state.unlocked_overrides),
        }, indent=2)

    @app.tool()
    async def select_day(ctx: Context, day_number: int = None, person: str = None) -> str:
        """
        Choose the program day and/or the person within a shared program.

        Args:
            day_number: Program day number (optional)
            person: Profile name within the program (optional)

        Returns:
            JSON with the current selection
        """
        try:
            runtime = await get_runtime(ctx)
            await runtime.select(person=person, day_number=day_number)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({
            "selected_person": runtime.state.selected_person,
            "current_day": runtime.state.current_day,
        }, indent=2)

    @app.tool()
    async def sync_pending(ctx: Context) -> str:
        """
        Replay queued operations against the server now.

        Returns:
            JSON with whether the queue is empty and what remains
        """
        try:
            runtime = await get_runtime(ctx)
            drained = await runtime.sync_manager.sync_pending_data()
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({
            "drained": drained,
            "pending_syncs": [op.to_dict() for op in runtime.state.pending_syncs],
        }, indent=2)

    @app.tool()
    async def sync_from_server(ctx: Context) -> str:
        """
        Rebuild completed sets and locked days from server session history.

        Aborts without changing anything if the server cannot be reached.

        Returns:
            JSON with the synced days
        """
        try:
            runtime = await get_runtime(ctx)
            view = await runtime.reconciliation.sync_from_server()
        except SessionExpiredError:
            return handle_token_expired(ctx)

        if view is None:
            return json.dumps({"synced": False, "message": "Nothing synced; local state unchanged"}, indent=2)
        return json.dumps({
            "synced": True,
            "days": sorted(view),
            "locked_days": sorted(runtime.state.locked_days),
        }, indent=2)

    @app.tool()
    async def rename_exercise(
        ctx: Context,
        day_number: int,
        exercise_index: int,
        new_name: str,
        new_muscle_group: str = None,
        person: str = None,
    ) -> str:
        """
        Rename an exercise in the program.

        The local program changes first; the server copy is updated on a
        best-effort basis.

        Args:
            day_number: Program day number
            exercise_index: 0-based exercise position
            new_name: New exercise name
            new_muscle_group: Optional new muscle group
            person: Profile name (default: selected person)

        Returns:
            JSON with whether the exercise was found and renamed
        """
        try:
            runtime = await get_runtime(ctx)
            renamed = await runtime.program.rename_exercise(
                day_number, person or runtime.state.selected_person, exercise_index, new_name, new_muscle_group
            )
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({"renamed": renamed}, indent=2)

    @app.tool()
    async def add_extra_sets(
        ctx: Context, day_number: int, exercise_index: int, additional_sets: int = 1, person: str = None
    ) -> str:
        """
        Add sets to an exercise in the program.

        Returns:
            JSON with whether the exercise was found
        """
        try:
            runtime = await get_runtime(ctx)
            added = await runtime.program.add_extra_sets(
                day_number, person or runtime.state.selected_person, exercise_index, additional_sets
            )
        except ValueError as e:
            return json.dumps({"error": str(e)}, indent=2)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({"added": added}, indent=2)

    @app.tool()
    async def add_exercise(
        ctx: Context,
        day_number: int,
        name: str,
        sets: int = 3,
        muscle_group: str = None,
        person: str = None,
    ) -> str:
        """
        Append an exercise to a program day.

        Returns:
            JSON with whether the day was found
        """
        exercise = {"name": name, "sets": sets}
        if muscle_group:
            exercise["muscleGroup"] = muscle_group
        try:
            runtime = await get_runtime(ctx)
            added = await runtime.program.add_exercise(
                day_number, person or runtime.state.selected_person, exercise
            )
        except ValueError as e:
            return json.dumps({"error": str(e)}, indent=2)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({"added": added}, indent=2)

    @app.tool()
    async def set_app_state(ctx: Context, app_state: str) -> str:
        """
        Report the client's lifecycle state.

        "background" closes the realtime connection; "active" reconnects it
        and replays queued operations.

        Args:
            app_state: "active", "background" or "inactive"

        Returns:
            JSON with the realtime status and queued operation count
        """
        try:
            state = AppState(app_state)
        except ValueError:
            return json.dumps({"error": f"Unknown app state: {app_state}"}, indent=2)
        try:
            runtime = await get_runtime(ctx)
            await runtime.handle_app_state(state)
        except SessionExpiredError:
            return handle_token_expired(ctx)
        return json.dumps({
            "app_state": state.value,
            "realtime_connected": bool(runtime.transport and runtime.transport.connected),
            "pending_syncs": len(runtime.state.pending_syncs),
        }, indent=2)

    @app.tool()
    async def get_workout_state(ctx: Context) -> str:
        """
        Get the current workout state.

        Includes the active session, its statistics, queued operations,
        locked days and completed sets.

        Returns:
            JSON workout state
        """
        try:
            runtime = await get_runtime(ctx)
        except SessionExpiredError:
            return handle_token_expired(ctx)

        state = runtime.state.snapshot()
        stats = runtime.sessions.session_statistics()
        if stats:
            stats["total_time_formatted"] = format_duration(stats["total_time"])
            stats["average_rest_formatted"] = format_duration(stats["average_rest"])
        state["session_statistics"] = stats
        state["realtime_connected"] = bool(runtime.transport and runtime.transport.connected)
        return json.dumps(state, indent=2)

    return app
