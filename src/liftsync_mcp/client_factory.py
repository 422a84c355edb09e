"""
Client and runtime factory for the liftsync MCP server.

Provides session-based client management using FastMCP Context.
Each MCP connection has isolated session state via mcp-session-id header.

Session Persistence:
- FastMCP Context state (ctx._state) doesn't persist across HTTP requests
- Solution: File-based session store using ctx.session_id as key
- Sessions stored in $LIFTSYNC_SESSION_DIR/{session_id}.json

Runtimes (state, queue, websocket, background loops) are kept per user id
for the life of the process, so several MCP sessions of one user share them.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict

from fastmcp import Context

from liftsync_mcp.api.runtime import WorkoutRuntime
from liftsync_mcp.config import Settings
from liftsync_mcp.sdk.client import LiftSyncClient, SessionExpiredError

logger = logging.getLogger(__name__)

LIFTSYNC_TOKENS_KEY = "liftsync_tokens"

_RUNTIMES: Dict[str, WorkoutRuntime] = {}


def get_settings() -> Settings:
    return Settings.from_env()


def create_client_from_tokens(tokens: str) -> LiftSyncClient:
    """
    Create a client from serialized tokens.

    Args:
        tokens: JSON string from LiftSyncClient.export_token()

    Returns:
        Authenticated LiftSyncClient instance
    """
    settings = get_settings()
    client = LiftSyncClient(server_url=settings.server_url, timeout=settings.request_timeout)
    client.load_token(tokens)
    return client


def _get_session_file_path(session_id: str) -> Path:
    """Get the file path for a session's data."""
    session_dir = get_settings().session_dir
    session_dir.mkdir(parents=True, exist_ok=True)
    # Sanitize session_id to prevent path traversal
    safe_session_id = "".join(c for c in session_id if c.isalnum() or c in "-_")
    return session_dir / f"{safe_session_id}.json"


def _load_session_data(session_id: str) -> dict:
    """Load session data from file system."""
    session_file = _get_session_file_path(session_id)
    if not session_file.exists():
        return {}
    try:
        with open(session_file, "r") as f:
            return json.load(f)
    except (json.JSONDecodeError, IOError):
        return {}


def _save_session_data(session_id: str, data: dict) -> None:
    """Save session data to file system."""
    session_file = _get_session_file_path(session_id)
    try:
        with open(session_file, "w") as f:
            json.dump(data, f)
    except IOError as e:
        # Session won't persist but the tool still works for this request
        logger.warning(f"Failed to save session data: {e}")


def _get_session_tokens(ctx: Context) -> str | None:
    """
    Get tokens from the persistent session store.

    Checks in-memory Context state first, then the file-based store.
    """
    tokens = ctx.get_state(LIFTSYNC_TOKENS_KEY)
    if tokens:
        return tokens

    try:
        session_data = _load_session_data(ctx.session_id)
        tokens = session_data.get(LIFTSYNC_TOKENS_KEY)
        if tokens:
            ctx.set_state(LIFTSYNC_TOKENS_KEY, tokens)
        return tokens
    except RuntimeError:
        # session_id not available (not in request context)
        return None


def set_session_tokens(ctx: Context, tokens: str) -> None:
    """
    Store tokens in both in-memory Context and the persistent session store.

    Args:
        ctx: FastMCP Context
        tokens: Serialized tokens from LiftSyncClient.export_token()
    """
    ctx.set_state(LIFTSYNC_TOKENS_KEY, tokens)
    try:
        session_id = ctx.session_id
        session_data = _load_session_data(session_id)
        session_data[LIFTSYNC_TOKENS_KEY] = tokens
        _save_session_data(session_id, session_data)
    except RuntimeError:
        # Not in a request context: context state only
        pass


def clear_session_tokens(ctx: Context) -> None:
    """Clear tokens from both in-memory context and disk storage."""
    ctx.set_state(LIFTSYNC_TOKENS_KEY, None)
    try:
        session_file = _get_session_file_path(ctx.session_id)
        if session_file.exists():
            session_file.unlink()
    except RuntimeError:
        pass


def get_client(ctx: Context) -> LiftSyncClient:
    """
    Get the workout server client from session Context.

    Raises:
        ValueError: If no session is active
    """
    tokens = _get_session_tokens(ctx)
    if not tokens:
        raise ValueError("No liftsync session. Call set_liftsync_session() first.")
    return create_client_from_tokens(tokens)


async def get_runtime(ctx: Context) -> WorkoutRuntime:
    """
    Get (and start on first use) the runtime for the session's user.

    A runtime built for an older token is replaced.

    Raises:
        ValueError: If no session is active
        SessionExpiredError: If a background task saw the token expire
    """
    client = get_client(ctx)
    key = str(client.user_id or "default")

    runtime = _RUNTIMES.get(key)
    if runtime is not None and runtime.client.access_token != client.access_token:
        await runtime.stop()
        runtime = None
    if runtime is None:
        runtime = WorkoutRuntime.from_settings(get_settings(), client)
        _RUNTIMES[key] = runtime
        await runtime.start()

    if runtime.session_expired:
        raise SessionExpiredError("SESSION_EXPIRED", 401)
    return runtime


async def discard_runtime(user_id: str) -> None:
    """Stop and forget a user's runtime. Persisted state is kept."""
    runtime = _RUNTIMES.pop(str(user_id), None)
    if runtime is not None:
        await runtime.stop()


def is_token_expired_error(error: Exception) -> bool:
    """
    Check if an error indicates that the access token has expired.

    The server answers 401 with an "expired" message; the SDK raises
    SessionExpiredError for exactly that case.
    """
    return isinstance(error, SessionExpiredError) or "session_expired" in str(error).lower()


def handle_token_expired(ctx: Context) -> str:
    """
    Handle an expired token by clearing the session and stopping its runtime.

    Returns:
        Error message to return to the user
    """
    try:
        tokens = _get_session_tokens(ctx)
        if tokens:
            user_id = json.loads(tokens).get("user_id") or "default"
            runtime = _RUNTIMES.pop(str(user_id), None)
            if runtime is not None:
                asyncio.ensure_future(runtime.stop())
        clear_session_tokens(ctx)
    except (RuntimeError, ValueError, OSError) as e:
        logger.warning(f"Error clearing expired session: {e}")

    return json.dumps({
        "error": "Your liftsync session has expired. Please log in again.",
        "error_code": "SESSION_EXPIRED",
        "note": "Queued workout data is kept on disk and will sync after the next login.",
    }, indent=2)
