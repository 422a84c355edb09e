"""
Workout Server Low-Level SDK.

Thin typed wrapper over the workout server's HTTP API.
Each function maps 1:1 to a server endpoint.
"""

from liftsync_mcp.sdk.client import (
    LiftSyncClient,
    ApiError,
    RejectedError,
    NotFoundError,
    UnauthorizedError,
    SessionExpiredError,
)
from liftsync_mcp.sdk.types import (
    SyncType,
    SetSource,
    InviteStatus,
    AppState,
    MessageType,
    StorageKey,
    LOCAL_SESSION_PREFIX,
)

__all__ = [
    "LiftSyncClient",
    "ApiError",
    "RejectedError",
    "NotFoundError",
    "UnauthorizedError",
    "SessionExpiredError",
    "SyncType",
    "SetSource",
    "InviteStatus",
    "AppState",
    "MessageType",
    "StorageKey",
    "LOCAL_SESSION_PREFIX",
]
