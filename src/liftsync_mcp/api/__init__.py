"""
High-Level API — offline-first session sync and realtime coordination.

Composes with the SDK internally. Local state is written first; server
calls follow and degrade to the pending operation queue.

Modules:
    transport      — Realtime websocket with reconnect backoff
    messages       — Typed realtime message codec
    sync_manager   — Pending operation queue and id translation
    sessions       — Start/record/end workout sessions, day locking
    reconcile      — Rebuild completed days from server history
    joint          — Joint sessions and watch sessions
    program        — Program helpers and advisory program edits
    runtime        — Per-user wiring and background loops
"""

# Model
from liftsync_mcp.api.model import (
    SetRecord,
    PendingSync,
    JointSession,
    JointParticipant,
    ProgressPayload,
    PartnerProgress,
    WatchTarget,
)

# Storage and state
from liftsync_mcp.api.storage import KeyValueStore, JsonFileStore, MemoryStore
from liftsync_mcp.api.state import WorkoutState

# Realtime
from liftsync_mcp.api.messages import MessageDecodeError, decode_message
from liftsync_mcp.api.transport import RealtimeTransport, realtime_url

# Coordinators
from liftsync_mcp.api.sync_manager import SyncManager
from liftsync_mcp.api.sessions import SessionManager
from liftsync_mcp.api.reconcile import ServerReconciliation
from liftsync_mcp.api.joint import JointSessionCoordinator
from liftsync_mcp.api.program import ProgramOperations
from liftsync_mcp.api.runtime import WorkoutRuntime

__all__ = [
    # Model
    "SetRecord", "PendingSync", "JointSession", "JointParticipant",
    "ProgressPayload", "PartnerProgress", "WatchTarget",
    # Storage and state
    "KeyValueStore", "JsonFileStore", "MemoryStore", "WorkoutState",
    # Realtime
    "MessageDecodeError", "decode_message", "RealtimeTransport", "realtime_url",
    # Coordinators
    "SyncManager", "SessionManager", "ServerReconciliation",
    "JointSessionCoordinator", "ProgramOperations", "WorkoutRuntime",
]
