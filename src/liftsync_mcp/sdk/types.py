"""
Workout server types, enums, and constants.

All wire-level codes, storage keys and magic values live here.
"""

from enum import Enum


class SyncType(str, Enum):
    """Kinds of pending sync operations."""
    START_SESSION = "startSession"
    RECORD_SET = "recordSet"
    END_SESSION = "endSession"


class SetSource(str, Enum):
    """Where a completed-set record came from."""
    SERVER = "server"
    LOCAL = "local"


class InviteStatus(str, Enum):
    """Joint session invite state machine."""
    IDLE = "idle"
    SENDING = "sending"
    WAITING = "waiting"
    ACTIVE = "active"
    DECLINED = "declined"
    ERROR = "error"


class AppState(str, Enum):
    """Application lifecycle signal."""
    ACTIVE = "active"
    BACKGROUND = "background"
    INACTIVE = "inactive"


class MessageType(str, Enum):
    """Realtime message types."""
    # Incoming
    JOINT_INVITE = "joint_invite"
    INVITE_STATUS = "invite_status"
    JOINT_PROGRESS = "joint_progress"
    JOINT_SESSION_ENDED = "joint_session_ended"
    LIVE_SESSION_UPDATE = "live_session_update"
    FRIEND_SESSION_ENDED = "friend_session_ended"
    # Outgoing
    PUSH_JOINT_PROGRESS = "push_joint_progress"
    LEAVE_JOINT_SESSION = "leave_joint_session"
    SESSION_STARTED = "session_started"


# Local session identifiers: local_<epoch ms>_<random>
LOCAL_SESSION_PREFIX = "local_"

# Realtime reconnect backoff (milliseconds)
BASE_RETRY_MS = 1_000
MAX_RETRY_MS = 30_000

# Close codes / reasons for deliberate closes
NORMAL_CLOSE_CODE = 1000
CLOSE_REASON_BACKGROUND = "background"
CLOSE_REASON_DISCONNECT = "client_disconnect"

# Joint session tempo cue
SYNC_PULSE_SECONDS = 1.5

# Session housekeeping
INACTIVITY_THRESHOLD_SECONDS = 30 * 60
PENDING_SYNC_INTERVAL_SECONDS = 30
STALE_CHECK_INTERVAL_SECONDS = 60
POST_END_SYNC_DELAY_SECONDS = 1.0

# Rest windows counted toward the session average (seconds)
MIN_REST_SECONDS = 10
MAX_REST_SECONDS = 1200
DEFAULT_REST_SECONDS = 120

# Session history depth used by reconciliation
RECONCILE_HISTORY_LIMIT = 100


class StorageKey(str, Enum):
    """Persisted per-user keys."""
    WORKOUT_DATA = "workoutData"
    SELECTED_PERSON = "selectedPerson"
    CURRENT_DAY = "currentDay"
    COMPLETED_DAYS = "completedDays"
    LOCKED_DAYS = "lockedDays"
    UNLOCKED_OVERRIDES = "unlockedOverrides"
    WORKOUT_START_TIME = "workoutStartTime"
    CURRENT_SESSION_ID = "currentSessionId"
    PENDING_SYNCS = "pendingSyncs"
    LAST_ACTIVITY_TIME = "lastActivityTime"
    LAST_SET_END_TIME = "lastSetEndTime"
    SESSION_ID_TRANSLATIONS = "sessionIdTranslations"
