"""
Domain types for the sync and coordination core.

Records that are persisted or cross the wire get a dataclass with
to_dict/from_dict (camelCase on the wire). Programs stay plain dicts.
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from liftsync_mcp.sdk.types import SetSource, SyncType
from liftsync_mcp.utils import parse_index


@dataclass
class SetRecord:
    """One completed set in the Completed-Days View."""
    weight: float
    reps: int
    completed_at: str
    note: str = ""
    is_warmup: bool = False
    source: SetSource = SetSource.LOCAL
    exercise_name: Optional[str] = None
    started_at: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            "weight": self.weight,
            "reps": self.reps,
            "completedAt": self.completed_at,
            "note": self.note,
            "isWarmup": self.is_warmup,
            "source": self.source.value,
        }
        if self.exercise_name is not None:
            result["exerciseName"] = self.exercise_name
        if self.started_at is not None:
            result["startedAt"] = self.started_at
        return result

    @classmethod
    def from_dict(cls, d: dict) -> "SetRecord":
        return cls(
            weight=d.get("weight") or 0,
            reps=d.get("reps") or 0,
            completed_at=d.get("completedAt") or "",
            note=d.get("note") or "",
            is_warmup=bool(d.get("isWarmup", False)),
            source=SetSource(d.get("source") or SetSource.LOCAL.value),
            exercise_name=d.get("exerciseName"),
            started_at=d.get("startedAt"),
        )


@dataclass
class PendingSync:
    """A durably queued mutation that has not reached the server yet."""
    type: SyncType
    data: Dict[str, Any]
    timestamp: str
    local_session_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def session_id(self) -> Optional[str]:
        value = self.data.get("sessionId")
        return str(value) if value is not None else None

    def to_dict(self) -> dict:
        result = {
            "id": self.id,
            "type": self.type.value,
            "data": dict(self.data),
            "timestamp": self.timestamp,
        }
        if self.local_session_id:
            result["localSessionId"] = self.local_session_id
        return result

    @classmethod
    def from_dict(cls, d: dict) -> "PendingSync":
        """Rebuild a queued operation.

        Raises:
            ValueError: If the operation type is unknown
        """
        kwargs = {}
        if d.get("id"):
            kwargs["id"] = d["id"]
        return cls(
            type=SyncType(d.get("type")),
            data=dict(d.get("data") or {}),
            timestamp=d.get("timestamp") or "",
            local_session_id=d.get("localSessionId"),
            **kwargs,
        )


@dataclass
class ExerciseEntry:
    """A day's exercise tagged with the person it belongs to."""
    name: str
    sets: int
    person: Optional[str] = None


@dataclass
class JointParticipant:
    user_id: str
    username: str
    exercise_names: Optional[List[Dict[str, Any]]] = None

    def to_dict(self) -> dict:
        result = {"userId": self.user_id, "username": self.username}
        if self.exercise_names is not None:
            result["exerciseNames"] = list(self.exercise_names)
        return result

    @classmethod
    def from_dict(cls, d: dict) -> "JointParticipant":
        names = d.get("exerciseNames")
        return cls(
            user_id=str(d.get("userId", "")),
            username=d.get("username") or "",
            exercise_names=list(names) if names is not None else None,
        )


@dataclass
class JointSession:
    """Two users training together."""
    id: str
    participants: List[JointParticipant] = field(default_factory=list)

    def with_exercise_names(self, user_id: str, names: List[Dict[str, Any]]) -> "JointSession":
        """Copy with one participant's exercise list replaced wholesale."""
        return JointSession(
            id=self.id,
            participants=[
                replace(p, exercise_names=list(names)) if p.user_id == str(user_id) else p
                for p in self.participants
            ],
        )

    def partner_of(self, user_id: Optional[str]) -> Optional[JointParticipant]:
        for p in self.participants:
            if p.user_id != str(user_id):
                return p
        return None

    def to_dict(self) -> dict:
        return {"id": self.id, "participants": [p.to_dict() for p in self.participants]}

    @classmethod
    def from_dict(cls, d: dict) -> "JointSession":
        """Raises ValueError if the id is missing."""
        if d.get("id") is None:
            raise ValueError("jointSession.id is required")
        return cls(
            id=str(d["id"]),
            participants=[JointParticipant.from_dict(p) for p in d.get("participants") or []],
        )


@dataclass
class ProgressPayload:
    """Progress snapshot exchanged between joint session participants."""
    exercise_index: Optional[int] = None
    set_index: Optional[int] = None
    exercise_name: Optional[str] = None
    ready_for_next: bool = False
    exercise_names: Optional[List[Dict[str, Any]]] = None
    from_user_id: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            "exerciseIndex": self.exercise_index,
            "setIndex": self.set_index,
            "exerciseName": self.exercise_name,
            "readyForNext": self.ready_for_next,
        }
        if self.exercise_names is not None:
            result["exerciseNames"] = list(self.exercise_names)
        if self.from_user_id is not None:
            result["fromUserId"] = self.from_user_id
        return result

    @classmethod
    def from_dict(cls, d: dict) -> "ProgressPayload":
        """Raises ValueError on malformed indices."""
        names = d.get("exerciseNames")
        if names is not None and not isinstance(names, list):
            raise ValueError("exerciseNames must be a list")
        from_user = d.get("fromUserId")
        return cls(
            exercise_index=parse_index(d.get("exerciseIndex"), "exerciseIndex", optional=True),
            set_index=parse_index(d.get("setIndex"), "setIndex", optional=True),
            exercise_name=d.get("exerciseName"),
            ready_for_next=bool(d.get("readyForNext", False)),
            exercise_names=names,
            from_user_id=str(from_user) if from_user is not None else None,
        )


@dataclass
class PartnerProgress:
    """Latest progress received from the partner. Last write wins."""
    exercise_index: Optional[int]
    set_index: Optional[int]
    exercise_name: Optional[str]
    ready_for_next: bool
    last_updated: float

    def to_dict(self) -> dict:
        return {
            "exerciseIndex": self.exercise_index,
            "setIndex": self.set_index,
            "exerciseName": self.exercise_name,
            "readyForNext": self.ready_for_next,
            "lastUpdated": self.last_updated,
        }


@dataclass
class PartnerCompletedSet:
    exercise_name: str
    set_index: int


@dataclass
class WatchTarget:
    friend_id: str
    friend_username: str
    session_id: str
