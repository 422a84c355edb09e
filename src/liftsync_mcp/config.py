"""
Environment configuration for the liftsync MCP server.

Variables:
- LIFTSYNC_SERVER_URL: Workout server base URL (default: http://localhost:3000)
- LIFTSYNC_STATE_DIR: Per-user JSON state files (default: ~/.liftsync/state)
- LIFTSYNC_SESSION_DIR: MCP session token files (default: /data/liftsync_sessions)
- LIFTSYNC_REALTIME: Enable the realtime websocket (default: true)
- LIFTSYNC_REQUEST_TIMEOUT: HTTP timeout in seconds (default: 15)
"""

import os
from dataclasses import dataclass
from pathlib import Path

from liftsync_mcp.sdk.client import DEFAULT_SERVER_URL, DEFAULT_TIMEOUT

FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True)
class Settings:
    server_url: str = DEFAULT_SERVER_URL
    state_dir: Path = Path("~/.liftsync/state").expanduser()
    session_dir: Path = Path("/data/liftsync_sessions")
    realtime_enabled: bool = True
    request_timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            server_url=env.get("LIFTSYNC_SERVER_URL", DEFAULT_SERVER_URL).rstrip("/"),
            state_dir=Path(env.get("LIFTSYNC_STATE_DIR", "~/.liftsync/state")).expanduser(),
            session_dir=Path(env.get("LIFTSYNC_SESSION_DIR", "/data/liftsync_sessions")),
            realtime_enabled=env.get("LIFTSYNC_REALTIME", "true").strip().lower() not in FALSE_VALUES,
            request_timeout=float(env.get("LIFTSYNC_REQUEST_TIMEOUT", DEFAULT_TIMEOUT)),
        )
