"""
Realtime transport: one persistent websocket per authenticated user.

Reconnects with exponential backoff (1s floor, 30s ceiling) after any
close it did not initiate itself. Malformed frames are logged and dropped.
Sending while disconnected is a logged no-op; callers needing delivery
fall back to HTTP themselves.
"""

import asyncio
import json
import logging
import re
from typing import Callable, List, Optional
from urllib.parse import quote

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from liftsync_mcp.api.messages import Message, MessageDecodeError, decode_message
from liftsync_mcp.sdk.types import (
    BASE_RETRY_MS,
    MAX_RETRY_MS,
    NORMAL_CLOSE_CODE,
    CLOSE_REASON_BACKGROUND,
    CLOSE_REASON_DISCONNECT,
    AppState,
)

logger = logging.getLogger(__name__)


def realtime_url(server_url: str, token: str) -> str:
    """ws(s)://host/ws?token=... derived from the REST base URL."""
    base = re.sub(r"^http", "ws", server_url.rstrip("/"), count=1)
    return f"{base}/ws?token={quote(token, safe='')}"


class RealtimeTransport:
    """Owned websocket connection with automatic reconnection."""

    def __init__(
        self,
        url: str,
        token: Optional[str],
        enabled: bool = True,
        connect: Callable = None,
    ):
        self.url = url
        self.token = token
        self.enabled = enabled
        self._connect = connect or websockets.connect

        self.connected = False
        self.last_message: Optional[Message] = None
        self.retry_ms = BASE_RETRY_MS

        self._ws = None
        self._connecting = False
        self._reader: Optional[asyncio.Task] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._listeners: List[Callable[[Message], None]] = []
        self._open_listeners: List[Callable[[], None]] = []

    def add_listener(self, callback: Callable[[Message], None]) -> None:
        """Receive every decoded message, in arrival order."""
        self._listeners.append(callback)

    def add_open_listener(self, callback: Callable[[], None]) -> None:
        """Called each time a connection opens."""
        self._open_listeners.append(callback)

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self.connected

    @property
    def reconnect_pending(self) -> bool:
        return self._retry_handle is not None

    async def connect(self) -> bool:
        """Open the connection unless disabled, tokenless or already open."""
        if not self.token or not self.enabled:
            logger.info(f"Realtime connect skipped (token={bool(self.token)}, enabled={self.enabled})")
            return False
        if self.is_open or self._connecting:
            return self.is_open

        self._cancel_retry()
        self._connecting = True
        try:
            ws = await self._connect(self.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            self._connecting = False
            logger.warning(f"Realtime connect failed: {e}")
            self._handle_close(None, None, str(e))
            return False
        self._connecting = False

        self._ws = ws
        self.connected = True
        self.retry_ms = BASE_RETRY_MS
        logger.info("Realtime connected")
        self._reader = asyncio.create_task(self._read_loop(ws))

        for callback in list(self._open_listeners):
            try:
                callback()
            except Exception:
                logger.exception("Realtime open listener failed")
        return True

    async def send(self, message: dict) -> bool:
        """Send one JSON frame. Returns False (and logs) when not open."""
        if not self.is_open:
            logger.warning(f"Realtime send dropped, not connected (type={message.get('type')})")
            return False
        try:
            await self._ws.send(json.dumps(message))
        except (ConnectionClosed, OSError) as e:
            logger.warning(f"Realtime send failed (type={message.get('type')}): {e}")
            return False
        return True

    async def disconnect(self) -> None:
        """Deliberate close: cancel any reconnect and close normally."""
        self._cancel_retry()
        await self._close_deliberately(CLOSE_REASON_DISCONNECT)

    async def handle_app_state(self, state: AppState) -> None:
        """Background closes so the far side sees us leave; foreground reconnects now."""
        if state == AppState.ACTIVE:
            if not self.is_open:
                self._cancel_retry()
                self.retry_ms = BASE_RETRY_MS
                await self.connect()
            return
        self._cancel_retry()
        await self._close_deliberately(CLOSE_REASON_BACKGROUND)

    # ── Internals ───────────────────────────────────────────────────────

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed:
            pass
        finally:
            self._handle_close(ws, getattr(ws, "close_code", None), getattr(ws, "close_reason", ""))

    def _handle_frame(self, raw) -> None:
        try:
            message = decode_message(raw)
        except MessageDecodeError as e:
            logger.warning(f"Dropping malformed realtime message: {e}")
            return
        logger.debug(f"Realtime message received: {message}")
        self.last_message = message
        for callback in list(self._listeners):
            try:
                callback(message)
            except Exception:
                logger.exception("Realtime listener failed")

    def _handle_close(self, ws, code, reason) -> Optional[int]:
        """Connection lost. Returns the scheduled reconnect delay in ms."""
        if ws is not None and ws is not self._ws:
            # Stale socket we already closed on purpose
            return None
        self._ws = None
        self.connected = False
        logger.info(f"Realtime closed (code={code}, reason={reason})")
        if not self.enabled:
            return None
        return self._schedule_reconnect()

    def _schedule_reconnect(self) -> int:
        self._cancel_retry()
        delay = self.retry_ms
        self.retry_ms = min(delay * 2, MAX_RETRY_MS)
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay / 1000, self._spawn_connect)
        logger.info(f"Realtime reconnecting in {delay} ms")
        return delay

    def _spawn_connect(self) -> None:
        self._retry_handle = None
        self._connect_task = asyncio.ensure_future(self.connect())

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    async def _close_deliberately(self, reason: str) -> None:
        ws = self._ws
        self._ws = None
        self.connected = False
        if ws is None:
            return
        try:
            await ws.close(code=NORMAL_CLOSE_CODE, reason=reason)
        except (WebSocketException, OSError) as e:
            logger.warning(f"Realtime close failed ({reason}): {e}")
