"""
Chat Sync Connection Management

Owns the single live websocket to the messaging endpoint:
- Connection state machine (disconnected / connecting / connected)
- Fixed-delay auto-reconnect with at most one pending timer
- Inbound frame validation and dispatch
- Outbound frames, sent only while connected (never buffered)
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from websockets.asyncio.client import connect as websocket_connect

from aitu_connect.chat_sync.models import MessageFrame, OutboundFrame, parse_frame
from aitu_connect.error_handler import FrameError

logger = logging.getLogger(__name__)


# Opens a websocket-like object: awaitable send(str), async iteration, awaitable close()
Connector = Callable[[str, Dict[str, str]], Awaitable[Any]]
HeadersProvider = Callable[[], Dict[str, str]]
OpenCallback = Callable[[], Awaitable[None]]
FrameCallback = Callable[[MessageFrame], None]
StateCallback = Callable[["ConnectionState"], None]

DEFAULT_RECONNECT_DELAY = 3.0  # seconds


class ConnectionState(Enum):
    """Live connection state"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class ConnectionHealth:
    """Tracks live connection health"""
    last_connected: Optional[datetime] = None
    consecutive_failures: int = 0
    total_reconnects: int = 0
    frames_received: int = 0
    frames_dropped: int = 0
    last_error: Optional[str] = None

    def record_open(self) -> None:
        self.last_connected = datetime.now(UTC)
        self.consecutive_failures = 0
        self.last_error = None

    def record_failure(self, error: str) -> None:
        self.consecutive_failures += 1
        self.last_error = error

    def record_reconnect(self) -> None:
        self.total_reconnects += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_connected": self.last_connected.isoformat() if self.last_connected else None,
            "consecutive_failures": self.consecutive_failures,
            "total_reconnects": self.total_reconnects,
            "frames_received": self.frames_received,
            "frames_dropped": self.frames_dropped,
            "last_error": self.last_error,
        }


async def open_websocket(url: str, headers: Dict[str, str]) -> Any:
    """Default connector: a websockets client connection"""
    return await websocket_connect(url, additional_headers=headers or None)


class ConnectionManager:
    """
    Single live connection with fixed-delay reconnect.

    Lifecycle:
        connect() -> CONNECTING -> (open) CONNECTED -> (error) DISCONNECTED
        (close) DISCONNECTED + one reconnect timer -> connect() ...
        close() releases the socket and the timer together.

    All methods must be called from the running event loop.
    """

    def __init__(
        self,
        url: str,
        connector: Optional[Connector] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        headers_provider: Optional[HeadersProvider] = None,
    ):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.health = ConnectionHealth()

        self._connector = connector or open_websocket
        self._headers_provider = headers_provider
        self._state = ConnectionState.DISCONNECTED
        self._socket: Optional[Any] = None
        self._connection_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._generation = 0
        self._torn_down = False

        self._open_callbacks: List[OpenCallback] = []
        self._frame_callbacks: List[FrameCallback] = []
        self._state_callbacks: List[StateCallback] = []

    # ========== State ==========

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def has_pending_reconnect(self) -> bool:
        return self._reconnect_handle is not None

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        logger.info(f"Live connection {previous.value} -> {state.value}")
        for callback in list(self._state_callbacks):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Connection state callback error: {e}")

    # ========== Callbacks ==========

    def on_open(self, callback: OpenCallback) -> None:
        """Register coroutine run after each successful open"""
        self._open_callbacks.append(callback)

    def on_frame(self, callback: FrameCallback) -> None:
        """Register callback for validated message pushes"""
        self._frame_callbacks.append(callback)

    def on_state_change(self, callback: StateCallback) -> None:
        """Register callback for connection state changes"""
        self._state_callbacks.append(callback)

    # ========== Lifecycle ==========

    def connect(self) -> asyncio.Task:
        """
        Open a fresh live connection.

        Cancels any pending reconnect timer and releases the previous
        connection first, so repeated calls never leave more than one
        connection or timer behind.

        Returns:
            The task driving the new connection
        """
        self._cancel_reconnect()
        self._release_connection()
        self._torn_down = False

        self._generation += 1
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"Connecting to {self.url}")
        self._connection_task = asyncio.create_task(self._run(self._generation))
        return self._connection_task

    async def close(self) -> None:
        """Tear down: release the socket and any pending reconnect timer"""
        self._torn_down = True
        self._cancel_reconnect()

        task = self._connection_task
        self._release_connection()
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Live connection closed")

    def _release_connection(self) -> None:
        """Cancel the current connection task; its socket is closed by the task"""
        task = self._connection_task
        self._connection_task = None
        self._socket = None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self, generation: int) -> None:
        socket = None
        try:
            socket = await self._connector(self.url, self._headers())
            self._socket = socket
            await self._handle_open()
            async for raw in socket:
                self._handle_data(raw)
        except asyncio.CancelledError:
            # Released by connect()/close(); no reconnect from here
            await self._close_socket(socket)
            raise
        except Exception as e:
            self._handle_error(e)

        await self._close_socket(socket)
        self._handle_close(generation)

    def _headers(self) -> Dict[str, str]:
        if self._headers_provider is None:
            return {}
        return self._headers_provider()

    async def _close_socket(self, socket: Optional[Any]) -> None:
        if socket is None:
            return
        try:
            await socket.close()
        except Exception as e:
            logger.debug(f"Error closing websocket: {e}")

    # ========== Events ==========

    async def _handle_open(self) -> None:
        self.health.record_open()
        self._set_state(ConnectionState.CONNECTED)
        for callback in list(self._open_callbacks):
            try:
                await callback()
            except Exception as e:
                logger.error(f"Connection open callback error: {e}")

    def _handle_data(self, raw: Union[str, bytes]) -> None:
        self.health.frames_received += 1
        try:
            frame = parse_frame(raw)
        except FrameError as e:
            self.health.frames_dropped += 1
            logger.warning(f"Dropping malformed frame: {e.message}")
            return

        if not isinstance(frame, MessageFrame):
            self.health.frames_dropped += 1
            logger.debug(f"Ignoring frame of type {frame.type!r}")
            return

        for callback in list(self._frame_callbacks):
            try:
                callback(frame)
            except Exception as e:
                logger.error(f"Frame callback error: {e}")

    def _handle_error(self, error: Exception) -> None:
        logger.warning(f"Live connection error: {error}")
        self.health.record_failure(str(error))
        self._set_state(ConnectionState.DISCONNECTED)

    def _handle_close(self, generation: int) -> None:
        if generation != self._generation or self._torn_down:
            return
        self._socket = None
        self._connection_task = None
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect()

    # ========== Reconnect ==========

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._fire_reconnect)
        logger.info(f"Reconnect scheduled in {self.reconnect_delay}s")

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
            logger.debug("Pending reconnect cancelled")

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if self._torn_down:
            return
        self.health.record_reconnect()
        logger.info("Reconnecting...")
        self.connect()

    # ========== Outbound ==========

    async def send(self, frame: OutboundFrame) -> bool:
        """
        Send a frame over the live connection.

        Frames are dropped, not queued, while not connected.

        Returns:
            True if the frame was handed to the socket
        """
        socket = self._socket
        if self._state is not ConnectionState.CONNECTED or socket is None:
            logger.debug(f"Not connected, dropping outbound {frame.type} frame")
            return False

        try:
            await socket.send(frame.encode())
        except Exception as e:
            logger.warning(f"Failed to send {frame.type} frame: {e}")
            self._handle_error(e)
            # Ends the read loop, which schedules the reconnect
            await self._close_socket(socket)
            return False

        logger.debug(f"Sent {frame.type} frame for conversation {frame.conversation_id!r}")
        return True

    def get_status(self) -> Dict[str, Any]:
        """Connectivity summary for status displays"""
        return {
            "url": self.url,
            "state": self._state.value,
            "reconnect_pending": self.has_pending_reconnect,
            "reconnect_delay": self.reconnect_delay,
            "health": self.health.to_dict(),
        }
