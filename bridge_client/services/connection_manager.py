"""
Persistent WebSocket connection to the trading bridge.
Owns the socket, the fixed-delay reconnect timer and the keepalive ping task;
all lifecycle decisions go through the connection state machine.
"""

import asyncio
import logging
import time
import websockets
from websockets.exceptions import ConnectionClosed
from typing import Any, Callable, Dict, Optional, Union

from bridge_client.errors import NotConnectedError, SocketError
from bridge_client.schemas.frames import OutboundFrame, PingCommand, encode_frame
from bridge_client.services.connection_state import (
    ConnectionEvent,
    ConnectionState,
    ConnectionStateMachine,
    Effect,
    Transition,
)

logger = logging.getLogger("connection_manager")

RECONNECT_DELAY = 3.0  # seconds, fixed
KEEPALIVE_INTERVAL = 25.0  # seconds

MessageHandler = Callable[[Union[str, bytes]], Any]

class ConnectionManager:
    """One outbound WebSocket with reconnect-forever and keepalive pings."""

    def __init__(
        self,
        url: str,
        on_message: MessageHandler,
        reconnect_delay: float = RECONNECT_DELAY,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        connector: Optional[Callable[..., Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.url = url
        self.on_message = on_message
        self.reconnect_delay = reconnect_delay
        self.keepalive_interval = keepalive_interval
        self._connector = connector or websockets.connect
        self._clock = clock

        self.fsm = ConnectionStateMachine()
        self.fsm.add_listener(self._on_transition)
        self.ws = None
        self._opened = asyncio.Event()

        # Handles owned exclusively by this manager
        self._connection_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None

        self._effects = {
            Effect.OPEN_SOCKET: self._open_socket,
            Effect.START_KEEPALIVE: self._start_keepalive,
            Effect.STOP_KEEPALIVE: self._stop_keepalive,
            Effect.SCHEDULE_RECONNECT: self._schedule_reconnect,
            Effect.CANCEL_RECONNECT: self._cancel_reconnect,
            Effect.CLOSE_SOCKET: self._close_socket,
        }

        # Health metrics
        self.connect_attempts = 0
        self.reconnect_count = 0
        self.pings_sent = 0
        self.frames_sent = 0
        self.frames_received = 0
        self.error_count = 0
        self.last_frame_ts = 0.0
        self.last_error: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self.fsm.state

    @property
    def is_open(self) -> bool:
        return self.fsm.state is ConnectionState.OPEN and self.ws is not None

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None

    def connect(self) -> None:
        """Start a connection attempt. Only legal from IDLE or CLOSED."""
        self._fire(ConnectionEvent.CONNECT)

    async def stop(self) -> None:
        """Tear down timers, keepalive and socket. Safe to call repeatedly."""
        pending = [
            task for task in (self._connection_task, self._keepalive_task)
            if task is not None and not task.done()
        ]
        self._fire(ConnectionEvent.SHUTDOWN)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self.ws = None
        logger.info("[connection] Stopped", extra={"evt": "ws_stopped"})

    async def wait_open(self, timeout: Optional[float] = None) -> bool:
        """Wait until the connection is OPEN. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._opened.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def send(self, frame: OutboundFrame) -> None:
        """
        Send one outbound frame.

        Raises:
            NotConnectedError: If the connection is not OPEN or the socket
                closed underneath the send
        """
        if not self.is_open:
            raise NotConnectedError(details={"state": self.state.value})

        try:
            await self.ws.send(encode_frame(frame))
        except ConnectionClosed as e:
            raise NotConnectedError(f"Socket closed during send: {e}") from e

        self.frames_sent += 1

    def _fire(self, event: ConnectionEvent) -> Transition:
        transition = self.fsm.fire(event)
        for effect in transition.effects:
            self._effects[effect]()
        return transition

    def _on_transition(self, transition: Transition) -> None:
        if transition.state is ConnectionState.OPEN:
            self._opened.set()
        else:
            self._opened.clear()

    # Effects

    def _open_socket(self) -> None:
        self.connect_attempts += 1
        self._connection_task = asyncio.create_task(self._run_connection(), name="bridge-connection")

    def _start_keepalive(self) -> None:
        self.fsm.require(ConnectionState.OPEN)
        self._stop_keepalive()
        self._keepalive_task = asyncio.create_task(self._keepalive_loop(), name="bridge-keepalive")

    def _stop_keepalive(self) -> None:
        if self._keepalive_task is not None and not self._keepalive_task.done():
            self._keepalive_task.cancel()
        self._keepalive_task = None

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._reconnect_due)
        logger.info(
            f"[connection] Reconnecting in {self.reconnect_delay}s",
            extra={"evt": "ws_reconnect_scheduled", "delay_s": self.reconnect_delay}
        )

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
        self._reconnect_handle = None

    def _close_socket(self) -> None:
        task = self._connection_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            # Cancelling unwinds `async with connect(...)`, which closes the socket
            task.cancel()
        self._connection_task = None

    # Tasks and timer callbacks

    def _reconnect_due(self) -> None:
        self._reconnect_handle = None
        if not self.fsm.can_fire(ConnectionEvent.CONNECT):
            logger.warning(f"[connection] Reconnect skipped in state {self.state.value}")
            return
        self.reconnect_count += 1
        logger.info("[connection] Attempting to reconnect...")
        self.connect()

    async def _run_connection(self) -> None:
        logger.info(f"[connection] Connecting to WebSocket: {self.url}")
        try:
            async with self._connector(self.url, ping_interval=None, close_timeout=10) as ws:
                self.ws = ws
                self._fire(ConnectionEvent.HANDSHAKE_OK)
                logger.info("[connection] WebSocket connected", extra={"evt": "ws_open"})

                async for raw_message in ws:
                    self.frames_received += 1
                    self.last_frame_ts = time.time()
                    self.on_message(raw_message)

        except asyncio.CancelledError:
            self.ws = None
            raise
        except Exception as e:
            self.ws = None
            self.error_count += 1
            error = SocketError(str(e) or type(e).__name__, details={"exception": type(e).__name__})
            self.last_error = error.message
            logger.error(
                f"[connection] WebSocket error: {error.message}",
                extra={"evt": "ws_error", "details": error.details}
            )
            self._fire(ConnectionEvent.SOCKET_ERROR)
            return

        self.ws = None
        logger.info("[connection] WebSocket disconnected", extra={"evt": "ws_close"})
        self._fire(ConnectionEvent.SERVER_CLOSE)

    async def _keepalive_loop(self) -> None:
        while True:
            await asyncio.sleep(self.keepalive_interval)
            if not self.is_open:
                return

            try:
                await self.send(PingCommand(timestamp=int(self._clock() * 1000)))
            except NotConnectedError as e:
                logger.debug(f"[connection] Keepalive stopped: {e.message}")
                return

            self.pings_sent += 1
            logger.debug(f"[connection] Sent keepalive ping (total: {self.pings_sent})")

    def last_frame_s_ago(self) -> float:
        """Get seconds since last inbound frame."""
        if self.last_frame_ts == 0:
            return 999.0
        return time.time() - self.last_frame_ts

    def get_health_metrics(self) -> Dict[str, Any]:
        """Get connection health metrics."""
        return {
            "state": self.state.value,
            "url": self.url,
            "connect_attempts": self.connect_attempts,
            "reconnects": self.reconnect_count,
            "reconnect_scheduled": self.reconnect_scheduled,
            "pings_sent": self.pings_sent,
            "frames_sent": self.frames_sent,
            "frames_received": self.frames_received,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_frame_s_ago": round(self.last_frame_s_ago(), 1),
        }
