"""
Connection lifecycle state machine.

The whole lifecycle is one transition table: (state, event) -> (next state,
effects). ConnectionManager fires events and executes the returned effects;
anything not in the table raises IllegalTransitionError.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from bridge_client.errors import IllegalTransitionError

logger = logging.getLogger("connection_state")


class ConnectionState(str, Enum):
    """Connection state enumeration."""
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionEvent(str, Enum):
    """Events that drive the connection lifecycle."""
    CONNECT = "connect"
    HANDSHAKE_OK = "handshake_ok"
    SOCKET_ERROR = "socket_error"
    SERVER_CLOSE = "server_close"
    SHUTDOWN = "shutdown"


class Effect(str, Enum):
    """Side effects the manager runs after a transition, in table order."""
    OPEN_SOCKET = "open_socket"
    START_KEEPALIVE = "start_keepalive"
    STOP_KEEPALIVE = "stop_keepalive"
    SCHEDULE_RECONNECT = "schedule_reconnect"
    CANCEL_RECONNECT = "cancel_reconnect"
    CLOSE_SOCKET = "close_socket"


_TEARDOWN = (Effect.CANCEL_RECONNECT, Effect.STOP_KEEPALIVE, Effect.CLOSE_SOCKET)

TRANSITIONS: Dict[Tuple[ConnectionState, ConnectionEvent], Tuple[ConnectionState, Tuple[Effect, ...]]] = {
    (ConnectionState.IDLE, ConnectionEvent.CONNECT): (ConnectionState.CONNECTING, (Effect.OPEN_SOCKET,)),
    (ConnectionState.CLOSED, ConnectionEvent.CONNECT): (
        ConnectionState.CONNECTING, (Effect.CANCEL_RECONNECT, Effect.OPEN_SOCKET)
    ),

    (ConnectionState.CONNECTING, ConnectionEvent.HANDSHAKE_OK): (ConnectionState.OPEN, (Effect.START_KEEPALIVE,)),
    (ConnectionState.CONNECTING, ConnectionEvent.SOCKET_ERROR): (ConnectionState.CLOSED, (Effect.SCHEDULE_RECONNECT,)),
    (ConnectionState.CONNECTING, ConnectionEvent.SERVER_CLOSE): (ConnectionState.CLOSED, (Effect.SCHEDULE_RECONNECT,)),

    (ConnectionState.OPEN, ConnectionEvent.SOCKET_ERROR): (
        ConnectionState.CLOSED, (Effect.STOP_KEEPALIVE, Effect.SCHEDULE_RECONNECT)
    ),
    (ConnectionState.OPEN, ConnectionEvent.SERVER_CLOSE): (
        ConnectionState.CLOSED, (Effect.STOP_KEEPALIVE, Effect.SCHEDULE_RECONNECT)
    ),

    # Teardown is legal from anywhere and always runs every cleanup effect
    (ConnectionState.IDLE, ConnectionEvent.SHUTDOWN): (ConnectionState.IDLE, _TEARDOWN),
    (ConnectionState.CONNECTING, ConnectionEvent.SHUTDOWN): (ConnectionState.IDLE, _TEARDOWN),
    (ConnectionState.OPEN, ConnectionEvent.SHUTDOWN): (ConnectionState.IDLE, _TEARDOWN),
    (ConnectionState.CLOSED, ConnectionEvent.SHUTDOWN): (ConnectionState.IDLE, _TEARDOWN),
}


@dataclass(frozen=True)
class Transition:
    """One applied transition."""
    previous: ConnectionState
    event: ConnectionEvent
    state: ConnectionState
    effects: Tuple[Effect, ...]
    ts: float = field(default_factory=time.time)


TransitionListener = Callable[[Transition], None]


class ConnectionStateMachine:
    """Holds the current connection state and applies the transition table."""

    def __init__(self, initial: ConnectionState = ConnectionState.IDLE):
        self.state = initial
        self.history: List[Transition] = []
        self._listeners: List[TransitionListener] = []

    def can_fire(self, event: ConnectionEvent) -> bool:
        return (self.state, event) in TRANSITIONS

    def fire(self, event: ConnectionEvent) -> Transition:
        """
        Apply an event to the current state.

        Returns:
            The transition, whose effects the caller must execute

        Raises:
            IllegalTransitionError: If the event is not allowed in the current state
        """
        key = (self.state, event)
        if key not in TRANSITIONS:
            raise IllegalTransitionError(
                f"Event {event.value} not allowed in state {self.state.value}",
                details={"state": self.state.value, "event": event.value}
            )

        next_state, effects = TRANSITIONS[key]
        transition = Transition(previous=self.state, event=event, state=next_state, effects=effects)
        self.state = next_state

        # Keep only recent history
        self.history.append(transition)
        if len(self.history) > 100:
            self.history = self.history[-100:]

        logger.debug(f"[connection] {transition.previous.value} --{event.value}--> {next_state.value}")
        for listener in list(self._listeners):
            listener(transition)
        return transition

    def require(self, state: ConnectionState) -> None:
        """Assert the machine is in `state`."""
        if self.state is not state:
            raise IllegalTransitionError(
                f"Expected state {state.value}, current state is {self.state.value}",
                details={"expected": state.value, "state": self.state.value}
            )

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    @property
    def last_transition(self) -> Optional[Transition]:
        return self.history[-1] if self.history else None
