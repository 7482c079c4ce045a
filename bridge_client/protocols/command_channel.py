"""
Command Channel Protocol
Defines what the dispatcher needs from a connection.
"""

from typing import Protocol
from abc import abstractmethod

from bridge_client.schemas.frames import OutboundFrame
from bridge_client.services.connection_state import ConnectionState


class CommandChannel(Protocol):
    """Protocol for an outbound frame channel gated on connection state."""

    @property
    @abstractmethod
    def state(self) -> ConnectionState:
        """Current connection state."""
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Check if frames can be sent right now."""
        ...

    @abstractmethod
    async def send(self, frame: OutboundFrame) -> None:
        """Send one frame; raises NotConnectedError when not open."""
        ...
