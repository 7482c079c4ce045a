"""
Outbound user commands.
Gates close-position requests on the pending tracker and the connection state,
and turns their outcome into user-facing notices.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from pydantic import ValidationError

from bridge_client.errors import (
    ERROR_TO_NOTICE_VARIANT,
    AlreadyPendingError,
    BridgeClientError,
    InvalidCommandError,
    NotConnectedError,
)
from bridge_client.schemas.frames import ClosePositionCommand
from bridge_client.protocols import CommandChannel
from bridge_client.services.pending_actions import PendingAction, PendingActionTracker

logger = logging.getLogger("action_dispatcher")

@dataclass(frozen=True)
class Notice:
    """Non-fatal user notification."""
    title: str
    description: str
    variant: str = "default"  # "default" | "warning" | "error"

NOTICE_SENT = Notice("Position closing", "Close command sent to MT5")

_NOTICE_TITLES = {
    AlreadyPendingError: "Already closing",
    NotConnectedError: "Error",
    InvalidCommandError: "Invalid ticket",
}

def create_notice(error: BridgeClientError) -> Notice:
    """Convert a command failure into a user notice."""
    return Notice(
        title=_NOTICE_TITLES.get(type(error), "Error"),
        description=error.message,
        variant=ERROR_TO_NOTICE_VARIANT.get(type(error), "error"),
    )

Notifier = Callable[[Notice], None]

class ActionDispatcher:
    """Sends close-position commands with duplicate and connection gating."""

    def __init__(
        self,
        connection: CommandChannel,
        tracker: PendingActionTracker,
        notifier: Optional[Notifier] = None,
    ):
        self.connection = connection
        self.tracker = tracker
        self.notifier = notifier
        self.notices: List[Notice] = []
        self.commands_sent = 0

    async def request_close(self, ticket: str) -> PendingAction:
        """
        Send a close_position command for ticket.

        Args:
            ticket: Position ticket, passed through unmodified

        Returns:
            The PendingAction recorded for the ticket

        Raises:
            AlreadyPendingError: If a close for ticket is already in flight
            NotConnectedError: If the connection is not OPEN
            InvalidCommandError: If ticket is not a usable ticket string
        """
        if self.tracker.is_pending(ticket):
            raise AlreadyPendingError(details={"ticket": ticket})

        if not self.connection.is_open:
            raise NotConnectedError(details={"ticket": ticket, "state": self.connection.state.value})

        try:
            command = ClosePositionCommand(ticket=ticket)
        except ValidationError as e:
            raise InvalidCommandError(
                f"Invalid ticket: {e.errors()[0]['msg']}",
                details={"ticket": ticket},
            ) from e

        # Recorded before the send so a concurrent request sees it
        action = self.tracker.add(ticket)
        try:
            await self.connection.send(command)
        except NotConnectedError:
            self.tracker.resolve(ticket)
            raise

        self.commands_sent += 1
        logger.info(f"[dispatcher] Close command sent for ticket {ticket}", extra={"evt": "close_sent"})
        return action

    async def close_position(self, ticket: str) -> Notice:
        """UI entry point: request a close and publish the outcome as a notice."""
        try:
            await self.request_close(ticket)
            notice = NOTICE_SENT
        except (AlreadyPendingError, NotConnectedError, InvalidCommandError) as e:
            logger.warning(f"[dispatcher] Close for {ticket} rejected: {e.error_code}")
            notice = create_notice(e)

        self._publish(notice)
        return notice

    def _publish(self, notice: Notice) -> None:
        self.notices.append(notice)
        if len(self.notices) > 50:
            self.notices = self.notices[-50:]

        if self.notifier is None:
            return
        try:
            self.notifier(notice)
        except Exception as e:
            logger.error(f"[dispatcher] Notifier failed: {e}")
