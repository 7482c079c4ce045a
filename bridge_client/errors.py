"""
Centralized Exceptions
Error taxonomy for the bridge sync client and its mapping to user notices.
"""

from typing import Dict, Any, Optional


class BridgeClientError(Exception):
    """Base exception for the bridge sync client."""

    def __init__(self, message: str, error_code: str = "UNKNOWN", details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class DecodeError(BridgeClientError):
    """Inbound frame is malformed, unparseable, or carries an unknown tag."""

    def __init__(self, message: str = "Malformed frame", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DECODE_ERROR", details)


class SocketError(BridgeClientError):
    """Transport-level failure on the persistent connection."""

    def __init__(self, message: str = "Socket failure", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "SOCKET_ERROR", details)


class AlreadyPendingError(BridgeClientError):
    """A command for this key is already in flight."""

    def __init__(self, message: str = "Position is already being closed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "ALREADY_PENDING", details)


class NotConnectedError(BridgeClientError):
    """Command or frame attempted while the socket is not open."""

    def __init__(self, message: str = "WebSocket not connected", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_CONNECTED", details)


class InvalidCommandError(BridgeClientError):
    """Outbound command failed validation before anything was sent."""

    def __init__(self, message: str = "Invalid command", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_COMMAND", details)


class IllegalTransitionError(BridgeClientError):
    """Connection event not allowed in the current state."""

    def __init__(self, message: str = "Illegal state transition", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "ILLEGAL_TRANSITION", details)


class ConfigurationError(BridgeClientError):
    """Configuration error."""

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIG_ERROR", details)


# Command failures surfaced to the user, by notice variant
ERROR_TO_NOTICE_VARIANT = {
    AlreadyPendingError: "warning",
    NotConnectedError: "error",
    InvalidCommandError: "error",
}


def create_structured_error_response(error: Exception) -> Dict[str, Any]:
    """Create structured error payload for logging."""
    if isinstance(error, BridgeClientError):
        return {
            "error_type": error.error_code,
            "message": error.message,
            "details": error.details,
        }
    else:
        return {
            "error_type": "UNKNOWN_ERROR",
            "message": str(error),
            "details": {},
        }
