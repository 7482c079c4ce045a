"""
Wire frame schemas using Pydantic for validation and serialization.
Inbound frames form a tagged union on the `type` field; payloads are opaque
and kept exactly as the server sent them.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from bridge_client.errors import DecodeError


class _Frame(BaseModel):
    """Base for all wire frames (immutable once received)."""
    model_config = ConfigDict(frozen=True)


class SignalFrame(_Frame):
    """Trading signal created or updated on the server."""
    type: Literal["signal"]
    data: Dict[str, Any]

    @field_validator("data")
    def validate_identity(cls, v):
        """Signals are upserted by id, so one must be present."""
        if v.get("id") is None:
            raise ValueError("signal payload requires an 'id'")
        return v


class TradeFrame(_Frame):
    """Executed trade."""
    type: Literal["trade"]
    data: Dict[str, Any]


class StatsFrame(_Frame):
    """Full dashboard stats snapshot."""
    type: Literal["stats"]
    data: Dict[str, Any]


class ConnectionStatusPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    isConnected: bool = False

    @field_validator("isConnected", mode="before")
    def null_means_disconnected(cls, v):
        return False if v is None else v


class ConnectionStatusFrame(_Frame):
    """Bridge connection flag change."""
    type: Literal["connection_status"]
    data: ConnectionStatusPayload = Field(default_factory=ConnectionStatusPayload)

    @field_validator("data", mode="before")
    def default_missing_payload(cls, v):
        return {} if v is None else v


class AccountInfoFrame(_Frame):
    """Broker account snapshot."""
    type: Literal["account_info"]
    data: Dict[str, Any]


class PositionListFrame(_Frame):
    """Authoritative list of open positions."""
    type: Literal["position_list"]
    data: List[Dict[str, Any]]


class PingFrame(_Frame):
    type: Literal["ping"]
    timestamp: Optional[int] = None


InboundFrame = Annotated[
    Union[
        SignalFrame,
        TradeFrame,
        StatsFrame,
        ConnectionStatusFrame,
        AccountInfoFrame,
        PositionListFrame,
        PingFrame,
    ],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundFrame)


class ClosePositionCommand(_Frame):
    """Outbound request to close one position by ticket."""
    type: Literal["close_position"] = "close_position"
    ticket: str = Field(..., min_length=1, description="Broker ticket of the position to close")


class PingCommand(_Frame):
    """Outbound keepalive."""
    type: Literal["ping"] = "ping"
    timestamp: int = Field(..., description="Client time in ms epoch")


OutboundFrame = Union[ClosePositionCommand, PingCommand]


def decode_frame(raw: Union[str, bytes]) -> InboundFrame:
    """
    Decode one raw socket message into a typed frame.

    Args:
        raw: UTF-8 JSON text (or bytes) as received from the socket

    Returns:
        The matching frame variant

    Raises:
        DecodeError: If the message is not JSON, not an object, or does not
            match any known frame tag/shape
    """
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        message = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # ValueError covers bad UTF-8, bad JSON and oversized integer literals
        raise DecodeError(f"Unparseable frame: {type(e).__name__}: {e}"[:500]) from e

    if not isinstance(message, dict):
        raise DecodeError("Frame is not a JSON object", details={"kind": type(message).__name__})

    if not isinstance(message.get("type"), str):
        raise DecodeError("Frame has no string 'type' tag")

    try:
        return _inbound_adapter.validate_python(message)
    except ValidationError as e:
        raise DecodeError(
            f"Invalid '{message['type']}' frame",
            details={"tag": message["type"], "errors": e.errors(include_url=False)}
        ) from e


def encode_frame(frame: OutboundFrame) -> str:
    """Serialize an outbound frame to wire JSON."""
    return frame.model_dump_json()
