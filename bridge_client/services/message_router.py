"""
Inbound frame router.
Decodes socket messages and applies the per-topic reconciliation rule to the cache.
"""

import time
import logging
from typing import Any, Dict, List, Optional, Union

from bridge_client.errors import DecodeError, create_structured_error_response
from bridge_client.schemas.frames import (
    AccountInfoFrame,
    ConnectionStatusFrame,
    InboundFrame,
    PingFrame,
    PositionListFrame,
    SignalFrame,
    StatsFrame,
    TradeFrame,
    decode_frame,
)
from bridge_client.services import cache_store
from bridge_client.services.cache_store import CacheStore

logger = logging.getLogger("message_router")

LIST_LIMIT = 50

class MessageRouter:
    """Routes decoded frames into the cache. Last write wins per topic."""

    def __init__(self, cache: CacheStore, list_limit: int = LIST_LIMIT):
        self.cache = cache
        self.list_limit = list_limit

        self._handlers = {
            SignalFrame: self._apply_signal,
            TradeFrame: self._apply_trade,
            StatsFrame: self._apply_stats,
            ConnectionStatusFrame: self._apply_connection_status,
            AccountInfoFrame: self._apply_account_info,
            PositionListFrame: self._apply_position_list,
            PingFrame: self._apply_ping,
        }

        # Health metrics
        self.frames_processed = 0
        self.decode_errors = 0
        self.last_frame_ts = 0.0
        self.frames_by_type: Dict[str, int] = {}

    def route(self, raw: Union[str, bytes]) -> Optional[InboundFrame]:
        """
        Decode and apply one raw message.

        Malformed frames are logged and dropped; they never raise.

        Returns:
            The applied frame, or None if it was dropped
        """
        try:
            frame = decode_frame(raw)
            self.apply(frame)
        except DecodeError as e:
            self.decode_errors += 1
            logger.error(f"[router] Dropped frame: {e.message}", extra={"evt": "frame_dropped", "error": create_structured_error_response(e)})
            return None

        self.frames_processed += 1
        self.last_frame_ts = time.time()
        self.frames_by_type[frame.type] = self.frames_by_type.get(frame.type, 0) + 1
        return frame

    def apply(self, frame: InboundFrame) -> None:
        """Apply a decoded frame to the cache."""
        handler = self._handlers.get(type(frame))
        if handler is None:
            raise DecodeError(f"No reconciliation rule for frame {type(frame).__name__}")
        handler(frame)

    def _apply_signal(self, frame: SignalFrame) -> None:
        signal = frame.data

        def upsert(old: Optional[List[Dict[str, Any]]]):
            old = old or []
            for index, existing in enumerate(old):
                if existing.get("id") == signal["id"]:
                    updated = list(old)
                    updated[index] = signal
                    return updated[:self.list_limit]
            return [signal, *old][:self.list_limit]

        self.cache.update(cache_store.SIGNALS, upsert)
        logger.debug(f"[router] Signal {signal['id']} upserted")

    def _apply_trade(self, frame: TradeFrame) -> None:
        self.cache.update(
            cache_store.TRADES,
            lambda old: [frame.data, *(old or [])][:self.list_limit]
        )

    def _apply_stats(self, frame: StatsFrame) -> None:
        self.cache.set(cache_store.STATS, dict(frame.data))

    def _apply_connection_status(self, frame: ConnectionStatusFrame) -> None:
        is_connected = frame.data.isConnected

        def merge(old: Optional[Dict[str, Any]]):
            return {**(old or {}), "isConnected": is_connected}

        self.cache.update(cache_store.STATS, merge)
        logger.info(f"[router] Bridge connection status: isConnected={is_connected}")

    def _apply_account_info(self, frame: AccountInfoFrame) -> None:
        self.cache.set(cache_store.ACCOUNT, dict(frame.data))

    def _apply_position_list(self, frame: PositionListFrame) -> None:
        self.cache.set(cache_store.POSITIONS, list(frame.data))

    def _apply_ping(self, frame: PingFrame) -> None:
        logger.debug("[router] Ping received (no cache effect)")

    def get_stats(self) -> Dict[str, Any]:
        """Get router statistics."""
        return {
            "frames_processed": self.frames_processed,
            "decode_errors": self.decode_errors,
            "frames_by_type": dict(self.frames_by_type),
            "last_frame_ts": self.last_frame_ts,
        }
