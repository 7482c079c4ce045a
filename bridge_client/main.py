"""
Bridge sync client - command line entry point.

Keeps a local cache in sync with a trading-bridge server and logs every
change; optionally issues close-position commands once connected.
"""

import argparse
import asyncio
import json
import logging
from typing import List, Optional

from bridge_client.config import settings
from bridge_client.observability.logs import setup_logging
from bridge_client.services.action_dispatcher import Notice
from bridge_client.services.session import SyncSession

logger = logging.getLogger("bridge_client")

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Real-time sync client for the trading bridge")
    parser.add_argument("--origin", default=settings.BRIDGE_ORIGIN,
                        help="Page origin of the bridge server (default: %(default)s)")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds (default: run until interrupted)")
    parser.add_argument("--close", action="append", default=[], metavar="TICKET",
                        help="Close the position with this ticket once connected (repeatable)")
    parser.add_argument("--connect-timeout", type=float, default=30.0,
                        help="Seconds to wait for the socket before issuing --close commands")
    parser.add_argument("--log-level", default=settings.BRIDGE_LOG_LEVEL)
    parser.add_argument("--log-file", default=settings.BRIDGE_LOG_FILE or None)
    return parser.parse_args(argv)

def _log_cache_change(topic: str, value) -> None:
    if isinstance(value, list):
        logger.info(f"📊 {topic}: {len(value)} entries")
    else:
        logger.info(f"📊 {topic}: {json.dumps(value, default=str)}")

def _log_notice(notice: Notice) -> None:
    level = logging.INFO if notice.variant == "default" else logging.WARNING
    logger.log(level, f"🔔 {notice.title}: {notice.description}")

async def run(args: argparse.Namespace) -> None:
    session = SyncSession(origin=args.origin, notifier=_log_notice)
    session.cache.subscribe(_log_cache_change)

    async with session:
        if args.close:
            if await session.connection.wait_open(timeout=args.connect_timeout):
                for ticket in args.close:
                    await session.close_position(ticket)
            else:
                logger.error(f"Not connected after {args.connect_timeout}s, skipping close commands")

        if args.duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(args.duration)

        logger.info(f"Final health: {json.dumps(session.get_health_metrics(), default=str)}")

def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, session stopped")

if __name__ == "__main__":
    main()
