"""Clearing bot entry point.

Run with: python -m src.bot
Exits non-zero on a process-fatal error (misconfiguration, wrong contract
addresses). SIGINT / SIGTERM stop the loop between ticks.
"""

import asyncio
import logging
import signal
import sys

import uvloop

from config.settings import settings
from src.ba_common.database import engine as db_engine
from src.ba_common.errors import AppError
from src.ba_common.redis_client import close_redis
from src.ba_engine.application.service import build_engine

logger = logging.getLogger("ba.bot")


async def run() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        clearing_engine = await build_engine()
        await clearing_engine.run_forever(stop)
    finally:
        await db_engine.dispose()
        await close_redis()


def main() -> int:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        uvloop.run(run())
    except AppError as exc:
        logger.critical("Fatal: [%d] %s", exc.code, exc.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
