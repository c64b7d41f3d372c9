"""Standalone event processor.

    python -m workforce.worker              # poll forever
    python -m workforce.worker --drain      # process what is pending, then exit

Several workers may run against the same database; event claims are atomic.
"""

import argparse
import asyncio
import logging
import signal

from workforce.agents.processor import EventProcessor
from workforce.agents.registry import build_default_registry
from workforce.config import configure_logging, settings
from workforce.database import init_db

logger = logging.getLogger(__name__)


async def drain(processor: EventProcessor) -> int:
    processed = 0
    await processor.sweep_stale()
    while await processor.process_next_event():
        processed += 1
    return processed


async def serve(interval: float, drain_only: bool) -> None:
    await init_db()
    processor = EventProcessor(build_default_registry())
    try:
        if drain_only:
            count = await drain(processor)
            logger.info("processed %d event(s)", count)
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, processor.stop)
            except NotImplementedError:
                pass  # Windows
        await processor.run(interval)
    finally:
        await processor.completion.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Restaurant agent event processor")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.EVENT_POLL_INTERVAL_SECONDS,
        help="Seconds to sleep when no events are pending",
    )
    parser.add_argument(
        "--drain", action="store_true", help="Process pending events once and exit"
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    args = parser.parse_args()

    configure_logging(args.log_level)
    asyncio.run(serve(args.interval, args.drain))


if __name__ == "__main__":
    main()
