"""wabot entry point."""

import asyncio
import logging
import signal

from wabot.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


async def run() -> None:
    """Start the bot and run until SIGINT/SIGTERM or an unhandled loop error."""
    from wabot.bot.app import WhatsAppBotApp

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(stop_event.set))

    def _on_loop_error(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        logger.error(
            "Unhandled error in event loop: %s",
            context.get("message", "unknown"),
            exc_info=context.get("exception"),
        )
        stop_event.set()

    loop.set_exception_handler(_on_loop_error)

    app = WhatsAppBotApp()
    try:
        await app.start()
        logger.info("%s is running; press Ctrl+C to stop", settings.bot_name)
        await stop_event.wait()
    finally:
        await app.stop()


def main() -> None:
    """Run the bot until interrupted."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
