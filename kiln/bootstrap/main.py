import argparse
import asyncio
import logging
import signal
import sys
import threading

from kiln.bootstrap.builder import Context, ContextBuilder
from kiln.bootstrap.config.loader import get_cli_args, get_env_file
from kiln.bootstrap.config.settings import Settings, load_settings
from kiln.core.exception import ConfigError
from kiln.core.lifecycle import ShutdownTrigger
from kiln.core.utils.log import setup_logging
from kiln.core.utils.sig import signal_handler

logger = logging.getLogger("kiln.bootstrap.main")


async def serve(context: Context) -> int:
    """Start the server, wait for a termination trigger, shut down. Returns the exit code."""
    loop = asyncio.get_running_loop()
    server = context.server
    trigger = ShutdownTrigger()

    def on_signal(sig: signal.Signals) -> None:
        trigger.fire(sig.name)

    def on_loop_error(_: asyncio.AbstractEventLoop, ctx: dict) -> None:
        logger.error(f"Unhandled error: {ctx.get('message')}", exc_info=ctx.get("exception"))
        trigger.fire("UNHANDLED_REJECTION")

    def on_thread_error(args: threading.ExceptHookArgs) -> None:
        logger.error(
            f"Uncaught exception in thread {args.thread.name if args.thread else '?'}",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        loop.call_soon_threadsafe(trigger.fire, "UNCAUGHT_EXCEPTION")

    previous_loop_handler = loop.get_exception_handler()
    previous_thread_hook = threading.excepthook
    loop.set_exception_handler(on_loop_error)
    threading.excepthook = on_thread_error

    try:
        with signal_handler(loop, on_signal):
            try:
                await server.init()
                await server.start()
                logger.info("Server started")
            except Exception as exc:
                logger.error(f"Failed to start: {exc}", exc_info=exc)
                await _release_services(context)
                return 1

            reason = await trigger.wait()
            logger.info(f"{reason} received. Starting graceful shutdown...")

            try:
                await server.shutdown()
            except Exception as exc:
                logger.error(f"Graceful shutdown failed: {exc}", exc_info=exc)
                return 1

            logger.info("server closed.")
            return 0
    finally:
        loop.set_exception_handler(previous_loop_handler)
        threading.excepthook = previous_thread_hook


async def _release_services(context: Context) -> None:
    database = context.database
    if database is None or not database.initialized:
        return
    try:
        await database.close()
    except Exception as exc:
        logger.error(f"Error closing database pool after failed start: {exc}")


def configure(args: argparse.Namespace) -> Settings:
    """Load the settings, then install logging at the CLI level or LOG_LEVEL."""
    try:
        settings = load_settings(get_env_file(args))
    except ConfigError:
        setup_logging(args.log_level or "INFO")
        raise

    setup_logging(args.log_level or settings.log_level)
    return settings


def run(settings: Settings, loop: asyncio.AbstractEventLoop | None = None) -> int:
    if loop is None:
        loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        context = ContextBuilder(settings).build(loop)
        return loop.run_until_complete(serve(context))
    finally:
        try:
            _cancel_all_tasks(loop)
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            asyncio.set_event_loop(None)
            loop.close()


def _cancel_all_tasks(loop: asyncio.AbstractEventLoop) -> None:
    # a timed out shutdown leaves listener and handler tasks behind
    pending = asyncio.all_tasks(loop)
    if not pending:
        return

    for task in pending:
        task.cancel()
    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))


def entrypoint() -> None:
    args = get_cli_args(tuple(sys.argv[1:]))
    try:
        settings = configure(args)
    except ConfigError as exc:
        logger.error(str(exc))
        sys.exit(1)

    sys.exit(run(settings))
