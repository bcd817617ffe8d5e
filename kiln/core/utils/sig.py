import asyncio
import contextlib
import signal
import sys
import threading
from collections.abc import Callable
from typing import Generator

SHUTDOWN_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGINT,
    signal.SIGTERM,
)

if hasattr(signal, "SIGUSR2"):
    SHUTDOWN_SIGNALS += (signal.SIGUSR2,)

if sys.platform == "win32":
    SHUTDOWN_SIGNALS += (signal.SIGBREAK,)


@contextlib.contextmanager
def signal_handler(
    loop: asyncio.AbstractEventLoop,
    handler: Callable[[signal.Signals], None],
) -> Generator[None, None, None]:
    """Route shutdown signals to ``handler`` on the loop for the duration of the block."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    installed: list[signal.Signals] = []
    original_handlers = {}

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, handler, sig)
            installed.append(sig)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            original_handlers[sig] = signal.signal(
                sig, lambda s, _: loop.call_soon_threadsafe(handler, signal.Signals(s))
            )

    try:
        yield
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        for sig, old in original_handlers.items():
            signal.signal(sig, old)
