import asyncio
import logging


class ShutdownTrigger:
    """
    Records the first reason to stop the process.

    Signals and error hooks may fire repeatedly; only the first one starts the
    shutdown sequence, later ones are logged and dropped.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None
        self._logger = logging.getLogger("kiln.core.lifecycle")

    @property
    def fired(self) -> bool:
        return self.reason is not None

    def fire(self, reason: str) -> None:
        if self.reason is not None:
            self._logger.warning(f"{reason} received while already shutting down ({self.reason}), ignored.")
            return

        self.reason = reason
        self._event.set()

    async def wait(self) -> str:
        await self._event.wait()
        return self.reason  # type: ignore[return-value]
