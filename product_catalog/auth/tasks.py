"""Periodic removal of expired sessions."""

from typing import Optional
import asyncio
import logging

from product_catalog.auth.middleware import SessionServiceFactory

logger = logging.getLogger(__name__)


class SessionSweeper:
    """
    Background task that calls SessionService.sweep_expired() on an interval.

    Lazy expiry on read already keeps expired sessions from resolving; the
    sweeper only bounds how long dead rows linger. An interval of zero or
    less disables it.
    """

    def __init__(self, session_service_factory: SessionServiceFactory, interval_seconds: float):
        self._session_service_factory = session_service_factory
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._interval <= 0:
            logger.info("Session sweeper disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        logger.info(f"Session sweeper started (every {self._interval:.0f}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session sweeper stopped")

    async def run_once(self) -> int:
        """Sweep now. Returns the number of sessions removed."""
        async with self._session_service_factory() as session_service:
            return await session_service.sweep_expired()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception:
                # Keep sweeping; the next tick retries
                logger.exception("Session sweep failed")
