"""Background scheduler for time-triggered automation rules."""

import asyncio
from datetime import datetime

import structlog

from lorawatch.engine.protocols import Clock
from lorawatch.engine.schedule import SystemClock
from lorawatch.services.automation_service import AutomationService

logger = structlog.get_logger()


class TimeTriggerService:
    """Evaluates time rules once per local minute."""

    def __init__(
        self,
        automation_service: AutomationService,
        clock: Clock | None = None,
        interval: float = 20.0,
    ):
        self.automation_service = automation_service
        self.clock = clock or SystemClock()
        self.interval = interval
        self._task: asyncio.Task | None = None
        self._last_minute: datetime | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop(), name="time-trigger")
        logger.info("Time trigger service started", interval=self.interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Time trigger service stopped")

    async def tick(self) -> int:
        """Run time rules for the current minute unless it already ran.

        Returns the number of rules that triggered.
        """
        now = self.clock.now()
        minute = now.replace(second=0, microsecond=0)
        if minute == self._last_minute:
            return 0

        # A failed run leaves the minute open for the next poll
        outcomes = await self.automation_service.run_time_rules(now)
        self._last_minute = minute
        if outcomes:
            logger.info("Time rules triggered", count=len(outcomes), minute=minute.isoformat())
        return len(outcomes)

    async def _loop(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Time trigger evaluation failed", error=str(e))
            await asyncio.sleep(self.interval)
