"""Uplink worker service for Redis Stream -> evaluation.

Consumes uplinks from the "uplink:stream" Redis Stream with a consumer
group, evaluates each read batch through the UplinkProcessor and
acknowledges the messages once evaluated.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import structlog
import redis.asyncio as aioredis

from lorawatch.engine.protocols import UplinkEvent
from lorawatch.services.uplink_ingestion_service import STREAM_NAME, message_to_event

if TYPE_CHECKING:
    from lorawatch.services.uplink_processor import UplinkProcessor

logger = structlog.get_logger()

GROUP_NAME = "uplink-workers"


class UplinkWorkerService:
    """Consumes uplinks from Redis Streams and evaluates them."""

    def __init__(
        self,
        redis_client: aioredis.Redis,
        processor: UplinkProcessor,
        num_workers: int = 2,
        read_count: int = 50,
        block_ms: int = 1000,
    ):
        self.redis = redis_client
        self.processor = processor
        self.num_workers = num_workers
        self.read_count = read_count
        self.block_ms = block_ms
        self._running = False
        self._worker_tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start worker pool consuming from Redis Stream."""
        self._running = True

        try:
            await self.redis.xgroup_create(STREAM_NAME, GROUP_NAME, id="0", mkstream=True)
        except aioredis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

        for i in range(self.num_workers):
            task = asyncio.create_task(
                self._worker_loop(worker_id=i),
                name=f"uplink-worker-{i}",
            )
            self._worker_tasks.append(task)

        logger.info("Uplink worker pool started", num_workers=self.num_workers)

    async def stop(self) -> None:
        """Stop worker pool gracefully."""
        self._running = False

        for task in self._worker_tasks:
            task.cancel()

        for task in self._worker_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._worker_tasks.clear()
        logger.info("Uplink worker pool stopped")

    async def _worker_loop(self, worker_id: int) -> None:
        """Main consumer loop for a single worker."""
        consumer_name = f"worker-{worker_id}"
        logger.info("Uplink worker started", worker_id=worker_id)

        while self._running:
            try:
                messages = await self.redis.xreadgroup(
                    groupname=GROUP_NAME,
                    consumername=consumer_name,
                    streams={STREAM_NAME: ">"},
                    count=self.read_count,
                    block=self.block_ms,
                )
                if messages:
                    await self.process_messages(messages, worker_id)

            except asyncio.CancelledError:
                logger.info("Uplink worker cancelled", worker_id=worker_id)
                raise
            except Exception as e:
                logger.error("Worker error", worker_id=worker_id, error=str(e))
                await asyncio.sleep(1)

    @staticmethod
    def parse_messages(messages: list) -> tuple[list[bytes | str], list[UplinkEvent]]:
        """Extract message ids and events from an XREADGROUP reply.

        Unparseable entries are logged and returned with their id so they are
        acknowledged instead of redelivered forever.
        """
        ids: list[bytes | str] = []
        events: list[UplinkEvent] = []

        for _stream, msg_list in messages:
            for msg_id, msg_data in msg_list:
                ids.append(msg_id)
                # Handle both bytes and string keys
                raw_payload = msg_data.get(b"payload") or msg_data.get("payload")
                if not raw_payload:
                    continue
                if isinstance(raw_payload, bytes):
                    raw_payload = raw_payload.decode()
                try:
                    events.append(message_to_event(json.loads(raw_payload)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning("Dropping unparseable uplink message", msg_id=str(msg_id), error=str(e))

        return ids, events

    async def process_messages(self, messages: list, worker_id: int) -> None:
        """Evaluate one read batch and acknowledge it."""
        ids, events = self.parse_messages(messages)

        if events:
            # handle() never raises; failed devices are dead-lettered
            results = await self.processor.process_batch(events)
            logger.info(
                "Uplink batch evaluated",
                worker_id=worker_id,
                messages=len(ids),
                evaluated=sum(1 for r in results if r.outcome.value == "evaluated"),
            )

        if ids:
            await self.redis.xack(STREAM_NAME, GROUP_NAME, *ids)
