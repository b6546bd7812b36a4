"""Uplink ingestion: validate and buffer decoded frames to a Redis Stream."""

import json
import re
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis
import structlog

from lorawatch.engine.protocols import UplinkEvent

logger = structlog.get_logger()

STREAM_NAME = "uplink:stream"
DEAD_LETTER_STREAM = "uplink:dead_letter"
STREAM_MAXLEN = 100000
DEDUP_TTL_SECONDS = 60

DEV_EUI_PATTERN = re.compile(r"^[0-9a-fA-F]{16}$")


class UplinkIngestionError(Exception):
    """Uplink validation or buffering error."""
    pass


def normalize_dev_eui(dev_eui: str) -> str:
    """Validate a 64-bit hex DevEUI and return it lowercased."""
    if not isinstance(dev_eui, str) or not DEV_EUI_PATTERN.match(dev_eui):
        raise UplinkIngestionError(f"Invalid DevEUI: {dev_eui!r}")
    return dev_eui.lower()


def event_to_message(event: UplinkEvent) -> dict[str, Any]:
    """Serialize an event into a JSON-safe dict for the stream."""
    return {
        "dev_eui": event.dev_eui,
        "device_type": event.device_type,
        "payload": event.payload,
        "received_at": event.received_at.isoformat() if event.received_at else None,
    }


def message_to_event(message: dict[str, Any]) -> UplinkEvent:
    """Rebuild an event from a stream message produced by ``event_to_message``."""
    received_at = message.get("received_at")
    return UplinkEvent(
        dev_eui=message["dev_eui"],
        device_type=message.get("device_type"),
        payload=message.get("payload") or {},
        received_at=datetime.fromisoformat(received_at) if received_at else None,
    )


class UplinkIngestionService:
    """Buffers uplink events to a Redis Stream for the worker pool.

    Duplicate deliveries carrying the same ``message_id`` (for example the
    network server's deduplication id) are dropped for a short TTL.
    """

    def __init__(self, redis_client: aioredis.Redis, stream_maxlen: int = STREAM_MAXLEN):
        self.redis = redis_client
        self.stream_maxlen = stream_maxlen

    async def buffer(
        self,
        dev_eui: str,
        payload: dict[str, Any],
        device_type: int | None = None,
        message_id: str | None = None,
    ) -> UplinkEvent | None:
        """Validate and buffer one uplink.

        Returns:
            The buffered event, or None when it was a duplicate.

        Raises:
            UplinkIngestionError: If validation fails.
        """
        dev_eui = normalize_dev_eui(dev_eui)
        if not isinstance(payload, dict):
            raise UplinkIngestionError("Payload must be a JSON object")

        if message_id:
            cache_key = f"uplink:dedup:{message_id}"
            was_set = await self.redis.set(cache_key, "1", nx=True, ex=DEDUP_TTL_SECONDS)
            if not was_set:
                logger.debug("Duplicate uplink ignored", message_id=message_id, dev_eui=dev_eui)
                return None

        event = UplinkEvent(
            dev_eui=dev_eui,
            device_type=device_type,
            payload=payload,
            received_at=datetime.now(timezone.utc),
        )

        await self.redis.xadd(
            STREAM_NAME,
            {
                "dev_eui": dev_eui,
                "payload": json.dumps(event_to_message(event)),
            },
            maxlen=self.stream_maxlen,
        )
        logger.debug("Uplink buffered", dev_eui=dev_eui)
        return event


class RedisDeadLetterSink:
    """Keeps abandoned uplinks on a capped stream for inspection."""

    def __init__(self, redis_client: aioredis.Redis, maxlen: int = 10000):
        self.redis = redis_client
        self.maxlen = maxlen

    async def publish(self, event: UplinkEvent, reason: str, error: str) -> None:
        await self.redis.xadd(
            DEAD_LETTER_STREAM,
            {
                "dev_eui": event.dev_eui,
                "reason": reason,
                "error": error[:500],
                "payload": json.dumps(event_to_message(event)),
                "failed_at": datetime.now(timezone.utc).isoformat(),
            },
            maxlen=self.maxlen,
        )
        logger.info("Uplink dead-lettered", dev_eui=event.dev_eui, reason=reason)
