"""Per-uplink evaluation pipeline.

decode -> record -> alarms (schedule, threshold/trend, notify) -> alarm
rules, and independently device rules against the raw payload. Devices
are evaluated concurrently; events of one device run in arrival order.
Batches read by different workers share the processor, so a per-device
lock keeps one device's events serialized across them.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import structlog

from lorawatch.core.errors import DecodeError, StoreError, UnsupportedDeviceTypeError
from lorawatch.core.metrics import observe_evaluation, record_decode_failure, record_uplink
from lorawatch.engine.decoders import decode
from lorawatch.engine.protocols import DeviceRegistry, TelemetryReading, UplinkEvent
from lorawatch.services.alarm_evaluation_service import AlarmEvaluationService, FiredAlarm
from lorawatch.services.automation_service import AutomationOutcome, AutomationService
from lorawatch.services.stores import TelemetryRecorder

logger = structlog.get_logger()


class UplinkOutcome(str, Enum):
    """Terminal state of one uplink evaluation."""
    EVALUATED = "evaluated"
    NO_READING = "no_reading"
    DECODE_ERROR = "decode_error"
    UNKNOWN_DEVICE = "unknown_device"
    INACTIVE_DEVICE = "inactive_device"
    STORE_ERROR = "store_error"
    TIMEOUT = "timeout"
    FAILED = "failed"


@dataclass
class UplinkResult:
    dev_eui: str
    outcome: UplinkOutcome
    reading: TelemetryReading | None = None
    fired: list[FiredAlarm] = field(default_factory=list)
    automations: dict[int, AutomationOutcome] = field(default_factory=dict)


class DeadLetterSink(Protocol):
    async def publish(self, event: UplinkEvent, reason: str, error: str) -> None:
        ...


class UplinkProcessor:
    """Evaluates uplink events against alarms and automation rules."""

    def __init__(
        self,
        registry: DeviceRegistry,
        alarm_service: AlarmEvaluationService,
        automation_service: AutomationService | None = None,
        recorder: TelemetryRecorder | None = None,
        dead_letter: DeadLetterSink | None = None,
        timeout: float = 10.0,
    ):
        self.registry = registry
        self.alarm_service = alarm_service
        self.automation_service = automation_service
        self.recorder = recorder
        self.dead_letter = dead_letter
        self.timeout = timeout
        self._device_locks: dict[str, asyncio.Lock] = {}

    async def process_batch(self, events: list[UplinkEvent]) -> list[UplinkResult]:
        """Evaluate a batch; one task per device, events in order within a device."""
        by_device: dict[str, list[UplinkEvent]] = defaultdict(list)
        for event in events:
            by_device[event.dev_eui].append(event)

        async def run_device(dev_eui: str, device_events: list[UplinkEvent]) -> list[UplinkResult]:
            async with self._device_lock(dev_eui):
                return [await self.handle(event) for event in device_events]

        grouped = await asyncio.gather(
            *(run_device(dev_eui, evts) for dev_eui, evts in by_device.items())
        )
        return [result for results in grouped for result in results]

    def _device_lock(self, dev_eui: str) -> asyncio.Lock:
        lock = self._device_locks.get(dev_eui)
        if lock is None:
            lock = self._device_locks[dev_eui] = asyncio.Lock()
        return lock

    async def handle(self, event: UplinkEvent) -> UplinkResult:
        """Evaluate one event with a timeout; never raises.

        Store failures and timeouts abandon the event and send it to the
        dead-letter sink. It is not retried here.
        """
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(self.process(event), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Uplink evaluation timed out", dev_eui=event.dev_eui, timeout=self.timeout)
            result = UplinkResult(event.dev_eui, UplinkOutcome.TIMEOUT)
            await self._dead_letter(event, result.outcome, f"timed out after {self.timeout}s")
        except StoreError as e:
            logger.error("Store failure, device evaluation abandoned", dev_eui=event.dev_eui, error=e.message)
            result = UplinkResult(event.dev_eui, UplinkOutcome.STORE_ERROR)
            await self._dead_letter(event, result.outcome, e.message)
        except Exception as e:
            logger.error("Uplink evaluation failed", dev_eui=event.dev_eui, error=str(e))
            result = UplinkResult(event.dev_eui, UplinkOutcome.FAILED)
            await self._dead_letter(event, result.outcome, str(e))

        observe_evaluation(time.perf_counter() - started)
        record_uplink(result.outcome.value)
        return result

    async def process(self, event: UplinkEvent) -> UplinkResult:
        """Evaluate one event. Raises StoreError when a store fails."""
        device = await self.registry.get_device(event.dev_eui)
        if device is None:
            logger.warning("Uplink from unknown device", dev_eui=event.dev_eui)
            return UplinkResult(event.dev_eui, UplinkOutcome.UNKNOWN_DEVICE)

        if not device.is_active:
            logger.info("Device status is not active, skipping evaluation", dev_eui=event.dev_eui)
            return UplinkResult(event.dev_eui, UplinkOutcome.INACTIVE_DEVICE)

        device_type = device.device_type if device.device_type is not None else event.device_type
        result = UplinkResult(event.dev_eui, UplinkOutcome.NO_READING)

        try:
            reading = decode(
                device_type,
                event.payload,
                device.calibration,
                dev_eui=event.dev_eui,
                observed_at=event.received_at,
            )
        except DecodeError as e:
            reason = "unsupported" if isinstance(e, UnsupportedDeviceTypeError) else "malformed"
            logger.warning(
                "Uplink could not be decoded",
                dev_eui=event.dev_eui,
                device_type=device_type,
                reason=reason,
                error=e.message,
            )
            record_decode_failure(reason)
            reading = None
            result.outcome = UplinkOutcome.DECODE_ERROR

        if reading is not None:
            result.reading = reading
            result.outcome = UplinkOutcome.EVALUATED

            if self.recorder:
                await self.recorder.record(reading)

            result.fired = await self.alarm_service.evaluate(device, reading)

        if self.automation_service:
            for alarm_id in dict.fromkeys(f.alarm.id for f in result.fired):
                result.automations.update(
                    await self.automation_service.run_alarm_rules(alarm_id)
                )
            result.automations.update(
                await self.automation_service.run_device_rules(event.dev_eui, event.payload)
            )

        return result

    async def _dead_letter(self, event: UplinkEvent, outcome: UplinkOutcome, error: str) -> None:
        if not self.dead_letter:
            return
        try:
            await self.dead_letter.publish(event, outcome.value, error)
        except Exception as e:
            logger.error("Failed to dead-letter uplink", dev_eui=event.dev_eui, error=str(e))
