"""LoRaWatch FastAPI Application Entry Point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker

from lorawatch import __version__
from lorawatch.api import router as api_router
from lorawatch.core.config import Settings, settings
from lorawatch.core.deps import async_session_factory, get_redis
from lorawatch.core.logging import setup_logging
from lorawatch.engine.composer import NotificationComposer
from lorawatch.engine.conditions import ConditionEvaluator, TimeTrigger
from lorawatch.engine.schedule import ScheduleMatcher, SystemClock
from lorawatch.engine.state_guard import AutomationStateGuard
from lorawatch.engine.threshold import ThresholdEvaluator
from lorawatch.engine.trend import TrendDetector
from lorawatch.services.alarm_evaluation_service import AlarmEvaluationService
from lorawatch.services.audit_service import SqlAuditSink
from lorawatch.services.automation_service import AutomationService
from lorawatch.services.command_queue import NetworkServerCommandQueue
from lorawatch.services.stores import (
    SqlAlarmStore,
    SqlAutomationStore,
    SqlDeviceRegistry,
    SqlDeviceStateStore,
    SqlNotificationStore,
    SqlTelemetryHistoryStore,
    TelemetryRecorder,
)
from lorawatch.services.time_trigger_service import TimeTriggerService
from lorawatch.services.uplink_ingestion_service import RedisDeadLetterSink
from lorawatch.services.uplink_processor import UplinkProcessor
from lorawatch.services.uplink_worker_service import UplinkWorkerService

setup_logging(settings)
logger = structlog.get_logger()

# Module-level references for services that need lifecycle management
_uplink_worker: UplinkWorkerService | None = None
_time_trigger: TimeTriggerService | None = None
_command_queue: NetworkServerCommandQueue | None = None


def build_automation_service(
    session_factory: async_sessionmaker,
    config: Settings,
    command_queue: NetworkServerCommandQueue | None = None,
    audit_sink: SqlAuditSink | None = None,
) -> AutomationService:
    """Wire the automation service against the SQL stores."""
    return AutomationService(
        rule_store=SqlAutomationStore(session_factory),
        state_guard=AutomationStateGuard(SqlDeviceStateStore(session_factory)),
        condition_evaluator=ConditionEvaluator(),
        time_trigger=TimeTrigger(config.schedule_utc_offset_hours),
        command_queue=command_queue,
        audit_sink=audit_sink,
    )


def build_processor(
    session_factory: async_sessionmaker,
    redis_client: aioredis.Redis | None,
    config: Settings,
    automation_service: AutomationService | None = None,
    audit_sink: SqlAuditSink | None = None,
) -> UplinkProcessor:
    """Wire the uplink processor against the SQL stores."""
    clock = SystemClock()
    registry = SqlDeviceRegistry(session_factory)

    alarm_service = AlarmEvaluationService(
        alarm_store=SqlAlarmStore(session_factory),
        registry=registry,
        schedule=ScheduleMatcher(clock, config.schedule_utc_offset_hours),
        evaluator=ThresholdEvaluator(
            TrendDetector(SqlTelemetryHistoryStore(session_factory), clock)
        ),
        composer=NotificationComposer(config.notification_locale),
        notification_store=SqlNotificationStore(session_factory),
        audit_sink=audit_sink,
    )

    dead_letter = None
    if redis_client is not None:
        dead_letter = RedisDeadLetterSink(redis_client, maxlen=config.uplink_dead_letter_maxlen)

    return UplinkProcessor(
        registry=registry,
        alarm_service=alarm_service,
        automation_service=automation_service,
        recorder=TelemetryRecorder(session_factory),
        dead_letter=dead_letter,
        timeout=config.evaluation_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    global _uplink_worker, _time_trigger, _command_queue

    # Startup
    logger.info("Starting LoRaWatch application", environment=settings.environment)

    audit_sink = SqlAuditSink(async_session_factory)

    if settings.actuation_enabled:
        _command_queue = NetworkServerCommandQueue(
            base_url=settings.network_server_url,
            api_token=settings.network_server_api_token,
            timeout=settings.network_server_timeout,
            command_delay=settings.command_delay_seconds,
        )
        logger.info("Network server command queue enabled", url=settings.network_server_url)

    automation_service = build_automation_service(
        async_session_factory, settings, _command_queue, audit_sink
    )

    if settings.uplink_worker_enabled:
        try:
            redis_client = await get_redis()
            processor = build_processor(
                async_session_factory, redis_client, settings, automation_service, audit_sink
            )
            _uplink_worker = UplinkWorkerService(
                redis_client=redis_client,
                processor=processor,
                num_workers=settings.uplink_worker_num_workers,
                read_count=settings.uplink_worker_read_count,
            )
            await _uplink_worker.start()
            logger.info(
                "Uplink worker service started",
                num_workers=settings.uplink_worker_num_workers,
            )
        except Exception as e:
            logger.warning("Failed to start uplink worker service", error=str(e))

    if settings.time_trigger_enabled:
        _time_trigger = TimeTriggerService(
            automation_service,
            interval=settings.time_trigger_interval_seconds,
        )
        await _time_trigger.start()

    yield

    # Shutdown
    logger.info("Shutting down LoRaWatch application")

    if _uplink_worker:
        await _uplink_worker.stop()

    if _time_trigger:
        await _time_trigger.stop()

    if _command_queue:
        await _command_queue.close()


fastapi_app = FastAPI(
    title="LoRaWatch API",
    description="LoRaWAN alarm and automation rule evaluation engine",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Include API routes
fastapi_app.include_router(api_router, prefix="/api/v1")


@fastapi_app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    errors = [
        {
            "loc": error.get("loc"),
            "msg": str(error.get("msg")),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]
    logger.error("Validation error", path=str(request.url.path), errors=errors)
    return JSONResponse(status_code=422, content={"detail": errors})


# Set up Prometheus metrics instrumentation
if settings.metrics_enabled:
    from lorawatch.core.metrics import setup_metrics, expose_metrics

    _instrumentator = setup_metrics(fastapi_app)
    expose_metrics(fastapi_app, _instrumentator)


@fastapi_app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for Kubernetes probes."""
    return {"status": "healthy", "version": __version__}


@fastapi_app.get("/health/workers")
async def workers_check() -> dict[str, bool]:
    """Report which background services are running."""
    return {
        "uplink_worker": _uplink_worker is not None,
        "time_trigger": _time_trigger is not None,
        "actuation": _command_queue is not None,
    }


app = fastapi_app
