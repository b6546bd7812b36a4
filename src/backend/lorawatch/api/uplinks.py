"""HTTP uplink ingestion endpoint.

Receives decoded frames pushed by the network server integration and
buffers them to a Redis Stream for the uplink worker pool. Returns 202
Accepted since evaluation happens asynchronously.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from lorawatch.core.config import settings
from lorawatch.core.deps import get_redis
from lorawatch.engine.decoders import device_model_name, supported_device_types
from lorawatch.services.uplink_ingestion_service import (
    UplinkIngestionService,
    UplinkIngestionError,
)

router = APIRouter()


class UplinkIngestRequest(BaseModel):
    """Decoded uplink as forwarded by the network server."""

    dev_eui: str = Field(..., min_length=16, max_length=16)
    payload: dict[str, Any]
    device_type: int | None = None
    message_id: str | None = None


class UplinkIngestResponse(BaseModel):
    """Response for uplink ingestion."""

    status: str
    dev_eui: str


class DeviceTypeInfo(BaseModel):
    device_type: int
    model: str


@router.post(
    "",
    response_model=UplinkIngestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def ingest_uplink(
    request: UplinkIngestRequest,
    redis_client=Depends(get_redis),
):
    """Buffer an uplink for evaluation (webhook-style push)."""
    try:
        service = UplinkIngestionService(redis_client, stream_maxlen=settings.uplink_stream_maxlen)
        event = await service.buffer(
            request.dev_eui,
            request.payload,
            device_type=request.device_type,
            message_id=request.message_id,
        )
    except UplinkIngestionError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    return UplinkIngestResponse(
        status="accepted" if event else "duplicate",
        dev_eui=request.dev_eui.lower(),
    )


@router.get("/device-types", response_model=list[DeviceTypeInfo])
async def list_device_types():
    """List device types with a registered payload decoder."""
    return [
        DeviceTypeInfo(device_type=t, model=device_model_name(t) or "")
        for t in supported_device_types()
    ]
