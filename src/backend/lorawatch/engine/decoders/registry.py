"""Device-type decoder registry."""

from datetime import datetime
from typing import Any, Callable

from pydantic import BaseModel, ValidationError as PydanticValidationError

from lorawatch.core.errors import MalformedPayloadError, UnsupportedDeviceTypeError
from lorawatch.engine.protocols import Calibration, FieldValue, TelemetryReading

# A decoder turns a validated payload into canonical fields, or None to drop the frame
DecoderFunc = Callable[[Any, Calibration], dict[str, FieldValue] | None]


class _Entry:
    __slots__ = ("model", "func", "name")

    def __init__(self, model: type[BaseModel], func: DecoderFunc, name: str):
        self.model = model
        self.func = func
        self.name = name


_REGISTRY: dict[int, _Entry] = {}


def register(*device_types: int, model: type[BaseModel], name: str):
    """Register a decoder function for one or more device types.

    The raw payload is validated against ``model`` before the function runs.
    """

    def decorator(func: DecoderFunc) -> DecoderFunc:
        for device_type in device_types:
            if device_type in _REGISTRY:
                raise ValueError(f"Decoder already registered for device type {device_type}")
            _REGISTRY[device_type] = _Entry(model, func, name)
        return func

    return decorator


def supported_device_types() -> list[int]:
    return sorted(_REGISTRY)


def device_model_name(device_type: int) -> str | None:
    entry = _REGISTRY.get(device_type)
    return entry.name if entry else None


def decode(
    device_type: int | None,
    raw: dict[str, Any],
    calibration: Calibration | None = None,
    *,
    dev_eui: str = "",
    observed_at: datetime | None = None,
) -> TelemetryReading | None:
    """Decode a raw payload into a normalized reading.

    Returns None when the frame carries no valid reading (sensor not ready,
    zeroed payload, invalid distance).

    Raises:
        UnsupportedDeviceTypeError: No decoder for ``device_type``.
        MalformedPayloadError: Payload does not match the device schema.
    """
    entry = _REGISTRY.get(device_type) if device_type is not None else None
    if entry is None:
        raise UnsupportedDeviceTypeError(device_type, dev_eui=dev_eui or None)

    if not isinstance(raw, dict):
        raise MalformedPayloadError(
            f"{entry.name} payload must be an object", dev_eui=dev_eui or None
        )

    try:
        payload = entry.model.model_validate(raw)
    except PydanticValidationError as e:
        raise MalformedPayloadError(
            f"Invalid {entry.name} payload: {e.error_count()} error(s)",
            dev_eui=dev_eui or None,
        ) from e

    try:
        fields = entry.func(payload, calibration or Calibration())
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(
            f"Invalid {entry.name} payload: {e}", dev_eui=dev_eui or None
        ) from e

    if fields is None:
        return None

    return TelemetryReading(
        dev_eui=dev_eui,
        device_type=device_type,
        fields=fields,
        observed_at=observed_at,
    )


def parse_float(value: str | float | int) -> float:
    """Parse numeric strings sent by firmware that reports values as text."""
    if isinstance(value, str):
        return float(value.strip())
    return float(value)
