"""SenseCAP payload decoders."""

from pydantic import BaseModel, ConfigDict, Field

from lorawatch.engine.decoders.registry import register
from lorawatch.engine.protocols import Calibration, FieldValue

TELEMETRY_MESSAGE_TYPE = "report_telemetry"


class SenseCapMeasurement(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    measurement_id: int = Field(alias="measurementId")
    measurement_value: float = Field(alias="measurementValue")
    type: str


class SenseCapLightPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: list[SenseCapMeasurement]


@register(11, model=SenseCapLightPayload, name="SenseCAP Light")
def decode_sensecap_light(p: SenseCapLightPayload, cal: Calibration) -> dict[str, FieldValue] | None:
    """Only the first message of a telemetry report carries the light level."""
    if not p.messages:
        return None

    first = p.messages[0]
    if first.type != TELEMETRY_MESSAGE_TYPE:
        return None

    return {"light": first.measurement_value}
