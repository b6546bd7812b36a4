"""Exception taxonomy for the evaluation engine.

Decode and condition errors are scoped to a single unit (one uplink, one
rule) and are skipped by callers. ``StoreError`` aborts the evaluation of a
single device only.
"""


class EngineError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str, dev_eui: str | None = None):
        super().__init__(message)
        self.message = message
        self.dev_eui = dev_eui


class DecodeError(EngineError):
    """Raw payload could not be turned into a reading."""


class UnsupportedDeviceTypeError(DecodeError):
    """No decoder is registered for the device type."""

    def __init__(self, device_type: int | None, dev_eui: str | None = None):
        super().__init__(f"Unsupported device type: {device_type}", dev_eui=dev_eui)
        self.device_type = device_type


class MalformedPayloadError(DecodeError):
    """Payload does not match the device type's schema."""


class ConditionError(EngineError):
    """Automation condition could not be evaluated."""


class UnsupportedConditionError(ConditionError):
    """Sender device type has no condition grammar."""


class MalformedConditionError(ConditionError):
    """Condition string does not match the grammar for its device type."""


class NotFoundError(EngineError):
    """Alarm, rule or state row is missing."""


class StoreError(EngineError):
    """I/O failure against a backing store."""


class ValidationError(EngineError):
    """Invalid data reached the engine."""


class CommandQueueError(EngineError):
    """Downlink command could not be enqueued."""

    def __init__(
        self,
        message: str,
        dev_eui: str | None = None,
        retryable: bool = False,
        original_error: Exception | None = None,
    ):
        super().__init__(message, dev_eui=dev_eui)
        self.retryable = retryable
        self.original_error = original_error
