"""Payload decoders keyed by device type.

Importing this package registers every bundled decoder.
"""

from lorawatch.engine.decoders.registry import (
    decode,
    device_model_name,
    register,
    supported_device_types,
)
from lorawatch.engine.decoders import dragino, milesight, sensecap  # noqa: F401

__all__ = [
    "decode",
    "device_model_name",
    "register",
    "supported_device_types",
]
