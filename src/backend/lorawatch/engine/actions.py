"""Decoding of opaque automation actions into typed downlink commands.

Actions are base64 downlink payloads. Their meaning depends on the receiver:

- LT22222L (type 6): ``03 o1 o2`` sets relay outputs 1 and 2; a level of
  0x11 leaves that output unchanged.
- UC300 (type 28): ``07 v 00 ff`` drives gpio_out_1 and ``08 v 00 ff`` drives
  gpio_out_2. The controller reports the inverse of the written level, so a
  written 0x00 reads back as "1".

Several commands may be chained with ``;``.
"""

import base64
import binascii
from dataclasses import dataclass

LT22222L_TYPE = 6
WS558_TYPE = 27
UC300_TYPE = 28

RELAY_OPCODE = 0x03
RELAY_NO_CHANGE = 0x11

UC300_CHANNELS = {0x07: "gpio_out_1", 0x08: "gpio_out_2"}
UC300_READBACK = {0x00: "1", 0x01: "0"}

COMMAND_SEPARATOR = ";"

# Downlink application port per receiver type
FPORTS = {LT22222L_TYPE: 8, WS558_TYPE: 85, UC300_TYPE: 85}
DEFAULT_FPORT = 8


class ActionDecodeError(ValueError):
    """Action string is not a valid command for its receiver."""


@dataclass(frozen=True)
class RelayCommand:
    """LT22222L relay write. None means the output is left unchanged."""
    out1: str | None
    out2: str | None

    def expected_state(self) -> dict[str, str]:
        state = {}
        if self.out1 is not None:
            state["gpio_out_1"] = self.out1
        if self.out2 is not None:
            state["gpio_out_2"] = self.out2
        return state


@dataclass(frozen=True)
class OutputCommand:
    """UC300 single output write with its expected read-back level."""
    output: str
    level: str

    def expected_state(self) -> dict[str, str]:
        return {self.output: self.level}


Command = RelayCommand | OutputCommand


def split_commands(action: str) -> list[str]:
    return [part.strip() for part in action.split(COMMAND_SEPARATOR) if part.strip()]


def _b64(part: str) -> bytes:
    try:
        return base64.b64decode(part, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ActionDecodeError(f"Action is not valid base64: {part!r}") from e


def _relay_level(byte: int) -> str | None:
    if byte == RELAY_NO_CHANGE:
        return None
    if byte in (0x00, 0x01):
        return str(byte)
    raise ActionDecodeError(f"Unknown relay level: {byte:#04x}")


def decode_relay(part: str) -> RelayCommand:
    data = _b64(part)
    if len(data) != 3 or data[0] != RELAY_OPCODE:
        raise ActionDecodeError(f"Not an LT22222L relay command: {part!r}")
    return RelayCommand(out1=_relay_level(data[1]), out2=_relay_level(data[2]))


def decode_output(part: str) -> OutputCommand:
    data = _b64(part)
    if len(data) < 2 or data[0] not in UC300_CHANNELS or data[1] not in UC300_READBACK:
        raise ActionDecodeError(f"Not a UC300 output command: {part!r}")
    return OutputCommand(output=UC300_CHANNELS[data[0]], level=UC300_READBACK[data[1]])


_DECODERS = {
    LT22222L_TYPE: decode_relay,
    UC300_TYPE: decode_output,
}


def decode_action(receiver_device_type: int | None, action: str) -> list[Command] | None:
    """Decode ``action`` for a receiver type.

    Returns None for receiver types without a known command format.

    Raises:
        ActionDecodeError: The action does not fit the receiver's format.
    """
    decoder = _DECODERS.get(receiver_device_type)
    if decoder is None:
        return None

    parts = split_commands(action or "")
    if not parts:
        raise ActionDecodeError("Empty action")
    return [decoder(part) for part in parts]


def fport_for(receiver_device_type: int | None) -> int:
    return FPORTS.get(receiver_device_type, DEFAULT_FPORT)
