"""Automation condition grammar.

Device-triggered rules carry a positional condition ``param,operator[,value]``
whose vocabulary depends on the sender's device type. Time-triggered rules
carry ``days;HH:MM`` where days are comma-separated, 0=Sunday..6=Saturday.
"""

from datetime import datetime
from typing import Any

from lorawatch.core.errors import MalformedConditionError, UnsupportedConditionError
from lorawatch.engine.protocols import AutomationRule
from lorawatch.engine.schedule import to_local

MILLIMETERS_PER_METER = 1000.0

COMPARISON_OPERATORS = {
    "over": lambda value, threshold: value > threshold,
    "below": lambda value, threshold: value < threshold,
}

# param -> payload keys checked in order (network-server casing, then canonical)
CLIMATE_PARAMS = {
    "temperature": ("Temperature", "temperature"),
    "humidity": ("Humidity", "humidity"),
    "humadity": ("Humidity", "humidity"),
}
DISTANCE_KEYS = ("Distance", "distance")
DOOR_KEYS = ("DoorStatus", "door_status", "door_open_status")
LEAK_KEYS = ("WaterLeek", "water_leak", "WATER_LEAK_STATUS")

DOOR_STATES = {"open": 1, "close": 0}
LEAK_STATES = {"leak": 1, "noleak": 0}

CLIMATE_TYPES = frozenset({1, 7, 8, 12, 13, 20, 35})
DOOR_TYPES = frozenset({3, 16})
LEAK_TYPES = frozenset({4, 18, 19})
DISTANCE_TYPES = frozenset({33})


def _lookup(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _tokens(rule: AutomationRule) -> list[str]:
    if not rule.condition or not rule.condition.strip():
        raise MalformedConditionError(f"Rule {rule.id} has no condition")
    return [token.strip() for token in rule.condition.split(",")]


def _threshold(rule: AutomationRule, tokens: list[str]) -> float:
    if len(tokens) < 3 or tokens[2] == "":
        raise MalformedConditionError(f"Rule {rule.id} condition is missing a value")
    try:
        return float(tokens[2])
    except ValueError:
        raise MalformedConditionError(
            f"Rule {rule.id} condition value is not numeric: {tokens[2]!r}"
        ) from None


def _operator(rule: AutomationRule, tokens: list[str], allowed: dict) -> Any:
    if len(tokens) < 2 or tokens[1] not in allowed:
        operator = tokens[1] if len(tokens) > 1 else None
        raise MalformedConditionError(f"Rule {rule.id} has invalid comparison: {operator!r}")
    return allowed[tokens[1]]


class ConditionEvaluator:
    """Evaluates device-triggered rule conditions against a raw payload."""

    def matches(self, rule: AutomationRule, raw: dict[str, Any]) -> bool:
        """Return whether ``raw`` satisfies ``rule.condition``.

        A value absent from the payload never matches.

        Raises:
            UnsupportedConditionError: Sender type has no grammar.
            MalformedConditionError: Condition does not fit the grammar.
        """
        device_type = rule.sender_device_type
        if device_type in CLIMATE_TYPES:
            return self._match_climate(rule, raw)
        if device_type in DOOR_TYPES:
            return self._match_state(rule, raw, DOOR_KEYS, DOOR_STATES)
        if device_type in LEAK_TYPES:
            return self._match_state(rule, raw, LEAK_KEYS, LEAK_STATES)
        if device_type in DISTANCE_TYPES:
            return self._match_distance(rule, raw)

        raise UnsupportedConditionError(
            f"Unsupported sender device type for conditions: {device_type}"
        )

    @staticmethod
    def _match_climate(rule: AutomationRule, raw: dict[str, Any]) -> bool:
        tokens = _tokens(rule)
        param = tokens[0]
        if param not in CLIMATE_PARAMS:
            raise MalformedConditionError(f"Rule {rule.id} has invalid parameter: {param!r}")
        compare = _operator(rule, tokens, COMPARISON_OPERATORS)
        threshold = _threshold(rule, tokens)

        value = _as_number(_lookup(raw, CLIMATE_PARAMS[param]))
        if value is None:
            return False
        return compare(value, threshold)

    @staticmethod
    def _match_state(
        rule: AutomationRule,
        raw: dict[str, Any],
        keys: tuple[str, ...],
        states: dict[str, int],
    ) -> bool:
        tokens = _tokens(rule)
        if tokens[0] != "status":
            raise MalformedConditionError(f"Rule {rule.id} has invalid parameter: {tokens[0]!r}")
        expected = _operator(rule, tokens, states)

        value = _as_number(_lookup(raw, keys))
        if value is None:
            return False
        return int(value) == expected

    @staticmethod
    def _match_distance(rule: AutomationRule, raw: dict[str, Any]) -> bool:
        tokens = _tokens(rule)
        if tokens[0] != "distance":
            raise MalformedConditionError(f"Rule {rule.id} has invalid parameter: {tokens[0]!r}")
        compare = _operator(rule, tokens, COMPARISON_OPERATORS)
        threshold = _threshold(rule, tokens)

        millimeters = _as_number(_lookup(raw, DISTANCE_KEYS))
        if millimeters is None:
            return False
        return compare(millimeters / MILLIMETERS_PER_METER, threshold)


def parse_time_condition(rule: AutomationRule) -> tuple[frozenset[int], str]:
    """Split ``days;HH:MM`` into a day set (0=Sunday) and a zero-padded time."""
    condition = (rule.condition or "").strip()
    days_part, sep, time_part = condition.partition(";")
    if not sep:
        raise MalformedConditionError(f"Time rule {rule.id} condition must be 'days;HH:MM'")

    try:
        days = frozenset(int(d) for d in days_part.split(",") if d.strip())
    except ValueError:
        raise MalformedConditionError(
            f"Time rule {rule.id} has non-numeric days: {days_part!r}"
        ) from None
    if not days or any(d < 0 or d > 6 for d in days):
        raise MalformedConditionError(f"Time rule {rule.id} days must be within 0..6")

    hour, colon, minute = time_part.strip().partition(":")
    if not colon or not hour.isdigit() or not minute.isdigit():
        raise MalformedConditionError(f"Time rule {rule.id} time must be HH:MM")
    if int(hour) > 23 or int(minute) > 59:
        raise MalformedConditionError(f"Time rule {rule.id} time is out of range")

    return days, f"{int(hour):02d}:{int(minute):02d}"


class TimeTrigger:
    """Matches time-triggered rules against the current local minute."""

    def __init__(self, offset_hours: float = 0.0):
        self.offset_hours = offset_hours

    def matches(self, rule: AutomationRule, now: datetime) -> bool:
        days, hhmm = parse_time_condition(rule)
        local = to_local(now, self.offset_hours)
        # isoweekday() is 1=Mon..7=Sun; rules count 0=Sun..6=Sat
        day = local.isoweekday() % 7
        return day in days and local.strftime("%H:%M") == hhmm
