"""Suppression of automation actions the receiver already reflects."""

import structlog

from lorawatch.core.errors import NotFoundError
from lorawatch.engine.actions import ActionDecodeError, decode_action
from lorawatch.engine.protocols import AutomationRule, DeviceStateStore

logger = structlog.get_logger()


class AutomationStateGuard:
    """Checks a receiver's last-known outputs against an action's target."""

    def __init__(self, state_store: DeviceStateStore):
        self.state_store = state_store

    async def already_satisfied(self, rule: AutomationRule) -> bool:
        """True when every output the action drives is already at its target.

        Unknown receiver types, missing state and undecodable actions return
        False so the command is still sent.
        """
        if not rule.receiver_dev_eui:
            return False

        try:
            commands = decode_action(rule.receiver_device_type, rule.action)
        except ActionDecodeError as e:
            logger.warning(
                "Undecodable automation action",
                rule_id=rule.id,
                receiver_device_type=rule.receiver_device_type,
                error=str(e),
            )
            return False

        if commands is None:
            return False

        expected: dict[str, str] = {}
        for command in commands:
            expected.update(command.expected_state())
        if not expected:
            return False

        try:
            state = await self.state_store.latest_state(rule.receiver_dev_eui)
        except NotFoundError:
            return False
        if not state:
            return False

        return all(state.get(output) == level for output, level in expected.items())
