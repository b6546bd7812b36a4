"""Automation rule execution.

Device rules are matched against each uplink's raw payload, time rules
against the local minute, and alarm rules run when their alarm fires.
Every rule passes the state guard before a downlink is enqueued.
"""

from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from lorawatch.core.errors import CommandQueueError, ConditionError, StoreError
from lorawatch.core.metrics import record_automation
from lorawatch.engine.conditions import ConditionEvaluator, TimeTrigger
from lorawatch.engine.protocols import (
    AuditSink,
    AutomationRule,
    AutomationStore,
    CommandQueue,
    TriggerType,
)
from lorawatch.engine.state_guard import AutomationStateGuard

logger = structlog.get_logger()


class AutomationOutcome(str, Enum):
    """What happened to a triggered rule."""
    EXECUTED = "executed"
    SUPPRESSED = "suppressed"
    DISABLED = "disabled"
    FAILED = "failed"


class AutomationService:
    """Matches automation rules and actuates receivers."""

    def __init__(
        self,
        rule_store: AutomationStore,
        state_guard: AutomationStateGuard,
        condition_evaluator: ConditionEvaluator | None = None,
        time_trigger: TimeTrigger | None = None,
        command_queue: CommandQueue | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self.rule_store = rule_store
        self.state_guard = state_guard
        self.condition_evaluator = condition_evaluator or ConditionEvaluator()
        self.time_trigger = time_trigger or TimeTrigger()
        self.command_queue = command_queue
        self.audit_sink = audit_sink

    async def run_device_rules(
        self, dev_eui: str, raw: dict[str, Any]
    ) -> dict[int, AutomationOutcome]:
        """Run every active device rule whose sender is ``dev_eui``."""
        rules = await self.rule_store.list_device_rules(dev_eui)
        outcomes: dict[int, AutomationOutcome] = {}

        for rule in rules:
            try:
                matched = self.condition_evaluator.matches(rule, raw)
            except ConditionError as e:
                logger.warning(
                    "Skipping automation rule with invalid condition",
                    rule_id=rule.id,
                    sender_device_type=rule.sender_device_type,
                    error=e.message,
                )
                record_automation(TriggerType.DEVICE.value, "invalid")
                continue

            if matched:
                outcomes[rule.id] = await self._execute_isolated(rule)

        return outcomes

    async def run_time_rules(self, now: datetime) -> dict[int, AutomationOutcome]:
        """Run time rules scheduled for the minute containing ``now``."""
        rules = await self.rule_store.list_time_rules()
        outcomes: dict[int, AutomationOutcome] = {}

        for rule in rules:
            try:
                matched = self.time_trigger.matches(rule, now)
            except ConditionError as e:
                logger.warning(
                    "Skipping time rule with invalid schedule",
                    rule_id=rule.id,
                    error=e.message,
                )
                record_automation(TriggerType.TIME.value, "invalid")
                continue

            if matched:
                outcomes[rule.id] = await self._execute_isolated(rule)

        return outcomes

    async def run_alarm_rules(self, alarm_id: int) -> dict[int, AutomationOutcome]:
        """Run rules chained to a fired alarm."""
        rules = await self.rule_store.list_alarm_rules(alarm_id)
        return {rule.id: await self._execute_isolated(rule) for rule in rules}

    async def _execute_isolated(self, rule: AutomationRule) -> AutomationOutcome:
        try:
            return await self.execute(rule)
        except StoreError:
            raise
        except Exception as e:
            logger.error("Automation rule failed", rule_id=rule.id, error=str(e))
            record_automation(rule.trigger_type.value, AutomationOutcome.FAILED.value)
            return AutomationOutcome.FAILED

    async def execute(self, rule: AutomationRule) -> AutomationOutcome:
        """Actuate the rule's receiver unless it already reflects the action."""
        trigger = rule.trigger_type.value

        if await self.state_guard.already_satisfied(rule):
            logger.info(
                "Automation suppressed, receiver already in target state",
                rule_id=rule.id,
                receiver=rule.receiver_dev_eui,
            )
            record_automation(trigger, AutomationOutcome.SUPPRESSED.value)
            await self._audit("automation_suppressed", rule)
            return AutomationOutcome.SUPPRESSED

        if self.command_queue is None or not rule.receiver_dev_eui:
            logger.info(
                "Automation triggered with actuation disabled",
                rule_id=rule.id,
                receiver=rule.receiver_dev_eui,
            )
            record_automation(trigger, AutomationOutcome.DISABLED.value)
            return AutomationOutcome.DISABLED

        try:
            await self.command_queue.enqueue(
                rule.receiver_dev_eui, rule.receiver_device_type, rule.action
            )
        except CommandQueueError as e:
            logger.error(
                "Failed to enqueue automation command",
                rule_id=rule.id,
                receiver=rule.receiver_dev_eui,
                retryable=e.retryable,
                error=e.message,
            )
            record_automation(trigger, AutomationOutcome.FAILED.value)
            await self._audit("automation_failed", rule, error=e.message)
            return AutomationOutcome.FAILED

        logger.info(
            "Automation executed",
            rule_id=rule.id,
            trigger_type=trigger,
            receiver=rule.receiver_dev_eui,
        )
        record_automation(trigger, AutomationOutcome.EXECUTED.value)
        await self._audit("automation_executed", rule)
        return AutomationOutcome.EXECUTED

    async def _audit(self, action: str, rule: AutomationRule, error: str | None = None) -> None:
        if not self.audit_sink:
            return
        new_values: dict[str, Any] = {"action": rule.action, "trigger_type": rule.trigger_type.value}
        if error:
            new_values["error"] = error
        await self.audit_sink.record(
            action,
            entity_type="automation_rule",
            entity_id=str(rule.id),
            dev_eui=rule.receiver_dev_eui,
            new_values=new_values,
        )
