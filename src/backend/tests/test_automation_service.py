"""Tests for AutomationService."""

from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock

from lorawatch.core.errors import CommandQueueError, StoreError
from lorawatch.engine.conditions import TimeTrigger
from lorawatch.engine.protocols import AutomationRule, TriggerType
from lorawatch.engine.state_guard import AutomationStateGuard
from lorawatch.services.automation_service import AutomationOutcome, AutomationService

SENDER = "a84041000181c061"
RECEIVER = "a8404127a1839e2b"


def _rule(rule_id: int = 1, condition: str = "temperature,over,30", action: str = "AwEA", **kwargs) -> AutomationRule:
    kwargs.setdefault("sender_dev_eui", SENDER)
    kwargs.setdefault("sender_device_type", 12)
    kwargs.setdefault("receiver_dev_eui", RECEIVER)
    kwargs.setdefault("receiver_device_type", 6)
    return AutomationRule(id=rule_id, condition=condition, action=action, **kwargs)


@pytest.fixture
def rule_store():
    store = AsyncMock()
    store.list_device_rules = AsyncMock(return_value=[])
    store.list_time_rules = AsyncMock(return_value=[])
    store.list_alarm_rules = AsyncMock(return_value=[])
    return store


@pytest.fixture
def state_store():
    store = AsyncMock()
    store.latest_state = AsyncMock(return_value={"gpio_out_1": "0", "gpio_out_2": "0"})
    return store


@pytest.fixture
def command_queue():
    queue = AsyncMock()
    queue.enqueue = AsyncMock(return_value=None)
    return queue


@pytest.fixture
def service(rule_store, state_store, command_queue):
    return AutomationService(
        rule_store=rule_store,
        state_guard=AutomationStateGuard(state_store),
        time_trigger=TimeTrigger(offset_hours=3.0),
        command_queue=command_queue,
        audit_sink=AsyncMock(),
    )


class TestDeviceRules:
    """Tests for device-triggered rules."""

    @pytest.mark.asyncio
    async def test_matching_rule_executes(self, service, rule_store, command_queue):
        """Test a matching condition enqueues the action for the receiver."""
        rule_store.list_device_rules.return_value = [_rule()]

        outcomes = await service.run_device_rules(SENDER, {"Temperature": 31})

        assert outcomes == {1: AutomationOutcome.EXECUTED}
        command_queue.enqueue.assert_awaited_once_with(RECEIVER, 6, "AwEA")
        assert service.audit_sink.record.await_args.args[0] == "automation_executed"

    @pytest.mark.asyncio
    async def test_non_matching_rule_skipped(self, service, rule_store, command_queue):
        rule_store.list_device_rules.return_value = [_rule()]

        assert await service.run_device_rules(SENDER, {"Temperature": 29}) == {}
        command_queue.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_already_satisfied_suppressed(self, service, rule_store, state_store, command_queue):
        """Test a receiver already in the target state is not actuated."""
        state_store.latest_state.return_value = {"gpio_out_1": "1", "gpio_out_2": "0"}
        rule_store.list_device_rules.return_value = [_rule()]

        outcomes = await service.run_device_rules(SENDER, {"Temperature": 31})

        assert outcomes == {1: AutomationOutcome.SUPPRESSED}
        command_queue.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_condition_skipped(self, service, rule_store, command_queue):
        """Test a malformed rule is skipped and later rules still run."""
        rule_store.list_device_rules.return_value = [
            _rule(1, condition="temperature,over"),
            _rule(2, sender_device_type=99),
            _rule(3),
        ]

        outcomes = await service.run_device_rules(SENDER, {"Temperature": 31})

        assert outcomes == {3: AutomationOutcome.EXECUTED}

    @pytest.mark.asyncio
    async def test_actuation_disabled(self, rule_store, state_store):
        """Test without a command queue the trigger is only logged."""
        service = AutomationService(rule_store, AutomationStateGuard(state_store))
        rule_store.list_device_rules.return_value = [_rule()]

        outcomes = await service.run_device_rules(SENDER, {"Temperature": 31})

        assert outcomes == {1: AutomationOutcome.DISABLED}

    @pytest.mark.asyncio
    async def test_command_queue_error(self, service, rule_store, command_queue):
        """Test a rejected downlink is reported as failed and audited."""
        command_queue.enqueue.side_effect = CommandQueueError("rejected", dev_eui=RECEIVER, retryable=True)
        rule_store.list_device_rules.return_value = [_rule()]

        outcomes = await service.run_device_rules(SENDER, {"Temperature": 31})

        assert outcomes == {1: AutomationOutcome.FAILED}
        audit_call = service.audit_sink.record.await_args
        assert audit_call.args[0] == "automation_failed"
        assert audit_call.kwargs["new_values"]["error"] == "rejected"

    @pytest.mark.asyncio
    async def test_unexpected_error_isolated(self, service, rule_store, command_queue):
        command_queue.enqueue.side_effect = [RuntimeError("boom"), None]
        rule_store.list_device_rules.return_value = [_rule(1), _rule(2)]

        outcomes = await service.run_device_rules(SENDER, {"Temperature": 31})

        assert outcomes == {1: AutomationOutcome.FAILED, 2: AutomationOutcome.EXECUTED}

    @pytest.mark.asyncio
    async def test_store_error_propagates(self, service, rule_store, state_store):
        state_store.latest_state.side_effect = StoreError("db down")
        rule_store.list_device_rules.return_value = [_rule()]

        with pytest.raises(StoreError):
            await service.run_device_rules(SENDER, {"Temperature": 31})


class TestTimeAndAlarmRules:
    """Tests for time- and alarm-triggered rules."""

    @pytest.mark.asyncio
    async def test_time_rule_matches_local_minute(self, service, rule_store, command_queue):
        rule_store.list_time_rules.return_value = [
            _rule(5, condition="3;15:00", trigger_type=TriggerType.TIME, receiver_device_type=28, action="BwAA/w=="),
            _rule(6, condition="3;15:01", trigger_type=TriggerType.TIME),
            _rule(7, condition="bogus", trigger_type=TriggerType.TIME),
        ]

        outcomes = await service.run_time_rules(datetime(2024, 5, 15, 12, 0, 30, tzinfo=timezone.utc))

        assert outcomes == {5: AutomationOutcome.EXECUTED}
        command_queue.enqueue.assert_awaited_once_with(RECEIVER, 28, "BwAA/w==")

    @pytest.mark.asyncio
    async def test_alarm_rules_run_unconditionally(self, service, rule_store):
        rule_store.list_alarm_rules.return_value = [_rule(8, condition="42", trigger_type=TriggerType.ALARM)]

        outcomes = await service.run_alarm_rules(42)

        assert outcomes == {8: AutomationOutcome.EXECUTED}
        rule_store.list_alarm_rules.assert_awaited_once_with(42)
