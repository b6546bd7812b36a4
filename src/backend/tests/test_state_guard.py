"""Tests for action decoding and the automation state guard."""

import pytest
from unittest.mock import AsyncMock

from lorawatch.core.errors import NotFoundError
from lorawatch.engine.actions import (
    ActionDecodeError,
    OutputCommand,
    RelayCommand,
    decode_action,
    fport_for,
    split_commands,
)
from lorawatch.engine.protocols import AutomationRule
from lorawatch.engine.state_guard import AutomationStateGuard

RELAY_DEV_EUI = "a8404127a1839e2b"


def _rule(action: str, receiver_type: int | None = 6, receiver: str | None = RELAY_DEV_EUI) -> AutomationRule:
    return AutomationRule(
        id=11,
        condition="temperature,over,30",
        action=action,
        sender_dev_eui="a84041000181c061",
        sender_device_type=12,
        receiver_dev_eui=receiver,
        receiver_device_type=receiver_type,
    )


def _guard(state: dict[str, str] | None) -> AutomationStateGuard:
    store = AsyncMock()
    store.latest_state = AsyncMock(return_value=state)
    return AutomationStateGuard(store)


class TestDecodeAction:
    """Tests for decode_action."""

    def test_relay_both_outputs(self):
        assert decode_action(6, "AwEA") == [RelayCommand(out1="1", out2="0")]

    def test_relay_no_change(self):
        """Test 0x11 leaves the output unchanged."""
        assert decode_action(6, "AxER") == [RelayCommand(out1=None, out2=None)]
        assert RelayCommand(out1="1", out2=None).expected_state() == {"gpio_out_1": "1"}

    def test_uc300_readback_inverted(self):
        """Test a written 0x00 reads back as "1"."""
        assert decode_action(28, "BwAA/w==") == [OutputCommand("gpio_out_1", "1")]
        assert decode_action(28, "CAEA/w==") == [OutputCommand("gpio_out_2", "0")]

    def test_chained_commands(self):
        commands = decode_action(28, "BwAA/w==;CAAA/w==")
        assert [c.expected_state() for c in commands] == [{"gpio_out_1": "1"}, {"gpio_out_2": "1"}]

    def test_unknown_receiver(self):
        """Test receivers without a command format decode to None."""
        assert decode_action(27, "CAEA/w==") is None

    @pytest.mark.parametrize("action", ["", "not-base64!", "BwAA/w==", "AwIA"])
    def test_invalid_relay_action(self, action):
        with pytest.raises(ActionDecodeError):
            decode_action(6, action)

    def test_split_commands(self):
        assert split_commands(" a ; b ;;") == ["a", "b"]

    def test_fports(self):
        assert fport_for(6) == 8
        assert fport_for(27) == 85
        assert fport_for(28) == 85
        assert fport_for(None) == 8


class TestAutomationStateGuard:
    """Tests for AutomationStateGuard.already_satisfied."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "action,state",
        [
            ("AwAB", {"gpio_out_1": "0", "gpio_out_2": "1"}),
            ("AwAA", {"gpio_out_1": "0", "gpio_out_2": "0"}),
            ("AwEA", {"gpio_out_1": "1", "gpio_out_2": "0"}),
            ("AwEB", {"gpio_out_1": "1", "gpio_out_2": "1"}),
        ],
    )
    async def test_lt22222l_suppressed(self, action, state):
        """Test relay actions already reflected by the outputs are suppressed."""
        assert await _guard(state).already_satisfied(_rule(action)) is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "action,state",
        [
            ("BwAA/w==", {"gpio_out_1": "1"}),
            ("BwEA/w==", {"gpio_out_1": "0"}),
            ("CAAA/w==", {"gpio_out_2": "1"}),
            ("CAEA/w==", {"gpio_out_2": "0"}),
        ],
    )
    async def test_uc300_suppressed(self, action, state):
        """Test UC300 actions already reflected by the outputs are suppressed."""
        assert await _guard(state).already_satisfied(_rule(action, receiver_type=28)) is True

    @pytest.mark.asyncio
    async def test_partial_match_not_suppressed(self):
        """Test every driven output must already match."""
        state = {"gpio_out_1": "1", "gpio_out_2": "1"}
        assert await _guard(state).already_satisfied(_rule("AwEA")) is False

    @pytest.mark.asyncio
    async def test_unchanged_output_ignored(self):
        """Test an output left unchanged by the action is not compared."""
        state = {"gpio_out_1": "0", "gpio_out_2": "1"}
        assert await _guard(state).already_satisfied(_rule("AxEB")) is True

    @pytest.mark.asyncio
    async def test_unknown_receiver_type(self):
        assert await _guard({"switch_1": "1"}).already_satisfied(_rule("CAEA/w==", receiver_type=27)) is False

    @pytest.mark.asyncio
    async def test_missing_state(self):
        """Test no stored state means the command is sent."""
        assert await _guard(None).already_satisfied(_rule("AwEA")) is False

    @pytest.mark.asyncio
    async def test_receiver_never_reported(self):
        guard = _guard(None)
        guard.state_store.latest_state.side_effect = NotFoundError("No recorded device state")
        assert await guard.already_satisfied(_rule("AwEA")) is False

    @pytest.mark.asyncio
    async def test_no_receiver(self):
        guard = _guard({"gpio_out_1": "1"})
        assert await guard.already_satisfied(_rule("AwEA", receiver=None)) is False
        guard.state_store.latest_state.assert_not_called()

    @pytest.mark.asyncio
    async def test_undecodable_action(self):
        """Test a bad action is not suppressed."""
        assert await _guard({"gpio_out_1": "1"}).already_satisfied(_rule("%%%")) is False
