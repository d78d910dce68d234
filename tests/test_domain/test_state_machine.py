"""Tests for the TradeStateMachine domain guard.

These tests verify that:
    1. PENDING can move to exactly one of SETTLED or CANCELLED.
    2. Both terminal states are final.
    3. The convenience helpers validate_transition / apply_transition work.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from nft_escrow.domain.enums import TradeStatus
from nft_escrow.domain.exceptions import AlreadyClosedError
from nft_escrow.domain.models import Trade, items_of
from nft_escrow.domain.state_machine import (
    TradeStateMachine,
    apply_transition,
    ensure_pending,
    validate_transition,
)


def _trade(status: TradeStatus = TradeStatus.PENDING) -> Trade:
    return Trade(
        id="T1",
        party_a="0xA",
        party_b="0xB",
        originator="0xA",
        required_from_a=items_of("0xPunks", ["1"]),
        required_from_b=items_of("0xApes", ["3"]),
        status=status,
    )


class TestLifecycle:
    def test_settle(self) -> None:
        sm = TradeStateMachine("PENDING")
        sm.settle()
        assert sm.status == "SETTLED"

    def test_cancel(self) -> None:
        sm = TradeStateMachine("PENDING")
        sm.cancel()
        assert sm.status == "CANCELLED"

    def test_default_is_pending(self) -> None:
        assert TradeStateMachine().status == "PENDING"


class TestIllegalTransitions:
    """Verify that a closed trade can never move again."""

    def test_settled_cannot_cancel(self) -> None:
        sm = TradeStateMachine("SETTLED")
        with pytest.raises(TransitionNotAllowed):
            sm.cancel()

    def test_cancelled_cannot_settle(self) -> None:
        sm = TradeStateMachine("CANCELLED")
        with pytest.raises(TransitionNotAllowed):
            sm.settle()

    def test_settled_is_final(self) -> None:
        assert TradeStateMachine("SETTLED").get_allowed_events() == []

    def test_cancelled_is_final(self) -> None:
        assert TradeStateMachine("CANCELLED").get_allowed_events() == []


class TestAllowedEvents:
    def test_pending_allowed(self) -> None:
        allowed = TradeStateMachine("PENDING").get_allowed_events()
        assert sorted(allowed) == ["cancel", "settle"]


class TestValidateTransitionFunction:
    def test_valid_transition(self) -> None:
        assert validate_transition("PENDING", "settle") == "SETTLED"

    def test_invalid_event_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition("PENDING", "nonexistent_event")

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            TradeStateMachine("INVALID_STATUS")


class TestApplyTransition:
    def test_updates_trade_status(self) -> None:
        trade = _trade()
        apply_transition(trade, "cancel")
        assert trade.status is TradeStatus.CANCELLED
        assert trade.is_closed

    def test_closed_trade_raises_already_closed(self) -> None:
        trade = _trade(TradeStatus.SETTLED)
        with pytest.raises(AlreadyClosedError) as exc_info:
            apply_transition(trade, "cancel")
        assert exc_info.value.code == "ALREADY_CLOSED"
        assert trade.status is TradeStatus.SETTLED

    def test_unknown_event_leaves_status(self) -> None:
        trade = _trade()
        with pytest.raises(ValueError, match="Unknown event"):
            apply_transition(trade, "reopen")
        assert trade.status is TradeStatus.PENDING

    def test_ensure_pending(self) -> None:
        ensure_pending(_trade())
        with pytest.raises(AlreadyClosedError):
            ensure_pending(_trade(TradeStatus.CANCELLED))
