"""Tests for trade cancellation under both cancellation policies."""

from __future__ import annotations

import pytest

from nft_escrow.domain.enums import CancelPolicy, DepositPolicy, EventType, TradeStatus
from nft_escrow.domain.exceptions import (
    AlreadyClosedError,
    CancellationFailedError,
    OnlyOwnerCanCancelError,
    UnauthorizedCallerError,
)

PUNKS = "0xPunks"
APES = "0xApes"


class TestEitherParty:
    @pytest.mark.asyncio
    async def test_cancel_returns_every_deposit(self, service, registry, alice, bob, punks, ape) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        await service.deposit(alice, "T1", PUNKS, ["1"])
        trade = await service.cancel_trade_offer(bob, "T1")

        assert trade.status is TradeStatus.CANCELLED
        assert trade.is_b_cancelled
        assert not trade.is_a_cancelled
        assert await registry.owner_of(PUNKS, "1") == alice
        # Deposited sets are kept as a record of what was returned.
        assert trade.deposited_by_a == set(punks[:1])

        event = (await service.get_events("T1"))[-1]
        assert event.event_type is EventType.TRADE_CANCELLED
        assert event.metadata == {"cancelled_by": bob, "side": "B"}

    @pytest.mark.asyncio
    async def test_cancel_with_nothing_deposited(self, service, registry, alice, bob, punks, ape) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        trade = await service.cancel_trade_offer(alice, "T1")
        assert trade.status is TradeStatus.CANCELLED
        assert registry.transfer_log == []

    @pytest.mark.asyncio
    async def test_stranger_cannot_cancel(self, service, alice, bob, carol, punks, ape) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        with pytest.raises(UnauthorizedCallerError):
            await service.cancel_trade_offer(carol, "T1")

    @pytest.mark.asyncio
    async def test_cancel_twice(self, service, alice, bob, punks, ape) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        await service.cancel_trade_offer(alice, "T1")
        with pytest.raises(AlreadyClosedError):
            await service.cancel_trade_offer(bob, "T1")

    @pytest.mark.asyncio
    async def test_cancel_after_settlement(self, service, registry, alice, bob, punks, ape) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        await service.deposit_all(alice, "T1")
        await service.deposit_all(bob, "T1")
        with pytest.raises(AlreadyClosedError):
            await service.cancel_trade_offer(alice, "T1")
        assert await registry.owner_of(APES, "3") == alice

    @pytest.mark.asyncio
    async def test_cancelled_trade_rejects_deposits(self, service, alice, bob, punks, ape) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        await service.cancel_trade_offer(alice, "T1")
        with pytest.raises(AlreadyClosedError):
            await service.deposit(alice, "T1", PUNKS, ["1"])

    @pytest.mark.asyncio
    async def test_failed_return_keeps_trade_open(
        self, service, registry, alice, bob, punks, ape, escrow_address
    ) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        await service.deposit_all(alice, "T1")
        registry.freeze(PUNKS, "2")

        with pytest.raises(CancellationFailedError):
            await service.cancel_trade_offer(alice, "T1")

        trade = await service.get_trade("T1")
        assert trade.status is TradeStatus.PENDING
        assert not trade.is_a_cancelled
        assert await registry.owner_of(PUNKS, "1") == escrow_address


class TestOwnerOnly:
    @pytest.mark.asyncio
    async def test_originator_may_cancel(self, make_service, alice, bob, punks, ape) -> None:
        svc = make_service(cancel_policy=CancelPolicy.OWNER_ONLY)
        await svc.create_trade(bob, "T1", alice, bob, punks, ape)
        trade = await svc.cancel_trade_offer(bob, "T1")
        assert trade.status is TradeStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_counterparty_may_not_cancel(self, make_service, alice, bob, punks, ape) -> None:
        svc = make_service(cancel_policy=CancelPolicy.OWNER_ONLY)
        await svc.create_trade(alice, "T1", alice, bob, punks, ape)
        with pytest.raises(OnlyOwnerCanCancelError):
            await svc.cancel_trade_offer(bob, "T1")

    @pytest.mark.asyncio
    async def test_atomic_open_offer_cancelled_by_originator(
        self, make_service, registry, alice, punks
    ) -> None:
        svc = make_service(deposit_policy=DepositPolicy.ATOMIC, cancel_policy=CancelPolicy.OWNER_ONLY)
        await svc.deposit_all(alice, "T1", have_items=punks, want_items=())
        trade = await svc.cancel_trade_offer(alice, "T1")
        assert trade.status is TradeStatus.CANCELLED
        assert await registry.owner_of(PUNKS, "2") == alice
