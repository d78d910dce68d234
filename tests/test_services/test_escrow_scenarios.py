"""End-to-end escrow scenarios and lifecycle properties."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from nft_escrow.domain.enums import CancelPolicy, DepositPolicy, TradeStatus
from nft_escrow.domain.exceptions import (
    AlreadyClosedError,
    TermsMismatchError,
    UnauthorizedCallerError,
)
from nft_escrow.domain.models import items_of
from nft_escrow.infrastructure.registry import InMemoryAssetRegistry
from nft_escrow.services.escrow_service import EscrowService

PUNKS = "0xPunks"
APES = "0xApes"


def _escrow_holds_nothing(registry: InMemoryAssetRegistry, escrow: str) -> bool:
    return registry.items_owned_by(escrow) == []


class TestScenarios:
    @pytest.mark.asyncio
    async def test_full_swap(self, service, registry, alice, bob, punks, ape, escrow_address) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        await service.deposit(alice, "T1", PUNKS, ["1", "2"])
        trade = await service.deposit(bob, "T1", APES, ["3"])

        assert trade.is_closed
        assert trade.status is TradeStatus.SETTLED
        assert await registry.owner_of(PUNKS, "1") == bob
        assert await registry.owner_of(PUNKS, "2") == bob
        assert await registry.owner_of(APES, "3") == alice
        assert _escrow_holds_nothing(registry, escrow_address)

    @pytest.mark.asyncio
    async def test_partial_deposit_then_cancel(self, service, registry, alice, bob, punks, ape, escrow_address) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        await service.deposit(alice, "T1", PUNKS, ["1"])
        trade = await service.cancel_trade_offer(alice, "T1")

        assert trade.is_closed
        assert await registry.owner_of(PUNKS, "1") == alice
        assert all(recipient != bob for _, recipient, _, _ in registry.transfer_log)
        assert _escrow_holds_nothing(registry, escrow_address)

    @pytest.mark.asyncio
    async def test_mismatched_want_items(self, make_service, registry, alice, bob, punks, ape, escrow_address) -> None:
        svc = make_service(deposit_policy=DepositPolicy.ATOMIC)
        await svc.deposit_all(alice, "T1", counterparty=bob, have_items=punks, want_items=ape)
        before = await svc.get_trade("T1")

        with pytest.raises(TermsMismatchError):
            await svc.deposit_all(
                bob, "T1", counterparty=alice, have_items=ape, want_items=items_of(PUNKS, ["1"])
            )

        after = await svc.get_trade("T1")
        assert after.deposited_by_a == before.deposited_by_a
        assert after.status is TradeStatus.PENDING
        assert await registry.owner_of(PUNKS, "1") == escrow_address
        assert await registry.owner_of(PUNKS, "2") == escrow_address

    @pytest.mark.asyncio
    @pytest.mark.parametrize("policy", list(CancelPolicy))
    async def test_non_party_cancel(
        self, make_service: Callable[..., EscrowService], alice, bob, carol, punks, ape, policy
    ) -> None:
        svc = make_service(cancel_policy=policy)
        await svc.create_trade(alice, "T1", alice, bob, punks, ape)
        await svc.deposit(alice, "T1", PUNKS, ["1"])
        before = await svc.get_trade("T1")

        with pytest.raises(UnauthorizedCallerError):
            await svc.cancel_trade_offer(carol, "T1")

        after = await svc.get_trade("T1")
        assert after.status is TradeStatus.PENDING
        assert after.deposited_by_a == before.deposited_by_a
        assert len(await svc.get_events("T1")) == 2


class TestTerminality:
    @pytest.mark.asyncio
    async def test_every_mutation_fails_after_close(self, make_service, registry, alice, bob, punks, ape) -> None:
        svc = make_service(deposit_policy=DepositPolicy.LOCKING)
        await svc.create_trade(alice, "T1", alice, bob, punks, ape)
        await svc.cancel_trade_offer(alice, "T1")
        log_before = list(registry.transfer_log)

        calls = [
            svc.deposit(alice, "T1", PUNKS, ["1"]),
            svc.deposit_all(bob, "T1"),
            svc.lock(alice, "T1"),
            svc.withdraw(alice, "T1", PUNKS, ["1"]),
            svc.settle(alice, "T1"),
            svc.cancel_trade_offer(bob, "T1"),
        ]
        for call in calls:
            with pytest.raises(AlreadyClosedError):
                await call

        assert registry.transfer_log == log_before
        assert (await svc.get_trade("T1")).status is TradeStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_status_reports_final_state(self, service, alice, bob, punks, ape) -> None:
        await service.create_trade(alice, "T1", alice, bob, punks, ape)
        status = await service.get_status("T1")
        assert status["status"] == "PENDING"
        assert sorted(status["allowed_events"]) == ["cancel", "settle"]

        await service.cancel_trade_offer(bob, "T1")
        status = await service.get_status("T1")
        assert status["status"] == "CANCELLED"
        assert status["allowed_events"] == []


class TestConcurrentCalls:
    @pytest.mark.asyncio
    async def test_settle_and_cancel_race_has_one_winner(self, make_service, registry, alice, bob, punks, ape) -> None:
        svc = make_service(auto_settle=False)
        await svc.create_trade(alice, "T1", alice, bob, punks, ape)
        await svc.deposit_all(alice, "T1")
        await svc.deposit_all(bob, "T1")

        results = await asyncio.gather(
            svc.settle(alice, "T1"),
            svc.cancel_trade_offer(bob, "T1"),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyClosedError)
        assert (await svc.get_trade("T1")).status is TradeStatus.SETTLED
