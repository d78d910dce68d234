"""Tests for explicit and locking deposits through the EscrowService."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from nft_escrow.domain.enums import DepositPolicy, EventType, TradeStatus
from nft_escrow.domain.exceptions import (
    AlreadyClosedError,
    AlreadyLockedError,
    InvalidTradeTermsError,
    ItemAlreadyDepositedError,
    ItemNotApprovedForEscrowError,
    ItemNotOwnedError,
    ItemNotRequiredError,
    NotDepositedError,
    NotFullyDepositedError,
    TermsMismatchError,
    TradeNotFoundError,
    TransferFailedError,
    UnauthorizedCallerError,
    UnsupportedOperationError,
)
from nft_escrow.domain.models import Item
from nft_escrow.infrastructure.registry import InMemoryAssetRegistry
from nft_escrow.services.escrow_service import EscrowService

PUNKS = "0xPunks"
APES = "0xApes"


async def _create(svc: EscrowService, alice: str, bob: str, punks, ape, trade_id: str = "T1"):
    return await svc.create_trade(alice, trade_id, alice, bob, punks, ape)


class TestDeposit:
    @pytest.mark.asyncio
    async def test_partial_deposit_moves_item_into_escrow(
        self, service, registry: InMemoryAssetRegistry, alice, bob, punks, ape, escrow_address
    ) -> None:
        await _create(service, alice, bob, punks, ape)
        trade = await service.deposit(alice, "T1", PUNKS, ["1"])

        assert trade.deposited_by_a == {Item(PUNKS, "1")}
        assert not trade.is_a_deposited
        assert await registry.owner_of(PUNKS, "1") == escrow_address
        assert await registry.owner_of(PUNKS, "2") == alice

    @pytest.mark.asyncio
    async def test_deposit_records_event(self, service, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        await service.deposit(alice, "T1", PUNKS, ["1", "2"])

        events = await service.get_events("T1")
        assert [e.event_type for e in events] == [
            EventType.TRADE_CREATED,
            EventType.ITEMS_DEPOSITED,
        ]
        assert events[1].metadata == {"side": "A", "items": ["0xPunks#1", "0xPunks#2"]}

    @pytest.mark.asyncio
    async def test_unknown_trade(self, service, alice) -> None:
        with pytest.raises(TradeNotFoundError):
            await service.deposit(alice, "nope", PUNKS, ["1"])

    @pytest.mark.asyncio
    async def test_stranger_rejected_before_anything_else(
        self, service, registry, alice, bob, carol, punks, ape
    ) -> None:
        await _create(service, alice, bob, punks, ape)
        with pytest.raises(UnauthorizedCallerError):
            await service.deposit(carol, "T1", PUNKS, ["9"])
        assert await registry.owner_of(PUNKS, "9") == carol

    @pytest.mark.asyncio
    async def test_item_not_in_bundle(self, service, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        with pytest.raises(ItemNotRequiredError):
            await service.deposit(bob, "T1", PUNKS, ["1"])

    @pytest.mark.asyncio
    async def test_double_deposit(self, service, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        await service.deposit(alice, "T1", PUNKS, ["1"])
        with pytest.raises(ItemAlreadyDepositedError):
            await service.deposit(alice, "T1", PUNKS, ["1"])

    @pytest.mark.asyncio
    async def test_duplicate_within_one_call(self, service, registry, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        with pytest.raises(ItemAlreadyDepositedError):
            await service.deposit(alice, "T1", PUNKS, ["1", "1"])
        assert await registry.owner_of(PUNKS, "1") == alice

    @pytest.mark.asyncio
    async def test_empty_item_list(self, service, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        with pytest.raises(InvalidTradeTermsError):
            await service.deposit(alice, "T1", PUNKS, [])

    @pytest.mark.asyncio
    async def test_not_owned(self, service, registry, alice, bob, carol, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        registry.force_owner(carol, PUNKS, "2")
        with pytest.raises(ItemNotOwnedError):
            await service.deposit(alice, "T1", PUNKS, ["1", "2"])
        # Whole batch rejected before the first transfer.
        assert await registry.owner_of(PUNKS, "1") == alice
        assert registry.transfer_log == []

    @pytest.mark.asyncio
    async def test_not_approved(self, service, registry, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        registry.set_approval_for_all(alice, PUNKS, approved=False)
        with pytest.raises(ItemNotApprovedForEscrowError):
            await service.deposit(alice, "T1", PUNKS, ["1"])

    @pytest.mark.asyncio
    async def test_single_item_approval_is_enough(
        self, service, registry, alice, bob, punks, ape, escrow_address
    ) -> None:
        await _create(service, alice, bob, punks, ape)
        registry.set_approval_for_all(alice, PUNKS, approved=False)
        registry.approve(alice, PUNKS, "1")
        await service.deposit(alice, "T1", PUNKS, ["1"])
        assert await registry.owner_of(PUNKS, "1") == escrow_address

    @pytest.mark.asyncio
    async def test_failed_call_changes_nothing(self, service, registry, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        registry.freeze(PUNKS, "2")
        with pytest.raises(ItemNotApprovedForEscrowError) as exc_info:
            await service.deposit(alice, "T1", PUNKS, ["1", "2"])
        assert exc_info.value.item == f"{PUNKS}#2"
        assert isinstance(exc_info.value.__cause__, TransferFailedError)

        trade = await service.get_trade("T1")
        assert trade.deposited_by_a == set()
        assert await registry.owner_of(PUNKS, "1") == alice
        assert len(await service.get_events("T1")) == 1


class TestDepositAll:
    @pytest.mark.asyncio
    async def test_deposits_only_missing_items(self, make_service, registry, alice, bob, punks, ape) -> None:
        svc = make_service(auto_settle=False)
        await _create(svc, alice, bob, punks, ape)
        await svc.deposit(alice, "T1", PUNKS, ["2"])
        trade = await svc.deposit_all(alice, "T1")

        assert trade.is_a_deposited
        events = await svc.get_events("T1")
        assert events[-1].metadata["items"] == ["0xPunks#1"]

    @pytest.mark.asyncio
    async def test_nothing_missing(self, make_service, alice, bob, punks, ape) -> None:
        svc = make_service(auto_settle=False)
        await _create(svc, alice, bob, punks, ape)
        await svc.deposit_all(alice, "T1")
        with pytest.raises(ItemAlreadyDepositedError):
            await svc.deposit_all(alice, "T1")

    @pytest.mark.asyncio
    async def test_supplied_terms_must_match(self, service, alice, bob, carol, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        with pytest.raises(TermsMismatchError):
            await service.deposit_all(alice, "T1", counterparty=carol)
        with pytest.raises(TermsMismatchError):
            await service.deposit_all(alice, "T1", have_items=punks[:1])
        with pytest.raises(TermsMismatchError):
            await service.deposit_all(alice, "T1", want_items=punks)

    @pytest.mark.asyncio
    async def test_matching_terms_in_any_order(self, make_service, alice, bob, punks, ape) -> None:
        svc = make_service(auto_settle=False)
        await _create(svc, alice, bob, punks, ape)
        trade = await svc.deposit_all(
            alice, "T1", counterparty=bob, have_items=list(reversed(punks)), want_items=ape
        )
        assert trade.is_a_deposited


class TestWithdraw:
    @pytest.mark.asyncio
    async def test_withdraw_returns_item(self, service, registry, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        await service.deposit(alice, "T1", PUNKS, ["1"])
        trade = await service.withdraw(alice, "T1", PUNKS, ["1"])

        assert trade.deposited_by_a == set()
        assert await registry.owner_of(PUNKS, "1") == alice
        events = await service.get_events("T1")
        assert events[-1].event_type is EventType.ITEMS_WITHDRAWN

    @pytest.mark.asyncio
    async def test_withdraw_not_deposited(self, service, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        with pytest.raises(NotDepositedError):
            await service.withdraw(alice, "T1", PUNKS, ["1"])

    @pytest.mark.asyncio
    async def test_cannot_withdraw_other_sides_items(self, service, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        await service.deposit(alice, "T1", PUNKS, ["1"])
        with pytest.raises(NotDepositedError):
            await service.withdraw(bob, "T1", PUNKS, ["1"])

    @pytest.mark.asyncio
    async def test_withdraw_after_settlement(self, service, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        await service.deposit_all(alice, "T1")
        await service.deposit_all(bob, "T1")
        with pytest.raises(AlreadyClosedError):
            await service.withdraw(alice, "T1", PUNKS, ["1"])


class TestLocking:
    @pytest.fixture
    def locking(self, make_service: Callable[..., EscrowService]) -> EscrowService:
        return make_service(deposit_policy=DepositPolicy.LOCKING)

    @pytest.mark.asyncio
    async def test_funded_trade_waits_for_locks(self, locking, alice, bob, punks, ape) -> None:
        await _create(locking, alice, bob, punks, ape)
        await locking.deposit_all(alice, "T1")
        trade = await locking.deposit_all(bob, "T1")
        assert trade.is_fully_funded
        assert trade.status is TradeStatus.PENDING

    @pytest.mark.asyncio
    async def test_second_lock_settles(self, locking, registry, alice, bob, punks, ape) -> None:
        await _create(locking, alice, bob, punks, ape)
        await locking.deposit_all(alice, "T1")
        await locking.deposit_all(bob, "T1")
        await locking.lock(alice, "T1")
        trade = await locking.lock(bob, "T1")

        assert trade.status is TradeStatus.SETTLED
        assert await registry.owner_of(APES, "3") == alice
        events = [e.event_type for e in await locking.get_events("T1")]
        assert events[-3:] == [EventType.SIDE_LOCKED, EventType.SIDE_LOCKED, EventType.TRADE_SUCCESS]

    @pytest.mark.asyncio
    async def test_lock_requires_full_deposit(self, locking, alice, bob, punks, ape) -> None:
        await _create(locking, alice, bob, punks, ape)
        await locking.deposit(alice, "T1", PUNKS, ["1"])
        with pytest.raises(NotFullyDepositedError):
            await locking.lock(alice, "T1")

    @pytest.mark.asyncio
    async def test_double_lock(self, locking, alice, bob, punks, ape) -> None:
        await _create(locking, alice, bob, punks, ape)
        await locking.deposit_all(alice, "T1")
        await locking.lock(alice, "T1")
        with pytest.raises(AlreadyLockedError):
            await locking.lock(alice, "T1")

    @pytest.mark.asyncio
    async def test_withdraw_unlocks_side(self, locking, alice, bob, punks, ape) -> None:
        await _create(locking, alice, bob, punks, ape)
        await locking.deposit_all(alice, "T1")
        await locking.lock(alice, "T1")
        trade = await locking.withdraw(alice, "T1", PUNKS, ["2"])
        assert not trade.is_a_locked

    @pytest.mark.asyncio
    async def test_lock_unsupported_under_explicit(self, service, alice, bob, punks, ape) -> None:
        await _create(service, alice, bob, punks, ape)
        with pytest.raises(UnsupportedOperationError):
            await service.lock(alice, "T1")
