"""Deposit Coordinator — moves a party's items into escrow custody.

One interface, three policies chosen at construction:

    explicit  trade created up front; items deposited in any number of calls;
              settlement as soon as both bundles are in escrow.
    locking   explicit deposits, plus a per-side ``lock``; settlement once both
              sides are locked. Withdrawing unlocks the caller's side.
    atomic    ``deposit_all`` only. The first call creates the trade from the
              caller's terms, later calls must repeat the same terms. Each call
              moves the caller's whole bundle.

Coordinator methods never write to the ledger themselves. They return a
``LedgerWrite`` that the service commits once the whole call has succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from nft_escrow.domain.authorization import require_party
from nft_escrow.domain.enums import DepositPolicy, EventType, Side
from nft_escrow.domain.exceptions import (
    AlreadyLockedError,
    EscrowIntegrityError,
    InvalidTradeTermsError,
    ItemAlreadyDepositedError,
    ItemNotApprovedForEscrowError,
    ItemNotOwnedError,
    ItemNotRequiredError,
    NotDepositedError,
    NotFullyDepositedError,
    TermsMismatchError,
    TransferFailedError,
    UnauthorizedCallerError,
    UnsupportedOperationError,
)
from nft_escrow.domain.models import Item, Trade, TradeEvent
from nft_escrow.domain.state_machine import ensure_pending
from nft_escrow.logging_config import get_logger
from nft_escrow.services.offer_ledger import LedgerWrite

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from nft_escrow.domain.registry_protocol import AssetRegistry
    from nft_escrow.services.offer_ledger import OfferLedger
    from nft_escrow.services.swap_executor import SwapExecutor
    from nft_escrow.services.transfers import TransferJournal

logger = get_logger(__name__)


# ----------------------------------------------------------------------
# Custody intake
# ----------------------------------------------------------------------


class CustodyIntake:
    """Registry-facing half of deposits and withdrawals."""

    def __init__(self, registry: AssetRegistry, escrow_address: str) -> None:
        self._registry = registry
        self._escrow = escrow_address

    async def check_deposit(self, trade: Trade, side: Side, caller: str, items: Sequence[Item]) -> None:
        """Reject the whole batch before the first transfer if any item is unfit."""
        required = set(trade.required_from(side))
        deposited = trade.deposited_by(side)
        seen: set[Item] = set()
        for item in items:
            if item not in required:
                raise ItemNotRequiredError(trade.id, str(item))
            if item in deposited or item in seen:
                raise ItemAlreadyDepositedError(trade.id, str(item))
            seen.add(item)

        for item in items:
            await self._check_transferable(item, caller)

    async def move_in(
        self,
        trade: Trade,
        side: Side,
        caller: str,
        items: Sequence[Item],
        journal: TransferJournal,
    ) -> None:
        """Transfer ``items`` from the caller into escrow and record them."""
        for item in items:
            try:
                await journal.transfer(caller, self._escrow, item)
            except TransferFailedError as exc:
                # Report the precise cause when the registry state explains it.
                await self._check_transferable(item, caller)
                raise ItemNotApprovedForEscrowError(str(item), caller) from exc
        trade.deposited_by(side).update(items)

    async def move_out(
        self,
        trade: Trade,
        side: Side,
        caller: str,
        items: Sequence[Item],
        journal: TransferJournal,
    ) -> None:
        """Return previously deposited ``items`` to the caller."""
        deposited = trade.deposited_by(side)
        seen: set[Item] = set()
        for item in items:
            if item not in deposited or item in seen:
                raise NotDepositedError(trade.id, str(item))
            seen.add(item)
            owner = await self._registry.owner_of(item.collection, item.item_id)
            if owner != self._escrow:
                raise EscrowIntegrityError(f"Escrow does not hold deposited item {item}")

        for item in items:
            await journal.transfer(self._escrow, caller, item)
        deposited.difference_update(items)

    async def _check_transferable(self, item: Item, caller: str) -> None:
        owner = await self._registry.owner_of(item.collection, item.item_id)
        if owner != caller:
            raise ItemNotOwnedError(str(item), caller)
        if not await self._registry.is_approved_for_escrow(caller, item.collection, item.item_id):
            raise ItemNotApprovedForEscrowError(str(item), caller)


def _deposited_event(trade: Trade, side: Side, caller: str, items: Sequence[Item]) -> TradeEvent:
    return TradeEvent(
        trade_id=trade.id,
        event_type=EventType.ITEMS_DEPOSITED,
        actor=caller,
        metadata={"side": side.value, "items": [str(i) for i in items]},
    )


def _same_items(a: Iterable[Item], b: Iterable[Item]) -> bool:
    return set(a) == set(b)


# ----------------------------------------------------------------------
# Policies
# ----------------------------------------------------------------------


@dataclass
class _Collaborators:
    ledger: OfferLedger
    intake: CustodyIntake
    executor: SwapExecutor
    auto_settle: bool


class _ExplicitDeposits:
    """Deposits against a pre-existing trade, optionally gated by locks."""

    def __init__(self, parts: _Collaborators, locking: bool) -> None:
        self._parts = parts
        self._locking = locking
        self.name = DepositPolicy.LOCKING if locking else DepositPolicy.EXPLICIT

    @property
    def requires_locks(self) -> bool:
        return self._locking

    async def _open(self, caller: str, trade_id: str) -> tuple[Trade, Side]:
        trade = await self._parts.ledger.load(trade_id)
        side = require_party(trade, caller)
        ensure_pending(trade)
        return trade, side

    async def deposit(
        self, caller: str, trade_id: str, items: Sequence[Item], journal: TransferJournal
    ) -> LedgerWrite:
        trade, side = await self._open(caller, trade_id)
        if not items:
            raise InvalidTradeTermsError("A deposit needs at least one item")
        return await self._deposit_items(trade, side, caller, list(items), journal)

    async def deposit_all(
        self,
        caller: str,
        trade_id: str,
        journal: TransferJournal,
        counterparty: str | None = None,
        have_items: Sequence[Item] | None = None,
        want_items: Sequence[Item] | None = None,
    ) -> LedgerWrite:
        trade, side = await self._open(caller, trade_id)
        if counterparty is not None and counterparty != trade.party(side.other):
            raise TermsMismatchError(trade.id)
        if have_items is not None and not _same_items(have_items, trade.required_from(side)):
            raise TermsMismatchError(trade.id)
        if want_items is not None and not _same_items(want_items, trade.required_from(side.other)):
            raise TermsMismatchError(trade.id)

        missing = trade.missing_from(side)
        if not missing and trade.required_from(side):
            raise ItemAlreadyDepositedError(trade.id, str(trade.required_from(side)[0]))
        return await self._deposit_items(trade, side, caller, missing, journal)

    async def _deposit_items(
        self,
        trade: Trade,
        side: Side,
        caller: str,
        items: list[Item],
        journal: TransferJournal,
    ) -> LedgerWrite:
        intake = self._parts.intake
        await intake.check_deposit(trade, side, caller, items)
        await intake.move_in(trade, side, caller, items, journal)

        write = LedgerWrite(trade, [_deposited_event(trade, side, caller, items)])
        logger.info(
            "trade.items_deposited",
            trade_id=trade.id,
            side=side.value,
            items=len(items),
            funded=trade.is_funded(side),
        )
        await _settle_if_ready(self._parts, write, caller, journal, self._locking)
        return write

    async def lock(self, caller: str, trade_id: str, journal: TransferJournal) -> LedgerWrite:
        if not self._locking:
            raise UnsupportedOperationError("lock", self.name)
        trade, side = await self._open(caller, trade_id)
        if trade.is_locked(side):
            raise AlreadyLockedError(trade.id, side.value)
        if not trade.is_funded(side):
            raise NotFullyDepositedError(trade.id, side.value)

        trade.set_locked(side, True)
        write = LedgerWrite(
            trade,
            [
                TradeEvent(
                    trade_id=trade.id,
                    event_type=EventType.SIDE_LOCKED,
                    actor=caller,
                    metadata={"side": side.value},
                )
            ],
        )
        logger.info("trade.side_locked", trade_id=trade.id, side=side.value)
        await _settle_if_ready(self._parts, write, caller, journal, True)
        return write

    async def withdraw(
        self, caller: str, trade_id: str, items: Sequence[Item], journal: TransferJournal
    ) -> LedgerWrite:
        trade, side = await self._open(caller, trade_id)
        if not items:
            raise InvalidTradeTermsError("A withdrawal needs at least one item")
        await self._parts.intake.move_out(trade, side, caller, list(items), journal)
        if self._locking:
            trade.set_locked(side, False)

        logger.info("trade.items_withdrawn", trade_id=trade.id, side=side.value, items=len(items))
        return LedgerWrite(
            trade,
            [
                TradeEvent(
                    trade_id=trade.id,
                    event_type=EventType.ITEMS_WITHDRAWN,
                    actor=caller,
                    metadata={"side": side.value, "items": [str(i) for i in items]},
                )
            ],
        )


class _AtomicDeposits:
    """One call per side: create-or-join the trade and escrow the whole bundle."""

    name = DepositPolicy.ATOMIC
    requires_locks = False

    def __init__(self, parts: _Collaborators) -> None:
        self._parts = parts

    async def deposit(self, *args, **kwargs) -> LedgerWrite:
        raise UnsupportedOperationError("deposit", self.name)

    async def lock(self, *args, **kwargs) -> LedgerWrite:
        raise UnsupportedOperationError("lock", self.name)

    async def withdraw(self, *args, **kwargs) -> LedgerWrite:
        raise UnsupportedOperationError("withdraw", self.name)

    async def deposit_all(
        self,
        caller: str,
        trade_id: str,
        journal: TransferJournal,
        counterparty: str | None = None,
        have_items: Sequence[Item] | None = None,
        want_items: Sequence[Item] | None = None,
    ) -> LedgerWrite:
        have = tuple(have_items or ())
        want = tuple(want_items or ())
        ledger = self._parts.ledger

        trade = await ledger.find(trade_id)
        if trade is None:
            write = await ledger.offer(caller, trade_id, caller, counterparty, have, want)
            trade = write.trade
            side = Side.A
            logger.info(
                "trade.created",
                trade_id=trade.id,
                party_a=caller,
                party_b=counterparty,
                open_offer=counterparty is None,
            )
        else:
            side = self._join(trade, caller)
            ensure_pending(trade)
            if (
                counterparty != trade.party(side.other)
                or not _same_items(have, trade.required_from(side))
                or not _same_items(want, trade.required_from(side.other))
            ):
                logger.warning("trade.terms_mismatch", trade_id=trade.id, caller=caller)
                raise TermsMismatchError(trade.id)
            write = LedgerWrite(trade)
            if trade.party_b is None:
                trade.party_b = caller
                write.new_parties.append(caller)

        items = list(trade.required_from(side))
        intake = self._parts.intake
        await intake.check_deposit(trade, side, caller, items)
        await intake.move_in(trade, side, caller, items, journal)
        write.events.append(_deposited_event(trade, side, caller, items))
        logger.info("trade.items_deposited", trade_id=trade.id, side=side.value, items=len(items))

        await _settle_if_ready(self._parts, write, caller, journal, False)
        return write

    @staticmethod
    def _join(trade: Trade, caller: str) -> Side:
        """Resolve the caller's side; an open offer is joined as side B."""
        side = trade.side_of(caller)
        if side is not None:
            return side
        if trade.party_b is None and not trade.is_closed:
            return Side.B
        raise UnauthorizedCallerError(caller)


async def _settle_if_ready(
    parts: _Collaborators,
    write: LedgerWrite,
    caller: str,
    journal: TransferJournal,
    require_locks: bool,
) -> None:
    if not parts.auto_settle:
        return
    if parts.executor.is_eligible(write.trade, require_locks=require_locks):
        write.events.append(await parts.executor.execute(write.trade, journal, actor=caller))


# ----------------------------------------------------------------------
# Coordinator
# ----------------------------------------------------------------------


class DepositCoordinator:
    """Single entry for deposits, locks and withdrawals under one policy."""

    def __init__(
        self,
        policy: DepositPolicy,
        ledger: OfferLedger,
        registry: AssetRegistry,
        executor: SwapExecutor,
        escrow_address: str,
        auto_settle: bool = True,
    ) -> None:
        self.policy = DepositPolicy(policy)
        parts = _Collaborators(
            ledger=ledger,
            intake=CustodyIntake(registry, escrow_address),
            executor=executor,
            auto_settle=auto_settle,
        )
        if self.policy == DepositPolicy.ATOMIC:
            self._strategy: _ExplicitDeposits | _AtomicDeposits = _AtomicDeposits(parts)
        else:
            self._strategy = _ExplicitDeposits(parts, locking=self.policy == DepositPolicy.LOCKING)

    @property
    def requires_locks(self) -> bool:
        """Whether settlement waits for both sides to lock."""
        return self._strategy.requires_locks

    async def deposit(
        self, caller: str, trade_id: str, items: Sequence[Item], journal: TransferJournal
    ) -> LedgerWrite:
        return await self._strategy.deposit(caller, trade_id, items, journal)

    async def deposit_all(
        self,
        caller: str,
        trade_id: str,
        journal: TransferJournal,
        counterparty: str | None = None,
        have_items: Sequence[Item] | None = None,
        want_items: Sequence[Item] | None = None,
    ) -> LedgerWrite:
        return await self._strategy.deposit_all(
            caller,
            trade_id,
            journal,
            counterparty=counterparty,
            have_items=have_items,
            want_items=want_items,
        )

    async def lock(self, caller: str, trade_id: str, journal: TransferJournal) -> LedgerWrite:
        return await self._strategy.lock(caller, trade_id, journal)

    async def withdraw(
        self, caller: str, trade_id: str, items: Sequence[Item], journal: TransferJournal
    ) -> LedgerWrite:
        return await self._strategy.withdraw(caller, trade_id, items, journal)
