"""Escrow Service — the entry points of the NFT swap escrow.

This is the application layer that coordinates between:
    - Offer Ledger (trade records, party index, event log)
    - Deposit Coordinator (custody intake under the configured policy)
    - Swap Executor (settlement)
    - Cancellation Handler (unwinding)

Both REST routes and the simulation call into this service. Every mutating
call runs inside the MutationGuard critical section with its own
TransferJournal: on any error the journal reverses the call's registry
transfers and nothing is committed to the ledger.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from nft_escrow.domain.authorization import require_party
from nft_escrow.domain.enums import CancelPolicy, DepositPolicy
from nft_escrow.domain.exceptions import NotFullyDepositedError
from nft_escrow.domain.models import items_of
from nft_escrow.domain.state_machine import TradeStateMachine, ensure_pending
from nft_escrow.logging_config import get_logger
from nft_escrow.services.cancellation import CancellationHandler
from nft_escrow.services.deposit_coordinator import DepositCoordinator
from nft_escrow.services.offer_ledger import LedgerWrite, OfferLedger
from nft_escrow.services.swap_executor import SwapExecutor
from nft_escrow.services.transfers import MutationGuard, TransferJournal

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from nft_escrow.config import Settings
    from nft_escrow.domain.models import Item, Trade, TradeEvent
    from nft_escrow.domain.registry_protocol import AssetRegistry
    from nft_escrow.domain.repository_protocol import TradeRepository

logger = get_logger(__name__)


class EscrowService:
    """Manages the trade lifecycle."""

    def __init__(
        self,
        repository: TradeRepository,
        registry: AssetRegistry,
        *,
        escrow_address: str,
        deposit_policy: DepositPolicy = DepositPolicy.EXPLICIT,
        cancel_policy: CancelPolicy = CancelPolicy.EITHER_PARTY,
        auto_settle: bool = True,
        guard: MutationGuard | None = None,
        on_commit: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._registry = registry
        self._guard = guard or MutationGuard()
        self._on_commit = on_commit
        self._ledger = OfferLedger(repository)
        self._executor = SwapExecutor(registry, escrow_address)
        self._deposits = DepositCoordinator(
            deposit_policy,
            self._ledger,
            registry,
            self._executor,
            escrow_address,
            auto_settle=auto_settle,
        )
        self._cancellation = CancellationHandler(cancel_policy, registry, escrow_address)
        self.escrow_address = escrow_address

    @classmethod
    def from_settings(
        cls,
        repository: TradeRepository,
        registry: AssetRegistry,
        settings: Settings,
        guard: MutationGuard | None = None,
        on_commit: Callable[[], Awaitable[None]] | None = None,
    ) -> EscrowService:
        return cls(
            repository,
            registry,
            escrow_address=settings.escrow_address,
            deposit_policy=settings.escrow_deposit_policy,
            cancel_policy=settings.escrow_cancel_policy,
            auto_settle=settings.escrow_auto_settle,
            guard=guard,
            on_commit=on_commit,
        )

    @property
    def deposit_policy(self) -> DepositPolicy:
        return self._deposits.policy

    @property
    def cancel_policy(self) -> CancelPolicy:
        return self._cancellation.policy

    # ------------------------------------------------------------------
    # Call boundary
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        operation: str,
        caller: str,
        trade_id: str,
        action: Callable[[TransferJournal], Awaitable[LedgerWrite]],
    ) -> Trade:
        """Run one mutating call atomically and commit its result.

        ``on_commit`` runs inside the critical section so the next call sees
        this call's writes.
        """
        with structlog.contextvars.bound_contextvars(trade_id=trade_id, caller=caller):
            async with self._guard.critical_section(trade_id):
                journal = TransferJournal(self._registry)
                try:
                    write = await action(journal)
                    await self._ledger.apply(write)
                    if self._on_commit is not None:
                        await self._on_commit()
                except Exception as exc:
                    await journal.rollback()
                    logger.warning(
                        f"trade.{operation}_rejected",
                        error=type(exc).__name__,
                        detail=str(exc),
                    )
                    raise
                return write.trade

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_trade(
        self,
        caller: str,
        trade_id: str,
        party_a: str,
        party_b: str,
        required_from_a: Iterable[Item],
        required_from_b: Iterable[Item],
    ) -> Trade:
        """Store a new PENDING trade offer."""

        async def action(journal: TransferJournal) -> LedgerWrite:
            return await self._ledger.offer(
                caller, trade_id, party_a, party_b, required_from_a, required_from_b
            )

        trade = await self._mutate("create", caller, trade_id, action)
        logger.info("trade.created", trade_id=trade_id, party_a=party_a, party_b=party_b)
        return trade

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    async def deposit(
        self, caller: str, trade_id: str, collection: str, item_ids: Sequence[str]
    ) -> Trade:
        """Move specific items of the caller's bundle into escrow."""
        items = items_of(collection, item_ids)
        return await self._mutate(
            "deposit",
            caller,
            trade_id,
            lambda journal: self._deposits.deposit(caller, trade_id, items, journal),
        )

    async def deposit_all(
        self,
        caller: str,
        trade_id: str,
        counterparty: str | None = None,
        have_items: Sequence[Item] | None = None,
        want_items: Sequence[Item] | None = None,
    ) -> Trade:
        """Move everything still missing from the caller's bundle into escrow.

        Under the atomic policy the first call also creates the trade, with
        the caller as party A and ``counterparty`` as party B (``None`` leaves
        the offer open to whoever deposits second).
        """
        return await self._mutate(
            "deposit",
            caller,
            trade_id,
            lambda journal: self._deposits.deposit_all(
                caller,
                trade_id,
                journal,
                counterparty=counterparty,
                have_items=have_items,
                want_items=want_items,
            ),
        )

    async def lock(self, caller: str, trade_id: str) -> Trade:
        """Confirm the caller's fully deposited side (locking policy)."""
        return await self._mutate(
            "lock",
            caller,
            trade_id,
            lambda journal: self._deposits.lock(caller, trade_id, journal),
        )

    async def withdraw(
        self, caller: str, trade_id: str, collection: str, item_ids: Sequence[str]
    ) -> Trade:
        """Take deposited items back out of escrow."""
        items = items_of(collection, item_ids)
        return await self._mutate(
            "withdraw",
            caller,
            trade_id,
            lambda journal: self._deposits.withdraw(caller, trade_id, items, journal),
        )

    # ------------------------------------------------------------------
    # Settlement & cancellation
    # ------------------------------------------------------------------

    async def settle(self, caller: str, trade_id: str) -> Trade:
        """Settle an eligible trade on request of either party.

        A failed settlement keeps every deposit in escrow, so it can be retried.
        """

        async def action(journal: TransferJournal) -> LedgerWrite:
            trade = await self._ledger.load(trade_id)
            require_party(trade, caller)
            ensure_pending(trade)
            if not self._executor.is_eligible(trade, require_locks=self._deposits.requires_locks):
                raise NotFullyDepositedError(trade.id)
            event = await self._executor.execute(trade, journal, actor=caller)
            return LedgerWrite(trade, [event])

        return await self._mutate("settle", caller, trade_id, action)

    async def cancel_trade_offer(self, caller: str, trade_id: str) -> Trade:
        """Return all deposits to their depositors and close the trade."""

        async def action(journal: TransferJournal) -> LedgerWrite:
            trade = await self._ledger.load(trade_id)
            return await self._cancellation.cancel(trade, caller, journal)

        return await self._mutate("cancel", caller, trade_id, action)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_trade(self, trade_id: str) -> Trade:
        return await self._ledger.get_trade(trade_id)

    async def get_required_items(self, trade_id: str, party: str) -> tuple[Item, ...]:
        return await self._ledger.get_required_items(trade_id, party)

    async def get_trade_ids_of(self, identity: str) -> list[str]:
        return await self._ledger.get_trade_ids_of(identity)

    async def get_events(self, trade_id: str) -> list[TradeEvent]:
        return await self._ledger.get_events(trade_id)

    async def get_status(self, trade_id: str) -> dict:
        """Return the current status and the lifecycle events that may still fire."""
        trade = await self._ledger.get_trade(trade_id)
        sm = TradeStateMachine(current_status=str(trade.status))
        return {
            "trade_id": trade.id,
            "status": trade.status.value,
            "allowed_events": sm.get_allowed_events(),
            "is_fully_funded": trade.is_fully_funded,
            "is_fully_locked": trade.is_fully_locked,
        }
