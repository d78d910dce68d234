"""Cancellation Handler — unwinds an open trade.

Cancellation is unconditional once authorized: every item either side has
deposited goes back to its depositor, whichever side asked, and the trade
closes as CANCELLED. Returns run as one batch; if any of them fails, the
returns already made are reversed and the trade stays PENDING.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from nft_escrow.domain.authorization import require_may_cancel
from nft_escrow.domain.enums import CancelPolicy, EventType, Side
from nft_escrow.domain.exceptions import CancellationFailedError, TransferFailedError
from nft_escrow.domain.models import TradeEvent
from nft_escrow.domain.state_machine import apply_transition, ensure_pending
from nft_escrow.logging_config import get_logger
from nft_escrow.services.offer_ledger import LedgerWrite
from nft_escrow.services.transfers import Transfer

if TYPE_CHECKING:
    from nft_escrow.domain.models import Trade
    from nft_escrow.domain.registry_protocol import AssetRegistry
    from nft_escrow.services.transfers import TransferJournal

logger = get_logger(__name__)


class CancellationHandler:
    def __init__(
        self,
        policy: CancelPolicy,
        registry: AssetRegistry,
        escrow_address: str,
    ) -> None:
        self.policy = CancelPolicy(policy)
        self._registry = registry
        self._escrow = escrow_address

    async def cancel(self, trade: Trade, caller: str, journal: TransferJournal) -> LedgerWrite:
        """Return all deposits and close ``trade`` as CANCELLED.

        Raises:
            UnauthorizedCallerError: caller is not a party.
            OnlyOwnerCanCancelError: owner-only policy and caller is not the originator.
            AlreadyClosedError: trade already settled or cancelled.
            CancellationFailedError: a return transfer failed; nothing was changed.
        """
        side = require_may_cancel(trade, caller, self.policy)
        ensure_pending(trade)

        batch = await self._plan(trade)
        checkpoint = journal.checkpoint
        try:
            await journal.transfer_all(batch)
        except TransferFailedError as exc:
            await journal.rollback(to=checkpoint)
            logger.error("trade.cancellation_failed", trade_id=trade.id, error=exc.message)
            raise CancellationFailedError(trade.id, exc.message) from exc

        trade.mark_cancelled_by(side)
        apply_transition(trade, "cancel")

        logger.info(
            "trade.cancelled",
            trade_id=trade.id,
            cancelled_by=side.value,
            returned=len(batch),
        )
        event = TradeEvent(
            trade_id=trade.id,
            event_type=EventType.TRADE_CANCELLED,
            actor=caller,
            metadata={"cancelled_by": caller, "side": side.value},
        )
        return LedgerWrite(trade, [event])

    async def _plan(self, trade: Trade) -> list[Transfer]:
        batch: list[Transfer] = []
        for side in (Side.A, Side.B):
            depositor = trade.party(side)
            for item in sorted(trade.deposited_by(side)):
                owner = await self._registry.owner_of(item.collection, item.item_id)
                if owner != self._escrow:
                    raise CancellationFailedError(
                        trade.id, f"escrow does not hold {item} (owner: {owner})"
                    )
                batch.append(Transfer(self._escrow, depositor, item))
        return batch
