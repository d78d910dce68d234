"""Swap Executor — settles a fully funded trade.

Every item deposited by A goes to B and every item deposited by B goes to A
in one batch. The executor first confirms that the escrow really holds each
item, so it never asks the registry to move something it does not own. If any
transfer of the batch fails, the transfers already made are reversed and the
trade stays PENDING with all deposits intact.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from nft_escrow.domain.enums import EventType, Side
from nft_escrow.domain.exceptions import (
    SettlementFailedError,
    TransferFailedError,
)
from nft_escrow.domain.models import Trade, TradeEvent
from nft_escrow.domain.state_machine import apply_transition
from nft_escrow.logging_config import get_logger
from nft_escrow.services.transfers import Transfer, TransferJournal

if TYPE_CHECKING:
    from nft_escrow.domain.registry_protocol import AssetRegistry

logger = get_logger(__name__)


class SwapExecutor:
    """Executes the mutual transfers of a settlement."""

    def __init__(self, registry: AssetRegistry, escrow_address: str) -> None:
        self._registry = registry
        self._escrow = escrow_address

    def is_eligible(self, trade: Trade, require_locks: bool = False) -> bool:
        """Both deposited sets equal their required sets (and both sides locked)."""
        if trade.is_closed or trade.party_b is None:
            return False
        if require_locks and not trade.is_fully_locked:
            return False
        return trade.is_fully_funded

    async def execute(self, trade: Trade, journal: TransferJournal, actor: str) -> TradeEvent:
        """Swap the escrowed bundles and close ``trade``.

        Raises:
            SettlementFailedError: custody check or a transfer failed. Transfers
                made by this batch have already been reversed.
        """
        batch = await self._plan(trade)

        checkpoint = journal.checkpoint
        try:
            await journal.transfer_all(batch)
        except TransferFailedError as exc:
            await journal.rollback(to=checkpoint)
            logger.error("trade.settlement_failed", trade_id=trade.id, error=exc.message)
            raise SettlementFailedError(trade.id, exc.message) from exc

        apply_transition(trade, "settle")

        logger.info(
            "trade.settled",
            trade_id=trade.id,
            party_a=trade.party_a,
            party_b=trade.party_b,
            items=len(batch),
        )
        return TradeEvent(
            trade_id=trade.id,
            event_type=EventType.TRADE_SUCCESS,
            actor=actor,
            metadata={"party_a": trade.party_a, "party_b": trade.party_b},
        )

    async def _plan(self, trade: Trade) -> list[Transfer]:
        batch: list[Transfer] = []
        for side in (Side.A, Side.B):
            recipient = trade.party(side.other)
            for item in sorted(trade.deposited_by(side)):
                owner = await self._registry.owner_of(item.collection, item.item_id)
                if owner != self._escrow:
                    logger.error(
                        "trade.custody_mismatch",
                        trade_id=trade.id,
                        item=str(item),
                        owner=owner,
                    )
                    raise SettlementFailedError(
                        trade.id, f"escrow does not hold {item} (owner: {owner})"
                    )
                batch.append(Transfer(self._escrow, recipient, item))
        return batch

