"""Offer Ledger — the single owner of trade records.

Stores trades keyed by trade id, keeps the identity -> trade ids index and the
append-only event log. Other services receive working copies from ``load`` /
``propose`` and hand them back through ``commit``; nothing else writes trade
state, and nothing is written until every registry call of the operation has
succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from nft_escrow.domain.authorization import require_creator_is_party
from nft_escrow.domain.enums import EventType
from nft_escrow.domain.exceptions import (
    DuplicateTradeError,
    InvalidTradeTermsError,
    TradeNotFoundError,
)
from nft_escrow.domain.models import Item, Trade, TradeEvent
from nft_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from nft_escrow.domain.repository_protocol import TradeRepository

logger = get_logger(__name__)


def validate_bundles(
    party_a: str,
    party_b: str | None,
    required_from_a: Sequence[Item],
    required_from_b: Sequence[Item],
) -> None:
    """Reject malformed terms before anything is stored."""
    if not party_a:
        raise InvalidTradeTermsError("party_a must be a non-empty identity")
    if party_b is not None and party_a == party_b:
        raise InvalidTradeTermsError("A trade needs two distinct parties")
    if not required_from_a and not required_from_b:
        raise InvalidTradeTermsError("At least one side must put items in the trade")
    for label, bundle in (("A", required_from_a), ("B", required_from_b)):
        if len(set(bundle)) != len(bundle):
            raise InvalidTradeTermsError(f"Bundle of side {label} lists an item twice")
    overlap = set(required_from_a) & set(required_from_b)
    if overlap:
        item = sorted(overlap)[0]
        raise InvalidTradeTermsError(f"Item {item} appears in both bundles")


@dataclass
class LedgerWrite:
    """A working copy plus everything the ledger must store with it."""

    trade: Trade
    events: list[TradeEvent] = field(default_factory=list)
    is_new: bool = False
    new_parties: list[str] = field(default_factory=list)


class OfferLedger:
    """Trade storage with lifecycle-aware reads and transactional commits."""

    def __init__(self, repository: TradeRepository) -> None:
        self._repo = repository

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def propose(
        self,
        caller: str,
        trade_id: str,
        party_a: str,
        party_b: str | None,
        required_from_a: Iterable[Item],
        required_from_b: Iterable[Item],
    ) -> Trade:
        """Validate a new trade and return it unsaved.

        The caller decides when to ``commit`` it, so an atomic first deposit
        can create the trade and fund it in one transaction.
        """
        if not trade_id:
            raise InvalidTradeTermsError("trade_id must be a non-empty string")
        if await self._repo.exists(trade_id):
            raise DuplicateTradeError(trade_id)
        require_creator_is_party(caller, party_a, party_b)

        bundle_a = tuple(required_from_a)
        bundle_b = tuple(required_from_b)
        validate_bundles(party_a, party_b, bundle_a, bundle_b)

        return Trade(
            id=trade_id,
            party_a=party_a,
            party_b=party_b,
            originator=caller,
            required_from_a=bundle_a,
            required_from_b=bundle_b,
        )

    async def offer(
        self,
        caller: str,
        trade_id: str,
        party_a: str,
        party_b: str | None,
        required_from_a: Iterable[Item],
        required_from_b: Iterable[Item],
    ) -> LedgerWrite:
        """Propose a trade and pair it with its TradeCreated event, ready to commit."""
        trade = await self.propose(
            caller, trade_id, party_a, party_b, required_from_a, required_from_b
        )
        return LedgerWrite(trade, [created_event(trade, caller)], is_new=True)

    # ------------------------------------------------------------------
    # Working copies and commit
    # ------------------------------------------------------------------

    async def load(self, trade_id: str) -> Trade:
        """Return a working copy of a stored trade."""
        trade = await self._repo.get(trade_id)
        if trade is None:
            raise TradeNotFoundError(trade_id)
        return trade.copy()

    async def find(self, trade_id: str) -> Trade | None:
        trade = await self._repo.get(trade_id)
        return trade.copy() if trade is not None else None

    async def commit(
        self,
        trade: Trade,
        events: list[TradeEvent],
        is_new: bool = False,
        new_parties: Sequence[str] = (),
    ) -> None:
        """Persist a working copy, index new parties and append events."""
        trade.touch()
        if is_new:
            await self._repo.add(trade)
            new_parties = [p for p in (trade.party_a, trade.party_b) if p is not None]
        else:
            await self._repo.save(trade)
        for identity in new_parties:
            await self._repo.append_to_index(identity, trade.id)
        for event in events:
            await self._repo.record_event(event)
        logger.debug(
            "ledger.committed",
            trade_id=trade.id,
            status=trade.status.value,
            events=[e.event_type.value for e in events],
        )

    async def apply(self, write: LedgerWrite) -> None:
        await self.commit(
            write.trade, write.events, is_new=write.is_new, new_parties=write.new_parties
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_trade(self, trade_id: str) -> Trade:
        return await self.load(trade_id)

    async def get_required_items(self, trade_id: str, party: str) -> tuple[Item, ...]:
        """Items ``party`` must deposit; empty for identities outside the trade."""
        trade = await self.load(trade_id)
        side = trade.side_of(party)
        if side is None:
            return ()
        return trade.required_from(side)

    async def get_trade_ids_of(self, identity: str) -> list[str]:
        return await self._repo.trade_ids_of(identity)

    async def get_events(self, trade_id: str) -> list[TradeEvent]:
        if not await self._repo.exists(trade_id):
            raise TradeNotFoundError(trade_id)
        return await self._repo.events_of(trade_id)


def created_event(trade: Trade, actor: str) -> TradeEvent:
    return TradeEvent(
        trade_id=trade.id,
        event_type=EventType.TRADE_CREATED,
        actor=actor,
        metadata={"party_a": trade.party_a, "party_b": trade.party_b},
    )
