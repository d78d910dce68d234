"""Trade domain model.

Plain dataclasses with zero framework dependencies. The Offer Ledger owns the
stored copy of every Trade; services only ever mutate working copies obtained
through ``Trade.copy()`` and hand them back to the ledger on commit.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from nft_escrow.domain.enums import EventType, Side, TradeStatus


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, order=True)
class Item:
    """A single non-fungible item: a collection address plus a token id."""

    collection: str
    item_id: str

    def __str__(self) -> str:
        return f"{self.collection}#{self.item_id}"

    def to_dict(self) -> dict[str, str]:
        return {"collection": self.collection, "item_id": self.item_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Item:
        return cls(collection=str(data["collection"]), item_id=str(data["item_id"]))


def items_of(collection: str, item_ids: Iterable[str | int]) -> tuple[Item, ...]:
    """Build items of one collection, the shape used by deposit/withdraw calls."""
    return tuple(Item(collection=collection, item_id=str(i)) for i in item_ids)


@dataclass
class Trade:
    """A proposed or in-progress bilateral exchange of item bundles."""

    id: str
    party_a: str
    party_b: str | None
    originator: str
    required_from_a: tuple[Item, ...]
    required_from_b: tuple[Item, ...]
    deposited_by_a: set[Item] = field(default_factory=set)
    deposited_by_b: set[Item] = field(default_factory=set)
    is_a_locked: bool = False
    is_b_locked: bool = False
    is_a_cancelled: bool = False
    is_b_cancelled: bool = False
    status: TradeStatus = TradeStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_closed(self) -> bool:
        return self.status != TradeStatus.PENDING

    @property
    def is_a_deposited(self) -> bool:
        return self.is_funded(Side.A)

    @property
    def is_b_deposited(self) -> bool:
        return self.is_funded(Side.B)

    @property
    def is_fully_funded(self) -> bool:
        return self.is_a_deposited and self.is_b_deposited

    @property
    def is_fully_locked(self) -> bool:
        return self.is_a_locked and self.is_b_locked

    # ------------------------------------------------------------------
    # Side helpers
    # ------------------------------------------------------------------

    def side_of(self, identity: str) -> Side | None:
        """Return the side ``identity`` plays in this trade, if any."""
        if identity == self.party_a:
            return Side.A
        if self.party_b is not None and identity == self.party_b:
            return Side.B
        return None

    def party(self, side: Side) -> str | None:
        return self.party_a if side is Side.A else self.party_b

    def required_from(self, side: Side) -> tuple[Item, ...]:
        return self.required_from_a if side is Side.A else self.required_from_b

    def deposited_by(self, side: Side) -> set[Item]:
        return self.deposited_by_a if side is Side.A else self.deposited_by_b

    def missing_from(self, side: Side) -> list[Item]:
        """Required items of ``side`` that are not in escrow yet, in bundle order."""
        deposited = self.deposited_by(side)
        return [item for item in self.required_from(side) if item not in deposited]

    def is_funded(self, side: Side) -> bool:
        # Set equality, not cardinality: every required item must be present.
        return self.deposited_by(side) == set(self.required_from(side))

    def is_locked(self, side: Side) -> bool:
        return self.is_a_locked if side is Side.A else self.is_b_locked

    def set_locked(self, side: Side, locked: bool) -> None:
        if side is Side.A:
            self.is_a_locked = locked
        else:
            self.is_b_locked = locked

    def mark_cancelled_by(self, side: Side) -> None:
        if side is Side.A:
            self.is_a_cancelled = True
        else:
            self.is_b_cancelled = True

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def copy(self) -> Trade:
        """Return a working copy whose mutable sets are not shared."""
        return replace(
            self,
            deposited_by_a=set(self.deposited_by_a),
            deposited_by_b=set(self.deposited_by_b),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and audit metadata."""
        return {
            "id": self.id,
            "party_a": self.party_a,
            "party_b": self.party_b,
            "originator": self.originator,
            "required_from_a": [i.to_dict() for i in self.required_from_a],
            "required_from_b": [i.to_dict() for i in self.required_from_b],
            "deposited_by_a": [i.to_dict() for i in sorted(self.deposited_by_a)],
            "deposited_by_b": [i.to_dict() for i in sorted(self.deposited_by_b)],
            "is_a_deposited": self.is_a_deposited,
            "is_b_deposited": self.is_b_deposited,
            "is_a_locked": self.is_a_locked,
            "is_b_locked": self.is_b_locked,
            "is_a_cancelled": self.is_a_cancelled,
            "is_b_cancelled": self.is_b_cancelled,
            "is_closed": self.is_closed,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class TradeEvent:
    """Immutable audit record of something that happened to a trade.

    Attributes:
        trade_id: The trade this event belongs to.
        event_type: What happened.
        actor: Identity that triggered it (wallet address or "SYSTEM").
        metadata: Event arguments, e.g. parties of a TradeCreated event.
    """

    trade_id: str
    event_type: EventType
    actor: str
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "trade_id": self.trade_id,
            "event_type": self.event_type.value,
            "actor": self.actor,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }
