"""Pydantic schemas for the Trade API.

These schemas define the request/response shapes for the REST API. They are
separate from the domain dataclasses to keep the HTTP contract independent
of the internal model.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - pydantic resolves it at runtime

from pydantic import BaseModel, Field

from nft_escrow.domain.models import Item, Trade, TradeEvent

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ItemRef(BaseModel):
    """One non-fungible item."""

    collection: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Address of the item's collection",
        examples=["0xBC4CA0EdA7647A8aB7C2061c2E118A18a936f13D"],
    )
    item_id: str = Field(..., min_length=1, max_length=78, examples=["7"])

    def to_domain(self) -> Item:
        return Item(collection=self.collection, item_id=self.item_id)


def to_items(refs: list[ItemRef] | None) -> list[Item] | None:
    if refs is None:
        return None
    return [ref.to_domain() for ref in refs]


class CreateTradeRequest(BaseModel):
    """Request body for proposing a trade. The caller must be one of the parties."""

    trade_id: str = Field(..., min_length=1, max_length=128, examples=["T1"])
    party_a: str = Field(..., min_length=1, max_length=64)
    party_b: str = Field(..., min_length=1, max_length=64)
    required_from_a: list[ItemRef] = Field(default_factory=list)
    required_from_b: list[ItemRef] = Field(default_factory=list)


class DepositRequest(BaseModel):
    """Request body for depositing (or withdrawing) items of one collection."""

    collection: str = Field(..., min_length=1, max_length=64)
    item_ids: list[str] = Field(..., min_length=1, description="Token ids to move")


class DepositAllRequest(BaseModel):
    """Request body for depositing the caller's whole bundle.

    Under the atomic policy the first call creates the trade: ``have_items``
    become the caller's bundle and ``want_items`` the counterparty's. Leaving
    ``counterparty`` empty opens the offer to anyone.
    """

    counterparty: str | None = Field(default=None, max_length=64)
    have_items: list[ItemRef] | None = None
    want_items: list[ItemRef] | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class TradeResponse(BaseModel):
    """Response schema for a trade."""

    id: str
    party_a: str
    party_b: str | None
    originator: str
    required_from_a: list[ItemRef]
    required_from_b: list[ItemRef]
    deposited_by_a: list[ItemRef]
    deposited_by_b: list[ItemRef]
    is_a_deposited: bool
    is_b_deposited: bool
    is_a_locked: bool
    is_b_locked: bool
    is_a_cancelled: bool
    is_b_cancelled: bool
    is_closed: bool
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_trade(cls, trade: Trade) -> TradeResponse:
        return cls.model_validate(trade.to_dict())


class TradeEventResponse(BaseModel):
    """Response schema for an audit event."""

    trade_id: str
    event_type: str
    actor: str
    metadata: dict = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_event(cls, event: TradeEvent) -> TradeEventResponse:
        return cls.model_validate(event.to_dict())


class TradeStatusResponse(BaseModel):
    """Lightweight status check response."""

    trade_id: str
    status: str
    is_fully_funded: bool
    is_fully_locked: bool
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class RequiredItemsResponse(BaseModel):
    trade_id: str
    party: str
    items: list[ItemRef]


class PartyTradesResponse(BaseModel):
    identity: str
    trade_ids: list[str]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    registry: str = "unknown"
