"""Pydantic API schemas."""

from nft_escrow.schemas.trade import (
    CreateTradeRequest,
    DepositAllRequest,
    DepositRequest,
    HealthResponse,
    ItemRef,
    PartyTradesResponse,
    RequiredItemsResponse,
    TradeEventResponse,
    TradeResponse,
    TradeStatusResponse,
)

__all__ = [
    "CreateTradeRequest",
    "DepositAllRequest",
    "DepositRequest",
    "HealthResponse",
    "ItemRef",
    "PartyTradesResponse",
    "RequiredItemsResponse",
    "TradeEventResponse",
    "TradeResponse",
    "TradeStatusResponse",
]
