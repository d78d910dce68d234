"""Trade REST API routes.

These endpoints provide the HTTP interface for proposing trades, moving items
in and out of escrow, settling, cancelling and reading trade state. The
caller identity comes from the X-Caller-Address header.

Routes:
    POST   /api/v1/trades                        — Propose a trade
    POST   /api/v1/trades/{id}/deposit           — Deposit specific items
    POST   /api/v1/trades/{id}/deposit-all       — Deposit the caller's whole bundle
    POST   /api/v1/trades/{id}/lock              — Lock the caller's side
    POST   /api/v1/trades/{id}/withdraw          — Take deposited items back
    POST   /api/v1/trades/{id}/settle            — Settle an eligible trade
    POST   /api/v1/trades/{id}/cancel            — Cancel and return all deposits
    GET    /api/v1/trades/{id}                   — Trade details
    GET    /api/v1/trades/{id}/status            — Lightweight status check
    GET    /api/v1/trades/{id}/required/{party}  — Items a party must deposit
    GET    /api/v1/trades/{id}/events            — Audit trail
    GET    /api/v1/parties/{identity}/trades     — Trade ids of an identity
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from nft_escrow.api.deps import get_caller, get_escrow_service
from nft_escrow.logging_config import get_logger
from nft_escrow.schemas.trade import (
    CreateTradeRequest,
    DepositAllRequest,
    DepositRequest,
    ItemRef,
    PartyTradesResponse,
    RequiredItemsResponse,
    TradeEventResponse,
    TradeResponse,
    TradeStatusResponse,
    to_items,
)
from nft_escrow.services.escrow_service import EscrowService  # noqa: TC001

router = APIRouter(prefix="/api/v1/trades", tags=["Trades"])
parties_router = APIRouter(prefix="/api/v1/parties", tags=["Parties"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=TradeResponse,
    status_code=201,
    summary="Propose a new trade",
)
async def create_trade(
    request: CreateTradeRequest,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeResponse:
    """Store a PENDING trade between party A and party B."""
    trade = await svc.create_trade(
        caller,
        request.trade_id,
        request.party_a,
        request.party_b,
        to_items(request.required_from_a),
        to_items(request.required_from_b),
    )
    return TradeResponse.from_trade(trade)


# ---------------------------------------------------------------------------
# Deposits
# ---------------------------------------------------------------------------


@router.post(
    "/{trade_id}/deposit",
    response_model=TradeResponse,
    summary="Deposit items into escrow",
)
async def deposit(
    trade_id: str,
    request: DepositRequest,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeResponse:
    """Move items of the caller's bundle into escrow. May settle the trade."""
    trade = await svc.deposit(caller, trade_id, request.collection, request.item_ids)
    return TradeResponse.from_trade(trade)


@router.post(
    "/{trade_id}/deposit-all",
    response_model=TradeResponse,
    summary="Deposit the caller's whole bundle",
)
async def deposit_all(
    trade_id: str,
    request: DepositAllRequest,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeResponse:
    """Deposit everything still missing; under the atomic policy this also creates the trade."""
    trade = await svc.deposit_all(
        caller,
        trade_id,
        counterparty=request.counterparty,
        have_items=to_items(request.have_items),
        want_items=to_items(request.want_items),
    )
    return TradeResponse.from_trade(trade)


@router.post(
    "/{trade_id}/lock",
    response_model=TradeResponse,
    summary="Lock the caller's side",
)
async def lock(
    trade_id: str,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeResponse:
    trade = await svc.lock(caller, trade_id)
    return TradeResponse.from_trade(trade)


@router.post(
    "/{trade_id}/withdraw",
    response_model=TradeResponse,
    summary="Withdraw deposited items",
)
async def withdraw(
    trade_id: str,
    request: DepositRequest,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeResponse:
    trade = await svc.withdraw(caller, trade_id, request.collection, request.item_ids)
    return TradeResponse.from_trade(trade)


# ---------------------------------------------------------------------------
# Settle & Cancel
# ---------------------------------------------------------------------------


@router.post(
    "/{trade_id}/settle",
    response_model=TradeResponse,
    summary="Settle a fully funded trade",
)
async def settle(
    trade_id: str,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeResponse:
    trade = await svc.settle(caller, trade_id)
    return TradeResponse.from_trade(trade)


@router.post(
    "/{trade_id}/cancel",
    response_model=TradeResponse,
    summary="Cancel a trade",
)
async def cancel(
    trade_id: str,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeResponse:
    """Return every deposit to its depositor and close the trade as CANCELLED."""
    trade = await svc.cancel_trade_offer(caller, trade_id)
    return TradeResponse.from_trade(trade)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/{trade_id}",
    response_model=TradeResponse,
    summary="Get trade details",
)
async def get_trade(
    trade_id: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeResponse:
    trade = await svc.get_trade(trade_id)
    return TradeResponse.from_trade(trade)


@router.get(
    "/{trade_id}/status",
    response_model=TradeStatusResponse,
    summary="Get lightweight status check",
)
async def get_status(
    trade_id: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> TradeStatusResponse:
    """Return the current status and allowed next actions."""
    status_data = await svc.get_status(trade_id)
    return TradeStatusResponse(**status_data)


@router.get(
    "/{trade_id}/required/{party}",
    response_model=RequiredItemsResponse,
    summary="Items a party must deposit",
)
async def get_required_items(
    trade_id: str,
    party: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> RequiredItemsResponse:
    items = await svc.get_required_items(trade_id, party)
    return RequiredItemsResponse(
        trade_id=trade_id,
        party=party,
        items=[ItemRef(**item.to_dict()) for item in items],
    )


@router.get(
    "/{trade_id}/events",
    response_model=list[TradeEventResponse],
    summary="Get audit trail",
)
async def get_events(
    trade_id: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> list[TradeEventResponse]:
    """Return the full audit trail for a trade."""
    events = await svc.get_events(trade_id)
    return [TradeEventResponse.from_event(e) for e in events]


@parties_router.get(
    "/{identity}/trades",
    response_model=PartyTradesResponse,
    summary="List trade ids of an identity",
)
async def get_trade_ids_of(
    identity: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> PartyTradesResponse:
    trade_ids = await svc.get_trade_ids_of(identity)
    return PartyTradesResponse(identity=identity, trade_ids=trade_ids)
