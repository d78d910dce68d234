"""Domain layer — pure business logic with zero framework dependencies."""

from nft_escrow.domain.enums import (
    CancelPolicy,
    DepositPolicy,
    EventType,
    Side,
    TradeStatus,
)
from nft_escrow.domain.exceptions import (
    AlreadyClosedError,
    EscrowError,
    TradeNotFoundError,
    UnauthorizedCallerError,
)
from nft_escrow.domain.models import Item, Trade, TradeEvent, items_of
from nft_escrow.domain.registry_protocol import AssetRegistry
from nft_escrow.domain.repository_protocol import TradeRepository
from nft_escrow.domain.state_machine import (
    TradeStateMachine,
    validate_transition,
)

__all__ = [
    "CancelPolicy",
    "DepositPolicy",
    "EventType",
    "Side",
    "TradeStatus",
    "AlreadyClosedError",
    "EscrowError",
    "TradeNotFoundError",
    "UnauthorizedCallerError",
    "Item",
    "Trade",
    "TradeEvent",
    "items_of",
    "AssetRegistry",
    "TradeRepository",
    "TradeStateMachine",
    "validate_transition",
]
