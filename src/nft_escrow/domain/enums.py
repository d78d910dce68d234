"""Domain enumerations for the NFT escrow.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class TradeStatus(enum.StrEnum):
    """Lifecycle states of a trade.

    State transitions are enforced by the TradeStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    PENDING = "PENDING"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"


class Side(enum.StrEnum):
    """The two sides of a bilateral trade."""

    A = "A"
    B = "B"

    @property
    def other(self) -> "Side":
        return Side.B if self is Side.A else Side.A


class EventType(enum.StrEnum):
    """Types of audit events recorded in the trade_events table.

    Every mutating call that succeeds produces at least one event.
    This is the append-only trail used to reconstruct what happened to a trade.
    """

    TRADE_CREATED = "TRADE_CREATED"
    ITEMS_DEPOSITED = "ITEMS_DEPOSITED"
    ITEMS_WITHDRAWN = "ITEMS_WITHDRAWN"
    SIDE_LOCKED = "SIDE_LOCKED"
    TRADE_SUCCESS = "TRADE_SUCCESS"
    TRADE_CANCELLED = "TRADE_CANCELLED"


class DepositPolicy(enum.StrEnum):
    """How parties move items into escrow.

    explicit: trade created up front, items deposited per call, swap fires
              once both sides are complete.
    locking:  as explicit, but each side must also lock before the swap.
    atomic:   the first deposit_all defines the terms and creates the trade,
              each side deposits its whole bundle in one call.
    """

    EXPLICIT = "explicit"
    LOCKING = "locking"
    ATOMIC = "atomic"


class CancelPolicy(enum.StrEnum):
    """Who may cancel a pending trade."""

    EITHER_PARTY = "either_party"
    OWNER_ONLY = "owner_only"
