"""Authorization Guard.

Every mutating entry point resolves the caller against the trade's declared
parties before looking at any other trade state. Unknown callers are always
rejected with UnauthorizedCallerError, so a non-party learns nothing beyond
the fact that the trade exists.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from nft_escrow.domain.enums import CancelPolicy
from nft_escrow.domain.exceptions import (
    OnlyOwnerCanCancelError,
    UnauthorizedCallerError,
)

if TYPE_CHECKING:
    from nft_escrow.domain.enums import Side
    from nft_escrow.domain.models import Trade


def require_party(trade: Trade, caller: str) -> Side:
    """Return the caller's side or fail closed."""
    side = trade.side_of(caller)
    if side is None:
        raise UnauthorizedCallerError(caller)
    return side


def require_creator_is_party(caller: str, party_a: str, party_b: str | None) -> None:
    """A trade may only be proposed by one of its own parties."""
    if caller != party_a and caller != party_b:
        raise UnauthorizedCallerError(
            caller, message=f"Caller {caller} is not a party of the proposed trade"
        )


def require_may_cancel(trade: Trade, caller: str, policy: CancelPolicy) -> Side:
    """Apply the configured cancellation policy and return the caller's side."""
    side = require_party(trade, caller)
    if policy == CancelPolicy.OWNER_ONLY and caller != trade.originator:
        raise OnlyOwnerCanCancelError(caller)
    return side
