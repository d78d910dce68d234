"""Trade storage protocol used by the Offer Ledger.

Two implementations:
    - infrastructure/memory_repository.py   InMemoryTradeRepository
    - infrastructure/database/repositories.py  SqlTradeRepository

Repositories never decide business rules and never manage their own
transactions; the Offer Ledger only calls the write methods at commit time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from nft_escrow.domain.models import Trade, TradeEvent


@runtime_checkable
class TradeRepository(Protocol):
    async def get(self, trade_id: str) -> Trade | None:
        """Return a detached copy of the stored trade, or None."""
        ...

    async def exists(self, trade_id: str) -> bool: ...

    async def add(self, trade: Trade) -> None:
        """Insert a new trade record."""
        ...

    async def save(self, trade: Trade) -> None:
        """Overwrite the stored record of an existing trade."""
        ...

    async def append_to_index(self, identity: str, trade_id: str) -> None:
        """Append ``trade_id`` to the identity -> trade ids index."""
        ...

    async def trade_ids_of(self, identity: str) -> list[str]: ...

    async def record_event(self, event: TradeEvent) -> None:
        """Append an audit event. This is the only write allowed on events."""
        ...

    async def events_of(self, trade_id: str) -> list[TradeEvent]: ...
