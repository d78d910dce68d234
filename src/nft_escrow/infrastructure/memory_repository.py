"""In-memory trade storage.

Used by the simulation and the service tests. Stores copies on the way in and
hands out copies on the way out, so callers never share state with the store.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nft_escrow.domain.models import Trade, TradeEvent


class InMemoryTradeRepository:
    def __init__(self) -> None:
        self._trades: dict[str, Trade] = {}
        self._index: defaultdict[str, list[str]] = defaultdict(list)
        self._events: list[TradeEvent] = []

    async def get(self, trade_id: str) -> Trade | None:
        trade = self._trades.get(trade_id)
        return trade.copy() if trade is not None else None

    async def exists(self, trade_id: str) -> bool:
        return trade_id in self._trades

    async def add(self, trade: Trade) -> None:
        if trade.id in self._trades:
            raise KeyError(f"trade {trade.id} already stored")
        self._trades[trade.id] = trade.copy()

    async def save(self, trade: Trade) -> None:
        if trade.id not in self._trades:
            raise KeyError(f"trade {trade.id} is not stored")
        self._trades[trade.id] = trade.copy()

    async def append_to_index(self, identity: str, trade_id: str) -> None:
        self._index[identity].append(trade_id)

    async def trade_ids_of(self, identity: str) -> list[str]:
        return list(self._index.get(identity, []))

    async def record_event(self, event: TradeEvent) -> None:
        self._events.append(event)

    async def events_of(self, trade_id: str) -> list[TradeEvent]:
        return [e for e in self._events if e.trade_id == trade_id]
