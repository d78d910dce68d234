"""SQL implementation of the trade repository.

Translates between domain dataclasses and ORM rows. Like every repository it
accepts an AsyncSession and never manages its own transactions; the session
dependency commits once the request has succeeded.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from nft_escrow.domain.enums import EventType, TradeStatus
from nft_escrow.domain.models import Item, Trade, TradeEvent
from nft_escrow.infrastructure.database.orm_models import (
    PartyTradeIndex,
    TradeEventRecord,
    TradeRecord,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession


def _aware(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _dump_items(items: Iterable[Item]) -> list[dict[str, str]]:
    return [item.to_dict() for item in items]


def _load_items(data: list | None) -> list[Item]:
    return [Item.from_dict(entry) for entry in data or []]


def _to_domain(record: TradeRecord) -> Trade:
    return Trade(
        id=record.id,
        party_a=record.party_a,
        party_b=record.party_b,
        originator=record.originator,
        required_from_a=tuple(_load_items(record.required_from_a)),
        required_from_b=tuple(_load_items(record.required_from_b)),
        deposited_by_a=set(_load_items(record.deposited_by_a)),
        deposited_by_b=set(_load_items(record.deposited_by_b)),
        is_a_locked=record.is_a_locked,
        is_b_locked=record.is_b_locked,
        is_a_cancelled=record.is_a_cancelled,
        is_b_cancelled=record.is_b_cancelled,
        status=TradeStatus(record.status),
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


def _copy_into(record: TradeRecord, trade: Trade) -> None:
    record.party_b = trade.party_b
    record.deposited_by_a = _dump_items(sorted(trade.deposited_by_a))
    record.deposited_by_b = _dump_items(sorted(trade.deposited_by_b))
    record.is_a_locked = trade.is_a_locked
    record.is_b_locked = trade.is_b_locked
    record.is_a_cancelled = trade.is_a_cancelled
    record.is_b_cancelled = trade.is_b_cancelled
    record.status = trade.status.value
    record.updated_at = trade.updated_at


class SqlTradeRepository:
    """Data access for trades, the party index and the event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _record(self, trade_id: str) -> TradeRecord | None:
        result = await self._session.execute(
            select(TradeRecord).where(TradeRecord.id == trade_id)
        )
        return result.scalar_one_or_none()

    async def get(self, trade_id: str) -> Trade | None:
        record = await self._record(trade_id)
        return _to_domain(record) if record is not None else None

    async def exists(self, trade_id: str) -> bool:
        result = await self._session.execute(
            select(TradeRecord.id).where(TradeRecord.id == trade_id)
        )
        return result.scalar_one_or_none() is not None

    async def add(self, trade: Trade) -> None:
        """Insert a new trade; terms and originator are written only here."""
        record = TradeRecord(
            id=trade.id,
            party_a=trade.party_a,
            originator=trade.originator,
            required_from_a=_dump_items(trade.required_from_a),
            required_from_b=_dump_items(trade.required_from_b),
            created_at=trade.created_at,
        )
        _copy_into(record, trade)
        self._session.add(record)
        await self._session.flush()

    async def save(self, trade: Trade) -> None:
        record = await self._record(trade.id)
        if record is None:
            raise KeyError(f"trade {trade.id} is not stored")
        _copy_into(record, trade)
        await self._session.flush()

    async def append_to_index(self, identity: str, trade_id: str) -> None:
        self._session.add(PartyTradeIndex(identity=identity, trade_id=trade_id))
        await self._session.flush()

    async def trade_ids_of(self, identity: str) -> list[str]:
        result = await self._session.execute(
            select(PartyTradeIndex.trade_id)
            .where(PartyTradeIndex.identity == identity)
            .order_by(PartyTradeIndex.id.asc())
        )
        return list(result.scalars().all())

    async def record_event(self, event: TradeEvent) -> None:
        """Append a new audit event. This is the ONLY write operation allowed."""
        self._session.add(
            TradeEventRecord(
                trade_id=event.trade_id,
                event_type=event.event_type.value,
                actor=event.actor,
                metadata_json=event.metadata or None,
                created_at=event.created_at,
            )
        )
        await self._session.flush()

    async def events_of(self, trade_id: str) -> list[TradeEvent]:
        """Fetch all events for a trade in the order they were recorded."""
        result = await self._session.execute(
            select(TradeEventRecord)
            .where(TradeEventRecord.trade_id == trade_id)
            .order_by(TradeEventRecord.id.asc())
        )
        return [
            TradeEvent(
                trade_id=row.trade_id,
                event_type=EventType(row.event_type),
                actor=row.actor,
                metadata=row.metadata_json or {},
                created_at=_aware(row.created_at),
            )
            for row in result.scalars().all()
        ]
