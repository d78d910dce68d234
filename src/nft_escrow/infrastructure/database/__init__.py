"""Database infrastructure: engine, ORM models and the SQL trade repository."""

from nft_escrow.infrastructure.database.engine import (
    build_engine,
    close_db,
    create_tables,
    get_async_session,
    init_db,
    session_factory_for,
)
from nft_escrow.infrastructure.database.orm_models import (
    Base,
    PartyTradeIndex,
    TradeEventRecord,
    TradeRecord,
)
from nft_escrow.infrastructure.database.repositories import SqlTradeRepository

__all__ = [
    "Base",
    "TradeRecord",
    "TradeEventRecord",
    "PartyTradeIndex",
    "SqlTradeRepository",
    "get_async_session",
    "init_db",
    "close_db",
    "build_engine",
    "create_tables",
    "session_factory_for",
]
