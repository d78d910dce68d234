"""SQLAlchemy 2.0 ORM models for the NFT escrow.

Three tables:
    1. trades             — One row per trade offer, keyed by the caller-supplied id.
    2. party_trade_index  — Append-only identity -> trade id index.
    3. trade_events       — Append-only audit log of everything that happened.

Design decisions:
    - Item bundles stored as JSON lists of {"collection", "item_id"} objects
      (JSONB on PostgreSQL, plain JSON elsewhere).
    - CHECK constraint on status to prevent invalid enum values at DB level.
    - Integer surrogate keys on the append-only tables so insertion order is
      also read order.
    - trade_events is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# 1. trades
# ---------------------------------------------------------------------------
class TradeRecord(Base):
    """A bilateral bundle swap between two identities."""

    __tablename__ = "trades"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # --- Participants ---
    party_a: Mapped[str] = mapped_column(String(64), nullable=False)
    party_b: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        default=None,
        comment="Null while an atomic offer is open to any counterparty",
    )
    originator: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Identity that created the trade (owner-only cancellation)",
    )

    # --- Terms and custody ---
    required_from_a: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    required_from_b: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    deposited_by_a: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    deposited_by_b: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)

    # --- Flags ---
    is_a_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_b_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_a_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_b_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",
        comment="Current lifecycle state (guarded by TradeStateMachine)",
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'SETTLED', 'CANCELLED')",
            name="ck_trade_valid_status",
        ),
        CheckConstraint("party_b IS NULL OR party_a <> party_b", name="ck_trade_distinct_parties"),
        Index("idx_trade_status", "status"),
        Index("idx_trade_party_a", "party_a"),
        Index("idx_trade_party_b", "party_b"),
    )

    def __repr__(self) -> str:
        return f"<TradeRecord id={self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# 2. party_trade_index
# ---------------------------------------------------------------------------
class PartyTradeIndex(Base):
    """Enumeration index; never consulted to decide whether a trade exists."""

    __tablename__ = "party_trade_index"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String(64), nullable=False)
    trade_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("trades.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (Index("idx_party_index_identity", "identity"),)


# ---------------------------------------------------------------------------
# 3. trade_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class TradeEventRecord(Base):
    """Immutable audit record of one thing that happened to a trade.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "trade_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trade_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("trades.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., TRADE_CREATED, TRADE_SUCCESS)",
    )
    actor: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="SYSTEM",
        comment="Who triggered this event (wallet address or SYSTEM)",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JsonType,
        nullable=True,
        default=None,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_event_trade", "trade_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return f"<TradeEventRecord id={self.id} trade={self.trade_id} type={self.event_type}>"


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
event.listen(TradeRecord, "before_update", _set_updated_at)
