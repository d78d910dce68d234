"""Call-level atomicity for registry transfers.

Two building blocks shared by every mutating entry point:

    MutationGuard    serializes mutating calls and rejects re-entrant ones.
    TransferJournal  records every registry transfer made during one call so
                     the whole call can be unwound if any later step fails.

A call therefore either completes every transfer and commits the trade, or
reverses the transfers it made and leaves ledger state untouched.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nft_escrow.domain.exceptions import (
    EscrowIntegrityError,
    ReentrantCallError,
    TransferFailedError,
)
from nft_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from nft_escrow.domain.models import Item
    from nft_escrow.domain.registry_protocol import AssetRegistry

logger = get_logger(__name__)

# Trade id of the mutating call running in the current task, if any.
_active_call: ContextVar[str | None] = ContextVar("nft_escrow_active_call", default=None)


class MutationGuard:
    """Critical section around every mutating escrow call.

    Calls from different tasks queue on the lock, giving a total order.
    A call made from inside a running one (e.g. a registry callback) shares
    the task context and is rejected instead of deadlocking.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def critical_section(self, trade_id: str) -> AsyncIterator[None]:
        active = _active_call.get()
        if active is not None:
            logger.warning("escrow.reentrant_call", trade_id=trade_id, active_trade_id=active)
            raise ReentrantCallError(trade_id)
        async with self._lock:
            token = _active_call.set(trade_id)
            try:
                yield
            finally:
                _active_call.reset(token)


@dataclass(frozen=True)
class Transfer:
    sender: str
    recipient: str
    item: Item


class TransferJournal:
    """Executes registry transfers and remembers them for rollback."""

    def __init__(self, registry: AssetRegistry) -> None:
        self._registry = registry
        self._completed: list[Transfer] = []

    @property
    def completed(self) -> list[Transfer]:
        return list(self._completed)

    @property
    def checkpoint(self) -> int:
        """Position to pass to ``rollback`` to undo only later transfers."""
        return len(self._completed)

    async def transfer(self, sender: str, recipient: str, item: Item) -> None:
        """Move one item. Raises TransferFailedError if the registry refuses."""
        try:
            ok = await self._registry.transfer(sender, recipient, item.collection, item.item_id)
        except Exception as exc:
            logger.warning(
                "registry.transfer_error",
                item=str(item),
                sender=sender,
                recipient=recipient,
                error=str(exc),
            )
            raise TransferFailedError(str(item), sender, recipient) from exc
        if not ok:
            raise TransferFailedError(str(item), sender, recipient)
        self._completed.append(Transfer(sender, recipient, item))

    async def transfer_all(self, transfers: list[Transfer]) -> None:
        for t in transfers:
            await self.transfer(t.sender, t.recipient, t.item)

    async def rollback(self, to: int = 0) -> None:
        """Reverse completed transfers after position ``to``, newest first."""
        while len(self._completed) > to:
            t = self._completed.pop()
            try:
                ok = await self._registry.transfer(
                    t.recipient, t.sender, t.item.collection, t.item.item_id
                )
            except Exception as exc:
                logger.critical("registry.rollback_error", item=str(t.item), error=str(exc))
                raise EscrowIntegrityError(
                    f"Could not return {t.item} from {t.recipient} to {t.sender}"
                ) from exc
            if not ok:
                logger.critical("registry.rollback_refused", item=str(t.item))
                raise EscrowIntegrityError(
                    f"Could not return {t.item} from {t.recipient} to {t.sender}"
                )
            logger.debug("registry.transfer_reverted", item=str(t.item), to=t.sender)
