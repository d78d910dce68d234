"""Asset registry adapters.

Two implementations of ``AssetRegistry``:

    InMemoryAssetRegistry  simulated ownership records with ERC-721 style
                           approvals. Used by the simulation, tests and the
                           default ``registry_mode="simulated"`` deployment.
    HttpAssetRegistry      client for a remote registry service.

Usage:
    from nft_escrow.infrastructure.registry import init_registry, get_registry, close_registry

    await init_registry()
    registry = get_registry()
    owner = await registry.owner_of("0xPunks", "7")
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from nft_escrow.config import get_settings
from nft_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from nft_escrow.domain.registry_protocol import AssetRegistry

logger = get_logger(__name__)

TransferHook = Callable[[str, str, str, str], Awaitable[None]]

# Errors raised before the request reached the registry.
_NOT_SENT = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class InMemoryAssetRegistry:
    """Ownership records kept in a dict, keyed by (collection, item_id).

    Transfer rules:
        - the sender must be the current owner;
        - the escrow may move anything it owns;
        - anyone else's item moves only if the owner approved the escrow for
          that item (cleared by the transfer) or for the whole collection;
        - the escrow may take back an item it released, as long as the item
          has not moved since. This is what honors compensating transfers.
    """

    def __init__(self, escrow_address: str) -> None:
        self.escrow_address = escrow_address
        self._owners: dict[tuple[str, str], str] = {}
        self._approved: set[tuple[str, str]] = set()
        self._operators: set[tuple[str, str]] = set()
        self._released: dict[tuple[str, str], str] = {}
        self._frozen: set[tuple[str, str]] = set()
        self.transfer_log: list[tuple[str, str, str, str]] = []
        self.on_transfer: TransferHook | None = None

    # ------------------------------------------------------------------
    # Test and simulation helpers
    # ------------------------------------------------------------------

    def mint(self, owner: str, collection: str, *item_ids: str | int) -> None:
        for item_id in item_ids:
            self._owners[(collection, str(item_id))] = owner

    def approve(self, owner: str, collection: str, *item_ids: str | int) -> None:
        """Approve the escrow for single items. Only the owner's approval counts."""
        for item_id in item_ids:
            key = (collection, str(item_id))
            if self._owners.get(key) == owner:
                self._approved.add(key)

    def set_approval_for_all(self, owner: str, collection: str, approved: bool = True) -> None:
        if approved:
            self._operators.add((owner, collection))
        else:
            self._operators.discard((owner, collection))

    def freeze(self, collection: str, item_id: str | int) -> None:
        """Make every transfer of this item fail, e.g. a paused contract."""
        self._frozen.add((collection, str(item_id)))

    def unfreeze(self, collection: str, item_id: str | int) -> None:
        self._frozen.discard((collection, str(item_id)))

    def force_owner(self, owner: str, collection: str, item_id: str | int) -> None:
        """Overwrite ownership behind the escrow's back."""
        key = (collection, str(item_id))
        self._owners[key] = owner
        self._released.pop(key, None)

    # ------------------------------------------------------------------
    # AssetRegistry
    # ------------------------------------------------------------------

    async def owner_of(self, collection: str, item_id: str) -> str | None:
        return self._owners.get((collection, item_id))

    async def is_approved_for_escrow(self, owner: str, collection: str, item_id: str) -> bool:
        key = (collection, item_id)
        if self._owners.get(key) != owner:
            return False
        return key in self._approved or (owner, collection) in self._operators

    async def transfer(self, sender: str, recipient: str, collection: str, item_id: str) -> bool:
        if self.on_transfer is not None:
            await self.on_transfer(sender, recipient, collection, item_id)

        key = (collection, item_id)
        if key in self._frozen or self._owners.get(key) != sender:
            return False

        if sender == self.escrow_address:
            self._released[key] = recipient
        elif recipient == self.escrow_address and self._released.get(key) == sender:
            del self._released[key]
        elif key in self._approved or (sender, collection) in self._operators:
            self._released.pop(key, None)
        else:
            return False

        self._approved.discard(key)
        self._owners[key] = recipient
        self.transfer_log.append((sender, recipient, collection, item_id))
        return True

    def items_owned_by(self, owner: str) -> list[tuple[str, str]]:
        return sorted(key for key, holder in self._owners.items() if holder == owner)


class HttpAssetRegistry:
    """Client for a registry service exposing items under /collections.

    Reads are idempotent and retried on transport errors with tenacity.
    Transfers are sent exactly once. A 4xx answer or a connection that never
    opened is a refused transfer. When the outcome is unknown (a 5xx, or the
    connection dropped after sending) the item's owner is read back, so a
    transfer that did land is reported and can be reversed.
    """

    def __init__(
        self,
        base_url: str,
        escrow_address: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.escrow_address = escrow_address
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _item_path(collection: str, item_id: str) -> str:
        return f"/collections/{collection}/items/{item_id}"

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True,
    )
    async def owner_of(self, collection: str, item_id: str) -> str | None:
        response = await self._client.get(f"{self._item_path(collection, item_id)}/owner")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json().get("owner")

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True,
    )
    async def is_approved_for_escrow(self, owner: str, collection: str, item_id: str) -> bool:
        response = await self._client.get(
            f"{self._item_path(collection, item_id)}/approval",
            params={"owner": owner, "operator": self.escrow_address},
        )
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return bool(response.json().get("approved", False))

    async def transfer(self, sender: str, recipient: str, collection: str, item_id: str) -> bool:
        try:
            response = await self._client.post(
                f"{self._item_path(collection, item_id)}/transfer",
                json={"from": sender, "to": recipient, "operator": self.escrow_address},
            )
        except _NOT_SENT as exc:
            logger.warning(
                "registry.http_transfer_error",
                collection=collection,
                item_id=item_id,
                error=str(exc),
            )
            return False
        except httpx.TransportError as exc:
            logger.warning(
                "registry.http_transfer_unanswered",
                collection=collection,
                item_id=item_id,
                error=str(exc),
            )
            return await self._transfer_landed(recipient, collection, item_id)
        if response.is_server_error:
            logger.warning(
                "registry.http_transfer_unanswered",
                collection=collection,
                item_id=item_id,
                status=response.status_code,
            )
            return await self._transfer_landed(recipient, collection, item_id)
        if response.is_error:
            logger.warning(
                "registry.http_transfer_refused",
                collection=collection,
                item_id=item_id,
                status=response.status_code,
            )
            return False
        return bool(response.json().get("success", False))

    async def _transfer_landed(self, recipient: str, collection: str, item_id: str) -> bool:
        """Settle an unknown transfer outcome by reading the item's owner.

        The request may have been applied before the reply was lost, so the
        ownership record decides. A failing read propagates and the caller
        treats the transfer as failed.
        """
        owner = await self.owner_of(collection, item_id)
        landed = owner == recipient
        logger.info(
            "registry.http_transfer_reconciled",
            collection=collection,
            item_id=item_id,
            landed=landed,
        )
        return landed


# --- Process-wide registry ---

_registry: InMemoryAssetRegistry | HttpAssetRegistry | None = None


async def init_registry() -> AssetRegistry:
    """Create the registry selected by settings. Called during app startup."""
    global _registry
    settings = get_settings()
    if settings.registry_mode == "http":
        _registry = HttpAssetRegistry(
            settings.registry_url,
            settings.escrow_address,
            timeout=settings.registry_timeout_seconds,
        )
        logger.info("registry.connected", url=settings.registry_url)
    else:
        _registry = InMemoryAssetRegistry(settings.escrow_address)
        logger.info("registry.simulated", escrow=settings.escrow_address)
    return _registry


def get_registry() -> AssetRegistry:
    """Return the registry singleton. Must call init_registry() first."""
    if _registry is None:
        raise RuntimeError("Registry not initialized. Call init_registry() first.")
    return _registry


async def close_registry() -> None:
    """Release the registry. Called during app shutdown."""
    global _registry
    if isinstance(_registry, HttpAssetRegistry):
        await _registry.aclose()
        logger.info("registry.disconnected")
    _registry = None
