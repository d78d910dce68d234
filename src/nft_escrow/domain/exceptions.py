"""Domain exceptions for the NFT escrow.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.

Groups:
    - Input errors: rejected before any state mutation or registry call.
    - Authorization errors: caller is not allowed to act on the trade.
    - Registry errors: the asset registry refused a transfer; the call is
      rolled back completely.
    - State errors: the operation does not apply to the trade's lifecycle stage.
"""

from __future__ import annotations


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class TradeNotFoundError(EscrowError):
    """Raised when a trade ID does not exist."""

    def __init__(self, trade_id: str) -> None:
        super().__init__(
            message=f"Trade not found: {trade_id}",
            code="TRADE_NOT_FOUND",
        )
        self.trade_id = trade_id


class DuplicateTradeError(EscrowError):
    """Raised when a trade ID is already taken (open or closed)."""

    def __init__(self, trade_id: str) -> None:
        super().__init__(
            message=f"Trade id already exists: {trade_id}",
            code="DUPLICATE_TRADE",
        )
        self.trade_id = trade_id


class InvalidTradeTermsError(EscrowError):
    """Raised when the proposed bundles or parties are malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_TRADE_TERMS")


class TermsMismatchError(EscrowError):
    """Raised when a deposit_all call disagrees with the stored terms."""

    def __init__(self, trade_id: str) -> None:
        super().__init__(
            message=f"Supplied terms do not match trade {trade_id}",
            code="TERMS_MISMATCH",
        )
        self.trade_id = trade_id


class ItemNotRequiredError(EscrowError):
    """Raised when a party deposits an item that is not part of its bundle."""

    def __init__(self, trade_id: str, item: str) -> None:
        super().__init__(
            message=f"Item {item} is not required from caller in trade {trade_id}",
            code="ITEM_NOT_REQUIRED",
        )
        self.item = item


class ItemAlreadyDepositedError(EscrowError):
    """Raised when an item is deposited twice."""

    def __init__(self, trade_id: str, item: str) -> None:
        super().__init__(
            message=f"Item {item} is already deposited in trade {trade_id}",
            code="ITEM_ALREADY_DEPOSITED",
        )
        self.item = item


class NotDepositedError(EscrowError):
    """Raised when withdrawing an item the caller never deposited."""

    def __init__(self, trade_id: str, item: str) -> None:
        super().__init__(
            message=f"Item {item} was not deposited by caller in trade {trade_id}",
            code="NOT_DEPOSITED",
        )
        self.item = item


# --- Authorization Errors ---


class UnauthorizedCallerError(EscrowError):
    """Raised when the caller is not a party of the trade."""

    def __init__(self, caller: str, message: str | None = None) -> None:
        super().__init__(
            message=message or f"Caller {caller} is not a party of this trade",
            code="UNAUTHORIZED_CALLER",
        )
        self.caller = caller


class OnlyOwnerCanCancelError(UnauthorizedCallerError):
    """Raised under the owner-only policy when the counterparty tries to cancel."""

    def __init__(self, caller: str) -> None:
        super().__init__(
            caller,
            message=f"Only the trade originator can cancel; {caller} is not",
        )
        self.code = "ONLY_OWNER_CAN_CANCEL"


# --- Registry Errors ---


class RegistryError(EscrowError):
    """Base exception for failures reported by the asset registry."""

    def __init__(self, message: str, code: str = "REGISTRY_ERROR") -> None:
        super().__init__(message=message, code=code)


class ItemNotOwnedError(RegistryError):
    """Raised when the caller does not own an item it tries to deposit."""

    def __init__(self, item: str, owner: str) -> None:
        super().__init__(
            message=f"Item {item} is not owned by {owner}",
            code="ITEM_NOT_OWNED",
        )
        self.item = item


class ItemNotApprovedForEscrowError(RegistryError):
    """Raised when the escrow is not approved to move an item."""

    def __init__(self, item: str, owner: str) -> None:
        super().__init__(
            message=f"Escrow is not approved to transfer {item} on behalf of {owner}",
            code="ITEM_NOT_APPROVED_FOR_ESCROW",
        )
        self.item = item


class TransferFailedError(RegistryError):
    """Raised when the registry rejects a single transfer."""

    def __init__(self, item: str, sender: str, recipient: str) -> None:
        super().__init__(
            message=f"Transfer of {item} from {sender} to {recipient} failed",
            code="TRANSFER_FAILED",
        )
        self.item = item
        self.sender = sender
        self.recipient = recipient


class SettlementFailedError(RegistryError):
    """Raised when the swap batch cannot complete. Deposits stay in escrow."""

    def __init__(self, trade_id: str, reason: str) -> None:
        super().__init__(
            message=f"Settlement of trade {trade_id} failed: {reason}",
            code="SETTLEMENT_FAILED",
        )
        self.trade_id = trade_id


class CancellationFailedError(RegistryError):
    """Raised when deposited items cannot be returned. Deposits stay in escrow."""

    def __init__(self, trade_id: str, reason: str) -> None:
        super().__init__(
            message=f"Cancellation of trade {trade_id} failed: {reason}",
            code="CANCELLATION_FAILED",
        )
        self.trade_id = trade_id


class EscrowIntegrityError(RegistryError):
    """Raised when a compensating transfer fails and custody can no longer be restored."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="ESCROW_INTEGRITY_ERROR")


# --- State Errors ---


class AlreadyClosedError(EscrowError):
    """Raised when mutating a trade that is already settled or cancelled."""

    def __init__(self, trade_id: str, status: str) -> None:
        super().__init__(
            message=f"Trade {trade_id} is already closed ({status})",
            code="ALREADY_CLOSED",
        )
        self.trade_id = trade_id
        self.status = status


class NotFullyDepositedError(EscrowError):
    """Raised when locking or settling before the required bundle is in escrow."""

    def __init__(self, trade_id: str, side: str | None = None) -> None:
        detail = f" by side {side}" if side else ""
        super().__init__(
            message=f"Trade {trade_id} is not fully deposited{detail}",
            code="NOT_FULLY_DEPOSITED",
        )
        self.trade_id = trade_id


class AlreadyLockedError(EscrowError):
    """Raised when a side locks twice."""

    def __init__(self, trade_id: str, side: str) -> None:
        super().__init__(
            message=f"Side {side} of trade {trade_id} is already locked",
            code="ALREADY_LOCKED",
        )


class UnsupportedOperationError(EscrowError):
    """Raised when an operation is not offered by the configured deposit policy."""

    def __init__(self, operation: str, policy: str) -> None:
        super().__init__(
            message=f"Operation '{operation}' is not available under the '{policy}' policy",
            code="UNSUPPORTED_OPERATION",
        )


class ReentrantCallError(EscrowError):
    """Raised when a registry callback re-enters a mutating entry point."""

    def __init__(self, trade_id: str) -> None:
        super().__init__(
            message=f"Re-entrant call on trade {trade_id} rejected",
            code="REENTRANT_CALL",
        )
