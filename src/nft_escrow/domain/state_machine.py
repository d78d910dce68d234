"""Trade Lifecycle State Machine Guard.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the deposit policy or the API does, an illegal transition
(e.g., SETTLED -> CANCELLED) will raise TransitionNotAllowed.

The state machine is instantiated per-trade and validates transitions before
the trade's status field is updated.

Transition table:
    PENDING -> SETTLED    (settle)
    PENDING -> CANCELLED  (cancel)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from nft_escrow.domain.enums import TradeStatus
from nft_escrow.domain.exceptions import AlreadyClosedError

if TYPE_CHECKING:
    from nft_escrow.domain.models import Trade


class TradeStateMachine(StateMachine):
    """State machine that guards the trade lifecycle.

    Usage:
        sm = TradeStateMachine(current_status="PENDING")
        sm.settle()          # transitions to SETTLED
        sm.current_state     # State('SETTLED', ...)
    """

    # --- States ---
    PENDING = State("PENDING", initial=True)
    SETTLED = State("SETTLED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    # --- Events / Transitions ---
    settle = PENDING.to(SETTLED)
    cancel = PENDING.to(CANCELLED)

    def __init__(self, current_status: str = "PENDING") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current TradeStatus value (e.g., "PENDING").
                           Must match one of the State value strings exactly.
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches TradeStatus enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        # python-statemachine >= 2.3 keeps the attribute name in `id`
        return [getattr(event, "id", event.name) for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Args:
        current_status: Current TradeStatus value.
        event_name: The event to fire ("settle" or "cancel").

    Returns:
        The new status string after the transition.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = TradeStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status


def apply_transition(trade: Trade, event_name: str) -> None:
    """Fire ``event_name`` on the trade's lifecycle and store the new status.

    Raises AlreadyClosedError when the trade is no longer PENDING.
    """
    try:
        new_status = validate_transition(str(trade.status), event_name)
    except TransitionNotAllowed as err:
        raise AlreadyClosedError(trade.id, str(trade.status)) from err
    trade.status = TradeStatus(new_status)


def ensure_pending(trade: Trade) -> None:
    """Raise AlreadyClosedError unless the trade can still be mutated."""
    if trade.is_closed:
        raise AlreadyClosedError(trade.id, str(trade.status))
