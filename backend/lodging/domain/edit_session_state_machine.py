from __future__ import annotations

from typing import Literal


EditSessionState = Literal[
    "idle",
    "room_type_selected",
    "no_availability",
    "units_selected",
    "dates_confirmed",
    "saved",
]


_ALLOWED_TRANSITIONS = {
    "idle": {"room_type_selected", "no_availability", "units_selected", "dates_confirmed"},
    "room_type_selected": {"room_type_selected", "no_availability", "units_selected", "dates_confirmed"},
    "no_availability": {"room_type_selected", "no_availability", "dates_confirmed"},
    "units_selected": {"room_type_selected", "no_availability", "units_selected", "dates_confirmed", "saved"},
    "dates_confirmed": {"room_type_selected", "no_availability", "units_selected", "dates_confirmed", "saved"},
    # A saved session is finished; start a new one to edit again.
    "saved": set(),
}


class EditSessionTransitionError(ValueError):
    """Raised when an invalid edit session transition is requested."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Invalid edit session transition: {current} -> {target}")
        self.current = current
        self.target = target


def validate_transition(current: str, target: str) -> None:
    """Validate that a transition from current -> target is allowed.

    Raises EditSessionTransitionError if not allowed.
    """

    allowed = _ALLOWED_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise EditSessionTransitionError(current=current, target=target)
