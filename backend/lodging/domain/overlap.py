"""Date-range overlap rules for a single physical room unit.

Stays are half-open ``[check_in, check_out)`` date ranges. Two stays that
only touch on a turnover day do not collide unless the departing guest's
check-out time reaches the arriving guest's check-in time.
"""

from __future__ import annotations

from datetime import date, time
from typing import Optional

from lodging import config


class InvalidStayRange(ValueError):
    """Raised when check-out is not strictly after check-in."""

    def __init__(self, check_in: date, check_out: date) -> None:
        super().__init__(f"Invalid stay range: check-out {check_out} must be after check-in {check_in}")
        self.check_in = check_in
        self.check_out = check_out


def validate_stay_range(check_in: date, check_out: date) -> None:
    if check_out <= check_in:
        raise InvalidStayRange(check_in, check_out)


def nights_between(check_in: date, check_out: date) -> int:
    validate_stay_range(check_in, check_out)
    return (check_out - check_in).days


def _turnover_collides(departing_time: Optional[time], arriving_time: Optional[time]) -> bool:
    leaves_at = departing_time or config.DEFAULT_CHECK_OUT_TIME
    arrives_at = arriving_time or config.DEFAULT_CHECK_IN_TIME
    return leaves_at >= arrives_at


def stays_overlap(
    a_check_in: date,
    a_check_out: date,
    b_check_in: date,
    b_check_out: date,
    *,
    a_check_in_time: Optional[time] = None,
    a_check_out_time: Optional[time] = None,
    b_check_in_time: Optional[time] = None,
    b_check_out_time: Optional[time] = None,
) -> bool:
    """Return True when stay ``a`` and stay ``b`` cannot share one unit.

    ``a`` is the incoming stay and ``b`` the existing one, although the rule
    is symmetric. Raises InvalidStayRange for empty or inverted ranges.
    """

    validate_stay_range(a_check_in, a_check_out)
    validate_stay_range(b_check_in, b_check_out)

    if a_check_in < b_check_out and b_check_in < a_check_out:
        return True

    if a_check_out == b_check_in:
        return _turnover_collides(a_check_out_time, b_check_in_time)

    if b_check_out == a_check_in:
        return _turnover_collides(b_check_out_time, a_check_in_time)

    return False
