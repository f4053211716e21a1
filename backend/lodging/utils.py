from __future__ import annotations

import secrets
import string
import uuid
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def date_to_str(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def time_to_str(value: Optional[time]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%H:%M:%S")


def round_half_up(value: Union[int, float, Decimal]) -> int:
    """Round to the nearest integer currency unit, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def new_id() -> str:
    return str(uuid.uuid4())


def generate_code(prefix: str, length: int = 6) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return f"{prefix}-{''.join(secrets.choice(alphabet) for _ in range(length))}"


def generate_booking_code() -> str:
    yymmdd = datetime.now(timezone.utc).strftime("%y%m%d")
    return generate_code(f"BK{yymmdd}", 5)
