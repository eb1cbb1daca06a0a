"""
Utility functions for SplitKit
"""
from __future__ import annotations
import os
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[int, float, Decimal, str]

CENT = Decimal("0.01")


def now_iso() -> str:
    """Get current UTC time as ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    """Short random identifier for groups, members and records"""
    return uuid.uuid4().hex[:12]


def parse_date(s: str) -> date:
    """Parse YYYY-MM-DD or a full ISO timestamp into a date"""
    s = s.strip()
    try:
        return datetime.strptime(s[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date: {s!r}") from None


def safe_float(x: str, default: Optional[float] = 0.0) -> Optional[float]:
    """Convert string to float safely, returning default on error"""
    try:
        return float(x)
    except (TypeError, ValueError):
        return default


def to_cents(value: Number) -> int:
    """
    Convert a monetary value to integer cents.
    Rounds half away from zero at the cent; floats go through their
    shortest repr so 0.1 becomes 10 cents, not 10.000000000000000555.
    """
    if isinstance(value, float):
        value = repr(value)
    d = Decimal(value)
    if not d.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return int(d.quantize(CENT, rounding=ROUND_HALF_UP) * 100)


def from_cents(cents: int) -> float:
    """Convert integer cents back to a float amount"""
    return float(Decimal(cents) / 100)


def round_money(value: Number) -> float:
    """Round a monetary value to the nearest cent"""
    return from_cents(to_cents(value))


def format_money(amount: Number, currency: str) -> str:
    """Format amount with currency code, e.g. 'USD 1,234.50'"""
    cents = to_cents(amount)
    sign = "-" if cents < 0 else ""
    return f"{sign}{currency} {abs(cents) / 100:,.2f}"


def app_dir() -> str:
    """
    Get application data directory: ~/.splitkit
    Creates directory if it doesn't exist.
    """
    path = os.path.join(os.path.expanduser("~"), ".splitkit")
    os.makedirs(path, exist_ok=True)
    return path
