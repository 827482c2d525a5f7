"""
Helper utilities
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional
import math

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a provider timestamp into a naive UTC datetime.

    Accepts RFC3339 strings ("2024-03-01T10:00:00.123Z"), datetimes and None.
    Unparseable input yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            try:
                dt = date_parser.parse(str(value))
            except (ValueError, OverflowError):
                return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def finite_or_zero(value: Any) -> float:
    """Coerce to float, treating None/NaN/inf/garbage as 0"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_int(value: Any, default: int = 0) -> int:
    """Provider APIs send int64 values as strings"""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def chunk_list(lst: List, chunk_size: int) -> List[List]:
    """Split list into chunks"""
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def month_start(value: date) -> date:
    """First day of the month containing value"""
    return date(value.year, value.month, 1)


def calculate_date_range(days: int = 30, end: Optional[date] = None) -> tuple[date, date]:
    """Inclusive [start, end] day range ending at end (default today UTC)"""
    end_date = end or utcnow().date()
    start_date = end_date - timedelta(days=max(days, 1) - 1)
    return start_date, end_date


def calculate_month_range(months: int = 3, end: Optional[date] = None) -> tuple[date, date]:
    """
    Month range covering the last `months` complete-or-current months.

    Returns (first_month_start, last_month_start).
    """
    last = month_start(end or utcnow().date())
    first = last - relativedelta(months=months - 1) if months > 0 else last
    return first, last
