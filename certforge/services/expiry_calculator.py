"""
Expiry Calculator
Derives issued-at / expires-at pairs for certificates
"""

import calendar
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from certforge.schemas.generation import ExpiryType


# Normalized header names that may carry a per-row expiry date
EXPIRY_COLUMN_NAMES = (
    "expiry_date",
    "expiry",
    "expiration_date",
    "expiration",
    "expires_on",
    "expires_at",
    "valid_until",
    "valid_till",
    "valid_upto",
    "valid_up_to",
)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Best-effort date parsing for recipient row values.

    Returns a timezone-aware datetime (naive values are taken as UTC) or None
    when the value is not recognizable as a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    text = str(value).strip()
    if not text:
        return None

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        parsed = None
    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day to the target month's length"""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _normalize_header(header: str) -> str:
    return re.sub(r"[\s\-]+", "_", str(header).strip().lstrip("\ufeff").lower())


def scan_row_for_expiry(row: Optional[Mapping[str, Any]]) -> Optional[datetime]:
    """First parseable value under an expiry-like column, in row order"""
    if not row:
        return None
    for header, value in row.items():
        if _normalize_header(header) not in EXPIRY_COLUMN_NAMES:
            continue
        parsed = parse_date(value)
        if parsed is not None:
            return parsed
    return None


def resolve_issued_at(issue_date: Optional[datetime] = None, now: Optional[datetime] = None) -> datetime:
    if issue_date is not None:
        return parse_date(issue_date)
    return now or datetime.now(timezone.utc)


def _relative_offset(expiry_type: str, issued_at: datetime) -> Optional[datetime]:
    if expiry_type == ExpiryType.DAY.value:
        return issued_at + timedelta(days=1)
    if expiry_type == ExpiryType.WEEK.value:
        return issued_at + timedelta(days=7)
    if expiry_type == ExpiryType.MONTH.value:
        return add_months(issued_at, 1)
    if expiry_type == ExpiryType.YEAR.value:
        return add_months(issued_at, 12)
    if expiry_type == ExpiryType.FIVE_YEARS.value:
        return add_months(issued_at, 60)
    return None


def compute_expiry(
    expiry_type: Optional[str],
    issued_at: datetime,
    custom_expiry_date: Optional[Any] = None,
    row: Optional[Mapping[str, Any]] = None,
) -> Optional[datetime]:
    """
    Compute the expiry timestamp for one certificate.

    Priority: an explicit custom date, then `never`, then the fixed relative
    offsets (a missing type means `year`), and finally a scan of the recipient
    row for an expiry-like column when the type is not recognized.
    """
    if isinstance(expiry_type, ExpiryType):
        expiry_type = expiry_type.value
    expiry_type = expiry_type or ExpiryType.YEAR.value

    if expiry_type == ExpiryType.CUSTOM.value:
        return parse_date(custom_expiry_date)
    if expiry_type == ExpiryType.NEVER.value:
        return None

    expires_at = _relative_offset(expiry_type, issued_at)
    if expires_at is not None:
        return expires_at
    return scan_row_for_expiry(row)
