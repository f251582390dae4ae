"""Indonesian month table shared by every component that orders by month.

Stored month names (``bulan``) are the Indonesian calendar names. Anything
outside the table gets ordinal 99 so it sorts after December.
"""

from __future__ import annotations

import datetime as dt
from types import MappingProxyType
from typing import Mapping, Optional, Tuple, Union

MONTH_NAMES: Tuple[str, ...] = (
    "Januari",
    "Februari",
    "Maret",
    "April",
    "Mei",
    "Juni",
    "Juli",
    "Agustus",
    "September",
    "Oktober",
    "November",
    "Desember",
)

MONTH_ORDER: Mapping[str, int] = MappingProxyType(
    {name: index for index, name in enumerate(MONTH_NAMES, start=1)}
)

UNKNOWN_MONTH_ORDINAL = 99

# Card departure dates are stored without zero padding, e.g. "4/7/2025".
CARD_DATE_FORMAT = "%m/%d/%Y"


def month_ordinal(name: Optional[str]) -> int:
    return MONTH_ORDER.get((name or "").strip(), UNKNOWN_MONTH_ORDINAL)


def month_label(number: int) -> str:
    """Three-letter chart label, e.g. ``Mei`` or ``Agu``."""
    return MONTH_NAMES[number - 1][:3]


def month_number(value: Union[str, int, None]) -> Optional[int]:
    """Resolve a month filter given as a name or a number.

    Returns None for empty values and for ``"all"``; raises ValueError for
    anything that is neither a known month name nor 1-12.
    """

    if value is None:
        return None
    if isinstance(value, int):
        number = value
    else:
        text = value.strip()
        if not text or text.lower() == "all":
            return None
        if text.isdigit():
            number = int(text)
        else:
            ordinal = month_ordinal(text.capitalize())
            if ordinal == UNKNOWN_MONTH_ORDINAL:
                raise ValueError(f"Unknown month: {value}")
            return ordinal
    if not 1 <= number <= 12:
        raise ValueError(f"Month out of range: {value}")
    return number


def month_name(number: int) -> str:
    return MONTH_NAMES[number - 1]


def parse_card_date(value: Optional[str]) -> Optional[dt.date]:
    """Parse a card departure/return date; None when it does not parse."""
    text = (value or "").strip()
    if not text:
        return None
    try:
        return dt.datetime.strptime(text, CARD_DATE_FORMAT).date()
    except ValueError:
        return None


def format_card_date(value: dt.date) -> str:
    return f"{value.month}/{value.day}/{value.year}"
