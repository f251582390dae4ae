"""Aggregation across the BFKO, CC Card and Service Fee tables.

Functions here are pure: they take lists of records (model instances or any
object with the same attributes) and return plain dicts and lists.
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .config import (
    CATEGORY_BFKO,
    CATEGORY_CC_CARD,
    CATEGORY_LABELS,
    CATEGORY_SERVICE_FEE,
    DEFAULT_ACTIVITY_CAPS,
    DEFAULT_ACTIVITY_LIMIT,
)
from .months import MONTH_NAMES, month_label, month_ordinal, parse_card_date

FAR_PAST = dt.datetime.min
ZERO = Decimal("0")


def _amount(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _sum(values: Iterable[Any]) -> Decimal:
    return sum((_amount(v) for v in values), ZERO)


# ---------------------------------------------------------------------------
# Category totals


def category_totals(
    installments: Sequence[Any],
    cards: Sequence[Any],
    fees: Sequence[Any],
) -> Dict[str, Dict[str, Any]]:
    """Sum, count and distinct employees per category.

    Inputs are already filtered by the caller; empty inputs give zeros.
    """

    return {
        CATEGORY_BFKO: {
            "total": _sum(r.nilai_angsuran for r in installments),
            "count": len(installments),
            "employees": len({r.nip for r in installments if r.nip}),
        },
        CATEGORY_CC_CARD: {
            "total": _sum(r.payment_amount for r in cards),
            "count": len(cards),
            "employees": len({r.personel_number for r in cards if r.personel_number}),
        },
        CATEGORY_SERVICE_FEE: {
            "total": _sum(r.transaction_amount for r in fees),
            "count": len(fees),
            "employees": None,
            "hotel": sum(1 for r in fees if r.service_type == "hotel"),
            "flight": sum(1 for r in fees if r.service_type == "flight"),
        },
    }


def category_share(totals: Mapping[str, Mapping[str, Any]]) -> Dict[str, float]:
    """Percentage of the grand total per category, 0 when there is nothing."""
    grand = _sum(stats["total"] for stats in totals.values())
    if grand <= 0:
        return {cat: 0.0 for cat in totals}
    return {cat: round(float(_amount(stats["total"]) / grand * 100), 1) for cat, stats in totals.items()}


# ---------------------------------------------------------------------------
# Monthly matrix


def _month_of_installment(record: Any) -> Optional[int]:
    ordinal = month_ordinal(record.bulan)
    return ordinal if ordinal <= 12 else None


def _month_of_card(record: Any) -> Optional[int]:
    parsed = parse_card_date(record.departure_date)
    return parsed.month if parsed else None


def _month_of_fee(record: Any) -> Optional[int]:
    return record.transaction_time.month if record.transaction_time else None


def _sum_by_month(
    records: Iterable[Any],
    month_of: Callable[[Any], Optional[int]],
    amount_of: Callable[[Any], Any],
) -> Dict[int, Decimal]:
    sums: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for record in records:
        number = month_of(record)
        if number is None:
            continue
        sums[number] += _amount(amount_of(record))
    return sums


def monthly_matrix(
    installments: Iterable[Any],
    cards: Iterable[Any],
    fees: Iterable[Any],
) -> List[Dict[str, Any]]:
    """Twelve rows, January to December, summed by month across all years."""

    bfko = _sum_by_month(installments, _month_of_installment, lambda r: r.nilai_angsuran)
    cc = _sum_by_month(cards, _month_of_card, lambda r: r.payment_amount)
    sf = _sum_by_month(fees, _month_of_fee, lambda r: r.transaction_amount)
    return [
        {
            "month": month_label(number),
            "month_name": name,
            CATEGORY_BFKO: float(bfko.get(number, ZERO)),
            CATEGORY_CC_CARD: float(cc.get(number, ZERO)),
            CATEGORY_SERVICE_FEE: float(sf.get(number, ZERO)),
        }
        for number, name in enumerate(MONTH_NAMES, start=1)
    ]


# ---------------------------------------------------------------------------
# Recent activity


@dataclass
class ActivityEvent:
    timestamp: dt.datetime
    amount: Decimal
    subject: str
    description: str
    category: str
    status: str
    display_date: str

    def is_new(self, today: dt.date) -> bool:
        return self.timestamp != FAR_PAST and self.timestamp.date() == today


def _as_datetime(value: Any) -> Optional[dt.datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time.min)
    text = str(value).strip()
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y"):
        try:
            return dt.datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def resolve_recency(record: Any, natural: Any) -> dt.datetime:
    """updated_at, then created_at, then the category's own date, then FAR_PAST."""
    for candidate in (getattr(record, "updated_at", None), getattr(record, "created_at", None), natural):
        resolved = _as_datetime(candidate)
        if resolved is not None:
            return resolved
    return FAR_PAST


def _display_date(timestamp: dt.datetime, fallback: str) -> str:
    if timestamp == FAR_PAST:
        return fallback
    return timestamp.strftime("%d-%m-%Y")


def _status(value: Optional[str]) -> str:
    text = (value or "").strip()
    return text[:1].upper() + text[1:] if text else "Complete"


def installment_event(record: Any) -> ActivityEvent:
    timestamp = resolve_recency(record, record.tanggal_bayar)
    raw_date = record.tanggal_bayar or f"{record.bulan} {record.tahun}"
    return ActivityEvent(
        timestamp=timestamp,
        amount=_amount(record.nilai_angsuran),
        subject=record.nama or "Unknown",
        description=f"Angsuran BFKO - {record.bulan} {record.tahun}",
        category=CATEGORY_BFKO,
        status=_status(record.status_angsuran),
        display_date=_display_date(timestamp, raw_date),
    )


def service_fee_event(record: Any) -> ActivityEvent:
    timestamp = resolve_recency(record, record.transaction_time)
    service = (record.service_type or "service").capitalize()
    location = record.hotel_name or record.route or "Unknown"
    return ActivityEvent(
        timestamp=timestamp,
        amount=_amount(record.transaction_amount),
        subject=record.employee_name or "Unknown",
        description=f"{service} - {location}",
        category=CATEGORY_SERVICE_FEE,
        status=_status(record.status),
        display_date=_display_date(timestamp, "-"),
    )


def card_event(record: Any) -> ActivityEvent:
    timestamp = resolve_recency(record, parse_card_date(record.departure_date))
    trip = record.trip_destination_full or f"{record.origin or ''} - {record.destination or ''}".strip(" -")
    return ActivityEvent(
        timestamp=timestamp,
        amount=_amount(record.payment_amount),
        subject=record.employee_name or "Unknown",
        description=f"{record.transaction_type} - {trip}",
        category=CATEGORY_CC_CARD,
        status=_status(record.status),
        display_date=_display_date(timestamp, record.departure_date or "-"),
    )


def _latest(events: Iterable[ActivityEvent], cap: int) -> List[ActivityEvent]:
    return sorted(events, key=lambda e: e.timestamp, reverse=True)[: max(cap, 0)]


def recent_activity(
    installments: Iterable[Any],
    cards: Iterable[Any],
    fees: Iterable[Any],
    limit: int = DEFAULT_ACTIVITY_LIMIT,
    caps: Optional[Mapping[str, int]] = None,
) -> List[ActivityEvent]:
    """Newest events across the three tables.

    Each category is cut to its own cap first, so with the default caps the
    feed holds at most 3 + 2 + 2 = 7 events even though ``limit`` is 8.
    """

    caps = {**DEFAULT_ACTIVITY_CAPS, **(caps or {})}
    merged: List[ActivityEvent] = []
    merged += _latest(map(installment_event, installments), caps[CATEGORY_BFKO])
    merged += _latest(map(service_fee_event, fees), caps[CATEGORY_SERVICE_FEE])
    merged += _latest(map(card_event, cards), caps[CATEGORY_CC_CARD])
    merged.sort(key=lambda e: e.timestamp, reverse=True)
    return merged[:limit]


def activity_rows(
    events: Iterable[ActivityEvent],
    today: dt.date,
    money: Callable[[Any], str],
) -> List[Dict[str, Any]]:
    return [
        {
            "person": e.subject,
            "date": e.display_date,
            "category": CATEGORY_LABELS[e.category],
            "description": e.description,
            "total": money(e.amount),
            "status": e.status,
            "is_new": e.is_new(today),
        }
        for e in events
    ]


# ---------------------------------------------------------------------------
# BFKO monitoring


def _payment_order(record: Any):
    return (month_ordinal(record.bulan), -(record.tahun or 0))


def sort_payments(records: Iterable[Any]) -> List[Any]:
    """Month order first, newer years first within a month."""
    return sorted(records, key=_payment_order)


def sort_for_pdf(records: Iterable[Any]) -> List[Any]:
    return sorted(records, key=lambda r: (-(r.tahun or 0), month_ordinal(r.bulan)))


def sort_for_excel(records: Iterable[Any]) -> List[Any]:
    return sorted(records, key=lambda r: ((r.nama or "").lower(), -(r.tahun or 0), month_ordinal(r.bulan)))


def monthly_installments(records: Iterable[Any]) -> List[Dict[str, Any]]:
    """Sum per stored month name, unknown names last."""
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for r in records:
        totals[r.bulan] += _amount(r.nilai_angsuran)
    ordered = sorted(totals.items(), key=lambda kv: (month_ordinal(kv[0]), kv[0] or ""))
    return [{"bulan": bulan, "total": float(total)} for bulan, total in ordered]


def employee_groups(records: Iterable[Any]) -> List[Dict[str, Any]]:
    """Group payments per employee, highest total first."""
    groups: Dict[tuple, List[Any]] = defaultdict(list)
    for r in records:
        groups[(r.nip, r.nama, r.jabatan, r.unit)].append(r)
    employees = [
        {
            "nip": nip,
            "nama": nama,
            "jabatan": jabatan,
            "unit": unit,
            "total": float(_sum(p.nilai_angsuran for p in payments)),
            "payments": sort_payments(payments),
        }
        for (nip, nama, jabatan, unit), payments in groups.items()
    ]
    employees.sort(key=lambda e: (-e["total"], e["nama"] or ""))
    return employees


def bfko_overview(records: Sequence[Any], year_records: Sequence[Any], top: int = 10) -> Dict[str, Any]:
    """Data for the BFKO monitoring page.

    ``records`` honours both the month and year filters; ``year_records`` only
    the year filter and feeds the employee count and the monthly chart.
    """

    employees = employee_groups(records)
    return {
        "summary": {
            "total_payments": float(_sum(r.nilai_angsuran for r in records)),
            "total_records": len(records),
            "total_employees": len({r.nip for r in year_records}),
        },
        "monthly": monthly_installments(year_records),
        "top_employees": employees[:top],
        "all_employees": employees,
    }


def employee_payments(records: Sequence[Any]) -> Optional[Dict[str, Any]]:
    if not records:
        return None
    first = records[0]
    return {
        "nip": first.nip,
        "nama": first.nama,
        "jabatan": first.jabatan,
        "unit": first.unit,
        "total": float(_sum(r.nilai_angsuran for r in records)),
        "payments": sort_payments(records),
    }


# ---------------------------------------------------------------------------
# CC sheets


def sheet_summaries(cards: Iterable[Any], fees: Iterable[Any]) -> List[Dict[str, Any]]:
    """Per-sheet payments, refunds and additional fees."""

    rows: Dict[str, Dict[str, Any]] = {}

    def row_for(name: str) -> Dict[str, Any]:
        return rows.setdefault(
            name,
            {"sheet": name, "count": 0, "payments": ZERO, "refunds": ZERO, "fees": ZERO},
        )

    for card in cards:
        row = row_for(card.sheet or "-")
        row["count"] += 1
        if (card.transaction_type or "").lower() == "refund":
            row["refunds"] += _amount(card.payment_amount)
        else:
            row["payments"] += _amount(card.payment_amount)
    for fee in fees:
        row = row_for(fee.sheet_name)
        row["fees"] += _amount(fee.biaya_adm_bunga) + _amount(fee.biaya_transfer) + _amount(fee.iuran_tahunan)

    result = []
    for name in sorted(rows):
        row = rows[name]
        row["net"] = row["payments"] - row["refunds"] + row["fees"]
        result.append({k: float(v) if isinstance(v, Decimal) else v for k, v in row.items()})
    return result
