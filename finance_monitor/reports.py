"""Reporting utilities.

Builds the dashboard read model and formats it into human-readable text,
JSON and CSV.
"""

from __future__ import annotations

import csv
import datetime as dt
import json
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, IO, List, Mapping, Optional

from . import analytics as an
from .config import CATEGORY_LABELS, DEFAULT_ACTIVITY_LIMIT
from .db import RecordStore


def _whole(value: Any) -> int:
    amount = value if isinstance(value, Decimal) else Decimal(str(value or 0))
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _tenths(amount: Decimal) -> Decimal:
    return amount.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def group_thousands(value: Any) -> str:
    """Whole rupiah with ``.`` as the thousands separator."""
    return f"{_whole(value):,}".replace(",", ".")


def format_rupiah(value: Any) -> str:
    return f"Rp {group_thousands(value)}"


def format_currency(value: Any) -> str:
    """Compact amount for dashboard cards.

    Billions use ``M`` (miliar) with one decimal, millions ``Jt`` (juta),
    anything smaller is printed in full: ``Rp1.2M``, ``Rp150.3Jt``,
    ``Rp999.000``, ``Rp0``. The unit is picked after rounding, so
    ``999_950_000`` prints as ``Rp1.0M``.
    """

    amount = value if isinstance(value, Decimal) else Decimal(str(value or 0))
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    if _whole(amount) < 1_000_000:
        return f"{sign}Rp{group_thousands(amount)}"
    millions = _tenths(amount / Decimal("1e6"))
    if millions < 1000:
        return f"{sign}Rp{millions:.1f}Jt"
    return f"{sign}Rp{_tenths(amount / Decimal('1e9')):.1f}M"


def _plain_totals(totals: Mapping[str, Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {
        cat: {k: float(v) if isinstance(v, Decimal) else v for k, v in stats.items()}
        for cat, stats in totals.items()
    }


def build_dashboard(
    store: RecordStore,
    year: Optional[int] = None,
    month: Any = None,
    today: Optional[dt.date] = None,
    limit: int = DEFAULT_ACTIVITY_LIMIT,
    caps: Optional[Mapping[str, int]] = None,
) -> Dict[str, Any]:
    """Dashboard read model.

    Totals honour the year/month filters. The monthly matrix and the activity
    feed always look at every row: the matrix sums by calendar month across
    all years.
    """

    today = today or dt.date.today()
    totals = an.category_totals(
        store.installments(year, month),
        store.card_transactions(year, month),
        store.service_fees(year, month),
    )
    installments = store.installments()
    cards = store.card_transactions()
    fees = store.service_fees()
    events = an.recent_activity(installments, cards, fees, limit=limit, caps=caps)
    return {
        "filters": {"year": year, "month": month},
        "category_totals": _plain_totals(totals),
        "category_share": an.category_share(totals),
        "cards": {cat: format_currency(stats["total"]) for cat, stats in totals.items()},
        "monthly_matrix": an.monthly_matrix(installments, cards, fees),
        "recent_activity": an.activity_rows(events, today, format_rupiah),
    }


def format_text_report(summary: Dict) -> str:
    lines: List[str] = []
    lines.append("=== Finance Monitor Summary ===")
    totals = summary["category_totals"]
    share = summary.get("category_share", {})
    for cat, stats in totals.items():
        label = CATEGORY_LABELS.get(cat, cat)
        lines.append(
            f"{label:12} {format_rupiah(stats['total']):>20}  {stats['count']:5d} records  {share.get(cat, 0.0):5.1f}%"
        )
    lines.append("")

    lines.append("-- Monthly Totals (all years) --")
    for row in summary["monthly_matrix"]:
        lines.append(
            f"{row['month']:3} | BFKO {format_currency(row['bfko']):>10}"
            f"  CC {format_currency(row['cc_card']):>10}"
            f"  SF {format_currency(row['service_fee']):>10}"
        )
    lines.append("")

    lines.append("-- Recent Activity --")
    for item in summary["recent_activity"]:
        marker = "*" if item["is_new"] else " "
        lines.append(
            f"{marker} {item['date']:10} {item['category']:11} {item['person'][:24]:24} {item['total']:>18}  {item['status']}"
        )
    return "\n".join(lines)


def save_json(summary: Dict, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2, default=str)


def _ensure_text_writer(target: str | Path | IO[str]):
    if hasattr(target, "write"):
        return target, None
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = path.open("w", newline="", encoding="utf-8")
    return handle, handle


def export_summary_csv(summary: Dict, path: str | Path | IO[str]) -> None:
    def fmt_amount(value) -> str:
        if value is None:
            return ""
        return f"{float(value):.2f}"

    rows: List[List[str]] = [["Section", "Item", "Metric", "Value"]]

    for cat, stats in (summary.get("category_totals") or {}).items():
        label = CATEGORY_LABELS.get(cat, cat)
        rows.append(["Totals", label, "Amount", fmt_amount(stats.get("total"))])
        rows.append(["Totals", label, "Records", str(stats.get("count", 0))])
        if stats.get("employees") is not None:
            rows.append(["Totals", label, "Employees", str(stats["employees"])])

    for cat, percent in (summary.get("category_share") or {}).items():
        rows.append(["Share", CATEGORY_LABELS.get(cat, cat), "Percent", f"{percent:.1f}"])

    for row in summary.get("monthly_matrix") or []:
        for cat in CATEGORY_LABELS:
            rows.append(["Monthly Totals", row["month_name"], CATEGORY_LABELS[cat], fmt_amount(row.get(cat))])

    for item in summary.get("recent_activity") or []:
        rows.append(["Recent Activity", item["person"], item["category"], item["total"]])

    writer_target, to_close = _ensure_text_writer(path)
    try:
        writer = csv.writer(writer_target, lineterminator="\n")
        writer.writerows(rows)
    finally:
        if to_close is not None:
            to_close.close()


def export_summary_json(summary: Dict, path: str | Path | IO[str]) -> None:
    if hasattr(path, "write"):
        json.dump(summary, path, indent=2, default=str)
        path.write("\n")
        return
    save_json(summary, path)
