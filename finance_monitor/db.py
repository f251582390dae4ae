"""Record Store: read access to the three record tables.

The aggregation code only ever sees plain lists of model instances handed
over by :class:`RecordStore`; every filter that depends on how a category
stores its dates lives here.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from flask import Flask
from sqlalchemy import extract, func, select
from sqlalchemy.orm import Session

from .config import CATEGORY_BFKO, CATEGORY_CC_CARD, CATEGORY_SERVICE_FEE
from .models import CardTransaction, InstallmentPayment, ServiceFee, SheetAdditionalFee, db
from .months import month_name, month_number, parse_card_date

CATEGORY_MODELS = {
    CATEGORY_BFKO: InstallmentPayment,
    CATEGORY_CC_CARD: CardTransaction,
    CATEGORY_SERVICE_FEE: ServiceFee,
}


def init_db(app: Flask) -> None:
    db.init_app(app)
    with app.app_context():
        db.create_all()


def _model_for(category: str):
    try:
        return CATEGORY_MODELS[category]
    except KeyError:
        raise ValueError(f"Unknown category: {category}") from None


class RecordStore:
    """Query helper over one SQLAlchemy session."""

    def __init__(self, session: Optional[Session] = None):
        self.session = session if session is not None else db.session

    def installments(self, year: Optional[int] = None, month: Any = None) -> List[InstallmentPayment]:
        stmt = select(InstallmentPayment)
        if year is not None:
            stmt = stmt.where(InstallmentPayment.tahun == int(year))
        number = month_number(month)
        if number is not None:
            stmt = stmt.where(InstallmentPayment.bulan == month_name(number))
        return list(self.session.scalars(stmt.order_by(InstallmentPayment.id)))

    def card_transactions(self, year: Optional[int] = None, month: Any = None) -> List[CardTransaction]:
        rows = list(self.session.scalars(select(CardTransaction).order_by(CardTransaction.id)))
        number = month_number(month)
        if year is None and number is None:
            return rows
        # Departure dates are text, so the filter runs after loading
        filtered: List[CardTransaction] = []
        for row in rows:
            parsed = parse_card_date(row.departure_date)
            if parsed is None:
                continue
            if year is not None and parsed.year != int(year):
                continue
            if number is not None and parsed.month != number:
                continue
            filtered.append(row)
        return filtered

    def service_fees(self, year: Optional[int] = None, month: Any = None) -> List[ServiceFee]:
        stmt = select(ServiceFee)
        if year is not None:
            stmt = stmt.where(extract("year", ServiceFee.transaction_time) == int(year))
        number = month_number(month)
        if number is not None:
            stmt = stmt.where(extract("month", ServiceFee.transaction_time) == number)
        return list(self.session.scalars(stmt.order_by(ServiceFee.id)))

    def rows(self, category: str, year: Optional[int] = None, month: Any = None) -> List[Any]:
        if category == CATEGORY_BFKO:
            return self.installments(year, month)
        if category == CATEGORY_CC_CARD:
            return self.card_transactions(year, month)
        if category == CATEGORY_SERVICE_FEE:
            return self.service_fees(year, month)
        raise ValueError(f"Unknown category: {category}")

    def distinct(self, category: str, field: str) -> List[Any]:
        model = _model_for(category)
        column = getattr(model, field, None)
        if column is None:
            raise ValueError(f"{category} has no field {field!r}")
        stmt = select(column).where(column.is_not(None)).distinct().order_by(column)
        return list(self.session.scalars(stmt))

    def installment_years(self, nip: Optional[str] = None) -> List[int]:
        """Available BFKO years, newest first."""
        stmt = select(InstallmentPayment.tahun).distinct()
        if nip is not None:
            stmt = stmt.where(InstallmentPayment.nip == nip)
        return list(self.session.scalars(stmt.order_by(InstallmentPayment.tahun.desc())))

    def employee_installments(self, nip: str, year: Optional[int] = None) -> List[InstallmentPayment]:
        stmt = select(InstallmentPayment).where(InstallmentPayment.nip == nip)
        if year is not None:
            stmt = stmt.where(InstallmentPayment.tahun == int(year))
        return list(self.session.scalars(stmt.order_by(InstallmentPayment.tahun.desc(), InstallmentPayment.id)))

    def sheet_fees(self) -> List[SheetAdditionalFee]:
        return list(self.session.scalars(select(SheetAdditionalFee).order_by(SheetAdditionalFee.sheet_name)))

    def next_transaction_number(self) -> int:
        current = self.session.scalar(select(func.max(CardTransaction.transaction_number)))
        return (current or 0) + 1

    def ensure_sheets(self, sheet_names: Iterable[Optional[str]]) -> int:
        """Create zeroed fee rows for sheets that have none; returns how many were added."""
        existing = set(self.session.scalars(select(SheetAdditionalFee.sheet_name)))
        added = 0
        for name in sheet_names:
            if not name or name in existing:
                continue
            self.session.add(SheetAdditionalFee(sheet_name=name, biaya_adm_bunga=0, biaya_transfer=0, iuran_tahunan=0))
            existing.add(name)
            added += 1
        return added
