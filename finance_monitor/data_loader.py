"""CSV import for BFKO installments and CC Card transactions.

Both importers skip the header row, validate and upsert row by row, and run
inside a single transaction: either every accepted row is committed or none
is. A row that fails validation is left out and reported as a warning.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import IO, Iterator, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .db import RecordStore
from .models import CardTransaction, InstallmentPayment

logger = logging.getLogger(__name__)

BFKO_COLUMNS = (
    "nip",
    "nama",
    "jabatan",
    "unit",
    "bulan",
    "tahun",
    "nilai_angsuran",
    "tanggal_bayar",
    "status_angsuran",
)
CC_COLUMNS = (
    "transaction_number",
    "booking_id",
    "employee_name",
    "personel_number",
    "trip_number",
    "origin",
    "destination",
    "trip_destination_full",
    "departure_date",
    "return_date",
    "duration_days",
    "payment_amount",
    "transaction_type",
    "sheet",
)
REFUND_SUFFIX = "-REFUND"


class CsvImportError(ValueError):
    """Raised when an upload cannot be read as CSV at all."""


@dataclass
class ImportResult:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    warnings: List[str] = field(default_factory=list)

    def message(self) -> str:
        text = f"Imported: {self.imported}, Updated: {self.updated}, Skipped: {self.skipped}"
        if self.warnings:
            text += f". Warning: {len(self.warnings)} rows failed."
        return text


def parse_amount(value: Optional[str]) -> Decimal:
    v = (value or "").replace(",", "").strip()
    if not v:
        raise ValueError("Missing amount")
    try:
        amount = Decimal(v)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value}") from exc
    if amount < 0:
        raise ValueError(f"Negative amount: {value}")
    return amount


def _to_int(value: Optional[str], label: str) -> int:
    v = (value or "").strip()
    try:
        return int(float(v))
    except ValueError as exc:
        raise ValueError(f"Invalid {label}: {value}") from exc


def _cell(row: List[str], index: int) -> str:
    return row[index].strip() if index < len(row) and row[index] is not None else ""


def _open_text(source: str | Path | IO[str] | IO[bytes]) -> IO[str]:
    if hasattr(source, "read"):
        data = source.read()
        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise CsvImportError("Unable to decode the uploaded file. Ensure it is UTF-8 encoded.") from exc
        return io.StringIO(data)
    p = Path(source)
    if not p.exists():
        raise CsvImportError(f"{p}: file not found")
    return p.open("r", encoding="utf-8-sig", newline="")


def _data_rows(source) -> Iterator[tuple]:
    """Yield ``(line_number, cells)`` for every non-blank row after the header."""
    handle = _open_text(source)
    try:
        reader = csv.reader(handle)
        try:
            next(reader)
        except StopIteration:
            raise CsvImportError("The CSV file is empty.") from None
        except (csv.Error, UnicodeDecodeError) as exc:
            raise CsvImportError(f"Unreadable CSV: {exc}") from exc
        try:
            for row in reader:
                if not any(cell.strip() for cell in row):
                    continue
                yield reader.line_num, row
        except (csv.Error, UnicodeDecodeError) as exc:
            raise CsvImportError(f"Unreadable CSV at line {reader.line_num}: {exc}") from exc
    finally:
        handle.close()


def _installment_values(row: List[str]) -> dict:
    return {
        "nip": _cell(row, 0),
        "nama": _cell(row, 1),
        "jabatan": _cell(row, 2),
        "unit": _cell(row, 3) or None,
        "bulan": _cell(row, 4),
        "tahun": _to_int(_cell(row, 5), "year"),
        "nilai_angsuran": parse_amount(_cell(row, 6)),
        "tanggal_bayar": _cell(row, 7) or None,
        "status_angsuran": _cell(row, 8) or None,
    }


def import_installments(source, session: Session) -> ImportResult:
    """Import BFKO rows, updating existing ``(nip, bulan, tahun)`` records."""

    result = ImportResult()
    try:
        for line, row in _data_rows(source):
            if not all(_cell(row, i) for i in (0, 1, 4, 5, 6)):
                result.skipped += 1
                continue
            try:
                values = _installment_values(row)
            except ValueError as exc:
                logger.warning("BFKO import line %s rejected: %s", line, exc)
                result.warnings.append(f"Line {line}: {exc}")
                continue
            record = session.scalars(
                select(InstallmentPayment).where(
                    InstallmentPayment.nip == values["nip"],
                    InstallmentPayment.bulan == values["bulan"],
                    InstallmentPayment.tahun == values["tahun"],
                )
            ).first()
            if record is not None:
                for key, value in values.items():
                    setattr(record, key, value)
                result.updated += 1
            else:
                session.add(InstallmentPayment(**values))
                result.imported += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("BFKO import finished: %s", result.message())
    return result


def _refund_booking_id(session: Session, booking_id: str) -> str:
    if REFUND_SUFFIX in booking_id:
        return booking_id
    existing = session.scalar(
        select(func.count()).select_from(CardTransaction).where(
            CardTransaction.booking_id.like(f"{booking_id}{REFUND_SUFFIX}%")
        )
    )
    if existing:
        return f"{booking_id}{REFUND_SUFFIX}-{existing + 1}"
    return f"{booking_id}{REFUND_SUFFIX}"


def _card_values(cells: List[str], sheet: str) -> dict:
    if not cells[1]:
        raise ValueError("Missing booking id")
    return {
        "transaction_number": _to_int(cells[0], "transaction number"),
        "booking_id": cells[1],
        "employee_name": cells[2],
        "personel_number": cells[3],
        "trip_number": cells[4],
        "origin": cells[5],
        "destination": cells[6],
        "trip_destination_full": cells[7],
        "departure_date": cells[8],
        "return_date": cells[9],
        "duration_days": _to_int(cells[10] or "0", "duration"),
        "payment_amount": parse_amount(cells[11]),
        "transaction_type": cells[12].lower(),
        "sheet": sheet,
        "status": "active",
    }


def import_card_transactions(
    source,
    session: Session,
    update_existing: bool = False,
    override_sheet_name: Optional[str] = None,
) -> ImportResult:
    """Import CC Card rows keyed by booking id.

    Refund rows get a ``-REFUND`` suffix (``-REFUND-<n>`` once a booking has
    refunds) so they never collide with the original payment.
    """

    result = ImportResult()
    override = (override_sheet_name or "").strip()
    try:
        for line, row in _data_rows(source):
            if len(row) < len(CC_COLUMNS):
                result.skipped += 1
                continue
            cells = [_cell(row, i) for i in range(len(CC_COLUMNS))]
            try:
                values = _card_values(cells, override or cells[13])
            except ValueError as exc:
                logger.warning("CC import line %s rejected: %s", line, exc)
                result.warnings.append(f"Line {line}: {exc}")
                continue
            if values["transaction_type"] == "refund":
                values["booking_id"] = _refund_booking_id(session, values["booking_id"])
            existing = session.scalars(
                select(CardTransaction).where(CardTransaction.booking_id == values["booking_id"])
            ).first()
            if existing is not None and not update_existing:
                result.skipped += 1
                continue
            if existing is not None:
                for key, value in values.items():
                    setattr(existing, key, value)
                result.updated += 1
            else:
                session.add(CardTransaction(**values))
                result.imported += 1
        session.commit()
    except Exception:
        session.rollback()
        raise

    store = RecordStore(session)
    if store.ensure_sheets(store.distinct("cc_card", "sheet")):
        session.commit()
    logger.info("CC import finished: %s", result.message())
    return result
