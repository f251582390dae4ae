"""SQLAlchemy models for the Finance Monitor web application."""

from __future__ import annotations

import datetime as dt

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()


def _now() -> dt.datetime:
    return dt.datetime.now()


class InstallmentPayment(db.Model):
    """One BFKO installment paid by an employee for a given month."""

    __tablename__ = "bfko_data"

    id = db.Column(db.Integer, primary_key=True)
    nip = db.Column(db.String(50), nullable=False, index=True)
    nama = db.Column(db.String(255), nullable=False)
    jabatan = db.Column(db.String(255), nullable=False, default="")
    unit = db.Column(db.String(255))
    bulan = db.Column(db.String(20), nullable=False)
    tahun = db.Column(db.Integer, nullable=False)
    nilai_angsuran = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tanggal_bayar = db.Column(db.String(50))
    status_angsuran = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=_now)
    updated_at = db.Column(db.DateTime, default=_now, onupdate=_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "nip": self.nip,
            "nama": self.nama,
            "jabatan": self.jabatan,
            "unit": self.unit,
            "bulan": self.bulan,
            "tahun": self.tahun,
            "nilai_angsuran": float(self.nilai_angsuran or 0),
            "tanggal_bayar": self.tanggal_bayar,
            "status_angsuran": self.status_angsuran,
        }


class CardTransaction(db.Model):
    __tablename__ = "cc_transactions"

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.Integer)
    booking_id = db.Column(db.String(100), unique=True, nullable=False)
    employee_name = db.Column(db.String(255), nullable=False)
    personel_number = db.Column(db.String(50), nullable=False)
    trip_number = db.Column(db.String(50))
    origin = db.Column(db.String(255))
    destination = db.Column(db.String(255))
    trip_destination_full = db.Column(db.String(512))
    departure_date = db.Column(db.String(20))
    return_date = db.Column(db.String(20))
    duration_days = db.Column(db.Integer, default=0)
    payment_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    transaction_type = db.Column(db.String(16), nullable=False, default="payment")
    sheet = db.Column(db.String(255), index=True)
    status = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=_now)
    updated_at = db.Column(db.DateTime, default=_now, onupdate=_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "booking_id": self.booking_id,
            "employee_name": self.employee_name,
            "personel_number": self.personel_number,
            "trip_number": self.trip_number,
            "origin": self.origin,
            "destination": self.destination,
            "trip_destination_full": self.trip_destination_full,
            "departure_date": self.departure_date,
            "return_date": self.return_date,
            "duration_days": self.duration_days,
            "payment_amount": float(self.payment_amount or 0),
            "transaction_type": self.transaction_type,
            "sheet": self.sheet,
            "status": self.status,
        }


class ServiceFee(db.Model):
    __tablename__ = "service_fees"

    id = db.Column(db.Integer, primary_key=True)
    employee_name = db.Column(db.String(255))
    service_type = db.Column(db.String(16), nullable=False, default="other")
    hotel_name = db.Column(db.String(255))
    route = db.Column(db.String(255))
    transaction_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    transaction_time = db.Column(db.DateTime)
    status = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=_now)
    updated_at = db.Column(db.DateTime, default=_now, onupdate=_now)

    @property
    def location(self) -> str:
        return self.hotel_name or self.route or "Unknown"


class SheetAdditionalFee(db.Model):
    """Per-sheet charges billed on top of the card transactions."""

    __tablename__ = "sheet_additional_fees"

    id = db.Column(db.Integer, primary_key=True)
    sheet_name = db.Column(db.String(255), unique=True, nullable=False)
    biaya_adm_bunga = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    biaya_transfer = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    iuran_tahunan = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "sheet_name": self.sheet_name,
            "biaya_adm_bunga": float(self.biaya_adm_bunga or 0),
            "biaya_transfer": float(self.biaya_transfer or 0),
            "iuran_tahunan": float(self.iuran_tahunan or 0),
        }
