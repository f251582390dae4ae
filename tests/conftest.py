import datetime as dt
from decimal import Decimal
from pathlib import Path

import pytest

from finance_monitor.models import CardTransaction, InstallmentPayment, ServiceFee, db
from finance_monitor.webapp import create_app


@pytest.fixture()
def app(tmp_path: Path):
    app = create_app(
        overrides={
            "TESTING": True,
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.sqlite'}",
        }
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield


def installment(**kw):
    values = {
        "nip": "198001",
        "nama": "Andi",
        "jabatan": "Staff",
        "unit": "Keuangan",
        "bulan": "Januari",
        "tahun": 2025,
        "nilai_angsuran": Decimal("1000000"),
        "tanggal_bayar": None,
        "status_angsuran": None,
    }
    values.update(kw)
    return InstallmentPayment(**values)


def card(**kw):
    values = {
        "transaction_number": 1,
        "booking_id": "B-1",
        "employee_name": "Sari",
        "personel_number": "P-1",
        "trip_number": "T-1",
        "origin": "Jakarta",
        "destination": "Bandung",
        "trip_destination_full": "Jakarta - Bandung",
        "departure_date": "4/7/2025",
        "return_date": "4/9/2025",
        "duration_days": 2,
        "payment_amount": Decimal("2500000"),
        "transaction_type": "payment",
        "sheet": "April 2025 - CC 5657",
        "status": None,
    }
    values.update(kw)
    return CardTransaction(**values)


def service_fee(**kw):
    values = {
        "employee_name": "Budi",
        "service_type": "hotel",
        "hotel_name": "Hotel Indah",
        "route": None,
        "transaction_amount": Decimal("750000"),
        "transaction_time": dt.datetime(2025, 3, 10, 9, 30),
        "status": None,
    }
    values.update(kw)
    return ServiceFee(**values)


def persist(*records):
    db.session.add_all(records)
    db.session.commit()
    return records
