"""Flask web interface for the Finance Monitor."""

from __future__ import annotations

import datetime as dt
import random
import time
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from flask import (
    Flask,
    Response,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from sqlalchemy import delete, select
from werkzeug.utils import secure_filename

from . import analytics as an
from .config import PACKAGE_ROOT, PROJECT_ROOT, AppConfig
from .data_loader import CsvImportError, import_card_transactions, import_installments, parse_amount
from .db import RecordStore, init_db
from .exports import PDF_MIMETYPE, XLSX_MIMETYPE, bfko_pdf, bfko_workbook, export_filename
from .models import CardTransaction, InstallmentPayment, ServiceFee, SheetAdditionalFee, db
from .months import MONTH_NAMES, format_card_date, month_number, parse_card_date
from .reports import build_dashboard, format_currency, format_rupiah

SERVICE_TYPES = ("hotel", "flight", "other")
TRANSACTION_TYPES = ("payment", "refund")


def _parse_year(value: Optional[str]) -> Optional[int]:
    text = (value or "").strip()
    if not text or text.lower() == "all":
        return None
    if not text.isdigit():
        raise ValueError(f"Invalid year: {value}")
    return int(text)


def _dashboard_filters(args) -> Tuple[Optional[int], Optional[int]]:
    return _parse_year(args.get("year")), month_number(args.get("month"))


def _bfko_filters(args, years: List[int]) -> Dict[str, Any]:
    """``bulan`` defaults to all months, ``tahun`` to the newest year on file."""
    bulan = (args.get("bulan") or "all").strip() or "all"
    default_year = str(years[0]) if years else str(dt.date.today().year)
    tahun = (args.get("tahun") or default_year).strip() or default_year
    return {"bulan": bulan, "tahun": tahun}


def _back(endpoint: str, **values):
    return redirect(request.referrer or url_for(endpoint, **values))


def _parse_form_date(value: Optional[str]) -> Optional[dt.date]:
    text = (value or "").strip()
    if not text:
        return None
    try:
        return dt.date.fromisoformat(text)
    except ValueError:
        return parse_card_date(text)


def _validate_payment(form, required: Tuple[str, ...]) -> Tuple[Dict[str, Any], List[str]]:
    errors: List[str] = []
    for name in required:
        if not (form.get(name) or "").strip():
            errors.append(f"{name} is required.")
    values: Dict[str, Any] = {}
    for name in ("nip", "nama", "jabatan", "unit", "bulan", "tanggal_bayar", "status_angsuran"):
        if name in form:
            values[name] = (form.get(name) or "").strip() or None
    if (form.get("tahun") or "").strip():
        try:
            values["tahun"] = int(form["tahun"])
        except ValueError:
            errors.append("tahun must be an integer.")
    if (form.get("nilai_angsuran") or "").strip():
        try:
            values["nilai_angsuran"] = parse_amount(form["nilai_angsuran"])
        except ValueError as exc:
            errors.append(str(exc))
    return values, errors


def _validate_card(data, card_numbers: List[str], require_card: bool) -> Tuple[Dict[str, Any], Dict[str, List[str]]]:
    errors: Dict[str, List[str]] = {}

    def fail(name: str, message: str) -> None:
        errors.setdefault(name, []).append(message)

    values: Dict[str, Any] = {}
    for name in ("employee_name", "personel_number", "trip_number", "origin", "destination"):
        text = str(data.get(name) or "").strip()
        if not text:
            fail(name, f"The {name} field is required.")
        elif len(text) > (50 if name in ("personel_number", "trip_number") else 255):
            fail(name, f"The {name} field is too long.")
        values[name] = text

    departure = _parse_form_date(str(data.get("departure_date") or ""))
    returning = _parse_form_date(str(data.get("return_date") or ""))
    if departure is None:
        fail("departure_date", "The departure_date field must be a valid date.")
    if returning is None:
        fail("return_date", "The return_date field must be a valid date.")
    elif departure is not None and returning < departure:
        fail("return_date", "The return_date must be a date after or equal to departure_date.")
    values["departure"] = departure
    values["return"] = returning

    try:
        values["payment_amount"] = parse_amount(str(data.get("payment_amount") or ""))
    except ValueError as exc:
        fail("payment_amount", str(exc))

    transaction_type = str(data.get("transaction_type") or "").strip().lower()
    if transaction_type not in TRANSACTION_TYPES:
        fail("transaction_type", "The transaction_type must be payment or refund.")
    values["transaction_type"] = transaction_type

    for name in ("custom_month", "custom_year"):
        values[name] = str(data.get(name) or "").strip()
        if not values[name]:
            fail(name, f"The {name} field is required.")

    cc_number = str(data.get("cc_number") or "").strip()
    if require_card and cc_number not in card_numbers:
        fail("cc_number", f"The cc_number must be one of: {', '.join(card_numbers)}.")
    values["cc_number"] = cc_number
    return values, errors


def _sheet_name(values: Dict[str, Any]) -> str:
    name = f"{values['custom_month']} {values['custom_year']}"
    if values["cc_number"]:
        name += f" - CC {values['cc_number']}"
    return name


def _card_fields(values: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "employee_name": values["employee_name"],
        "personel_number": values["personel_number"],
        "trip_number": values["trip_number"],
        "origin": values["origin"],
        "destination": values["destination"],
        "trip_destination_full": f"{values['origin']} - {values['destination']}",
        "departure_date": format_card_date(values["departure"]),
        "return_date": format_card_date(values["return"]),
        "duration_days": (values["return"] - values["departure"]).days,
        "payment_amount": values["payment_amount"],
        "transaction_type": values["transaction_type"],
        "sheet": _sheet_name(values),
    }


def _validation_failed(errors: Dict[str, List[str]]):
    return jsonify({"message": "Validation failed", "errors": errors}), 422


def _new_booking_id(transaction_type: str) -> str:
    booking_id = f"{int(time.time())}{random.randint(1000, 9999)}"
    if transaction_type == "refund":
        booking_id += "-REFUND"
    return booking_id


def _rebook(booking_id: str, transaction_type: str) -> str:
    if transaction_type == "refund" and "-REFUND" not in booking_id:
        return booking_id + "-REFUND"
    if transaction_type == "payment" and "-REFUND" in booking_id:
        return booking_id.replace("-REFUND", "")
    return booking_id


def _money(value: Any) -> Optional[Decimal]:
    text = str(value if value is not None else "").strip()
    if not text:
        return Decimal("0")
    return parse_amount(text)


def create_app(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(
        __name__,
        template_folder=str(PACKAGE_ROOT / "templates"),
        static_folder=str(PACKAGE_ROOT / "static"),
    )
    cfg = AppConfig.load(_resolve_config_path(config_path))
    app.config.update(cfg.to_flask())
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    if overrides:
        app.config.update(overrides)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    init_db(app)
    app.jinja_env.filters["currency"] = format_currency
    app.jinja_env.filters["rupiah"] = format_rupiah

    # ------------------------------------------------------------------
    # Dashboard

    @app.route("/")
    def index():
        try:
            year, month = _dashboard_filters(request.args)
        except ValueError as exc:
            flash(str(exc), "error")
            year, month = None, None
        summary = build_dashboard(
            RecordStore(),
            year=year,
            month=month,
            limit=current_app.config["ACTIVITY_LIMIT"],
            caps=current_app.config["ACTIVITY_CAPS"],
        )
        return render_template(
            "dashboard.html",
            summary=summary,
            month_names=MONTH_NAMES,
            selected_year=year,
            selected_month=month,
        )

    @app.route("/api/dashboard")
    def api_dashboard():
        try:
            year, month = _dashboard_filters(request.args)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        summary = build_dashboard(
            RecordStore(),
            year=year,
            month=month,
            limit=current_app.config["ACTIVITY_LIMIT"],
            caps=current_app.config["ACTIVITY_CAPS"],
        )
        return jsonify(summary)

    # ------------------------------------------------------------------
    # BFKO

    @app.route("/bfko")
    def bfko_index():
        store = RecordStore()
        years = store.installment_years()
        filters = _bfko_filters(request.args, years)
        try:
            year = _parse_year(filters["tahun"])
            month = month_number(filters["bulan"])
        except ValueError as exc:
            flash(str(exc), "error")
            return redirect(url_for("bfko_index"))
        overview = an.bfko_overview(store.installments(year, month), store.installments(year))
        return render_template(
            "bfko.html",
            filters=filters,
            years=years,
            month_names=MONTH_NAMES,
            overview=overview,
        )

    @app.route("/bfko/import", methods=["POST"])
    def bfko_import():
        file = request.files.get("file")
        if not file or not file.filename:
            flash("Please choose a CSV file to upload.", "error")
            return redirect(url_for("bfko_index"))
        filename = secure_filename(file.filename)
        if not filename.lower().endswith((".csv", ".txt")):
            flash("The file must be a CSV file.", "error")
            return redirect(url_for("bfko_index"))
        try:
            result = import_installments(file.stream, db.session)
        except CsvImportError as exc:
            flash(f"Import failed: {exc}", "error")
            return redirect(url_for("bfko_index"))
        app.logger.info("BFKO import from %s: %s", filename, result.message())
        flash(f"Import completed! {result.message()}", "success")
        return redirect(url_for("bfko_index"))

    @app.route("/bfko/employee/<nip>")
    def bfko_employee(nip: str):
        store = RecordStore()
        tahun = request.args.get("tahun", "all")
        try:
            year = _parse_year(tahun)
        except ValueError:
            year, tahun = None, "all"
        employee = an.employee_payments(store.employee_installments(nip, year))
        if employee is None:
            flash("Employee not found.", "error")
            return redirect(url_for("bfko_index"))
        return render_template(
            "bfko_employee.html",
            employee=employee,
            available_years=store.installment_years(nip),
            selected_year=tahun,
            month_names=MONTH_NAMES,
        )

    @app.route("/bfko/payments", methods=["POST"])
    def bfko_store_payment():
        values, errors = _validate_payment(
            request.form, ("nip", "nama", "jabatan", "bulan", "tahun", "nilai_angsuran")
        )
        if errors:
            for message in errors:
                flash(message, "error")
            return _back("bfko_index")
        values["jabatan"] = values.get("jabatan") or ""
        db.session.add(InstallmentPayment(**values))
        db.session.commit()
        flash("Payment added.", "success")
        return _back("bfko_index")

    @app.route("/bfko/payments/<int:payment_id>", methods=["POST"])
    def bfko_update_payment(payment_id: int):
        payment = db.get_or_404(InstallmentPayment, payment_id)
        values, errors = _validate_payment(request.form, ("bulan", "tahun", "nilai_angsuran"))
        if errors:
            for message in errors:
                flash(message, "error")
            return _back("bfko_employee", nip=payment.nip)
        for name in ("bulan", "tahun", "nilai_angsuran", "tanggal_bayar", "status_angsuran"):
            if name in values:
                setattr(payment, name, values[name])
        db.session.commit()
        flash("Payment updated.", "success")
        return _back("bfko_employee", nip=payment.nip)

    @app.route("/bfko/payments/<int:payment_id>/delete", methods=["POST"])
    def bfko_delete_payment(payment_id: int):
        payment = db.get_or_404(InstallmentPayment, payment_id)
        nip = payment.nip
        db.session.delete(payment)
        db.session.commit()
        app.logger.info("Deleted BFKO payment id=%s nip=%s", payment_id, nip)
        flash("Payment deleted.", "success")
        return _back("bfko_employee", nip=nip)

    @app.route("/bfko/employee/<nip>/delete", methods=["POST"])
    def bfko_delete_employee(nip: str):
        employee = db.session.scalars(select(InstallmentPayment).where(InstallmentPayment.nip == nip)).first()
        if employee is None:
            flash("Employee not found.", "error")
            return redirect(url_for("bfko_index"))
        year_arg = request.values.get("year")
        try:
            year = _parse_year(year_arg)
        except ValueError:
            flash(f"Invalid year: {year_arg}", "error")
            return redirect(url_for("bfko_index"))
        stmt = delete(InstallmentPayment).where(InstallmentPayment.nip == nip)
        if year is not None:
            stmt = stmt.where(InstallmentPayment.tahun == year)
            message = f"Payments of {employee.nama} for {year} deleted"
        else:
            message = f"All payments of {employee.nama} deleted"
        deleted = db.session.execute(stmt).rowcount
        db.session.commit()
        app.logger.info("Deleted %s BFKO rows for nip=%s year=%s", deleted, nip, year)
        flash(f"{message} ({deleted} records)", "success")
        return redirect(url_for("bfko_index"))

    @app.route("/bfko/delete-all", methods=["POST"])
    def bfko_delete_all():
        deleted = db.session.execute(delete(InstallmentPayment)).rowcount
        db.session.commit()
        app.logger.info("Deleted all BFKO data (%s rows)", deleted)
        flash("All BFKO data deleted.", "success")
        return redirect(url_for("bfko_index"))

    def _export_rows() -> Tuple[Optional[int], List[InstallmentPayment]]:
        try:
            year = _parse_year(request.args.get("tahun", "all"))
        except ValueError:
            year = None
        return year, RecordStore().installments(year)

    @app.route("/bfko/export/excel")
    def bfko_export_excel():
        year, rows = _export_rows()
        return Response(
            bfko_workbook(rows, year),
            mimetype=XLSX_MIMETYPE,
            headers={"Content-Disposition": f"attachment; filename={export_filename(year, 'xlsx')}"},
        )

    @app.route("/bfko/export/pdf")
    def bfko_export_pdf():
        year, rows = _export_rows()
        return Response(
            bfko_pdf(rows, year),
            mimetype=PDF_MIMETYPE,
            headers={"Content-Disposition": f"attachment; filename={export_filename(year, 'pdf')}"},
        )

    # ------------------------------------------------------------------
    # CC Card

    @app.route("/cc-card")
    def cc_index():
        store = RecordStore()
        cards = store.card_transactions()
        selected_sheet = request.args.get("sheet") or ""
        visible = [c for c in cards if not selected_sheet or c.sheet == selected_sheet]
        return render_template(
            "cc_card.html",
            sheets=an.sheet_summaries(cards, store.sheet_fees()),
            transactions=visible,
            selected_sheet=selected_sheet,
            card_numbers=current_app.config["CARD_NUMBERS"],
            month_names=MONTH_NAMES,
        )

    @app.route("/cc-card/autocomplete")
    def cc_autocomplete():
        search = request.args.get("q", "")
        rows = db.session.execute(
            select(CardTransaction.employee_name, CardTransaction.personel_number)
            .where(CardTransaction.employee_name.like(f"%{search}%"))
            .distinct()
            .limit(10)
        ).all()
        return jsonify(
            [
                {
                    "label": f"{name} ({number})",
                    "value": name,
                    "personel_number": number,
                }
                for name, number in rows
            ]
        )

    @app.route("/cc-card/transactions", methods=["POST"])
    def cc_store():
        data = request.get_json(silent=True) or request.form
        values, errors = _validate_card(data, current_app.config["CARD_NUMBERS"], require_card=True)
        if errors:
            return _validation_failed(errors)
        store = RecordStore()
        transaction = CardTransaction(
            transaction_number=store.next_transaction_number(),
            booking_id=_new_booking_id(values["transaction_type"]),
            status="Complete",
            **_card_fields(values),
        )
        db.session.add(transaction)
        store.ensure_sheets([transaction.sheet])
        db.session.commit()
        return jsonify(
            {
                "message": "Transaction created successfully!",
                "transaction": transaction.to_dict(),
                "sheet": transaction.sheet,
            }
        )

    @app.route("/cc-card/transactions/<int:transaction_id>", methods=["GET"])
    def cc_show(transaction_id: int):
        return jsonify(db.get_or_404(CardTransaction, transaction_id).to_dict())

    @app.route("/cc-card/transactions/<int:transaction_id>", methods=["POST"])
    def cc_update(transaction_id: int):
        data = request.get_json(silent=True) or request.form
        values, errors = _validate_card(data, current_app.config["CARD_NUMBERS"], require_card=False)
        if errors:
            return _validation_failed(errors)
        transaction = db.get_or_404(CardTransaction, transaction_id)
        for name, value in _card_fields(values).items():
            setattr(transaction, name, value)
        transaction.booking_id = _rebook(transaction.booking_id, values["transaction_type"])
        RecordStore().ensure_sheets([transaction.sheet])
        db.session.commit()
        return jsonify({"message": "Transaction updated successfully!", "transaction": transaction.to_dict()})

    @app.route("/cc-card/transactions/<int:transaction_id>/delete", methods=["POST"])
    def cc_destroy(transaction_id: int):
        transaction = db.get_or_404(CardTransaction, transaction_id)
        db.session.delete(transaction)
        db.session.commit()
        flash("Transaction deleted successfully!", "success")
        return _back("cc_index")

    @app.route("/cc-card/import", methods=["POST"])
    def cc_import():
        file = request.files.get("csv_file")
        if not file or not file.filename:
            flash("Please choose a CSV file to upload.", "error")
            return redirect(url_for("cc_index"))
        update_existing = request.form.get("update_existing") in {"1", "true", "on", "yes"}
        try:
            result = import_card_transactions(
                file.stream,
                db.session,
                update_existing=update_existing,
                override_sheet_name=request.form.get("override_sheet_name"),
            )
        except CsvImportError as exc:
            flash(f"Import failed: {exc}", "error")
            return redirect(url_for("cc_index"))
        app.logger.info("CC import from %s: %s", secure_filename(file.filename), result.message())
        flash(f"Import completed! {result.message()}", "success")
        return redirect(url_for("cc_index"))

    @app.route("/cc-card/sheets/delete", methods=["POST"])
    def cc_destroy_sheet():
        data = request.get_json(silent=True) or request.form
        sheet_name = str(data.get("sheet_name") or "").strip()
        if not sheet_name:
            return jsonify({"errors": {"sheet_name": ["The sheet_name field is required."]}}), 422
        try:
            deleted = db.session.execute(delete(CardTransaction).where(CardTransaction.sheet == sheet_name)).rowcount
            db.session.execute(delete(SheetAdditionalFee).where(SheetAdditionalFee.sheet_name == sheet_name))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        app.logger.info("Deleted sheet %r with %s transactions", sheet_name, deleted)
        return jsonify({"message": f"Sheet '{sheet_name}' deleted successfully!", "deleted_transactions": deleted})

    @app.route("/cc-card/fees", methods=["GET"])
    def cc_fees():
        return jsonify([fee.to_dict() for fee in RecordStore().sheet_fees()])

    @app.route("/cc-card/fees", methods=["POST"])
    def cc_update_fees():
        data = request.get_json(silent=True) or {}
        fees = data.get("fees")
        if not isinstance(fees, list):
            return jsonify({"errors": {"fees": ["The fees field must be a list."]}}), 422
        errors: Dict[str, List[str]] = {}
        parsed = []
        for index, item in enumerate(fees):
            name = str((item or {}).get("sheet_name") or "").strip()
            if not name:
                errors.setdefault(f"fees.{index}.sheet_name", []).append("The sheet_name field is required.")
                continue
            amounts = {}
            for field in ("biaya_adm_bunga", "biaya_transfer", "iuran_tahunan"):
                try:
                    amounts[field] = _money(item.get(field))
                except ValueError as exc:
                    errors.setdefault(f"fees.{index}.{field}", []).append(str(exc))
            parsed.append((name, amounts))
        if errors:
            return jsonify({"errors": errors}), 422
        try:
            for name, amounts in parsed:
                fee = db.session.scalars(select(SheetAdditionalFee).where(SheetAdditionalFee.sheet_name == name)).first()
                if fee is None:
                    fee = SheetAdditionalFee(sheet_name=name)
                    db.session.add(fee)
                for field, amount in amounts.items():
                    setattr(fee, field, amount)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return jsonify({"message": "Fees updated successfully!"})

    @app.route("/cc-card/fees/delete", methods=["POST"])
    def cc_delete_fees():
        data = request.get_json(silent=True) or request.form
        sheet_name = str(data.get("sheet_name") or "").strip()
        if not sheet_name:
            return jsonify({"errors": {"sheet_name": ["The sheet_name field is required."]}}), 422
        fee = db.session.scalars(select(SheetAdditionalFee).where(SheetAdditionalFee.sheet_name == sheet_name)).first()
        if fee is None:
            return jsonify({"message": "No fees found for this sheet."}), 404
        db.session.delete(fee)
        db.session.commit()
        return jsonify({"message": "Additional fees deleted successfully!"})

    # ------------------------------------------------------------------
    # Service Fee

    @app.route("/service-fee", methods=["GET", "POST"])
    def service_fee_index():
        errors: List[str] = []
        form = {
            "employee_name": "",
            "service_type": "hotel",
            "hotel_name": "",
            "route": "",
            "transaction_amount": "",
            "transaction_time": "",
            "status": "",
        }
        if request.method == "POST":
            form = {key: (request.form.get(key) or "").strip() for key in form}
            if not form["employee_name"]:
                errors.append("Employee name is required.")
            if form["service_type"] not in SERVICE_TYPES:
                errors.append("Service type must be hotel, flight or other.")
            try:
                amount = parse_amount(form["transaction_amount"])
            except ValueError as exc:
                amount = None
                errors.append(str(exc))
            try:
                when = dt.datetime.fromisoformat(form["transaction_time"]) if form["transaction_time"] else None
            except ValueError:
                when = None
                errors.append("Transaction time must be an ISO date/time.")
            if not errors:
                db.session.add(
                    ServiceFee(
                        employee_name=form["employee_name"],
                        service_type=form["service_type"],
                        hotel_name=form["hotel_name"] or None,
                        route=form["route"] or None,
                        transaction_amount=amount,
                        transaction_time=when,
                        status=form["status"] or None,
                    )
                )
                db.session.commit()
                flash("Service fee added.", "success")
                return redirect(url_for("service_fee_index"))
        fees = RecordStore().service_fees()
        fees.sort(key=lambda f: f.transaction_time or dt.datetime.min, reverse=True)
        return render_template(
            "service_fee.html",
            fees=fees,
            form=form,
            errors=errors,
            service_types=SERVICE_TYPES,
        )

    @app.route("/service-fee/<int:fee_id>/delete", methods=["POST"])
    def service_fee_delete(fee_id: int):
        fee = db.get_or_404(ServiceFee, fee_id)
        db.session.delete(fee)
        db.session.commit()
        flash("Service fee deleted.", "success")
        return redirect(url_for("service_fee_index"))

    return app


def _resolve_config_path(config_path: Optional[str]) -> Optional[Path]:
    if not config_path:
        return None
    path = Path(config_path)
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


if __name__ == "__main__":
    create_app().run(debug=True)
