import datetime as dt
from decimal import Decimal

from conftest import card, installment, service_fee

from finance_monitor import analytics as an
from finance_monitor.models import SheetAdditionalFee
from finance_monitor.reports import format_rupiah

TODAY = dt.date(2025, 6, 15)


def _many(factory, count, start, **kw):
    return [factory(updated_at=start + dt.timedelta(hours=i), **kw) for i in range(count)]


# Category totals ----------------------------------------------------------


def test_category_totals_sum_count_and_distinct_employees():
    bfko = [
        installment(nip="1", nilai_angsuran=Decimal("100")),
        installment(nip="1", bulan="Februari", nilai_angsuran=Decimal("150")),
        installment(nip="2", nilai_angsuran=Decimal("50")),
    ]
    cards = [card(personel_number="A"), card(personel_number="A", payment_amount=Decimal("10"))]
    fees = [service_fee(), service_fee(service_type="flight", hotel_name=None, route="CGK-DPS")]

    totals = an.category_totals(bfko, cards, fees)

    assert totals["bfko"] == {"total": Decimal("300"), "count": 3, "employees": 2}
    assert totals["cc_card"]["total"] == Decimal("2500010")
    assert totals["cc_card"]["employees"] == 1
    assert totals["service_fee"]["total"] == Decimal("1500000")
    assert totals["service_fee"]["employees"] is None
    assert totals["service_fee"]["hotel"] == 1
    assert totals["service_fee"]["flight"] == 1


def test_category_totals_match_row_sums_and_treat_missing_amounts_as_zero():
    bfko = [installment(nilai_angsuran=None), installment(nilai_angsuran=Decimal("12.5"))]
    totals = an.category_totals(bfko, [], [])
    assert totals["bfko"]["total"] == sum((r.nilai_angsuran or Decimal("0") for r in bfko), Decimal("0"))
    assert totals["bfko"]["total"] == Decimal("12.5")


def test_category_totals_empty_is_zero():
    totals = an.category_totals([], [], [])
    for stats in totals.values():
        assert stats["total"] == 0
        assert stats["count"] == 0


def test_category_share_zero_total_is_zero_not_nan():
    share = an.category_share(an.category_totals([], [], []))
    assert share == {"bfko": 0.0, "cc_card": 0.0, "service_fee": 0.0}


def test_category_share_splits_grand_total():
    totals = an.category_totals(
        [installment(nilai_angsuran=Decimal("300"))],
        [card(payment_amount=Decimal("100"))],
        [],
    )
    share = an.category_share(totals)
    assert share == {"bfko": 75.0, "cc_card": 25.0, "service_fee": 0.0}


# Monthly matrix -----------------------------------------------------------


def test_monthly_matrix_always_has_twelve_rows_in_calendar_order():
    matrix = an.monthly_matrix([], [], [])
    assert [row["month"] for row in matrix] == [
        "Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agu", "Sep", "Okt", "Nov", "Des",
    ]
    assert all(row["bfko"] == row["cc_card"] == row["service_fee"] == 0 for row in matrix)


def test_monthly_matrix_sums_each_source_by_its_own_date_field():
    matrix = an.monthly_matrix(
        [installment(bulan="Maret", nilai_angsuran=Decimal("100"))],
        [card(departure_date="3/2/2025", payment_amount=Decimal("40"))],
        [service_fee(transaction_time=dt.datetime(2024, 3, 1), transaction_amount=Decimal("7"))],
    )
    march = matrix[2]
    assert march["month_name"] == "Maret"
    assert (march["bfko"], march["cc_card"], march["service_fee"]) == (100.0, 40.0, 7.0)


def test_monthly_matrix_aggregates_across_years():
    matrix = an.monthly_matrix(
        [
            installment(bulan="Mei", tahun=2023, nilai_angsuran=Decimal("1")),
            installment(bulan="Mei", tahun=2025, nilai_angsuran=Decimal("2")),
        ],
        [],
        [],
    )
    assert matrix[4]["bfko"] == 3.0


def test_unparseable_card_date_contributes_to_no_month():
    matrix = an.monthly_matrix(
        [],
        [card(departure_date=""), card(departure_date="2025-04-07"), card(departure_date=None)],
        [],
    )
    assert all(row["cc_card"] == 0 for row in matrix)


def test_unknown_bfko_month_and_missing_fee_time_are_left_out():
    matrix = an.monthly_matrix(
        [installment(bulan="Smarch")],
        [],
        [service_fee(transaction_time=None)],
    )
    assert sum(row["bfko"] + row["service_fee"] for row in matrix) == 0


# Recent activity ----------------------------------------------------------


def test_feed_is_capped_per_category_so_it_never_reaches_the_limit():
    start = dt.datetime(2025, 1, 1)
    events = an.recent_activity(
        _many(installment, 10, start),
        _many(card, 10, start),
        _many(service_fee, 10, start),
        limit=8,
    )
    # 3 BFKO + 2 service fee + 2 card: the observed maximum is 7, not 8
    assert len(events) == 7
    categories = [e.category for e in events]
    assert categories.count("bfko") == 3
    assert categories.count("service_fee") == 2
    assert categories.count("cc_card") == 2


def test_feed_is_sorted_newest_first():
    bfko = [installment(updated_at=dt.datetime(2025, 1, d)) for d in (3, 9, 1)]
    cards = [card(updated_at=dt.datetime(2025, 1, d)) for d in (5, 2)]
    fees = [service_fee(updated_at=dt.datetime(2025, 1, d)) for d in (8, 4)]
    events = an.recent_activity(bfko, cards, fees)
    stamps = [e.timestamp for e in events]
    assert stamps == sorted(stamps, reverse=True)
    assert stamps[0] == dt.datetime(2025, 1, 9)


def test_per_category_cap_is_applied_before_merging():
    old = dt.datetime(2020, 1, 1)
    new = dt.datetime(2025, 1, 1)
    events = an.recent_activity(
        [installment(updated_at=new + dt.timedelta(days=i)) for i in range(5)],
        [card(updated_at=old)],
        [],
    )
    assert len(events) == 4
    assert events[-1].category == "cc_card"


def test_feed_respects_a_smaller_limit():
    start = dt.datetime(2025, 1, 1)
    events = an.recent_activity(_many(installment, 3, start), [], [], limit=2)
    assert len(events) == 2


def test_recency_prefers_updated_then_created_then_natural_date():
    updated = dt.datetime(2025, 5, 1)
    created = dt.datetime(2025, 4, 1)
    record = installment(updated_at=updated, created_at=created, tanggal_bayar="2025-01-10")
    assert an.resolve_recency(record, record.tanggal_bayar) == updated

    record = installment(updated_at=None, created_at=created, tanggal_bayar="2025-01-10")
    assert an.resolve_recency(record, record.tanggal_bayar) == created

    record = installment(tanggal_bayar="2025-01-10")
    assert an.resolve_recency(record, record.tanggal_bayar) == dt.datetime(2025, 1, 10)

    record = installment(tanggal_bayar=None)
    assert an.resolve_recency(record, record.tanggal_bayar) == an.FAR_PAST


def test_natural_dates_per_category():
    assert an.card_event(card(departure_date="4/7/2025")).timestamp == dt.datetime(2025, 4, 7)
    fee_time = dt.datetime(2025, 3, 10, 9, 30)
    assert an.service_fee_event(service_fee(transaction_time=fee_time)).timestamp == fee_time


def test_events_without_any_date_sort_last_and_show_raw_dates():
    events = an.recent_activity(
        [installment(bulan="Juni", tahun=2024)],
        [card(departure_date="bad")],
        [service_fee(transaction_time=None)],
    )
    assert all(e.timestamp == an.FAR_PAST for e in events)
    by_category = {e.category: e for e in events}
    assert by_category["bfko"].display_date == "Juni 2024"
    assert by_category["cc_card"].display_date == "bad"
    assert by_category["service_fee"].display_date == "-"


def test_event_fields_and_defaults():
    stamp = dt.datetime(2025, 6, 15, 8, 0)
    bfko = an.installment_event(installment(updated_at=stamp, bulan="Juni", tahun=2025))
    assert bfko.subject == "Andi"
    assert bfko.description == "Angsuran BFKO - Juni 2025"
    assert bfko.status == "Complete"
    assert bfko.display_date == "15-06-2025"

    fee = an.service_fee_event(service_fee(service_type="flight", hotel_name=None, route="CGK-DPS", status="pending"))
    assert fee.description == "Flight - CGK-DPS"
    assert fee.status == "Pending"

    unnamed = an.service_fee_event(service_fee(employee_name=None, hotel_name=None, route=None))
    assert unnamed.subject == "Unknown"
    assert unnamed.description == "Hotel - Unknown"

    cc = an.card_event(card(transaction_type="refund"))
    assert cc.description == "refund - Jakarta - Bandung"


def test_activity_rows_flag_today_and_format_amounts():
    today_event = an.installment_event(installment(updated_at=dt.datetime(2025, 6, 15, 7, 0)))
    old_event = an.card_event(card(updated_at=dt.datetime(2025, 6, 14, 23, 59)))
    rows = an.activity_rows([today_event, old_event], TODAY, format_rupiah)
    assert rows[0]["is_new"] is True
    assert rows[1]["is_new"] is False
    assert rows[0]["total"] == "Rp 1.000.000"
    assert rows[0]["category"] == "BFKO"
    assert rows[1]["category"] == "CC Card"


# BFKO views ---------------------------------------------------------------


def test_monthly_installments_sorted_by_month_with_unknown_last():
    rows = an.monthly_installments(
        [
            installment(bulan="Smarch", nilai_angsuran=Decimal("1")),
            installment(bulan="Desember", nilai_angsuran=Decimal("2")),
            installment(bulan="Februari", nilai_angsuran=Decimal("3")),
            installment(bulan="Februari", nilai_angsuran=Decimal("4")),
        ]
    )
    assert rows == [
        {"bulan": "Februari", "total": 7.0},
        {"bulan": "Desember", "total": 2.0},
        {"bulan": "Smarch", "total": 1.0},
    ]


def test_bfko_overview_counts_employees_over_the_year_filter():
    year_rows = [
        installment(nip="1", bulan="Januari"),
        installment(nip="2", bulan="Februari", nama="Bima"),
    ]
    month_rows = year_rows[:1]
    overview = an.bfko_overview(month_rows, year_rows)
    assert overview["summary"] == {"total_payments": 1000000.0, "total_records": 1, "total_employees": 2}
    assert [row["bulan"] for row in overview["monthly"]] == ["Januari", "Februari"]
    assert len(overview["all_employees"]) == 1


def test_employee_groups_rank_by_total_and_sort_payments():
    rows = [
        installment(nip="1", bulan="Maret", tahun=2024),
        installment(nip="1", bulan="Januari", tahun=2024),
        installment(nip="1", bulan="Januari", tahun=2025),
        installment(nip="2", nama="Bima", nilai_angsuran=Decimal("5000000")),
    ]
    groups = an.employee_groups(rows)
    assert [g["nip"] for g in groups] == ["2", "1"]
    payments = groups[1]["payments"]
    assert [(p.bulan, p.tahun) for p in payments] == [("Januari", 2025), ("Januari", 2024), ("Maret", 2024)]


def test_top_employees_limited_to_ten():
    rows = [installment(nip=str(i), nama=f"E{i}") for i in range(12)]
    overview = an.bfko_overview(rows, rows)
    assert len(overview["top_employees"]) == 10
    assert len(overview["all_employees"]) == 12


def test_export_orderings():
    rows = [
        installment(nama="Bima", bulan="Januari", tahun=2024),
        installment(nama="andi", bulan="Maret", tahun=2025),
        installment(nama="andi", bulan="Januari", tahun=2025),
        installment(nama="andi", bulan="Januari", tahun=2024),
    ]
    excel = [(r.nama, r.tahun, r.bulan) for r in an.sort_for_excel(rows)]
    assert excel == [
        ("andi", 2025, "Januari"),
        ("andi", 2025, "Maret"),
        ("andi", 2024, "Januari"),
        ("Bima", 2024, "Januari"),
    ]
    pdf = [(r.tahun, r.bulan) for r in an.sort_for_pdf(rows)]
    assert pdf[0] == (2025, "Januari")
    assert pdf[-1][0] == 2024


def test_employee_payments_empty_is_none():
    assert an.employee_payments([]) is None


# CC sheets ----------------------------------------------------------------


def test_sheet_summaries_net_payments_refunds_and_fees():
    cards = [
        card(payment_amount=Decimal("1000")),
        card(payment_amount=Decimal("300"), transaction_type="refund"),
        card(sheet="Mei 2025 - CC 9386", payment_amount=Decimal("50")),
    ]
    fees = [
        SheetAdditionalFee(
            sheet_name="April 2025 - CC 5657",
            biaya_adm_bunga=Decimal("10"),
            biaya_transfer=Decimal("5"),
            iuran_tahunan=Decimal("0"),
        ),
        SheetAdditionalFee(sheet_name="Juni 2025 - CC 5657", biaya_adm_bunga=0, biaya_transfer=0, iuran_tahunan=0),
    ]
    rows = an.sheet_summaries(cards, fees)
    assert [r["sheet"] for r in rows] == ["April 2025 - CC 5657", "Juni 2025 - CC 5657", "Mei 2025 - CC 9386"]
    april = rows[0]
    assert april["count"] == 2
    assert april["payments"] == 1000.0
    assert april["refunds"] == 300.0
    assert april["fees"] == 15.0
    assert april["net"] == 715.0
    assert rows[1]["count"] == 0
