"""Command-line interface for the Finance Monitor.

Usage:
  python -m finance_monitor.cli init-db
  python -m finance_monitor.cli import-bfko data/bfko_2025.csv
  python -m finance_monitor.cli import-cc data/cc_april.csv --update-existing
  python -m finance_monitor.cli summary --year 2025 --json out/summary.json
  python -m finance_monitor.cli serve --port 8000

Every command accepts ``--config`` pointing at a JSON config file.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .config import AppConfig
from .data_loader import CsvImportError, import_card_transactions, import_installments
from .db import RecordStore
from .models import db
from .reports import build_dashboard, export_summary_csv, format_text_report, save_json
from .webapp import create_app


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Finance Monitor")
    p.add_argument("--config", "-c", help="Path to JSON config")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database tables")

    bfko = sub.add_parser("import-bfko", help="Import a BFKO installment CSV")
    bfko.add_argument("path")

    cc = sub.add_parser("import-cc", help="Import a CC Card transaction CSV")
    cc.add_argument("path")
    cc.add_argument("--update-existing", action="store_true", help="Overwrite bookings already on file")
    cc.add_argument("--sheet", dest="sheet", help="Store every row under this sheet name")

    summary = sub.add_parser("summary", help="Print the dashboard summary")
    summary.add_argument("--year", type=int)
    summary.add_argument("--month", help="Month name (Januari..Desember) or number")
    summary.add_argument("--json", dest="json_out", help="Write summary JSON to path")
    summary.add_argument("--csv", dest="csv_out", help="Write summary CSV to path")

    serve = sub.add_parser("serve", help="Run the development server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    serve.add_argument("--debug", action="store_true")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    cfg = AppConfig.load(args.config)
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = create_app(args.config)

    if args.command == "serve":
        app.run(host=args.host, port=args.port, debug=args.debug)
        return 0

    with app.app_context():
        if args.command == "init-db":
            print(f"Database ready: {app.config['SQLALCHEMY_DATABASE_URI']}")
            return 0

        if args.command in ("import-bfko", "import-cc"):
            try:
                if args.command == "import-bfko":
                    result = import_installments(args.path, db.session)
                else:
                    result = import_card_transactions(
                        args.path,
                        db.session,
                        update_existing=args.update_existing,
                        override_sheet_name=args.sheet,
                    )
            except CsvImportError as exc:
                print(f"Import failed: {exc}")
                return 1
            print(f"Import completed! {result.message()}")
            for warning in result.warnings:
                print(f"  {warning}")
            return 0

        try:
            summary = build_dashboard(
                RecordStore(),
                year=args.year,
                month=args.month,
                limit=cfg.activity_limit,
                caps=cfg.activity_caps,
            )
        except ValueError as exc:
            print(str(exc))
            return 2
        print(format_text_report(summary))
        if args.json_out:
            save_json(summary, args.json_out)
            print(f"\nSaved JSON summary to: {args.json_out}")
        if args.csv_out:
            export_summary_csv(summary, args.csv_out)
            print(f"Saved CSV summary to: {args.csv_out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
