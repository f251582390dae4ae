import json

from finance_monitor.cli import main, parse_args
from finance_monitor.config import DEFAULT_ACTIVITY_CAPS, AppConfig


def _config(tmp_path, **extra):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"database_uri": f"sqlite:///{tmp_path / 'cli.sqlite'}", **extra}), encoding="utf-8")
    return str(path)


def test_config_defaults_and_overrides(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert AppConfig.load(None).activity_caps == DEFAULT_ACTIVITY_CAPS

    cfg = AppConfig.load(
        _config(tmp_path, activity_limit=5, activity_caps={"bfko": 1, "bogus": 9}, card_numbers=["1111", " "], log_level="debug")
    )
    assert cfg.activity_limit == 5
    assert cfg.activity_caps == {"bfko": 1, "service_fee": 2, "cc_card": 2}
    assert cfg.card_numbers == ["1111"]
    assert cfg.log_level == "DEBUG"
    assert cfg.to_flask()["ACTIVITY_LIMIT"] == 5

    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    assert AppConfig.load(_config(tmp_path)).database_uri == "sqlite:///:memory:"


def test_parse_args_import_cc():
    args = parse_args(["import-cc", "cc.csv", "--update-existing", "--sheet", "Mei 2025 - CC 5657"])
    assert args.command == "import-cc"
    assert args.update_existing is True
    assert args.sheet == "Mei 2025 - CC 5657"


def test_import_and_summary(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config = _config(tmp_path)
    csv_path = tmp_path / "bfko.csv"
    csv_path.write_text(
        "nip,nama,jabatan,unit,bulan,tahun,nilai_angsuran,tanggal_bayar,status_angsuran\n"
        "198001,Andi,Staff,Keuangan,Januari,2025,1000000,,\n",
        encoding="utf-8",
    )

    assert main(["--config", config, "init-db"]) == 0
    assert main(["--config", config, "import-bfko", str(csv_path)]) == 0
    assert "Imported: 1" in capsys.readouterr().out

    out_json = tmp_path / "out" / "summary.json"
    out_csv = tmp_path / "out" / "summary.csv"
    assert main(["--config", config, "summary", "--year", "2025", "--json", str(out_json), "--csv", str(out_csv)]) == 0
    assert "Finance Monitor Summary" in capsys.readouterr().out

    data = json.loads(out_json.read_text(encoding="utf-8"))
    assert data["category_totals"]["bfko"]["total"] == 1000000.0
    assert out_csv.read_text(encoding="utf-8").startswith("Section,Item,Metric,Value")


def test_failures_return_non_zero(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config = _config(tmp_path)
    assert main(["--config", config, "import-bfko", str(tmp_path / "missing.csv")]) == 1
    latin1 = tmp_path / "latin1.csv"
    latin1.write_bytes(b"nip,nama\n198001,Andr\xe9\n")
    assert main(["--config", config, "import-bfko", str(latin1)]) == 1
    assert main(["--config", config, "summary", "--month", "Smarch"]) == 2
    assert "Import failed" in capsys.readouterr().out
