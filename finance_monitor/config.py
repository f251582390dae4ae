"""Configuration utilities for the Finance Monitor.

Provides the default dashboard settings and a helper to load user-defined
overrides (database location, activity caps, card numbers) from JSON files.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent

CATEGORY_BFKO = "bfko"
CATEGORY_CC_CARD = "cc_card"
CATEGORY_SERVICE_FEE = "service_fee"

CATEGORY_LABELS: Dict[str, str] = {
    CATEGORY_BFKO: "BFKO",
    CATEGORY_CC_CARD: "CC Card",
    CATEGORY_SERVICE_FEE: "Service Fee",
}

# How many of each category's latest records may reach the activity feed.
DEFAULT_ACTIVITY_CAPS: Dict[str, int] = {
    CATEGORY_BFKO: 3,
    CATEGORY_SERVICE_FEE: 2,
    CATEGORY_CC_CARD: 2,
}
DEFAULT_ACTIVITY_LIMIT = 8
DEFAULT_CARD_NUMBERS: List[str] = ["5657", "9386"]
DEFAULT_DATABASE_URI = f"sqlite:///{PROJECT_ROOT / 'finance_monitor.db'}"


@dataclass
class AppConfig:
    database_uri: str = DEFAULT_DATABASE_URI
    secret_key: str = "finance-monitor-dev"
    activity_limit: int = DEFAULT_ACTIVITY_LIMIT
    activity_caps: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_ACTIVITY_CAPS))
    card_numbers: List[str] = field(default_factory=lambda: list(DEFAULT_CARD_NUMBERS))
    log_level: str = "INFO"

    @staticmethod
    def load(config_path: Optional[str | Path] = None) -> "AppConfig":
        """Load config from JSON if provided, else use defaults.

        JSON format:
        {
          "database_uri": "sqlite:////srv/finance/monitor.db",
          "activity_limit": 8,
          "activity_caps": {"bfko": 3, "service_fee": 2, "cc_card": 2},
          "card_numbers": ["5657", "9386"]
        }

        ``DATABASE_URL`` in the environment wins over the file.
        """

        cfg = AppConfig()

        if config_path:
            p = Path(config_path)
            if p.exists():
                with p.open("r", encoding="utf-8") as f:
                    raw = json.load(f)
                if isinstance(raw, dict):
                    if raw.get("database_uri"):
                        cfg.database_uri = str(raw["database_uri"])
                    if raw.get("secret_key"):
                        cfg.secret_key = str(raw["secret_key"])
                    if raw.get("activity_limit") is not None:
                        cfg.activity_limit = int(raw["activity_limit"])
                    if isinstance(raw.get("activity_caps"), dict):
                        # Unknown categories are ignored
                        cfg.activity_caps.update(
                            {
                                str(cat): int(cap)
                                for cat, cap in raw["activity_caps"].items()
                                if cat in CATEGORY_LABELS
                            }
                        )
                    if isinstance(raw.get("card_numbers"), list):
                        cfg.card_numbers = [str(n).strip() for n in raw["card_numbers"] if str(n).strip()]
                    if raw.get("log_level"):
                        cfg.log_level = str(raw["log_level"]).upper()

        env_url = os.environ.get("DATABASE_URL", "").strip()
        if env_url:
            cfg.database_uri = env_url
        return cfg

    def to_flask(self) -> Dict[str, object]:
        return {
            "SQLALCHEMY_DATABASE_URI": self.database_uri,
            "SECRET_KEY": self.secret_key,
            "ACTIVITY_LIMIT": self.activity_limit,
            "ACTIVITY_CAPS": dict(self.activity_caps),
            "CARD_NUMBERS": list(self.card_numbers),
            "LOG_LEVEL": self.log_level,
        }
