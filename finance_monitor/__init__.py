"""Finance Monitor package: BFKO, CC Card and Service Fee tracking."""

__all__ = [
    "config",
    "months",
    "models",
    "db",
    "analytics",
    "reports",
    "data_loader",
    "exports",
    "webapp",
    "cli",
]

__version__ = "0.1.0"
