# backend/posoffice/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str = "") -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/posoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///posoffice.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upload intake
    UPLOAD_MAX_BYTES = int(os.environ.get("UPLOAD_MAX_BYTES", 5 * 1024 * 1024))
    UPLOAD_ALLOWED_SUFFIX = ".tsv"

    # Product upload may create unknown clients by name
    AUTO_CREATE_CLIENTS = _bool_env("AUTO_CREATE_CLIENTS", False)

    # Order engine policy (see services.order_service.OrderPolicy)
    ORDER_AUTO_CANCEL_EMPTY = _bool_env("ORDER_AUTO_CANCEL_EMPTY", False)
    ORDER_ENFORCE_MRP_CEILING = _bool_env("ORDER_ENFORCE_MRP_CEILING", True)

    # Signups with these emails become SUPERVISOR, everyone else OPERATOR
    SUPERVISOR_EMAILS = _csv_env("SUPERVISOR_EMAILS")

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))
    SESSION_IDLE_TIMEOUT_MINUTES = int(os.environ.get("SESSION_IDLE_TIMEOUT_MINUTES", 120))

    # Downstream invoice renderer
    INVOICE_APP_URL = os.environ.get("INVOICE_APP_URL", "http://localhost:9001/api/invoice")
    INVOICE_STORAGE_PATH = os.environ.get("INVOICE_STORAGE_PATH", "invoices")
    INVOICE_TIMEOUT_SECONDS = float(os.environ.get("INVOICE_TIMEOUT_SECONDS", 10))
