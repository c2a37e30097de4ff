# backend/posoffice/routes/system.py
"""
System health and version endpoints.

/health runs three probes: catalog/order tables, the session table, and the
invoice storage directory. Any unhealthy probe turns the response into a 503.
"""

import os
import sys
import time
from flask import Blueprint, current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Client, Inventory, Order, Product, SessionToken
from posoffice.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")

API_VERSION = "0.1.0"


def _timed_check(label: str, probe) -> dict:
    """Run probe() and wrap its details with status and latency."""
    started = time.perf_counter()
    try:
        details = probe()
        status = "healthy"
        error = None
    except SQLAlchemyError:
        current_app.logger.exception("%s health check failed", label)
        db.session.rollback()
        details, status, error = None, "unhealthy", f"{label} error"
    except OSError as exc:
        current_app.logger.error("%s health check failed: %s", label, exc)
        details, status, error = None, "unhealthy", f"{label} error"

    result = {"status": status, "latency_ms": round((time.perf_counter() - started) * 1000, 2)}
    if details is not None:
        result["details"] = details
    if error:
        result["error"] = error
    return result


def _database_probe() -> dict:
    return {
        "clients": db.session.query(Client).count(),
        "products": db.session.query(Product).count(),
        "orders": db.session.query(Order).count(),
        "units_on_hand": int(db.session.query(func.coalesce(func.sum(Inventory.quantity), 0)).scalar()),
    }


def _session_probe() -> dict:
    now = utcnow()
    live = db.session.query(SessionToken).filter(SessionToken.is_revoked.is_(False))
    return {
        "active_sessions": live.filter(SessionToken.expires_at >= now).count(),
        "expired_pending_cleanup": live.filter(SessionToken.expires_at < now).count(),
    }


def _invoice_storage_probe() -> dict:
    path = current_app.config.get("INVOICE_STORAGE_PATH", "invoices")
    exists = os.path.isdir(path)
    if exists and not os.access(path, os.W_OK):
        raise OSError(f"invoice storage not writable: {path}")
    # A missing directory is created on first invoice
    return {"path_exists": exists}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: every probe healthy
    - 503: at least one probe unhealthy
    """
    started = time.perf_counter()
    checks = {
        "database": _timed_check("Database", _database_probe),
        "session_service": _timed_check("Session service", _session_probe),
        "invoice_storage": _timed_check("Invoice storage", _invoice_storage_probe),
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "checks": checks,
    }, 200 if healthy else 503


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information (no secrets, no paths)."""
    return {
        "api_version": API_VERSION,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
