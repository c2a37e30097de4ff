# Overview: Flask API routes for reports; TSV downloads and the dashboard summary.

"""
Report Routes

SECURITY: All routes require authentication.
- Sales and inventory TSV downloads require the SUPERVISOR role
- The dashboard summary is available to any authenticated user
"""

from flask import Blueprint, Response, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import PosError
from ..models.auth import ROLE_SUPERVISOR
from ..services import reporting_service
from ..services.tsv import TSV_MEDIA_TYPE


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _tsv_attachment(content: bytes, filename: str) -> Response:
    response = Response(content, mimetype=TSV_MEDIA_TYPE)
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


@reports_bp.get("/sales")
@require_auth
@require_role(ROLE_SUPERVISOR)
def sales_report_route():
    """
    Sales report between two calendar days (inclusive).

    Query parameters:
    - start, end: YYYY-MM-DD (required)
    """
    try:
        report = reporting_service.sales_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500

    return _tsv_attachment(
        reporting_service.sales_report_tsv(report),
        reporting_service.sales_report_filename(report),
    )


@reports_bp.get("/inventory")
@require_auth
@require_role(ROLE_SUPERVISOR)
def inventory_report_route():
    try:
        report = reporting_service.inventory_report()
    except Exception:
        current_app.logger.exception("Failed to build inventory report")
        return jsonify({"error": "Internal server error"}), 500

    return _tsv_attachment(
        reporting_service.inventory_report_tsv(report),
        reporting_service.INVENTORY_REPORT_FILENAME,
    )


@reports_bp.get("/summary")
@require_auth
def dashboard_summary_route():
    try:
        return jsonify(reporting_service.dashboard_summary())
    except Exception:
        current_app.logger.exception("Failed to build dashboard summary")
        return jsonify({"error": "Internal server error"}), 500
