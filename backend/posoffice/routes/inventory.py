# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import PosError
from ..models.auth import ROLE_SUPERVISOR
from ..services import inventory_service
from .uploads import handle_upload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
def list_inventory_route():
    try:
        result = inventory_service.list_inventory(
            barcode=request.args.get("barcode"),
            name=request.args.get("name"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.get("/<int:product_id>")
@require_auth
def get_inventory_route(product_id: int):
    try:
        return jsonify(inventory_service.get_inventory(product_id))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.put("/<int:product_id>")
@require_auth
def set_inventory_route(product_id: int):
    """
    Overwrite on-hand quantity.

    Request body: {"quantity": 10}
    """
    data = request.get_json(silent=True) or {}
    if "quantity" not in data:
        return jsonify({"error": "quantity is required"}), 400

    try:
        return jsonify(inventory_service.set_inventory(product_id, data.get("quantity")))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/upload")
@require_auth
@require_role(ROLE_SUPERVISOR)
def upload_inventory_route():
    """
    Bulk-set quantities from a TSV file.

    Columns: barcode, quantity
    """
    return handle_upload("inventory")
