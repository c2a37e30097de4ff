# Overview: Flask API routes for product operations; parses input and returns JSON responses.

"""
Product Routes

SECURITY: All routes require authentication.
- Bulk upload requires the SUPERVISOR role
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import PosError, ValidationError
from ..models.auth import ROLE_SUPERVISOR
from ..services import product_service
from ..validation import parse_money_cents
from .uploads import handle_upload


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _optional_money(name: str):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    return parse_money_cents(raw, name)


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products with client name and on-hand quantity.

    Query parameters:
    - search: barcode prefix or name substring
    - client_name, category: exact (case-insensitive) filters
    - min_mrp, max_mrp: decimal price bounds
    - page, per_page: optional pagination
    """
    try:
        min_mrp = _optional_money("min_mrp")
        max_mrp = _optional_money("max_mrp")
        if min_mrp is not None and max_mrp is not None and min_mrp > max_mrp:
            raise ValidationError("min_mrp cannot be greater than max_mrp")

        result = product_service.list_products(
            search=request.args.get("search"),
            client_name=request.args.get("client_name"),
            category=request.args.get("category"),
            min_mrp_cents=min_mrp,
            max_mrp_cents=max_mrp,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "barcode": "ABC-1",      // required, case-sensitive, unique
        "name": "Shirt",         // required
        "mrp": "12.50",          // required, decimal
        "client_name": "acme",   // required (or client_id)
        "category": "apparel",   // optional
        "image_url": "..."       // optional
    }
    """
    try:
        product = product_service.create_product(request.get_json(silent=True))
        return jsonify(product), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify(product_service.get_product_view(product_id))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    """Partial update; barcode and client cannot be changed."""
    try:
        product = product_service.update_product(product_id, request.get_json(silent=True))
        return jsonify(product)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        product_service.delete_product(product_id)
        return jsonify({"deleted": True, "product_id": product_id})
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/upload")
@require_auth
@require_role(ROLE_SUPERVISOR)
def upload_products_route():
    """
    Bulk-create products from a TSV file.

    Columns: barcode, name, mrp, clientname, category
    """
    return handle_upload("products")
