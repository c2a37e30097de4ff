# Overview: Flask API routes for orders, order items and invoices; parses input and returns JSON responses.

"""
Order Routes

SECURITY: All routes require authentication.

Every mutation goes through services.order_service with an OrderPolicy built
from app config; stock checks and total recomputation happen there.
"""

from flask import Blueprint, Response, request, jsonify, current_app

from ..decorators import require_auth
from ..errors import PosError, ValidationError
from ..services import invoice_service, order_service
from ..services.order_service import OrderPolicy
from ..validation import parse_int, parse_money_cents


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _policy() -> OrderPolicy:
    return OrderPolicy.from_config(current_app.config)


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    List orders, newest first.

    Query parameters:
    - order_id: exact id
    - start_date, end_date: inclusive YYYY-MM-DD bounds
    - status: CREATED | INVOICED | CANCELLED
    - page, per_page: pagination (default 20, max 100)
    """
    try:
        result = order_service.list_orders(
            order_id=request.args.get("order_id", type=int),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            status=request.args.get("status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order and deduct stock, all-or-nothing.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "selling_price": "9.99"}],
        "customer_name": "...",   // optional
        "customer_phone": "..."   // optional, digits only
    }
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list) or not items:
        return jsonify({"error": "items must be a non-empty list"}), 400

    try:
        requests = [order_service.parse_item(item) for item in items]
        customer = order_service.parse_customer(data)
        order = order_service.create_order(requests, customer, policy=_policy())
        return jsonify(order), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        return jsonify(order_service.get_order(order_id))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.put("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """
    Change status (through the transition table) and optionally the customer.

    Request body: {"status": "CANCELLED", "customer_name": "...", "customer_phone": "..."}
    """
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return jsonify({"error": "status is required"}), 400

    try:
        customer = order_service.parse_customer(data)
        order = order_service.update_order_status(order_id, data["status"], customer)
        return jsonify(order)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/items")
@require_auth
def list_order_items_route(order_id: int):
    try:
        items = order_service.list_order_items(order_id)
        return jsonify({"items": items, "count": len(items)})
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/items")
@require_auth
def add_order_item_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        req = order_service.parse_item(data)
        order = order_service.add_order_item(order_id, req, policy=_policy())
        return jsonify(order), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/items/<int:item_id>")
@require_auth
def update_order_item_route(order_id: int, item_id: int):
    """
    Request body: {"quantity": 3, "selling_price": "9.99"}
    """
    data = request.get_json(silent=True) or {}
    try:
        if data.get("quantity") in (None, ""):
            raise ValidationError("quantity is required")
        if data.get("selling_price") in (None, ""):
            raise ValidationError("selling_price is required")
        quantity = parse_int(data["quantity"], "quantity")
        price_cents = parse_money_cents(data["selling_price"], "selling_price")

        order = order_service.update_order_item(
            order_id, item_id, quantity, price_cents, policy=_policy()
        )
        return jsonify(order)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>/items/<int:item_id>")
@require_auth
def remove_order_item_route(order_id: int, item_id: int):
    try:
        return jsonify(order_service.remove_order_item(order_id, item_id, policy=_policy()))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/invoice")
@require_auth
def generate_invoice_route(order_id: int):
    """Render the invoice downstream and move the order to INVOICED."""
    try:
        invoice = invoice_service.generate_invoice(order_id)
        return jsonify(invoice), 201
    except PosError as e:
        current_app.logger.warning("Invoice for order %s not generated: %s", order_id, e.message)
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate invoice")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/invoice")
@require_auth
def download_invoice_route(order_id: int):
    try:
        filename, pdf = invoice_service.get_invoice(order_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code

    response = Response(pdf, mimetype="application/pdf")
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
