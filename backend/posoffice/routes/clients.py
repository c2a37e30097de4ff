# Overview: Flask API routes for client operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth
from ..errors import PosError
from ..services import client_service


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_auth
def list_clients_route():
    """
    List clients ordered by name.

    Query parameters:
    - name: case-insensitive substring filter
    - page, per_page: optional pagination
    """
    try:
        result = client_service.list_clients(
            name=request.args.get("name"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@clients_bp.post("")
@require_auth
def create_client_route():
    data = request.get_json(silent=True) or {}
    try:
        client = client_service.create_client(data.get("name"))
        return jsonify(client.to_dict()), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>")
@require_auth
def get_client_route(client_id: int):
    try:
        return jsonify(client_service.get_client(client_id).to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@clients_bp.put("/<int:client_id>")
@require_auth
def update_client_route(client_id: int):
    data = request.get_json(silent=True) or {}
    try:
        client = client_service.update_client(client_id, data.get("name"))
        return jsonify(client.to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update client")
        return jsonify({"error": "Internal server error"}), 500
