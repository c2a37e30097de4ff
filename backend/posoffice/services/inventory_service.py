# Overview: Service-layer operations for inventory views and direct stock edits.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Inventory, Product
from ..validation import parse_quantity
from . import stock_ledger
from .pagination import paginate
from .product_service import get_product


def _inventory_row(product: Product, quantity: int | None) -> dict:
    return {
        "product_id": product.id,
        "barcode": product.barcode,
        "product_name": product.name,
        "mrp_cents": product.mrp_cents,
        "quantity": int(quantity or 0),
    }


def get_inventory(product_id: int) -> dict:
    product = get_product(product_id)
    return _inventory_row(product, stock_ledger.get_quantity(product_id))


def set_inventory(product_id: int, quantity) -> dict:
    """Direct edit: overwrite on-hand quantity (must be a non-negative integer)."""
    qty = parse_quantity(quantity)
    product = get_product(product_id)
    stock_ledger.set_absolute(product.id, qty)
    current_app.logger.info("Inventory for product %s set to %s", product_id, qty)
    return get_inventory(product_id)


def list_inventory(
    *,
    barcode: str | None = None,
    name: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Every product with its on-hand quantity (0 when never stocked)."""
    query = (
        db.session.query(Product, Inventory.quantity)
        .outerjoin(Inventory, Inventory.product_id == Product.id)
    )
    if barcode:
        query = query.filter(Product.barcode == barcode.strip())
    if name:
        query = query.filter(Product.name.contains(name.strip().lower()))
    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        rows = query.all()
        return {"items": [_inventory_row(p, q) for p, q in rows], "count": len(rows)}

    rows, pagination = paginate(query, page, per_page)
    return {
        "items": [_inventory_row(p, q) for p, q in rows],
        "count": len(rows),
        "pagination": pagination,
    }
