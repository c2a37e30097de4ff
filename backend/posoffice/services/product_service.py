# backend/posoffice/services/product_service.py
"""
Products Service

Product reads return a view that joins each product with its client name
and on-hand quantity; the join is assembled here, not in the model.

BARCODE and CLIENT are fixed at creation (PRODUCT_POLICY.immutable_fields).
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFound, ValidationError
from ..models import Client, Inventory, OrderItem, Product
from ..validation import (
    ModelValidationPolicy,
    enforce_immutable,
    enforce_rules_product,
    parse_money_cents,
    validate_payload,
)
from . import client_service, stock_ledger
from .pagination import paginate


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"barcode", "name", "category", "mrp_cents", "image_url", "client_id"}),
    required_on_create=frozenset({"barcode", "name", "mrp_cents", "client_id"}),
    preserve_case=frozenset({"barcode", "image_url"}),
    immutable_fields=frozenset({"barcode", "client_id"}),
)


def product_form_to_patch(payload: dict, *, partial: bool) -> dict:
    """
    Map the API form onto model columns and validate it.

    Form fields: barcode, name, category, mrp (decimal), image_url, and the
    owning client as client_id or client_name.
    """
    if payload is None or not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    data = dict(payload)

    if "mrp" in data:
        data["mrp_cents"] = parse_money_cents(data.pop("mrp"), "mrp")

    if "client_name" in data:
        client_name = data.pop("client_name")
        client = client_service.find_by_name(client_name) if client_name else None
        if client is None:
            raise NotFound(f"Client not found: {client_name}", details={"client_name": client_name})
        data["client_id"] = client.id

    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch


def build_product_view(product: Product, client_name: str | None, quantity: int | None) -> dict:
    view = product.to_dict()
    view["client_name"] = client_name
    view["quantity"] = int(quantity or 0)
    return view


def _view_query():
    return (
        db.session.query(Product, Client.name, Inventory.quantity)
        .join(Client, Client.id == Product.client_id)
        .outerjoin(Inventory, Inventory.product_id == Product.id)
    )


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFound("Product not found", details={"product_id": product_id})
    return product


def get_product_by_barcode(barcode: str) -> Product | None:
    return db.session.query(Product).filter_by(barcode=barcode.strip()).first()


def get_product_view(product_id: int) -> dict:
    row = _view_query().filter(Product.id == product_id).first()
    if not row:
        raise NotFound("Product not found", details={"product_id": product_id})
    product, client_name, quantity = row
    return build_product_view(product, client_name, quantity)


def create_product_inner(patch: dict) -> Product:
    """Insert a validated patch without committing (shared with the importer)."""
    if db.session.get(Client, patch["client_id"]) is None:
        raise NotFound("Client not found", details={"client_id": patch["client_id"]})
    if db.session.query(Product.id).filter_by(barcode=patch["barcode"]).first():
        raise ConflictError(f"Barcode already exists: {patch['barcode']}", details={"barcode": patch["barcode"]})

    product = Product(**patch)
    db.session.add(product)
    db.session.flush()
    return product


def create_product(payload: dict) -> dict:
    patch = product_form_to_patch(payload, partial=False)
    try:
        product = create_product_inner(patch)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already exists", details={"barcode": patch.get("barcode")})
    return get_product_view(product.id)


def update_product(product_id: int, payload: dict) -> dict:
    product = get_product(product_id)
    patch = product_form_to_patch(payload, partial=True)
    enforce_immutable(PRODUCT_POLICY, patch, product)

    for k, v in patch.items():
        if k in PRODUCT_POLICY.immutable_fields:
            continue
        setattr(product, k, v)

    db.session.commit()
    return get_product_view(product.id)


def delete_product(product_id: int) -> None:
    """Delete a product and its ledger record unless order items reference it."""
    product = get_product(product_id)
    referenced = db.session.query(OrderItem.id).filter_by(product_id=product_id).first()
    if referenced:
        raise ConflictError(
            "Product is referenced by orders and cannot be deleted",
            details={"product_id": product_id},
        )
    stock_ledger.delete_record_inner(product_id)
    db.session.delete(product)
    db.session.commit()


def list_products(
    *,
    search: str | None = None,
    client_name: str | None = None,
    category: str | None = None,
    min_mrp_cents: int | None = None,
    max_mrp_cents: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Filterable product listing joined with client name and quantity.

    search matches a barcode prefix or a name substring.
    """
    query = _view_query()

    if search:
        term = search.strip()
        query = query.filter(
            db.or_(Product.barcode.startswith(term), Product.name.contains(term.lower()))
        )
    if client_name:
        query = query.filter(Client.name == client_name.strip().lower())
    if category:
        query = query.filter(Product.category == category.strip().lower())
    if min_mrp_cents is not None:
        query = query.filter(Product.mrp_cents >= min_mrp_cents)
    if max_mrp_cents is not None:
        query = query.filter(Product.mrp_cents <= max_mrp_cents)

    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        rows = query.all()
        return {"items": [build_product_view(*row) for row in rows], "count": len(rows)}

    rows, pagination = paginate(query, page, per_page)
    return {
        "items": [build_product_view(*row) for row in rows],
        "count": len(rows),
        "pagination": pagination,
    }
