"""
Per-entity importers for TSV uploads.

Each importer receives one normalized CandidateRow at a time, in file order,
and goes through three steps. Any step may raise a PosError; its message
becomes the row's rejection reason in the upload report.

  validate_row        row-local parsing only (required fields, number formats)
  resolve_references  lookups against current state (client, barcode)
  post_row            apply the effect and return the entity id

Row-local checks always run before lookups: a row with a malformed quantity
AND an unknown barcode is reported as the malformed quantity.

Rows run inside the upload's single transaction, each in its own savepoint,
so the effects of earlier rows (a product created by row 2) are visible to
later rows (a duplicate barcode in row 5 is rejected).
"""

from __future__ import annotations

from typing import Any, Mapping

from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import Product
from ..validation import parse_money_cents, parse_quantity
from . import client_service, product_service, stock_ledger


def _require(fields: Mapping[str, str], key: str, label: str | None = None) -> str:
    value = fields.get(key) or ""
    if not value:
        raise ValidationError(f"{label or key} cannot be empty")
    return value


def _max_length(value: str | None, limit: int, label: str) -> None:
    if value and len(value) > limit:
        raise ValidationError(f"{label} exceeds max length {limit}")


class BaseImporter:
    kind: str = ""
    columns: tuple[str, ...] = ()

    def __init__(self, config: Mapping[str, Any] | None = None):
        self.config = config or {}

    def validate_row(self, fields: Mapping[str, str]) -> dict[str, Any]:
        raise NotImplementedError

    def resolve_references(self, row: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def post_row(self, row: dict[str, Any]) -> int:
        raise NotImplementedError


class ProductImporter(BaseImporter):
    """barcode, name, mrp, clientname, category -> new Product."""
    kind = "products"
    columns = ("barcode", "name", "mrp", "clientname", "category")

    def validate_row(self, fields: Mapping[str, str]) -> dict[str, Any]:
        barcode = _require(fields, "barcode")
        _max_length(barcode, 64, "barcode")
        name = _require(fields, "name")
        _max_length(name, 255, "name")
        mrp_cents = parse_money_cents(_require(fields, "mrp"), "mrp")
        client_name = _require(fields, "clientname", "client name")
        category = fields.get("category") or None
        _max_length(category, 255, "category")
        return {
            "barcode": barcode,
            "name": name,
            "mrp_cents": mrp_cents,
            "client_name": client_name,
            "category": category,
        }

    def resolve_references(self, row: dict[str, Any]) -> dict[str, Any]:
        if product_service.get_product_by_barcode(row["barcode"]) is not None:
            raise ConflictError(f"barcode already exists: {row['barcode']}")

        client = client_service.find_by_name(row["client_name"])
        if client is None:
            if not self.config.get("AUTO_CREATE_CLIENTS", False):
                raise NotFound(f"client not found: {row['client_name']}")
            client = client_service.create_client_inner(row["client_name"])

        resolved = dict(row)
        resolved.pop("client_name")
        resolved["client_id"] = client.id
        return resolved

    def post_row(self, row: dict[str, Any]) -> int:
        return product_service.create_product_inner(row).id


class InventoryImporter(BaseImporter):
    """barcode, quantity -> absolute stock for an existing product."""
    kind = "inventory"
    columns = ("barcode", "quantity")

    def validate_row(self, fields: Mapping[str, str]) -> dict[str, Any]:
        barcode = _require(fields, "barcode")
        quantity = parse_quantity(fields.get("quantity") or "")
        return {"barcode": barcode, "quantity": quantity}

    def resolve_references(self, row: dict[str, Any]) -> dict[str, Any]:
        product_id = db.session.query(Product.id).filter_by(barcode=row["barcode"]).scalar()
        if product_id is None:
            raise NotFound(f"unknown barcode: {row['barcode']}")
        return {"product_id": product_id, "quantity": row["quantity"]}

    def post_row(self, row: dict[str, Any]) -> int:
        stock_ledger.set_absolute_inner(row["product_id"], row["quantity"])
        return row["product_id"]


IMPORTERS: dict[str, type[BaseImporter]] = {
    ProductImporter.kind: ProductImporter,
    InventoryImporter.kind: InventoryImporter,
}


def importer_for(kind: str, config: Mapping[str, Any] | None = None) -> BaseImporter:
    try:
        return IMPORTERS[kind](config)
    except KeyError:
        raise ValidationError(f"Unsupported upload type: {kind}")
