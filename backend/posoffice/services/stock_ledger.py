# Overview: Stock ledger; the only writer of Inventory.quantity.

"""
Stock Ledger

One non-negative quantity-on-hand counter per product.

CONCURRENCY:
- Decrements are a single conditional UPDATE
  (SET quantity = quantity + delta WHERE quantity + delta >= 0).
  Two concurrent decrements on the last unit cannot both match, so the
  floor holds without a read-modify-write window.
- Records are created lazily inside a savepoint; a concurrent creator
  winning the unique(product_id) race is tolerated.
- Writes go through Core statements against the table, so quantities are
  always read back with column queries (never from the identity map).

*_inner functions neither commit nor retry; they run inside the caller's
transaction (order_service, importers). Public functions own their unit of
work.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InsufficientStock, NotFound, ValidationError
from ..models import Inventory, Product
from .concurrency import begin_write_transaction, run_with_retry


_inventory = Inventory.__table__


def get_quantity(product_id: int) -> int:
    """Quantity on hand; 0 when no record exists yet."""
    qty = db.session.execute(
        select(_inventory.c.quantity).where(_inventory.c.product_id == product_id)
    ).scalar_one_or_none()
    return int(qty or 0)


def get_quantities(product_ids: Iterable[int]) -> dict[int, int]:
    """Bulk lookup {product_id: quantity}; missing records map to 0."""
    ids = set(product_ids)
    if not ids:
        return {}
    rows = db.session.execute(
        select(_inventory.c.product_id, _inventory.c.quantity).where(_inventory.c.product_id.in_(ids))
    ).all()
    found = {row.product_id: int(row.quantity) for row in rows}
    return {pid: found.get(pid, 0) for pid in ids}


def _ensure_record(product_id: int) -> None:
    exists = db.session.execute(
        select(_inventory.c.id).where(_inventory.c.product_id == product_id)
    ).first()
    if exists:
        return

    if db.session.get(Product, product_id) is None:
        raise NotFound("Product not found", details={"product_id": product_id})

    try:
        with db.session.begin_nested():
            db.session.execute(
                insert(_inventory).values(product_id=product_id, quantity=0, version_id=1)
            )
    except IntegrityError:
        # Another writer created the record first; the savepoint is rolled back.
        pass


def _insufficient(product_id: int, requested: int, available: int) -> InsufficientStock:
    return InsufficientStock(
        "Insufficient stock",
        details={"items": [{"product_id": product_id, "requested": requested, "available": available}]},
    )


def adjust_inner(product_id: int, delta: int) -> int:
    """Apply delta within the current transaction and return the new quantity."""
    _ensure_record(product_id)

    stmt = update(_inventory).where(_inventory.c.product_id == product_id)
    if delta < 0:
        stmt = stmt.where(_inventory.c.quantity + delta >= 0)
    stmt = stmt.values(
        quantity=_inventory.c.quantity + delta,
        version_id=_inventory.c.version_id + 1,
    )

    result = db.session.execute(stmt)
    if result.rowcount == 0:
        raise _insufficient(product_id, -delta, get_quantity(product_id))

    return get_quantity(product_id)


def set_absolute_inner(product_id: int, quantity: int) -> int:
    if quantity is None or quantity < 0:
        raise ValidationError("quantity must be non-negative")

    _ensure_record(product_id)
    db.session.execute(
        update(_inventory)
        .where(_inventory.c.product_id == product_id)
        .values(quantity=quantity, version_id=_inventory.c.version_id + 1)
    )
    return quantity


def adjust(product_id: int, delta: int) -> int:
    """
    Atomically add delta (may be negative) to a product's stock and commit.

    Raises InsufficientStock, leaving the quantity unchanged, when the
    result would be negative.
    """
    def _op():
        begin_write_transaction()
        qty = adjust_inner(product_id, delta)
        db.session.commit()
        return qty

    return run_with_retry(_op)


def set_absolute(product_id: int, quantity: int) -> int:
    """Overwrite a product's stock (direct edits). Caller validates quantity >= 0."""
    def _op():
        begin_write_transaction()
        qty = set_absolute_inner(product_id, quantity)
        db.session.commit()
        return qty

    return run_with_retry(_op)


def delete_record_inner(product_id: int) -> None:
    db.session.execute(_inventory.delete().where(_inventory.c.product_id == product_id))
