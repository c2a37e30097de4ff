"""
Order Service - order aggregate and stock reconciliation

WHY: An order's items, its total and the stock ledger must never disagree.
Every mutating operation here runs as ONE unit of work:
  begin_write_transaction -> lock order -> validate -> ledger + item changes
  -> recompute total -> commit
A domain error anywhere rolls the whole unit back (run_with_retry rolls the
session back before re-raising), so partial application is never visible.

Invariant: order.total_amount_cents == sum(item.quantity * item.selling_price_cents)
after every successful mutation. _recompute_total() is the only writer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStock, NotFound, ValidationError
from ..models import Order, OrderItem, Product
from ..validation import parse_int, parse_money_cents
from ..time_utils import day_bounds, parse_iso_date
from . import stock_ledger
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .pagination import paginate
from .order_status import (
    INITIAL_STATUS,
    OrderStatus,
    parse_status,
    require_item_mutable,
    require_transition,
)


CUSTOMER_NAME_MAX = 100
CUSTOMER_PHONE_MAX = 20
_PHONE_RE = re.compile(r"[0-9]*")


@dataclass(frozen=True)
class OrderPolicy:
    """
    Order engine policy, built from app config and passed to each operation.

    auto_cancel_empty: removing the last item of a CREATED order moves it
        to CANCELLED in the same transaction. Default keeps empty orders.
    enforce_mrp_ceiling: selling price may not exceed the product's MRP.
    """
    auto_cancel_empty: bool = False
    enforce_mrp_ceiling: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "OrderPolicy":
        return cls(
            auto_cancel_empty=bool(config.get("ORDER_AUTO_CANCEL_EMPTY", False)),
            enforce_mrp_ceiling=bool(config.get("ORDER_ENFORCE_MRP_CEILING", True)),
        )


@dataclass(frozen=True)
class ItemRequest:
    product_id: int
    quantity: int
    selling_price_cents: int


@dataclass(frozen=True)
class CustomerInfo:
    name: str | None = None
    phone: str | None = None


# ---------------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------------

def parse_item(data: Mapping[str, Any], *, require_product: bool = True) -> ItemRequest:
    """Build an ItemRequest from a JSON item ({product_id, quantity, selling_price})."""
    if not isinstance(data, Mapping):
        raise ValidationError("Each item must be an object")

    product_id = 0
    if require_product:
        if data.get("product_id") in (None, ""):
            raise ValidationError("product_id is required")
        product_id = parse_int(data.get("product_id"), "product_id")

    if data.get("quantity") in (None, ""):
        raise ValidationError("quantity is required")
    quantity = parse_int(data.get("quantity"), "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be positive")

    if data.get("selling_price") in (None, ""):
        raise ValidationError("selling_price is required")
    price_cents = parse_money_cents(data.get("selling_price"), "selling_price")

    return ItemRequest(product_id=product_id, quantity=quantity, selling_price_cents=price_cents)


def parse_customer(data: Mapping[str, Any]) -> CustomerInfo:
    name = data.get("customer_name")
    phone = data.get("customer_phone")

    if name is not None:
        name = str(name).strip().lower() or None
        if name and len(name) > CUSTOMER_NAME_MAX:
            raise ValidationError(f"Customer name cannot exceed {CUSTOMER_NAME_MAX} characters")

    if phone is not None:
        phone = str(phone).strip() or None
        if phone and len(phone) > CUSTOMER_PHONE_MAX:
            raise ValidationError(f"Customer phone cannot exceed {CUSTOMER_PHONE_MAX} characters")
        if phone and not _PHONE_RE.fullmatch(phone):
            raise ValidationError("Phone number must contain only digits")

    return CustomerInfo(name=name, phone=phone)


# ---------------------------------------------------------------------------
# Internals (no commit, no retry)
# ---------------------------------------------------------------------------

def _get_order_locked(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def _get_item(order: Order, item_id: int) -> OrderItem:
    item = db.session.query(OrderItem).filter_by(id=item_id, order_id=order.id).first()
    if not item:
        raise NotFound("Order item not found", details={"order_id": order.id, "item_id": item_id})
    return item


def _load_products(product_ids) -> dict[int, Product]:
    ids = set(product_ids)
    products = db.session.query(Product).filter(Product.id.in_(ids)).all() if ids else []
    found = {p.id: p for p in products}
    missing = sorted(ids - found.keys())
    if missing:
        raise NotFound("Product not found", details={"product_ids": missing})
    return found


def _check_price(product: Product, price_cents: int, policy: OrderPolicy) -> None:
    if policy.enforce_mrp_ceiling and price_cents > product.mrp_cents:
        raise ValidationError(
            f"Selling price cannot be more than mrp for product {product.name}",
            details={"product_id": product.id, "mrp_cents": product.mrp_cents, "selling_price_cents": price_cents},
        )


def _recompute_total(order: Order) -> int:
    db.session.flush()
    items = db.session.query(OrderItem).filter_by(order_id=order.id).all()
    order.total_amount_cents = sum(item.quantity * item.selling_price_cents for item in items)
    return order.total_amount_cents


def _check_availability(requested: dict[int, int]) -> None:
    """Fail with every short product listed, before any ledger write."""
    on_hand = stock_ledger.get_quantities(requested.keys())
    short = [
        {"product_id": pid, "requested": qty, "available": on_hand.get(pid, 0)}
        for pid, qty in sorted(requested.items())
        if on_hand.get(pid, 0) < qty
    ]
    if short:
        raise InsufficientStock("Insufficient stock", details={"items": short})


def _apply_customer(order: Order, customer: CustomerInfo | None) -> None:
    """Overwrite only the customer fields that were supplied."""
    if customer is None:
        return
    if customer.name is not None:
        order.customer_name = customer.name
    if customer.phone is not None:
        order.customer_phone = customer.phone


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

def build_order_view(order: Order, products: dict[int, Product] | None = None) -> dict:
    """Order dict with items joined against product barcode/name."""
    items = db.session.query(OrderItem).filter_by(order_id=order.id).order_by(OrderItem.id.asc()).all()
    if products is None:
        products = {
            p.id: p for p in db.session.query(Product).filter(
                Product.id.in_({i.product_id for i in items})
            ).all()
        } if items else {}

    view = order.to_dict()
    view["items"] = []
    for item in items:
        row = item.to_dict()
        product = products.get(item.product_id)
        row["barcode"] = product.barcode if product else None
        row["product_name"] = product.name if product else None
        view["items"].append(row)
    return view


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

def create_order(
    items: list[ItemRequest],
    customer: CustomerInfo | None = None,
    *,
    policy: OrderPolicy | None = None,
) -> dict:
    """
    Create a CREATED order and deduct stock for every item, all-or-nothing.

    Quantities for the same product are summed before the stock check, so
    two items of 3 against a stock of 5 fail together.
    """
    policy = policy or OrderPolicy()
    if not items:
        raise ValidationError("Order must contain at least one item")

    def _op():
        begin_write_transaction()
        products = _load_products(i.product_id for i in items)
        for req in items:
            _check_price(products[req.product_id], req.selling_price_cents, policy)

        requested: dict[int, int] = {}
        for req in items:
            requested[req.product_id] = requested.get(req.product_id, 0) + req.quantity
        _check_availability(requested)

        for product_id, qty in requested.items():
            stock_ledger.adjust_inner(product_id, -qty)

        order = Order(status=INITIAL_STATUS.value, total_amount_cents=0)
        _apply_customer(order, customer)
        db.session.add(order)
        db.session.flush()

        for req in items:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=req.product_id,
                quantity=req.quantity,
                selling_price_cents=req.selling_price_cents,
            ))
        _recompute_total(order)

        db.session.commit()
        current_app.logger.info(
            "Order %s created with %s item(s), total_cents=%s",
            order.id, len(items), order.total_amount_cents,
        )
        return build_order_view(order, products)

    return run_with_retry(_op)


def add_order_item(order_id: int, req: ItemRequest, *, policy: OrderPolicy | None = None) -> dict:
    policy = policy or OrderPolicy()

    def _op():
        begin_write_transaction()
        order = _get_order_locked(order_id)
        require_item_mutable(order)

        product = _load_products([req.product_id])[req.product_id]
        _check_price(product, req.selling_price_cents, policy)

        stock_ledger.adjust_inner(req.product_id, -req.quantity)
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=req.product_id,
            quantity=req.quantity,
            selling_price_cents=req.selling_price_cents,
        ))
        _recompute_total(order)

        db.session.commit()
        return build_order_view(order)

    return run_with_retry(_op)


def update_order_item(
    order_id: int,
    item_id: int,
    quantity: int,
    selling_price_cents: int,
    *,
    policy: OrderPolicy | None = None,
) -> dict:
    """
    Change an item's quantity and price, moving (new - old) units through the
    stock ledger. InsufficientStock leaves item and stock unchanged.
    """
    policy = policy or OrderPolicy()
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be positive")

    def _op():
        begin_write_transaction()
        order = _get_order_locked(order_id)
        require_item_mutable(order)
        item = _get_item(order, item_id)

        product = _load_products([item.product_id])[item.product_id]
        _check_price(product, selling_price_cents, policy)

        delta = quantity - item.quantity
        if delta:
            stock_ledger.adjust_inner(item.product_id, -delta)

        item.quantity = quantity
        item.selling_price_cents = selling_price_cents
        _recompute_total(order)

        db.session.commit()
        return build_order_view(order)

    return run_with_retry(_op)


def remove_order_item(order_id: int, item_id: int, *, policy: OrderPolicy | None = None) -> dict:
    """
    Return the item's quantity to stock and delete it.

    An order may end up with zero items. With policy.auto_cancel_empty the
    emptied order is moved to CANCELLED instead (through the transition table).
    """
    policy = policy or OrderPolicy()

    def _op():
        begin_write_transaction()
        order = _get_order_locked(order_id)
        require_item_mutable(order)
        item = _get_item(order, item_id)

        stock_ledger.adjust_inner(item.product_id, item.quantity)
        db.session.delete(item)
        _recompute_total(order)

        remaining = db.session.query(OrderItem).filter_by(order_id=order.id).count()
        if remaining == 0 and policy.auto_cancel_empty:
            require_transition(order.status, OrderStatus.CANCELLED)
            order.status = OrderStatus.CANCELLED.value
            current_app.logger.info("Order %s cancelled after its last item was removed", order.id)

        db.session.commit()
        return build_order_view(order)

    return run_with_retry(_op)


def update_order_status(order_id: int, new_status, customer: CustomerInfo | None = None) -> dict:
    """
    Move an order through the transition table and optionally update the
    customer fields. No stock side effect.
    """
    target = parse_status(new_status)

    def _op():
        begin_write_transaction()
        order = _get_order_locked(order_id)
        previous = order.status
        require_transition(order.status, target)

        order.status = target.value
        _apply_customer(order, customer)
        db.session.commit()

        if previous != target.value:
            current_app.logger.info("Order %s status %s -> %s", order.id, previous, target.value)
        return build_order_view(order)

    return run_with_retry(_op)


def get_order(order_id: int) -> dict:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("Order not found", details={"order_id": order_id})
    return build_order_view(order)


def list_order_items(order_id: int) -> list[dict]:
    return get_order(order_id)["items"]


def list_orders(
    *,
    order_id: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Filtered, paginated order listing (newest id first) with items resolved
    against a single product lookup for the page.

    start_date/end_date are inclusive calendar days ("YYYY-MM-DD").
    """
    query = db.session.query(Order)

    if order_id is not None:
        query = query.filter(Order.id == order_id)

    try:
        start_day = parse_iso_date(start_date)
        end_day = parse_iso_date(end_date)
    except ValueError:
        raise ValidationError("Dates must be ISO-8601 (YYYY-MM-DD)")
    if start_day and end_day and start_day > end_day:
        raise ValidationError("Start date cannot be after end date")
    if start_day:
        query = query.filter(Order.created_at >= day_bounds(start_day)[0])
    if end_day:
        query = query.filter(Order.created_at < day_bounds(end_day)[1])

    if status:
        query = query.filter(Order.status == parse_status(status).value)

    orders, pagination = paginate(query.order_by(Order.id.desc()), page, per_page)

    order_ids = [o.id for o in orders]
    product_ids = set()
    if order_ids:
        product_ids = {
            pid for (pid,) in db.session.query(OrderItem.product_id).filter(OrderItem.order_id.in_(order_ids)).distinct()
        }
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()} if product_ids else {}

    return {
        "items": [build_order_view(o, products) for o in orders],
        "count": len(orders),
        "pagination": pagination,
    }
