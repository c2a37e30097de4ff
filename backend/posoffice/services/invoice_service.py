# Overview: Service-layer operations for invoices; decides when to call the renderer and what to send.

"""
Invoice Service

generate_invoice() moves a CREATED order to INVOICED and stores the PDF
returned by the downstream renderer.

Two phases so no database write lock is held across the network call:
1. Snapshot: load order + items, check the transition, build the payload,
   call the renderer.
2. Commit: take the write lock, re-check the order (a concurrent cancel or
   invoice wins), rebuild the payload and compare it with the rendered one
   (an item edit in between raises ConflictError), write the file, record
   the Invoice, flip the status.

A renderer or storage failure raises InfrastructureError and the order
stays CREATED. A failed commit removes the file it just wrote.
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import Protocol

import httpx
from flask import current_app

from ..extensions import db
from ..errors import ConflictError, InfrastructureError, NotFound, ValidationError
from ..models import Invoice, Order, OrderItem, Product
from posoffice.time_utils import to_utc_z
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .order_status import OrderStatus, require_transition


class InvoiceRenderer(Protocol):
    def render(self, payload: dict) -> bytes:
        ...


class HttpInvoiceRenderer:
    """POSTs the invoice payload to the invoice app and decodes its base64 PDF."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client

    def render(self, payload: dict) -> bytes:
        url = f"{self.base_url}/generate"
        try:
            if self.client is not None:
                response = self.client.post(url, json=payload, timeout=self.timeout)
            else:
                response = httpx.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise InfrastructureError(
                f"Invoice generation service failed: {exc.response.text}",
                details={"status_code": exc.response.status_code},
            )
        except httpx.HTTPError:
            raise InfrastructureError(
                "The invoice generation service is currently unavailable. Please try again later."
            )

        try:
            data = response.json()
            encoded = None
            if isinstance(data, dict):
                encoded = data.get("base64Pdf") or data.get("base64_pdf")
            if not encoded:
                raise InfrastructureError("Invoice generation service returned no document")
            return base64.b64decode(encoded, validate=True)
        except (ValueError, binascii.Error):
            raise InfrastructureError("Invoice generation service returned an unreadable document")


def renderer_from_config(config) -> HttpInvoiceRenderer:
    return HttpInvoiceRenderer(
        config.get("INVOICE_APP_URL"),
        timeout=float(config.get("INVOICE_TIMEOUT_SECONDS", 10)),
    )


def invoice_filename(order_id: int) -> str:
    return f"invoice-order-{order_id}.pdf"


def build_invoice_payload(order: Order, items: list[OrderItem], products: dict[int, Product]) -> dict:
    return {
        "order_id": order.id,
        "order_date": to_utc_z(order.created_at),
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "total_amount_cents": order.total_amount_cents,
        "items": [
            {
                "product_name": products[item.product_id].name,
                "barcode": products[item.product_id].barcode,
                "quantity": item.quantity,
                "mrp_cents": products[item.product_id].mrp_cents,
                "selling_price_cents": item.selling_price_cents,
            }
            for item in items
        ],
    }


def _check_invoiceable(order: Order | None, order_id: int) -> None:
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    if db.session.query(Invoice.id).filter_by(order_id=order_id).first():
        raise ConflictError("Invoice already exists for this order", details={"order_id": order_id})
    require_transition(order.status, OrderStatus.INVOICED)


def _payload_for(order: Order) -> dict:
    order_id = order.id
    items = db.session.query(OrderItem).filter_by(order_id=order_id).order_by(OrderItem.id.asc()).all()
    if not items:
        raise ValidationError("Invoice must have at least one item", details={"order_id": order_id})
    products = {
        p.id: p for p in db.session.query(Product).filter(Product.id.in_({i.product_id for i in items})).all()
    }
    return build_invoice_payload(order, items, products)


def _snapshot(order_id: int) -> dict:
    order = db.session.get(Order, order_id)
    _check_invoiceable(order, order_id)
    return _payload_for(order)


def _write_pdf(storage_path: str, order_id: int, pdf: bytes) -> str:
    try:
        os.makedirs(storage_path, exist_ok=True)
        path = os.path.join(storage_path, invoice_filename(order_id))
        with open(path, "wb") as fh:
            fh.write(pdf)
    except OSError as exc:
        raise InfrastructureError(f"Failed to store the generated invoice: {exc.strerror or exc}")
    return path


def _discard_pdf(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        current_app.logger.exception("Failed to remove orphaned invoice file %s", path)


def generate_invoice(
    order_id: int,
    *,
    renderer: InvoiceRenderer | None = None,
    storage_path: str | None = None,
) -> dict:
    renderer = renderer or renderer_from_config(current_app.config)
    storage_path = storage_path or current_app.config.get("INVOICE_STORAGE_PATH", "invoices")

    payload = _snapshot(order_id)
    db.session.rollback()
    pdf = renderer.render(payload)

    def _op():
        begin_write_transaction()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        _check_invoiceable(order, order_id)
        if _payload_for(order) != payload:
            raise ConflictError(
                "Order changed while its invoice was being generated. Please retry.",
                details={"order_id": order_id},
            )

        path = _write_pdf(storage_path, order_id, pdf)
        try:
            invoice = Invoice(order_id=order_id, file_path=path)
            db.session.add(invoice)
            order.status = OrderStatus.INVOICED.value
            db.session.commit()
        except Exception:
            _discard_pdf(path)
            raise
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info("Invoice generated for order %s at %s", order_id, invoice.file_path)
    return invoice.to_dict()


def get_invoice(order_id: int) -> tuple[str, bytes]:
    """Return (download filename, PDF bytes) for an invoiced order."""
    invoice = db.session.query(Invoice).filter_by(order_id=order_id).first()
    if not invoice:
        raise NotFound("Invoice not found", details={"order_id": order_id})
    try:
        with open(invoice.file_path, "rb") as fh:
            return invoice_filename(order_id), fh.read()
    except OSError:
        raise InfrastructureError("Stored invoice file could not be read", details={"order_id": order_id})
