"""
Invoice generation tests.

Verifies:
- A CREATED order becomes INVOICED and its PDF is stored
- Renderer failures leave the order CREATED with no Invoice row
- Only CREATED orders can be invoiced, and only once
- An order edited while its invoice renders is not invoiced
- A failed commit leaves no stored file behind
- The HTTP renderer decodes the base64 document and maps transport failures
"""

import base64
import os

import httpx
import pytest
from sqlalchemy.exc import IntegrityError

from posoffice.extensions import db
from posoffice.errors import ConflictError, InfrastructureError, InvalidTransition, NotFound
from posoffice.models import Invoice, Order, OrderItem
from posoffice.services import invoice_service, order_service
from posoffice.services.invoice_service import HttpInvoiceRenderer
from posoffice.services.order_service import ItemRequest


PDF = b"%PDF-1.4 stub invoice"


class StubRenderer:
    def __init__(self, pdf=PDF):
        self.pdf = pdf
        self.payloads = []

    def render(self, payload):
        self.payloads.append(payload)
        return self.pdf


class FailingRenderer:
    def render(self, payload):
        raise InfrastructureError("The invoice generation service is currently unavailable. Please try again later.")


@pytest.fixture
def order_id(db_session, make_product):
    p = make_product("B1", name="lamp", mrp_cents=2000, stock=5)
    customer = order_service.parse_customer({"customer_name": "Ann", "customer_phone": "999"})
    order = order_service.create_order(
        [ItemRequest(product_id=p.id, quantity=2, selling_price_cents=1500)], customer
    )
    return order["id"]


def test_generate_invoice_transitions_and_stores(db_session, order_id, tmp_path):
    renderer = StubRenderer()

    invoice = invoice_service.generate_invoice(order_id, renderer=renderer, storage_path=str(tmp_path))

    assert db_session.get(Order, order_id).status == "INVOICED"
    assert os.path.basename(invoice["file_path"]) == f"invoice-order-{order_id}.pdf"
    with open(invoice["file_path"], "rb") as fh:
        assert fh.read() == PDF

    payload = renderer.payloads[0]
    assert payload["order_id"] == order_id
    assert payload["customer_name"] == "ann"
    assert payload["total_amount_cents"] == 3000
    assert payload["items"] == [{
        "product_name": "lamp",
        "barcode": "B1",
        "quantity": 2,
        "mrp_cents": 2000,
        "selling_price_cents": 1500,
    }]

    filename, content = invoice_service.get_invoice(order_id)
    assert filename == f"invoice-order-{order_id}.pdf"
    assert content == PDF


def test_renderer_failure_keeps_order_created(db_session, order_id, tmp_path):
    with pytest.raises(InfrastructureError):
        invoice_service.generate_invoice(order_id, renderer=FailingRenderer(), storage_path=str(tmp_path))

    assert db_session.get(Order, order_id).status == "CREATED"
    assert db_session.query(Invoice).count() == 0


def test_cannot_invoice_twice(db_session, order_id, tmp_path):
    invoice_service.generate_invoice(order_id, renderer=StubRenderer(), storage_path=str(tmp_path))
    with pytest.raises(ConflictError):
        invoice_service.generate_invoice(order_id, renderer=StubRenderer(), storage_path=str(tmp_path))


def test_cancelled_order_cannot_be_invoiced(db_session, order_id, tmp_path):
    order_service.update_order_status(order_id, "CANCELLED")
    renderer = StubRenderer()
    with pytest.raises(InvalidTransition):
        invoice_service.generate_invoice(order_id, renderer=renderer, storage_path=str(tmp_path))
    assert renderer.payloads == []


def test_missing_invoice(db_session, order_id):
    with pytest.raises(NotFound):
        invoice_service.get_invoice(order_id)


class TestHttpInvoiceRenderer:
    def _renderer(self, handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return HttpInvoiceRenderer("http://invoice.test/api/invoice/", client=client)

    def test_decodes_base64_document(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"base64Pdf": base64.b64encode(PDF).decode("ascii")})

        assert self._renderer(handler).render({"order_id": 1}) == PDF
        assert seen["url"] == "http://invoice.test/api/invoice/generate"

    def test_error_status(self):
        renderer = self._renderer(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(InfrastructureError) as exc:
            renderer.render({"order_id": 1})
        assert exc.value.details["status_code"] == 500

    def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(InfrastructureError) as exc:
            self._renderer(handler).render({"order_id": 1})
        assert "currently unavailable" in exc.value.message

    def test_missing_document(self):
        renderer = self._renderer(lambda request: httpx.Response(200, json={"ok": True}))
        with pytest.raises(InfrastructureError):
            renderer.render({"order_id": 1})


class TestCommitPhase:
    def test_items_changed_during_render_are_not_invoiced(self, db_session, order_id, tmp_path):
        item_id = db_session.query(OrderItem).filter_by(order_id=order_id).one().id

        class EditingRenderer(StubRenderer):
            def render(self, payload):
                order_service.update_order_item(order_id, item_id, 5, 1500)
                return super().render(payload)

        with pytest.raises(ConflictError):
            invoice_service.generate_invoice(order_id, renderer=EditingRenderer(), storage_path=str(tmp_path))

        order = db_session.get(Order, order_id)
        assert order.status == "CREATED"
        assert order.total_amount_cents == 7500
        assert db_session.query(Invoice).count() == 0
        assert not os.path.exists(tmp_path / invoice_service.invoice_filename(order_id))

    def test_failed_commit_removes_written_file(self, db_session, order_id, tmp_path, monkeypatch):
        def failing_commit():
            raise IntegrityError("INSERT INTO invoices", {}, Exception("constraint failed"))

        monkeypatch.setattr(db.session(), "commit", failing_commit)

        with pytest.raises(IntegrityError):
            invoice_service.generate_invoice(order_id, renderer=StubRenderer(), storage_path=str(tmp_path))

        assert not os.path.exists(tmp_path / invoice_service.invoice_filename(order_id))
        assert db_session.get(Order, order_id).status == "CREATED"
