"""
Report tests.

Verifies:
- Sales figures count invoiced orders only and respect inclusive day bounds
- Inventory valuation and stock status buckets
- Dashboard KPIs compare today with yesterday
- TSV layouts
"""

from datetime import date, datetime

import pytest

from posoffice.errors import ValidationError
from posoffice.models import Order
from posoffice.services import order_service, reporting_service
from posoffice.services.order_service import ItemRequest


def _order_at(db_session, when: datetime, lines, status="INVOICED"):
    order = order_service.create_order([
        ItemRequest(product_id=p.id, quantity=q, selling_price_cents=price) for p, q, price in lines
    ])
    if status:
        order_service.update_order_status(order["id"], status)
    row = db_session.get(Order, order["id"])
    row.created_at = when
    db_session.commit()
    return order["id"]


@pytest.fixture
def sales_data(db_session, make_product):
    shirt = make_product("S1", name="shirt", mrp_cents=1000, stock=50)
    hat = make_product("H1", name="hat", mrp_cents=500, stock=50)

    _order_at(db_session, datetime(2024, 3, 1, 10, 0), [(shirt, 2, 900)])
    _order_at(db_session, datetime(2024, 3, 2, 23, 59), [(hat, 3, 500), (shirt, 1, 1000)])
    _order_at(db_session, datetime(2024, 3, 2, 12, 0), [(shirt, 5, 1000)], status="CANCELLED")
    _order_at(db_session, datetime(2024, 3, 1, 15, 0), [(hat, 4, 500)], status=None)
    _order_at(db_session, datetime(2024, 3, 3, 0, 0), [(hat, 1, 500)])
    return shirt, hat


class TestSalesReport:
    def test_summary_excludes_open_cancelled_and_out_of_range(self, sales_data):
        report = reporting_service.sales_report(start="2024-03-01", end="2024-03-02")

        assert report["summary"] == {
            "start_date": "2024-03-01",
            "end_date": "2024-03-02",
            "total_revenue_cents": 4300,
            "total_orders": 2,
            "average_order_value_cents": 2150,
            "total_items_sold": 6,
        }
        assert report["sales_over_time"] == [
            {"date": "2024-03-01", "revenue_cents": 1800},
            {"date": "2024-03-02", "revenue_cents": 2500},
        ]

    def test_product_performance_ordering(self, sales_data):
        shirt, hat = sales_data
        report = reporting_service.sales_report(start="2024-03-01", end="2024-03-02")

        assert report["product_performance"] == [
            {"product_id": shirt.id, "product_name": "shirt", "quantity_sold": 3, "revenue_cents": 2800},
            {"product_id": hat.id, "product_name": "hat", "quantity_sold": 3, "revenue_cents": 1500},
        ]

    def test_tsv_layout(self, sales_data):
        report = reporting_service.sales_report(start="2024-03-01", end="2024-03-02")
        lines = reporting_service.sales_report_tsv(report).decode("utf-8").splitlines()

        assert lines[:7] == [
            "Sales Report Summary",
            "Start Date\t2024-03-01",
            "End Date\t2024-03-02",
            "Total Revenue\t43.00",
            "Total Orders\t2",
            "Average Order Value\t21.50",
            "Total Items Sold\t6",
        ]
        assert "Sales Over Time" in lines
        assert "Product Performance" in lines
        assert reporting_service.sales_report_filename(report) == "sales-report-2024-03-01-to-2024-03-02.tsv"

    def test_open_orders_are_not_sales(self, db_session, make_product):
        p = make_product("B1", mrp_cents=1000, stock=5)
        _order_at(db_session, datetime(2024, 3, 1, 10, 0), [(p, 2, 1000)], status=None)

        report = reporting_service.sales_report(start="2024-03-01", end="2024-03-01")

        assert report["summary"]["total_orders"] == 0
        assert report["summary"]["total_revenue_cents"] == 0
        assert report["product_performance"] == []

    @pytest.mark.parametrize("start,end", [
        ("2024-03-05", "2024-03-01"),
        ("03/01/2024", "2024-03-02"),
        (None, "2024-03-02"),
    ])
    def test_bad_ranges(self, db_session, start, end):
        with pytest.raises(ValidationError):
            reporting_service.sales_report(start=start, end=end)


class TestInventoryReport:
    def test_status_buckets_and_valuation(self, db_session, make_product):
        make_product("A", mrp_cents=200, stock=0)
        make_product("B", mrp_cents=300, stock=4)
        make_product("C", mrp_cents=100, stock=10)
        make_product("D", mrp_cents=100)

        report = reporting_service.inventory_report()

        assert [i["status"] for i in report["items"]] == ["Out of Stock", "Low Stock", "In Stock", "Out of Stock"]
        assert report["summary"]["total_product_skus"] == 4
        assert report["summary"]["total_inventory_quantity"] == 14
        assert report["summary"]["total_inventory_value_cents"] == 4 * 300 + 10 * 100
        assert report["summary"]["out_of_stock_items"] == 2
        assert report["summary"]["low_stock_items"] == 1

    def test_tsv_layout(self, db_session, make_product):
        make_product("A", name="widget", mrp_cents=250, stock=2)
        body = reporting_service.inventory_report_tsv(reporting_service.inventory_report()).decode("utf-8")
        lines = body.splitlines()

        assert lines[0] == "Inventory Report Summary"
        assert "Low Stock Items (<10)\t1" in lines
        assert lines[-1].endswith("\twidget\t2\t5.00\tLow Stock")


class TestDashboardSummary:
    def test_today_vs_yesterday(self, db_session, make_product):
        p = make_product("B1", name="thing", mrp_cents=1000, stock=12)
        _order_at(db_session, datetime(2024, 5, 10, 9, 30), [(p, 2, 1000)])
        _order_at(db_session, datetime(2024, 5, 10, 14, 0), [(p, 1, 1000)])
        _order_at(db_session, datetime(2024, 5, 9, 18, 0), [(p, 1, 1000)])

        summary = reporting_service.dashboard_summary(today=date(2024, 5, 10))

        assert summary["sales_cents"] == {"current": 3000, "previous": 1000, "change_percent": 200.0}
        assert summary["orders"]["current"] == 2
        assert summary["orders"]["previous"] == 1
        assert summary["average_order_value_cents"]["current"] == 1500
        assert summary["sales_by_hour"] == [
            {"hour": 9, "revenue_cents": 2000},
            {"hour": 14, "revenue_cents": 1000},
        ]
        assert summary["top_products"][0]["quantity_sold"] == 3
        assert summary["low_stock_alerts"] == [{"product_id": p.id, "product_name": "thing", "quantity": 8}]

    def test_change_from_zero(self, db_session):
        summary = reporting_service.dashboard_summary(today=date(2024, 5, 10))
        assert summary["sales_cents"]["change_percent"] == 0.0
        assert summary["low_stock_alerts"] == []
