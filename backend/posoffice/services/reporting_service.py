# Overview: Service-layer operations for reporting; read-only aggregation and TSV serialization.

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func

from posoffice.extensions import db
from posoffice.errors import ValidationError
from posoffice.models import Inventory, Order, OrderItem, Product
from posoffice.services.order_status import OrderStatus
from posoffice.services.tsv import escape_field
from posoffice.time_utils import day_bounds, parse_iso_date, to_utc_z, utcnow


LOW_STOCK_THRESHOLD = 10
TOP_PRODUCTS_LIMIT = 5

# Only invoiced orders count as sales; CREATED is still open, CANCELLED is void
SALE_STATUSES = (OrderStatus.INVOICED.value,)


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(int(cents))
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def _average_cents(total_cents: int, count: int) -> int:
    if not count:
        return 0
    return int((Decimal(total_cents) / Decimal(count)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _change_percent(current: float, previous: float) -> float:
    if previous > 0:
        return round((current - previous) / previous * 100.0, 2)
    if current > 0:
        return 100.0
    return 0.0


def stock_status(quantity: int) -> str:
    if quantity <= 0:
        return "Out of Stock"
    if quantity < LOW_STOCK_THRESHOLD:
        return "Low Stock"
    return "In Stock"


def _parse_range(start: str | None, end: str | None) -> tuple[date, date]:
    try:
        start_day = parse_iso_date(start)
        end_day = parse_iso_date(end)
    except ValueError:
        raise ReportError("Dates must be ISO-8601 (YYYY-MM-DD)")
    if not start_day or not end_day:
        raise ReportError("start and end are required")
    if start_day > end_day:
        raise ReportError("Start date cannot be after end date")
    return start_day, end_day


def _sales_orders(start_dt, end_dt):
    return db.session.query(Order).filter(
        Order.status.in_(SALE_STATUSES),
        Order.created_at >= start_dt,
        Order.created_at < end_dt,
    )


def _product_performance(start_dt, end_dt, limit: int | None = None) -> list[dict]:
    qty_sum = func.sum(OrderItem.quantity)
    query = (
        db.session.query(
            OrderItem.product_id.label("product_id"),
            Product.name.label("product_name"),
            qty_sum.label("quantity_sold"),
            func.sum(OrderItem.quantity * OrderItem.selling_price_cents).label("revenue_cents"),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id)
        .filter(
            Order.status.in_(SALE_STATUSES),
            Order.created_at >= start_dt,
            Order.created_at < end_dt,
        )
        .group_by(OrderItem.product_id, Product.name)
        .order_by(qty_sum.desc(), OrderItem.product_id.asc())
    )
    if limit:
        query = query.limit(limit)
    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "quantity_sold": int(row.quantity_sold or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in query.all()
    ]


def sales_report(*, start: str | None, end: str | None) -> dict:
    """
    Sales between two calendar days (inclusive). Only invoiced orders count.
    """
    start_day, end_day = _parse_range(start, end)
    start_dt = day_bounds(start_day)[0]
    end_dt = day_bounds(end_day)[1]

    totals = _sales_orders(start_dt, end_dt).with_entities(
        func.count(Order.id), func.coalesce(func.sum(Order.total_amount_cents), 0)
    ).one()
    total_orders = int(totals[0] or 0)
    total_revenue = int(totals[1] or 0)

    period_expr = func.strftime("%Y-%m-%d", Order.created_at)
    by_day = (
        _sales_orders(start_dt, end_dt)
        .with_entities(period_expr.label("period"), func.sum(Order.total_amount_cents).label("revenue_cents"))
        .group_by("period")
        .order_by("period")
        .all()
    )

    products = _product_performance(start_dt, end_dt)

    return {
        "summary": {
            "start_date": start_day.isoformat(),
            "end_date": end_day.isoformat(),
            "total_revenue_cents": total_revenue,
            "total_orders": total_orders,
            "average_order_value_cents": _average_cents(total_revenue, total_orders),
            "total_items_sold": sum(p["quantity_sold"] for p in products),
        },
        "sales_over_time": [
            {"date": row.period, "revenue_cents": int(row.revenue_cents or 0)} for row in by_day
        ],
        "product_performance": products,
    }


def inventory_report() -> dict:
    """Every product with quantity, valuation at MRP, and stock status."""
    rows = (
        db.session.query(Product.id, Product.name, Product.mrp_cents, Inventory.quantity)
        .outerjoin(Inventory, Inventory.product_id == Product.id)
        .order_by(Product.id.asc())
        .all()
    )
    items = []
    for product_id, name, mrp_cents, quantity in rows:
        qty = int(quantity or 0)
        items.append({
            "product_id": product_id,
            "product_name": name,
            "quantity": qty,
            "total_value_cents": qty * mrp_cents,
            "status": stock_status(qty),
        })

    return {
        "summary": {
            "generated_at": to_utc_z(utcnow()),
            "total_product_skus": len(items),
            "total_inventory_quantity": sum(i["quantity"] for i in items),
            "total_inventory_value_cents": sum(i["total_value_cents"] for i in items),
            "out_of_stock_items": sum(1 for i in items if i["quantity"] <= 0),
            "low_stock_items": sum(1 for i in items if 0 < i["quantity"] < LOW_STOCK_THRESHOLD),
        },
        "items": items,
    }


def _kpi(current: float, previous: float) -> dict:
    return {
        "current": current,
        "previous": previous,
        "change_percent": _change_percent(current, previous),
    }


def dashboard_summary(*, today: date | None = None) -> dict:
    """Today vs yesterday KPIs, today's sales by hour, top products, low stock."""
    today = today or utcnow().date()
    today_start, today_end = day_bounds(today)
    yesterday_start = day_bounds(today - timedelta(days=1))[0]

    def _totals(start_dt, end_dt) -> tuple[int, int]:
        count, revenue = _sales_orders(start_dt, end_dt).with_entities(
            func.count(Order.id), func.coalesce(func.sum(Order.total_amount_cents), 0)
        ).one()
        return int(count or 0), int(revenue or 0)

    today_count, today_revenue = _totals(today_start, today_end)
    prev_count, prev_revenue = _totals(yesterday_start, today_start)

    hour_expr = func.strftime("%H", Order.created_at)
    by_hour = (
        _sales_orders(today_start, today_end)
        .with_entities(hour_expr.label("hour"), func.sum(Order.total_amount_cents).label("revenue_cents"))
        .group_by("hour")
        .order_by("hour")
        .all()
    )

    low_stock = (
        db.session.query(Product.id, Product.name, Inventory.quantity)
        .join(Inventory, Inventory.product_id == Product.id)
        .filter(Inventory.quantity < LOW_STOCK_THRESHOLD)
        .order_by(Inventory.quantity.asc(), Product.id.asc())
        .all()
    )

    return {
        "date": today.isoformat(),
        "sales_cents": _kpi(today_revenue, prev_revenue),
        "orders": _kpi(today_count, prev_count),
        "average_order_value_cents": _kpi(
            _average_cents(today_revenue, today_count),
            _average_cents(prev_revenue, prev_count),
        ),
        "sales_by_hour": [
            {"hour": int(row.hour), "revenue_cents": int(row.revenue_cents or 0)} for row in by_hour
        ],
        "top_products": _product_performance(today_start, today_end, limit=TOP_PRODUCTS_LIMIT),
        "low_stock_alerts": [
            {"product_id": pid, "product_name": name, "quantity": int(qty)} for pid, name, qty in low_stock
        ],
    }


# ---------------------------------------------------------------------------
# TSV serialization
# ---------------------------------------------------------------------------

def _tsv_line(*values) -> str:
    return "\t".join(escape_field(v) for v in values)


def sales_report_tsv(report: dict) -> bytes:
    summary = report["summary"]
    lines = [
        "Sales Report Summary",
        _tsv_line("Start Date", summary["start_date"]),
        _tsv_line("End Date", summary["end_date"]),
        _tsv_line("Total Revenue", format_cents(summary["total_revenue_cents"])),
        _tsv_line("Total Orders", summary["total_orders"]),
        _tsv_line("Average Order Value", format_cents(summary["average_order_value_cents"])),
        _tsv_line("Total Items Sold", summary["total_items_sold"]),
        "",
        "Sales Over Time",
        _tsv_line("Date", "Revenue"),
    ]
    lines.extend(_tsv_line(row["date"], format_cents(row["revenue_cents"])) for row in report["sales_over_time"])
    lines += [
        "",
        "Product Performance",
        _tsv_line("Product ID", "Product Name", "Quantity Sold", "Total Revenue"),
    ]
    lines.extend(
        _tsv_line(p["product_id"], p["product_name"], p["quantity_sold"], format_cents(p["revenue_cents"]))
        for p in report["product_performance"]
    )
    return ("\n".join(lines) + "\n").encode("utf-8")


def inventory_report_tsv(report: dict) -> bytes:
    summary = report["summary"]
    lines = [
        "Inventory Report Summary",
        _tsv_line("Report Generated At", summary["generated_at"]),
        _tsv_line("Total Product SKUs", summary["total_product_skus"]),
        _tsv_line("Total Inventory Quantity", summary["total_inventory_quantity"]),
        _tsv_line("Total Inventory Value", format_cents(summary["total_inventory_value_cents"])),
        _tsv_line("Out of Stock Items", summary["out_of_stock_items"]),
        _tsv_line(f"Low Stock Items (<{LOW_STOCK_THRESHOLD})", summary["low_stock_items"]),
        "",
        "Inventory Items",
        _tsv_line("Product ID", "Product Name", "Quantity", "Total Value", "Status"),
    ]
    lines.extend(
        _tsv_line(i["product_id"], i["product_name"], i["quantity"], format_cents(i["total_value_cents"]), i["status"])
        for i in report["items"]
    )
    return ("\n".join(lines) + "\n").encode("utf-8")


def sales_report_filename(report: dict) -> str:
    summary = report["summary"]
    return f"sales-report-{summary['start_date']}-to-{summary['end_date']}.tsv"


INVENTORY_REPORT_FILENAME = "inventory-report.tsv"
