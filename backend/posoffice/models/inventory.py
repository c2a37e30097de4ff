from __future__ import annotations

from ..extensions import db
from posoffice.time_utils import to_utc_z


class Inventory(db.Model):
    """
    Stock ledger record: quantity on hand for one product.

    Created lazily by stock_ledger the first time a product is touched by an
    order or an inventory upload. Only stock_ledger writes `quantity`.

    CONCURRENCY: decrements are issued as a conditional UPDATE
    (quantity + delta >= 0) so the floor holds even without row locks;
    version_id additionally guards ORM-level read-modify-write paths.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
