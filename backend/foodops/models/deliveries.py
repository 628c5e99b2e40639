from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DELIVERY_STATUS_PENDING = "pending"
DELIVERY_STATUS_DELIVERED = "delivered"


class Delivery(db.Model):
    """
    Fulfillment of (part of) an order with scanned inventory units.

    A delivered delivery has flipped its units to SOLD. A pending one only
    reserves them; they stay READY until the delivery is completed.
    """
    __tablename__ = "deliveries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=DELIVERY_STATUS_PENDING, index=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # WhatsApp only: planned vs. actual shipping cost
    ongkir_plan = db.Column(db.Integer, nullable=True)
    ongkir_actual = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "DeliveryItem", backref="delivery", lazy=True, order_by="DeliveryItem.id", cascade="all, delete-orphan"
    )

    def to_dict(self, include_order: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "delivery_date": to_utc_z(self.delivery_date),
            "ongkir_plan": self.ongkir_plan,
            "ongkir_actual": self.ongkir_actual,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }
        if include_order and self.order is not None:
            data["order"] = self.order.to_dict()
        return data


class DeliveryItem(db.Model):
    """
    Binding of one barcode to a delivery.

    UNIQUE(barcode) guarantees a unit is allocated at most once; cancelled
    deliveries delete their items, which frees the barcode again.
    """
    __tablename__ = "delivery_items"
    __table_args__ = (
        db.UniqueConstraint("barcode", name="uq_delivery_items_barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    barcode = db.Column(db.String(128), db.ForeignKey("inventory_items.barcode"), nullable=False)
    price = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "product_id": self.product_id,
            "barcode": self.barcode,
            "price": self.price,
            "product": self.product.to_summary() if self.product else None,
        }
