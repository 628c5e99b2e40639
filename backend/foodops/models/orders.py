from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# =============================================================================
# OUTLETS & STATUSES (CONSTANTS)
# =============================================================================

OUTLET_WHATSAPP = "WhatsApp"
OUTLET_TOKOPEDIA = "Tokopedia"
OUTLET_SHOPEE = "Shopee"
OUTLET_CAFE = "Cafe"
OUTLET_WHOLESALE = "Wholesale"
OUTLET_FREE = "Free"

VALID_OUTLETS = [
    OUTLET_WHATSAPP,
    OUTLET_TOKOPEDIA,
    OUTLET_SHOPEE,
    OUTLET_CAFE,
    OUTLET_WHOLESALE,
    OUTLET_FREE,
]

ORDER_STATUS_PAID = "PAID"
ORDER_STATUS_NOT_PAID = "NOT PAID"


class Order(db.Model):
    """
    Customer order captured from one sales outlet.

    total_amount is derived but persisted:
        round_half_up(subtotal * (1 - discount/100)) + ongkir value
    where the ongkir value is non-zero only for WhatsApp orders that are
    not picked up by the customer.

    payment_* columns reference the gateway transaction (Snap) backing a
    WhatsApp order; payment_order_id is what webhooks are keyed by.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("payment_order_id", name="uq_orders_payment_order_id"),
        db.Index("ix_orders_location_order_date", "location", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet = db.Column(db.String(32), nullable=False, index=True)
    customer = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PAID, index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    location = db.Column(db.String(64), nullable=False)

    # Percent, e.g. 10 for 10% off
    discount = db.Column(db.Float, nullable=True)
    total_amount = db.Column(db.Integer, nullable=False, default=0)
    act_payout = db.Column(db.Integer, nullable=True)

    ongkir_plan = db.Column(db.Integer, nullable=True)
    self_pickup = db.Column(db.Boolean, nullable=False, default=False)

    payment_link = db.Column(db.String(512), nullable=True)
    payment_token = db.Column(db.String(128), nullable=True)
    payment_order_id = db.Column(db.String(128), nullable=True)
    payment_transaction_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "OrderItem", backref="order", lazy=True, order_by="OrderItem.id", cascade="all, delete-orphan"
    )
    deliveries = db.relationship(
        "Delivery", backref="order", lazy=True, order_by="Delivery.id", cascade="all, delete-orphan"
    )

    @property
    def ongkir_value(self) -> int:
        if self.outlet == OUTLET_WHATSAPP and not self.self_pickup:
            return self.ongkir_plan or 0
        return 0

    @property
    def subtotal(self) -> int:
        return sum(item.price * item.quantity for item in self.items)

    def to_dict(self, include_items: bool = True) -> dict:
        from ..services.payment_gateway import format_gateway_order_id

        data = {
            "id": self.id,
            "outlet": self.outlet,
            "customer": self.customer,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "delivery_date": to_utc_z(self.delivery_date),
            "location": self.location,
            "discount": self.discount,
            "total_amount": self.total_amount,
            "act_payout": self.act_payout,
            "ongkir_plan": self.ongkir_plan,
            "self_pickup": self.self_pickup,
            "payment_link": self.payment_link,
            "payment_order_id": self.payment_order_id,
            "payment_order_label": format_gateway_order_id(self.payment_order_id),
            "payment_transaction_id": self.payment_transaction_id,
            "created_at": to_utc_z(self.created_at),
            "deliveries": [{"id": d.id, "status": d.status} for d in self.deliveries],
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line on an order; price is a snapshot taken when the line was written."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": self.price,
            "product": self.product.to_summary() if self.product else None,
        }
