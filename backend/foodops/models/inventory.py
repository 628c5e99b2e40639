from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


INVENTORY_STATUS_READY = "READY"
INVENTORY_STATUS_SOLD = "SOLD"


class InventoryItem(db.Model):
    """
    One physical, uniquely-barcoded unit of a product.

    The barcode is the primary key, so uniqueness is enforced by the store
    itself. Units are READY until a delivered allocation flips them to SOLD;
    cancelling the delivery flips them back.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_location_status", "location", "status"),
        db.Index("ix_inventory_items_product_status", "product_id", "status"),
    )

    barcode = db.Column(db.String(128), primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(8), nullable=False, default=INVENTORY_STATUS_READY)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return f"<InventoryItem barcode={self.barcode!r} location={self.location!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "barcode": self.barcode,
            "product_id": self.product_id,
            "location": self.location,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "product": self.product.to_summary() if self.product else None,
        }
