from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    `code` is the canonical master SKU a scanned barcode resolves to
    (e.g. HOK-L, HOK-R, BRW). Prices are whole rupiah and are snapshotted
    onto order items, so changing a price never rewrites history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    @property
    def display_key(self) -> str:
        return f"{self.name} ({self.code})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "price": self.price,
            "created_at": to_utc_z(self.created_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "code": self.code, "name": self.name, "price": self.price}
