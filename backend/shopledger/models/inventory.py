from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LOCATION_WAREHOUSE = "warehouse"
LOCATION_SHOP = "shop"
LOCATIONS = (LOCATION_WAREHOUSE, LOCATION_SHOP)

TXN_PURCHASE = "purchase"
TXN_SALE = "sale"
TXN_TRANSFER = "transfer"
TXN_ADJUSTMENT = "adjustment"
TXN_TYPES = (TXN_PURCHASE, TXN_SALE, TXN_TRANSFER, TXN_ADJUSTMENT)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


class InventoryTransaction(db.Model):
    """
    Append-only stock movement log.

    Location effects (replayed from zero they reproduce the stored counters):
    - purchase:   +quantity at to_location
    - sale:       -quantity at from_location
    - transfer:   -quantity at from_location, +quantity at to_location, only once completed
    - adjustment: signed quantity at to_location

    Rows are never deleted. The only mutation is a transfer leaving pending.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_inventory_txn_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_txn_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    from_location = db.Column(db.String(16), nullable=True)
    to_location = db.Column(db.String(16), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_COMPLETED, index=True)

    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product", backref=db.backref("transactions", lazy="dynamic"))
    user = db.relationship("User", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} type={self.type} product_id={self.product_id} "
            f"qty={self.quantity} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "type": self.type,
            "quantity": self.quantity,
            "from_location": self.from_location,
            "to_location": self.to_location,
            "status": self.status,
            "reference": self.reference,
            "notes": self.notes,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "sale_id": self.sale_id,
            "purchase_id": self.purchase_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "completed_by_user_id": self.completed_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancel_reason": self.cancel_reason,
        }
