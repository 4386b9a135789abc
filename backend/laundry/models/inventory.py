from __future__ import annotations

from ..extensions import db
from laundry.time_utils import to_utc_z


INVENTORY_CATEGORIES = (
    "DETERGENT",
    "SOFTENER",
    "STAIN_REMOVAL",
    "PACKAGING",
    "HANGERS",
    "EQUIPMENTS",
    "CHEMICALS",
    "OTHER",
)

INVENTORY_UNITS = ("kg", "liters", "pieces", "boxes", "rolls")

# RESTOCK / RETURN add stock, USAGE / DAMAGE / LOST remove it,
# ADJUSTMENT goes either way.
STOCK_CHANGE_TYPES = ("RESTOCK", "USAGE", "ADJUSTMENT", "DAMAGE", "LOST", "RETURN")


class InventoryItem(db.Model):
    """
    Consumable stocked by a branch.

    INVARIANTS:
    - current_stock never goes negative (CHECK constraint + conditional UPDATE)
    - reorder_pending == (current_stock <= reorder_level) after every write
    - current_stock == SUM(stock_logs.quantity_delta) for this item

    current_stock is only changed through inventory_service.adjust_stock,
    which writes the StockLog row in the same transaction.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "item_name", name="uq_inventory_items_branch_name"),
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_nonneg"),
        db.CheckConstraint("reorder_level >= 0", name="ck_inventory_items_reorder_nonneg"),
        db.Index("ix_inventory_items_branch_category", "branch_id", "category"),
        db.Index("ix_inventory_items_reorder_pending", "reorder_pending"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False, default="OTHER")
    sku = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="kg")

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)
    reorder_pending = db.Column(db.Boolean, nullable=False, default=False)

    cost_per_unit_cents = db.Column(db.Integer, nullable=False, default=0)
    supplier_contact = db.Column(db.String(255), nullable=True)
    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("inventory_items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "item_name": self.item_name,
            "category": self.category,
            "sku": self.sku,
            "unit": self.unit,
            "current_stock": self.current_stock,
            "reorder_level": self.reorder_level,
            "reorder_pending": self.reorder_pending,
            "cost_per_unit_cents": self.cost_per_unit_cents,
            "supplier_contact": self.supplier_contact,
            "last_restocked_at": to_utc_z(self.last_restocked_at) if self.last_restocked_at else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLog(db.Model):
    """
    Append-only audit trail of inventory quantity changes.

    IMMUTABLE: Records are never updated or deleted. One row per stock
    mutation, written in the same transaction as the mutation.
    """
    __tablename__ = "stock_logs"
    __table_args__ = (
        db.Index("ix_stock_logs_item_created", "inventory_item_id", "created_at"),
        db.Index("ix_stock_logs_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    performed_by_user_id = db.Column(db.Integer, nullable=False)

    change_type = db.Column(db.String(16), nullable=False, index=True)
    # Positive for additions, negative for removals
    quantity_delta = db.Column(db.Integer, nullable=False)
    resulting_stock = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    # No FK: the order may be hard-deleted later, the audit row stays
    order_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    inventory_item = db.relationship("InventoryItem", backref=db.backref("stock_logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "branch_id": self.branch_id,
            "performed_by_user_id": self.performed_by_user_id,
            "change_type": self.change_type,
            "quantity_delta": self.quantity_delta,
            "resulting_stock": self.resulting_stock,
            "reason": self.reason,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }


class LowStockAlert(db.Model):
    """Open alert for an item that crossed its reorder level."""
    __tablename__ = "low_stock_alerts"
    __table_args__ = (
        db.Index("ix_low_stock_alerts_branch_resolved", "branch_id", "is_resolved"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    item_name = db.Column(db.String(255), nullable=True)
    current_stock = db.Column(db.Integer, nullable=False)
    reorder_level = db.Column(db.Integer, nullable=False)

    alerts_sent = db.Column(db.Integer, nullable=False, default=1)
    alert_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "branch_id": self.branch_id,
            "item_name": self.item_name,
            "current_stock": self.current_stock,
            "reorder_level": self.reorder_level,
            "alerts_sent": self.alerts_sent,
            "alert_sent_at": to_utc_z(self.alert_sent_at) if self.alert_sent_at else None,
            "is_resolved": self.is_resolved,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "created_at": to_utc_z(self.created_at),
        }
