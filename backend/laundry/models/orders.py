from __future__ import annotations

from ..extensions import db
from laundry.time_utils import to_utc_z


ORDER_PRIORITIES = ("NORMAL", "EXPRESS", "URGENT")
PAYMENT_STATUSES = ("UNPAID", "PARTIAL", "PAID")
PAYMENT_METHODS = ("CASH", "POS", "TRANSFER", "WALLET")
SERVICE_TYPES = ("WASH_FOLD", "IRONING", "DRY_CLEANING", "STAIN_REMOVAL", "ALTERATIONS")


class Order(db.Model):
    """
    Laundry order document.

    Pricing fields (subtotal/tax/total) are derived: pricing_service computes
    them from the current lines, priority and discount before every write.
    revenue_recognized_cents is the amount this order currently contributes
    to its branch's total_revenue_cents.

    All amounts in cents.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_branch_status", "branch_id", "status"),
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        db.CheckConstraint("total_amount_cents >= 0", name="ck_orders_total_nonneg"),
        db.CheckConstraint("discount_cents >= 0", name="ck_orders_discount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable, immutable (e.g., "ORD-NY01-000042")
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    assigned_employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, nullable=False)

    # Denormalized customer info
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    priority = db.Column(db.String(16), nullable=False, default="NORMAL")

    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="CASH")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    revenue_recognized_cents = db.Column(db.Integer, nullable=False, default=0)

    pickup_date = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("orders", lazy=True))
    assigned_employee = db.relationship("Employee")
    lines = db.relationship(
        "OrderLine",
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        order_by="OrderStatusHistory.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "branch_id": self.branch_id,
            "assigned_employee_id": self.assigned_employee_id,
            "created_by_user_id": self.created_by_user_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "status": self.status,
            "priority": self.priority,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_amount_cents": self.total_amount_cents,
            "pickup_date": to_utc_z(self.pickup_date) if self.pickup_date else None,
            "delivery_date": to_utc_z(self.delivery_date) if self.delivery_date else None,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """Line items on an order; replaced wholesale when items are edited."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_pos"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_order_lines_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    item_type = db.Column(db.String(64), nullable=False)  # e.g. "Shirt", "Duvet", "Suit"
    service_type = db.Column(db.String(32), nullable=False, default="WASH_FOLD")
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    special_instructions = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": self.item_type,
            "service_type": self.service_type,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "special_instructions": self.special_instructions,
        }


class OrderStatusHistory(db.Model):
    """
    Append-only status trail for an order.

    Exactly one row per persisted status change (plus the initial PENDING).
    """
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    from_status = db.Column(db.String(16), nullable=True)
    status = db.Column(db.String(16), nullable=False)
    changed_by_user_id = db.Column(db.Integer, nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "status": self.status,
            "changed_by_user_id": self.changed_by_user_id,
            "changed_at": to_utc_z(self.changed_at),
        }
