from __future__ import annotations

from ..extensions import db
from laundry.time_utils import to_utc_z


class Branch(db.Model):
    """
    Physical service location.

    total_orders / total_revenue_cents are denormalized running aggregates.
    They are written only through services.aggregate_service inside a unit
    of work, never by the branch update path.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.CheckConstraint("total_orders >= 0", name="ck_branches_total_orders_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)  # e.g. "NY-01"
    email = db.Column(db.String(255), nullable=True)
    contact_number = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.BigInteger, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "email": self.email,
            "contact_number": self.contact_number,
            "is_active": self.is_active,
            "total_orders": self.total_orders,
            "total_revenue_cents": self.total_revenue_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
