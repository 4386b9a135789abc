from __future__ import annotations

from ..extensions import db
from laundry.time_utils import to_utc_z


class Employee(db.Model):
    """
    Branch employee as seen by the order engine.

    assigned_tasks / completed_tasks move in lockstep with order assignment
    and status changes (services.aggregate_service).
    """
    __tablename__ = "employees"
    __table_args__ = (
        db.Index("ix_employees_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, unique=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    employee_number = db.Column(db.String(32), nullable=False, unique=True)
    full_name = db.Column(db.String(255), nullable=False)

    # WASHER, IRONER, DRIVER, RECEPTIONIST, SUPERVISOR, BRANCH_MANAGER, CLEANER
    job_role = db.Column(db.String(32), nullable=False, default="WASHER")
    # ACTIVE, INACTIVE, ON_LEAVE, TERMINATED, SUSPENDED
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    assigned_tasks = db.Column(db.Integer, nullable=False, default=0)
    completed_tasks = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("employees", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "employee_number": self.employee_number,
            "full_name": self.full_name,
            "job_role": self.job_role,
            "status": self.status,
            "assigned_tasks": self.assigned_tasks,
            "completed_tasks": self.completed_tasks,
            "created_at": to_utc_z(self.created_at),
        }
