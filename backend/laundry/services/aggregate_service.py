# Overview: Atomic increment/decrement primitives for branch and employee running totals.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Branch, Employee
from .errors import NotFound
from .transaction import require_unit_of_work

"""
Aggregate invariants (authoritative)

- Branch.total_orders, Branch.total_revenue_cents, Employee.assigned_tasks
  and Employee.completed_tasks are only written here.
- Every write is a single "col = col + :delta" UPDATE, never a
  read-modify-write from Python, so concurrent units cannot lose updates.
- Every call must happen inside unit_of_work(); the delta commits or rolls
  back together with the order/inventory change that caused it.
"""


def _apply(stmt, entity: str, entity_id: int) -> None:
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    if not result.rowcount:
        raise NotFound(f"{entity} not found", details={f"{entity.lower()}_id": entity_id})


def adjust_branch_order_count(branch_id: int, delta: int) -> None:
    require_unit_of_work("adjust_branch_order_count")
    if not delta:
        return
    _apply(
        update(Branch)
        .where(Branch.id == branch_id)
        .values(total_orders=Branch.total_orders + delta),
        "Branch",
        branch_id,
    )


def adjust_branch_revenue(branch_id: int, delta_cents: int) -> None:
    require_unit_of_work("adjust_branch_revenue")
    if not delta_cents:
        return
    _apply(
        update(Branch)
        .where(Branch.id == branch_id)
        .values(total_revenue_cents=Branch.total_revenue_cents + delta_cents),
        "Branch",
        branch_id,
    )


def adjust_employee_tasks(employee_id: int, *, assigned_delta: int = 0, completed_delta: int = 0) -> None:
    require_unit_of_work("adjust_employee_tasks")
    if not assigned_delta and not completed_delta:
        return
    _apply(
        update(Employee)
        .where(Employee.id == employee_id)
        .values(
            assigned_tasks=Employee.assigned_tasks + assigned_delta,
            completed_tasks=Employee.completed_tasks + completed_delta,
        ),
        "Employee",
        employee_id,
    )
