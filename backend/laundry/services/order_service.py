# Overview: Order lifecycle operations; each public write runs as one unit of work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Branch, Employee, Order, OrderLine, OrderStatusHistory
from ..models.orders import ORDER_PRIORITIES, PAYMENT_METHODS, PAYMENT_STATUSES, SERVICE_TYPES
from . import aggregate_service, order_workflow
from .concurrency import lock_for_update
from .document_service import next_document_number
from .errors import NotFound, ValidationError
from .pricing_service import compute_order_totals
from .transaction import unit_of_work

"""
Order service invariants (authoritative)

- create/update/transition/delete each run in exactly one unit of work;
  pricing, workflow side effects and aggregate deltas join that unit.
- Pricing is recomputed explicitly whenever items, priority or discount
  change. Nothing is derived in ORM hooks.
- Branch.total_orders counts orders created minus non-terminal deletions.
- Branch revenue follows order_workflow.sync_revenue (difference-based).
- Employee.assigned_tasks counts assigned orders not yet completed or
  cancelled; completed_tasks counts assigned orders that reached READY.
"""

UPDATABLE_ORDER_FIELDS = frozenset({
    "items",
    "priority",
    "discount_cents",
    "status",
    "payment_status",
    "payment_method",
    "assigned_employee_id",
    "customer_name",
    "customer_phone",
    "pickup_date",
    "delivery_date",
    "notes",
})

_PLAIN_FIELDS = ("customer_name", "customer_phone", "pickup_date", "delivery_date", "notes")


def _choice(value, allowed, field: str) -> str:
    normalized = value.strip().upper() if isinstance(value, str) else value
    if normalized not in allowed:
        raise ValidationError(f"Invalid {field} {value!r}", details={"field": field, "allowed": list(allowed)})
    return normalized


def _build_lines(items) -> list[OrderLine]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("An order needs at least one item")

    lines = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", details={"position": position})
        item_type = (item.get("item_type") or "").strip()
        if not item_type:
            raise ValidationError("item_type is required", details={"position": position})
        quantity = item.get("quantity")
        unit_price_cents = item.get("unit_price_cents")
        for field, value in (("quantity", quantity), ("unit_price_cents", unit_price_cents)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{field} must be an integer", details={"position": position})
        lines.append(
            OrderLine(
                position=position,
                item_type=item_type,
                service_type=_choice(item.get("service_type") or "WASH_FOLD", SERVICE_TYPES, "service_type"),
                quantity=quantity,
                unit_price_cents=unit_price_cents,
                subtotal_cents=0,
                special_instructions=item.get("special_instructions"),
            )
        )
    return lines


def _reprice(order: Order) -> None:
    totals = compute_order_totals(
        order.lines,
        order.priority,
        order.discount_cents,
        current_app.config["TAX_RATE_BPS"],
    )
    for line, subtotal in zip(order.lines, totals.line_subtotals_cents):
        line.subtotal_cents = subtotal
    order.subtotal_cents = totals.subtotal_cents
    order.tax_cents = totals.tax_cents
    order.total_amount_cents = totals.total_amount_cents


def _required_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", details={"field": field})
    return value


def _discount(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("discount_cents must be a non-negative integer")
    return value


def _assignable_employee(employee_id: int, branch_id: int) -> Employee:
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        raise ValidationError("Assigned employee does not exist", details={"employee_id": employee_id})
    if employee.branch_id != branch_id:
        raise ValidationError(
            "Assigned employee belongs to another branch",
            details={"employee_id": employee_id, "branch_id": branch_id},
        )
    if employee.status != "ACTIVE":
        raise ValidationError("Assigned employee is not active", details={"employee_id": employee_id})
    return employee


def _locked_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id).populate_existing()).first()
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def create_order(
    *,
    customer_id: int,
    branch_id: int,
    items: list[dict],
    actor_user_id: int,
    priority: str = "NORMAL",
    discount_cents: int = 0,
    assigned_employee_id: int | None = None,
    payment_status: str = "UNPAID",
    payment_method: str = "CASH",
    customer_name: str | None = None,
    customer_phone: str | None = None,
    pickup_date=None,
    delivery_date=None,
    notes: str | None = None,
) -> Order:
    """
    Create a PENDING order with priced lines.

    Side effects, all in one unit: order number allocation, initial status
    history entry, branch order count +1, assignee assigned_tasks +1, and
    revenue recognition when created already PAID.
    """
    customer_id = _required_id(customer_id, "customer_id")
    branch_id = _required_id(branch_id, "branch_id")
    priority = _choice(priority, ORDER_PRIORITIES, "priority")
    payment_status = _choice(payment_status, PAYMENT_STATUSES, "payment_status")
    payment_method = _choice(payment_method, PAYMENT_METHODS, "payment_method")
    discount_cents = _discount(discount_cents)
    lines = _build_lines(items)

    with unit_of_work("order.create"):
        branch = db.session.get(Branch, branch_id)
        if branch is None or not branch.is_active:
            raise NotFound("Branch not found", details={"branch_id": branch_id})
        if assigned_employee_id is not None:
            _assignable_employee(assigned_employee_id, branch_id)

        order = Order(
            order_number=next_document_number(
                branch_id=branch.id,
                branch_code=branch.code,
                document_type="ORDER",
                prefix=current_app.config["ORDER_NUMBER_PREFIX"],
            ),
            customer_id=customer_id,
            branch_id=branch.id,
            assigned_employee_id=assigned_employee_id,
            created_by_user_id=actor_user_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            status="PENDING",
            priority=priority,
            payment_status=payment_status,
            payment_method=payment_method,
            discount_cents=discount_cents,
            revenue_recognized_cents=0,
            pickup_date=pickup_date,
            delivery_date=delivery_date,
            notes=notes,
        )
        order.lines = lines
        _reprice(order)
        order_workflow.record_status(order, None, "PENDING", actor_user_id)
        db.session.add(order)
        db.session.flush()

        aggregate_service.adjust_branch_order_count(branch.id, 1)
        if assigned_employee_id is not None:
            aggregate_service.adjust_employee_tasks(assigned_employee_id, assigned_delta=1)
        order_workflow.sync_revenue(order)

    current_app.logger.info(
        "Order %s created in branch %s (total %s cents)", order.order_number, branch_id, order.total_amount_cents
    )
    return order


def _reassign(order: Order, new_employee_id: int | None) -> None:
    if new_employee_id == order.assigned_employee_id:
        return
    if order.status in order_workflow.COMPLETED_STATUSES or order.status in order_workflow.TERMINAL_STATUSES:
        raise ValidationError(
            f"Cannot reassign an order in status {order.status}",
            details={"order_id": order.id, "status": order.status},
        )
    if new_employee_id is not None:
        _assignable_employee(new_employee_id, order.branch_id)

    if order.assigned_employee_id is not None:
        aggregate_service.adjust_employee_tasks(order.assigned_employee_id, assigned_delta=-1)
    if new_employee_id is not None:
        aggregate_service.adjust_employee_tasks(new_employee_id, assigned_delta=1)
    order.assigned_employee_id = new_employee_id


def update_order(*, order_id: int, fields: dict, actor_user_id: int) -> Order:
    """
    Apply a full update to an order in one unit.

    Order of application: repricing, reassignment, status transition,
    payment status, then revenue sync. Any failure rolls back all of it.
    """
    unknown = set(fields) - UPDATABLE_ORDER_FIELDS
    if unknown:
        raise ValidationError("Unknown order fields", details={"fields": sorted(unknown)})

    with unit_of_work("order.update"):
        order = _locked_order(order_id)

        repriced = False
        if "items" in fields:
            order.lines = _build_lines(fields["items"])
            repriced = True
        if "priority" in fields:
            order.priority = _choice(fields["priority"], ORDER_PRIORITIES, "priority")
            repriced = True
        if "discount_cents" in fields:
            order.discount_cents = _discount(fields["discount_cents"])
            repriced = True
        if repriced:
            _reprice(order)

        for field in _PLAIN_FIELDS:
            if field in fields:
                setattr(order, field, fields[field])
        if "payment_method" in fields:
            order.payment_method = _choice(fields["payment_method"], PAYMENT_METHODS, "payment_method")

        if "assigned_employee_id" in fields:
            _reassign(order, fields["assigned_employee_id"])

        if "status" in fields:
            order_workflow.apply_transition(
                order, order_workflow.normalize_status(fields["status"]), actor_user_id
            )

        if "payment_status" in fields:
            order.payment_status = _choice(fields["payment_status"], PAYMENT_STATUSES, "payment_status")

        order_workflow.sync_revenue(order)
        db.session.flush()

    current_app.logger.info("Order %s updated by user %s", order.order_number, actor_user_id)
    return order


def transition_order_status(*, order_id: int, new_status: str, actor_user_id: int) -> Order:
    """Status-only update. Repeating the current status changes nothing."""
    new_status = order_workflow.normalize_status(new_status)
    with unit_of_work("order.transition"):
        order = _locked_order(order_id)
        order_workflow.apply_transition(order, new_status, actor_user_id)
    return order


def delete_order(*, order_id: int, actor_user_id: int) -> None:
    """
    Hard-delete an order, reversing its aggregate contributions.

    Orders already DELIVERED or CANCELLED are settled: their aggregates are
    left untouched.
    """
    with unit_of_work("order.delete"):
        order = _locked_order(order_id)
        order_number = order.order_number

        if order.status not in order_workflow.TERMINAL_STATUSES:
            aggregate_service.adjust_branch_order_count(order.branch_id, -1)
            if order.revenue_recognized_cents:
                aggregate_service.adjust_branch_revenue(order.branch_id, -order.revenue_recognized_cents)
            if order.assigned_employee_id is not None and order.status not in order_workflow.COMPLETED_STATUSES:
                aggregate_service.adjust_employee_tasks(order.assigned_employee_id, assigned_delta=-1)

        db.session.delete(order)

    current_app.logger.info("Order %s deleted by user %s", order_number, actor_user_id)


def list_orders(
    *,
    branch_id: int | None = None,
    customer_id: int | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    q = db.session.query(Order)
    if branch_id is not None:
        q = q.filter(Order.branch_id == branch_id)
    if customer_id is not None:
        q = q.filter(Order.customer_id == customer_id)
    if status:
        q = q.filter(Order.status == order_workflow.normalize_status(status))
    if payment_status:
        q = q.filter(Order.payment_status == _choice(payment_status, PAYMENT_STATUSES, "payment_status"))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(
            or_(
                Order.order_number.ilike(term),
                Order.customer_name.ilike(term),
                Order.customer_phone.ilike(term),
            )
        )

    page = max(1, page)
    limit = max(1, min(100, limit))
    total = q.count()
    rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": rows,
        "pagination": {"total": total, "page": page, "pages": (total + limit - 1) // limit},
    }


def get_order_history(order_id: int) -> list[OrderStatusHistory]:
    get_order(order_id)
    return (
        db.session.query(OrderStatusHistory)
        .filter_by(order_id=order_id)
        .order_by(OrderStatusHistory.id)
        .all()
    )
