# Overview: Order status state machine and the side effects bound to each transition.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..models import Order, OrderStatusHistory
from ..models.inventory import INVENTORY_CATEGORIES
from laundry.time_utils import utcnow
from . import aggregate_service, inventory_service
from .errors import InsufficientStock, InvalidTransition, ValidationError
from .transaction import require_unit_of_work

"""
Order workflow (authoritative)

    PENDING -> PROCESSING -> WASHING -> DRYING -> IRONING -> READY -> DELIVERED
    any non-terminal status -> CANCELLED

- Forward moves may skip stages; backward moves are rejected. A skip walks
  every stage it passes, so PENDING -> DRYING consumes for WASHING and DRYING.
- DELIVERED and CANCELLED are terminal.
- Moving to the current status is a no-op: no history row, no side effects.
- Side effects run in the caller's unit of work, before the status is
  written, so a failed deduction leaves the order in its prior status:
    * inventory consumption from INVENTORY_CONSUMPTION_RULES
    * task bookkeeping for the assigned employee
    * revenue recognition (see sync_revenue)
"""

WORKFLOW = ("PENDING", "PROCESSING", "WASHING", "DRYING", "IRONING", "READY", "DELIVERED")
ORDER_STATUSES = WORKFLOW + ("CANCELLED",)
TERMINAL_STATUSES = frozenset({"DELIVERED", "CANCELLED"})
COMPLETED_STATUSES = frozenset({"READY", "DELIVERED"})

_RANK = {status: i for i, status in enumerate(WORKFLOW)}


@dataclass(frozen=True)
class ConsumptionRule:
    from_status: str | None  # None matches any previous stage
    to_status: str
    category: str
    quantity: int

    def matches(self, from_status: str, to_status: str) -> bool:
        return self.to_status == to_status and self.from_status in (None, from_status)


@dataclass(frozen=True)
class TransitionPlan:
    from_status: str
    to_status: str
    consumptions: tuple[ConsumptionRule, ...]
    assigned_delta: int
    completed_delta: int


def normalize_status(status) -> str:
    value = (status or "").strip().upper() if isinstance(status, str) else ""
    if value not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status {status!r}", details={"allowed": list(ORDER_STATUSES)})
    return value


def is_transition_allowed(from_status: str, to_status: str) -> bool:
    if from_status in TERMINAL_STATUSES:
        return False
    if to_status == "CANCELLED":
        return True
    return _RANK[to_status] > _RANK[from_status]


def stages_crossed(from_status: str, to_status: str) -> list[tuple[str, str]]:
    """Single-stage steps a legal move passes through; CANCELLED is one step."""
    if to_status == "CANCELLED":
        return [(from_status, to_status)]
    path = WORKFLOW[_RANK[from_status] : _RANK[to_status] + 1]
    return list(zip(path, path[1:]))


def allowed_next_statuses(from_status: str) -> list[str]:
    return [s for s in ORDER_STATUSES if s != from_status and is_transition_allowed(from_status, s)]


def parse_consumption_rules(raw_rules) -> tuple[ConsumptionRule, ...]:
    rules = []
    for raw in raw_rules or ():
        from_status = raw.get("from")
        to_status = raw["to"]
        category = str(raw["category"]).upper()
        quantity = int(raw.get("quantity", 1))
        if from_status is not None and from_status not in ORDER_STATUSES:
            raise ValueError(f"invalid consumption rule source status {from_status!r}")
        if to_status not in ORDER_STATUSES:
            raise ValueError(f"invalid consumption rule target status {to_status!r}")
        if category not in INVENTORY_CATEGORIES:
            raise ValueError(f"invalid consumption rule category {category!r}")
        if quantity <= 0:
            raise ValueError("consumption rule quantity must be positive")
        rules.append(ConsumptionRule(from_status, to_status, category, quantity))
    return tuple(rules)


def consumption_rules() -> tuple[ConsumptionRule, ...]:
    return parse_consumption_rules(current_app.config.get("INVENTORY_CONSUMPTION_RULES"))


def plan_transition(
    from_status: str,
    to_status: str,
    *,
    rules: tuple[ConsumptionRule, ...] = (),
    has_assignee: bool = False,
) -> TransitionPlan:
    """
    Decide the side effects of moving from_status -> to_status.

    Consumption rules are matched against each stage the move crosses, in
    workflow order. Pure: no database access. Raises InvalidTransition for
    illegal moves.
    """
    if not is_transition_allowed(from_status, to_status):
        raise InvalidTransition(
            f"Cannot move order from {from_status} to {to_status}",
            details={
                "from_status": from_status,
                "to_status": to_status,
                "allowed": allowed_next_statuses(from_status),
            },
        )

    assigned_delta = completed_delta = 0
    if has_assignee and from_status not in COMPLETED_STATUSES:
        if to_status in COMPLETED_STATUSES:
            assigned_delta, completed_delta = -1, 1
        elif to_status == "CANCELLED":
            # cancelled work releases the assignment without completing it
            assigned_delta = -1

    return TransitionPlan(
        from_status=from_status,
        to_status=to_status,
        consumptions=tuple(
            rule for step in stages_crossed(from_status, to_status) for rule in rules if rule.matches(*step)
        ),
        assigned_delta=assigned_delta,
        completed_delta=completed_delta,
    )


def revenue_target_cents(order: Order) -> int:
    """An order contributes its total to branch revenue once it is PAID or DELIVERED."""
    if order.payment_status == "PAID" or order.status == "DELIVERED":
        return order.total_amount_cents
    return 0


def sync_revenue(order: Order) -> int:
    """
    Bring the branch revenue contribution of `order` in line with its state.

    Applies only the difference to what was already recognized, so repeated
    calls never double count. Returns the delta applied.
    """
    require_unit_of_work("sync_revenue")
    delta = revenue_target_cents(order) - order.revenue_recognized_cents
    if delta:
        aggregate_service.adjust_branch_revenue(order.branch_id, delta)
        order.revenue_recognized_cents += delta
    return delta


def _consume(order: Order, rule: ConsumptionRule, to_status: str, actor_user_id: int) -> None:
    item = inventory_service.find_consumable_item(order.branch_id, rule.category, min_stock=rule.quantity)
    if item is None:
        raise InsufficientStock(
            f"Insufficient {rule.category} in stock to move order to {to_status}",
            details={
                "category": rule.category,
                "stage": rule.to_status,
                "required": rule.quantity,
                "branch_id": order.branch_id,
                "order_id": order.id,
            },
        )
    inventory_service.adjust_stock(
        item_id=item.id,
        delta=-rule.quantity,
        change_type="USAGE",
        reason=f"Order {order.order_number} {rule.to_status.lower()}",
        actor_user_id=actor_user_id,
        order_id=order.id,
        branch_id=order.branch_id,
    )


def record_status(order: Order, from_status: str | None, to_status: str, actor_user_id: int | None) -> None:
    order.status_history.append(
        OrderStatusHistory(
            from_status=from_status,
            status=to_status,
            changed_by_user_id=actor_user_id,
            changed_at=utcnow(),
        )
    )


def apply_transition(order: Order, to_status: str, actor_user_id: int) -> bool:
    """
    Move a locked order to `to_status` with all side effects.

    Must run inside the unit of work that loaded (and locked) the order.
    Returns False when the order already has that status.
    """
    require_unit_of_work("apply_transition")
    from_status = order.status
    if to_status == from_status:
        return False

    plan = plan_transition(
        from_status,
        to_status,
        rules=consumption_rules(),
        has_assignee=order.assigned_employee_id is not None,
    )

    for rule in plan.consumptions:
        _consume(order, rule, to_status, actor_user_id)

    if plan.assigned_delta or plan.completed_delta:
        aggregate_service.adjust_employee_tasks(
            order.assigned_employee_id,
            assigned_delta=plan.assigned_delta,
            completed_delta=plan.completed_delta,
        )

    order.status = to_status
    record_status(order, from_status, to_status, actor_user_id)
    sync_revenue(order)

    current_app.logger.info(
        "Order %s: %s -> %s by user %s", order.order_number, from_status, to_status, actor_user_id
    )
    return True
