# Overview: Service-layer operations for branch inventory; stock changes and their audit trail.

from __future__ import annotations

from functools import partial

from flask import current_app
from sqlalchemy import func, select, update

from ..extensions import db
from ..models import Branch, InventoryItem, StockLog
from ..models.inventory import INVENTORY_CATEGORIES, INVENTORY_UNITS, STOCK_CHANGE_TYPES
from laundry.time_utils import utcnow
from . import notification_service
from .errors import InsufficientStock, NotFound, ValidationError
from .transaction import after_commit, unit_of_work

"""
Inventory ledger invariants (authoritative)

- current_stock >= 0 at all times. A change that would go negative is
  rejected entirely, never clamped.
- The stock change is one conditional UPDATE
  (WHERE current_stock + delta >= 0), so two concurrent adjustments of the
  same item can never both succeed on a stale read.
- reorder_pending is recomputed in that same UPDATE.
- Exactly one StockLog row per stock change, in the same transaction.
- Replaying SUM(quantity_delta) over an item's StockLog rows from zero
  reproduces current_stock; initial stock is logged as RESTOCK.
"""

POSITIVE_CHANGE_TYPES = {"RESTOCK", "RETURN"}
NEGATIVE_CHANGE_TYPES = {"USAGE", "DAMAGE", "LOST"}


def _validate_delta(delta) -> int:
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer", details={"delta": delta})
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    return delta


def _resolve_change_type(change_type: str | None, delta: int) -> str:
    if not change_type:
        return "RESTOCK" if delta > 0 else "USAGE"
    change_type = change_type.upper()
    if change_type not in STOCK_CHANGE_TYPES:
        raise ValidationError(
            f"Unknown change type {change_type!r}",
            details={"allowed": list(STOCK_CHANGE_TYPES)},
        )
    if change_type in POSITIVE_CHANGE_TYPES and delta < 0:
        raise ValidationError(f"{change_type} requires a positive delta")
    if change_type in NEGATIVE_CHANGE_TYPES and delta > 0:
        raise ValidationError(f"{change_type} requires a negative delta")
    return change_type


def _normalize_category(category: str | None) -> str:
    value = (category or "OTHER").strip().upper()
    if value not in INVENTORY_CATEGORIES:
        raise ValidationError(
            f"Unknown inventory category {category!r}",
            details={"allowed": list(INVENTORY_CATEGORIES)},
        )
    return value


def get_inventory_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFound("Inventory item not found", details={"item_id": item_id})
    return item


def _stock_payload(item: InventoryItem) -> dict:
    return {
        "inventory_item_id": item.id,
        "branch_id": item.branch_id,
        "item_name": item.item_name,
        "category": item.category,
        "current_stock": item.current_stock,
        "reorder_level": item.reorder_level,
    }


def adjust_stock(
    *,
    item_id: int,
    delta: int,
    change_type: str | None,
    actor_user_id: int,
    reason: str | None = None,
    order_id: int | None = None,
    branch_id: int | None = None,
) -> InventoryItem:
    """
    Apply a signed stock change and append its StockLog row.

    Joins the caller's unit of work when there is one (order status
    transitions), otherwise runs in its own.

    Raises:
        ValidationError: delta is not a non-zero integer, or the change type
            does not fit the sign of delta
        NotFound: item does not exist (or is not in branch_id)
        InsufficientStock: current_stock + delta would be negative
    """
    delta = _validate_delta(delta)
    change_type = _resolve_change_type(change_type, delta)

    with unit_of_work("inventory.adjust_stock"):
        item = get_inventory_item(item_id)
        if branch_id is not None and item.branch_id != branch_id:
            raise NotFound(
                "Inventory item not found in branch",
                details={"item_id": item_id, "branch_id": branch_id},
            )
        if not item.is_active:
            raise ValidationError("Inventory item is inactive", details={"item_id": item_id})

        new_stock = InventoryItem.current_stock + delta
        values = {
            "current_stock": new_stock,
            "reorder_pending": new_stock <= InventoryItem.reorder_level,
            "updated_at": utcnow(),
        }
        if change_type == "RESTOCK":
            values["last_restocked_at"] = utcnow()

        result = db.session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item_id, new_stock >= 0)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            available = db.session.execute(
                select(InventoryItem.current_stock).where(InventoryItem.id == item_id)
            ).scalar()
            raise InsufficientStock(
                f"Insufficient {item.category} stock for {item.item_name}",
                details={
                    "item_id": item_id,
                    "category": item.category,
                    "available": available,
                    "requested": -delta,
                    "unit": item.unit,
                },
            )

        db.session.refresh(item)

        log = StockLog(
            inventory_item_id=item.id,
            branch_id=item.branch_id,
            performed_by_user_id=actor_user_id,
            change_type=change_type,
            quantity_delta=delta,
            resulting_stock=item.current_stock,
            reason=reason,
            order_id=order_id,
        )
        db.session.add(log)
        db.session.flush()

        previous_stock = item.current_stock - delta
        was_pending = previous_stock <= item.reorder_level
        if item.reorder_pending and not was_pending:
            after_commit(partial(notification_service.notify, "inventory.low_stock", _stock_payload(item)))
        elif was_pending and not item.reorder_pending:
            after_commit(partial(notification_service.notify, "inventory.restocked", _stock_payload(item)))

        current_app.logger.info(
            "Stock adjusted for %s (item %s): %+d -> %s",
            item.item_name, item.id, delta, item.current_stock,
        )

    return item


def adjust_inventory(
    *,
    item_id: int,
    delta: int,
    change_type: str | None,
    reason: str | None,
    actor_user_id: int,
    order_id: int | None = None,
) -> InventoryItem:
    """Administrative stock adjustment (restock, damage, count correction)."""
    with unit_of_work("inventory.adjust"):
        return adjust_stock(
            item_id=item_id,
            delta=delta,
            change_type=change_type,
            reason=reason,
            actor_user_id=actor_user_id,
            order_id=order_id,
        )


def find_consumable_item(branch_id: int, category: str, *, min_stock: int = 1) -> InventoryItem | None:
    """
    Active item of `category` in the branch with at least `min_stock` units.

    Category match is case-insensitive. Returns None when the branch has no
    such item or every such item is depleted.
    """
    return (
        db.session.query(InventoryItem)
        .filter(
            InventoryItem.branch_id == branch_id,
            func.upper(InventoryItem.category) == category.strip().upper(),
            InventoryItem.is_active.is_(True),
            InventoryItem.current_stock >= min_stock,
        )
        .order_by(InventoryItem.id)
        .first()
    )


def create_inventory_item(
    *,
    branch_id: int,
    item_name: str,
    actor_user_id: int,
    category: str | None = None,
    unit: str = "kg",
    sku: str | None = None,
    initial_stock: int = 0,
    reorder_level: int = 10,
    cost_per_unit_cents: int = 0,
    supplier_contact: str | None = None,
) -> InventoryItem:
    if not item_name or not item_name.strip():
        raise ValidationError("item_name is required")
    if unit not in INVENTORY_UNITS:
        raise ValidationError(f"Unknown unit {unit!r}", details={"allowed": list(INVENTORY_UNITS)})
    if initial_stock < 0:
        raise ValidationError("initial_stock cannot be negative")
    if reorder_level < 0:
        raise ValidationError("reorder_level cannot be negative")
    category = _normalize_category(category)

    with unit_of_work("inventory.create_item"):
        if db.session.get(Branch, branch_id) is None:
            raise NotFound("Branch not found", details={"branch_id": branch_id})

        duplicate = db.session.query(InventoryItem.id).filter_by(
            branch_id=branch_id, item_name=item_name.strip()
        ).first()
        if duplicate:
            raise ValidationError("Item name already exists in this branch", details={"item_id": duplicate.id})

        item = InventoryItem(
            branch_id=branch_id,
            item_name=item_name.strip(),
            category=category,
            unit=unit,
            sku=sku,
            current_stock=0,
            reorder_level=reorder_level,
            # zero stock is at or below any reorder level
            reorder_pending=True,
            cost_per_unit_cents=cost_per_unit_cents,
            supplier_contact=supplier_contact,
        )
        db.session.add(item)
        db.session.flush()

        if initial_stock:
            adjust_stock(
                item_id=item.id,
                delta=initial_stock,
                change_type="RESTOCK",
                reason="Initial stock",
                actor_user_id=actor_user_id,
            )

        if item.reorder_pending:
            after_commit(partial(notification_service.notify, "inventory.low_stock", _stock_payload(item)))

        current_app.logger.info("Inventory item added: %s in branch %s", item.item_name, branch_id)

    return item


UPDATABLE_ITEM_FIELDS = {
    "item_name", "category", "sku", "unit", "cost_per_unit_cents", "supplier_contact", "is_active",
}


def update_inventory_item(*, item_id: int, fields: dict, actor_user_id: int) -> InventoryItem:
    """
    Update item settings.

    current_stock is never overwritten: a requested level becomes an
    ADJUSTMENT of the difference. reorder_level changes recompute
    reorder_pending against the stored stock in the same statement.
    """
    unknown = set(fields) - UPDATABLE_ITEM_FIELDS - {"reorder_level", "current_stock", "reason"}
    if unknown:
        raise ValidationError("Unknown or read-only fields", details={"fields": sorted(unknown)})

    with unit_of_work("inventory.update_item"):
        item = get_inventory_item(item_id)

        for key in UPDATABLE_ITEM_FIELDS & set(fields):
            value = fields[key]
            if key == "category":
                value = _normalize_category(value)
            elif key == "unit" and value not in INVENTORY_UNITS:
                raise ValidationError(f"Unknown unit {value!r}")
            elif key == "item_name" and not (value or "").strip():
                raise ValidationError("item_name cannot be empty")
            setattr(item, key, value)
        db.session.flush()

        if "reorder_level" in fields:
            level = fields["reorder_level"]
            if isinstance(level, bool) or not isinstance(level, int) or level < 0:
                raise ValidationError("reorder_level must be a non-negative integer")
            was_pending = item.reorder_pending
            db.session.execute(
                update(InventoryItem)
                .where(InventoryItem.id == item_id)
                .values(reorder_level=level, reorder_pending=InventoryItem.current_stock <= level)
                .execution_options(synchronize_session=False)
            )
            db.session.refresh(item)
            if item.reorder_pending and not was_pending:
                after_commit(partial(notification_service.notify, "inventory.low_stock", _stock_payload(item)))

        if fields.get("current_stock") is not None:
            target = fields["current_stock"]
            if isinstance(target, bool) or not isinstance(target, int) or target < 0:
                raise ValidationError("current_stock must be a non-negative integer")
            delta = target - item.current_stock
            if delta:
                adjust_stock(
                    item_id=item_id,
                    delta=delta,
                    change_type="ADJUSTMENT",
                    reason=fields.get("reason") or "Stock level set manually",
                    actor_user_id=actor_user_id,
                )

    return item


def deactivate_inventory_item(*, item_id: int) -> InventoryItem:
    """Soft delete: the StockLog history keeps referencing the item."""
    with unit_of_work("inventory.deactivate_item"):
        item = get_inventory_item(item_id)
        item.is_active = False
    current_app.logger.info("Inventory item deactivated: %s", item_id)
    return item


def _paginate(query, page: int, limit: int) -> dict:
    page = max(1, page)
    limit = max(1, min(100, limit))
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "items": rows,
        "pagination": {"total": total, "page": page, "pages": (total + limit - 1) // limit},
    }


def list_branch_inventory(
    *, branch_id: int, category: str | None = None, low_stock: bool = False, page: int = 1, limit: int = 10
) -> dict:
    q = db.session.query(InventoryItem).filter(InventoryItem.branch_id == branch_id)
    if category:
        q = q.filter(func.upper(InventoryItem.category) == category.strip().upper())
    if low_stock:
        q = q.filter(InventoryItem.current_stock <= InventoryItem.reorder_level)
    return _paginate(q.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc()), page, limit)


def list_low_stock_items(*, branch_id: int | None = None, page: int = 1, limit: int = 10) -> dict:
    q = db.session.query(InventoryItem).filter(
        InventoryItem.current_stock <= InventoryItem.reorder_level,
        InventoryItem.is_active.is_(True),
    )
    if branch_id is not None:
        q = q.filter(InventoryItem.branch_id == branch_id)
    return _paginate(q.order_by(InventoryItem.current_stock.asc(), InventoryItem.id), page, limit)


def list_stock_logs(*, item_id: int, limit: int = 200) -> list[StockLog]:
    get_inventory_item(item_id)
    return (
        db.session.query(StockLog)
        .filter_by(inventory_item_id=item_id)
        .order_by(StockLog.id.desc())
        .limit(limit)
        .all()
    )


def verify_stock_log(item_id: int) -> dict:
    """Replay an item's StockLog deltas from zero and compare with current_stock."""
    item = get_inventory_item(item_id)
    logs = (
        db.session.query(StockLog.quantity_delta, StockLog.resulting_stock)
        .filter_by(inventory_item_id=item_id)
        .order_by(StockLog.id)
        .all()
    )
    running = 0
    broken_chain = False
    for delta, resulting in logs:
        running += delta
        if running != resulting:
            broken_chain = True
    return {
        "item_id": item.id,
        "current_stock": item.current_stock,
        "replayed_stock": running,
        "log_count": len(logs),
        "consistent": running == item.current_stock and not broken_chain,
    }
