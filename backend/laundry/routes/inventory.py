# backend/laundry/routes/inventory.py
"""
Branch inventory routes.

Access:
- Item setup (create, settings, deactivate): SUPER_ADMIN or BRANCH_MANAGER.
- Stock adjustments and reads: SUPER_ADMIN, BRANCH_MANAGER, STAFF.
- Branch-scoped roles only see and touch their own branch.

Stock never changes except through the inventory ledger, which writes one
StockLog row per change.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import forbidden, require_actor, require_role
from ..services import inventory_service
from ..services.errors import OrderEngineError
from ..validation import (
    parse_int,
    parse_inventory_create,
    parse_inventory_update,
    parse_page_args,
    parse_stock_adjustment,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MANAGER_ROLES = ("SUPER_ADMIN", "BRANCH_MANAGER")
STAFF_ROLES = ("SUPER_ADMIN", "BRANCH_MANAGER", "STAFF")


def _item_in_scope(item_id: int):
    """Load an item; returns (item, None) or (None, error response)."""
    try:
        item = inventory_service.get_inventory_item(item_id)
    except OrderEngineError as e:
        return None, (jsonify(e.to_dict()), e.http_status)
    if not g.actor.can_access_branch(item.branch_id):
        return None, forbidden()
    return item, None


@inventory_bp.post("/")
@require_actor
@require_role(*MANAGER_ROLES)
def create_item_route():
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_inventory_create(payload)
        if not g.actor.can_access_branch(data["branch_id"]):
            return forbidden()
        item = inventory_service.create_inventory_item(actor_user_id=g.actor.user_id, **data)
        return jsonify({"item": item.to_dict()}), 201
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/branch/<int:branch_id>")
@require_actor
@require_role(*STAFF_ROLES)
def list_branch_inventory_route(branch_id: int):
    if not g.actor.can_access_branch(branch_id):
        return forbidden()
    try:
        page, limit = parse_page_args(request.args)
        result = inventory_service.list_branch_inventory(
            branch_id=branch_id,
            category=request.args.get("category"),
            low_stock=request.args.get("low_stock", "").lower() in ("1", "true"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "items": [i.to_dict() for i in result["items"]],
            "pagination": result["pagination"],
        }), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status


@inventory_bp.get("/low-stock")
@require_actor
@require_role(*STAFF_ROLES)
def low_stock_route():
    actor = g.actor
    try:
        page, limit = parse_page_args(request.args)
        branch_id = parse_int(request.args["branch_id"], "branch_id") if request.args.get("branch_id") else None
        if not actor.is_super_admin:
            if branch_id is not None and branch_id != actor.branch_id:
                return forbidden()
            branch_id = actor.branch_id
        result = inventory_service.list_low_stock_items(branch_id=branch_id, page=page, limit=limit)
        return jsonify({
            "items": [i.to_dict() for i in result["items"]],
            "pagination": result["pagination"],
        }), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status


@inventory_bp.put("/<int:item_id>")
@require_actor
@require_role(*MANAGER_ROLES)
def update_item_route(item_id: int):
    item, error = _item_in_scope(item_id)
    if error:
        return error
    payload = request.get_json(silent=True) or {}
    try:
        fields = parse_inventory_update(payload)
        item = inventory_service.update_inventory_item(
            item_id=item.id, fields=fields, actor_user_id=g.actor.user_id
        )
        return jsonify({"item": item.to_dict()}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update inventory item %s", item_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:item_id>/adjust")
@require_actor
@require_role(*STAFF_ROLES)
def adjust_item_route(item_id: int):
    """
    Adjust stock by a signed delta.

    Body: {"delta": -3, "change_type": "DAMAGE", "reason": "...", "order_id": null}
    change_type defaults to RESTOCK for positive and USAGE for negative deltas.
    """
    item, error = _item_in_scope(item_id)
    if error:
        return error
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_stock_adjustment(payload)
        item = inventory_service.adjust_inventory(item_id=item.id, actor_user_id=g.actor.user_id, **data)
        return jsonify({"item": item.to_dict()}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust inventory item %s", item_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:item_id>/logs")
@require_actor
@require_role(*STAFF_ROLES)
def stock_logs_route(item_id: int):
    item, error = _item_in_scope(item_id)
    if error:
        return error
    try:
        limit = parse_int(request.args.get("limit", "200"), "limit")
        logs = inventory_service.list_stock_logs(item_id=item.id, limit=max(1, min(limit, 1000)))
        return jsonify({"logs": [log.to_dict() for log in logs]}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status


@inventory_bp.get("/<int:item_id>/audit")
@require_actor
@require_role(*MANAGER_ROLES)
def stock_audit_route(item_id: int):
    item, error = _item_in_scope(item_id)
    if error:
        return error
    return jsonify({"audit": inventory_service.verify_stock_log(item.id)}), 200


@inventory_bp.delete("/<int:item_id>")
@require_actor
@require_role(*MANAGER_ROLES)
def deactivate_item_route(item_id: int):
    item, error = _item_in_scope(item_id)
    if error:
        return error
    try:
        item = inventory_service.deactivate_inventory_item(item_id=item.id)
        return jsonify({"item": item.to_dict()}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
