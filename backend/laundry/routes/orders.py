# backend/laundry/routes/orders.py
"""
Order routes.

Access:
- SUPER_ADMIN: every branch.
- BRANCH_MANAGER / STAFF: orders of their own branch. Deleting is manager-only.
- CUSTOMER: may create orders for themselves in their branch and read
  their own orders. Pricing adjustments, payment and assignment are staff-only.

Mutations retry once on a concurrent-modification conflict.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import forbidden, require_actor, require_role
from ..services import order_service
from ..services.concurrency import run_with_retry
from ..services.errors import OrderEngineError, ValidationError
from ..validation import parse_int, parse_order_create, parse_order_update, parse_page_args


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

STAFF_ROLES = ("SUPER_ADMIN", "BRANCH_MANAGER", "STAFF")
CUSTOMER_FORBIDDEN_FIELDS = {"assigned_employee_id", "payment_status", "discount_cents"}


def _can_view(order) -> bool:
    actor = g.actor
    if actor.role == "CUSTOMER":
        return order.customer_id == actor.user_id
    return actor.can_access_branch(order.branch_id)


@orders_bp.post("/")
@require_actor
def create_order_route():
    actor = g.actor
    payload = request.get_json(silent=True) or {}

    try:
        data = parse_order_create(payload)

        if actor.role == "CUSTOMER":
            if CUSTOMER_FORBIDDEN_FIELDS & set(data):
                return forbidden("Customers cannot set pricing, payment or assignment fields")
            if data.get("customer_id", actor.user_id) != actor.user_id:
                return forbidden("Customers can only place their own orders")
            data["customer_id"] = actor.user_id
        elif data.get("customer_id") is None:
            raise ValidationError("customer_id is required")

        if not actor.can_access_branch(data["branch_id"]):
            return forbidden()

        order = run_with_retry(
            lambda: order_service.create_order(actor_user_id=actor.user_id, **data)
        )
        return jsonify({"order": order.to_dict()}), 201
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
@require_actor
def list_orders_route():
    actor = g.actor
    args = request.args

    try:
        page, limit = parse_page_args(args)
        branch_id = parse_int(args["branch_id"], "branch_id") if args.get("branch_id") else None
        customer_id = None

        if actor.role == "CUSTOMER":
            customer_id = actor.user_id
            branch_id = None
        elif not actor.is_super_admin:
            if branch_id is not None and branch_id != actor.branch_id:
                return forbidden()
            branch_id = actor.branch_id

        result = order_service.list_orders(
            branch_id=branch_id,
            customer_id=customer_id,
            status=args.get("status"),
            payment_status=args.get("payment_status"),
            search=args.get("search"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "orders": [o.to_dict(include_lines=False) for o in result["items"]],
            "pagination": result["pagination"],
        }), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    if not _can_view(order):
        return forbidden("Order not accessible")
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.put("/<int:order_id>")
@require_actor
@require_role(*STAFF_ROLES)
def update_order_route(order_id: int):
    actor = g.actor
    payload = request.get_json(silent=True) or {}

    try:
        fields = parse_order_update(payload)
        if not actor.can_access_branch(order_service.get_order(order_id).branch_id):
            return forbidden()
        order = run_with_retry(
            lambda: order_service.update_order(order_id=order_id, fields=fields, actor_user_id=actor.user_id)
        )
        return jsonify({"order": order.to_dict()}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_actor
@require_role(*STAFF_ROLES)
def update_order_status_route(order_id: int):
    actor = g.actor
    payload = request.get_json(silent=True) or {}
    new_status = payload.get("status")
    if not new_status:
        return jsonify({"error": "status is required", "kind": ValidationError.kind, "details": {}}), 400

    try:
        if not actor.can_access_branch(order_service.get_order(order_id).branch_id):
            return forbidden()
        order = run_with_retry(
            lambda: order_service.transition_order_status(
                order_id=order_id, new_status=new_status, actor_user_id=actor.user_id
            )
        )
        return jsonify({"order": order.to_dict()}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to change status of order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_actor
@require_role("SUPER_ADMIN", "BRANCH_MANAGER")
def delete_order_route(order_id: int):
    actor = g.actor
    try:
        if not actor.can_access_branch(order_service.get_order(order_id).branch_id):
            return forbidden()
        run_with_retry(lambda: order_service.delete_order(order_id=order_id, actor_user_id=actor.user_id))
        return jsonify({"message": "Order deleted"}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/history")
@require_actor
def order_history_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        if not _can_view(order):
            return forbidden("Order not accessible")
        history = order_service.get_order_history(order_id)
        return jsonify({"history": [h.to_dict() for h in history]}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
