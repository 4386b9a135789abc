# backend/laundry/routes/branches.py
"""
Branch and employee routes.

- Creating branches is SUPER_ADMIN only.
- Branch managers may read their own branch and add employees to it.
- Aggregate columns are read-only over HTTP.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import forbidden, require_actor, require_role
from ..services import branch_service
from ..services.errors import OrderEngineError
from ..validation import parse_int


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.post("/")
@require_actor
@require_role("SUPER_ADMIN")
def create_branch_route():
    payload = request.get_json(silent=True) or {}
    try:
        branch = branch_service.create_branch(
            name=payload.get("name"),
            code=payload.get("code"),
            email=payload.get("email"),
            contact_number=payload.get("contact_number"),
        )
        return jsonify({"branch": branch.to_dict()}), 201
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create branch")
        return jsonify({"error": "Internal server error"}), 500


@branches_bp.get("/<int:branch_id>")
@require_actor
@require_role("SUPER_ADMIN", "BRANCH_MANAGER")
def get_branch_route(branch_id: int):
    if not g.actor.can_access_branch(branch_id):
        return forbidden()
    try:
        branch = branch_service.get_branch(branch_id)
        return jsonify({"branch": branch.to_dict()}), 200
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status


@branches_bp.post("/<int:branch_id>/employees")
@require_actor
@require_role("SUPER_ADMIN", "BRANCH_MANAGER")
def create_employee_route(branch_id: int):
    if not g.actor.can_access_branch(branch_id):
        return forbidden()
    payload = request.get_json(silent=True) or {}
    try:
        user_id = payload.get("user_id")
        employee = branch_service.create_employee(
            branch_id=branch_id,
            full_name=payload.get("full_name"),
            employee_number=payload.get("employee_number"),
            user_id=parse_int(user_id, "user_id") if user_id is not None else None,
            job_role=payload.get("job_role", "WASHER"),
            status=payload.get("status", "ACTIVE"),
        )
        return jsonify({"employee": employee.to_dict()}), 201
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create employee")
        return jsonify({"error": "Internal server error"}), 500


@branches_bp.get("/employees/<int:employee_id>")
@require_actor
@require_role("SUPER_ADMIN", "BRANCH_MANAGER", "STAFF")
def get_employee_route(employee_id: int):
    try:
        employee = branch_service.get_employee(employee_id)
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    if not g.actor.can_access_branch(employee.branch_id):
        return forbidden()
    return jsonify({"employee": employee.to_dict()}), 200
