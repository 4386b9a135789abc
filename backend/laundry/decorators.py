# Overview: Request identity and role decorators for API routes.

from dataclasses import dataclass
from functools import wraps
from flask import request, jsonify, g

ROLES = ("SUPER_ADMIN", "BRANCH_MANAGER", "STAFF", "CUSTOMER")
BRANCH_SCOPED_ROLES = ("BRANCH_MANAGER", "STAFF", "CUSTOMER")


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str
    branch_id: int | None

    @property
    def is_super_admin(self) -> bool:
        return self.role == "SUPER_ADMIN"

    def can_access_branch(self, branch_id: int | None) -> bool:
        if self.is_super_admin:
            return True
        return branch_id is not None and branch_id == self.branch_id


def _header_int(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def require_actor(f):
    """
    Load the caller identity forwarded by the gateway.

    Sets g.actor from:
    - X-Actor-Id: authenticated user id (required)
    - X-Actor-Role: one of ROLES (required)
    - X-Actor-Branch-Id: home branch (required for branch-scoped roles)

    Returns 401 when the identity is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _header_int("X-Actor-Id")
        role = (request.headers.get("X-Actor-Role") or "").strip().upper()
        branch_id = _header_int("X-Actor-Branch-Id")

        if user_id is None or role not in ROLES:
            return jsonify({"error": "Authentication required"}), 401
        if role in BRANCH_SCOPED_ROLES and branch_id is None:
            return jsonify({"error": "Invalid identity: missing branch context"}), 401

        g.actor = Actor(user_id=user_id, role=role, branch_id=branch_id)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Reject callers whose role is not listed. Use after @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401
            if actor.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def forbidden(message: str = "Access to this branch is not allowed"):
    return jsonify({"error": "Permission denied", "message": message}), 403
