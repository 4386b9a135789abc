# Overview: Branch and employee records. Aggregate columns are read-only here.

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..models import Branch, Employee
from .errors import NotFound, ValidationError
from .transaction import unit_of_work

EMPLOYEE_JOB_ROLES = ("WASHER", "IRONER", "DRIVER", "RECEPTIONIST", "SUPERVISOR", "BRANCH_MANAGER", "CLEANER")
EMPLOYEE_STATUSES = ("ACTIVE", "INACTIVE", "ON_LEAVE", "TERMINATED", "SUSPENDED")

_CODE_RE = re.compile(r"^[A-Z0-9][A-Z0-9-]{0,31}$")


def derive_branch_code(name: str) -> str:
    """'Lekki Phase One' -> 'LPO'; single words use their first four letters."""
    words = re.findall(r"[A-Za-z0-9]+", name)
    if not words:
        raise ValidationError("Branch name must contain letters or digits")
    if len(words) == 1:
        return words[0][:4].upper()
    return "".join(w[0] for w in words).upper()[:8]


def create_branch(
    *,
    name: str,
    code: str | None = None,
    email: str | None = None,
    contact_number: str | None = None,
) -> Branch:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Branch name is required")

    code = (code or derive_branch_code(name)).strip().upper()
    if not _CODE_RE.match(code):
        raise ValidationError("Branch code must be letters, digits or '-'", details={"code": code})

    with unit_of_work("branch.create"):
        if db.session.query(Branch.id).filter((Branch.name == name) | (Branch.code == code)).first():
            raise ValidationError("Branch name or code already in use", details={"name": name, "code": code})
        branch = Branch(name=name, code=code, email=email, contact_number=contact_number)
        db.session.add(branch)

    current_app.logger.info("Branch %s (%s) created", branch.code, branch.name)
    return branch


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFound("Branch not found", details={"branch_id": branch_id})
    return branch


def create_employee(
    *,
    branch_id: int,
    full_name: str,
    employee_number: str | None = None,
    user_id: int | None = None,
    job_role: str = "WASHER",
    status: str = "ACTIVE",
) -> Employee:
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("full_name is required")
    job_role = (job_role or "").upper()
    if job_role not in EMPLOYEE_JOB_ROLES:
        raise ValidationError(f"Invalid job_role {job_role!r}", details={"allowed": list(EMPLOYEE_JOB_ROLES)})
    status = (status or "").upper()
    if status not in EMPLOYEE_STATUSES:
        raise ValidationError(f"Invalid status {status!r}", details={"allowed": list(EMPLOYEE_STATUSES)})

    with unit_of_work("employee.create"):
        branch = get_branch(branch_id)
        if employee_number is None:
            count = db.session.query(Employee).filter_by(branch_id=branch.id).count()
            employee_number = f"{branch.code}-EMP-{count + 1:04d}"
        employee = Employee(
            branch_id=branch.id,
            full_name=full_name,
            employee_number=employee_number,
            user_id=user_id,
            job_role=job_role,
            status=status,
        )
        db.session.add(employee)

    current_app.logger.info("Employee %s added to branch %s", employee.employee_number, branch_id)
    return employee


def get_employee(employee_id: int) -> Employee:
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        raise NotFound("Employee not found", details={"employee_id": employee_id})
    return employee
