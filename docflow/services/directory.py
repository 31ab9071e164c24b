"""
Identity / company lookup.

Resolves users and departments referenced by assignment targets to display
names and company ids, and finds the role holders the routing engine needs
(secretary, department head, company admins).

Department identity is the department's primary key everywhere in the core;
names are only used for display and for the case-insensitive membership
fallback in the access policy.
"""

import logging

from flask import current_app

from docflow.models.assignment import AssignmentTarget, TargetKind
from docflow.models.org import ROLE_COMPANY_ADMIN, Company, Department, User
from docflow.services.helpers.persistence import get_or_none

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"


# ── Entity lookups ───────────────────────────────────────────────────────────


def get_user(user_id) -> User | None:
    return get_or_none(User, user_id)


def get_department(department_id) -> Department | None:
    return get_or_none(Department, department_id)


def get_company(company_id) -> Company | None:
    return get_or_none(Company, company_id)


def company_name(company_id) -> str | None:
    company = get_company(company_id) if company_id is not None else None
    return company.name if company else None


# ── Target resolution ────────────────────────────────────────────────────────


def lookup_name(target: AssignmentTarget) -> str | None:
    """Display name of the user/department a target points at, if it exists."""
    if target.kind is TargetKind.USER:
        user = get_user(target.id)
        return user.display_name if user else None
    if target.kind is TargetKind.DEPARTMENT:
        dept = get_department(target.id)
        return dept.name if dept else None
    return target.name


def display_name_for(target: AssignmentTarget | None) -> str:
    """Name fallback chain: stored name → looked-up name → raw id → "Unknown"."""
    if target is None:
        return UNKNOWN_NAME
    if not target.needs_name:
        return target.name
    return lookup_name(target) or target.id or UNKNOWN_NAME


def with_display_name(target: AssignmentTarget | None) -> AssignmentTarget | None:
    if target is None or not target.needs_name:
        return target
    return target.with_name(display_name_for(target))


def target_exists(target: AssignmentTarget) -> bool:
    if target.kind is TargetKind.USER:
        return get_user(target.id) is not None
    if target.kind is TargetKind.DEPARTMENT:
        return get_department(target.id) is not None
    return True


def company_of_target(target: AssignmentTarget | None) -> int | None:
    """Company id owning the referenced user/department (None if unknown)."""
    if target is None:
        return None
    if target.kind is TargetKind.USER:
        user = get_user(target.id)
        return user.company_id if user else None
    if target.kind is TargetKind.DEPARTMENT:
        dept = get_department(target.id)
        return dept.company_id if dept else None
    return None


# ── Role holders ─────────────────────────────────────────────────────────────


def _active_users_with_role(role: str, company_id=None):
    q = User.query.filter(User.role == role, User.status == "active")
    if company_id is not None:
        q = q.filter(User.company_id == company_id)
    return q.order_by(User.id)


def find_secretary(company_id) -> User | None:
    """The secretary of a company (first by id when several hold the role)."""
    role = current_app.config.get("SECRETARY_ROLE", "Secretary")
    return _active_users_with_role(role, company_id).first()


def find_department_head(company_id, department_id=None) -> User | None:
    """First Department Head, in the given department when one is named."""
    role = current_app.config.get("DEPARTMENT_HEAD_ROLE", "Department Head")
    q = _active_users_with_role(role, company_id if department_id is None else None)
    if department_id is not None:
        q = q.filter(User.departments.any(Department.id == department_id))
    return q.first()


def company_admins(company_id) -> list[User]:
    return _active_users_with_role(ROLE_COMPANY_ADMIN, company_id).all()


def department_member_ids(department_id) -> list[int]:
    dept = get_department(department_id)
    if dept is None:
        return []
    return [u.id for u in dept.members if u.status == "active"]


def user_ids_for_target(target: AssignmentTarget | None) -> list[int]:
    """Users reached by a target: the user itself, or all department members."""
    if target is None:
        return []
    if target.kind is TargetKind.USER:
        user = get_user(target.id)
        return [user.id] if user else []
    if target.kind is TargetKind.DEPARTMENT:
        return department_member_ids(target.id)
    return []
