"""
Access Policy — shared predicates for the routing core.

Centralises the checks that the action guard, the goal visibility resolver
and the orchestrator services all need:

  - privilege levels (one ordered enum instead of role-string comparisons)
  - company isolation
  - department membership (by id, or case-insensitive name)
  - "is participant of workflow W"

Actors are ``User`` instances; ``None`` is the system actor used by
back-office scripts and outranks every role.

Usage:
    from docflow.services.access_policy import Privilege, has_privilege, ensure_company_access

    ensure_company_access(actor, workflow.company_id)
    if has_privilege(actor, Privilege.COMPANY_ADMIN):
        ...
"""

import logging
from enum import IntEnum

from docflow.core.exceptions import AccessDeniedError
from docflow.models.assignment import AssignmentTarget
from docflow.models.org import ROLE_COMPANY_ADMIN, ROLE_MASTER

logger = logging.getLogger(__name__)


class Privilege(IntEnum):
    STAFF = 0
    COMPANY_ADMIN = 10
    MASTER = 20
    SYSTEM = 30


ROLE_PRIVILEGES = {
    ROLE_COMPANY_ADMIN: Privilege.COMPANY_ADMIN,
    ROLE_MASTER: Privilege.MASTER,
}


def actor_id_of(actor) -> int | None:
    return actor.id if actor is not None else None


def privilege_of(actor) -> Privilege:
    if actor is None:
        return Privilege.SYSTEM
    return ROLE_PRIVILEGES.get(actor.role, Privilege.STAFF)


def has_privilege(actor, level: Privilege) -> bool:
    """Single capability check: does the actor hold ``level`` or higher?"""
    return privilege_of(actor) >= level


def is_system(actor) -> bool:
    return actor is None


# ── Company isolation ────────────────────────────────────────────────────────


def can_access_company(actor, company_id) -> bool:
    if has_privilege(actor, Privilege.MASTER):
        return True
    return company_id is not None and actor.company_id == company_id


def ensure_company_access(actor, company_id, *, resource: str = "resource") -> None:
    """Raise AccessDeniedError when a non-Master actor crosses companies."""
    if can_access_company(actor, company_id):
        return
    logger.info(
        "Company isolation denied access to %s", resource,
        extra={"actor_id": actor_id_of(actor), "company_id": company_id, "event_type": "access_denied"},
    )
    raise AccessDeniedError(
        f"Access denied: {resource} belongs to another company",
        actor_id=actor_id_of(actor),
        company_id=company_id,
    )


# ── Departments ──────────────────────────────────────────────────────────────


def actor_departments(actor) -> list:
    if actor is None:
        return []
    return list(actor.departments)


def matches_department(actor, department_id=None, department_name=None) -> bool:
    """Actor belongs to the department, by id or case-insensitive name.

    Some legacy routing entries carry the department name in the id slot, so
    the raw id is also compared against department names.
    """
    ref_id = str(department_id).strip() if department_id is not None else None
    names = {
        n.strip().casefold()
        for n in (department_name, department_id)
        if isinstance(n, str) and n.strip()
    }
    for dept in actor_departments(actor):
        if ref_id is not None and ref_id == str(dept.id):
            return True
        if dept.name and dept.name.strip().casefold() in names:
            return True
    return False


def target_includes_actor(target: AssignmentTarget | None, actor) -> bool:
    """Actor is the target user, or a member of the target department."""
    if target is None or actor is None:
        return False
    if target.is_user:
        return target.refers_to_user(actor.id)
    if target.is_department:
        return matches_department(actor, target.id, target.name)
    return False


# ── Participation ────────────────────────────────────────────────────────────


def workflow_parties(workflow) -> list[AssignmentTarget]:
    """Every user/department that has held or been routed the workflow."""
    parties = []
    if workflow.assignee is not None:
        parties.append(workflow.assignee)
    for entry in workflow.routing_entries:
        for target in (entry.from_target, entry.to_target):
            if target is not None and (target.is_user or target.is_department):
                parties.append(target)
    return parties


def is_workflow_participant(workflow, actor) -> bool:
    """Creator, current assignee, or any party in the routing history."""
    if actor is None:
        return False
    if workflow.created_by is not None and workflow.created_by == actor.id:
        return True
    return any(target_includes_actor(t, actor) for t in workflow_parties(workflow))
