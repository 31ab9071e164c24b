"""
Routing Engine.

Turns a caller's routing intent into a concrete AssignmentTarget and builds
the append-only RoutingHistoryEntry that records the hop.

Route kinds:
    secretary        → the company's secretary
    department       → a department (target id required)
    individual       → a user (target id required)
    department_head  → first Department Head (of the given department, or
                       of the workflow's company)
    original_sender  → the workflow's creator
    file_documents   → terminal: ``system/Filed``, assignee unchanged

Status rule: filing is the only hop allowed on a ``completed`` workflow, and
filing is only allowed on a ``completed`` workflow.

Append semantics: entries carry a per-workflow ``sequence``. ``append_after``
only accepts an entry when the caller's view of the log is current, and the
unique (workflow_id, sequence) constraint rejects a concurrent writer that
raced past that check.
"""

import logging
from datetime import datetime, timezone

from docflow.core.exceptions import ConflictError, InvalidStateError, ValidationError
from docflow.models.assignment import AssignmentTarget
from docflow.models.workflow import ROUTE_KINDS, RoutingHistoryEntry
from docflow.services import directory

logger = logging.getLogger(__name__)

FILE_DOCUMENTS = "file_documents"
SYSTEM_ACTOR = "system"


# ── Target resolution ────────────────────────────────────────────────────────


def resolve_route_target(workflow, route_kind: str, target_id=None) -> AssignmentTarget:
    """Resolve a routing intent to the target it designates.

    Raises:
        ValidationError: unknown kind, missing target id, or nobody holds
            the requested role.
    """
    if route_kind not in ROUTE_KINDS:
        raise ValidationError(
            f"Unknown routing type: {route_kind}",
            details={"route.kind": "invalid"},
        )

    if route_kind == FILE_DOCUMENTS:
        return AssignmentTarget.filed()

    if route_kind == "secretary":
        secretary = directory.find_secretary(workflow.company_id)
        if secretary is None:
            raise ValidationError("No secretary found for this company", details={"route.kind": "unresolvable"})
        return AssignmentTarget.user(secretary.id, secretary.display_name)

    if route_kind == "department_head":
        head = directory.find_department_head(workflow.company_id, target_id)
        if head is None:
            raise ValidationError("No department head found", details={"route.kind": "unresolvable"})
        return AssignmentTarget.user(head.id, head.display_name)

    if route_kind == "original_sender":
        creator = directory.get_user(workflow.created_by) if workflow.created_by else None
        if creator is None:
            raise ValidationError("Original sender is unknown", details={"route.kind": "unresolvable"})
        return AssignmentTarget.user(creator.id, creator.display_name)

    if target_id is None or str(target_id).strip() == "":
        raise ValidationError(f"Routing to {route_kind} requires a target id", details={"route.target_id": "required"})

    if route_kind == "department":
        dept = directory.get_department(target_id)
        if dept is None:
            raise ValidationError(f"Department {target_id} not found", details={"route.target_id": "not_found"})
        return AssignmentTarget.department(dept.id, dept.name)

    user = directory.get_user(target_id)
    if user is None:
        raise ValidationError(f"User {target_id} not found", details={"route.target_id": "not_found"})
    return AssignmentTarget.user(user.id, user.display_name)


def routing_type_for(route_kind: str | None) -> str:
    return "filed" if route_kind == FILE_DOCUMENTS else "manual"


# ── State rules ──────────────────────────────────────────────────────────────


def check_routable(workflow, routing_type: str) -> None:
    """
    Raises:
        InvalidStateError: the hop is not allowed in the workflow's state.
    """
    if workflow.is_filed:
        raise InvalidStateError("Workflow", workflow.status, "workflow has been filed")
    if workflow.approval_status == "pending":
        raise InvalidStateError("Workflow", workflow.status, "a cross-company approval is pending")
    if routing_type == "filed":
        if workflow.status != "completed":
            raise InvalidStateError("Workflow", workflow.status, "only completed workflows can be filed")
    elif workflow.status == "completed":
        raise InvalidStateError("Workflow", workflow.status, "completed workflows can only be filed")


# ── Entry construction ───────────────────────────────────────────────────────


def routed_by_value(actor) -> str:
    return str(actor.id) if actor is not None else SYSTEM_ACTOR


def build_routing_entry(
    workflow,
    proposed_target: AssignmentTarget,
    routed_by: str,
    notes: str | None = None,
    routing_type: str = "manual",
    *,
    route_kind: str | None = None,
    source_company_id=None,
    target_company_id=None,
) -> RoutingHistoryEntry:
    """Build (but do not append) the entry recording one hop.

    ``from`` is the workflow's assignee right now; both parties get a display
    name through the directory fallback chain.
    """
    from_target = directory.with_display_name(workflow.assignee)
    to_target = directory.with_display_name(proposed_target)
    entry = RoutingHistoryEntry(
        routed_by=routed_by,
        routed_at=datetime.now(timezone.utc),
        routing_type=routing_type,
        route_kind=route_kind,
        notes=notes,
        source_company_id=source_company_id,
        target_company_id=target_company_id,
        is_cross_company=(
            source_company_id is not None
            and target_company_id is not None
            and source_company_id != target_company_id
        ),
    )
    entry.from_target = from_target
    entry.to_target = to_target
    return entry


def append_after(workflow, entry: RoutingHistoryEntry, sequence: int) -> RoutingHistoryEntry:
    """Append ``entry`` as number ``sequence + 1`` of the workflow's log.

    Raises:
        ConflictError: the log already grew past ``sequence``.
    """
    current = workflow.routing_count
    if current != sequence:
        logger.warning(
            "Routing append after #%s rejected; log is at #%s", sequence, current,
            extra={"workflow_id": workflow.id, "event_type": "routing_conflict"},
        )
        raise ConflictError("Workflow", workflow.id, reason="routing history changed concurrently")
    entry.sequence = sequence + 1
    workflow.routing_entries.append(entry)
    # touch the row so the version counter guards the append
    workflow.updated_at = entry.routed_at
    return entry
