"""
Workflow orchestration — create, update (route / file / edit), find.

Every mutation follows the same shape:

    1. load + company isolation
    2. primary mutation inside ``atomic()`` (routing appends, gate decisions)
    3. non-critical effects queued on ``Effects`` and dispatched after commit

Routing input comes in two forms on ``update_workflow``:
  - ``route``: one intent ``{"kind", "target_id", "notes", "target_company_id"}``
  - ``routing_history``: the full list as last seen by the client; only the
    entries beyond the stored count are new, each applied as one hop. Re-
    sending an unchanged list is a no-op.

Usage:
    from docflow.services import workflow_service

    wf = workflow_service.create_workflow(
        {"title": "Lease renewal", "assigned_to": {"type": "department", "id": "4"}},
        actor=user,
    )
    wf = workflow_service.update_workflow(wf.id, {"route": {"kind": "secretary"}}, actor=user)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from docflow.core.exceptions import ConflictError, InvalidStateError, ValidationError
from docflow.models import db
from docflow.models.assignment import AssignmentTarget, TargetKind
from docflow.models.org import Document
from docflow.models.workflow import WORKFLOW_STATUSES, WORKFLOW_TYPES, Workflow
from docflow.services import directory, realtime
from docflow.services.access_policy import actor_id_of, ensure_company_access
from docflow.services.cross_company_gate import gate, notify_reviewers, stamp_companies
from docflow.services.goal_visibility import goal_recipient_ids
from docflow.services.helpers.fields import (
    optional_int,
    parse_date,
    parse_datetime,
    require_choice,
    require_text,
)
from docflow.services.helpers.persistence import atomic, get_or_none, get_required
from docflow.services.routing import (
    FILE_DOCUMENTS,
    append_after,
    build_routing_entry,
    check_routable,
    resolve_route_target,
    routed_by_value,
    routing_type_for,
)
from docflow.services.side_effects import Effects

logger = logging.getLogger(__name__)

# Derived by the core; silently dropped from client patches.
DERIVED_FIELDS = frozenset({"progress", "is_cross_company", "approval_status", "company_id"})

OVERRIDABLE_STATUSES = WORKFLOW_STATUSES - {"pending"}


@dataclass
class _Hop:
    route_kind: str
    target: AssignmentTarget
    notes: str | None = None
    target_company_id: int | None = None
    filed_at: datetime | None = None


@dataclass
class _HopResult:
    hop: _Hop
    previous: AssignmentTarget | None
    applied: bool
    approval_request: object = None


# ═════════════════════════════════════════════════════════════════════════════
# Read
# ═════════════════════════════════════════════════════════════════════════════


def find_workflow(workflow_id, actor) -> Workflow:
    """
    Raises:
        NotFoundError: unknown id.
        AccessDeniedError: workflow of another company (non-Master actor).
    """
    workflow = get_required(Workflow, workflow_id)
    ensure_company_access(actor, workflow.company_id, resource="Workflow")
    return workflow


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def _resolve_company_id(data: dict, actor) -> int:
    """explicit → source company → actor's company → document's company."""
    explicit = optional_int(data.get("company_id"), "company_id")
    if explicit is not None:
        ensure_company_access(actor, explicit, resource="Company")
        return explicit

    source = optional_int(data.get("source_company_id"), "source_company_id")
    if source is not None:
        return source

    if actor is not None and actor.company_id is not None:
        return actor.company_id

    document_id = optional_int(data.get("document_id"), "document_id")
    if document_id is not None:
        document = get_or_none(Document, document_id)
        if document is not None and document.company_id is not None:
            return document.company_id

    raise ValidationError("company_id could not be resolved", details={"company_id": "required"})


def create_workflow(data: dict, actor) -> Workflow:
    """Create a workflow and hand it to its first assignee.

    A first assignee in another company goes through the cross-company
    gate: the workflow starts ``pending`` (held by the creator) until the
    target company approves.

    Raises:
        ValidationError: missing title/assignee, unknown assignee, no company.
        AccessDeniedError: foreign company, or cross-company by non-admin.
    """
    title = require_text(data, "title", max_length=300)
    workflow_type = require_choice(data.get("type"), WORKFLOW_TYPES, "type", default="document")
    target = AssignmentTarget.from_dict(data.get("assigned_to"), field="assigned_to")
    if not directory.target_exists(target):
        raise ValidationError(f"assigned_to {target.kind.value} {target.id} not found", details={"assigned_to.id": "not_found"})
    target = directory.with_display_name(target)

    company_id = _resolve_company_id(data, actor)
    ensure_company_access(actor, company_id, resource="Company")

    source_company_id = optional_int(data.get("source_company_id"), "source_company_id") or company_id
    target_company_id = (
        directory.company_of_target(target)
        or optional_int(data.get("target_company_id"), "target_company_id")
        or source_company_id
    )
    notes = data.get("notes")

    with atomic("Workflow"):
        workflow = Workflow(
            company_id=company_id,
            document_id=optional_int(data.get("document_id"), "document_id"),
            title=title,
            description=data.get("description") or "",
            workflow_type=workflow_type,
            status="assigned",
            progress=0,
            due_date=parse_date(data.get("due_date")),
            created_by=actor_id_of(actor),
        )
        db.session.add(workflow)
        db.session.flush()

        decision = gate(
            workflow, target, actor,
            request_type="workflow_assignment",
            source_company_id=source_company_id,
            target_company_id=target_company_id,
            notes=notes,
        )
        if decision.applies:
            workflow.assignee = target
            stamp_companies(workflow, decision.evaluation)
        else:
            # held by the creator until the target company approves
            workflow.assignee = AssignmentTarget.user(actor.id, actor.display_name) if actor else None
            workflow.source_company_id = source_company_id
            workflow.source_company_name = directory.company_name(source_company_id)
            entry = build_routing_entry(
                workflow, target, routed_by_value(actor), notes, "cross_company",
                route_kind="department" if target.is_department else "individual",
                source_company_id=source_company_id, target_company_id=target_company_id,
            )
            append_after(workflow, entry, 0)

    logger.info(
        "Workflow created: %s (%s)", workflow.title, workflow.status,
        extra={"workflow_id": workflow.id, "company_id": workflow.company_id, "actor_id": actor_id_of(actor)},
    )

    effects = Effects(actor_id_of(actor))
    if decision.applies:
        effects.notify_many(
            directory.user_ids_for_target(target), "workflow_assigned",
            _payload(workflow, f"'{workflow.title}' was assigned to you"),
        )
    else:
        notify_reviewers(effects, decision.approval_request)
    effects.record(
        workflow.company_id, "workflow.create", "workflow", workflow.id,
        f"Created workflow '{workflow.title}'",
        {"assigned_to": target.to_dict(), "gated": not decision.applies},
    )
    effects.broadcast(realtime.workflow_channel(workflow.id), "workflowCreated", workflow.to_dict())
    effects.dispatch()
    return workflow


# ═════════════════════════════════════════════════════════════════════════════
# Update
# ═════════════════════════════════════════════════════════════════════════════


def update_workflow(workflow_id, patch: dict, actor) -> Workflow:
    """Apply a sparse patch: field edits, status override, routing, filing.

    Patch keys: title, description, due_date, status, route, routing_history,
    filed_at (files the workflow, stamped with the given time), expected_version.
    Derived fields are ignored.

    Raises:
        NotFoundError, AccessDeniedError, ValidationError, InvalidStateError,
        ConflictError (stale ``expected_version`` or concurrent append).
    """
    workflow = get_required(Workflow, workflow_id)
    ensure_company_access(actor, workflow.company_id, resource="Workflow")

    ignored = DERIVED_FIELDS & set(patch)
    if ignored:
        logger.debug(
            "Ignoring derived fields in workflow patch: %s", sorted(ignored),
            extra={"workflow_id": workflow.id},
        )

    changed: dict = {}
    results: list[_HopResult] = []
    filed = False

    with atomic("Workflow", workflow.id):
        expected = optional_int(patch.get("expected_version"), "expected_version")
        if expected is not None and expected != workflow.version:
            raise ConflictError("Workflow", workflow.id, reason=f"version {expected} is stale (now {workflow.version})")

        if "title" in patch:
            workflow.title = require_text(patch, "title", max_length=300)
            changed["title"] = workflow.title
        if "description" in patch:
            workflow.description = patch["description"] or ""
            changed["description"] = True
        if "due_date" in patch:
            workflow.due_date = parse_date(patch["due_date"])
            changed["due_date"] = patch["due_date"]
        if "status" in patch and patch["status"] != workflow.status:
            changed["status"] = {"from": workflow.status, "to": patch["status"]}
            _override_status(workflow, patch["status"])

        hops = _collect_hops(workflow, patch)
        for hop in hops:
            result = _apply_hop(workflow, hop, actor)
            results.append(result)
            filed = filed or hop.route_kind == FILE_DOCUMENTS

    effects = Effects(actor_id_of(actor))
    for result in results:
        _queue_hop_effects(effects, workflow, result)
    if filed:
        _queue_goal_reminders(effects, workflow)
    if changed:
        effects.record(
            workflow.company_id, "workflow.update", "workflow", workflow.id,
            f"Updated workflow '{workflow.title}'", {"changes": changed},
        )
    if changed or results:
        effects.broadcast(realtime.workflow_channel(workflow.id), "workflowUpdated", workflow.to_dict())
    effects.dispatch()
    return workflow


def _override_status(workflow: Workflow, status) -> None:
    status = require_choice(status, OVERRIDABLE_STATUSES, "status")
    if workflow.is_filed:
        raise InvalidStateError("Workflow", workflow.status, "workflow has been filed")
    if workflow.approval_status == "pending":
        raise InvalidStateError("Workflow", workflow.status, "a cross-company approval is pending")
    if status == "ready_for_review":
        actions = list(workflow.actions)
        if not actions or any(a.status != "completed" for a in actions) or workflow.progress != 100:
            raise InvalidStateError(
                "Workflow", workflow.status, "ready_for_review requires every action to be completed",
            )
    workflow.status = status
    workflow.completed_at = datetime.now(timezone.utc) if status == "completed" else None


# ── Routing ──────────────────────────────────────────────────────────────────


def _collect_hops(workflow: Workflow, patch: dict) -> list[_Hop]:
    hops = []
    if patch.get("routing_history") is not None:
        hops.extend(_history_hops(workflow, patch["routing_history"]))

    route = patch.get("route")
    if route is not None:
        if not isinstance(route, dict):
            raise ValidationError("route must be an object", details={"route": "invalid"})
        kind = route.get("kind")
        hops.append(_Hop(
            route_kind=kind,
            target=resolve_route_target(workflow, kind, route.get("target_id")),
            notes=route.get("notes"),
            target_company_id=optional_int(route.get("target_company_id"), "route.target_company_id"),
        ))

    # a client filed_at files the workflow at that time
    filed_at = parse_datetime(patch.get("filed_at"), "filed_at")
    if filed_at is not None:
        filing = next((h for h in hops if h.route_kind == FILE_DOCUMENTS), None)
        if filing is None:
            hops.append(_Hop(route_kind=FILE_DOCUMENTS, target=AssignmentTarget.filed(), filed_at=filed_at))
        else:
            filing.filed_at = filed_at
    return hops


def _history_hops(workflow: Workflow, entries) -> list[_Hop]:
    """Hops for the entries beyond what is already stored."""
    if not isinstance(entries, list):
        raise ValidationError("routing_history must be a list", details={"routing_history": "invalid"})
    stored = workflow.routing_count
    new_entries = entries[stored:]
    if not new_entries:
        return []

    hops = []
    for entry in new_entries:
        if not isinstance(entry, dict):
            raise ValidationError("routing_history entries must be objects", details={"routing_history": "invalid"})
        to = entry.get("to") or {}
        if entry.get("routing_type") == "filed" or to.get("type") == TargetKind.SYSTEM.value:
            hops.append(_Hop(route_kind=FILE_DOCUMENTS, target=AssignmentTarget.filed(), notes=entry.get("notes")))
            continue
        target = AssignmentTarget.from_dict(to, field="routing_history.to")
        if not directory.target_exists(target):
            raise ValidationError(
                f"routing_history target {target.kind.value} {target.id} not found",
                details={"routing_history.to.id": "not_found"},
            )
        kind = entry.get("route_kind") or ("department" if target.is_department else "individual")
        hops.append(_Hop(
            route_kind=kind,
            target=target,
            notes=entry.get("notes"),
            target_company_id=optional_int(entry.get("target_company_id"), "routing_history.target_company_id"),
        ))
    logger.debug(
        "routing_history: %d stored, %d new", stored, len(hops),
        extra={"workflow_id": workflow.id},
    )
    return hops


def _apply_hop(workflow: Workflow, hop: _Hop, actor) -> _HopResult:
    routing_type = routing_type_for(hop.route_kind)
    check_routable(workflow, routing_type)
    previous = workflow.assignee
    routed_by = routed_by_value(actor)

    if routing_type == "filed":
        entry = build_routing_entry(
            workflow, AssignmentTarget.filed(), routed_by, hop.notes, "filed", route_kind=FILE_DOCUMENTS,
        )
        append_after(workflow, entry, workflow.routing_count)
        workflow.filed_at = hop.filed_at or entry.routed_at
        return _HopResult(hop, previous, applied=True)

    source_company_id = workflow.source_company_id or workflow.company_id
    target_company_id = (
        directory.company_of_target(hop.target)
        or hop.target_company_id
        or source_company_id
    )
    decision = gate(
        workflow, hop.target, actor,
        request_type="workflow_routing",
        source_company_id=source_company_id,
        target_company_id=target_company_id,
        notes=hop.notes,
    )
    entry = build_routing_entry(
        workflow, hop.target, routed_by, hop.notes,
        "manual" if decision.applies else "cross_company",
        route_kind=hop.route_kind,
        source_company_id=source_company_id,
        target_company_id=target_company_id,
    )
    append_after(workflow, entry, workflow.routing_count)

    if decision.applies:
        apply_assignment(workflow, entry.to_target)
        stamp_companies(workflow, decision.evaluation)
    return _HopResult(hop, previous, decision.applies, decision.approval_request)


def apply_assignment(workflow: Workflow, target: AssignmentTarget) -> None:
    """Hand the workflow to ``target`` with the routing status rule."""
    workflow.assignee = target
    if workflow.progress == 0 and workflow.status != "completed":
        workflow.status = "assigned"


# ── Effects ──────────────────────────────────────────────────────────────────


def _payload(workflow: Workflow, message: str) -> dict:
    return {
        "company_id": workflow.company_id,
        "resource_type": "workflow",
        "resource_id": workflow.id,
        "workflow_id": workflow.id,
        "message": message,
    }


def _queue_hop_effects(effects: Effects, workflow: Workflow, result: _HopResult) -> None:
    hop = result.hop
    if hop.route_kind == FILE_DOCUMENTS:
        effects.notify(
            workflow.created_by, "workflow_filed",
            _payload(workflow, f"'{workflow.title}' has been filed"),
        )
        effects.record(
            workflow.company_id, "workflow.file", "workflow", workflow.id,
            f"Filed workflow '{workflow.title}'",
        )
        return

    if not result.applied:
        notify_reviewers(effects, result.approval_request)
        effects.record(
            workflow.company_id, "workflow.approval_requested", "workflow", workflow.id,
            f"Requested cross-company routing of '{workflow.title}'",
            {"approval_request_id": result.approval_request.id, "to": hop.target.to_dict()},
        )
        return

    target = hop.target
    assignee_ids = directory.user_ids_for_target(target)
    effects.notify_many(
        assignee_ids, "workflow_assigned",
        _payload(workflow, f"'{workflow.title}' was routed to you"),
    )
    watchers = []
    if result.previous is not None and not result.previous.same_party(target):
        watchers.extend(directory.user_ids_for_target(result.previous))
    if workflow.created_by is not None:
        watchers.append(workflow.created_by)
    effects.notify_many(
        [uid for uid in watchers if uid not in assignee_ids], "workflow_routed",
        _payload(workflow, f"'{workflow.title}' was routed to {directory.display_name_for(target)}"),
    )
    effects.record(
        workflow.company_id, "workflow.route", "workflow", workflow.id,
        f"Routed workflow '{workflow.title}' to {directory.display_name_for(target)}",
        {"route_kind": hop.route_kind, "to": target.to_dict(),
         "from": result.previous.to_dict() if result.previous else None},
    )


def _queue_goal_reminders(effects: Effects, workflow: Workflow) -> None:
    """One ``goal_reminder`` per user holding any unachieved goal."""
    recipients = []
    for goal in workflow.goals:
        if not goal.is_achieved:
            recipients.extend(goal_recipient_ids(goal, workflow))
    effects.notify_many(
        recipients, "goal_reminder",
        _payload(workflow, f"'{workflow.title}' was filed with open goals"),
    )
