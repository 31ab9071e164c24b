"""
Action orchestration — create, update, find, and progress propagation.

Status changes on an action roll up into the parent workflow:

    update_action ──commit──▶ refresh_progress(workflow_id)
                               SELECT … FOR UPDATE on the workflow,
                               recompute from the latest action set,
                               commit if (progress, status) changed

The recompute runs in its own transaction after the action commit. It is
idempotent, so a lost race converges on the next action write; a failure
is logged and never fails the action update.
"""

import logging
from datetime import datetime, timezone

from docflow.core.exceptions import InvalidStateError, ValidationError
from docflow.models import db
from docflow.models.assignment import AssignmentTarget
from docflow.models.workflow import ACTION_STATUSES, ACTION_TYPES, Action, Workflow
from docflow.services import directory, realtime
from docflow.services.access_policy import actor_id_of, ensure_company_access
from docflow.services.action_guard import ensure_can_complete, ensure_can_read
from docflow.services.cross_company_gate import gate, notify_reviewers, stamp_companies
from docflow.services.helpers.fields import parse_date, require_choice, require_text
from docflow.services.helpers.persistence import atomic, get_required, lock_for_update
from docflow.services.progress import compute_progress, next_status
from docflow.services.side_effects import Effects, non_critical

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Progress propagation
# ═════════════════════════════════════════════════════════════════════════════


def _recompute(workflow_id) -> bool:
    workflow = lock_for_update(Workflow, workflow_id)
    actions = Action.query.filter_by(workflow_id=workflow_id).order_by(Action.id).all()
    percent = compute_progress(actions)
    status = workflow.status
    # a workflow waiting on approval or already filed only tracks progress
    if workflow.approval_status != "pending" and not workflow.is_filed:
        status = next_status(workflow.status, percent, actions)

    if percent == workflow.progress and status == workflow.status:
        db.session.commit()
        return False

    logger.info(
        "Workflow progress %s%% → %s%%, status %s → %s",
        workflow.progress, percent, workflow.status, status,
        extra={"workflow_id": workflow_id, "company_id": workflow.company_id, "event_type": "progress"},
    )
    workflow.progress = percent
    workflow.status = status
    db.session.commit()
    return True


def refresh_progress(workflow_id) -> bool:
    """Persist the workflow's derived (progress, status); False if it failed."""
    with non_critical("progress", workflow_id=workflow_id):
        if _recompute(workflow_id):
            workflow = db.session.get(Workflow, workflow_id)
            effects = Effects()
            effects.broadcast(realtime.workflow_channel(workflow_id), "workflowUpdated", workflow.to_dict())
            effects.dispatch()
        return True
    return False


# ═════════════════════════════════════════════════════════════════════════════
# Read
# ═════════════════════════════════════════════════════════════════════════════


def find_action(action_id, actor) -> Action:
    """
    Raises:
        NotFoundError: unknown id.
        AccessDeniedError: action of another company (non-Master actor).
    """
    action = get_required(Action, action_id)
    ensure_can_read(action, action.workflow, actor)
    return action


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def _parse_assignee(data: dict, field: str = "assigned_to") -> AssignmentTarget | None:
    if data.get(field) is None:
        return None
    target = AssignmentTarget.from_dict(data[field], field=field)
    if not directory.target_exists(target):
        raise ValidationError(f"{field} {target.kind.value} {target.id} not found", details={f"{field}.id": "not_found"})
    return directory.with_display_name(target)


def _gate_assignment(action: Action, workflow: Workflow, target: AssignmentTarget, actor):
    source_company_id = workflow.company_id
    target_company_id = directory.company_of_target(target) or source_company_id
    decision = gate(
        action, target, actor,
        request_type="action_assignment",
        source_company_id=source_company_id,
        target_company_id=target_company_id,
    )
    if decision.applies:
        action.assignee = target
        stamp_companies(action, decision.evaluation)
    return decision


def create_action(data: dict, actor) -> Action:
    """Create an action under a workflow; recomputes the workflow's progress.

    Raises:
        NotFoundError: unknown workflow.
        AccessDeniedError: foreign workflow, or cross-company by non-admin.
        ValidationError: missing title, incomplete or unknown assignee.
        InvalidStateError: the workflow has been filed.
    """
    workflow = get_required(Workflow, data.get("workflow_id"))
    ensure_company_access(actor, workflow.company_id, resource="Workflow")
    if workflow.is_filed:
        raise InvalidStateError("Workflow", workflow.status, "cannot add actions to a filed workflow")

    title = require_text(data, "title", max_length=300)
    action_type = require_choice(data.get("type"), ACTION_TYPES, "type", default="regular")
    target = _parse_assignee(data)

    decision = None
    with atomic("Action"):
        action = Action(
            workflow_id=workflow.id,
            company_id=workflow.company_id,
            title=title,
            description=data.get("description") or "",
            action_type=action_type,
            status="pending",
            due_date=parse_date(data.get("due_date")),
            created_by=actor_id_of(actor),
        )
        db.session.add(action)
        db.session.flush()
        if target is not None:
            decision = _gate_assignment(action, workflow, target, actor)

    logger.info(
        "Action created: %s", action.title,
        extra={"action_id": action.id, "workflow_id": workflow.id, "actor_id": actor_id_of(actor)},
    )
    refresh_progress(workflow.id)

    effects = Effects(actor_id_of(actor))
    if decision is not None:
        if decision.applies:
            effects.notify_many(
                directory.user_ids_for_target(target), "action_assigned",
                _payload(action, f"Action '{action.title}' was assigned to you"),
            )
        else:
            notify_reviewers(effects, decision.approval_request)
    effects.record(
        action.company_id, "action.create", "action", action.id,
        f"Created action '{action.title}'", {"workflow_id": workflow.id},
    )
    effects.broadcast(realtime.action_channel(action.id), "actionCreated", action.to_dict())
    effects.dispatch()
    return action


# ═════════════════════════════════════════════════════════════════════════════
# Update
# ═════════════════════════════════════════════════════════════════════════════


def update_action(action_id, patch: dict, actor) -> Action:
    """Apply a sparse patch to an action.

    Patch keys: title, description, due_date, status, assigned_to,
    resolution_notes, uploaded_document_name, response_text.

    Raises:
        NotFoundError, AccessDeniedError (isolation or completion guard),
        ValidationError, InvalidStateError (approval pending).
    """
    action = get_required(Action, action_id)
    workflow = action.workflow
    ensure_can_read(action, workflow, actor)

    previous_status = action.status
    decision = None
    target = None

    with atomic("Action", action.id):
        if "title" in patch:
            action.title = require_text(patch, "title", max_length=300)
        if "description" in patch:
            action.description = patch["description"] or ""
        if "due_date" in patch:
            action.due_date = parse_date(patch["due_date"])

        # reassignment first: a gated hand-over leaves the action pending and
        # refuses any status change in the same patch
        if patch.get("assigned_to") is not None:
            if action.approval_status == "pending":
                raise InvalidStateError("Action", action.status, "a cross-company approval is pending")
            target = _parse_assignee(patch)
            if not target.same_party(action.assignee):
                decision = _gate_assignment(action, workflow, target, actor)

        if "status" in patch and patch["status"] != action.status:
            _change_status(action, workflow, patch, actor)

    status_changed = action.status != previous_status
    if status_changed:
        refresh_progress(workflow.id)

    effects = Effects(actor_id_of(actor))
    if status_changed and action.status == "completed":
        effects.notify(
            workflow.created_by, "action_completed",
            _payload(action, f"Action '{action.title}' was completed"),
        )
        effects.record(
            action.company_id, "action.complete", "action", action.id,
            f"Completed action '{action.title}'", {"workflow_id": workflow.id},
        )
    else:
        effects.record(
            action.company_id, "action.update", "action", action.id,
            f"Updated action '{action.title}'",
            {"workflow_id": workflow.id, "status": {"from": previous_status, "to": action.status}},
        )
    if decision is not None:
        if decision.applies:
            effects.notify_many(
                directory.user_ids_for_target(target), "action_assigned",
                _payload(action, f"Action '{action.title}' was assigned to you"),
            )
        else:
            notify_reviewers(effects, decision.approval_request)
    effects.broadcast(realtime.action_channel(action.id), "actionUpdated", action.to_dict())
    effects.dispatch()
    return action


def _change_status(action: Action, workflow: Workflow, patch: dict, actor) -> None:
    status = require_choice(patch["status"], ACTION_STATUSES, "status")
    if action.approval_status == "pending":
        raise InvalidStateError("Action", action.status, "a cross-company approval is pending")

    actor_id = actor_id_of(actor)
    now = _utcnow()
    if status == "completed":
        ensure_can_complete(action, workflow, actor)
        action.completed_at = now
        action.completed_by = actor_id
        action.resolution_notes = patch.get("resolution_notes", action.resolution_notes)
    elif action.status == "completed":
        action.completed_at = None
        action.completed_by = None

    if status == "document_uploaded":
        action.uploaded_document_name = patch.get("uploaded_document_name", action.uploaded_document_name)
        action.uploaded_at = now
        action.uploaded_by = actor_id
    elif status == "response_received":
        action.response_text = patch.get("response_text", action.response_text)
        action.responded_at = now
        action.responded_by = actor_id

    logger.info(
        "Action status %s → %s", action.status, status,
        extra={"action_id": action.id, "workflow_id": workflow.id, "actor_id": actor_id},
    )
    action.status = status


def _payload(action: Action, message: str) -> dict:
    return {
        "company_id": action.company_id,
        "resource_type": "action",
        "resource_id": action.id,
        "workflow_id": action.workflow_id,
        "message": message,
    }
