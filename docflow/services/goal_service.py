"""
Goal operations — post-completion follow-ups on a workflow.

Goals can only be created once the workflow is ``ready_for_review`` or
``completed``. Reads are filtered through the goal visibility resolver;
writes enforce company isolation on the parent workflow.
"""

import logging
from datetime import datetime, timezone

from docflow.core.exceptions import InvalidStateError, ValidationError
from docflow.models import db
from docflow.models.org import User
from docflow.models.workflow import GOAL_ASSIGNEE_TYPES, GOAL_STATUSES, Goal, Workflow
from docflow.services.access_policy import Privilege, actor_id_of, ensure_company_access, has_privilege
from docflow.services.goal_visibility import ALL_PARTICIPANTS, can_view, goal_recipient_ids
from docflow.services.helpers.fields import parse_date, require_choice, require_text
from docflow.services.helpers.persistence import atomic, get_required
from docflow.services.side_effects import Effects

logger = logging.getLogger(__name__)

GOAL_READY_STATUSES = frozenset({"ready_for_review", "completed"})


def _assigned_users(value) -> list[dict]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("assigned_users must be a list", details={"assigned_users": "invalid"})
    out = []
    for entry in value:
        if not isinstance(entry, dict) or entry.get("id") is None:
            raise ValidationError("assigned_users entries need an id", details={"assigned_users": "invalid"})
        kind = entry.get("type") or "user"
        if kind not in ("user", "department"):
            raise ValidationError("assigned_users type must be user or department", details={"assigned_users": "invalid"})
        out.append({"type": kind, "id": str(entry["id"]), "name": entry.get("name")})
    return out


def _apply_assignee(goal: Goal, data: dict) -> None:
    assigned_type = require_choice(data.get("assigned_to_type"), GOAL_ASSIGNEE_TYPES, "assigned_to_type")
    name = data.get("assigned_to_name")
    if assigned_type == ALL_PARTICIPANTS:
        name = name or "All Participants"
        assigned_id = None
    else:
        name = require_text(data, "assigned_to_name", max_length=255)
        assigned_id = data.get("assigned_to_id")
        if assigned_id is None or str(assigned_id).strip() == "":
            raise ValidationError("assigned_to_id is required", details={"assigned_to_id": "required"})
        assigned_id = str(assigned_id).strip()
    goal.assigned_to_type = assigned_type
    goal.assigned_to_id = assigned_id
    goal.assigned_to_name = name


def _payload(goal: Goal, workflow: Workflow, message: str) -> dict:
    return {
        "company_id": workflow.company_id,
        "resource_type": "goal",
        "resource_id": goal.id,
        "workflow_id": workflow.id,
        "message": message,
    }


def create_goal(workflow_id, data: dict, actor) -> Goal:
    """
    Raises:
        NotFoundError: unknown workflow.
        AccessDeniedError: workflow of another company.
        InvalidStateError: workflow not ready_for_review/completed.
        ValidationError: missing title or assignee type/name.
    """
    workflow = get_required(Workflow, workflow_id)
    ensure_company_access(actor, workflow.company_id, resource="Workflow")
    if workflow.status not in GOAL_READY_STATUSES:
        raise InvalidStateError(
            "Workflow", workflow.status, "goals can only be added once the workflow is ready for review",
        )

    with atomic("Goal"):
        goal = Goal(
            workflow_id=workflow.id,
            title=require_text(data, "title", max_length=300),
            description=data.get("description") or "",
            status="pending",
            due_date=parse_date(data.get("due_date")),
            assigned_users=_assigned_users(data.get("assigned_users")),
            created_by=actor_id_of(actor),
        )
        _apply_assignee(goal, data)
        db.session.add(goal)

    logger.info(
        "Goal created: %s", goal.title,
        extra={"goal_id": goal.id, "workflow_id": workflow.id, "actor_id": actor_id_of(actor)},
    )
    effects = Effects(actor_id_of(actor))
    effects.notify_many(
        goal_recipient_ids(goal, workflow), "goal_assigned",
        _payload(goal, workflow, f"New goal on '{workflow.title}': {goal.title}"),
    )
    effects.record(workflow.company_id, "goal.create", "goal", goal.id, f"Created goal '{goal.title}'")
    effects.dispatch()
    return goal


def update_goal(goal_id, patch: dict, actor) -> Goal:
    goal = get_required(Goal, goal_id)
    workflow = goal.workflow
    ensure_company_access(actor, workflow.company_id, resource="Goal")

    with atomic("Goal", goal.id):
        if "title" in patch:
            goal.title = require_text(patch, "title", max_length=300)
        if "description" in patch:
            goal.description = patch["description"] or ""
        if "due_date" in patch:
            goal.due_date = parse_date(patch["due_date"])
        if "status" in patch and patch["status"] != goal.status:
            status = require_choice(patch["status"], GOAL_STATUSES, "status")
            if status == "achieved":
                raise ValidationError(
                    "Goals are achieved through achieve_goal", details={"status": "use_achieve_goal"},
                )
            if goal.is_achieved:
                # reopened
                goal.achieved_at = None
                goal.achieved_by = None
                goal.achievement_notes = None
            goal.status = status
        if "assigned_to_type" in patch:
            _apply_assignee(goal, patch)
        if "assigned_users" in patch:
            goal.assigned_users = _assigned_users(patch["assigned_users"])

    effects = Effects(actor_id_of(actor))
    effects.record(workflow.company_id, "goal.update", "goal", goal.id, f"Updated goal '{goal.title}'")
    effects.dispatch()
    return goal


def achieve_goal(goal_id, actor, notes: str | None = None) -> Goal:
    """Stamp achievement; visibility is the caller's concern."""
    goal = get_required(Goal, goal_id)
    workflow = goal.workflow

    with atomic("Goal", goal.id):
        goal.status = "achieved"
        goal.achieved_at = datetime.now(timezone.utc)
        goal.achieved_by = actor_id_of(actor)
        goal.achievement_notes = notes

    effects = Effects(actor_id_of(actor))
    effects.notify(
        goal.created_by, "goal_achieved",
        _payload(goal, workflow, f"Goal '{goal.title}' was achieved"),
    )
    effects.record(workflow.company_id, "goal.achieve", "goal", goal.id, f"Achieved goal '{goal.title}'")
    effects.dispatch()
    return goal


def delete_goal(goal_id, actor) -> None:
    goal = get_required(Goal, goal_id)
    workflow = goal.workflow
    ensure_company_access(actor, workflow.company_id, resource="Goal")
    title, company_id = goal.title, workflow.company_id

    with atomic("Goal", goal_id):
        db.session.delete(goal)

    effects = Effects(actor_id_of(actor))
    effects.record(company_id, "goal.delete", "goal", goal_id, f"Deleted goal '{title}'")
    effects.dispatch()


def list_goals_for_workflow(workflow_id, actor) -> list[Goal]:
    """Goals of one workflow the actor may see."""
    workflow = get_required(Workflow, workflow_id)
    ensure_company_access(actor, workflow.company_id, resource="Workflow")
    return [g for g in workflow.goals if can_view(g, workflow, actor)]


def list_goals_for_user(user_id) -> list[Goal]:
    """Every goal visible to a user, across the workflows of their company."""
    user = get_required(User, user_id)
    q = Goal.query.join(Workflow, Goal.workflow_id == Workflow.id)
    if not has_privilege(user, Privilege.MASTER):
        q = q.filter(Workflow.company_id == user.company_id)
    goals = q.order_by(Goal.due_date.is_(None), Goal.due_date, Goal.id).all()
    return [g for g in goals if can_view(g, g.workflow, user)]
