"""
Goal Visibility Resolver.

A goal is visible to an actor when any of:
  1. the actor created it
  2. it is assigned to all participants and the actor is a workflow participant
  3. it is assigned to the actor directly
  4. the ``assigned_users`` overlay names the actor, or a department the
     actor belongs to (by id or case-insensitive name)

``goal_recipient_ids`` is the inverse: the users a goal reaches, used for
assignment notifications and filing reminders.
"""

from docflow.models.assignment import AssignmentTarget, TargetKind
from docflow.services import directory
from docflow.services.access_policy import (
    is_system,
    is_workflow_participant,
    matches_department,
    workflow_parties,
)

ALL_PARTICIPANTS = "all_participants"


def _overlay_targets(goal) -> list[AssignmentTarget]:
    targets = []
    for entry in goal.assigned_users or []:
        if not isinstance(entry, dict):
            continue
        kind = entry.get("type") or TargetKind.USER.value
        if kind not in (TargetKind.USER.value, TargetKind.DEPARTMENT.value) or entry.get("id") is None:
            continue
        targets.append(AssignmentTarget(TargetKind(kind), str(entry["id"]), entry.get("name")))
    return targets


def _primary_user(goal) -> AssignmentTarget | None:
    # a department primary assignee does not grant visibility on its own
    if goal.assigned_to_type == TargetKind.USER.value and goal.assigned_to_id:
        return AssignmentTarget.user(goal.assigned_to_id, goal.assigned_to_name)
    return None


def can_view(goal, workflow, actor) -> bool:
    if is_system(actor):
        return True
    if goal.created_by is not None and goal.created_by == actor.id:
        return True
    if goal.assigned_to_type == ALL_PARTICIPANTS and is_workflow_participant(workflow, actor):
        return True
    if goal.assigned_to_type == TargetKind.USER.value and str(goal.assigned_to_id) == str(actor.id):
        return True
    for target in _overlay_targets(goal):
        if target.is_user and target.refers_to_user(actor.id):
            return True
        if target.is_department and matches_department(actor, target.id, target.name):
            return True
    return False


def participant_user_ids(workflow) -> list[int]:
    """Creator plus every user reached by a current or historical party."""
    ids = []
    if workflow.created_by is not None:
        ids.append(workflow.created_by)
    for target in workflow_parties(workflow):
        ids.extend(directory.user_ids_for_target(target))
    return list(dict.fromkeys(ids))


def goal_recipient_ids(goal, workflow) -> list[int]:
    if goal.assigned_to_type == ALL_PARTICIPANTS:
        ids = participant_user_ids(workflow)
    else:
        ids = directory.user_ids_for_target(_primary_user(goal))
    for target in _overlay_targets(goal):
        ids.extend(directory.user_ids_for_target(target))
    return list(dict.fromkeys(ids))
