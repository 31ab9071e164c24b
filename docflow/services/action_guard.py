"""
Action Authorization Guard.

Decides whether an actor may mark an action ``completed``. Company
isolation is checked first and raises; the completion rules then return a
plain bool:

  1. the action is assigned to the actor directly
  2. the action is assigned to a department the actor belongs to
  3. the actor is a participant of the parent workflow

Read access to an action applies company isolation only.
"""

from docflow.core.exceptions import AccessDeniedError
from docflow.services.access_policy import (
    Privilege,
    actor_id_of,
    ensure_company_access,
    has_privilege,
    is_system,
    is_workflow_participant,
    target_includes_actor,
)


def can_complete(action, workflow, actor) -> bool:
    """
    Raises:
        AccessDeniedError: non-privileged actor from another company.
    """
    ensure_company_access(actor, workflow.company_id, resource="Workflow")
    if is_system(actor):
        return True
    if target_includes_actor(action.assignee, actor):
        return True
    return is_workflow_participant(workflow, actor)


def ensure_can_complete(action, workflow, actor) -> None:
    # system actors and Masters bypass the participant rules
    if has_privilege(actor, Privilege.MASTER):
        return
    if not can_complete(action, workflow, actor):
        raise AccessDeniedError(
            "You are not allowed to complete this action",
            actor_id=actor_id_of(actor),
            company_id=workflow.company_id,
        )


def ensure_can_read(action, workflow, actor) -> None:
    ensure_company_access(actor, workflow.company_id, resource="Action")
