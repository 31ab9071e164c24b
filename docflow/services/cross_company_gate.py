"""
Cross-Company Approval Gate.

Wraps an assignment/routing decision: a hop whose source and target
companies differ is not applied directly. A Company Admin (or higher)
creates an ApprovalRequest instead and the subject waits in ``pending``;
anyone less privileged is refused outright.

Usage:
    decision = gate(workflow, target, actor,
                    request_type="workflow_routing",
                    source_company_id=src, target_company_id=dst)
    if decision.applies:
        workflow.assignee = target
    ...
    effects ← notify_reviewers(effects, decision.approval_request)
"""

import logging
from dataclasses import dataclass

from docflow.core.exceptions import AccessDeniedError
from docflow.models import db
from docflow.models.approval import ApprovalRequest
from docflow.models.assignment import AssignmentTarget
from docflow.services import directory
from docflow.services.access_policy import Privilege, actor_id_of, has_privilege

logger = logging.getLogger(__name__)

APPLY = "apply"
REQUEST_APPROVAL = "request_approval"


@dataclass(frozen=True)
class GateEvaluation:
    source_company_id: int | None
    target_company_id: int | None
    is_cross_company: bool


@dataclass
class GateDecision:
    outcome: str
    evaluation: GateEvaluation
    approval_request: ApprovalRequest | None = None

    @property
    def applies(self) -> bool:
        return self.outcome == APPLY


def evaluate(source_company_id, target_company_id) -> GateEvaluation:
    return GateEvaluation(
        source_company_id=source_company_id,
        target_company_id=target_company_id,
        is_cross_company=(
            source_company_id is not None
            and target_company_id is not None
            and source_company_id != target_company_id
        ),
    )


def stamp_companies(subject, evaluation: GateEvaluation) -> None:
    """Copy the hop's company context onto a workflow/action."""
    if evaluation.source_company_id is not None:
        subject.source_company_id = evaluation.source_company_id
        subject.source_company_name = directory.company_name(evaluation.source_company_id)
    if evaluation.target_company_id is not None:
        subject.target_company_id = evaluation.target_company_id
        subject.target_company_name = directory.company_name(evaluation.target_company_id)
    subject.sync_cross_company()


def gate(
    subject,
    proposed_target: AssignmentTarget,
    actor,
    *,
    request_type: str,
    source_company_id,
    target_company_id,
    notes: str | None = None,
) -> GateDecision:
    """Decide whether a hop applies now or waits for approval.

    On ``request_approval`` the ApprovalRequest is added and flushed, and
    the subject is put into ``pending``. Nothing is committed here.

    Raises:
        AccessDeniedError: cross-company hop by an actor below Company Admin.
    """
    evaluation = evaluate(source_company_id, target_company_id)
    if not evaluation.is_cross_company:
        return GateDecision(APPLY, evaluation)

    if not has_privilege(actor, Privilege.COMPANY_ADMIN):
        raise AccessDeniedError(
            "Only company administrators can route across companies",
            actor_id=actor_id_of(actor),
            company_id=source_company_id,
        )

    workflow_id = getattr(subject, "workflow_id", None) or subject.id
    request = ApprovalRequest(
        request_type=request_type,
        workflow_id=workflow_id,
        action_id=subject.id if request_type == "action_assignment" else None,
        source_company_id=source_company_id,
        source_company_name=directory.company_name(source_company_id),
        target_company_id=target_company_id,
        target_company_name=directory.company_name(target_company_id),
        requested_by=actor_id_of(actor),
        prior_status=subject.status,
        subject_title=subject.title,
        routing_notes=notes,
    )
    request.proposed_target = directory.with_display_name(proposed_target)
    db.session.add(request)
    db.session.flush()

    subject.status = "pending"
    subject.approval_status = "pending"
    if request_type == "action_assignment":
        subject.approval_request_id = request.id

    logger.info(
        "Cross-company %s gated: company %s → %s", request_type, source_company_id, target_company_id,
        extra={
            "approval_request_id": request.id,
            "workflow_id": workflow_id,
            "actor_id": actor_id_of(actor),
            "event_type": "approval_requested",
        },
    )
    return GateDecision(REQUEST_APPROVAL, evaluation, request)


def notify_reviewers(effects, request: ApprovalRequest) -> None:
    """Queue an ``approval_request`` notification for the target's admins."""
    payload = {
        "company_id": request.target_company_id,
        "resource_type": "approval_request",
        "resource_id": request.id,
        "message": (
            f"{request.source_company_name or 'Another company'} requests approval "
            f"to hand over '{request.subject_title}'"
        ),
        "request_type": request.request_type,
        "workflow_id": request.workflow_id,
        "action_id": request.action_id,
    }
    effects.notify_many((u.id for u in directory.company_admins(request.target_company_id)), "approval_request", payload)
