"""
Approval decisions for cross-company hand-overs.

A request created by the cross-company gate is decided once, by a Company
Admin of the target company or a Master:

    approved  → the proposed target becomes the assignee, approval_status is
                cleared and the status prior to ``pending`` is restored
                (then the routing status rule applies)
    rejected  → approval_status = rejected, prior status restored, assignee
                unchanged

The requester is notified either way.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_

from docflow.core.exceptions import AccessDeniedError, InvalidStateError, ValidationError
from docflow.models.approval import REQUEST_STATUSES, ApprovalRequest
from docflow.models.workflow import Action, Workflow
from docflow.services import directory, realtime
from docflow.services.access_policy import Privilege, actor_id_of, has_privilege
from docflow.services.action_service import refresh_progress
from docflow.services.cross_company_gate import evaluate, stamp_companies
from docflow.services.helpers.persistence import atomic, get_required
from docflow.services.side_effects import Effects
from docflow.services.workflow_service import apply_assignment

logger = logging.getLogger(__name__)

DECISIONS = frozenset({"approved", "rejected"})


def list_requests(actor, status: str | None = None) -> list[ApprovalRequest]:
    """Requests the actor may see: all for Masters, own company otherwise."""
    q = ApprovalRequest.query
    if status is not None:
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Unknown request status: {status}", details={"status": "invalid"})
        q = q.filter(ApprovalRequest.status == status)
    if not has_privilege(actor, Privilege.MASTER):
        q = q.filter(or_(
            ApprovalRequest.source_company_id == actor.company_id,
            ApprovalRequest.target_company_id == actor.company_id,
        ))
    return q.order_by(ApprovalRequest.requested_at.desc(), ApprovalRequest.id.desc()).all()


def _ensure_reviewer(request: ApprovalRequest, actor) -> None:
    if has_privilege(actor, Privilege.MASTER):
        return
    if has_privilege(actor, Privilege.COMPANY_ADMIN) and actor.company_id == request.target_company_id:
        return
    raise AccessDeniedError(
        "Only an administrator of the receiving company can decide this request",
        actor_id=actor_id_of(actor),
        company_id=request.target_company_id,
    )


def decide_request(request_id, decision: str, actor, reason: str | None = None) -> ApprovalRequest:
    """Approve or reject a pending request.

    Raises:
        NotFoundError: unknown request (or its subject is gone).
        AccessDeniedError: actor is not a reviewer for the target company.
        ValidationError: decision is not approved/rejected.
        InvalidStateError: the request was already decided.
    """
    request = get_required(ApprovalRequest, request_id)
    _ensure_reviewer(request, actor)
    if decision not in DECISIONS:
        raise ValidationError("decision must be 'approved' or 'rejected'", details={"decision": "invalid"})
    if not request.is_pending:
        raise InvalidStateError("ApprovalRequest", request.status, "request has already been decided")

    if request.action_id is not None:
        subject = get_required(Action, request.action_id)
    else:
        subject = get_required(Workflow, request.workflow_id)
    target = request.proposed_target

    with atomic("ApprovalRequest", request.id):
        request.status = decision
        request.reviewed_by = actor_id_of(actor)
        request.reviewed_at = datetime.now(timezone.utc)
        subject.status = request.prior_status or subject.status

        if decision == "approved":
            subject.approval_status = None
            stamp_companies(subject, evaluate(request.source_company_id, request.target_company_id))
            if isinstance(subject, Workflow):
                apply_assignment(subject, target)
            else:
                subject.assignee = target
                subject.approval_request_id = request.id
        else:
            subject.approval_status = "rejected"
            request.rejection_reason = reason

    if decision == "approved" and isinstance(subject, Workflow):
        refresh_progress(subject.id)

    logger.info(
        "Approval request %s %s", request.id, decision,
        extra={
            "approval_request_id": request.id,
            "workflow_id": request.workflow_id,
            "action_id": request.action_id,
            "actor_id": actor_id_of(actor),
            "event_type": f"approval_{decision}",
        },
    )

    effects = Effects(actor_id_of(actor))
    effects.notify(
        request.requested_by, f"approval_request_{decision}",
        {
            "company_id": request.source_company_id,
            "resource_type": "approval_request",
            "resource_id": request.id,
            "workflow_id": request.workflow_id,
            "message": f"Your request to hand over '{request.subject_title}' was {decision}"
                       + (f": {reason}" if reason and decision == "rejected" else ""),
        },
    )
    if decision == "approved":
        kind = "action" if request.action_id is not None else "workflow"
        effects.notify_many(
            directory.user_ids_for_target(target), f"{kind}_assigned",
            {
                "company_id": request.target_company_id,
                "resource_type": kind,
                "resource_id": subject.id,
                "workflow_id": request.workflow_id,
                "message": f"'{request.subject_title}' was assigned to you",
            },
        )
    effects.record(
        request.target_company_id, "approval.approve" if decision == "approved" else "approval.reject",
        "approval_request", request.id,
        f"{decision.capitalize()} cross-company request for '{request.subject_title}'",
    )
    if isinstance(subject, Workflow):
        effects.broadcast(realtime.workflow_channel(subject.id), "workflowUpdated", subject.to_dict())
    else:
        effects.broadcast(realtime.action_channel(subject.id), "actionUpdated", subject.to_dict())
    effects.dispatch()
    return request
