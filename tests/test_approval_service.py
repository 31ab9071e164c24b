"""Tests for cross-company approval decisions."""

import pytest

from docflow.core.exceptions import AccessDeniedError, InvalidStateError, ValidationError
from docflow.models import db
from docflow.models.approval import ApprovalRequest
from docflow.models.assignment import AssignmentTarget
from docflow.models.notification import Notification
from docflow.models.workflow import Action, Workflow
from docflow.services import action_service, approval_service
from docflow.services import workflow_service as ws


@pytest.fixture()
def routed(org, factories):
    """An Acme workflow routed by the Acme admin to Globex Operations."""
    wf = factories.workflow(org.acme, org.admin_a, AssignmentTarget.user(org.alice.id, "Alice Legal"))
    db.session.commit()
    ws.update_workflow(wf.id, {"route": {"kind": "department", "target_id": org.ops.id}}, org.admin_a)
    return wf, ApprovalRequest.query.one()


class TestDecideWorkflowRequest:

    def test_approve_applies_proposed_target(self, org, routed):
        wf, req = routed
        approval_service.decide_request(req.id, "approved", org.admin_b)

        wf = db.session.get(Workflow, wf.id)
        assert wf.assignee == AssignmentTarget.department(org.ops.id, "Operations")
        assert wf.approval_status is None
        assert wf.status == "assigned"
        assert wf.target_company_id == org.globex.id
        assert wf.is_cross_company is True
        assert req.status == "approved"
        assert req.reviewed_by == org.admin_b.id

    def test_approve_notifies_requester_and_assignees(self, org, routed):
        _, req = routed
        approval_service.decide_request(req.id, "approved", org.admin_b)
        assert Notification.query.filter_by(user_id=org.admin_a.id, type="approval_request_approved").count() == 1
        assert Notification.query.filter_by(user_id=org.dave.id, type="workflow_assigned").count() == 1

    def test_reject_restores_prior_status(self, org, routed):
        wf, req = routed
        approval_service.decide_request(req.id, "rejected", org.admin_b, reason="wrong recipient")

        wf = db.session.get(Workflow, wf.id)
        assert wf.status == "assigned"
        assert wf.approval_status == "rejected"
        assert wf.assignee.refers_to_user(org.alice.id)
        assert req.rejection_reason == "wrong recipient"
        assert Notification.query.filter_by(user_id=org.admin_a.id, type="approval_request_rejected").count() == 1

    def test_routing_resumes_after_rejection(self, org, routed):
        wf, req = routed
        approval_service.decide_request(req.id, "rejected", org.admin_b)
        wf = ws.update_workflow(wf.id, {"route": {"kind": "secretary"}}, org.admin_a)
        assert wf.assignee.refers_to_user(org.secretary_a.id)

    def test_decided_once(self, org, routed):
        _, req = routed
        approval_service.decide_request(req.id, "approved", org.admin_b)
        with pytest.raises(InvalidStateError):
            approval_service.decide_request(req.id, "rejected", org.admin_b)

    def test_source_admin_cannot_decide(self, org, routed):
        _, req = routed
        with pytest.raises(AccessDeniedError):
            approval_service.decide_request(req.id, "approved", org.admin_a)

    def test_staff_of_target_cannot_decide(self, org, routed):
        _, req = routed
        with pytest.raises(AccessDeniedError):
            approval_service.decide_request(req.id, "approved", org.dave)

    def test_master_can_decide(self, org, routed):
        _, req = routed
        assert approval_service.decide_request(req.id, "approved", org.master).status == "approved"

    def test_unknown_decision(self, org, routed):
        _, req = routed
        with pytest.raises(ValidationError):
            approval_service.decide_request(req.id, "maybe", org.admin_b)

    def test_approval_applies_progress_accrued_while_pending(self, org, routed, factories):
        wf, req = routed
        factories.action(wf, status="completed")
        db.session.commit()
        approval_service.decide_request(req.id, "approved", org.admin_b)
        wf = db.session.get(Workflow, wf.id)
        assert wf.progress == 100
        assert wf.status == "ready_for_review"


class TestDecideActionRequest:

    def test_approve_action_assignment(self, org, factories):
        wf = factories.workflow(org.acme, org.admin_a, AssignmentTarget.user(org.alice.id, "Alice Legal"))
        db.session.commit()
        action = action_service.create_action(
            {"workflow_id": wf.id, "title": "Countersign", "assigned_to": {"type": "user", "id": org.dave.id}},
            org.admin_a,
        )
        req = ApprovalRequest.query.one()
        approval_service.decide_request(req.id, "approved", org.admin_b)

        action = db.session.get(Action, action.id)
        assert action.assignee.refers_to_user(org.dave.id)
        assert action.approval_request_id == req.id
        assert action.approval_status is None
        assert action.is_cross_company is True
        assert Notification.query.filter_by(user_id=org.dave.id, type="action_assigned").count() == 1


class TestListRequests:

    def test_scoped_to_own_company(self, org, routed):
        assert len(approval_service.list_requests(org.admin_a)) == 1
        assert len(approval_service.list_requests(org.admin_b)) == 1
        assert len(approval_service.list_requests(org.master, status="pending")) == 1
        assert approval_service.list_requests(org.master, status="approved") == []

    def test_outsider_company_sees_nothing(self, org, routed, factories):
        initech = factories.company("Initech", "initech")
        peter = factories.user(initech, "peter@initech.test", "Peter")
        db.session.commit()
        assert approval_service.list_requests(peter) == []
