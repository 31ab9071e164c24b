"""Tests for the cross-company approval gate."""

import pytest

from docflow.core.exceptions import AccessDeniedError
from docflow.models.approval import ApprovalRequest
from docflow.models.assignment import AssignmentTarget
from docflow.services.cross_company_gate import APPLY, REQUEST_APPROVAL, evaluate, gate, notify_reviewers
from docflow.services.side_effects import Effects


def _user(u):
    return AssignmentTarget.user(u.id, u.full_name)


class TestEvaluate:

    @pytest.mark.parametrize("source,target,expected", [
        (1, 2, True),
        (1, 1, False),
        (None, 2, False),
        (1, None, False),
        (None, None, False),
    ])
    def test_cross_company_iff_both_set_and_different(self, source, target, expected):
        assert evaluate(source, target).is_cross_company is expected


class TestGate:

    def test_same_company_applies(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, _user(org.alice))
        decision = gate(wf, _user(org.bob), org.alice, request_type="workflow_routing",
                        source_company_id=org.acme.id, target_company_id=org.acme.id)
        assert decision.outcome == APPLY
        assert decision.approval_request is None
        assert ApprovalRequest.query.count() == 0

    def test_non_privileged_cross_company_denied(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, _user(org.alice))
        with pytest.raises(AccessDeniedError):
            gate(wf, _user(org.dave), org.alice, request_type="workflow_routing",
                 source_company_id=org.acme.id, target_company_id=org.globex.id)
        assert wf.status == "assigned"

    def test_privileged_cross_company_requests_approval(self, org, factories):
        wf = factories.workflow(org.acme, org.admin_a, _user(org.alice), status="in_progress", progress=50)
        decision = gate(wf, _user(org.dave), org.admin_a, request_type="workflow_routing",
                        source_company_id=org.acme.id, target_company_id=org.globex.id, notes="please sign")

        assert decision.outcome == REQUEST_APPROVAL
        req = decision.approval_request
        assert req.source_company_id == org.acme.id
        assert req.target_company_id == org.globex.id
        assert req.source_company_name == "Acme"
        assert req.prior_status == "in_progress"
        assert req.proposed_target == AssignmentTarget.user(org.dave.id, "Dave Ops")
        assert req.routing_notes == "please sign"
        assert wf.status == "pending"
        assert wf.approval_status == "pending"
        # assignment itself is not applied
        assert wf.assignee.refers_to_user(org.alice.id)

    def test_action_request_links_action(self, org, factories):
        wf = factories.workflow(org.acme, org.admin_a, _user(org.alice))
        action = factories.action(wf)
        decision = gate(action, _user(org.dave), org.master, request_type="action_assignment",
                        source_company_id=org.acme.id, target_company_id=org.globex.id)
        req = decision.approval_request
        assert req.action_id == action.id
        assert req.workflow_id == wf.id
        assert action.approval_request_id == req.id
        assert action.status == "pending" and action.approval_status == "pending"

    def test_reviewers_are_target_company_admins(self, org, factories):
        wf = factories.workflow(org.acme, org.admin_a, _user(org.alice))
        decision = gate(wf, _user(org.dave), org.admin_a, request_type="workflow_routing",
                        source_company_id=org.acme.id, target_company_id=org.globex.id)
        effects = Effects(org.admin_a.id)
        notify_reviewers(effects, decision.approval_request)
        assert len(effects) == 1
