"""Tests for action orchestration and progress propagation.

Coverage:
  1. create_action copies the workflow company and recomputes progress
  2. Status changes roll up: 2/4 → in_progress, 4/4 → ready_for_review
  3. Completion guard (outsider denied, Master bypass) and metadata stamps
  4. Non-critical failures: notification dispatch and progress propagation
  5. Cross-company action assignment
"""

from unittest.mock import patch

import pytest

from docflow.core.exceptions import (
    AccessDeniedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from docflow.models import db
from docflow.models.approval import ApprovalRequest
from docflow.models.assignment import AssignmentTarget
from docflow.models.notification import Notification
from docflow.models.workflow import Action
from docflow.services import action_service, realtime
from docflow.services.notification import NotificationService


def _user(u):
    return AssignmentTarget.user(u.id, u.full_name)


@pytest.fixture()
def workflow(org, factories):
    wf = factories.workflow(org.acme, org.carol, _user(org.alice))
    db.session.commit()
    return wf


def _new_action(org, workflow, actor=None, **overrides):
    data = {"workflow_id": workflow.id, "title": "Sign annex",
            "assigned_to": {"type": "user", "id": org.alice.id}}
    data.update(overrides)
    return action_service.create_action(data, actor or org.carol)


class TestCreateAction:

    def test_copies_company_and_resolves_name(self, org, workflow):
        action = _new_action(org, workflow)
        assert action.company_id == org.acme.id
        assert action.status == "pending"
        assert action.assignee == AssignmentTarget.user(org.alice.id, "Alice Legal")
        assert Notification.query.filter_by(user_id=org.alice.id, type="action_assigned").count() == 1

    def test_adding_action_recomputes_progress(self, org, workflow, factories):
        factories.action(workflow, status="completed")
        db.session.commit()
        action_service.refresh_progress(workflow.id)
        assert workflow.progress == 100

        _new_action(org, workflow)
        db.session.refresh(workflow)
        assert workflow.progress == 50

    def test_incomplete_assignee_rejected(self, org, workflow):
        with pytest.raises(ValidationError):
            _new_action(org, workflow, assigned_to={"id": org.alice.id})
        assert Action.query.count() == 0

    def test_unassigned_action_allowed(self, org, workflow):
        action = _new_action(org, workflow, assigned_to=None)
        assert action.assignee is None

    def test_unknown_workflow(self, org):
        with pytest.raises(NotFoundError):
            action_service.create_action({"workflow_id": 999, "title": "x"}, org.alice)

    def test_other_company_denied(self, org, workflow):
        with pytest.raises(AccessDeniedError):
            _new_action(org, workflow, actor=org.dave)

    def test_filed_workflow_rejects_new_actions(self, org, workflow):
        workflow.status = "completed"
        workflow.filed_at = workflow.created_at
        db.session.commit()
        with pytest.raises(InvalidStateError):
            _new_action(org, workflow)

    def test_staff_cross_company_assignment_denied(self, org, workflow):
        with pytest.raises(AccessDeniedError):
            _new_action(org, workflow, assigned_to={"type": "user", "id": org.dave.id})
        assert Action.query.count() == 0

    def test_admin_cross_company_assignment_gated(self, org, workflow):
        action = _new_action(org, workflow, actor=org.admin_a, assigned_to={"type": "user", "id": org.dave.id})
        assert action.status == "pending"
        assert action.approval_status == "pending"
        assert action.assignee is None
        req = ApprovalRequest.query.one()
        assert req.request_type == "action_assignment"
        assert action.approval_request_id == req.id


class TestProgressRollUp:

    def _four(self, org, workflow):
        return [_new_action(org, workflow, title=f"Step {i}") for i in range(4)]

    def test_two_of_four_completed(self, org, workflow):
        """Scenario: 4 actions, 2 completed → 50%, assigned → in_progress."""
        actions = self._four(org, workflow)
        for a in actions[:2]:
            action_service.update_action(a.id, {"status": "completed"}, org.alice)
        db.session.refresh(workflow)
        assert workflow.progress == 50
        assert workflow.status == "in_progress"

    def test_all_completed_ready_for_review(self, org, workflow):
        """Scenario: all 4 completed, in_progress → 100%, ready_for_review."""
        actions = self._four(org, workflow)
        for a in actions:
            action_service.update_action(a.id, {"status": "completed"}, org.alice)
        db.session.refresh(workflow)
        assert workflow.progress == 100
        assert workflow.status == "ready_for_review"

    def test_recompute_is_idempotent(self, org, workflow):
        a = _new_action(org, workflow)
        action_service.update_action(a.id, {"status": "completed"}, org.alice)
        version = db.session.get(type(workflow), workflow.id).version
        assert action_service.refresh_progress(workflow.id) is True
        db.session.refresh(workflow)
        assert workflow.version == version

    def test_progress_failure_does_not_fail_update(self, org, workflow):
        a = _new_action(org, workflow)
        with patch.object(action_service, "_recompute", side_effect=RuntimeError("db gone")):
            updated = action_service.update_action(a.id, {"status": "completed"}, org.alice)
        assert updated.status == "completed"
        assert db.session.get(Action, a.id).status == "completed"

    def test_pending_approval_tracks_progress_only(self, org, workflow):
        a = _new_action(org, workflow)
        workflow.status, workflow.approval_status = "pending", "pending"
        db.session.commit()
        action_service.update_action(a.id, {"status": "completed"}, org.alice)
        db.session.refresh(workflow)
        assert workflow.progress == 100
        assert workflow.status == "pending"

    def test_workflow_update_broadcast(self, org, workflow):
        a = _new_action(org, workflow)
        realtime.clear_published()
        action_service.update_action(a.id, {"status": "completed"}, org.alice)
        events = [m["event"] for m in realtime.published_messages(realtime.workflow_channel(workflow.id))]
        assert "workflowUpdated" in events


class TestUpdateAction:

    def test_completion_stamps_and_notifies_creator(self, org, workflow):
        a = _new_action(org, workflow)
        a = action_service.update_action(a.id, {"status": "completed", "resolution_notes": "signed"}, org.alice)
        assert a.completed_by == org.alice.id
        assert a.completed_at is not None
        assert a.resolution_notes == "signed"
        assert Notification.query.filter_by(user_id=org.carol.id, type="action_completed").count() == 1

    def test_outsider_cannot_complete(self, org, workflow):
        a = _new_action(org, workflow, assigned_to={"type": "department", "id": str(org.legal.id)})
        with pytest.raises(AccessDeniedError):
            action_service.update_action(a.id, {"status": "completed"}, org.bob)
        assert db.session.get(Action, a.id).status == "pending"

    def test_department_member_completes(self, org, workflow):
        a = _new_action(org, workflow, assigned_to={"type": "department", "id": str(org.finance.id)})
        assert action_service.update_action(a.id, {"status": "completed"}, org.bob).status == "completed"

    def test_master_and_system_bypass_guard(self, org, workflow):
        a = _new_action(org, workflow)
        b = _new_action(org, workflow)
        assert action_service.update_action(a.id, {"status": "completed"}, org.master).status == "completed"
        assert action_service.update_action(b.id, {"status": "completed"}, None).status == "completed"

    def test_other_company_cannot_update(self, org, workflow):
        a = _new_action(org, workflow)
        with pytest.raises(AccessDeniedError):
            action_service.update_action(a.id, {"title": "hijack"}, org.dave)

    def test_document_uploaded_metadata(self, org, workflow):
        a = _new_action(org, workflow, type="document_upload")
        a = action_service.update_action(
            a.id, {"status": "document_uploaded", "uploaded_document_name": "annex.pdf"}, org.alice,
        )
        assert a.uploaded_document_name == "annex.pdf"
        assert a.uploaded_by == org.alice.id
        assert a.uploaded_at is not None

    def test_response_received_metadata(self, org, workflow):
        a = _new_action(org, workflow, type="request_response")
        a = action_service.update_action(a.id, {"status": "response_received", "response_text": "ok"}, org.alice)
        assert (a.response_text, a.responded_by) == ("ok", org.alice.id)

    def test_invalid_status(self, org, workflow):
        a = _new_action(org, workflow)
        with pytest.raises(ValidationError):
            action_service.update_action(a.id, {"status": "done"}, org.alice)

    def test_reopen_clears_completion(self, org, workflow):
        a = _new_action(org, workflow)
        action_service.update_action(a.id, {"status": "completed"}, org.alice)
        a = action_service.update_action(a.id, {"status": "in_progress"}, org.alice)
        assert a.completed_at is None and a.completed_by is None

    def test_notification_failure_is_non_critical(self, org, workflow):
        a = _new_action(org, workflow)
        with patch.object(NotificationService, "notify", side_effect=RuntimeError("smtp down")):
            updated = action_service.update_action(a.id, {"status": "completed"}, org.alice)
        assert updated.status == "completed"
        assert Notification.query.filter_by(type="action_completed").count() == 0

    def test_complete_with_gated_reassignment_refused(self, org, workflow):
        a = _new_action(org, workflow)
        with pytest.raises(InvalidStateError):
            action_service.update_action(
                a.id, {"status": "completed", "assigned_to": {"type": "user", "id": org.dave.id}}, org.admin_a,
            )
        a = db.session.get(Action, a.id)
        assert a.status == "pending"
        assert a.approval_status is None
        assert a.completed_at is None and a.completed_by is None
        assert a.assignee.refers_to_user(org.alice.id)
        assert ApprovalRequest.query.count() == 0

    def test_reassign_and_complete_within_company(self, org, workflow):
        a = _new_action(org, workflow)
        a = action_service.update_action(
            a.id, {"status": "completed", "assigned_to": {"type": "user", "id": org.bob.id}}, org.bob,
        )
        assert a.status == "completed"
        assert a.completed_by == org.bob.id
        assert a.assignee.refers_to_user(org.bob.id)

    def test_reassign_within_company(self, org, workflow):
        a = _new_action(org, workflow)
        a = action_service.update_action(a.id, {"assigned_to": {"type": "user", "id": org.bob.id}}, org.alice)
        assert a.assignee.refers_to_user(org.bob.id)
        assert Notification.query.filter_by(user_id=org.bob.id, type="action_assigned").count() == 1


class TestFindAction:

    def test_find(self, org, workflow):
        a = _new_action(org, workflow)
        assert action_service.find_action(a.id, org.bob).id == a.id

    def test_isolated(self, org, workflow):
        a = _new_action(org, workflow)
        with pytest.raises(AccessDeniedError):
            action_service.find_action(a.id, org.dave)
