"""Tests for the goal visibility resolver."""

from docflow.models.assignment import AssignmentTarget
from docflow.services.goal_visibility import can_view, goal_recipient_ids, participant_user_ids


def _user(u):
    return AssignmentTarget.user(u.id, u.full_name)


class TestCanView:

    def test_creator_sees_goal(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, _user(org.bob), status="completed")
        goal = factories.goal(wf, org.carol, assigned_to_id=org.bob.id)
        assert can_view(goal, wf, org.carol)

    def test_all_participants_requires_participation(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, _user(org.bob), status="completed")
        factories.entry(wf, _user(org.alice), _user(org.bob))
        goal = factories.goal(wf, org.alice, assigned_to_type="all_participants",
                              assigned_to_name="All Participants")
        assert can_view(goal, wf, org.bob)
        assert not can_view(goal, wf, org.carol)

    def test_direct_assignee(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, _user(org.alice), status="ready_for_review")
        goal = factories.goal(wf, org.alice, assigned_to_id=org.carol.id, assigned_to_name="Carol Plain")
        assert can_view(goal, wf, org.carol)
        assert not can_view(goal, wf, org.bob)

    def test_overlay_user_entry(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, _user(org.alice), status="completed")
        goal = factories.goal(
            wf, org.alice, assigned_to_id=org.alice.id,
            assigned_users=[{"type": "user", "id": str(org.carol.id), "name": "Carol Plain"}],
        )
        assert can_view(goal, wf, org.carol)

    def test_overlay_department_by_name(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, _user(org.alice), status="completed")
        goal = factories.goal(
            wf, org.alice, assigned_to_id=org.alice.id,
            assigned_users=[{"type": "department", "id": "legacy-7", "name": "FINANCE"}],
        )
        assert can_view(goal, wf, org.bob)
        assert not can_view(goal, wf, org.carol)

    def test_department_goal_not_visible_through_primary_type(self, org, factories):
        """A department primary assignee is not one of the four visibility rules."""
        wf = factories.workflow(org.acme, org.alice, _user(org.alice), status="completed")
        goal = factories.goal(wf, org.alice, assigned_to_type="department",
                              assigned_to_id=org.finance.id, assigned_to_name="Finance")
        assert not can_view(goal, wf, org.bob)


class TestRecipients:

    def test_participants_include_department_members(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, AssignmentTarget.department(org.finance.id, "Finance"))
        ids = participant_user_ids(wf)
        assert ids[0] == org.alice.id
        assert set(ids) == {org.alice.id, org.bob.id, org.head_a.id}

    def test_goal_recipients_merge_overlay(self, org, factories):
        wf = factories.workflow(org.acme, org.alice, _user(org.alice), status="completed")
        goal = factories.goal(
            wf, org.alice, assigned_to_id=org.carol.id,
            assigned_users=[{"type": "user", "id": str(org.carol.id)}, {"type": "user", "id": str(org.bob.id)}],
        )
        assert goal_recipient_ids(goal, wf) == [org.carol.id, org.bob.id]
