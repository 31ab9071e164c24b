"""Tests for the shared access policy and the action authorization guard.

Coverage:
  1. Privilege ordering and the single capability check
  2. Company isolation (staff denied, Master / system allowed)
  3. Department matching by id, by case-insensitive name, legacy name-as-id
  4. Workflow participation (creator, assignee, routing history parties)
  5. can_complete rules + authorization closure over routing history
"""

import pytest

from docflow.core.exceptions import AccessDeniedError
from docflow.models import db
from docflow.models.assignment import AssignmentTarget
from docflow.services.access_policy import (
    Privilege,
    ensure_company_access,
    has_privilege,
    is_workflow_participant,
    matches_department,
    privilege_of,
)
from docflow.services.action_guard import can_complete, ensure_can_complete, ensure_can_read


def _user(u):
    return AssignmentTarget.user(u.id, u.full_name)


def _dept(d):
    return AssignmentTarget.department(d.id, d.name)


class TestPrivilege:

    def test_levels_are_ordered(self, org):
        assert privilege_of(org.alice) is Privilege.STAFF
        assert privilege_of(org.secretary_a) is Privilege.STAFF
        assert privilege_of(org.admin_a) is Privilege.COMPANY_ADMIN
        assert privilege_of(org.master) is Privilege.MASTER
        assert privilege_of(None) is Privilege.SYSTEM

    def test_has_privilege_is_at_least(self, org):
        assert has_privilege(org.master, Privilege.COMPANY_ADMIN)
        assert has_privilege(None, Privilege.MASTER)
        assert not has_privilege(org.admin_a, Privilege.MASTER)
        assert not has_privilege(org.bob, Privilege.COMPANY_ADMIN)


class TestCompanyIsolation:

    def test_staff_of_other_company_denied(self, org):
        with pytest.raises(AccessDeniedError):
            ensure_company_access(org.dave, org.acme.id)

    def test_company_admin_cannot_cross_either(self, org):
        with pytest.raises(AccessDeniedError):
            ensure_company_access(org.admin_b, org.acme.id)

    def test_same_company_allowed(self, org):
        ensure_company_access(org.alice, org.acme.id)

    def test_master_and_system_override(self, org):
        ensure_company_access(org.master, org.acme.id)
        ensure_company_access(None, org.globex.id)


class TestDepartmentMatching:

    def test_by_id(self, org):
        assert matches_department(org.alice, org.legal.id)
        assert not matches_department(org.alice, org.finance.id)

    def test_by_name_case_insensitive(self, org):
        assert matches_department(org.bob, department_id="999", department_name="  fInAnCe ")

    def test_name_stored_in_id_slot(self, org):
        assert matches_department(org.bob, department_id="FINANCE")

    def test_no_departments(self, org):
        assert not matches_department(org.carol, org.legal.id, "Legal")


class TestParticipation:

    def test_creator_is_participant(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.alice))
        assert is_workflow_participant(wf, org.carol)

    def test_assignee_user_is_participant(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.alice))
        assert is_workflow_participant(wf, org.alice)
        assert not is_workflow_participant(wf, org.bob)

    def test_assigned_department_member_is_participant(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _dept(org.finance))
        assert is_workflow_participant(wf, org.bob)

    def test_routing_history_parties_are_participants(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.secretary_a))
        factories.entry(wf, _user(org.alice), _dept(org.finance))
        factories.entry(wf, _dept(org.finance), _user(org.secretary_a))
        assert is_workflow_participant(wf, org.alice)   # from party
        assert is_workflow_participant(wf, org.head_a)  # Finance member via history

    def test_filed_system_target_is_nobody(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.alice), status="completed")
        factories.entry(wf, _user(org.alice), AssignmentTarget.filed(), routing_type="filed")
        assert not is_workflow_participant(wf, org.bob)


class TestCanComplete:

    def test_direct_assignee(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.secretary_a))
        action = factories.action(wf, _user(org.alice))
        assert can_complete(action, wf, org.alice)

    def test_department_member(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.secretary_a))
        action = factories.action(wf, _dept(org.finance))
        assert can_complete(action, wf, org.bob)
        assert can_complete(action, wf, org.head_a)

    def test_workflow_participant(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.secretary_a))
        factories.entry(wf, _user(org.alice), _user(org.secretary_a))
        action = factories.action(wf, _user(org.bob))
        assert can_complete(action, wf, org.alice)

    def test_outsider_cannot_complete(self, org, factories):
        """Not assignee, not creator, not in history, different department."""
        wf = factories.workflow(org.acme, org.carol, _user(org.secretary_a))
        factories.entry(wf, _user(org.carol), _user(org.secretary_a))
        action = factories.action(wf, _dept(org.legal))
        assert can_complete(action, wf, org.bob) is False
        with pytest.raises(AccessDeniedError):
            ensure_can_complete(action, wf, org.bob)

    def test_other_company_raises_before_rules(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.alice))
        action = factories.action(wf, _user(org.dave))
        with pytest.raises(AccessDeniedError):
            can_complete(action, wf, org.dave)

    def test_master_bypasses_rules(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.alice))
        action = factories.action(wf, _user(org.alice))
        ensure_can_complete(action, wf, org.master)
        ensure_can_complete(action, wf, None)

    def test_authorization_closure_over_routing_history(self, org, factories):
        """Any user/department party of the history may complete matching actions."""
        wf = factories.workflow(org.acme, org.admin_a, _user(org.secretary_a))
        factories.entry(wf, _user(org.admin_a), _dept(org.legal))
        factories.entry(wf, _dept(org.legal), _user(org.bob))
        factories.entry(wf, _user(org.bob), _user(org.secretary_a))
        db.session.commit()

        for party, actor in ((_dept(org.legal), org.alice), (_user(org.bob), org.bob)):
            action = factories.action(wf, party)
            assert can_complete(action, wf, actor)


class TestReadAccess:

    def test_same_company_reads_any_action(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.alice))
        action = factories.action(wf, _user(org.alice))
        ensure_can_read(action, wf, org.bob)

    def test_other_company_cannot_read(self, org, factories):
        wf = factories.workflow(org.acme, org.carol, _user(org.alice))
        action = factories.action(wf, _user(org.alice))
        with pytest.raises(AccessDeniedError):
            ensure_can_read(action, wf, org.dave)
