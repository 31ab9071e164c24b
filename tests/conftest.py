"""
Shared pytest fixtures for the document routing core test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - org: two companies with departments and users in every role
"""

from types import SimpleNamespace

import pytest

from docflow import create_app
from docflow.models import db as _db
from docflow.models.org import (
    ROLE_COMPANY_ADMIN,
    ROLE_DEPARTMENT_HEAD,
    ROLE_MASTER,
    ROLE_SECRETARY,
    ROLE_STAFF,
    Company,
    Department,
    User,
)
from docflow.models.workflow import Action, Goal, RoutingHistoryEntry, Workflow
from docflow.services import realtime


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        realtime.clear_published()
        yield
        realtime.clear_published()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


# ── ORM helper factories ─────────────────────────────────────────────────


def make_company(name: str, slug: str) -> Company:
    c = Company(name=name, slug=slug)
    _db.session.add(c)
    _db.session.flush()
    return c


def make_department(company: Company, name: str) -> Department:
    d = Department(company_id=company.id, name=name)
    _db.session.add(d)
    _db.session.flush()
    return d


def make_user(company: Company | None, email: str, full_name: str,
              role: str = ROLE_STAFF, departments=()) -> User:
    u = User(
        company_id=company.id if company else None,
        email=email,
        full_name=full_name,
        role=role,
    )
    u.departments = list(departments)
    _db.session.add(u)
    _db.session.flush()
    return u


@pytest.fixture()
def org():
    """Acme (A) and Globex (B) with one user per role.

    Acme:   Legal, Finance departments; admin, secretary, finance head,
            alice (Legal), bob (Finance), carol (no department)
    Globex: Operations department; admin, dave (Operations)
    Master: platform-wide, no company
    """
    acme = make_company("Acme", "acme")
    globex = make_company("Globex", "globex")

    legal = make_department(acme, "Legal")
    finance = make_department(acme, "Finance")
    ops = make_department(globex, "Operations")

    ns = SimpleNamespace(
        acme=acme, globex=globex, legal=legal, finance=finance, ops=ops,
        admin_a=make_user(acme, "admin@acme.test", "Ada Admin", ROLE_COMPANY_ADMIN),
        secretary_a=make_user(acme, "sec@acme.test", "Sam Secretary", ROLE_SECRETARY),
        head_a=make_user(acme, "head@acme.test", "Hal Head", ROLE_DEPARTMENT_HEAD, [finance]),
        alice=make_user(acme, "alice@acme.test", "Alice Legal", departments=[legal]),
        bob=make_user(acme, "bob@acme.test", "Bob Finance", departments=[finance]),
        carol=make_user(acme, "carol@acme.test", "Carol Plain"),
        admin_b=make_user(globex, "admin@globex.test", "Gus Admin", ROLE_COMPANY_ADMIN),
        dave=make_user(globex, "dave@globex.test", "Dave Ops", departments=[ops]),
        master=make_user(None, "root@platform.test", "Max Master", ROLE_MASTER),
    )
    _db.session.commit()
    return ns


def make_workflow(company: Company, creator: User | None, assignee=None, *,
                  status: str = "assigned", progress: int = 0, title: str = "Lease renewal") -> Workflow:
    wf = Workflow(
        company_id=company.id,
        title=title,
        workflow_type="document",
        status=status,
        progress=progress,
        created_by=creator.id if creator else None,
    )
    wf.assignee = assignee
    _db.session.add(wf)
    _db.session.flush()
    return wf


def make_entry(workflow, from_target, to_target, *, routing_type: str = "manual") -> RoutingHistoryEntry:
    entry = RoutingHistoryEntry(
        workflow_id=workflow.id,
        sequence=workflow.routing_count + 1,
        routing_type=routing_type,
    )
    entry.from_target = from_target
    entry.to_target = to_target
    workflow.routing_entries.append(entry)
    _db.session.flush()
    return entry


def make_action(workflow, assignee=None, *, status: str = "pending", title: str = "Sign annex") -> Action:
    action = Action(
        workflow_id=workflow.id,
        company_id=workflow.company_id,
        title=title,
        status=status,
    )
    action.assignee = assignee
    _db.session.add(action)
    _db.session.flush()
    return action


def make_goal(workflow, creator: User | None, *, assigned_to_type: str = "user",
              assigned_to_id=None, assigned_to_name: str = "Someone",
              assigned_users=None, status: str = "pending") -> Goal:
    goal = Goal(
        workflow_id=workflow.id,
        title="Archive originals",
        status=status,
        assigned_to_type=assigned_to_type,
        assigned_to_id=str(assigned_to_id) if assigned_to_id is not None else None,
        assigned_to_name=assigned_to_name,
        assigned_users=assigned_users or [],
        created_by=creator.id if creator else None,
    )
    _db.session.add(goal)
    _db.session.flush()
    return goal


@pytest.fixture()
def factories():
    """ORM helper factories (bypass the services to set arbitrary state)."""
    return SimpleNamespace(
        workflow=make_workflow,
        entry=make_entry,
        action=make_action,
        goal=make_goal,
        user=make_user,
        department=make_department,
        company=make_company,
    )
