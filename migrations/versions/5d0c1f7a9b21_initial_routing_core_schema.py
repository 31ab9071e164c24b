"""initial_routing_core_schema

Create the organisation tables read by the routing core and the
workflow / routing history / action / goal / approval / notification /
activity tables it owns.

Revision ID: 5d0c1f7a9b21
Revises:
Create Date: 2026-10-12 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5d0c1f7a9b21"
down_revision = None
branch_labels = None
depends_on = None


def _target_columns(prefix, nullable=True):
    return [
        sa.Column(f"{prefix}_type", sa.String(length=20), nullable=nullable),
        sa.Column(f"{prefix}_id", sa.String(length=64), nullable=nullable),
        sa.Column(f"{prefix}_name", sa.String(length=255), nullable=True),
    ]


def _company_context_columns(with_names=True, fk=False):
    def _company_id(name):
        if fk:
            return sa.Column(name, sa.Integer(), sa.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
        return sa.Column(name, sa.Integer(), nullable=True)

    cols = [_company_id("source_company_id")]
    if with_names:
        cols.append(sa.Column("source_company_name", sa.String(length=200), nullable=True))
    cols.append(_company_id("target_company_id"))
    if with_names:
        cols.append(sa.Column("target_company_name", sa.String(length=200), nullable=True))
    cols.append(sa.Column("is_cross_company", sa.Boolean(), nullable=False, server_default=sa.false()))
    return cols


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    # ── Organisation ─────────────────────────────────────────────────────
    if "companies" not in existing_tables:
        op.create_table(
            "companies",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False, unique=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )

    if "departments" not in existing_tables:
        op.create_table(
            "departments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("company_id", "name", name="uq_department_company_name"),
        )
        op.create_index("ix_departments_company_id", "departments", ["company_id"])

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("role", sa.String(length=50), nullable=False, server_default="Staff"),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("company_id", "email", name="uq_user_company_email"),
        )
        op.create_index("ix_users_company_id", "users", ["company_id"])

    if "user_departments" not in existing_tables:
        op.create_table(
            "user_departments",
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column(
                "department_id", sa.Integer(),
                sa.ForeignKey("departments.id", ondelete="CASCADE"), primary_key=True,
            ),
        )

    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False, server_default="document"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_documents_company_id", "documents", ["company_id"])

    # ── Workflows ────────────────────────────────────────────────────────
    if "workflows" not in existing_tables:
        op.create_table(
            "workflows",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="SET NULL"), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("workflow_type", sa.String(length=20), nullable=False, server_default="document"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="assigned"),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("due_date", sa.Date(), nullable=True),
            *_target_columns("assignee"),
            sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            *_company_context_columns(fk=True),
            sa.Column("approval_status", sa.String(length=20), nullable=True),
            sa.Column("filed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_workflows_company_id", "workflows", ["company_id"])
        op.create_index("ix_workflows_company_status", "workflows", ["company_id", "status"])
        op.create_index("ix_workflows_assignee", "workflows", ["assignee_type", "assignee_id"])

    if "workflow_routing_entries" not in existing_tables:
        op.create_table(
            "workflow_routing_entries",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("workflow_id", sa.Integer(), sa.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False),
            *_target_columns("from"),
            sa.Column("to_type", sa.String(length=20), nullable=False),
            sa.Column("to_id", sa.String(length=64), nullable=False),
            sa.Column("to_name", sa.String(length=255), nullable=True),
            sa.Column("routed_by", sa.String(length=64), nullable=False, server_default="system"),
            sa.Column("routed_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("routing_type", sa.String(length=20), nullable=False, server_default="manual"),
            sa.Column("route_kind", sa.String(length=30), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_company_context_columns(with_names=False),
            sa.UniqueConstraint("workflow_id", "sequence", name="uq_routing_entry_sequence"),
        )
        op.create_index("ix_workflow_routing_entries_workflow_id", "workflow_routing_entries", ["workflow_id"])

    if "workflow_actions" not in existing_tables:
        op.create_table(
            "workflow_actions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("workflow_id", sa.Integer(), sa.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("action_type", sa.String(length=30), nullable=False, server_default="regular"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("due_date", sa.Date(), nullable=True),
            *_target_columns("assignee"),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("resolution_notes", sa.Text(), nullable=True),
            sa.Column("uploaded_document_name", sa.String(length=300), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("uploaded_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("response_text", sa.Text(), nullable=True),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("responded_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            *_company_context_columns(),
            sa.Column("approval_status", sa.String(length=20), nullable=True),
            sa.Column("approval_request_id", sa.Integer(), nullable=True),
            sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_workflow_actions_workflow_id", "workflow_actions", ["workflow_id"])
        op.create_index("ix_workflow_actions_company_id", "workflow_actions", ["company_id"])
        op.create_index("ix_workflow_actions_assignee", "workflow_actions", ["assignee_type", "assignee_id"])

    if "workflow_goals" not in existing_tables:
        op.create_table(
            "workflow_goals",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("workflow_id", sa.Integer(), sa.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("assigned_to_type", sa.String(length=20), nullable=False),
            sa.Column("assigned_to_id", sa.String(length=64), nullable=True),
            sa.Column("assigned_to_name", sa.String(length=255), nullable=False),
            sa.Column("assigned_users", sa.JSON(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("achieved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("achieved_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("achievement_notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_workflow_goals_workflow_id", "workflow_goals", ["workflow_id"])

    # ── Approval, notification, activity ─────────────────────────────────
    if "approval_requests" not in existing_tables:
        op.create_table(
            "approval_requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("request_type", sa.String(length=30), nullable=False),
            sa.Column("workflow_id", sa.Integer(), sa.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=True),
            sa.Column(
                "action_id", sa.Integer(),
                sa.ForeignKey("workflow_actions.id", ondelete="CASCADE"), nullable=True,
            ),
            sa.Column(
                "source_company_id", sa.Integer(),
                sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("source_company_name", sa.String(length=200), nullable=True),
            sa.Column(
                "target_company_id", sa.Integer(),
                sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("target_company_name", sa.String(length=200), nullable=True),
            sa.Column("requested_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
            *_target_columns("proposed", nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("prior_status", sa.String(length=30), nullable=True),
            sa.Column("subject_title", sa.String(length=300), nullable=True),
            sa.Column("routing_notes", sa.Text(), nullable=True),
            sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
        )
        op.create_index("ix_approval_requests_workflow_id", "approval_requests", ["workflow_id"])
        op.create_index("ix_approval_requests_action_id", "approval_requests", ["action_id"])
        op.create_index("ix_approval_requests_target_status", "approval_requests", ["target_company_id", "status"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
            sa.Column("type", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("resource_type", sa.String(length=30), nullable=True),
            sa.Column("resource_id", sa.Integer(), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_company_id", "notifications", ["company_id"])

    if "activities" not in existing_tables:
        op.create_table(
            "activities",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True),
            sa.Column("activity_type", sa.String(length=60), nullable=False),
            sa.Column("resource_type", sa.String(length=30), nullable=True),
            sa.Column("resource_id", sa.String(length=36), nullable=True),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_activities_user_id", "activities", ["user_id"])
        op.create_index("idx_activity_resource", "activities", ["resource_type", "resource_id"])
        op.create_index("idx_activity_company_ts", "activities", ["company_id", "created_at"])


def downgrade():
    for table in (
        "activities",
        "notifications",
        "approval_requests",
        "workflow_goals",
        "workflow_actions",
        "workflow_routing_entries",
        "workflows",
        "documents",
        "user_departments",
        "users",
        "departments",
        "companies",
    ):
        op.drop_table(table)
