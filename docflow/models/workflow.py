"""
Document Routing Core
Workflow domain models.

Models:
    - Workflow: a routed unit of work (folder or document) with derived
      progress/status and an optimistic ``version`` lock.
    - RoutingHistoryEntry: append-only hop log keyed by (workflow_id, sequence).
    - Action: a task under a workflow that contributes to its progress.
    - Goal: post-completion follow-up visible to resolved participants.
"""

from datetime import datetime, timezone

from docflow.models import db
from docflow.models.assignment import target_dict, target_property

# ── Constants ────────────────────────────────────────────────────────────────

WORKFLOW_TYPES = frozenset({"folder", "document"})

WORKFLOW_STATUSES = frozenset({
    "assigned",
    "in_progress",
    "ready_for_review",
    "completed",
    "pending",          # awaiting a cross-company approval decision
})

APPROVAL_STATUSES = frozenset({"pending", "approved", "rejected"})

ROUTING_TYPES = frozenset({"manual", "filed", "cross_company"})

ROUTE_KINDS = frozenset({
    "secretary",
    "department",
    "individual",
    "department_head",
    "original_sender",
    "file_documents",
})

ACTION_TYPES = frozenset({"regular", "document_upload", "request_response"})

ACTION_STATUSES = frozenset({
    "pending",
    "in_progress",
    "document_uploaded",
    "response_received",
    "completed",
})

GOAL_STATUSES = frozenset({"pending", "in_progress", "achieved"})

GOAL_ASSIGNEE_TYPES = frozenset({"user", "department", "all_participants"})


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. Workflow
# ═════════════════════════════════════════════════════════════════════════════


class Workflow(db.Model):
    """
    A unit of routed work.

    Business rules:
    - ``progress`` is derived from the action set, never written by clients.
    - ``is_cross_company`` is true iff source and target company ids are both
      set and differ (kept in sync by ``sync_cross_company``).
    - ``filed_at`` is only stamped on a ``completed`` workflow and marks it
      terminal.
    - ``version`` is the SQLAlchemy version counter; a stale flush raises
      StaleDataError.
    """

    __tablename__ = "workflows"
    __table_args__ = (
        db.Index("ix_workflows_company_status", "company_id", "status"),
        db.Index("ix_workflows_assignee", "assignee_type", "assignee_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="SET NULL"), nullable=True,
    )

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    workflow_type = db.Column(db.String(20), nullable=False, default="document", comment="folder | document")
    status = db.Column(
        db.String(30), nullable=False, default="assigned",
        comment="assigned | in_progress | ready_for_review | completed | pending",
    )
    progress = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=True)

    # Current assignee (AssignmentTarget via ``assignee``)
    assignee_type = db.Column(db.String(20), nullable=True)
    assignee_id = db.Column(db.String(64), nullable=True)
    assignee_name = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Cross-company context
    source_company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    source_company_name = db.Column(db.String(200), nullable=True)
    target_company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    target_company_name = db.Column(db.String(200), nullable=True)
    is_cross_company = db.Column(db.Boolean, nullable=False, default=False)
    approval_status = db.Column(db.String(20), nullable=True, comment="pending | approved | rejected")

    filed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    assignee = target_property("assignee")

    creator = db.relationship("User", foreign_keys=[created_by])
    routing_entries = db.relationship(
        "RoutingHistoryEntry", back_populates="workflow",
        order_by="RoutingHistoryEntry.sequence",
        cascade="all, delete-orphan",
    )
    actions = db.relationship(
        "Action", back_populates="workflow",
        order_by="Action.id",
        cascade="all, delete-orphan",
    )
    goals = db.relationship(
        "Goal", back_populates="workflow",
        order_by="Goal.id",
        cascade="all, delete-orphan",
    )

    @property
    def routing_count(self) -> int:
        return len(self.routing_entries)

    @property
    def is_filed(self) -> bool:
        return self.filed_at is not None

    def sync_cross_company(self) -> bool:
        self.is_cross_company = (
            self.source_company_id is not None
            and self.target_company_id is not None
            and self.source_company_id != self.target_company_id
        )
        return self.is_cross_company

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "company_id": self.company_id,
            "document_id": self.document_id,
            "title": self.title,
            "description": self.description,
            "type": self.workflow_type,
            "status": self.status,
            "progress": self.progress,
            "due_date": _iso(self.due_date),
            "assigned_to": target_dict(self.assignee),
            "created_by": self.created_by,
            "source_company_id": self.source_company_id,
            "source_company_name": self.source_company_name,
            "target_company_id": self.target_company_id,
            "target_company_name": self.target_company_name,
            "is_cross_company": self.is_cross_company,
            "approval_status": self.approval_status,
            "filed_at": _iso(self.filed_at),
            "completed_at": _iso(self.completed_at),
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            d["routing_history"] = [e.to_dict() for e in self.routing_entries]
            d["actions"] = [a.to_dict() for a in self.actions]
            d["goals"] = [g.to_dict() for g in self.goals]
        return d

    def __repr__(self):
        return f"<Workflow {self.id}: {self.title[:40]} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. RoutingHistoryEntry — append-only
# ═════════════════════════════════════════════════════════════════════════════


class RoutingHistoryEntry(db.Model):
    """
    One hop in a workflow's routing path.

    Records are never updated or deleted. ``sequence`` starts at 1 and is
    unique per workflow, so two writers appending after the same sequence
    cannot both succeed.
    """

    __tablename__ = "workflow_routing_entries"
    __table_args__ = (
        db.UniqueConstraint("workflow_id", "sequence", name="uq_routing_entry_sequence"),
    )

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    sequence = db.Column(db.Integer, nullable=False)

    from_type = db.Column(db.String(20), nullable=True)
    from_id = db.Column(db.String(64), nullable=True)
    from_name = db.Column(db.String(255), nullable=True)
    to_type = db.Column(db.String(20), nullable=False)
    to_id = db.Column(db.String(64), nullable=False)
    to_name = db.Column(db.String(255), nullable=True)

    routed_by = db.Column(db.String(64), nullable=False, default="system",
                          comment="Acting user id, or 'system' for back-office actors")
    routed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    routing_type = db.Column(db.String(20), nullable=False, default="manual",
                             comment="manual | filed | cross_company")
    route_kind = db.Column(db.String(30), nullable=True,
                           comment="secretary | department | individual | department_head | original_sender | file_documents")
    notes = db.Column(db.Text, nullable=True)

    is_cross_company = db.Column(db.Boolean, nullable=False, default=False)
    source_company_id = db.Column(db.Integer, nullable=True)
    target_company_id = db.Column(db.Integer, nullable=True)

    from_target = target_property("from")
    to_target = target_property("to")

    workflow = db.relationship("Workflow", back_populates="routing_entries")

    def to_dict(self):
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "sequence": self.sequence,
            "from": target_dict(self.from_target),
            "to": target_dict(self.to_target),
            "routed_by": self.routed_by,
            "routed_at": _iso(self.routed_at),
            "routing_type": self.routing_type,
            "route_kind": self.route_kind,
            "notes": self.notes,
            "is_cross_company": self.is_cross_company,
            "source_company_id": self.source_company_id,
            "target_company_id": self.target_company_id,
        }

    def __repr__(self):
        return f"<RoutingHistoryEntry wf={self.workflow_id} #{self.sequence} → {self.to_name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. Action
# ═════════════════════════════════════════════════════════════════════════════


class Action(db.Model):
    """A discrete task under a workflow; carries the workflow's company id."""

    __tablename__ = "workflow_actions"
    __table_args__ = (
        db.Index("ix_workflow_actions_assignee", "assignee_type", "assignee_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    action_type = db.Column(db.String(30), nullable=False, default="regular",
                            comment="regular | document_upload | request_response")
    status = db.Column(db.String(30), nullable=False, default="pending")
    due_date = db.Column(db.Date, nullable=True)

    assignee_type = db.Column(db.String(20), nullable=True)
    assignee_id = db.Column(db.String(64), nullable=True)
    assignee_name = db.Column(db.String(255), nullable=True)

    # Completion
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolution_notes = db.Column(db.Text, nullable=True)

    # Upload (document_upload actions)
    uploaded_document_name = db.Column(db.String(300), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Response (request_response actions)
    response_text = db.Column(db.Text, nullable=True)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    responded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Cross-company context
    is_cross_company = db.Column(db.Boolean, nullable=False, default=False)
    source_company_id = db.Column(db.Integer, nullable=True)
    source_company_name = db.Column(db.String(200), nullable=True)
    target_company_id = db.Column(db.Integer, nullable=True)
    target_company_name = db.Column(db.String(200), nullable=True)
    approval_status = db.Column(db.String(20), nullable=True)
    approval_request_id = db.Column(db.Integer, nullable=True, comment="Reference to approval_requests.id")

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    assignee = target_property("assignee")

    workflow = db.relationship("Workflow", back_populates="actions")

    def sync_cross_company(self) -> bool:
        self.is_cross_company = (
            self.source_company_id is not None
            and self.target_company_id is not None
            and self.source_company_id != self.target_company_id
        )
        return self.is_cross_company

    def to_dict(self):
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "company_id": self.company_id,
            "title": self.title,
            "description": self.description,
            "type": self.action_type,
            "status": self.status,
            "due_date": _iso(self.due_date),
            "assigned_to": target_dict(self.assignee),
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "resolution_notes": self.resolution_notes,
            "uploaded_document_name": self.uploaded_document_name,
            "uploaded_at": _iso(self.uploaded_at),
            "uploaded_by": self.uploaded_by,
            "response_text": self.response_text,
            "responded_at": _iso(self.responded_at),
            "responded_by": self.responded_by,
            "is_cross_company": self.is_cross_company,
            "source_company_id": self.source_company_id,
            "target_company_id": self.target_company_id,
            "approval_status": self.approval_status,
            "approval_request_id": self.approval_request_id,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Action {self.id}: {self.title[:40]} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. Goal
# ═════════════════════════════════════════════════════════════════════════════


class Goal(db.Model):
    """
    Follow-up item created once a workflow is ready for review or completed.

    ``assigned_users`` is an optional overlay: a JSON list of
    ``{"type": "user"|"department", "id": ..., "name": ...}`` entries that
    widen visibility beyond the primary assignee.
    """

    __tablename__ = "workflow_goals"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="pending", comment="pending | in_progress | achieved")

    assigned_to_type = db.Column(db.String(20), nullable=False, comment="user | department | all_participants")
    assigned_to_id = db.Column(db.String(64), nullable=True)
    assigned_to_name = db.Column(db.String(255), nullable=False)
    assigned_users = db.Column(db.JSON, default=list)

    due_date = db.Column(db.Date, nullable=True)

    achieved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    achieved_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    achievement_notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    workflow = db.relationship("Workflow", back_populates="goals")

    @property
    def is_achieved(self) -> bool:
        return self.status == "achieved"

    def to_dict(self):
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "assigned_to_type": self.assigned_to_type,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to_name": self.assigned_to_name,
            "assigned_users": list(self.assigned_users or []),
            "due_date": _iso(self.due_date),
            "achieved_at": _iso(self.achieved_at),
            "achieved_by": self.achieved_by,
            "achievement_notes": self.achievement_notes,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Goal {self.id}: {self.title[:40]} [{self.status}]>"
