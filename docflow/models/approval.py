"""
Cross-company approval requests.

An ApprovalRequest is created by the cross-company gate instead of applying
an assignment/routing directly. The proposed target is applied only once a
reviewer of the target company (or a Master) approves it.
"""

from datetime import datetime, timezone

from docflow.models import db
from docflow.models.assignment import target_dict, target_property

# ── Constants ─────────────────────────────────────────────────────────────────

REQUEST_TYPES = frozenset({"workflow_assignment", "workflow_routing", "action_assignment"})

REQUEST_STATUSES = frozenset({"pending", "approved", "rejected"})


def _utcnow():
    return datetime.now(timezone.utc)


class ApprovalRequest(db.Model):
    """
    Pending cross-company hand-over of a workflow or action.

    Business rules:
    - Exactly one of workflow_id / action_id is the subject; action requests
      also carry the parent workflow_id.
    - ``prior_status`` is the subject's status before it was forced to
      ``pending``; it is restored when the request is decided.
    - Requests are decided once; a decided request is immutable.
    """

    __tablename__ = "approval_requests"
    __table_args__ = (
        db.Index("ix_approval_requests_target_status", "target_company_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_type = db.Column(
        db.String(30), nullable=False,
        comment="workflow_assignment | workflow_routing | action_assignment",
    )
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    action_id = db.Column(
        db.Integer, db.ForeignKey("workflow_actions.id", ondelete="CASCADE"), nullable=True, index=True,
    )

    source_company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    source_company_name = db.Column(db.String(200), nullable=True)
    target_company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    target_company_name = db.Column(db.String(200), nullable=True)

    requested_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    proposed_type = db.Column(db.String(20), nullable=False)
    proposed_id = db.Column(db.String(64), nullable=False)
    proposed_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending", comment="pending | approved | rejected")
    prior_status = db.Column(db.String(30), nullable=True)
    subject_title = db.Column(db.String(300), nullable=True)
    routing_notes = db.Column(db.Text, nullable=True)

    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    proposed_target = target_property("proposed")

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    def to_dict(self):
        return {
            "id": self.id,
            "request_type": self.request_type,
            "workflow_id": self.workflow_id,
            "action_id": self.action_id,
            "source_company_id": self.source_company_id,
            "source_company_name": self.source_company_name,
            "target_company_id": self.target_company_id,
            "target_company_name": self.target_company_name,
            "requested_by": self.requested_by,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "assigned_to": target_dict(self.proposed_target),
            "status": self.status,
            "subject_title": self.subject_title,
            "routing_notes": self.routing_notes,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "rejection_reason": self.rejection_reason,
        }

    def __repr__(self):
        return f"<ApprovalRequest {self.id}: {self.request_type} {self.source_company_id}→{self.target_company_id} [{self.status}]>"
