"""
Document Routing Core
Activity domain model.

Models:
    - Activity: append-only feed of who did what to which workflow resource.
"""

from datetime import datetime, timezone

from docflow.models import db

# ── Local coercion ───────────────────────────────────────────────────────────

def _as_int(value):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_TYPES = {
    "workflow.create",
    "workflow.update",
    "workflow.route",
    "workflow.file",
    "workflow.approval_requested",
    "action.create",
    "action.update",
    "action.complete",
    "goal.create",
    "goal.update",
    "goal.achieve",
    "goal.delete",
    "approval.approve",
    "approval.reject",
}


class Activity(db.Model):
    """
    Immutable activity record for every workflow-core event.

    One row per event. ``metadata_json`` carries event-specific context
    (routing kind, previous/new status, ...).
    """

    __tablename__ = "activities"
    __table_args__ = (
        db.Index("idx_activity_resource", "resource_type", "resource_id"),
        db.Index("idx_activity_company_ts", "company_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
        comment="NULL for system actors",
    )
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True,
    )
    activity_type = db.Column(db.String(60), nullable=False, comment="workflow.route | action.complete | …")
    resource_type = db.Column(db.String(30), nullable=True)
    resource_id = db.Column(db.String(36), nullable=True)
    description = db.Column(db.Text, nullable=False, default="")
    metadata_json = db.Column(db.JSON, default=dict)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_id": self.company_id,
            "activity_type": self.activity_type,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "description": self.description,
            "metadata": self.metadata_json or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Activity {self.id}: {self.activity_type} on {self.resource_type}/{self.resource_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_activity(
    *,
    user_id: int | None,
    company_id: int | None,
    activity_type: str,
    resource_type: str | None = None,
    resource_id=None,
    description: str = "",
    metadata: dict | None = None,
) -> Activity:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) Activity instance.
    """
    activity = Activity(
        user_id=_as_int(user_id),
        company_id=_as_int(company_id),
        activity_type=activity_type,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        description=description,
        metadata_json=metadata or {},
    )
    db.session.add(activity)
    db.session.flush()
    return activity
