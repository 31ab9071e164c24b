"""
Document Routing Core
Notification Service.

Central service for creating and querying in-app notifications. Every
created notification is also pushed to the recipient's ``user:<id>``
real-time channel.
"""

from datetime import datetime, timezone

from docflow.models import db
from docflow.models.notification import Notification
from docflow.services import realtime

_TITLES = {
    "workflow_assigned": "Workflow Assigned",
    "workflow_routed": "Workflow Routed",
    "workflow_filed": "Workflow Filed",
    "action_assigned": "Action Assigned",
    "action_completed": "Action Completed",
    "goal_assigned": "Goal Assigned",
    "goal_reminder": "Goal Reminder",
    "goal_achieved": "Goal Achieved",
    "approval_request": "Cross-Company Approval Request",
    "approval_request_approved": "Approval Request Approved",
    "approval_request_rejected": "Approval Request Rejected",
}


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(user_id, notification_type, payload=None):
        """
        Create a notification for one user and push it live.

        Args:
            user_id: Recipient user id.
            notification_type: Notification type (see NOTIFICATION_TYPES).
            payload: dict with optional ``message``, ``company_id``,
                ``resource_type``, ``resource_id``; the whole dict is kept
                on the record.

        Returns:
            The created Notification instance (already committed).
        """
        payload = dict(payload or {})
        notif = Notification(
            user_id=int(user_id),
            company_id=payload.get("company_id"),
            type=notification_type,
            title=payload.get("title") or _TITLES.get(notification_type, notification_type.replace("_", " ").title()),
            message=payload.get("message", ""),
            resource_type=payload.get("resource_type", ""),
            resource_id=payload.get("resource_id"),
            payload=payload,
        )
        db.session.add(notif)
        db.session.commit()
        realtime.broadcast(realtime.user_channel(notif.user_id), "notification", notif.to_dict())
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a user, newest first.
        """
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = q.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def unread_count(user_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark a single notification as read (only the recipient's own)."""
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications for a user as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now})
        )
        db.session.commit()
        return count
