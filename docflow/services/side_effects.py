"""
Non-critical effect dispatch.

Notifications, activity records and real-time broadcasts are fire-and-forget
relative to the primary mutation: they run only after the primary commit,
each one isolated so that a failure is logged and discarded without touching
the committed work or the effects that follow it.

Usage:
    effects = Effects(actor_id=actor.id if actor else None)
    effects.notify(user_id, "workflow_assigned", {...})
    effects.record(company_id, "workflow.create", "workflow", wf.id, "Created ...")
    effects.broadcast(realtime.workflow_channel(wf.id), "workflowCreated", wf.to_dict())

    with atomic("Workflow", wf.id):
        ...                       # primary mutation
    effects.dispatch()            # after commit
"""

import logging
from contextlib import contextmanager

from docflow.models import db
from docflow.models.activity import write_activity
from docflow.services import realtime
from docflow.services.notification import NotificationService

logger = logging.getLogger(__name__)


@contextmanager
def non_critical(effect: str, **context):
    """Run a best-effort effect: on failure roll back its work, log, continue."""
    try:
        yield
    except Exception:
        db.session.rollback()
        logger.warning(
            "Non-critical effect '%s' failed", effect,
            exc_info=True, extra={"effect": effect, **context},
        )


class Effects:
    """Queue of side effects collected during one orchestrator operation."""

    def __init__(self, actor_id: int | None = None):
        self.actor_id = actor_id
        self._pending: list[tuple] = []

    def __len__(self):
        return len(self._pending)

    # ── Collectors ────────────────────────────────────────────────────────

    def notify(self, user_id, notification_type: str, payload: dict, *, include_actor=False):
        """Queue a notification; the acting user is skipped unless asked for."""
        if user_id is None:
            return
        user_id = int(user_id)
        if not include_actor and user_id == self.actor_id:
            return
        payload = dict(payload)
        self._pending.append((
            f"notify:{notification_type}",
            {"actor_id": self.actor_id},
            lambda: NotificationService.notify(user_id, notification_type, payload),
        ))

    def notify_many(self, user_ids, notification_type: str, payload: dict):
        seen = set()
        for user_id in user_ids:
            if user_id is None or int(user_id) in seen:
                continue
            seen.add(int(user_id))
            self.notify(user_id, notification_type, payload)

    def record(self, company_id, activity_type: str, resource_type: str, resource_id,
               description: str, metadata: dict | None = None):
        def _write():
            write_activity(
                user_id=self.actor_id,
                company_id=company_id,
                activity_type=activity_type,
                resource_type=resource_type,
                resource_id=resource_id,
                description=description,
                metadata=metadata,
            )
            db.session.commit()

        self._pending.append((f"activity:{activity_type}", {"company_id": company_id}, _write))

    def broadcast(self, channel: str, event: str, payload: dict):
        payload = dict(payload)
        self._pending.append((
            f"broadcast:{event}",
            {},
            lambda: realtime.broadcast(channel, event, payload),
        ))

    # ── Dispatch ──────────────────────────────────────────────────────────

    def dispatch(self) -> int:
        """Run every queued effect in order; returns how many succeeded."""
        succeeded = 0
        pending, self._pending = self._pending, []
        for name, context, run in pending:
            ok = False
            with non_critical(name, **context):
                run()
                ok = True
            succeeded += ok
        return succeeded
