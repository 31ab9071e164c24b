"""
Progress Aggregator.

Pure functions that derive a workflow's completion percentage and its next
status from the action set. Nothing here touches the session; the action
service persists the result.

Rules:
  - An action counts as progressed when its status is completed,
    document_uploaded or response_received (uploads/responses move the
    workflow forward before the action itself is closed).
  - percent = round-half-up(100 * progressed / total), 0 for no actions.
  - all actions completed and percent == 100 → ready_for_review
    (unless already completed)
  - percent > 0 and status == assigned → in_progress
  - otherwise unchanged
"""

PROGRESSED_ACTION_STATUSES = frozenset({"completed", "document_uploaded", "response_received"})


def _status_of(action) -> str:
    return action["status"] if isinstance(action, dict) else action.status


def compute_progress(actions) -> int:
    """Integer completion percentage of an action set (0–100)."""
    actions = list(actions)
    total = len(actions)
    if total == 0:
        return 0
    progressed = sum(1 for a in actions if _status_of(a) in PROGRESSED_ACTION_STATUSES)
    # integer half-up: 1 of 8 → 12.5 → 13
    return (200 * progressed + total) // (2 * total)


def next_status(current: str, percent: int, actions) -> str:
    """Workflow status implied by the action set; idempotent for a fixed input."""
    actions = list(actions)
    all_completed = bool(actions) and all(_status_of(a) == "completed" for a in actions)
    if all_completed and percent == 100 and current != "completed":
        return "ready_for_review"
    if percent > 0 and current == "assigned":
        return "in_progress"
    return current


def derive(current: str, actions) -> tuple[int, str]:
    """Convenience: ``(percent, status)`` for a workflow's current actions."""
    actions = list(actions)
    percent = compute_progress(actions)
    return percent, next_status(current, percent, actions)
