"""
Real-time broadcast channel.

Pushes workflow/action mutations and notifications to live viewers:

  - ``workflow:<id>``  → workflowCreated / workflowUpdated
  - ``action:<id>``    → actionCreated / actionUpdated
  - ``user:<id>``      → notification

Uses Redis pub/sub in production (via REDIS_URL), falls back to a simple
in-memory backend for development/testing that keeps the published
messages for inspection.
"""

import json
import logging
from datetime import datetime, timezone

import redis

logger = logging.getLogger(__name__)

# ── In-memory fallback ───────────────────────────────────────────────────

_memory_messages: list = []  # (channel, message_json)


class _MemoryBackend:
    """Keeps published messages in-process for dev/testing."""

    def publish(self, channel, message):
        _memory_messages.append((channel, message))
        return 0  # no subscribers

    def ping(self):
        return True


# ── Singleton backend ────────────────────────────────────────────────────

_backend = None
_enabled = True


def init_app(app):
    """Reset the backend so the next publish honours the app's REDIS_URL."""
    global _backend, _enabled
    _backend = None
    _enabled = app.config.get("REALTIME_ENABLED", True)
    app.extensions["docflow_realtime_url"] = app.config.get("REDIS_URL", "memory://")


def _get_backend():
    """Lazy-initialise Redis or fall back to in-memory."""
    global _backend
    if _backend is not None:
        return _backend

    from flask import current_app, has_app_context
    redis_url = None
    if has_app_context():
        redis_url = current_app.extensions.get("docflow_realtime_url")
    if redis_url and not redis_url.startswith("memory://"):
        try:
            _backend = redis.from_url(redis_url, decode_responses=True)
            _backend.ping()
            logger.info("Realtime: using Redis at %s", redis_url.split("@")[-1])
        except Exception as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory broadcast", exc)
            _backend = _MemoryBackend()
    else:
        _backend = _MemoryBackend()
    return _backend


# ── Channel builders ─────────────────────────────────────────────────────

def workflow_channel(workflow_id):
    return f"workflow:{workflow_id}"


def action_channel(action_id):
    return f"action:{action_id}"


def user_channel(user_id):
    return f"user:{user_id}"


# ── Public API ───────────────────────────────────────────────────────────


def broadcast(channel: str, event: str, payload: dict) -> int:
    """Publish ``{event, payload, sent_at}`` on a channel.

    Returns the number of receivers reported by the backend. Errors
    propagate; callers wrap this in the non-critical effect runner.
    """
    if not _enabled:
        return 0
    message = json.dumps(
        {
            "event": event,
            "payload": payload,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        },
        default=str,
    )
    receivers = _get_backend().publish(channel, message)
    logger.debug("Broadcast %s on %s (%s receivers)", event, channel, receivers)
    return receivers


def published_messages(channel: str | None = None) -> list[dict]:
    """Decoded messages captured by the in-memory backend (dev/testing)."""
    out = []
    for ch, raw in _memory_messages:
        if channel is None or ch == channel:
            msg = json.loads(raw)
            msg["channel"] = ch
            out.append(msg)
    return out


def clear_published() -> None:
    _memory_messages.clear()
