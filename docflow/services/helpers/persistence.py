"""
Lookup and unit-of-work helpers shared by the orchestrator services.

Every get-by-id in the routing core goes through ``get_required`` so a
missing row always surfaces as ``NotFoundError`` with the entity name, and
every primary mutation runs inside ``atomic()`` so a failed operation
leaves no partial writes behind.

Usage:
    workflow = get_required(Workflow, workflow_id)

    with atomic("Workflow", workflow.id):
        workflow.title = "..."
        # commit on success; rollback + re-raise on any error

Concurrency:
    ``Workflow.version`` is an optimistic lock. A flush against a stale
    version raises StaleDataError, and a duplicate routing sequence raises
    IntegrityError; ``atomic`` turns both into ``ConflictError`` so the
    caller can reload and retry.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from docflow.core.exceptions import ConflictError, NotFoundError
from docflow.models import db

logger = logging.getLogger(__name__)


def get_required(model, pk, *, resource: str | None = None):
    """Fetch a single entity by PK or raise NotFoundError.

    Args:
        model: SQLAlchemy model class with an integer ``id`` PK.
        pk: Primary key value. String digits are accepted (assignment
            target ids are stored as strings).
        resource: Entity name for the error; defaults to the class name.

    Raises:
        NotFoundError: If ``pk`` is not a valid id or no row exists.
    """
    name = resource or model.__name__
    key = _coerce_pk(pk)
    if key is None:
        raise NotFoundError(resource=name, resource_id=pk)
    instance = db.session.get(model, key)
    if instance is None:
        logger.debug("get_required: %s id=%s not found", name, pk)
        raise NotFoundError(resource=name, resource_id=pk)
    return instance


def get_or_none(model, pk):
    """Same as get_required but returns None for missing rows or bad ids."""
    key = _coerce_pk(pk)
    if key is None:
        return None
    return db.session.get(model, key)


def lock_for_update(model, pk):
    """Re-read a row under ``SELECT ... FOR UPDATE`` with fresh attribute state.

    Serialises read-modify-write cycles on PostgreSQL; SQLite ignores the
    lock clause and the per-connection write lock gives the same effect.
    """
    stmt = (
        select(model)
        .where(model.id == pk)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    instance = db.session.execute(stmt).scalar_one_or_none()
    if instance is None:
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return instance


@contextmanager
def atomic(resource: str, resource_id=None):
    """Run one primary mutation: commit on success, roll back on any error.

    Raises:
        ConflictError: on optimistic-lock or uniqueness conflicts.
        Any exception raised inside the block, after rollback.
    """
    try:
        yield
        db.session.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        logger.warning(
            "Concurrent modification of %s id=%s: %s", resource, resource_id, exc,
            extra={"event_type": "conflict"},
        )
        raise ConflictError(resource=resource, resource_id=resource_id) from exc
    except Exception:
        db.session.rollback()
        raise


def _coerce_pk(pk):
    if isinstance(pk, bool):
        return None
    if isinstance(pk, int):
        return pk
    try:
        return int(str(pk).strip())
    except (TypeError, ValueError):
        return None
