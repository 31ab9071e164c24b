"""
Assignment Target — the "who holds it" value object.

Workflows, actions, routing entries and approval requests all point at
either a user or a department. The database keeps three columns per
reference (``<prefix>_type``, ``<prefix>_id``, ``<prefix>_name``); code
outside this module only ever sees an ``AssignmentTarget`` (or ``None``)
through the ``target_property`` accessor.

Identifiers are stored as strings (user and department PKs serialised via
``str()``), the same polymorphic-id convention used for activity records.
"""

from dataclasses import dataclass, replace
from enum import Enum

from docflow.core.exceptions import ValidationError


class TargetKind(str, Enum):
    USER = "user"
    DEPARTMENT = "department"
    SYSTEM = "system"


FILED_TARGET_ID = "filed"
FILED_TARGET_NAME = "Filed"


@dataclass(frozen=True)
class AssignmentTarget:
    """A tagged reference to a user, a department, or the filing system."""

    kind: TargetKind
    id: str
    name: str | None = None

    # ── Constructors ─────────────────────────────────────────────────────

    @classmethod
    def user(cls, user_id, name: str | None = None) -> "AssignmentTarget":
        return cls(TargetKind.USER, str(user_id), name)

    @classmethod
    def department(cls, department_id, name: str | None = None) -> "AssignmentTarget":
        return cls(TargetKind.DEPARTMENT, str(department_id), name)

    @classmethod
    def filed(cls) -> "AssignmentTarget":
        return cls(TargetKind.SYSTEM, FILED_TARGET_ID, FILED_TARGET_NAME)

    @classmethod
    def from_dict(cls, data: dict | None, *, field: str = "assignee") -> "AssignmentTarget":
        """Parse a ``{"type", "id", "name"}`` payload.

        Only user and department targets may be submitted by callers; the
        system target is produced by the routing engine alone.

        Raises:
            ValidationError: type missing/unknown or id missing.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"{field} is required", details={field: "required"})
        raw_type = data.get("type")
        raw_type = raw_type.strip() if isinstance(raw_type, str) else ("" if raw_type is None else raw_type)
        raw_id = data.get("id")
        if raw_type not in (TargetKind.USER.value, TargetKind.DEPARTMENT.value):
            raise ValidationError(
                f"{field}.type must be 'user' or 'department'",
                details={f"{field}.type": "invalid" if raw_type else "required"},
            )
        if raw_id is None or str(raw_id).strip() == "":
            raise ValidationError(f"{field}.id is required", details={f"{field}.id": "required"})
        name = data.get("name")
        return cls(TargetKind(raw_type), str(raw_id).strip(), name.strip() if isinstance(name, str) else None)

    @classmethod
    def from_columns(cls, kind, target_id, name) -> "AssignmentTarget | None":
        if not kind or target_id is None:
            return None
        return cls(TargetKind(kind), str(target_id), name)

    # ── Accessors ────────────────────────────────────────────────────────

    @property
    def is_user(self) -> bool:
        return self.kind is TargetKind.USER

    @property
    def is_department(self) -> bool:
        return self.kind is TargetKind.DEPARTMENT

    @property
    def needs_name(self) -> bool:
        """True when the display name is missing or just echoes the id."""
        return not self.name or self.name == self.id

    def refers_to_user(self, user_id) -> bool:
        return self.is_user and user_id is not None and self.id == str(user_id)

    def same_party(self, other: "AssignmentTarget | None") -> bool:
        return other is not None and self.kind is other.kind and self.id == other.id

    def with_name(self, name: str | None) -> "AssignmentTarget":
        return replace(self, name=name)

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "id": self.id, "name": self.name}


def target_property(prefix: str) -> property:
    """Expose ``<prefix>_type/_id/_name`` columns as one AssignmentTarget."""
    type_col, id_col, name_col = f"{prefix}_type", f"{prefix}_id", f"{prefix}_name"

    def _get(self):
        return AssignmentTarget.from_columns(
            getattr(self, type_col), getattr(self, id_col), getattr(self, name_col),
        )

    def _set(self, target):
        if target is None:
            values = (None, None, None)
        else:
            values = (target.kind.value, target.id, target.name)
        setattr(self, type_col, values[0])
        setattr(self, id_col, values[1])
        setattr(self, name_col, values[2])

    return property(_get, _set, doc=f"AssignmentTarget view of the {prefix}_* columns")


def target_dict(target: "AssignmentTarget | None") -> dict | None:
    return target.to_dict() if target is not None else None
