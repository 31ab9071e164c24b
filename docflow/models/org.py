"""
Organisation models — companies, departments, users, documents.

These rows are owned by the administrative part of the system; the routing
core only reads them (name resolution, company lookup, role lookup).
"""

from datetime import datetime, timezone

from docflow.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ROLE_MASTER = "Master"
ROLE_COMPANY_ADMIN = "Company Admin"
ROLE_DEPARTMENT_HEAD = "Department Head"
ROLE_SECRETARY = "Secretary"
ROLE_STAFF = "Staff"

VALID_ROLES = frozenset({
    ROLE_MASTER,
    ROLE_COMPANY_ADMIN,
    ROLE_DEPARTMENT_HEAD,
    ROLE_SECRETARY,
    ROLE_STAFF,
})

DOCUMENT_KINDS = frozenset({"folder", "document"})


def _utcnow():
    return datetime.now(timezone.utc)


user_departments = db.Table(
    "user_departments",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("department_id", db.Integer, db.ForeignKey("departments.id", ondelete="CASCADE"), primary_key=True),
)


# ═══════════════════════════════════════════════════════════════
# 1. COMPANIES
# ═══════════════════════════════════════════════════════════════
class Company(db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    departments = db.relationship("Department", back_populates="company", lazy="dynamic")
    users = db.relationship("User", back_populates="company", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Company {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 2. DEPARTMENTS
# ═══════════════════════════════════════════════════════════════
class Department(db.Model):
    __tablename__ = "departments"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_department_company_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    company = db.relationship("Company", back_populates="departments")
    members = db.relationship("User", secondary=user_departments, back_populates="departments")

    def to_dict(self):
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
        }

    def __repr__(self):
        return f"<Department {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 3. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("company_id", "email", name="uq_user_company_email"),
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(50), nullable=False, default=ROLE_STAFF,
                     comment="Master | Company Admin | Department Head | Secretary | Staff")
    status = db.Column(db.String(20), default="active")  # active, invited, inactive
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    company = db.relationship("Company", back_populates="users")
    departments = db.relationship("Department", secondary=user_departments, back_populates="members")

    @property
    def display_name(self):
        return self.full_name or self.email

    def to_dict(self, include_departments=False):
        d = {
            "id": self.id,
            "company_id": self.company_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "status": self.status,
        }
        if include_departments:
            d["departments"] = [dept.to_dict() for dept in self.departments]
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"


# ═══════════════════════════════════════════════════════════════
# 4. DOCUMENTS (folder/document the workflow is attached to)
# ═══════════════════════════════════════════════════════════════
class Document(db.Model):
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    kind = db.Column(db.String(20), nullable=False, default="document", comment="folder | document")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "company_id": self.company_id,
            "title": self.title,
            "kind": self.kind,
        }
