"""
Organization Models — committees, users, memberships, shadow assignments.

These tables belong to the surrounding organization module. The
confidentiality engine only reads them; the one exception is shadow expiry,
which deactivates assignments whose window has closed.

Hierarchy levels (lower value = higher authority):
    0 top level, 1 directors, 2 functions, 3 processes, 4 tasks
"""

from datetime import datetime, timezone

from reporting.models import db

# ── Constants ────────────────────────────────────────────────────────────────

SYSTEM_ADMIN = "system_admin"
CHAIRMAN = "chairman"
CHAIRMAN_OFFICE = "chairman_office"
MEMBER = "member"


def _utcnow():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# 1. COMMITTEES
# ═══════════════════════════════════════════════════════════════
class Committee(db.Model):
    __tablename__ = "committees"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    hierarchy_level = db.Column(db.Integer, nullable=False, default=0)
    parent_committee_id = db.Column(
        db.Integer, db.ForeignKey("committees.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    parent = db.relationship("Committee", remote_side=[id], backref="sub_committees")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "hierarchy_level": self.hierarchy_level,
            "parent_committee_id": self.parent_committee_id,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Committee {self.id}: {self.name} L{self.hierarchy_level}>"


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    title = db.Column(db.String(200))
    system_role = db.Column(db.String(30), nullable=False, default=MEMBER)
    # Seniority inside the Chairman's Office: 1 = most senior
    chairman_office_rank = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    memberships = db.relationship(
        "CommitteeMembership", back_populates="user", lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "system_role": self.system_role,
            "chairman_office_rank": self.chairman_office_rank,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.system_role})>"


# ═══════════════════════════════════════════════════════════════
# 3. COMMITTEE MEMBERSHIPS
# ═══════════════════════════════════════════════════════════════
class CommitteeMembership(db.Model):
    __tablename__ = "committee_memberships"
    __table_args__ = (
        db.Index("ix_committee_memberships_user_committee", "user_id", "committee_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    committee_id = db.Column(
        db.Integer, db.ForeignKey("committees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = db.Column(db.String(20), nullable=False, default="member")
    effective_from = db.Column(db.DateTime, default=_utcnow)
    # NULL = membership currently in force
    effective_to = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User", back_populates="memberships")
    committee = db.relationship("Committee", lazy="joined")

    @property
    def is_current(self) -> bool:
        return self.effective_to is None

    def __repr__(self):
        return f"<CommitteeMembership user={self.user_id} committee={self.committee_id}>"


# ═══════════════════════════════════════════════════════════════
# 4. SHADOW ASSIGNMENTS
# ═══════════════════════════════════════════════════════════════
class ShadowAssignment(db.Model):
    """
    A stand-in for a committee member. The shadow sees what an ordinary
    member sees, except confidential items owned by ``committee_id``.
    """

    __tablename__ = "shadow_assignments"
    __table_args__ = (
        db.Index("ix_shadow_assignments_shadow_committee", "shadow_user_id", "committee_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    principal_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    shadow_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    committee_id = db.Column(
        db.Integer, db.ForeignKey("committees.id", ondelete="CASCADE"), nullable=False
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    effective_from = db.Column(db.DateTime, default=_utcnow, nullable=False)
    effective_to = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "principal_user_id": self.principal_user_id,
            "shadow_user_id": self.shadow_user_id,
            "committee_id": self.committee_id,
            "is_active": self.is_active,
            "effective_from": self.effective_from.isoformat() if self.effective_from else None,
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
        }

    def __repr__(self):
        return f"<ShadowAssignment {self.shadow_user_id} for {self.principal_user_id} @ {self.committee_id}>"
