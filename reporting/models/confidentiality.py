"""
Committee Reporting Platform
Confidentiality domain model.

Models:
    - ConfidentialityMarking: append-only history of markings per item.
    - AccessGrant: explicit per-user access overrides per item.

The (item_kind, item_id) pair is a polymorphic reference into reports,
directives or meetings and is deliberately NOT foreign-keyed; the service
layer owns cross-kind integrity.
"""

from datetime import datetime, timezone

from sqlalchemy import text

from reporting.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class ConfidentialityMarking(db.Model):
    """
    One row per mark action.  At most one row per item has ``is_active``;
    superseded and removed rows stay as history and are never deleted.

    ``marker_committee_level`` is a snapshot of the committee's hierarchy
    level taken when the mark was applied.
    """

    __tablename__ = "confidentiality_markings"
    __table_args__ = (
        db.Index("idx_confidentiality_markings_item", "item_kind", "item_id"),
        # Storage-level guard for the single-active-marking invariant.
        db.Index(
            "uq_confidentiality_markings_active_item",
            "item_kind", "item_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    item_kind = db.Column(
        db.String(20), nullable=False,
        comment="report | directive | meeting",
    )
    item_id = db.Column(db.Integer, nullable=False)

    marked_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    marker_committee_id = db.Column(
        db.Integer, db.ForeignKey("committees.id", ondelete="RESTRICT"), nullable=False
    )
    marker_committee_level = db.Column(db.Integer, nullable=False)
    min_chairman_office_rank = db.Column(
        db.Integer, nullable=True,
        comment="CO users need rank <= this value (1 = most senior)",
    )
    reason = db.Column(db.String(500))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    marked_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    unmarked_at = db.Column(db.DateTime, nullable=True)
    unmarked_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    marked_by = db.relationship("User", foreign_keys=[marked_by_id])
    unmarked_by = db.relationship("User", foreign_keys=[unmarked_by_id])
    marker_committee = db.relationship("Committee")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_kind": self.item_kind,
            "item_id": self.item_id,
            "marked_by_id": self.marked_by_id,
            "marker_committee_id": self.marker_committee_id,
            "marker_committee_level": self.marker_committee_level,
            "min_chairman_office_rank": self.min_chairman_office_rank,
            "reason": self.reason,
            "is_active": self.is_active,
            "marked_at": _iso(self.marked_at),
            "unmarked_at": _iso(self.unmarked_at),
            "unmarked_by_id": self.unmarked_by_id,
        }

    def __repr__(self):
        state = "active" if self.is_active else "inactive"
        return f"<ConfidentialityMarking {self.id}: {self.item_kind}/{self.item_id} {state}>"


class AccessGrant(db.Model):
    """Explicit share of one confidential item with one user."""

    __tablename__ = "access_grants"
    __table_args__ = (
        db.Index("idx_access_grants_item", "item_kind", "item_id"),
        db.Index(
            "uq_access_grants_active_item_user",
            "item_kind", "item_id", "granted_to_user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    item_kind = db.Column(db.String(20), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)

    granted_to_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    granted_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    reason = db.Column(db.String(500))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    granted_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    revoked_at = db.Column(db.DateTime, nullable=True)
    revoked_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    granted_to = db.relationship("User", foreign_keys=[granted_to_user_id])
    granted_by = db.relationship("User", foreign_keys=[granted_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_kind": self.item_kind,
            "item_id": self.item_id,
            "granted_to_user_id": self.granted_to_user_id,
            "granted_by_id": self.granted_by_id,
            "reason": self.reason,
            "is_active": self.is_active,
            "granted_at": _iso(self.granted_at),
            "revoked_at": _iso(self.revoked_at),
            "revoked_by_id": self.revoked_by_id,
        }

    def __repr__(self):
        return f"<AccessGrant {self.id}: {self.item_kind}/{self.item_id} -> user {self.granted_to_user_id}>"
