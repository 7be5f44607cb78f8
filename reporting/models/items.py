"""
Markable item models — reports, directives, meetings.

Only the columns the confidentiality engine consumes live here: the owning
committee, the owner (author / issuer / moderator) and the mutable
``is_confidential`` flag. Status workflows, attendees, field values and the
rest of each aggregate are owned by their own modules.
"""

from datetime import datetime, timezone

from reporting.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Report(db.Model):
    __tablename__ = "reports"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    committee_id = db.Column(
        db.Integer, db.ForeignKey("committees.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    author_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    status = db.Column(db.String(30), default="draft")
    is_confidential = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    committee = db.relationship("Committee")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "committee_id": self.committee_id,
            "author_id": self.author_id,
            "status": self.status,
            "is_confidential": self.is_confidential,
        }


class Directive(db.Model):
    __tablename__ = "directives"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    issuer_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    target_committee_id = db.Column(
        db.Integer, db.ForeignKey("committees.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    status = db.Column(db.String(30), default="issued")
    is_confidential = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    target_committee = db.relationship("Committee")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "issuer_id": self.issuer_id,
            "target_committee_id": self.target_committee_id,
            "status": self.status,
            "is_confidential": self.is_confidential,
        }


class Meeting(db.Model):
    __tablename__ = "meetings"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    committee_id = db.Column(
        db.Integer, db.ForeignKey("committees.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    moderator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    scheduled_at = db.Column(db.DateTime, nullable=True)
    is_confidential = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    committee = db.relationship("Committee")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "committee_id": self.committee_id,
            "moderator_id": self.moderator_id,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "is_confidential": self.is_confidential,
        }
