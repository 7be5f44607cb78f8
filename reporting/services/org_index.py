"""
Hierarchy / membership / shadow lookups used by the confidentiality engine.

All functions are read-only. A membership is current while its
``effective_to`` is NULL. A shadow assignment is in force while
``is_active`` is set and ``now`` lies in ``[effective_from, effective_to)``.

Usage:
    levels = active_committee_levels(user_id)
    if is_active_shadow(user_id, committee_id):
        ...
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select

from reporting.models import db
from reporting.models.organization import (
    Committee,
    CommitteeMembership,
    ShadowAssignment,
)

logger = logging.getLogger(__name__)


def active_memberships(user_id: int, session=None) -> list[CommitteeMembership]:
    sess = session or db.session
    return list(
        sess.execute(
            select(CommitteeMembership).where(
                CommitteeMembership.user_id == user_id,
                CommitteeMembership.effective_to.is_(None),
            )
        ).scalars()
    )


def active_committee_levels(user_id: int, session=None) -> list[int]:
    """Hierarchy levels of every committee the user currently sits on."""
    sess = session or db.session
    rows = sess.execute(
        select(Committee.hierarchy_level)
        .join(CommitteeMembership, CommitteeMembership.committee_id == Committee.id)
        .where(
            CommitteeMembership.user_id == user_id,
            CommitteeMembership.effective_to.is_(None),
        )
    ).all()
    return [r[0] for r in rows]


def is_active_member(user_id: int, committee_id: int, session=None) -> bool:
    sess = session or db.session
    return (
        sess.execute(
            select(CommitteeMembership.id).where(
                CommitteeMembership.user_id == user_id,
                CommitteeMembership.committee_id == committee_id,
                CommitteeMembership.effective_to.is_(None),
            ).limit(1)
        ).first()
    ) is not None


def _shadow_in_force(now: datetime):
    return (
        ShadowAssignment.is_active.is_(True),
        ShadowAssignment.effective_from <= now,
        or_(ShadowAssignment.effective_to.is_(None), ShadowAssignment.effective_to > now),
    )


def is_active_shadow(user_id: int, committee_id: int | None, at: datetime | None = None, session=None) -> bool:
    if committee_id is None:
        return False
    sess = session or db.session
    now = at or datetime.now(timezone.utc)
    return (
        sess.execute(
            select(ShadowAssignment.id).where(
                ShadowAssignment.shadow_user_id == user_id,
                ShadowAssignment.committee_id == committee_id,
                *_shadow_in_force(now),
            ).limit(1)
        ).first()
    ) is not None


def active_shadow_user_ids(committee_id: int, at: datetime | None = None, session=None) -> set[int]:
    """All users currently shadowing someone on ``committee_id``."""
    sess = session or db.session
    now = at or datetime.now(timezone.utc)
    rows = sess.execute(
        select(ShadowAssignment.shadow_user_id).where(
            ShadowAssignment.committee_id == committee_id,
            *_shadow_in_force(now),
        )
    ).all()
    return {r[0] for r in rows}


# ── Ancestry index ───────────────────────────────────────────────────────────


def build_ancestor_index(session=None) -> dict[int, tuple[int, ...]]:
    """
    Flatten the committee tree into ``{committee_id: (parent, grandparent, ...)}``.

    One query, then pure-Python walks; a broken parent chain (cycle) stops at
    the first repeated id and is logged.
    """
    sess = session or db.session
    parents = dict(sess.execute(select(Committee.id, Committee.parent_committee_id)).all())

    index: dict[int, tuple[int, ...]] = {}
    for committee_id in parents:
        chain = []
        seen = {committee_id}
        current = parents.get(committee_id)
        while current is not None:
            if current in seen:
                logger.warning("Committee hierarchy cycle at id=%s", current)
                break
            chain.append(current)
            seen.add(current)
            current = parents.get(current)
        index[committee_id] = tuple(chain)
    return index


def is_ancestor(index: dict[int, tuple[int, ...]], ancestor_id: int, committee_id: int) -> bool:
    return ancestor_id in index.get(committee_id, ())


def expire_shadow_assignments(now: datetime | None = None) -> dict:
    """
    Deactivate shadow assignments whose window has closed.

    Each expired row produces a ``shadow.expired`` audit fact after commit.
    """
    from reporting.services.audit_facts import emit_audit_fact

    now = now or datetime.now(timezone.utc)
    rows = list(
        db.session.execute(
            select(ShadowAssignment).where(
                ShadowAssignment.is_active.is_(True),
                ShadowAssignment.effective_to.isnot(None),
                ShadowAssignment.effective_to <= now,
            )
        ).scalars()
    )
    for sa in rows:
        sa.is_active = False
    if rows:
        db.session.commit()
        for sa in rows:
            emit_audit_fact(
                action="shadow.expired",
                actor_user_id=None,
                item_kind="shadow_assignment",
                item_id=sa.id,
                before={"is_active": True},
                after={
                    "is_active": False,
                    "shadow_user_id": sa.shadow_user_id,
                    "committee_id": sa.committee_id,
                },
                timestamp=now,
            )
        logger.info("Expired %d shadow assignment(s)", len(rows))
    return {"expired_shadow_assignments": len(rows)}
