"""
Confidentiality Service — marking lifecycle and explicit access grants.

Marking lifecycle:
  mark_as_confidential     -> replaces the active marking (if any) and sets
                              the item's is_confidential flag
  remove_confidential_marking -> deactivates the active marking and clears
                              the flag; only the original marker or a
                              system_admin may do this

Contract: mark_as_confidential does NOT check who is calling. Callers must
gate it with can_user_mark_confidential (item owner or system_admin).

Single-active-marking invariant:
  The current active row is read with SELECT ... FOR UPDATE (where the
  backend supports it), deactivated and flushed before the new row is
  inserted. The partial unique index uq_confidentiality_markings_active_item
  rejects the loser of any remaining race; the loser gets ConflictError.

Every successful mutation emits one audit fact after commit.

Usage:
    from reporting.services import confidentiality_service as svc

    if svc.can_user_mark_confidential("report", 42, user_id):
        svc.mark_as_confidential("report", 42, user_id, committee_id)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from reporting.core.exceptions import ConflictError, NotFoundError, ValidationError
from reporting.models import db
from reporting.models.confidentiality import AccessGrant, ConfidentialityMarking
from reporting.models.organization import SYSTEM_ADMIN, Committee, User
from reporting.services.audit_facts import emit_audit_fact
from reporting.services.item_refs import ItemRef, adapter_for, parse_item_kind

logger = logging.getLogger(__name__)


class MutationResult(str, Enum):
    """Outcome of unmark / revoke. Truthy only for OK."""

    OK = "ok"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"

    def __bool__(self) -> bool:
        return self is MutationResult.OK


def _utcnow():
    return datetime.now(timezone.utc)


def _log_extra(ref: ItemRef, user_id) -> dict:
    return {"item_kind": ref.kind.value, "item_id": ref.item_id, "actor_user_id": user_id}


def _active_marking_query(ref: ItemRef):
    return select(ConfidentialityMarking).where(
        ConfidentialityMarking.item_kind == ref.kind.value,
        ConfidentialityMarking.item_id == ref.item_id,
        ConfidentialityMarking.is_active.is_(True),
    )


_ACTIVE_MARKING_INDEX = "uq_confidentiality_markings_active_item"


def _is_active_marking_conflict(exc: IntegrityError) -> bool:
    """True when ``exc`` came from the one-active-marking-per-item index.

    PostgreSQL names the index; SQLite names the indexed columns.
    """
    msg = str(exc.orig)
    if _ACTIVE_MARKING_INDEX in msg:
        return True
    return "UNIQUE constraint failed" in msg and "confidentiality_markings.item_kind" in msg


def validate_min_rank(min_chairman_office_rank) -> int | None:
    """Coerce a Chairman's Office rank requirement; None means no requirement.

    Raises:
        ValidationError: not an integer, or below 1.
    """
    if min_chairman_office_rank is None:
        return None
    if isinstance(min_chairman_office_rank, bool):
        raise ValidationError(
            "min_chairman_office_rank must be an integer",
            details={"min_chairman_office_rank": min_chairman_office_rank},
        )
    try:
        rank = int(min_chairman_office_rank)
    except (TypeError, ValueError):
        raise ValidationError(
            "min_chairman_office_rank must be an integer",
            details={"min_chairman_office_rank": min_chairman_office_rank},
        ) from None
    if rank < 1:
        raise ValidationError(
            "min_chairman_office_rank must be >= 1",
            details={"min_chairman_office_rank": rank},
        )
    return rank


# ═══════════════════════════════════════════════════════════════
# Mark / Unmark
# ═══════════════════════════════════════════════════════════════


def mark_as_confidential(
    kind,
    item_id: int,
    marked_by_user_id: int,
    committee_id: int,
    reason: str | None = None,
    min_chairman_office_rank: int | None = None,
    *,
    session=None,
) -> ConfidentialityMarking:
    """
    Mark an item confidential in the context of ``committee_id``.

    The committee's current hierarchy level is copied into the marking;
    later re-levelling of the committee does not change existing markings.

    Raises:
        NotFoundError: committee or marking user does not exist.
        ValidationError: min_chairman_office_rank is not a positive integer.
        ConflictError: a concurrent mark on the same item won the race.
    """
    sess = session or db.session
    ref = ItemRef.of(kind, item_id)
    rank = validate_min_rank(min_chairman_office_rank)

    committee = sess.get(Committee, committee_id)
    if committee is None:
        raise NotFoundError(resource="Committee", resource_id=committee_id)
    if sess.get(User, marked_by_user_id) is None:
        raise NotFoundError(resource="User", resource_id=marked_by_user_id)

    adapter = adapter_for(ref.kind)
    item = adapter.load(ref.item_id, sess)
    if item is None:
        logger.warning(
            "Marking %s which has no backing row", ref,
            extra=_log_extra(ref, marked_by_user_id),
        )
    was_confidential = bool(item.is_confidential) if item is not None else False

    now = _utcnow()
    existing = sess.execute(
        _active_marking_query(ref).with_for_update()
    ).scalar_one_or_none()
    replaced_id = existing.id if existing is not None else None

    try:
        if existing is not None:
            # Replacement stamps the acting user as the unmarker.
            existing.is_active = False
            existing.unmarked_at = now
            existing.unmarked_by_id = marked_by_user_id
            sess.flush()

        marking = ConfidentialityMarking(
            item_kind=ref.kind.value,
            item_id=ref.item_id,
            marked_by_id=marked_by_user_id,
            marker_committee_id=committee.id,
            marker_committee_level=committee.hierarchy_level,
            min_chairman_office_rank=rank,
            reason=reason,
            is_active=True,
            marked_at=now,
        )
        sess.add(marking)
        if item is not None:
            adapter.set_confidential_flag(item, True)
        sess.commit()
    except IntegrityError as exc:
        sess.rollback()
        if not _is_active_marking_conflict(exc):
            raise
        logger.warning(
            "Concurrent confidentiality mark on %s rejected: %s", ref, exc.orig,
            extra=_log_extra(ref, marked_by_user_id),
        )
        raise ConflictError(
            resource="ConfidentialityMarking",
            field="item",
            value=str(ref),
        ) from exc

    logger.info(
        "Item %s marked confidential by user %s at committee level %s",
        ref, marked_by_user_id, committee.hierarchy_level,
        extra=_log_extra(ref, marked_by_user_id),
    )
    emit_audit_fact(
        action="confidentiality.mark",
        actor_user_id=marked_by_user_id,
        item_kind=ref.kind.value,
        item_id=ref.item_id,
        before={"is_confidential": was_confidential, "active_marking_id": replaced_id},
        after={
            "is_confidential": True,
            "active_marking_id": marking.id,
            "marker_committee_id": marking.marker_committee_id,
            "marker_committee_level": marking.marker_committee_level,
            "min_chairman_office_rank": marking.min_chairman_office_rank,
        },
        timestamp=now,
    )
    return marking


def remove_confidential_marking(
    kind,
    item_id: int,
    user_id: int,
    *,
    session=None,
) -> MutationResult:
    """
    Deactivate the item's active marking and clear its flag.

    Returns:
        MutationResult.NOT_FOUND     no active marking, or unknown user
        MutationResult.UNAUTHORIZED  user is neither the marker nor system_admin
        MutationResult.OK            marking removed
    """
    sess = session or db.session
    ref = ItemRef.of(kind, item_id)

    marking = sess.execute(
        _active_marking_query(ref).with_for_update()
    ).scalar_one_or_none()
    if marking is None:
        return MutationResult.NOT_FOUND

    user = sess.get(User, user_id)
    if user is None:
        return MutationResult.NOT_FOUND

    if marking.marked_by_id != user_id and user.system_role != SYSTEM_ADMIN:
        logger.info(
            "User %s may not remove marking %s on %s", user_id, marking.id, ref,
            extra=_log_extra(ref, user_id),
        )
        return MutationResult.UNAUTHORIZED

    now = _utcnow()
    marking.is_active = False
    marking.unmarked_at = now
    marking.unmarked_by_id = user_id

    adapter = adapter_for(ref.kind)
    item = adapter.load(ref.item_id, sess)
    if item is not None:
        adapter.set_confidential_flag(item, False)
    sess.commit()

    logger.info(
        "Confidentiality removed from %s by user %s", ref, user_id,
        extra=_log_extra(ref, user_id),
    )
    emit_audit_fact(
        action="confidentiality.unmark",
        actor_user_id=user_id,
        item_kind=ref.kind.value,
        item_id=ref.item_id,
        before={"is_confidential": True, "active_marking_id": marking.id},
        after={"is_confidential": False, "active_marking_id": None},
        timestamp=now,
    )
    return MutationResult.OK


def get_active_marking(kind, item_id: int, session=None) -> ConfidentialityMarking | None:
    sess = session or db.session
    return sess.execute(_active_marking_query(ItemRef.of(kind, item_id))).scalar_one_or_none()


def get_marking_history(kind, item_id: int, session=None) -> list[ConfidentialityMarking]:
    """All markings for the item, newest first."""
    sess = session or db.session
    kind = parse_item_kind(kind)
    return list(
        sess.execute(
            select(ConfidentialityMarking)
            .where(
                ConfidentialityMarking.item_kind == kind.value,
                ConfidentialityMarking.item_id == item_id,
            )
            .order_by(ConfidentialityMarking.marked_at.desc(), ConfidentialityMarking.id.desc())
        ).scalars()
    )


# ═══════════════════════════════════════════════════════════════
# Explicit access grants
# ═══════════════════════════════════════════════════════════════


def _active_grant(sess, ref: ItemRef, user_id: int) -> AccessGrant | None:
    return sess.execute(
        select(AccessGrant).where(
            AccessGrant.item_kind == ref.kind.value,
            AccessGrant.item_id == ref.item_id,
            AccessGrant.granted_to_user_id == user_id,
            AccessGrant.is_active.is_(True),
        )
    ).scalar_one_or_none()


def grant_access(
    kind,
    item_id: int,
    granted_to_user_id: int,
    granted_by_user_id: int,
    reason: str | None = None,
    *,
    session=None,
) -> AccessGrant:
    """
    Share an item with one user. Re-granting returns the existing grant.

    Raises:
        NotFoundError: the grantee or the granting user does not exist.
    """
    sess = session or db.session
    ref = ItemRef.of(kind, item_id)

    for user_id in (granted_to_user_id, granted_by_user_id):
        if sess.get(User, user_id) is None:
            raise NotFoundError(resource="User", resource_id=user_id)

    existing = _active_grant(sess, ref, granted_to_user_id)
    if existing is not None:
        return existing

    grant = AccessGrant(
        item_kind=ref.kind.value,
        item_id=ref.item_id,
        granted_to_user_id=granted_to_user_id,
        granted_by_id=granted_by_user_id,
        reason=reason,
        is_active=True,
        granted_at=_utcnow(),
    )
    try:
        sess.add(grant)
        sess.commit()
    except IntegrityError:
        sess.rollback()
        # Lost a race with an identical grant: return the winner.
        winner = _active_grant(sess, ref, granted_to_user_id)
        if winner is None:
            raise
        logger.info(
            "Concurrent grant on %s for user %s resolved to grant %s",
            ref, granted_to_user_id, winner.id,
            extra=_log_extra(ref, granted_by_user_id),
        )
        return winner

    logger.info(
        "Access granted for %s to user %s by user %s",
        ref, granted_to_user_id, granted_by_user_id,
        extra=_log_extra(ref, granted_by_user_id),
    )
    emit_audit_fact(
        action="confidentiality.grant",
        actor_user_id=granted_by_user_id,
        item_kind=ref.kind.value,
        item_id=ref.item_id,
        before={"granted_to_user_id": granted_to_user_id, "has_grant": False},
        after={"granted_to_user_id": granted_to_user_id, "has_grant": True, "grant_id": grant.id},
        timestamp=grant.granted_at,
    )
    return grant


def revoke_access(grant_id: int, revoked_by_user_id: int, *, session=None) -> MutationResult:
    """Deactivate a grant. NOT_FOUND for unknown or already-revoked grants."""
    sess = session or db.session
    grant = sess.get(AccessGrant, grant_id)
    if grant is None or not grant.is_active:
        return MutationResult.NOT_FOUND

    now = _utcnow()
    grant.is_active = False
    grant.revoked_at = now
    grant.revoked_by_id = revoked_by_user_id
    sess.commit()

    logger.info(
        "Access grant %s revoked by user %s", grant_id, revoked_by_user_id,
        extra={"item_kind": grant.item_kind, "item_id": grant.item_id, "actor_user_id": revoked_by_user_id},
    )
    emit_audit_fact(
        action="confidentiality.revoke",
        actor_user_id=revoked_by_user_id,
        item_kind=grant.item_kind,
        item_id=grant.item_id,
        before={"grant_id": grant.id, "granted_to_user_id": grant.granted_to_user_id, "has_grant": True},
        after={"grant_id": grant.id, "granted_to_user_id": grant.granted_to_user_id, "has_grant": False},
        timestamp=now,
    )
    return MutationResult.OK


def get_access_grant(grant_id: int, session=None) -> AccessGrant | None:
    return (session or db.session).get(AccessGrant, grant_id)


def get_access_grants(kind, item_id: int, session=None) -> list[AccessGrant]:
    """Active grants for the item, oldest first."""
    sess = session or db.session
    kind = parse_item_kind(kind)
    return list(
        sess.execute(
            select(AccessGrant)
            .where(
                AccessGrant.item_kind == kind.value,
                AccessGrant.item_id == item_id,
                AccessGrant.is_active.is_(True),
            )
            .order_by(AccessGrant.granted_at.asc(), AccessGrant.id.asc())
        ).scalars()
    )


# ═══════════════════════════════════════════════════════════════
# Permission checks
# ═══════════════════════════════════════════════════════════════


def can_user_mark_confidential(kind, item_id: int, user_id: int, session=None) -> bool:
    """Item owner (author / issuer / moderator) or system_admin."""
    sess = session or db.session
    user = sess.get(User, user_id)
    if user is None:
        return False
    if user.system_role == SYSTEM_ADMIN:
        return True

    adapter = adapter_for(kind)
    item = adapter.load(item_id, sess)
    if item is None:
        return False
    return adapter.owner_id(item) == user_id


def get_item_committee(kind, item_id: int, session=None) -> Committee | None:
    sess = session or db.session
    adapter = adapter_for(kind)
    item = adapter.load(item_id, sess)
    if item is None:
        return None
    committee_id = adapter.committee_id(item)
    return sess.get(Committee, committee_id) if committee_id is not None else None
