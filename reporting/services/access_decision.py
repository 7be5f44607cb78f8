"""
Access Decision Engine — can user U see confidential item I?

Evaluation is an ordered rule chain; the first matching rule decides:

    1. no active marking                     -> allow  (no_marking)
    2. user missing or inactive              -> deny   (user_inactive)
    3. chairman / system_admin               -> allow  (privileged_role)
    4. active shadow for the item's committee-> deny   (shadow_denied)
    5. active explicit grant                 -> allow  (explicit_grant)
    6. chairman_office + marking rank set    -> allow iff rank <= min,
                                                else deny (chairman_office_rank)
    7. member of a strictly higher level     -> allow  (higher_hierarchy)
    8. member of the marking committee       -> allow  (marker_committee_member)
    9. otherwise                             -> deny   (default_deny)

Rule 4 precedes rule 5: a shadow stays denied even when someone
has shared the item with them by name.

The engine is read-only and keeps no cache; every call reads committed rows.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select

from reporting.models import db
from reporting.models.confidentiality import AccessGrant, ConfidentialityMarking
from reporting.models.organization import CHAIRMAN, CHAIRMAN_OFFICE, SYSTEM_ADMIN, User
from reporting.services import org_index
from reporting.services.item_refs import ItemKind, owning_committee_id, parse_item_kind

logger = logging.getLogger(__name__)

PRIVILEGED_ROLES = {CHAIRMAN, SYSTEM_ADMIN}


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    rule: str

    def __bool__(self) -> bool:
        return self.allowed

    def to_dict(self) -> dict:
        return {"allowed": self.allowed, "rule": self.rule}


def _active_marking(kind: ItemKind, item_id: int, sess):
    return sess.execute(
        select(ConfidentialityMarking).where(
            ConfidentialityMarking.item_kind == kind.value,
            ConfidentialityMarking.item_id == item_id,
            ConfidentialityMarking.is_active.is_(True),
        ).limit(1)
    ).scalar_one_or_none()


def has_active_grant(kind, item_id: int, user_id: int, session=None) -> bool:
    sess = session or db.session
    kind = parse_item_kind(kind)
    return (
        sess.execute(
            select(AccessGrant.id).where(
                AccessGrant.item_kind == kind.value,
                AccessGrant.item_id == item_id,
                AccessGrant.granted_to_user_id == user_id,
                AccessGrant.is_active.is_(True),
            ).limit(1)
        ).first()
    ) is not None


def rank_satisfies(user_rank: int | None, min_rank: int) -> bool:
    """Lower number = more senior; equal rank qualifies."""
    return user_rank is not None and user_rank <= min_rank


def explain_access(kind, item_id: int, user_id: int, session=None) -> AccessDecision:
    """Evaluate the rule chain and report which rule decided."""
    sess = session or db.session
    kind = parse_item_kind(kind)

    marking = _active_marking(kind, item_id, sess)
    if marking is None:
        return AccessDecision(True, "no_marking")

    user = sess.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        return _deny(kind, item_id, user_id, "user_inactive")

    if user.system_role in PRIVILEGED_ROLES:
        return AccessDecision(True, "privileged_role")

    committee_id = owning_committee_id(kind, item_id, sess)
    if org_index.is_active_shadow(user.id, committee_id, session=sess):
        return _deny(kind, item_id, user_id, "shadow_denied")

    if has_active_grant(kind, item_id, user.id, session=sess):
        return AccessDecision(True, "explicit_grant")

    if user.system_role == CHAIRMAN_OFFICE and marking.min_chairman_office_rank is not None:
        if rank_satisfies(user.chairman_office_rank, marking.min_chairman_office_rank):
            return AccessDecision(True, "chairman_office_rank")
        return _deny(kind, item_id, user_id, "chairman_office_rank")

    levels = org_index.active_committee_levels(user.id, session=sess)
    if any(level < marking.marker_committee_level for level in levels):
        return AccessDecision(True, "higher_hierarchy")

    if org_index.is_active_member(user.id, marking.marker_committee_id, session=sess):
        return AccessDecision(True, "marker_committee_member")

    return _deny(kind, item_id, user_id, "default_deny")


def _deny(kind: ItemKind, item_id: int, user_id, rule: str) -> AccessDecision:
    logger.debug(
        "Confidential access denied: %s/%s user=%s rule=%s",
        kind.value, item_id, user_id, rule,
        extra={"item_kind": kind.value, "item_id": item_id, "actor_user_id": user_id},
    )
    return AccessDecision(False, rule)


def can_access(kind, item_id: int, user_id: int, session=None) -> bool:
    return explain_access(kind, item_id, user_id, session=session).allowed


# ── Bulk filters ─────────────────────────────────────────────────────────────


def _filter_accessible(kind: ItemKind, items, user_id: int, session=None) -> list:
    accessible = []
    for item in items:
        if not item.is_confidential:
            accessible.append(item)
            continue
        if can_access(kind, item.id, user_id, session=session):
            accessible.append(item)
    return accessible


def filter_accessible_reports(reports, user_id: int, session=None) -> list:
    return _filter_accessible(ItemKind.REPORT, reports, user_id, session)


def filter_accessible_directives(directives, user_id: int, session=None) -> list:
    return _filter_accessible(ItemKind.DIRECTIVE, directives, user_id, session)


def filter_accessible_meetings(meetings, user_id: int, session=None) -> list:
    return _filter_accessible(ItemKind.MEETING, meetings, user_id, session)
