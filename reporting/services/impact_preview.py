"""
Impact Preview Engine — who keeps and who loses access if an item is marked.

Runs the structural part of the access rule chain against every active user
as though the marking already existed:

    chairman / system_admin                 -> retain
    active shadow on ``committee_id``       -> lose
    chairman_office with a rank requirement -> retain iff rank <= min
    member of ``committee_id``              -> retain
    member of a strictly higher level       -> retain
    anyone else                             -> lose

Known approximation: existing explicit grants are NOT consulted, so a user
who holds a grant from an earlier marking cycle is still reported under
``lose``.

The pass is O(active users) and read-only. It honours a deadline and an
optional ``threading.Event`` and raises PreviewCancelledError when either
fires.
"""

import logging
import time
from dataclasses import dataclass, field

from sqlalchemy import select

from reporting.core.exceptions import PreviewCancelledError
from reporting.models import db
from reporting.models.organization import CHAIRMAN_OFFICE, Committee, User
from reporting.services import org_index
from reporting.services.access_decision import PRIVILEGED_ROLES, rank_satisfies
from reporting.services.confidentiality_service import validate_min_rank
from reporting.services.item_refs import parse_item_kind

logger = logging.getLogger(__name__)


@dataclass
class ImpactPreview:
    retain: list = field(default_factory=list)
    lose: list = field(default_factory=list)

    def to_dict(self) -> dict:
        def _summary(u):
            return {"id": u.id, "name": u.name, "system_role": u.system_role}

        return {
            "retain": [_summary(u) for u in self.retain],
            "lose": [_summary(u) for u in self.lose],
            "retain_count": len(self.retain),
            "lose_count": len(self.lose),
        }


def _user_retains(user, committee: Committee, shadow_ids: set[int], min_rank) -> bool:
    if user.system_role in PRIVILEGED_ROLES:
        return True
    if user.id in shadow_ids:
        return False
    if user.system_role == CHAIRMAN_OFFICE and min_rank is not None:
        return rank_satisfies(user.chairman_office_rank, min_rank)

    current = [m for m in user.memberships if m.is_current]
    if any(m.committee_id == committee.id for m in current):
        return True
    return any(m.committee.hierarchy_level < committee.hierarchy_level for m in current)


def preview_impact(
    kind,
    item_id: int,
    committee_id: int,
    min_chairman_office_rank: int | None = None,
    *,
    timeout_seconds: float | None = None,
    cancel_event=None,
    session=None,
) -> ImpactPreview:
    """
    Classify every active user into retain / lose for a hypothetical marking.

    Returns an empty preview when the committee does not exist.

    Raises:
        ValidationError: min_chairman_office_rank is not a positive integer.
        PreviewCancelledError: cancel_event was set or the deadline passed.
    """
    sess = session or db.session
    kind = parse_item_kind(kind)
    min_rank = validate_min_rank(min_chairman_office_rank)

    committee = sess.get(Committee, committee_id)
    if committee is None:
        return ImpactPreview()

    deadline = time.monotonic() + timeout_seconds if timeout_seconds else None
    shadow_ids = org_index.active_shadow_user_ids(committee.id, session=sess)
    users = sess.execute(
        select(User).where(User.is_active.is_(True)).order_by(User.id)
    ).scalars()

    preview = ImpactPreview()
    processed = 0
    for user in users:
        if cancel_event is not None and cancel_event.is_set():
            raise PreviewCancelledError(processed, reason="cancelled")
        if deadline is not None and time.monotonic() > deadline:
            logger.warning(
                "Impact preview for %s/%s timed out after %d users",
                kind.value, item_id, processed,
                extra={"item_kind": kind.value, "item_id": item_id},
            )
            raise PreviewCancelledError(processed, reason="timeout")

        if _user_retains(user, committee, shadow_ids, min_rank):
            preview.retain.append(user)
        else:
            preview.lose.append(user)
        processed += 1

    logger.debug(
        "Impact preview %s/%s committee=%s: retain=%d lose=%d",
        kind.value, item_id, committee.id, len(preview.retain), len(preview.lose),
    )
    return preview
