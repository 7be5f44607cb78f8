"""
Access decision rule chain.

Covers:
  - unmarked items are visible to everyone, including unknown users
  - privileged roles (chairman, system_admin) always see marked items
  - shadow denial beats an explicit grant (regression: keep this order)
  - explicit grants override hierarchy and rank rules
  - Chairman's Office rank rule (equality allowed, short-circuits hierarchy)
  - strict hierarchy rule: same level in another committee is denied
  - marker-committee (peer) access, ended memberships, inactive users
  - bulk filters keep order and skip non-confidential items
"""

from datetime import datetime, timedelta, timezone

import pytest

from reporting.models import db
from reporting.services import confidentiality_service as svc
from reporting.services.access_decision import (
    can_access,
    explain_access,
    filter_accessible_directives,
    filter_accessible_meetings,
    filter_accessible_reports,
)


def _mark_report(org, **kw):
    return svc.mark_as_confidential(
        "report", org.report.id, org.author.id, org.functions_a.id, **kw
    )


# ── No marking ──────────────────────────────────────────────────────────────


def test_unmarked_item_is_visible_to_every_user(org):
    for user in (org.outsider, org.sibling, org.co_unranked, org.peer):
        assert can_access("report", org.report.id, user.id) is True


def test_unmarked_item_is_visible_even_to_unknown_user(org):
    decision = explain_access("report", org.report.id, 999999)
    assert decision.allowed is True
    assert decision.rule == "no_marking"


# ── User state ──────────────────────────────────────────────────────────────


def test_unknown_user_is_denied_on_marked_item(org):
    _mark_report(org)
    decision = explain_access("report", org.report.id, 999999)
    assert decision.allowed is False
    assert decision.rule == "user_inactive"


def test_inactive_user_is_denied_even_as_chairman(org, make_user):
    retired = make_user("Former Chairman", "chairman", is_active=False)
    db.session.commit()
    _mark_report(org)
    assert can_access("report", org.report.id, retired.id) is False


# ── Privileged roles ────────────────────────────────────────────────────────


@pytest.mark.parametrize("who", ["chairman", "admin"])
def test_privileged_roles_always_allowed(org, add_shadow, who):
    user = getattr(org, who)
    # Even a shadow assignment does not affect privileged roles.
    add_shadow(user, org.author, org.functions_a)
    db.session.commit()
    _mark_report(org, min_chairman_office_rank=1)

    decision = explain_access("report", org.report.id, user.id)
    assert decision.allowed is True
    assert decision.rule == "privileged_role"


# ── Shadow vs grant ─────────────────────────────────────────────────────────


def test_shadow_is_denied_even_with_explicit_grant(org, make_user, add_membership, add_shadow):
    stand_in = make_user("Stand In")
    add_membership(stand_in, org.functions_a)
    add_shadow(stand_in, org.author, org.functions_a)
    db.session.commit()
    _mark_report(org)
    svc.grant_access("report", org.report.id, stand_in.id, org.author.id, reason="needs it")

    decision = explain_access("report", org.report.id, stand_in.id)
    assert decision.allowed is False
    assert decision.rule == "shadow_denied"


def test_shadow_for_other_committee_is_not_denied(org, add_shadow):
    add_shadow(org.peer, org.sibling, org.functions_b)
    db.session.commit()
    _mark_report(org)
    assert explain_access("report", org.report.id, org.peer.id).rule == "marker_committee_member"


def test_expired_or_inactive_shadow_no_longer_denies(org, add_shadow):
    past = datetime.now(timezone.utc) - timedelta(days=10)
    add_shadow(org.peer, org.author, org.functions_a, effective_from=past, effective_to=past + timedelta(days=2))
    add_shadow(org.peer, org.author, org.functions_a, is_active=False)
    db.session.commit()
    _mark_report(org)
    assert can_access("report", org.report.id, org.peer.id) is True


def test_future_shadow_not_yet_in_force(org, add_shadow):
    future = datetime.now(timezone.utc) + timedelta(days=3)
    add_shadow(org.peer, org.author, org.functions_a, effective_from=future)
    db.session.commit()
    _mark_report(org)
    assert can_access("report", org.report.id, org.peer.id) is True


# ── Explicit grants ─────────────────────────────────────────────────────────


def test_grant_overrides_hierarchy(org):
    _mark_report(org)
    assert can_access("report", org.report.id, org.outsider.id) is False

    svc.grant_access("report", org.report.id, org.outsider.id, org.author.id)
    decision = explain_access("report", org.report.id, org.outsider.id)
    assert decision.allowed is True
    assert decision.rule == "explicit_grant"


def test_grant_overrides_chairman_office_rank(org):
    _mark_report(org, min_chairman_office_rank=1)
    assert can_access("report", org.report.id, org.co_mid.id) is False
    svc.grant_access("report", org.report.id, org.co_mid.id, org.author.id)
    assert can_access("report", org.report.id, org.co_mid.id) is True


def test_revoked_grant_no_longer_allows(org):
    _mark_report(org)
    grant = svc.grant_access("report", org.report.id, org.outsider.id, org.author.id)
    svc.revoke_access(grant.id, org.author.id)
    assert can_access("report", org.report.id, org.outsider.id) is False


def test_grant_on_other_item_kind_does_not_leak(org):
    _mark_report(org)
    # Same numeric id, different kind.
    svc.grant_access("meeting", org.report.id, org.outsider.id, org.author.id)
    assert can_access("report", org.report.id, org.outsider.id) is False


# ── Chairman's Office rank ──────────────────────────────────────────────────


@pytest.mark.parametrize(
    "min_rank, who, expected",
    [
        (1, "co_senior", True),     # 1 <= 1, equality allowed
        (2, "co_senior", True),
        (2, "co_mid", False),       # 3 > 2
        (3, "co_mid", True),        # 3 <= 3
        (4, "co_unranked", False),  # no rank at all
    ],
)
def test_chairman_office_rank_rule(org, min_rank, who, expected):
    _mark_report(org, min_chairman_office_rank=min_rank)
    decision = explain_access("report", org.report.id, getattr(org, who).id)
    assert decision.allowed is expected
    assert decision.rule == "chairman_office_rank"


def test_rank_rule_short_circuits_hierarchy(org, add_membership):
    # A CO user who also sits on the top committee is still bound by rank.
    add_membership(org.co_mid, org.top)
    db.session.commit()
    _mark_report(org, min_chairman_office_rank=2)
    assert can_access("report", org.report.id, org.co_mid.id) is False


def test_chairman_office_without_rank_requirement_uses_hierarchy(org, add_membership):
    _mark_report(org)
    assert can_access("report", org.report.id, org.co_senior.id) is False

    add_membership(org.co_senior, org.directors_b)
    db.session.commit()
    assert explain_access("report", org.report.id, org.co_senior.id).rule == "higher_hierarchy"


# ── Hierarchy & peer access ─────────────────────────────────────────────────


def test_higher_level_member_of_other_branch_is_allowed(org):
    _mark_report(org)
    decision = explain_access("report", org.report.id, org.director_b.id)
    assert decision.allowed is True
    assert decision.rule == "higher_hierarchy"


def test_same_level_in_different_committee_is_denied(org):
    _mark_report(org)
    decision = explain_access("report", org.report.id, org.sibling.id)
    assert decision.allowed is False
    assert decision.rule == "default_deny"


def test_marker_committee_member_is_allowed(org):
    _mark_report(org)
    decision = explain_access("report", org.report.id, org.peer.id)
    assert decision.allowed is True
    assert decision.rule == "marker_committee_member"


def test_ended_membership_does_not_count(org, add_membership):
    ended = add_membership(org.outsider, org.top)
    ended.effective_to = datetime.now(timezone.utc) - timedelta(days=1)
    db.session.commit()
    _mark_report(org)
    assert can_access("report", org.report.id, org.outsider.id) is False


def test_marker_level_is_a_snapshot(org):
    _mark_report(org)
    # Re-levelling the committee after marking does not change the outcome.
    org.functions_a.hierarchy_level = 0
    db.session.commit()
    assert can_access("report", org.report.id, org.director_b.id) is True


def test_report_42_scenario(make_user, make_committee, add_membership):
    c1 = make_committee("C1", 1)
    c2 = make_committee("C2", 2)
    owner = make_user("Owner")
    add_membership(owner, c2, role="head")
    user_a = make_user("User A")
    add_membership(user_a, c1)
    user_b = make_user("User B")
    add_membership(user_b, c2)
    user_c = make_user("User C")

    from reporting.models.items import Report
    db.session.add(Report(id=42, title="Report #42", committee_id=c2.id, author_id=owner.id))
    db.session.commit()

    svc.mark_as_confidential("report", 42, owner.id, c2.id)

    assert can_access("report", 42, user_a.id) is True
    assert can_access("report", 42, user_b.id) is True
    assert can_access("report", 42, user_c.id) is False


def test_unknown_kind_raises_validation_error(org):
    from reporting.core.exceptions import ValidationError

    with pytest.raises(ValidationError):
        can_access("memo", org.report.id, org.peer.id)


# ── Bulk filters ────────────────────────────────────────────────────────────


def test_filter_accessible_reports_keeps_order_and_public_items(org):
    from reporting.models.items import Report

    public = Report(title="Public", committee_id=org.functions_b.id, author_id=org.sibling.id)
    db.session.add(public)
    db.session.commit()
    _mark_report(org)

    reports = [public, org.report]
    assert filter_accessible_reports(reports, org.outsider.id) == [public]
    assert filter_accessible_reports(reports, org.peer.id) == [public, org.report]


def test_filter_accessible_directives_and_meetings(org):
    svc.mark_as_confidential("directive", org.directive.id, org.director_a.id, org.directors_a.id)
    svc.mark_as_confidential("meeting", org.meeting.id, org.author.id, org.functions_a.id)

    # functions_a peer is below directors_a (level 1) and not a member there.
    assert filter_accessible_directives([org.directive], org.peer.id) == []
    assert filter_accessible_directives([org.directive], org.director_a.id) == [org.directive]
    assert filter_accessible_meetings([org.meeting], org.peer.id) == [org.meeting]
    assert filter_accessible_meetings([org.meeting], org.sibling.id) == []
