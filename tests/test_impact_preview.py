"""
Impact preview: retain / lose classification, grants ignored, deadline and cancellation.
"""

import threading

import pytest

from reporting.core.exceptions import PreviewCancelledError
from reporting.models import db
from reporting.services import confidentiality_service as svc
from reporting.services.impact_preview import ImpactPreview, preview_impact


def _ids(users):
    return {u.id for u in users}


def test_preview_without_rank_requirement(org):
    preview = preview_impact("report", org.report.id, org.functions_a.id)

    assert _ids(preview.retain) == {
        org.admin.id, org.chairman.id,
        org.author.id, org.peer.id,
        org.director_a.id, org.director_b.id,
    }
    assert _ids(preview.lose) == {
        org.co_senior.id, org.co_mid.id, org.co_unranked.id,
        org.sibling.id, org.outsider.id,
    }


def test_preview_with_rank_requirement(org):
    preview = preview_impact("report", org.report.id, org.functions_a.id, min_chairman_office_rank=2)

    assert org.co_senior.id in _ids(preview.retain)
    assert org.co_mid.id in _ids(preview.lose)
    assert org.co_unranked.id in _ids(preview.lose)


def test_preview_is_a_partition_of_active_users(org, make_user):
    make_user("Inactive", is_active=False)
    db.session.commit()

    preview = preview_impact("report", org.report.id, org.functions_a.id)
    retain, lose = _ids(preview.retain), _ids(preview.lose)
    assert retain.isdisjoint(lose)
    assert len(retain | lose) == 11


def test_preview_moves_shadow_to_lose(org, add_shadow):
    add_shadow(org.peer, org.author, org.functions_a)
    add_shadow(org.chairman, org.author, org.functions_a)
    db.session.commit()

    preview = preview_impact("report", org.report.id, org.functions_a.id)
    assert org.peer.id in _ids(preview.lose)
    assert org.chairman.id in _ids(preview.retain)


def test_preview_ignores_existing_grants(org):
    svc.grant_access("report", org.report.id, org.outsider.id, org.author.id)
    preview = preview_impact("report", org.report.id, org.functions_a.id)
    assert org.outsider.id in _ids(preview.lose)


def test_preview_ignores_ended_membership(org, add_membership):
    from datetime import datetime, timedelta, timezone

    add_membership(
        org.outsider, org.top,
        effective_to=datetime.now(timezone.utc) - timedelta(days=1),
    )
    db.session.commit()
    preview = preview_impact("report", org.report.id, org.functions_a.id)
    assert org.outsider.id in _ids(preview.lose)


def test_preview_unknown_committee_is_empty(org):
    preview = preview_impact("report", org.report.id, 987654)
    assert preview.retain == []
    assert preview.lose == []


def test_preview_to_dict(org):
    d = preview_impact("report", org.report.id, org.functions_a.id).to_dict()
    assert d["retain_count"] == 6
    assert d["lose_count"] == 5
    assert set(d["retain"][0]) == {"id", "name", "system_role"}


def test_preview_does_not_write(org):
    preview_impact("report", org.report.id, org.functions_a.id)
    assert svc.get_active_marking("report", org.report.id) is None
    assert svc.get_access_grants("report", org.report.id) == []


def test_preview_cancelled_before_start(org):
    event = threading.Event()
    event.set()
    with pytest.raises(PreviewCancelledError) as excinfo:
        preview_impact("report", org.report.id, org.functions_a.id, cancel_event=event)
    assert excinfo.value.reason == "cancelled"
    assert excinfo.value.processed == 0


class _CancelAfter:
    """Event stand-in that reports set after ``n`` checks."""

    def __init__(self, n):
        self.remaining = n

    def is_set(self):
        if self.remaining <= 0:
            return True
        self.remaining -= 1
        return False


def test_preview_cancelled_midway(org):
    with pytest.raises(PreviewCancelledError) as excinfo:
        preview_impact("report", org.report.id, org.functions_a.id, cancel_event=_CancelAfter(3))
    assert excinfo.value.processed == 3


def test_preview_times_out(org):
    with pytest.raises(PreviewCancelledError) as excinfo:
        preview_impact("report", org.report.id, org.functions_a.id, timeout_seconds=1e-9)
    assert excinfo.value.reason == "timeout"


def test_empty_preview_dataclass():
    assert ImpactPreview().to_dict() == {"retain": [], "lose": [], "retain_count": 0, "lose_count": 0}


@pytest.mark.parametrize("bad_rank", [0, "abc", False])
def test_preview_rejects_invalid_rank(org, bad_rank):
    from reporting.core.exceptions import ValidationError

    with pytest.raises(ValidationError):
        preview_impact("report", org.report.id, org.functions_a.id, min_chairman_office_rank=bad_rank)


def test_preview_accepts_rank_as_string(org):
    preview = preview_impact("report", org.report.id, org.functions_a.id, min_chairman_office_rank="2")
    assert org.co_senior.id in _ids(preview.retain)
