"""
Shared pytest fixtures for the Committee Reporting test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - audit_facts: list collecting every AuditFact emitted during the test
    - org: a small committee tree with users, memberships and one item per kind
    - make_user / make_committee / add_membership / add_shadow: row builders
"""

from datetime import datetime, timedelta, timezone

import pytest

from reporting import create_app
from reporting.models import db as _db
from reporting.models.items import Directive, Meeting, Report
from reporting.models.organization import (
    CHAIRMAN,
    CHAIRMAN_OFFICE,
    MEMBER,
    SYSTEM_ADMIN,
    Committee,
    CommitteeMembership,
    ShadowAssignment,
    User,
)
from reporting.services.audit_facts import register_audit_sink, unregister_audit_sink


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def audit_facts():
    captured = []
    register_audit_sink(captured.append)
    yield captured
    unregister_audit_sink(captured.append)


# ── Builders ─────────────────────────────────────────────────────────────

_seq = iter(range(1, 100000))


def _make_user(name, system_role=MEMBER, chairman_office_rank=None, is_active=True):
    n = next(_seq)
    u = User(
        email=f"{name.lower().replace(' ', '.')}.{n}@org.test",
        name=name,
        system_role=system_role,
        chairman_office_rank=chairman_office_rank,
        is_active=is_active,
    )
    _db.session.add(u)
    _db.session.flush()
    return u


def _make_committee(name, level, parent=None):
    c = Committee(
        name=name,
        hierarchy_level=level,
        parent_committee_id=parent.id if parent is not None else None,
    )
    _db.session.add(c)
    _db.session.flush()
    return c


def _add_membership(user, committee, role="member", effective_to=None):
    m = CommitteeMembership(
        user_id=user.id,
        committee_id=committee.id,
        role=role,
        effective_to=effective_to,
    )
    _db.session.add(m)
    _db.session.flush()
    return m


def _add_shadow(shadow, principal, committee, is_active=True, effective_from=None, effective_to=None):
    sa = ShadowAssignment(
        principal_user_id=principal.id,
        shadow_user_id=shadow.id,
        committee_id=committee.id,
        is_active=is_active,
        effective_from=effective_from or datetime.now(timezone.utc) - timedelta(days=1),
        effective_to=effective_to,
    )
    _db.session.add(sa)
    _db.session.flush()
    return sa


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def make_committee():
    return _make_committee


@pytest.fixture()
def add_membership():
    return _add_membership


@pytest.fixture()
def add_shadow():
    return _add_shadow


class Org:
    """Namespace object returned by the ``org`` fixture."""


@pytest.fixture()
def org():
    """
    Committee tree:

        top (L0)
        ├── directors_a (L1)
        │   └── functions_a (L2)   <- owns report / directive / meeting
        └── directors_b (L1)
            └── functions_b (L2)
    """
    o = Org()
    o.top = _make_committee("General Secretariat", 0)
    o.directors_a = _make_committee("Directorate A", 1, o.top)
    o.directors_b = _make_committee("Directorate B", 1, o.top)
    o.functions_a = _make_committee("Functions A", 2, o.directors_a)
    o.functions_b = _make_committee("Functions B", 2, o.directors_b)

    o.admin = _make_user("Sys Admin", SYSTEM_ADMIN)
    o.chairman = _make_user("The Chairman", CHAIRMAN)
    o.co_senior = _make_user("Chief of Staff", CHAIRMAN_OFFICE, chairman_office_rank=1)
    o.co_mid = _make_user("Executive Coordinator", CHAIRMAN_OFFICE, chairman_office_rank=3)
    o.co_unranked = _make_user("Office Clerk", CHAIRMAN_OFFICE)

    o.author = _make_user("Report Author")
    _add_membership(o.author, o.functions_a, role="head")
    o.peer = _make_user("Functions A Peer")
    _add_membership(o.peer, o.functions_a)
    o.director_a = _make_user("Director A")
    _add_membership(o.director_a, o.directors_a, role="head")
    o.director_b = _make_user("Director B")
    _add_membership(o.director_b, o.directors_b, role="head")
    o.sibling = _make_user("Functions B Head")
    _add_membership(o.sibling, o.functions_b, role="head")
    o.outsider = _make_user("No Memberships")

    o.report = Report(title="Quarterly risk report", committee_id=o.functions_a.id, author_id=o.author.id)
    o.directive = Directive(title="Budget freeze", target_committee_id=o.functions_a.id, issuer_id=o.director_a.id)
    o.meeting = Meeting(title="Restructuring session", committee_id=o.functions_a.id, moderator_id=o.author.id)
    _db.session.add_all([o.report, o.directive, o.meeting])
    _db.session.commit()
    return o
