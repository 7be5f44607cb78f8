"""
Polymorphic item references for the confidentiality engine.

A markable item is addressed as ``ItemRef(kind, item_id)``. Each kind has one
adapter that knows how to load the row, who owns it, which committee it
belongs to and how to flip its ``is_confidential`` flag. Callers resolve the
adapter once via ``adapter_for(kind)`` instead of branching on the kind.

Usage:
    ref = ItemRef.of("report", 42)
    adapter = adapter_for(ref.kind)
    report = adapter.load(ref.item_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from reporting.core.exceptions import ValidationError
from reporting.models import db
from reporting.models.items import Directive, Meeting, Report


class ItemKind(str, Enum):
    REPORT = "report"
    DIRECTIVE = "directive"
    MEETING = "meeting"


def parse_item_kind(value) -> ItemKind:
    """Coerce ``value`` to ItemKind; raises ValidationError for unknown kinds."""
    if isinstance(value, ItemKind):
        return value
    try:
        return ItemKind(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Unknown item kind '{value}'",
            details={"valid_kinds": sorted(k.value for k in ItemKind)},
        ) from None


@dataclass(frozen=True)
class ItemRef:
    kind: ItemKind
    item_id: int

    @classmethod
    def of(cls, kind, item_id: int) -> "ItemRef":
        return cls(parse_item_kind(kind), int(item_id))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.item_id}"


class _ItemAdapter:
    """Capability interface implemented once per item kind."""

    model = None
    owner_field = ""
    committee_field = ""

    def load(self, item_id: int, session=None):
        return (session or db.session).get(self.model, item_id)

    def owner_id(self, item) -> int | None:
        return getattr(item, self.owner_field, None)

    def committee_id(self, item) -> int | None:
        return getattr(item, self.committee_field, None)

    def set_confidential_flag(self, item, is_confidential: bool) -> None:
        item.is_confidential = is_confidential


class ReportAdapter(_ItemAdapter):
    model = Report
    owner_field = "author_id"
    committee_field = "committee_id"


class DirectiveAdapter(_ItemAdapter):
    model = Directive
    owner_field = "issuer_id"
    committee_field = "target_committee_id"


class MeetingAdapter(_ItemAdapter):
    model = Meeting
    owner_field = "moderator_id"
    committee_field = "committee_id"


_ADAPTERS: dict[ItemKind, _ItemAdapter] = {
    ItemKind.REPORT: ReportAdapter(),
    ItemKind.DIRECTIVE: DirectiveAdapter(),
    ItemKind.MEETING: MeetingAdapter(),
}


def adapter_for(kind) -> _ItemAdapter:
    return _ADAPTERS[parse_item_kind(kind)]


def owning_committee_id(kind, item_id: int, session=None) -> int | None:
    """Committee that owns the item, or None when the item does not exist."""
    adapter = adapter_for(kind)
    item = adapter.load(item_id, session)
    if item is None:
        return None
    return adapter.committee_id(item)
