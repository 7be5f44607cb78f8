"""
Audit-fact emission for confidentiality changes.

The engine does not store audit rows. Every mark, unmark, grant and revoke
produces one ``AuditFact`` after its transaction commits, and the fact is
handed to each registered sink (the audit-log module registers one at
startup). The default sink writes a structured log line.

Usage:
    from reporting.services.audit_facts import register_audit_sink

    register_audit_sink(my_audit_log_writer)   # callable(AuditFact) -> None
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("reporting.audit")

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ACTIONS = {
    "confidentiality.mark",
    "confidentiality.unmark",
    "confidentiality.grant",
    "confidentiality.revoke",
    "shadow.expired",
}


@dataclass(frozen=True)
class AuditFact:
    action: str
    actor_user_id: int | None
    item_kind: str
    item_id: int
    before: dict = field(default_factory=dict)
    after: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d


AuditSink = Callable[[AuditFact], None]


def log_sink(fact: AuditFact) -> None:
    audit_logger.info(
        "%s %s/%s by user %s",
        fact.action, fact.item_kind, fact.item_id, fact.actor_user_id,
        extra={
            "event_type": "audit",
            "item_kind": fact.item_kind,
            "item_id": fact.item_id,
            "actor_user_id": fact.actor_user_id,
        },
    )


_sinks: list[AuditSink] = [log_sink]
_sinks_lock = threading.Lock()


def register_audit_sink(sink: AuditSink) -> None:
    with _sinks_lock:
        if sink not in _sinks:
            _sinks.append(sink)


def unregister_audit_sink(sink: AuditSink) -> None:
    with _sinks_lock:
        if sink in _sinks:
            _sinks.remove(sink)


def emit_audit_fact(
    *,
    action: str,
    actor_user_id: int | None,
    item_kind: str,
    item_id: int,
    before: dict | None = None,
    after: dict | None = None,
    timestamp: datetime | None = None,
) -> AuditFact:
    """
    Build a fact and forward it to every sink.

    Call only after the business change has committed. A failing sink is
    logged and skipped; it cannot undo the committed change.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    fact = AuditFact(
        action=action,
        actor_user_id=actor_user_id,
        item_kind=getattr(item_kind, "value", item_kind),
        item_id=item_id,
        before=before or {},
        after=after or {},
        timestamp=timestamp or datetime.now(timezone.utc),
    )
    with _sinks_lock:
        sinks = list(_sinks)
    for sink in sinks:
        try:
            sink(fact)
        except Exception:
            logger.exception("Audit sink %r failed for %s", sink, fact.action)
    return fact
