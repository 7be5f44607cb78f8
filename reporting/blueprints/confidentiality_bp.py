"""
Confidentiality Blueprint — marking, access checks, impact preview, grants.

Endpoints (``<kind>`` is report | directive | meeting):
    GET    /api/v1/confidentiality/<kind>/<item_id>/marking
    GET    /api/v1/confidentiality/<kind>/<item_id>/history
    POST   /api/v1/confidentiality/<kind>/<item_id>/mark
           Body: { "acting_user_id": <int>, "reason": "...",
                   "min_chairman_office_rank": <int optional> }
    POST   /api/v1/confidentiality/<kind>/<item_id>/unmark
           Body: { "acting_user_id": <int> }
    GET    /api/v1/confidentiality/<kind>/<item_id>/access?user_id=
    GET    /api/v1/confidentiality/<kind>/<item_id>/preview?user_id=&min_chairman_office_rank=
    GET    /api/v1/confidentiality/<kind>/<item_id>/grants?user_id=
    POST   /api/v1/confidentiality/<kind>/<item_id>/grants
           Body: { "acting_user_id": <int>, "granted_to_user_id": <int>, "reason": "..." }
    POST   /api/v1/confidentiality/grants/<grant_id>/revoke
           Body: { "acting_user_id": <int> }

The user is authenticated upstream; the acting user id is taken from the
JSON body (``acting_user_id``) or the query string (``user_id``).

Layer contract:
    - Blueprint: parse input, gate owner-only actions with
      can_user_mark_confidential, call the service, shape JSON.
    - NO db.session calls here; all writes are owned by the services.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from reporting import limiter
from reporting.core.exceptions import (
    ConflictError,
    NotFoundError,
    PreviewCancelledError,
    ValidationError,
)
from reporting.services import confidentiality_service as svc
from reporting.services.access_decision import explain_access
from reporting.services.impact_preview import preview_impact
from reporting.services.item_refs import parse_item_kind
from reporting.utils.errors import E, api_error

logger = logging.getLogger(__name__)

confidentiality_bp = Blueprint("confidentiality", __name__, url_prefix="/api/v1/confidentiality")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _acting_user_id(data: dict | None = None) -> int | None:
    data = data if data is not None else (request.get_json(silent=True) or {})
    raw = data.get("acting_user_id")
    if raw is None:
        raw = request.args.get("user_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _require_actor(data: dict | None = None):
    user_id = _acting_user_id(data)
    if user_id is None:
        return None, api_error(E.VALIDATION_REQUIRED, "acting_user_id (or ?user_id=) is required")
    return user_id, None


def _require_manager(kind, item_id: int, user_id: int):
    """403 unless the user owns the item or is a system_admin."""
    if not svc.can_user_mark_confidential(kind, item_id, user_id):
        return api_error(
            E.FORBIDDEN,
            "You do not have permission to manage confidentiality for this item.",
        )
    return None


def _preview_limit():
    return current_app.config.get("CONFIDENTIALITY_PREVIEW_RATE_LIMIT", "30 per minute")


# ── Error handlers ───────────────────────────────────────────────────────────


@confidentiality_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@confidentiality_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.BUSINESS_RULE, str(error), details=error.details)


@confidentiality_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_STATE, str(error))


@confidentiality_bp.errorhandler(PreviewCancelledError)
def _handle_preview_cancelled(error: PreviewCancelledError):
    return api_error(
        E.UNAVAILABLE, "Impact preview did not finish; try again later.",
        details={"reason": error.reason, "processed": error.processed},
    )


# ═════════════════════════════════════════════════════════════════════════
# Markings
# ═════════════════════════════════════════════════════════════════════════


@confidentiality_bp.route("/<kind>/<int:item_id>/marking", methods=["GET"])
def get_marking(kind: str, item_id: int):
    marking = svc.get_active_marking(parse_item_kind(kind), item_id)
    if marking is None:
        return api_error(E.NOT_FOUND, "No active confidentiality marking")
    return jsonify(marking.to_dict()), 200


@confidentiality_bp.route("/<kind>/<int:item_id>/history", methods=["GET"])
def get_history(kind: str, item_id: int):
    history = svc.get_marking_history(parse_item_kind(kind), item_id)
    return jsonify({"items": [m.to_dict() for m in history], "total": len(history)}), 200


@confidentiality_bp.route("/<kind>/<int:item_id>/mark", methods=["POST"])
def mark_item(kind: str, item_id: int):
    """Mark the item confidential in the context of its owning committee.

    Returns 201 with the new marking, 403 for non-owners, 422 when the item
    has no committee or the rank is invalid.
    """
    item_kind = parse_item_kind(kind)
    data = request.get_json(silent=True) or {}
    user_id, err = _require_actor(data)
    if err:
        return err
    err = _require_manager(item_kind, item_id, user_id)
    if err:
        return err

    committee = svc.get_item_committee(item_kind, item_id)
    if committee is None:
        return api_error(E.BUSINESS_RULE, "Could not determine the item's committee.")

    reason = (data.get("reason") or "").strip() or None
    if reason and len(reason) > 500:
        return api_error(E.VALIDATION_INVALID, "reason must be ≤ 500 characters")

    marking = svc.mark_as_confidential(
        item_kind, item_id, user_id, committee.id,
        reason=reason,
        min_chairman_office_rank=data.get("min_chairman_office_rank"),
    )
    return jsonify(marking.to_dict()), 201


@confidentiality_bp.route("/<kind>/<int:item_id>/unmark", methods=["POST"])
def unmark_item(kind: str, item_id: int):
    item_kind = parse_item_kind(kind)
    user_id, err = _require_actor()
    if err:
        return err

    result = svc.remove_confidential_marking(item_kind, item_id, user_id)
    if result is svc.MutationResult.NOT_FOUND:
        return api_error(E.NOT_FOUND, "No active confidentiality marking")
    if result is svc.MutationResult.UNAUTHORIZED:
        return api_error(
            E.FORBIDDEN,
            "Only the original marker or a system admin can remove this marking.",
        )
    return jsonify({"result": result.value}), 200


# ═════════════════════════════════════════════════════════════════════════
# Access decision & impact preview
# ═════════════════════════════════════════════════════════════════════════


@confidentiality_bp.route("/<kind>/<int:item_id>/access", methods=["GET"])
def check_access(kind: str, item_id: int):
    item_kind = parse_item_kind(kind)
    user_id, err = _require_actor({})
    if err:
        return err
    decision = explain_access(item_kind, item_id, user_id)
    body = decision.to_dict()
    body.update({"item_kind": item_kind.value, "item_id": item_id, "user_id": user_id})
    return jsonify(body), 200


@confidentiality_bp.route("/<kind>/<int:item_id>/preview", methods=["GET"])
@limiter.limit(_preview_limit)
def get_preview(kind: str, item_id: int):
    """Who would retain / lose access if the item were marked now."""
    item_kind = parse_item_kind(kind)
    user_id, err = _require_actor({})
    if err:
        return err
    err = _require_manager(item_kind, item_id, user_id)
    if err:
        return err

    committee = svc.get_item_committee(item_kind, item_id)
    if committee is None:
        return api_error(E.BUSINESS_RULE, "Could not determine the item's committee.")

    preview = preview_impact(
        item_kind, item_id, committee.id,
        request.args.get("min_chairman_office_rank"),
        timeout_seconds=current_app.config.get("CONFIDENTIALITY_PREVIEW_TIMEOUT_SECONDS"),
    )
    body = preview.to_dict()
    body["committee_id"] = committee.id
    return jsonify(body), 200


# ═════════════════════════════════════════════════════════════════════════
# Explicit access grants
# ═════════════════════════════════════════════════════════════════════════


@confidentiality_bp.route("/<kind>/<int:item_id>/grants", methods=["GET"])
def list_grants(kind: str, item_id: int):
    item_kind = parse_item_kind(kind)
    user_id, err = _require_actor({})
    if err:
        return err
    err = _require_manager(item_kind, item_id, user_id)
    if err:
        return err
    grants = svc.get_access_grants(item_kind, item_id)
    return jsonify({"items": [g.to_dict() for g in grants], "total": len(grants)}), 200


@confidentiality_bp.route("/<kind>/<int:item_id>/grants", methods=["POST"])
def create_grant(kind: str, item_id: int):
    item_kind = parse_item_kind(kind)
    data = request.get_json(silent=True) or {}
    user_id, err = _require_actor(data)
    if err:
        return err
    err = _require_manager(item_kind, item_id, user_id)
    if err:
        return err

    to_user_id = data.get("granted_to_user_id")
    if not isinstance(to_user_id, int) or isinstance(to_user_id, bool):
        return api_error(E.VALIDATION_REQUIRED, "granted_to_user_id (int) is required")

    grant = svc.grant_access(
        item_kind, item_id, to_user_id, user_id,
        reason=(data.get("reason") or "").strip() or None,
    )
    return jsonify(grant.to_dict()), 201


@confidentiality_bp.route("/grants/<int:grant_id>/revoke", methods=["POST"])
def revoke_grant(grant_id: int):
    user_id, err = _require_actor()
    if err:
        return err

    grant = svc.get_access_grant(grant_id)
    if grant is None:
        return api_error(E.NOT_FOUND, "Access grant not found")
    err = _require_manager(grant.item_kind, grant.item_id, user_id)
    if err:
        return err

    result = svc.revoke_access(grant_id, user_id)
    if not result:
        return api_error(E.NOT_FOUND, "Access grant not found or already revoked")
    return jsonify({"result": result.value}), 200
