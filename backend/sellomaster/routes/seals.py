# Overview: Flask API routes for seals; parses input and returns JSON responses.

"""
Seal API routes

Validation failures return the structured body of SealError.to_dict():
    {"error": str, "kind": str, "ids": [...], "fields": [...]}
"""

import io

from flask import Blueprint, request, jsonify, g, current_app, send_file

from ..extensions import db
from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN
from ..services import import_service, seal_service
from ..services import transition_policy as policy
from ..services.concurrency import commit_with_retry
from ..services.import_service import SealImportError
from ..services.seal_service import SealError
from ..time_utils import end_of_day, is_date_only, parse_iso_datetime, utcnow


seals_bp = Blueprint("seals", __name__, url_prefix="/api/seals")


def _error_response(exc: SealError):
    db.session.rollback()
    return jsonify(exc.to_dict()), exc.status_code


def _unexpected(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def _filters_from_args() -> dict:
    raw_to = request.args.get("date_to")
    date_to = parse_iso_datetime(raw_to)
    if date_to is not None and is_date_only(raw_to):
        date_to = end_of_day(date_to)
    return {
        "seal_id": request.args.get("id") or None,
        "status": request.args.get("status") or None,
        "seal_type": request.args.get("type") or None,
        "date_from": parse_iso_datetime(request.args.get("date_from")),
        "date_to": date_to,
        "city": request.args.get("city") or None,
    }


def _movement_input(data: dict):
    """Return (status, fields, request_date) or raise ValueError on malformed input."""
    status = data.get("status")
    if status is None:
        status = ""
    if not isinstance(status, str):
        raise ValueError("status must be a string")
    fields = data.get("fields")
    if fields is None:
        fields = {}
    if not isinstance(fields, dict):
        raise ValueError("fields must be an object")
    try:
        request_date = parse_iso_datetime(data.get("date"))
    except (TypeError, ValueError):
        raise ValueError("date must be ISO-8601") from None
    return status.strip().upper(), fields, request_date


@seals_bp.get("")
@require_auth
def list_seals_route():
    """
    List seals visible to the caller.

    Query args: id (substring), status, type, date_from, date_to, city (ADMIN only),
    history=1 to include movement history.
    """
    try:
        seals = seal_service.list_seals(g.current_user, **_filters_from_args())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    include_history = request.args.get("history", "").lower() in {"1", "true", "yes"}
    return jsonify({
        "seals": [seal.to_dict(include_history=include_history) for seal in seals],
        "count": len(seals),
    }), 200


@seals_bp.post("")
@require_auth
def create_seal_route():
    """
    Register a new seal.

    Request body:
    {
        "id": str,
        "type": str,
        "city": str (optional, ADMIN only)
    }

    Returns:
        201: Seal created
        400: Invalid id or type
        403: City outside the caller's site
        409: Duplicate id
    """
    data = request.get_json(silent=True) or {}

    try:
        seal = commit_with_retry(lambda: seal_service.create_seal(
            data.get("id"),
            data.get("type"),
            g.current_user,
            city=data.get("city"),
        ))
        return jsonify({"seal": seal.to_dict()}), 201

    except SealError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to create seal")


@seals_bp.get("/transitions")
@require_auth
def transitions_route():
    """Transition table with required and optional fields per target status."""
    return jsonify({"transitions": policy.describe()}), 200


@seals_bp.post("/resolve")
@require_auth
def resolve_route():
    """
    Pre-validate a batch of ids before offering a movement.

    Request body: {"ids": [str, ...]}

    The response adds the common status and the reachable statuses when
    every id resolved and the seals share a status.
    """
    data = request.get_json(silent=True) or {}
    ids = data.get("ids") or []
    if not isinstance(ids, list):
        return jsonify({"error": "ids must be a list"}), 400

    resolution = seal_service.resolve_batch(ids, seal_service.visible_city(g.current_user))
    body = resolution.to_dict()
    body["ok"] = resolution.ok

    if resolution.ok:
        try:
            common = seal_service.validate_batch_consistency(resolution.found)
        except SealError as e:
            body["ok"] = False
            body["consistency"] = e.to_dict()
        else:
            body["status"] = common
            body["next"] = [s for s in policy.STATUSES if s in policy.allowed_next(common)]

    return jsonify(body), 200


@seals_bp.put("/movement")
@require_auth
def move_seals_route():
    """
    Batch movement (all or nothing).

    Request body:
    {
        "ids": [str, ...],
        "status": str,
        "fields": {"assignedTo": str, ...},
        "date": ISO-8601 (optional request timestamp; a re-send with the
                 same date is ignored. The movement itself is stamped
                 with the server clock.)
    }

    Returns:
        200: Seals moved
        400: Malformed body, mixed statuses, illegal transition or missing fields
        403: Seals from another site
        404: Unknown ids
    """
    data = request.get_json(silent=True) or {}
    ids = data.get("ids") or []
    if not isinstance(ids, list):
        return jsonify({"error": "ids must be a list"}), 400

    try:
        status, fields, request_date = _movement_input(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        seals = commit_with_retry(lambda: seal_service.move_seals(
            ids,
            status,
            fields,
            g.current_user,
            request_date=request_date,
        ))
        return jsonify({"seals": [seal.to_dict() for seal in seals], "count": len(seals)}), 200

    except SealError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to move seals")


@seals_bp.get("/export")
@require_auth
def export_route():
    """XLSX export of the seals visible to the caller (same filters as listing)."""
    try:
        seals = seal_service.list_seals(g.current_user, **_filters_from_args())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    content = import_service.export_seals(seals)
    return send_file(
        io.BytesIO(content),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=f"precintos_{utcnow():%Y%m%d}.xlsx",
    )


@seals_bp.post("/import")
@require_auth
def import_route():
    """
    Bulk registration from a CSV/JSON/XLSX upload (multipart field "file").

    Duplicate ids are skipped and counted; the rest of the file still imports.
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    upload = request.files["file"]
    try:
        rows = import_service.read_rows(upload.filename or "", upload.stream)
    except (SealImportError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    try:
        result = commit_with_retry(
            lambda: import_service.import_seals(rows, g.current_user, city=request.form.get("city"))
        )
        return jsonify(result.to_dict()), 200
    except Exception:
        return _unexpected("Failed to import seals")


@seals_bp.get("/<seal_id>")
@require_auth
def get_seal_route(seal_id: str):
    try:
        seal = seal_service.get_seal(seal_id, g.current_user)
    except SealError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"seal": seal.to_dict()}), 200


@seals_bp.get("/<seal_id>/history")
@require_auth
def seal_history_route(seal_id: str):
    try:
        seal = seal_service.get_seal(seal_id, g.current_user)
    except SealError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({
        "id": seal.id,
        "status": seal.status,
        "history": [entry.to_dict() for entry in seal.history],
    }), 200


@seals_bp.put("/<seal_id>")
@require_auth
def move_seal_route(seal_id: str):
    """
    Single-seal movement.

    Request body: {"status": str, "fields": {...}, "date": ISO-8601 (optional)}
    """
    data = request.get_json(silent=True) or {}

    try:
        status, fields, request_date = _movement_input(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        seal = commit_with_retry(lambda: seal_service.transition_seal(
            seal_id,
            status,
            fields,
            g.current_user,
            request_date=request_date,
        ))
        return jsonify({"seal": seal.to_dict()}), 200

    except SealError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to move seal")


@seals_bp.delete("/<seal_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_seal_route(seal_id: str):
    """
    Permanently delete a seal and its history.

    Requires ?safe_mode=true (or {"safe_mode": true} in the body).
    """
    data = request.get_json(silent=True) or {}
    flag = request.args.get("safe_mode", data.get("safe_mode", False))
    safe_mode = flag is True or str(flag).lower() in {"1", "true", "yes"}

    try:
        commit_with_retry(lambda: seal_service.delete_seal(seal_id, g.current_user, safe_mode=safe_mode))
        return jsonify({"deleted": seal_service.normalize_seal_id(seal_id)}), 200

    except SealError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to delete seal")
