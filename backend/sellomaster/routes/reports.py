# Overview: Flask API routes for dashboard figures and the movement log.

import io

from flask import Blueprint, request, jsonify, g, send_file

from ..decorators import require_auth
from ..services import import_service, reporting_service
from ..time_utils import utcnow


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    recent = request.args.get("recent", default=10, type=int)
    return jsonify(reporting_service.dashboard_summary(g.current_user, recent=max(recent, 0))), 200


@reports_bp.get("/movements")
@require_auth
def movements_route():
    """Flattened movement log, newest first. ?format=xlsx downloads it."""
    limit = request.args.get("limit", type=int)
    movements = reporting_service.movement_log(g.current_user, limit=limit)

    if request.args.get("format") == "xlsx":
        return send_file(
            io.BytesIO(import_service.export_movements(movements)),
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            as_attachment=True,
            download_name=f"historial_{utcnow():%Y%m%d}.xlsx",
        )

    return jsonify({"movements": movements, "count": len(movements)}), 200
