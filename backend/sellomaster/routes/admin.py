# Overview: Flask API routes for users, cities, settings and backups.

"""
Administration routes

Reads of cities and settings are open to any authenticated user (the
frontend needs them to render forms); every write requires ADMIN.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN
from ..services import auth_service, backup_service, settings_service, site_service
from ..services.auth_service import AuthError
from ..services.backup_service import BackupError
from ..services.concurrency import commit_with_retry
from ..services.settings_service import SettingsError
from ..services.site_service import SiteError


admin_bp = Blueprint("admin", __name__, url_prefix="/api")


def _unexpected(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


# -----------------------------------------------------------------------------
# Users
# -----------------------------------------------------------------------------

@admin_bp.get("/users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    users = auth_service.list_users(city=request.args.get("city") or None)
    return jsonify({"users": [user.to_dict() for user in users]}), 200


@admin_bp.post("/users")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """
    Request body:
    {
        "username": str,
        "password": str,
        "fullName": str,
        "city": str,
        "role": "ADMIN" | "GESTOR"
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        user = commit_with_retry(lambda: auth_service.create_user(
            username=data.get("username"),
            password=data.get("password"),
            full_name=data.get("fullName"),
            city=data.get("city"),
            role=data.get("role") or "GESTOR",
        ))
        return jsonify({"user": user.to_dict()}), 201
    except AuthError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        return _unexpected("Failed to create user")


@admin_bp.put("/users/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = commit_with_retry(lambda: auth_service.update_user(
            user_id,
            full_name=data.get("fullName"),
            city=data.get("city"),
            role=data.get("role"),
            password=data.get("password"),
            is_active=data.get("isActive"),
        ))
        return jsonify({"user": user.to_dict()}), 200
    except AuthError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        return _unexpected("Failed to update user")


# -----------------------------------------------------------------------------
# Cities
# -----------------------------------------------------------------------------

@admin_bp.get("/cities")
@require_auth
def list_cities_route():
    return jsonify({"cities": site_service.city_names()}), 200


@admin_bp.post("/cities")
@require_auth
@require_role(ROLE_ADMIN)
def add_city_route():
    data = request.get_json(silent=True) or {}
    try:
        city = commit_with_retry(lambda: site_service.add_city(data.get("name")))
        return jsonify({"city": city.to_dict()}), 201
    except SiteError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        return _unexpected("Failed to add city")


@admin_bp.put("/cities/<name>")
@require_auth
@require_role(ROLE_ADMIN)
def rename_city_route(name: str):
    """Rename a city; seals and users follow (best effort, see site_service)."""
    data = request.get_json(silent=True) or {}
    try:
        result = site_service.rename_city(name, data.get("name"))
        return jsonify(result), 200
    except SiteError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        return _unexpected("Failed to rename city")


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------

@admin_bp.get("/settings")
@require_auth
def get_settings_route():
    return jsonify({"settings": settings_service.get_settings()}), 200


@admin_bp.put("/settings")
@require_auth
@require_role(ROLE_ADMIN)
def update_settings_route():
    data = request.get_json(silent=True) or {}
    try:
        username = g.current_user.username
        settings = commit_with_retry(lambda: settings_service.update_settings(data, updated_by=username))
        return jsonify({"settings": settings}), 200
    except SettingsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        return _unexpected("Failed to update settings")


# -----------------------------------------------------------------------------
# Backup
# -----------------------------------------------------------------------------

@admin_bp.get("/backup")
@require_auth
@require_role(ROLE_ADMIN)
def export_backup_route():
    return jsonify(backup_service.export_snapshot()), 200


@admin_bp.post("/backup/restore")
@require_auth
@require_role(ROLE_ADMIN)
def restore_backup_route():
    """Replace the whole store with the posted snapshot. Existing sessions end."""
    snapshot = request.get_json(silent=True)
    try:
        result = commit_with_retry(lambda: backup_service.restore_snapshot(snapshot))
        return jsonify({"restored": result}), 200
    except BackupError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        return _unexpected("Failed to restore backup")
