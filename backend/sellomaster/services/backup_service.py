# Overview: Full-store JSON snapshot export and replace-all restore.

"""
Backup format:

    {
        "seals":      [Seal.to_dict() with history],
        "users":      [User.to_dict(include_password_hash=True)],
        "cities":     ["BOGOTÁ", ...],
        "settings":   {"title": ..., "logo": ..., "sealTypes": [...], "themeColor": ...},
        "exportedAt": "2026-01-01T00:00:00Z"
    }

Restore replaces the whole store. There is no merge: whatever the store
held before is gone afterwards.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import City, Seal, SealMovement, SessionToken, User
from sellomaster.time_utils import parse_iso_datetime, to_utc_z, utcnow
from . import settings_service, site_service
from . import transition_policy as policy
from .seal_service import check_history, normalize_seal_id

logger = logging.getLogger(__name__)

SNAPSHOT_KEYS = ("seals", "users", "cities", "settings")


class BackupError(ValueError):
    """Raised when a snapshot is malformed or inconsistent."""
    pass


def export_snapshot(*, include_password_hashes: bool = True) -> dict:
    seals = db.session.query(Seal).order_by(Seal.id).all()
    users = db.session.query(User).order_by(User.id).all()
    return {
        "seals": [seal.to_dict() for seal in seals],
        "users": [user.to_dict(include_password_hash=include_password_hashes) for user in users],
        "cities": site_service.city_names(),
        "settings": settings_service.get_settings(),
        "exportedAt": to_utc_z(utcnow()),
    }


def _required_datetime(value, label: str):
    try:
        parsed = parse_iso_datetime(value)
    except (TypeError, ValueError):
        parsed = None
    if parsed is None:
        raise BackupError(f"{label}: invalid or missing date {value!r}")
    return parsed


def _optional_datetime(value, label: str):
    if value in (None, ""):
        return None
    return _required_datetime(value, label)


def _build_seal(data: dict) -> Seal:
    sid = normalize_seal_id(data.get("id"))
    if not sid:
        raise BackupError("Seal without id in snapshot")
    status = data.get("status")
    if status not in policy.VALID_STATUSES:
        raise BackupError(f"{sid}: unknown status {status!r}")

    seal = Seal(
        id=sid,
        type=str(data.get("type") or ""),
        status=status,
        city=str(data.get("city") or "").upper(),
        creation_date=_required_datetime(data.get("creationDate"), sid),
        last_movement=_required_datetime(data.get("lastMovement"), sid),
        entry_user=str(data.get("entryUser") or ""),
    )
    for name, attr in policy.OPERATIONAL_FIELDS.items():
        setattr(seal, attr, data.get(name) or None)

    movements = []
    for entry in data.get("history") or []:
        from_status = entry.get("fromStatus")
        to_status = entry.get("toStatus")
        if to_status not in policy.VALID_STATUSES or (
            from_status is not None and from_status not in policy.VALID_STATUSES
        ):
            raise BackupError(f"{sid}: history entry with unknown status")
        movement = SealMovement(
            date=_required_datetime(entry.get("date"), sid),
            from_status=from_status,
            to_status=to_status,
            user=str(entry.get("user") or ""),
            details=str(entry.get("details") or ""),
            request_date=_optional_datetime(entry.get("requestDate"), sid),
        )
        movement.fields = entry.get("fields") or None
        movements.append(movement)

    problems = check_history(sid, status, movements)
    if problems:
        raise BackupError("; ".join(problems))

    # Snapshot history is newest-first; insert oldest first so row ids follow time
    for movement in reversed(movements):
        seal.history.append(movement)
    return seal


def _build_user(data: dict) -> User:
    password_hash = data.get("passwordHash")
    if not password_hash:
        raise BackupError(f"User {data.get('username')!r} has no password hash; export with hashes to restore")
    return User(
        id=data.get("id"),
        username=str(data.get("username") or "").upper(),
        full_name=data.get("fullName") or data.get("username"),
        password_hash=password_hash,
        role=data.get("role") or "GESTOR",
        city=str(data.get("city") or "").upper(),
        is_active=bool(data.get("isActive", True)),
    )


def restore_snapshot(snapshot: dict) -> dict:
    """
    Replace seals, users, cities and settings with the snapshot content.

    The snapshot is fully validated before anything is deleted. The caller
    commits (or rolls back) the session.
    """
    if not isinstance(snapshot, dict):
        raise BackupError("Snapshot must be a JSON object")
    missing = [key for key in SNAPSHOT_KEYS if key not in snapshot]
    if missing:
        raise BackupError(f"Snapshot missing keys: {', '.join(missing)}")

    seals = [_build_seal(item) for item in snapshot["seals"] or []]
    seal_ids = [seal.id for seal in seals]
    if len(seal_ids) != len(set(seal_ids)):
        raise BackupError("Snapshot contains duplicate seal ids")
    users = [_build_user(item) for item in snapshot["users"] or []]
    cities = [site_service.normalize_city_name(name) for name in snapshot["cities"] or []]

    db.session.query(SessionToken).delete()
    db.session.query(SealMovement).delete()
    db.session.query(Seal).delete()
    db.session.query(User).delete()
    db.session.query(City).delete()
    db.session.flush()

    db.session.add_all(City(name=name) for name in dict.fromkeys(cities) if name)
    db.session.add_all(users)
    db.session.add_all(seals)
    settings_service.replace_settings(snapshot["settings"] or {})
    db.session.flush()
    # In-memory history lists were built oldest-first
    db.session.expire_all()

    logger.warning(
        "Store restored from snapshot exported at %s: %d seals, %d users, %d cities",
        snapshot.get("exportedAt"), len(seals), len(users), len(cities),
    )
    return {"seals": len(seals), "users": len(users), "cities": len(set(cities))}
