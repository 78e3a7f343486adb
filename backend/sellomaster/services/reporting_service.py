# Overview: Dashboard figures and the flattened movement log.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Seal, SealMovement, User
from sellomaster.time_utils import to_utc_z
from . import site_service
from . import transition_policy as policy
from .seal_service import visible_city

AVAILABLE = (policy.ENTRADA_INVENTARIO, policy.NO_INSTALADO)
ASSIGNED = (policy.ASIGNADO, policy.ENTREGADO)
FINALIZED = (policy.INSTALADO, policy.SALIDA_FABRICA)


def status_counts(city: str | None = None) -> dict[str, int]:
    q = db.session.query(Seal.status, func.count(Seal.id))
    if city is not None:
        q = q.filter(Seal.city == city)
    counts = {status: 0 for status in policy.STATUSES}
    for status, count in q.group_by(Seal.status).all():
        counts[status] = count
    return counts


def seals_per_city() -> list[dict]:
    """Seal count for every known city, including empty ones."""
    counts = dict(
        db.session.query(Seal.city, func.count(Seal.id)).group_by(Seal.city).all()
    )
    names = site_service.city_names()
    for name in counts:
        if name not in names:
            names.append(name)
    return [{"name": name, "count": counts.get(name, 0)} for name in names]


def movement_log(viewer: User, *, limit: int | None = None) -> list[dict]:
    """
    Every movement of the seals visible to viewer, newest first,
    flattened with seal_id and city.
    """
    q = db.session.query(SealMovement, Seal.city).join(Seal, Seal.id == SealMovement.seal_id)
    scope = visible_city(viewer)
    if scope is not None:
        q = q.filter(Seal.city == scope)
    q = q.order_by(SealMovement.date.desc(), SealMovement.id.desc())
    if limit is not None:
        q = q.limit(limit)

    rows = []
    for movement, city in q.all():
        entry = movement.to_dict()
        entry["sealId"] = movement.seal_id
        entry["city"] = city
        rows.append(entry)
    return rows


def dashboard_summary(viewer: User, *, recent: int = 10) -> dict:
    """
    Site totals for the viewer's own city, per-city counts across all
    sites, and the latest movements the viewer may see.
    """
    counts = status_counts(viewer.city)
    return {
        "city": viewer.city,
        "lastMovement": to_utc_z(
            db.session.query(func.max(Seal.last_movement)).filter(Seal.city == viewer.city).scalar()
        ),
        "totals": {
            "total": sum(counts.values()),
            "available": sum(counts[s] for s in AVAILABLE),
            "assigned": sum(counts[s] for s in ASSIGNED),
            "finalized": sum(counts[s] for s in FINALIZED),
            "destroyed": counts[policy.DESTRUIDO],
        },
        "byStatus": counts,
        "byCity": seals_per_city(),
        "recentMovements": movement_log(viewer, limit=recent),
    }
