# Overview: Operating sites (cities) and the best-effort rename cascade.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import City, Seal, User

logger = logging.getLogger(__name__)


class SiteError(ValueError):
    """Raised when a city operation is rejected."""
    pass


def normalize_city_name(name: str) -> str:
    return (name or "").strip().upper()


def list_cities() -> list[City]:
    return db.session.query(City).order_by(City.name).all()


def city_names() -> list[str]:
    return [city.name for city in list_cities()]


def add_city(name: str) -> City:
    name = normalize_city_name(name)
    if not name:
        raise SiteError("City name is required")
    if db.session.query(City).filter_by(name=name).first():
        raise SiteError(f"City '{name}' already exists")

    city = City(name=name)
    db.session.add(city)
    db.session.flush()
    logger.info("City %s added", name)
    return city


def ensure_cities(names: list[str]) -> list[City]:
    """Create any missing cities; existing ones are left alone."""
    existing = set(city_names())
    for name in names:
        normalized = normalize_city_name(name)
        if normalized and normalized not in existing:
            db.session.add(City(name=normalized))
            existing.add(normalized)
    db.session.flush()
    return list_cities()


def rename_city(old_name: str, new_name: str) -> dict:
    """
    Rename a city and cascade to seals and users.

    Best effort: the city row, the seals and the users are committed in
    three separate steps. A failure part-way leaves earlier steps applied;
    re-running the rename with the same arguments finishes the cascade.

    Returns counts of updated seals and users.
    """
    old_name = normalize_city_name(old_name)
    new_name = normalize_city_name(new_name)
    if not new_name:
        raise SiteError("New city name is required")
    if old_name == new_name:
        raise SiteError("New name must differ from the current name")

    city = db.session.query(City).filter_by(name=old_name).first()
    target = db.session.query(City).filter_by(name=new_name).first()
    if city is None and target is None:
        raise SiteError(f"City '{old_name}' does not exist")
    if city is not None and target is not None:
        raise SiteError(f"City '{new_name}' already exists")

    if city is not None:
        city.name = new_name
        db.session.commit()

    seals = (
        db.session.query(Seal)
        .filter(Seal.city == old_name)
        .update({Seal.city: new_name}, synchronize_session="fetch")
    )
    db.session.commit()

    users = (
        db.session.query(User)
        .filter(User.city == old_name)
        .update({User.city: new_name}, synchronize_session="fetch")
    )
    db.session.commit()

    logger.info("City %s renamed to %s (%d seals, %d users)", old_name, new_name, seals, users)
    return {"city": new_name, "seals": seals, "users": users}
