# Overview: Application settings (title, logo, seal type catalog, theme color).

from __future__ import annotations

import logging
import re

from flask import current_app, has_app_context

from ..extensions import db
from ..models import AppSetting

logger = logging.getLogger(__name__)

SETTING_KEYS = ("title", "logo", "sealTypes", "themeColor")

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class SettingsError(ValueError):
    """Raised when a settings update is rejected."""
    pass


def default_settings() -> dict:
    """Defaults from app config; used for any key never stored."""
    config = current_app.config if has_app_context() else {}
    return {
        "title": config.get("APP_TITLE", "SelloMaster Pro"),
        "logo": None,
        "sealTypes": list(config.get("DEFAULT_SEAL_TYPES", ["Botella", "Cable", "Plástico", "Metálico"])),
        "themeColor": config.get("DEFAULT_THEME_COLOR", "#003594"),
    }


def get_settings() -> dict:
    settings = default_settings()
    for row in db.session.query(AppSetting).filter(AppSetting.key.in_(SETTING_KEYS)).all():
        settings[row.key] = row.value_json
    return settings


def get_seal_types() -> list[str]:
    return list(get_settings()["sealTypes"] or [])


def _validate(key: str, value):
    if key == "title":
        if not isinstance(value, str) or not value.strip():
            raise SettingsError("title must be a non-empty string")
        return value.strip()
    if key == "logo":
        if value is not None and not isinstance(value, str):
            raise SettingsError("logo must be a string or null")
        return value or None
    if key == "sealTypes":
        if not isinstance(value, (list, tuple)):
            raise SettingsError("sealTypes must be a list")
        cleaned = []
        for item in value:
            name = str(item).strip()
            if name and name not in cleaned:
                cleaned.append(name)
        if not cleaned:
            raise SettingsError("sealTypes must contain at least one type")
        return cleaned
    if key == "themeColor":
        if not isinstance(value, str) or not _HEX_COLOR.match(value):
            raise SettingsError("themeColor must be a #RRGGBB color")
        return value.lower()
    raise SettingsError(f"Unknown setting '{key}'")


def update_settings(changes: dict, *, updated_by: str | None = None) -> dict:
    """
    Validate and store a partial settings update; returns the full settings.

    Nothing is written if any key fails validation.
    """
    validated = {key: _validate(key, value) for key, value in (changes or {}).items()}

    for key, value in validated.items():
        row = db.session.get(AppSetting, key)
        if row is None:
            row = AppSetting(key=key)
            db.session.add(row)
        row.value_json = value
        row.updated_by = updated_by

    db.session.flush()
    if validated:
        logger.info("Settings updated by %s: %s", updated_by, ", ".join(sorted(validated)))
    return get_settings()


def replace_settings(settings: dict) -> None:
    """Overwrite every stored setting (backup restore)."""
    validated = {key: _validate(key, value) for key, value in settings.items() if key in SETTING_KEYS}
    db.session.query(AppSetting).delete()
    for key, value in validated.items():
        db.session.add(AppSetting(key=key, value_json=value))
    db.session.flush()
