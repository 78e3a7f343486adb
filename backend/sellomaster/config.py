# backend/sellomaster/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///sellomaster.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Defaults used until an administrator stores their own settings
    APP_TITLE = os.environ.get("SELLOMASTER_TITLE", "SelloMaster Pro")
    DEFAULT_SEAL_TYPES = _csv_env("SELLOMASTER_SEAL_TYPES", "Botella,Cable,Plástico,Metálico")
    DEFAULT_CITIES = _csv_env("SELLOMASTER_CITIES", "BOGOTÁ,MEDELLÍN,CALI,BARRANQUILLA")
    DEFAULT_THEME_COLOR = "#003594"

    SESSION_HOURS = int(os.environ.get("SELLOMASTER_SESSION_HOURS", "12"))

    CORS_ALLOWED_ORIGINS = _csv_env(
        "SELLOMASTER_CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )
