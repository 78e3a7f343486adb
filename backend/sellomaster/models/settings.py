from __future__ import annotations

from ..extensions import db


class AppSetting(db.Model):
    """
    Application-wide setting stored as a JSON value under a fixed key
    (title, logo, sealTypes, themeColor).
    """
    __tablename__ = "app_settings"

    key = db.Column(db.String(64), primary_key=True)
    value_json = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    updated_by = db.Column(db.String(128), nullable=True)

    def __repr__(self) -> str:
        return f"<AppSetting key={self.key!r}>"
