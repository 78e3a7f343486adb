from __future__ import annotations

import json

from ..extensions import db
from sellomaster.time_utils import to_utc_z


class Seal(db.Model):
    """
    Physical tamper-evident seal ("precinto") tracked through its lifecycle.

    INVARIANTS:
    - id is upper-cased, globally unique and never changes
    - status only changes through seal_service.apply_transition
    - status == history[0].to_status (history is newest-first)
    - operational fields accumulate: later movements overwrite a key
      only when they supply a value for it
    """
    __tablename__ = "seals"
    __table_args__ = (
        db.Index("ix_seals_city_status", "city", "status"),
    )

    id = db.Column(db.String(64), primary_key=True)
    type = db.Column(db.String(64), nullable=False)

    # ENTRADA_INVENTARIO, ASIGNADO, ENTREGADO, INSTALADO, NO_INSTALADO,
    # SALIDA_FABRICA, DESTRUIDO
    status = db.Column(db.String(32), nullable=False, index=True)

    # Owning site
    city = db.Column(db.String(64), nullable=False, index=True)

    creation_date = db.Column(db.DateTime, nullable=False)
    last_movement = db.Column(db.DateTime, nullable=False)
    entry_user = db.Column(db.String(128), nullable=False)

    # Cumulative operational annotation
    order_number = db.Column(db.String(128), nullable=True)
    container_id = db.Column(db.String(128), nullable=True)
    vehicle_plate = db.Column(db.String(32), nullable=True)
    assigned_to = db.Column(db.String(128), nullable=True)
    delivered_to = db.Column(db.String(128), nullable=True)
    driver_name = db.Column(db.String(128), nullable=True)
    destination = db.Column(db.String(255), nullable=True)
    observations = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    history = db.relationship(
        "SealMovement",
        back_populates="seal",
        order_by=lambda: (SealMovement.date.desc(), SealMovement.id.desc()),
        cascade="all, delete-orphan",
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<Seal id={self.id!r} status={self.status} city={self.city!r}>"

    def operational_fields(self) -> dict:
        return {
            "orderNumber": self.order_number,
            "containerId": self.container_id,
            "vehiclePlate": self.vehicle_plate,
            "assignedTo": self.assigned_to,
            "deliveredTo": self.delivered_to,
            "driverName": self.driver_name,
            "destination": self.destination,
            "observations": self.observations,
        }

    def to_dict(self, include_history: bool = True) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "city": self.city,
            "creationDate": to_utc_z(self.creation_date),
            "lastMovement": to_utc_z(self.last_movement),
            "entryUser": self.entry_user,
        }
        data.update(self.operational_fields())
        if include_history:
            data["history"] = [entry.to_dict() for entry in self.history]
        return data


class SealMovement(db.Model):
    """
    Append-only audit record: one row per lifecycle transition of a seal.

    from_status is NULL only for the creation entry.
    fields keeps the recognized operational fields of the movement under
    their canonical names (legacy aliases mapped, values trimmed, blanks
    dropped), the same values written onto the seal.
    """
    __tablename__ = "seal_movements"
    __table_args__ = (
        db.Index("ix_seal_movements_seal_date", "seal_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seal_id = db.Column(
        db.String(64),
        db.ForeignKey("seals.id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
    )

    date = db.Column(db.DateTime, nullable=False, index=True)
    from_status = db.Column(db.String(32), nullable=True)
    to_status = db.Column(db.String(32), nullable=False)
    user = db.Column(db.String(128), nullable=False)
    details = db.Column(db.Text, nullable=False, default="")

    # Client-supplied request timestamp; identifies a re-sent movement, never orders history
    request_date = db.Column(db.DateTime, nullable=True)

    # Recognized fields under canonical names, values trimmed, blanks dropped
    fields_json = db.Column(db.Text, nullable=True)

    seal = db.relationship("Seal", back_populates="history")

    @property
    def fields(self) -> dict | None:
        if not self.fields_json:
            return None
        return json.loads(self.fields_json)

    @fields.setter
    def fields(self, value: dict | None) -> None:
        self.fields_json = json.dumps(value, ensure_ascii=False, sort_keys=True) if value else None

    def to_dict(self) -> dict:
        data = {
            "date": to_utc_z(self.date),
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
            "user": self.user,
            "details": self.details,
        }
        if self.request_date is not None:
            data["requestDate"] = to_utc_z(self.request_date)
        fields = self.fields
        if fields:
            data["fields"] = fields
        return data
