# Overview: Spreadsheet import/export of seals (CSV, JSON, XLSX).

"""
Seal Import / Export

Import rows carry an id column (ID / id / Id) and a type column
(Tipo / tipo / type). Every row goes through seal_service.create_seal, so
imported seals start in ENTRADA_INVENTARIO with a creation movement.
Duplicate ids are skipped and counted; they never abort the file.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field

from openpyxl import Workbook, load_workbook

from ..models import Seal, User
from . import seal_service
from .seal_service import DuplicateIdError, SealError

logger = logging.getLogger(__name__)

ID_COLUMNS = ("ID", "id", "Id")
TYPE_COLUMNS = ("Tipo", "tipo", "TIPO", "type", "Type")

EXPORT_COLUMNS = (
    ("ID", "id"),
    ("Tipo", "type"),
    ("Estado", "status"),
    ("Sede", "city"),
    ("Fecha Creación", "creationDate"),
    ("Último Movimiento", "lastMovement"),
    ("Usuario", "entryUser"),
    ("Orden", "orderNumber"),
    ("Contenedor", "containerId"),
    ("Placa", "vehiclePlate"),
    ("Asignado A", "assignedTo"),
    ("Entregado A", "deliveredTo"),
    ("Conductor", "driverName"),
    ("Destino", "destination"),
    ("Observaciones", "observations"),
)


class SealImportError(ValueError):
    """Raised when an uploaded file cannot be read."""
    pass


@dataclass
class ImportResult:
    created: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": len(self.created),
            "createdIds": self.created,
            "duplicates": len(self.duplicates),
            "duplicateIds": self.duplicates,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def read_rows(filename: str, stream) -> list[dict]:
    """Parse a CSV, JSON or XLSX upload into a list of row dicts."""
    ext = (filename or "").rsplit(".", 1)[-1].lower()

    if ext == "csv":
        raw = stream.read()
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
        return [dict(row) for row in csv.DictReader(io.StringIO(text))]

    if ext == "json":
        rows = json.load(stream)
        if isinstance(rows, dict):
            rows = rows.get("rows", rows.get("seals", []))
        if not isinstance(rows, list):
            raise SealImportError("JSON upload must be a list of rows")
        bad = [str(i + 1) for i, row in enumerate(rows) if not isinstance(row, dict)]
        if bad:
            raise SealImportError(f"JSON rows must be objects (rows {', '.join(bad)})")
        return rows

    if ext in {"xlsx", "xlsm", "xltx", "xltm"}:
        wb = load_workbook(stream, read_only=True, data_only=True)
        sheet = wb.active
        data = list(sheet.values)
        wb.close()
        if not data:
            return []
        headers = [str(h).strip() if h is not None else "" for h in data[0]]
        return [
            {headers[i]: row[i] for i in range(min(len(headers), len(row)))}
            for row in data[1:]
            if any(cell is not None for cell in row)
        ]

    raise SealImportError("Unsupported file type. Use CSV, JSON or Excel (.xlsx).")


def _first(row: dict, columns: tuple[str, ...]):
    for column in columns:
        value = row.get(column)
        if value is not None and str(value).strip():
            return value
    return None


def import_seals(rows: list[dict], actor: User, *, city: str | None = None) -> ImportResult:
    """
    Register one seal per row. Rows without an id are skipped; duplicate
    ids (existing or repeated in the file) are counted; other rejections
    are reported per row with their 1-based data row number.
    """
    result = ImportResult()

    for index, row in enumerate(rows, start=1):
        raw_id = _first(row, ID_COLUMNS)
        if raw_id is None:
            result.skipped += 1
            continue

        # Spreadsheet cells may come back as numbers
        if isinstance(raw_id, float) and raw_id.is_integer():
            raw_id = int(raw_id)

        try:
            seal = seal_service.create_seal(
                str(raw_id),
                _first(row, TYPE_COLUMNS) or "",
                actor,
                city=city,
            )
        except DuplicateIdError as exc:
            result.duplicates.extend(exc.ids)
            continue
        except SealError as exc:
            result.errors.append({"row": index, **exc.to_dict()})
            continue
        result.created.append(seal.id)

    logger.info(
        "Import by %s: %d created, %d duplicates, %d skipped, %d errors",
        actor.username, len(result.created), len(result.duplicates), result.skipped, len(result.errors),
    )
    return result


def export_seals(seals: list[Seal]) -> bytes:
    """Workbook with one row per seal (no history)."""
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Precintos"
    sheet.append([header for header, _ in EXPORT_COLUMNS])

    for seal in seals:
        data = seal.to_dict(include_history=False)
        sheet.append([data.get(key) for _, key in EXPORT_COLUMNS])

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_movements(movements: list[dict]) -> bytes:
    """Workbook of a flattened movement log (see reporting_service.movement_log)."""
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Historial"
    sheet.append(["Fecha", "Precinto", "Sede", "Desde", "Hacia", "Usuario", "Detalles"])
    for entry in movements:
        sheet.append([
            entry.get("date"),
            entry.get("sealId"),
            entry.get("city"),
            entry.get("fromStatus"),
            entry.get("toStatus"),
            entry.get("user"),
            entry.get("details"),
        ])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
