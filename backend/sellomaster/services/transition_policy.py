# Overview: Static seal transition table and per-target required fields.

"""
SelloMaster Transition Policy

================================================================================
PURPOSE: Single source of truth for which seal movements are legal
================================================================================

STATE MACHINE:

    ENTRADA_INVENTARIO -> ASIGNADO, DESTRUIDO
    ASIGNADO           -> ENTREGADO, ENTRADA_INVENTARIO, DESTRUIDO
    ENTREGADO          -> INSTALADO, NO_INSTALADO, DESTRUIDO
    INSTALADO          -> SALIDA_FABRICA, DESTRUIDO
    NO_INSTALADO       -> DESTRUIDO, ENTRADA_INVENTARIO
    SALIDA_FABRICA     -> (terminal)
    DESTRUIDO          -> (terminal)

RULES:
1. No self-transitions
2. Terminal statuses have no outgoing edges
3. The only back-edges are the two resets to ENTRADA_INVENTARIO
   (assignment cancelled, seal reclaimed)
4. Every target status declares the operational fields it requires

Everything here is pure: no database access, no side effects.
================================================================================
"""

from __future__ import annotations

ENTRADA_INVENTARIO = "ENTRADA_INVENTARIO"
ASIGNADO = "ASIGNADO"
ENTREGADO = "ENTREGADO"
INSTALADO = "INSTALADO"
NO_INSTALADO = "NO_INSTALADO"
SALIDA_FABRICA = "SALIDA_FABRICA"
DESTRUIDO = "DESTRUIDO"

# Display order used by listings and reports
STATUSES = (
    ENTRADA_INVENTARIO,
    ASIGNADO,
    ENTREGADO,
    INSTALADO,
    NO_INSTALADO,
    SALIDA_FABRICA,
    DESTRUIDO,
)
VALID_STATUSES = frozenset(STATUSES)

INITIAL_STATUS = ENTRADA_INVENTARIO
TERMINAL_STATUSES = frozenset({SALIDA_FABRICA, DESTRUIDO})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    ENTRADA_INVENTARIO: frozenset({ASIGNADO, DESTRUIDO}),
    ASIGNADO: frozenset({ENTREGADO, ENTRADA_INVENTARIO, DESTRUIDO}),
    ENTREGADO: frozenset({INSTALADO, NO_INSTALADO, DESTRUIDO}),
    INSTALADO: frozenset({SALIDA_FABRICA, DESTRUIDO}),
    NO_INSTALADO: frozenset({DESTRUIDO, ENTRADA_INVENTARIO}),
    SALIDA_FABRICA: frozenset(),
    DESTRUIDO: frozenset(),
}

# Operational fields recognized on a seal: wire name -> model attribute
OPERATIONAL_FIELDS: dict[str, str] = {
    "orderNumber": "order_number",
    "containerId": "container_id",
    "vehiclePlate": "vehicle_plate",
    "assignedTo": "assigned_to",
    "deliveredTo": "delivered_to",
    "driverName": "driver_name",
    "destination": "destination",
    "observations": "observations",
}

# Alternate names used by older entry forms
FIELD_ALIASES: dict[str, str] = {
    "requester": "assignedTo",
    "trailerContainer": "containerId",
    "deliveredSub": "deliveredTo",
}

REQUIRED_FIELDS: dict[str, frozenset[str]] = {
    ENTRADA_INVENTARIO: frozenset(),
    ASIGNADO: frozenset({"assignedTo"}),
    ENTREGADO: frozenset({"assignedTo"}),
    INSTALADO: frozenset({"vehiclePlate", "containerId"}),
    NO_INSTALADO: frozenset({"deliveredTo"}),
    SALIDA_FABRICA: frozenset({"destination"}),
    DESTRUIDO: frozenset({"observations"}),
}

# Fields a movement form offers for each target, required ones first
OPTIONAL_FIELDS: dict[str, frozenset[str]] = {
    ENTRADA_INVENTARIO: frozenset({"observations"}),
    ASIGNADO: frozenset({"orderNumber", "observations"}),
    ENTREGADO: frozenset({"orderNumber", "driverName", "observations"}),
    INSTALADO: frozenset({"driverName", "orderNumber", "observations"}),
    NO_INSTALADO: frozenset({"observations"}),
    SALIDA_FABRICA: frozenset({"driverName", "vehiclePlate", "containerId", "observations"}),
    DESTRUIDO: frozenset(),
}


class UnknownStatusError(ValueError):
    """Raised when a value is not one of the seven seal statuses."""
    pass


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise UnknownStatusError(
            f"Invalid status '{status}'. Must be one of: {', '.join(STATUSES)}"
        )


def is_transition_allowed(from_status: str | None, to_status: str) -> bool:
    """
    True when to_status is reachable from from_status in one step.

    Unknown statuses are never allowed; no exception is raised so callers
    can use this as a plain predicate.
    """
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def allowed_next(from_status: str) -> frozenset[str]:
    return ALLOWED_TRANSITIONS.get(from_status, frozenset())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def required_fields(to_status: str) -> frozenset[str]:
    validate_status(to_status)
    return REQUIRED_FIELDS[to_status]


def optional_fields(to_status: str) -> frozenset[str]:
    validate_status(to_status)
    return OPTIONAL_FIELDS[to_status]


def canonical_field_name(name: str) -> str | None:
    """Map a submitted field name (or one of its aliases) to its wire name."""
    name = FIELD_ALIASES.get(name, name)
    return name if name in OPERATIONAL_FIELDS else None


def missing_fields(to_status: str, fields: dict | None) -> list[str]:
    """Required fields for to_status that are absent or blank in fields."""
    fields = fields or {}
    missing = []
    for name in sorted(required_fields(to_status)):
        value = fields.get(name)
        if value is None or not str(value).strip():
            missing.append(name)
    return missing


def describe() -> list[dict]:
    """Policy table as plain data, in display order."""
    return [
        {
            "status": status,
            "terminal": is_terminal(status),
            "next": [s for s in STATUSES if s in ALLOWED_TRANSITIONS[status]],
            "requiredFields": sorted(REQUIRED_FIELDS[status]),
            "optionalFields": sorted(OPTIONAL_FIELDS[status]),
        }
        for status in STATUSES
    ]
