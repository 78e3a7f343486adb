# Overview: Seal lifecycle engine; creation, batch movements, history and site scoping.

"""
SelloMaster Seal Lifecycle Engine

================================================================================
PURPOSE: The only code path that creates seals or changes their status
================================================================================

GUARANTEES:
1. Seal ids are upper-cased and unique across every site
2. status == history[0].to_status after every operation
3. A batch movement validates every seal before touching any of them;
   a failed validation leaves the whole batch unmodified
4. GESTOR users only read or move seals of their own city
5. History is append-only and newest-first

Validation failures raise a SealError subclass that names every offending
id or field. Services only flush; routes and the CLI commit.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from ..extensions import db
from ..models import Seal, SealMovement, User
from sellomaster.time_utils import utcnow
from . import transition_policy as policy
from . import settings_service
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)

INITIAL_DETAILS = "initial registration"
DEFAULT_DETAILS = "Movimiento"


# ================================================================================
# ERRORS
# ================================================================================

class SealError(Exception):
    """
    Base class for seal-domain validation failures.

    Carries the offending ids and/or fields so callers can report every
    problem in one pass.
    """
    status_code = 400

    def __init__(self, message: str, *, ids: Iterable[str] | None = None,
                 fields: Iterable[str] | None = None, extra: dict | None = None):
        super().__init__(message)
        self.message = message
        self.ids = list(ids or [])
        self.fields = list(fields or [])
        self.extra = dict(extra or {})

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        data = {
            "error": self.message,
            "kind": self.kind,
            "ids": self.ids,
            "fields": self.fields,
        }
        data.update(self.extra)
        return data


class DuplicateIdError(SealError):
    status_code = 409


class InvalidSealError(SealError):
    """Blank id or a type outside the configured catalog."""
    pass


class IllegalTransitionError(SealError):
    pass


class MissingFieldError(SealError):
    pass


class MixedStatusError(SealError):
    pass


class EmptyBatchError(MixedStatusError):
    pass


class NotFoundError(SealError):
    status_code = 404


class WrongSiteError(SealError):
    status_code = 403


class PermissionDeniedError(SealError):
    status_code = 403


# ================================================================================
# HELPERS
# ================================================================================

def normalize_seal_id(raw) -> str:
    return str(raw if raw is not None else "").strip().upper()


def _normalize_city(raw) -> str:
    return str(raw if raw is not None else "").strip().upper()


def visible_city(user: User) -> str | None:
    """City a user is confined to, or None for ADMIN (every site)."""
    return None if user.is_admin else user.city


def _format_ids(ids: Iterable[str]) -> str:
    return ", ".join(ids)


def normalize_fields(fields: dict | None) -> dict[str, str]:
    """
    Keep only recognized operational fields, under their canonical names,
    as stripped non-empty strings.
    """
    cleaned: dict[str, str] = {}
    for raw_name, raw_value in (fields or {}).items():
        name = policy.canonical_field_name(raw_name)
        if name is None:
            logger.debug("Ignoring unrecognized movement field %r", raw_name)
            continue
        if raw_value is None:
            continue
        value = str(raw_value).strip()
        if value:
            cleaned[name] = value
    return cleaned


def merge_operational_fields(seal: Seal, fields: dict[str, str]) -> dict[str, str]:
    """
    Write recognized operational fields onto the seal.

    Supplied keys overwrite previous values; keys not supplied keep what
    earlier movements wrote. Returns what was written.
    """
    applied = {}
    for name, value in normalize_fields(fields).items():
        setattr(seal, policy.OPERATIONAL_FIELDS[name], value)
        applied[name] = value
    return applied


def build_details(fields: dict[str, str], *, batch_size: int = 1) -> str:
    """Human readable summary: "key: value" pairs in canonical field order."""
    parts = [f"{name}: {fields[name]}" for name in policy.OPERATIONAL_FIELDS if fields.get(name)]
    summary = ", ".join(parts) if parts else DEFAULT_DETAILS
    if batch_size > 1:
        summary = f"[LOTE x{batch_size}] {summary}"
    return summary


def check_history(seal_id: str, status: str, history: list) -> list[str]:
    """
    Invariant violations for a newest-first list of movements (anything
    with date, from_status and to_status); empty when consistent.
    """
    if not history:
        return [f"{seal_id}: empty history"]
    problems = []
    if history[0].to_status != status:
        problems.append(
            f"{seal_id}: status {status} does not match latest movement {history[0].to_status}"
        )
    creation = history[-1]
    if creation.from_status is not None or creation.to_status != policy.INITIAL_STATUS:
        problems.append(f"{seal_id}: first movement is not an inventory entry")
    for newer, older in zip(history, history[1:]):
        if newer.date < older.date:
            problems.append(f"{seal_id}: history is not ordered newest-first")
            break
    return problems


def history_problems(seal: Seal) -> list[str]:
    return check_history(seal.id, seal.status, list(seal.history))


# ================================================================================
# CREATION
# ================================================================================

def create_seal(
    seal_id: str,
    seal_type: str,
    actor: User,
    *,
    city: str | None = None,
    now: datetime | None = None,
) -> Seal:
    """
    Register a new seal in ENTRADA_INVENTARIO.

    Args:
        seal_id: Seal identifier (normalized to upper case)
        seal_type: Must be one of the configured seal types
        actor: User performing the registration
        city: Target site; only ADMIN users may name a site other than their own
        now: Movement timestamp (defaults to utcnow())

    Raises:
        InvalidSealError: Blank id or unknown type
        DuplicateIdError: A seal with this id already exists (any site)
        WrongSiteError: A GESTOR tried to register into another site
    """
    sid = normalize_seal_id(seal_id)
    if not sid:
        raise InvalidSealError("Seal id is required", fields=["id"])

    seal_type = str(seal_type or "").strip()
    catalog = settings_service.get_seal_types()
    if not seal_type or (catalog and seal_type not in catalog):
        raise InvalidSealError(
            f"Seal type '{seal_type}' is not in the catalog ({', '.join(catalog)})",
            ids=[sid],
            fields=["type"],
        )

    target_city = _normalize_city(city) or actor.city
    if not actor.is_admin and target_city != actor.city:
        raise WrongSiteError(
            f"User {actor.username} cannot register seals for {target_city}",
            ids=[sid],
        )

    if db.session.get(Seal, sid) is not None:
        raise DuplicateIdError(f"Seal {sid} already exists", ids=[sid])

    now = now or utcnow()
    seal = Seal(
        id=sid,
        type=seal_type,
        status=policy.INITIAL_STATUS,
        city=target_city,
        creation_date=now,
        last_movement=now,
        entry_user=actor.display_name,
    )
    seal.history.append(
        SealMovement(
            date=now,
            from_status=None,
            to_status=policy.INITIAL_STATUS,
            user=actor.display_name,
            details=INITIAL_DETAILS,
        )
    )
    db.session.add(seal)
    db.session.flush()

    logger.info("Seal %s (%s) registered in %s by %s", sid, seal_type, target_city, actor.username)
    return seal


# ================================================================================
# QUERIES
# ================================================================================

def get_seal(seal_id: str, viewer: User) -> Seal:
    sid = normalize_seal_id(seal_id)
    seal = db.session.get(Seal, sid) if sid else None
    if seal is None:
        raise NotFoundError(f"Seal {sid} does not exist", ids=[sid])
    scope = visible_city(viewer)
    if scope is not None and seal.city != scope:
        raise WrongSiteError(f"Seal {sid} belongs to another site", ids=[sid])
    return seal


def list_seals(
    viewer: User,
    *,
    seal_id: str | None = None,
    status: str | None = None,
    seal_type: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    city: str | None = None,
) -> list[Seal]:
    """
    Seals visible to viewer, newest movement first.

    seal_id matches as a case-insensitive substring; the date range applies
    to creation_date and is inclusive on both ends. city only narrows the
    result for ADMIN viewers.
    """
    q = db.session.query(Seal)

    scope = visible_city(viewer)
    if scope is not None:
        q = q.filter(Seal.city == scope)
    elif city:
        q = q.filter(Seal.city == _normalize_city(city))

    if seal_id:
        q = q.filter(Seal.id.contains(normalize_seal_id(seal_id), autoescape=True))
    if status:
        policy.validate_status(status)
        q = q.filter(Seal.status == status)
    if seal_type:
        q = q.filter(Seal.type == seal_type)
    if date_from is not None:
        q = q.filter(Seal.creation_date >= date_from)
    if date_to is not None:
        q = q.filter(Seal.creation_date <= date_to)

    return q.order_by(Seal.last_movement.desc(), Seal.id).all()


@dataclass
class BatchResolution:
    found: list[Seal] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)
    wrong_site: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.found) and not self.not_found and not self.wrong_site

    def to_dict(self) -> dict:
        return {
            "found": [seal.to_dict(include_history=False) for seal in self.found],
            "notFound": self.not_found,
            "wrongSite": self.wrong_site,
        }


def resolve_batch(
    ids: Iterable[str],
    actor_city: str | None,
    *,
    for_update: bool = False,
) -> BatchResolution:
    """
    Partition requested ids into found / not found / owned by another site.

    Lookup is case-insensitive and whitespace-trimmed; blank and repeated
    ids are ignored. actor_city=None resolves across every site.
    for_update locks the found rows until the caller commits.
    """
    requested: list[str] = []
    for raw in ids or []:
        sid = normalize_seal_id(raw)
        if sid and sid not in requested:
            requested.append(sid)

    result = BatchResolution()
    if not requested:
        return result

    q = db.session.query(Seal).filter(Seal.id.in_(requested))
    if for_update:
        q = lock_for_update(q)
    by_id = {seal.id: seal for seal in q.all()}
    for sid in requested:
        seal = by_id.get(sid)
        if seal is None:
            result.not_found.append(sid)
        elif actor_city is not None and seal.city != actor_city:
            result.wrong_site.append(sid)
        else:
            result.found.append(seal)
    return result


# ================================================================================
# MOVEMENTS
# ================================================================================

def validate_batch_consistency(seals: list[Seal]) -> str:
    """
    Return the status shared by every seal in the batch.

    Raises:
        EmptyBatchError: No seals
        MixedStatusError: Seals are at different lifecycle stages
    """
    if not seals:
        raise EmptyBatchError("No seals selected")

    by_status: dict[str, list[str]] = {}
    for seal in seals:
        by_status.setdefault(seal.status, []).append(seal.id)

    if len(by_status) > 1:
        summary = "; ".join(
            f"{status}: {_format_ids(ids)}" for status, ids in sorted(by_status.items())
        )
        raise MixedStatusError(
            f"Selected seals do not share a status ({summary})",
            ids=[seal.id for seal in seals],
            extra={"statuses": by_status},
        )
    return seals[0].status


def _is_replay(seals: list[Seal], target_status: str, actor_name: str, request_date: datetime) -> bool:
    """True when every seal's latest movement came from this same request."""
    for seal in seals:
        if not seal.history:
            return False
        latest = seal.history[0]
        if (latest.request_date, latest.to_status, latest.user) != (request_date, target_status, actor_name):
            return False
    return True


def apply_transition(
    seals: list[Seal],
    target_status: str,
    fields: dict | None,
    actor: User,
    now: datetime | None = None,
    *,
    request_date: datetime | None = None,
) -> list[Seal]:
    """
    Move every seal in the batch to target_status, all or nothing.

    Validation order: batch consistency, site scope, replay, transition
    legality, required fields. No seal is modified unless all checks pass.

    now stamps the movement. When omitted the server clock is used, never
    earlier than the latest movement of any seal in the batch, so history
    order does not depend on caller clocks. An explicit now that predates a
    seal's latest movement is rejected.

    request_date is the caller's own timestamp for the request. It is stored
    on the movement and only identifies re-sends: a call repeating the
    request_date, target and actor of every seal's latest movement is a no-op.

    Raises:
        EmptyBatchError / MixedStatusError: Batch has no common status
        WrongSiteError: A GESTOR included seals from another site
        IllegalTransitionError: target_status not reachable from the common status,
            or an explicit now older than the latest movement
        MissingFieldError: Required operational fields absent or blank
    """
    actor_name = actor.display_name

    common_status = validate_batch_consistency(seals)
    ids = [seal.id for seal in seals]

    scope = visible_city(actor)
    if scope is not None:
        foreign = [seal.id for seal in seals if seal.city != scope]
        if foreign:
            raise WrongSiteError(
                f"Seals {_format_ids(foreign)} belong to another site",
                ids=foreign,
            )

    if request_date is not None and _is_replay(seals, target_status, actor_name, request_date):
        logger.info("Ignoring replayed movement of %d seal(s) to %s", len(seals), target_status)
        return list(seals)

    if now is None:
        now = max([utcnow()] + [seal.last_movement for seal in seals if seal.last_movement])
    else:
        # History is ordered by date; a movement may not predate the latest one
        stale = [seal.id for seal in seals if seal.last_movement and seal.last_movement > now]
        if stale:
            raise IllegalTransitionError(
                f"Movement date precedes the latest movement of {_format_ids(stale)}",
                ids=stale,
            )

    if target_status not in policy.VALID_STATUSES:
        raise IllegalTransitionError(f"Unknown target status '{target_status}'", ids=ids)

    if not policy.is_transition_allowed(common_status, target_status):
        if policy.is_terminal(common_status):
            reason = f"{common_status} is a terminal status"
        else:
            allowed = ", ".join(s for s in policy.STATUSES if s in policy.allowed_next(common_status))
            reason = f"allowed from {common_status}: {allowed}"
        raise IllegalTransitionError(
            f"Cannot move {common_status} -> {target_status} ({reason})",
            ids=ids,
        )

    supplied = normalize_fields(fields)
    missing = policy.missing_fields(target_status, supplied)
    if missing:
        raise MissingFieldError(
            f"Missing required field(s) for {target_status}: {', '.join(missing)}",
            ids=ids,
            fields=missing,
        )

    details = build_details(supplied, batch_size=len(seals))

    for seal in seals:
        previous_status = seal.status
        merge_operational_fields(seal, supplied)
        seal.status = target_status
        seal.last_movement = now
        seal.entry_user = actor_name
        seal.history.insert(
            0,
            SealMovement(
                date=now,
                from_status=previous_status,
                to_status=target_status,
                user=actor_name,
                details=details,
                request_date=request_date,
                fields=dict(supplied) or None,
            ),
        )

    db.session.flush()

    logger.info(
        "Moved %d seal(s) %s -> %s by %s: %s",
        len(seals), common_status, target_status, actor.username, _format_ids(ids),
    )
    return list(seals)


def move_seals(
    ids: Iterable[str],
    target_status: str,
    fields: dict | None,
    actor: User,
    now: datetime | None = None,
    *,
    request_date: datetime | None = None,
) -> list[Seal]:
    """
    Resolve ids within the actor's scope, then apply one batch movement.

    Raises:
        NotFoundError: Some ids do not exist (every missing id is named;
            ids from other sites are reported alongside under "wrongSite")
        WrongSiteError: Some ids belong to another site
        plus everything apply_transition raises
    """
    resolution = resolve_batch(ids, visible_city(actor), for_update=True)
    if resolution.not_found:
        raise NotFoundError(
            f"Seals {_format_ids(resolution.not_found)} do not exist",
            ids=resolution.not_found,
            extra={"wrongSite": resolution.wrong_site},
        )
    if resolution.wrong_site:
        raise WrongSiteError(
            f"Seals {_format_ids(resolution.wrong_site)} belong to another site",
            ids=resolution.wrong_site,
        )
    return apply_transition(resolution.found, target_status, fields, actor, now, request_date=request_date)


def transition_seal(
    seal_id: str,
    target_status: str,
    fields: dict | None,
    actor: User,
    now: datetime | None = None,
    *,
    request_date: datetime | None = None,
) -> Seal:
    """Single-seal movement."""
    return move_seals([seal_id], target_status, fields, actor, now, request_date=request_date)[0]


# ================================================================================
# DELETION
# ================================================================================

def delete_seal(seal_id: str, actor: User, *, safe_mode: bool = False) -> None:
    """
    Permanently remove a seal and its history.

    Irreversible. Requires an ADMIN actor and safe_mode explicitly enabled.

    Raises:
        PermissionDeniedError: Not ADMIN, or safe mode not enabled
        NotFoundError: Unknown seal id
    """
    sid = normalize_seal_id(seal_id)
    if not actor.is_admin:
        raise PermissionDeniedError(f"User {actor.username} may not delete seals", ids=[sid])
    if not safe_mode:
        raise PermissionDeniedError("Deletion requires safe mode to be enabled", ids=[sid])

    seal = db.session.get(Seal, sid) if sid else None
    if seal is None:
        raise NotFoundError(f"Seal {sid} does not exist", ids=[sid])

    db.session.delete(seal)
    db.session.flush()
    logger.warning("Seal %s permanently deleted by %s", sid, actor.username)
