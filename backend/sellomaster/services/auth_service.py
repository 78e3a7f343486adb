# Overview: User accounts, password hashing and authentication.

"""
Authentication Service

Every movement is attributed to a named user, so accounts are personal.
Passwords are hashed with bcrypt; usernames are stored upper-cased and
matched case-insensitively.
"""

from __future__ import annotations

import logging

import bcrypt

from ..extensions import db
from ..models import City, User, VALID_ROLES, ROLE_GESTOR
from sellomaster.time_utils import utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthError(ValueError):
    """Raised when a user cannot be created or updated."""
    pass


def normalize_username(username: str) -> str:
    return (username or "").strip().upper()


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _require_city(city: str) -> str:
    name = (city or "").strip().upper()
    if not name:
        raise AuthError("City is required")
    if db.session.query(City).filter_by(name=name).first() is None:
        raise AuthError(f"City '{name}' does not exist")
    return name


def _require_role(role: str) -> str:
    role = (role or "").strip().upper()
    if role not in VALID_ROLES:
        raise AuthError(f"Role must be one of: {', '.join(sorted(VALID_ROLES))}")
    return role


def create_user(
    username: str,
    password: str,
    full_name: str,
    city: str,
    role: str = ROLE_GESTOR,
) -> User:
    """
    Create a user bound to one existing city.

    Raises:
        AuthError: Duplicate username, unknown city/role, weak password
    """
    username = normalize_username(username)
    if not username:
        raise AuthError("Username is required")
    if db.session.query(User).filter_by(username=username).first():
        raise AuthError(f"Username '{username}' already exists")

    user = User(
        username=username,
        full_name=(full_name or "").strip() or username,
        password_hash=hash_password(password),
        role=_require_role(role),
        city=_require_city(city),
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()

    logger.info("User %s created (%s, %s)", user.username, user.role, user.city)
    return user


def update_user(
    user_id: int,
    *,
    full_name: str | None = None,
    city: str | None = None,
    role: str | None = None,
    password: str | None = None,
    is_active: bool | None = None,
) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise AuthError(f"User {user_id} not found")

    if full_name is not None:
        user.full_name = full_name.strip() or user.username
    if city is not None:
        user.city = _require_city(city)
    if role is not None:
        user.role = _require_role(role)
    if password is not None:
        user.password_hash = hash_password(password)
    if is_active is not None:
        user.is_active = bool(is_active)

    db.session.flush()
    return user


def list_users(city: str | None = None) -> list[User]:
    q = db.session.query(User)
    if city:
        q = q.filter_by(city=city)
    return q.order_by(User.username).all()


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, or None.
    """
    user = db.session.query(User).filter_by(username=normalize_username(username)).first()
    if user is None or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.flush()
    return user
