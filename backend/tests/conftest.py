"""
Pytest fixtures for SelloMaster backend tests.

Provides test database setup, two operating sites with one GESTOR each,
an ADMIN user, a deterministic clock and the test client.
"""

from datetime import datetime, timedelta

import pytest

from sellomaster import create_app
from sellomaster.extensions import db
from sellomaster.models import City, User, ROLE_ADMIN, ROLE_GESTOR
from sellomaster.services import seal_service
from sellomaster.services.auth_service import hash_password

PASSWORD = "Password123!"

BOGOTA = "BOGOTÁ"
CALI = "CALI"

T0 = datetime(2026, 1, 5, 8, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_SEAL_TYPES': ['Botella', 'Cable', 'Plástico'],
        'DEFAULT_CITIES': [BOGOTA, CALI],
        'CORS_ALLOWED_ORIGINS': ['http://localhost:5173'],
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def cities(db_session):
    """Create the two operating sites."""
    rows = [City(name=BOGOTA), City(name=CALI)]
    db_session.add_all(rows)
    db_session.commit()
    return rows


def _make_user(db_session, password_hash, username, full_name, city, role):
    user = User(
        username=username,
        full_name=full_name,
        password_hash=password_hash,
        role=role,
        city=city,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session, cities, password_hash):
    """ADMIN user based in Bogotá (sees every site)."""
    return _make_user(db_session, password_hash, "ADMIN", "Administrador", BOGOTA, ROLE_ADMIN)


@pytest.fixture(scope='function')
def gestor_bogota(db_session, cities, password_hash):
    return _make_user(db_session, password_hash, "ANA", "Ana Ruiz", BOGOTA, ROLE_GESTOR)


@pytest.fixture(scope='function')
def gestor_cali(db_session, cities, password_hash):
    return _make_user(db_session, password_hash, "LUIS", "Luis Mora", CALI, ROLE_GESTOR)


@pytest.fixture(scope='function')
def clock():
    """
    Deterministic movement timestamps: each call returns one minute after
    the previous one, starting at T0.
    """
    state = {"now": T0}

    def tick() -> datetime:
        state["now"] = state["now"] + timedelta(minutes=1)
        return state["now"]

    return tick


@pytest.fixture(scope='function')
def make_seal(db_session, clock):
    """Factory: register a seal and commit it."""
    def _make(seal_id, actor, seal_type="Botella", city=None):
        seal = seal_service.create_seal(seal_id, seal_type, actor, city=city, now=clock())
        db_session.commit()
        return seal

    return _make


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
