"""
Pytest fixtures for rewards backend tests.

Provides test database setup, entity factories, and test client.
"""

from datetime import timedelta

import pytest

from rewards import create_app
from rewards.extensions import db
from rewards.models import Event, Promotion, User
from rewards.roles import Principal, Role
from rewards.services import session_service
from rewards.services.auth_service import hash_password
from rewards.services.rate_limiter import get_reset_rate_limiter
from rewards.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client with a clean rate limiter."""
    get_reset_rate_limiter().reset()
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: persisted, activated user."""
    def _make(utorid, *, role=Role.REGULAR, points=0, verified=True, suspicious=False, password=None, name=None):
        user = User(
            utorid=utorid,
            name=name or utorid.title(),
            email=f"{utorid}@mail.utoronto.ca",
            role=Role.parse(role).label,
            points=points,
            verified=verified,
            activated=True,
            suspicious=suspicious,
            password_hash=hash_password(password) if password else "",
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def make_promotion(db_session):
    """Factory: promotion whose window is given in hours relative to now."""
    def _make(name="Promo", *, promo_type="automatic", starts_in=-1, ends_in=24,
              min_spending=None, rate=None, points=0):
        now = utcnow()
        promotion = Promotion(
            name=name,
            description=f"{name} description",
            promo_type=promo_type,
            start_time=now + timedelta(hours=starts_in),
            end_time=now + timedelta(hours=ends_in),
            min_spending=min_spending,
            rate=rate,
            points=points,
        )
        db_session.add(promotion)
        db_session.commit()
        return promotion
    return _make


@pytest.fixture(scope='function')
def make_event(db_session):
    """Factory: event whose window is given in hours relative to now."""
    def _make(name="Event", *, starts_in=-1, ends_in=24, capacity=None, points_allocated=100,
              points_awarded=0, published=True, organizers=(), guests=()):
        now = utcnow()
        event = Event(
            name=name,
            description=f"{name} description",
            location="Bahen Centre",
            start_time=now + timedelta(hours=starts_in),
            end_time=now + timedelta(hours=ends_in),
            capacity=capacity,
            points_allocated=points_allocated,
            points_awarded=points_awarded,
            published=published,
        )
        event.organizers.extend(organizers)
        event.guests.extend(guests)
        db_session.add(event)
        db_session.commit()
        return event
    return _make


def principal_for(user: User) -> Principal:
    """Service-level identity for a user."""
    return Principal(id=user.id, utorid=user.utorid, role=user.tier)


def auth_headers(user: User) -> dict:
    """Issue a session for a user and return Authorization headers."""
    _, token = session_service.create_session(user.id)
    db.session.commit()
    return {'Authorization': f'Bearer {token}'}
