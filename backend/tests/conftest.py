"""
Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database. Component tests work on a
single open session; API tests go through the app and seed data with
short-lived sessions of their own, since both share one connection.
"""
import pytest
from fastapi.testclient import TestClient

from referral_engine.api.main import create_app
from referral_engine.auth.tokens import create_access_token
from referral_engine.referral.service import ReferralEngine
from referral_engine.storage.db import Database
from referral_engine.storage.models import Account, Appointment
from referral_engine.storage.repo import ProgramConfigRepository


def _new_account(
    first_name="Alice",
    account_type=None,
    referral_code=None,
    credits=0,
    frozen=False,
    is_owner=False,
    email=None,
):
    return Account(
        first_name=first_name,
        last_name="Tester",
        email=email,
        account_type=account_type,
        referral_code=referral_code,
        referral_credits=credits,
        account_frozen=frozen,
        is_owner=is_owner,
    )


@pytest.fixture
def database():
    """Fresh in-memory database with all tables"""
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.drop_tables()
    database.dispose()


@pytest.fixture
def session(database):
    """Open unit of work, committed after the test"""
    with database.session() as session:
        yield session


@pytest.fixture
def engine(session):
    """Repositories and components bound to the test session"""
    return ReferralEngine.for_session(session)


@pytest.fixture
def make_account(session):
    """Factory for flushed accounts"""
    def _make(**kwargs):
        account = _new_account(**kwargs)
        session.add(account)
        session.flush()
        return account
    return _make


@pytest.fixture
def make_appointment(session):
    """Factory for flushed appointments"""
    def _make(account, price_cents=10000):
        appointment = Appointment(account_id=account.id, price_cents=price_cents)
        session.add(appointment)
        session.flush()
        return appointment
    return _make


@pytest.fixture
def configure_programs(session):
    """Store an active configuration; keyword arguments are per-program settings"""
    def _configure(**programs):
        return ProgramConfigRepository(session).update_config(programs)
    return _configure


# ==================== API ====================


@pytest.fixture
def client(database):
    """TestClient serving the app from the test database"""
    app = create_app(database)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def seed_account(database):
    """Factory that commits an account in its own session"""
    def _seed(**kwargs):
        with database.session() as session:
            account = _new_account(**kwargs)
            session.add(account)
            session.flush()
        return account
    return _seed


@pytest.fixture
def seed_appointment(database):
    def _seed(account_id, price_cents=10000):
        with database.session() as session:
            appointment = Appointment(account_id=account_id, price_cents=price_cents)
            session.add(appointment)
            session.flush()
        return appointment
    return _seed


@pytest.fixture
def seed_config(database):
    def _seed(**programs):
        with database.session() as session:
            config = ProgramConfigRepository(session).update_config(programs)
        return config
    return _seed


@pytest.fixture
def auth_headers():
    """Bearer header for an account id"""
    def _headers(account_id):
        return {"Authorization": f"Bearer {create_access_token(account_id)}"}
    return _headers
