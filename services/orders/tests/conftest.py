"""
Pytest configuration and fixtures.

Environment variables are set before the service modules are imported, since
they read their configuration at import time.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["WEBHOOK_URLS"] = ""
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_secret"
os.environ["PAYSTACK_CALLBACK_URL"] = ""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ofi_orders import models, schemas
from ofi_orders.crud import SqlAlchemyStorage
from ofi_orders.database import get_db, init_db
from ofi_orders.dependencies import get_events, get_session_factory
from ofi_orders.lifecycle import OrderLifecycleManager
from ofi_orders.main import app
from ofi_orders.realtime import ChannelMembership, EventBus


class RecordingSession:
    """Session fake that keeps every frame delivered to it."""

    def __init__(self, name: str = "recording"):
        self.name = name
        self.frames = []

    def __repr__(self) -> str:
        return self.name

    def deliver(self, event, data):
        self.frames.append((event, data))

    def events(self):
        return [event for event, _ in self.frames]

    def frames_for(self, event):
        return [data for name, data in self.frames if name == event]


class FailingSession(RecordingSession):
    """Session fake whose transport is gone."""

    def deliver(self, event, data):
        raise ConnectionError("socket closed")


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=test_engine)
    yield test_engine
    models.Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def storage(db_session):
    return SqlAlchemyStorage(db_session)


@pytest.fixture
def bus():
    return EventBus(ChannelMembership())


@pytest.fixture
def manager(storage, bus):
    return OrderLifecycleManager(storage, bus)


@pytest.fixture
def client(session_factory, bus):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_events] = lambda: bus
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def marketplace(storage):
    """A customer, two tailors and one design per tailor."""
    user = storage.create_user({
        "name": "Ada Obi",
        "email": "ada@example.com",
        "phone": "+234 801 000 0001",
        "address": "1 Broad Street, Lagos",
    })
    tailors = [
        storage.create_tailor({
            "name": "Adebayo Tailoring",
            "email": "adebayo@tailoring.com",
            "phone": "+234 803 555 0101",
            "address": "123 Fashion Street, Lagos",
        }),
        storage.create_tailor({
            "name": "Kemi's Couture",
            "email": "kemi@couture.com",
            "phone": "+234 805 555 0102",
            "address": "456 Craft Avenue, Abuja",
        }),
    ]
    designs = [
        storage.create_design({
            "tailor_id": tailors[0].id,
            "name": "Premium Agbada",
            "description": "Handcrafted agbada",
            "category": "agbada",
            "price": Decimal("45000"),
        }),
        storage.create_design({
            "tailor_id": tailors[1].id,
            "name": "Modern Ankara",
            "description": "Contemporary ankara",
            "category": "ankara",
            "price": Decimal("32000"),
        }),
    ]
    return {"user": user, "tailors": tailors, "designs": designs}


@pytest.fixture
def order_data(marketplace):
    """Build a valid order payload for the first tailor's design."""

    def build(**overrides):
        data = {
            "user_id": marketplace["user"].id,
            "tailor_id": marketplace["tailors"][0].id,
            "design_id": marketplace["designs"][0].id,
            "measurements": {"chest": "40", "waist": "34"},
            "delivery_address": "1 Broad Street, Lagos",
            "phone": "+234 801 000 0001",
            "design_price": "45000",
            "customization_fee": "5000",
            "delivery_fee": "2000",
            "total_amount": "52000",
        }
        data.update(overrides)
        return data

    return build


@pytest.fixture
def placed_order(manager, order_data):
    return manager.create_order(schemas.OrderCreate(**order_data()))
