"""
Pytest configuration and shared fixtures.
"""

from unittest.mock import MagicMock, patch

import pytest

from config import settings
from db.memory_store import InMemoryStore
from models.booking import BookingCreate, WalkInCreate
from models.customer import Customer
from models.salon import Salon
from notifications.dispatcher import NotificationDispatcher
from queueing.events import QueueEventBus
from queueing.lifecycle import BookingLifecycle
from queueing.ordering import QueueOrderingEngine

SALON_ID = "salon_123"


@pytest.fixture(autouse=True)
def mock_settings():
    """Pin settings for all tests."""
    with patch.multiple(
        settings,
        supabase_url="https://test.supabase.co",
        supabase_key="test_key",
        store_backend="memory",
        timezone="Asia/Kolkata",
        default_avg_service_time=30,
        arrival_grace_minutes=10,
        queue_conflict_retries=3,
        auto_expire_enabled=True,
        environment="test",
    ):
        yield settings


@pytest.fixture
def mock_supabase_client():
    """Create a mock Supabase client."""
    mock_client = MagicMock()
    mock_table = MagicMock()
    mock_client.table.return_value = mock_table
    return mock_client, mock_table


@pytest.fixture
def store():
    """In-memory store seeded with one salon and three customers."""
    store = InMemoryStore()
    store.add_salon(Salon(id=SALON_ID, name="Glow Studio", avg_service_time=30))
    for customer_id, name in (("cust_a", "Asha"), ("cust_b", "Bela"), ("cust_c", "Chitra")):
        store.add_customer(Customer(id=customer_id, first_name=name))
    return store


@pytest.fixture
def events():
    return QueueEventBus()


@pytest.fixture
def engine(store, events):
    return QueueOrderingEngine(store, events=events)


@pytest.fixture
def dispatcher(store):
    return NotificationDispatcher(store)


@pytest.fixture
def lifecycle(store, engine, dispatcher):
    return BookingLifecycle(store, ordering=engine, dispatcher=dispatcher)


@pytest.fixture
def make_booking_request():
    """Factory for online booking requests at the seeded salon."""

    def _make(customer_id: str = "cust_a", **overrides) -> BookingCreate:
        data = {
            "customer_id": customer_id,
            "salon_id": SALON_ID,
            "service_id": "svc_haircut",
            "total_price": 250,
        }
        data.update(overrides)
        return BookingCreate(**data)

    return _make


@pytest.fixture
def make_walkin_request():
    """Factory for walk-in requests at the seeded salon."""

    def _make(name: str = "Walk In", **overrides) -> WalkInCreate:
        data = {
            "salon_id": SALON_ID,
            "service_id": "svc_haircut",
            "name": name,
            "phone": "+919876543210",
        }
        data.update(overrides)
        return WalkInCreate(**data)

    return _make
