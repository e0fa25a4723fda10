import os
import pytest
from datetime import date
from decimal import Decimal
from typing import Generator
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

# Pas de Redis en tests: le lifespan désactive proprement le rate limiting
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from salon_booking.app import app as fastapi_app
from salon_booking.cart.models import CartItem, FulfillmentType, ItemType
from salon_booking.checkout.registry import registry
from salon_booking.salons.models import TenantSettings

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Aucun accès Supabase réel: chaque test patche ce qu'il lit
@pytest.fixture(scope="function", autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("salon_booking.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("salon_booking.infra.supabase_client.get_service_supabase", lambda: MagicMock())

@pytest.fixture(autouse=True)
def _clear_checkout_sessions():
    registry.clear()
    yield
    registry.clear()

@pytest.fixture
def tenant() -> TenantSettings:
    return TenantSettings(
        id="t1",
        name="Salon Test",
        currency="USD",
        country="US",
        pay_at_venue_enabled=True,
        deposits_enabled=False,
        slot_capacity=1,
        slot_granularity_minutes=30,
        buffer_minutes=0,
    )

@pytest.fixture
def make_item():
    def _make(item_type=ItemType.SERVICE, source_id="svc-1", name="Coupe", unit_price="50", quantity=1, **kw):
        if item_type == ItemType.PRODUCT:
            kw.setdefault("fulfillment_type", FulfillmentType.PICKUP)
        else:
            kw.setdefault("duration_minutes", 30)
        return CartItem(
            item_type=item_type,
            source_id=source_id,
            name=name,
            unit_price=Decimal(unit_price),
            quantity=quantity,
            **kw,
        )
    return _make

@pytest.fixture
def next_monday() -> date:
    # Un lundi futur stable pour les tests de planification
    return date(2031, 3, 3)
