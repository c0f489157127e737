"""
conftest.py — Shared pytest fixtures for the order submission test suite.

The real `QuickBaseClient` and `FirebaseAuthClient` are used throughout. Their
HTTP traffic goes to the in-memory apps in ``mock_services/`` through FastAPI's
``TestClient`` (an ``httpx.Client``), so request building, headers and error
mapping are exercised end to end without network access.
"""

import os

# Kein Logfile während der Tests
os.environ["ORDER_APP_LOG_FILE"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient

from mock_services import mock_identity, mock_quickbase
from order_submission.clients import QuickBaseClient
from order_submission.config import Settings
from order_submission.identity import FirebaseAuthClient

QB_BASE_URL = "https://api.quickbase.com/v1"
IDENTITY_BASE_URL = "https://identitytoolkit.googleapis.com/v1"

ORDERS_TABLE = "bq_orders"
LINE_ITEMS_TABLE = "bq_lineitems"
UOM_TABLE = "bq_uom"
JOBS_TABLE = "buy4q98bb"
CONTACTS_TABLE = "buzhqi64n"


@pytest.fixture
def settings():
    """Fully configured settings pointing at the seeded mock tables."""
    return Settings(
        realm_hostname=mock_quickbase.REALM,
        user_token=mock_quickbase.USER_TOKEN,
        api_base_url=QB_BASE_URL,
        order_submissions_table=ORDERS_TABLE,
        line_items_table=LINE_ITEMS_TABLE,
        uom_table=UOM_TABLE,
        jobs_table=JOBS_TABLE,
        contacts_table=CONTACTS_TABLE,
        app_id="bq_app",
        firebase_api_key=mock_identity.API_KEY,
    )


@pytest.fixture
def quickbase():
    """Seeded in-memory QuickBase realm, reset for every test."""
    mock_quickbase.seed_demo_data()
    yield mock_quickbase
    mock_quickbase.reset()


@pytest.fixture
def identity_store():
    mock_identity.reset()
    mock_identity.add_account("buyer@example.com", "secret123", "Pat Buyer")
    mock_identity.add_account("viewer@example.com", "secret456")
    yield mock_identity
    mock_identity.reset()


@pytest.fixture
def qb_client(settings, quickbase):
    with TestClient(mock_quickbase.app, base_url=QB_BASE_URL) as transport:
        client = QuickBaseClient(settings, http_client=transport)
        yield client
        client.close()


@pytest.fixture
def identity_client(settings, identity_store):
    with TestClient(mock_identity.app, base_url=IDENTITY_BASE_URL) as transport:
        yield FirebaseAuthClient(settings, http_client=transport)


@pytest.fixture
def fault_client(settings):
    """Factory for a QuickBaseClient whose transport is a plain function, for fault injection."""
    def make(handler, **changes):
        configured = settings.model_copy(update=changes)
        http_client = httpx.Client(base_url=configured.api_base_url, transport=httpx.MockTransport(handler))
        return QuickBaseClient(configured, http_client=http_client)
    return make


@pytest.fixture
def api(settings, qb_client, identity_client):
    """
    TestClient for the service app with the mock-backed clients injected.

    The startup hook runs (it builds its own settings and clients from the
    environment) and is then overridden through ``app.state``.
    """
    from order_submission.main import app

    with TestClient(app) as client:
        app.state.settings = settings
        app.state.quickbase = qb_client
        app.state.identity = identity_client
        yield client


@pytest.fixture
def order_payload():
    """Factory for a valid order form payload with two line items."""
    def make(**overrides):
        payload = {
            "jobNumber": "1",
            "reqDate": "2024-03-01",
            "dateRequiredForDelivery": "2024-03-15",
            "orderedBy": "buyer@example.com",
            "lineItems": [
                {"itemName": "Drywall screws", "description": "1 5/8 in", "qty": "12", "uom": "1"},
                {"itemName": "Joint compound", "description": "", "qty": 3, "uom": "2"},
            ],
        }
        payload.update(overrides)
        return payload
    return make
