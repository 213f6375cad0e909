import base64
import json
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from management import profiles
from management.listings import seed_amenities
from server import security
from server.app import create_app
from server.settings import Settings
from storage.memory_store import InMemoryStore
from telemetry import metrics

# 1x1 transparent PNG.
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


class FakeAI:
    """Stands in for GeminiClient; records every call."""

    def __init__(self, reply: str = "Hello from I.R.I.S.") -> None:
        self.reply = reply
        self.error: Optional[Exception] = None
        self.calls: List[Dict[str, Any]] = []

    def complete(self, model, messages, *, component, subject_id=None, json_mode=False, temperature=0.3):
        self.calls.append(
            {"model": model, "messages": messages, "component": component, "subject_id": subject_id, "json_mode": json_mode}
        )
        if self.error is not None:
            raise self.error
        return self.reply


class FakeGeocoder:
    def __init__(self, result: Optional[Dict[str, Any]] = None) -> None:
        self.result = result
        self.queries: List[str] = []

    def lookup(self, query: str):
        self.queries.append(query)
        return self.result


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(security, "ITERATIONS", 1000)


@pytest.fixture(autouse=True)
def isolated_metrics(monkeypatch, tmp_path):
    monkeypatch.setattr(metrics, "METRICS_DIR", tmp_path / "metrics")
    monkeypatch.setattr(metrics, "CSV_PATH", tmp_path / "metrics" / "ai_usage.csv")
    metrics.set_metrics_store(None)
    yield
    metrics.set_metrics_store(None)


@pytest.fixture()
def store():
    memory = InMemoryStore()
    seed_amenities(memory)
    return memory


@pytest.fixture()
def fake_ai():
    return FakeAI()


@pytest.fixture()
def geocoder():
    return FakeGeocoder({"lat": 14.5995, "lng": 120.9842, "display_name": "Manila, Philippines"})


@pytest.fixture()
def settings():
    return Settings(supabase_url=None, supabase_key=None, gemini_api_key=None, cors_origins=["*"])


@pytest.fixture()
def client(store, fake_ai, geocoder, settings):
    app = create_app(store=store, ai_client=fake_ai, settings=settings, geocoder=geocoder)
    with TestClient(app) as test_client:
        yield test_client


def make_user(store, name: str, email: str, role: str = "tenant", password: str = "secret123") -> Dict[str, Any]:
    """Create an account directly in the store; returns the profile plus auth headers."""
    session = profiles.sign_up(store, name, email, password)
    if role != "tenant":
        profiles.set_role(store, session["user"]["id"], role)
    profile = profiles.get_profile(store, session["user"]["id"])
    return {**profile, "token": session["token"], "headers": {"Authorization": f"Bearer {session['token']}"}}


@pytest.fixture()
def landlord(store):
    return make_user(store, "Lina Landlord", "lina@example.com", "landlord")


@pytest.fixture()
def tenant(store):
    return make_user(store, "Tomas Tenant", "tomas@example.com")


@pytest.fixture()
def admin(store):
    return make_user(store, "Ada Admin", "ada@example.com", "admin")


def build_property(store, landlord: Dict[str, Any], name: str = "Sunrise Residences") -> Dict[str, Any]:
    return store.insert(
        "properties",
        {"landlord_id": landlord["id"], "name": name, "address": "12 Mabini St", "description": None},
    )


def build_unit(store, property_id: str, number: str, **extra: Any) -> Dict[str, Any]:
    row = {
        "property_id": property_id,
        "unit_number": number,
        "unit_type": "studio",
        "grid_x": 0,
        "grid_y": 1,
        "rent_amount": 1200,
        "status": "available",
    }
    row.update(extra)
    return store.insert("units", row)


def build_active_lease(store, unit: Dict[str, Any], tenant: Dict[str, Any], rent: float = 1200) -> Dict[str, Any]:
    store.update("units", {"status": "occupied"}, {"id": unit["id"]})
    return store.insert(
        "leases",
        {
            "unit_id": unit["id"],
            "tenant_id": tenant["id"],
            "start_date": "2026-01-01",
            "end_date": "2026-12-31",
            "rent_amount": rent,
            "status": "active",
        },
    )


def analysis_json(**overrides: Any) -> str:
    data = {
        "category": "Plumbing",
        "severity": "High",
        "summary": "Leaking pipe under the sink",
        "action": "Shut off the water valve",
        "estimatedCost": "PHP 500 - 1,500",
        "confidence": 0.8,
    }
    data.update(overrides)
    return json.dumps(data)
