from __future__ import annotations

import os
import tempfile
from pathlib import Path

os.environ.setdefault("MEDASSIST_DB_FILE", str(Path(tempfile.gettempdir()) / "medassist-test.db"))
os.environ["MEDASSIST_SEED_REFERENCE"] = "0"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from database import get_session
from main import app
from models import IndianMedicine
from routers.assistant import get_ai_client
from routers.interactions import get_reference_store
from services.ai_provider import GeminiClient
from services.auth import create_access_token
from services.reference_store import ReferenceStore

TEST_ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def _override_get_session():
    with Session(TEST_ENGINE) as session:
        yield session


def _override_get_reference_store():
    return ReferenceStore(TEST_ENGINE, timeout_s=5, concurrency=1)


@pytest.fixture
def engine():
    return TEST_ENGINE


@pytest.fixture(autouse=True)
def reset_db():
    SQLModel.metadata.drop_all(TEST_ENGINE)
    SQLModel.metadata.create_all(TEST_ENGINE)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def client():
    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[get_reference_store] = _override_get_reference_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def reference_medicines():
    rows = [
        IndianMedicine(name="Warf 5", generic_name="Warfarin", therapeutic_class="Anticoagulant"),
        IndianMedicine(name="Brufen", generic_name="Ibuprofen", therapeutic_class="NSAID"),
        IndianMedicine(name="Ecosprin", generic_name="Aspirin", therapeutic_class="Antiplatelet"),
        IndianMedicine(name="Metolar", generic_name="Metoprolol", therapeutic_class="Beta-blocker"),
        IndianMedicine(name="Tenormin", generic_name="Atenolol", therapeutic_class="Beta-blocker"),
        IndianMedicine(name="Atorva", generic_name="Atorvastatin", therapeutic_class="Statin"),
        IndianMedicine(name="Glycomet", generic_name="Metformin", therapeutic_class="Antidiabetic"),
        IndianMedicine(name="Glyciphage", generic_name="Metformin", therapeutic_class="Antidiabetic"),
        IndianMedicine(name="Limcee", generic_name="Ascorbic acid", therapeutic_class=None),
    ]
    with Session(TEST_ENGINE) as session:
        for row in rows:
            session.add(row)
        session.commit()
    return rows


def auth_headers(user_id: str, email: str | None = None) -> dict[str, str]:
    token = create_access_token(user_id, email or f"{user_id}@medassist.local")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    return auth_headers("user-alice")


@pytest.fixture
def other_headers():
    return auth_headers("user-bob")


@pytest.fixture
def outsider_headers():
    return auth_headers("user-carol")


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def fake_gemini():
    """Route AI calls to a MockTransport. Tests set ``state["reply"]`` or ``state["status"]``."""
    state: dict = {"reply": "", "status": 200, "requests": []}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        if state["status"] != 200:
            return httpx.Response(state["status"], json={"error": {"message": "provider failure"}})
        return httpx.Response(200, json=gemini_reply(state["reply"]))

    def _client() -> GeminiClient:
        return GeminiClient(api_key="test-key", transport=httpx.MockTransport(handler))

    app.dependency_overrides[get_ai_client] = _client
    yield state
    app.dependency_overrides.pop(get_ai_client, None)


@pytest.fixture
def medicine_id(client: TestClient, user_headers):
    response = client.post(
        "/medicines",
        headers=user_headers,
        json={"medicine_name": "Dolo 650", "category": "Pain Relief", "price": 30.5},
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]
